"""
Export functionality for attribution payloads.
Supports JSON (the API payload verbatim), CSV and Excel.
"""

import io
import json
from typing import Dict, List

import pandas as pd

from models import AttributionResult, AttributionSummary
from summary import results_to_dataframe, summary_to_dataframe

EXPORT_FORMATS = {
    "json": "application/json",
    "csv": "text/csv",
    "xlsx": "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
}


def export_results_json(results: List[AttributionResult]) -> bytes:
    """Serialize detail results exactly as the API returns them."""
    return json.dumps([result.to_dict() for result in results], indent=2).encode('utf-8')


def export_summary_json(summary: AttributionSummary) -> bytes:
    """Serialize a summary exactly as the API returns it."""
    return json.dumps(summary.to_dict(), indent=2).encode('utf-8')


def export_to_csv(df: pd.DataFrame) -> bytes:
    """
    Export DataFrame to CSV bytes.

    Args:
        df: DataFrame to export

    Returns:
        CSV content as bytes
    """
    return df.to_csv(index=False).encode('utf-8')


def export_to_excel(dataframes: Dict[str, pd.DataFrame]) -> bytes:
    """
    Export multiple DataFrames to Excel with multiple sheets.

    Args:
        dataframes: Dictionary of {sheet_name: DataFrame}

    Returns:
        Excel file content as bytes
    """
    output = io.BytesIO()

    with pd.ExcelWriter(output, engine='xlsxwriter') as writer:
        workbook = writer.book

        # Define formats
        header_format = workbook.add_format({
            'bold': True,
            'text_wrap': True,
            'valign': 'top',
            'fg_color': '#4472C4',
            'font_color': 'white',
            'border': 1
        })

        currency_format = workbook.add_format({
            'num_format': '$#,##0.00',
            'border': 1
        })

        # Credits are already on a 0-100 scale
        percent_format = workbook.add_format({
            'num_format': '0.00"%"',
            'border': 1
        })

        date_format = workbook.add_format({
            'num_format': 'yyyy-mm-dd hh:mm',
            'border': 1
        })

        cell_format = workbook.add_format({
            'border': 1
        })

        for sheet_name, df in dataframes.items():
            df.to_excel(writer, sheet_name=sheet_name, index=False, startrow=1, header=False)

            worksheet = writer.sheets[sheet_name]

            # Write headers with formatting
            for col_num, value in enumerate(df.columns.values):
                worksheet.write(0, col_num, value, header_format)

            for col_num, col_name in enumerate(df.columns):
                lowered = col_name.lower()
                if df.empty:
                    width = len(str(col_name))
                else:
                    width = max(df[col_name].astype(str).apply(len).max(), len(str(col_name)))

                if 'percent' in lowered:
                    fmt = percent_format
                elif 'value' in lowered or lowered in ('linear', 'timedecay', 'ushaped', 'wshaped', 'firsttouch', 'lasttouch'):
                    fmt = currency_format
                elif 'timestamp' in lowered or 'date' in lowered:
                    fmt = date_format
                else:
                    fmt = cell_format
                worksheet.set_column(col_num, col_num, min(width + 2, 50), fmt)

    output.seek(0)
    return output.read()


def export_results(results: List[AttributionResult], fmt: str) -> bytes:
    """Export detail results in json, csv or xlsx."""
    if fmt == "json":
        return export_results_json(results)
    df = results_to_dataframe(results)
    if fmt == "csv":
        return export_to_csv(df)
    return export_to_excel({"Touchpoint Credit": df})


def export_summary(summary: AttributionSummary, fmt: str) -> bytes:
    """Export a summary in json, csv or xlsx."""
    if fmt == "json":
        return export_summary_json(summary)
    df = summary_to_dataframe(summary)
    if fmt == "csv":
        return export_to_csv(df)

    coverage = pd.DataFrame([summary.coverage()])
    return export_to_excel({"Summary": df, "Coverage": coverage})
