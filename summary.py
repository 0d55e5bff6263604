"""
Attribution Summary
===================

Roll per-opportunity credit up by touchpoint type.

For each touchpoint type the summary reports:
- count: touchpoints of that type
- totalValue: deal value touched by that type (each opportunity once per type)
- one attributed dollar value per model: sum of credit% / 100 * deal value

The model values are attribution quantities, so across all types they add up
to the total value of the opportunities that had touchpoints. totalValue is
informational and can exceed that when a deal was touched by several types.
"""

import logging
from typing import Dict, List, Optional, Any

import pandas as pd

from models import (
    AttributionModel,
    AttributionResult,
    AttributionSummary,
    DateRange,
    SummaryRow,
    SUMMARY_MODELS
)

logger = logging.getLogger(__name__)


def build_summary(
    results: List[AttributionResult],
    date_range: Optional[DateRange] = None,
    model: Optional[AttributionModel] = None
) -> AttributionSummary:
    """
    Fold attribution results into a summary keyed by touchpoint type.

    Results without touchpoints contribute nothing to the sums and are
    counted in excluded_count. When model is given only that model is
    reported.
    """
    models = [model] if model else list(SUMMARY_MODELS)
    summary = AttributionSummary(models=models, date_range=date_range)

    for result in results:
        summary.opportunity_count += 1

        if not result.has_touchpoints:
            summary.excluded_count += 1
            continue

        summary.attributed_count += 1
        touched_types = set()

        for tp in result.touchpoints:
            row = summary.rows.setdefault(tp.type.value, SummaryRow())
            row.count += 1

            if tp.type.value not in touched_types:
                row.total_value += result.total_value
                touched_types.add(tp.type.value)

            for m in AttributionModel:
                row.values[m] += result.attributed_value(m, tp.id)

    logger.info(
        f"Summarized {summary.attributed_count} opportunities across {len(summary.rows)} touchpoint types "
        f"({summary.excluded_count} excluded without touchpoints)"
    )
    return summary


def summary_to_dataframe(summary: AttributionSummary) -> pd.DataFrame:
    """One row per touchpoint type, columns in wire order."""
    records = [
        {"touchpointType": touchpoint_type, **row.to_dict(summary.models)}
        for touchpoint_type, row in summary.rows.items()
    ]
    columns = ["touchpointType", "count", "totalValue"] + [m.wire_name for m in summary.models]

    df = pd.DataFrame(records, columns=columns)
    if not df.empty:
        df = df.sort_values(summary.models[0].wire_name, ascending=False, ignore_index=True)
    return df


def results_to_dataframe(results: List[AttributionResult]) -> pd.DataFrame:
    """
    Flatten detail results to one row per touchpoint.

    Each model gets a credit column (percent) and a value column (dollars).
    """
    records = []
    for result in results:
        for tp in result.touchpoints:
            record: Dict[str, Any] = {
                "opportunityId": result.opportunity_id,
                "opportunityName": result.opportunity_name,
                "totalValue": result.total_value,
                "touchpointId": tp.id,
                "touchpointType": tp.type.value,
                "timestamp": tp.timestamp,
                "description": tp.description,
            }
            for m in AttributionModel:
                record[f"{m.wire_name}Percent"] = result.credit(m, tp.id)
                record[f"{m.wire_name}Value"] = result.attributed_value(m, tp.id)
            records.append(record)

    return pd.DataFrame(records)
