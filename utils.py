"""Utility functions and validation helpers."""

import logging
from typing import Optional
from datetime import date, datetime, timedelta

from exceptions import InvalidDateRangeError

logger = logging.getLogger(__name__)


def format_currency(amount: float) -> str:
    """Format a currency amount."""
    return f"${amount:,.2f}"


def format_percent(pct: float) -> str:
    """Format a credit percentage (0-100 scale)."""
    return f"{pct:.1f}%"


def setup_logging(log_level: str = "INFO", log_file: Optional[str] = None):
    """
    Configure logging for the application.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        log_file: Optional log file path
    """
    numeric_level = getattr(logging, log_level.upper(), logging.INFO)

    # Create formatter
    formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    # Configure root logger
    root_logger = logging.getLogger()
    root_logger.setLevel(numeric_level)

    # Console handler
    console_handler = logging.StreamHandler()
    console_handler.setLevel(numeric_level)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    # File handler (optional)
    if log_file:
        try:
            file_handler = logging.FileHandler(log_file)
            file_handler.setLevel(numeric_level)
            file_handler.setFormatter(formatter)
            root_logger.addHandler(file_handler)
            logger.info(f"Logging to file: {log_file}")
        except OSError as e:
            logger.error(f"Failed to setup file logging: {e}")

    logger.info(f"Logging configured at level {log_level}")


def validate_date_format(date_str: str) -> bool:
    """Validate that a string is a valid ISO date (YYYY-MM-DD)."""
    try:
        datetime.fromisoformat(date_str)
        return True
    except (ValueError, TypeError):
        return False


def parse_iso_date(value: str, field: str = "date") -> date:
    """
    Parse an ISO date or datetime string into a date.

    Full datetimes are accepted and truncated to their calendar date.
    Raises InvalidDateRangeError if the value can't be parsed.
    """
    if not value or not validate_date_format(value.strip()):
        raise InvalidDateRangeError(f"Invalid {field}: {value!r} (expected YYYY-MM-DD)")
    return datetime.fromisoformat(value.strip()).date()


def resolve_date_window(
    start_date: Optional[str],
    end_date: Optional[str],
    lookback_days: int,
    today: Optional[date] = None
):
    """
    Turn optional query-string dates into a (start, end) pair of dates.

    A missing end defaults to today; a missing start defaults to
    lookback_days before the end.
    """
    today = today or date.today()
    end = parse_iso_date(end_date, "endDate") if end_date else today
    start = parse_iso_date(start_date, "startDate") if start_date else end - timedelta(days=lookback_days)
    return start, end
