"""Datetime utilities for common operations."""

from datetime import datetime, timezone


def now() -> datetime:
    """
    Get current datetime in UTC.

    Used as the Python-side default for every timestamp column, so values
    are set at flush time and never need a refresh from the database.
    """
    return datetime.now(timezone.utc)
