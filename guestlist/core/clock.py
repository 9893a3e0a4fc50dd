"""Timestamp helper shared by models and the attendance core."""
from datetime import UTC, datetime


def utcnow() -> datetime:
    """Current UTC time as a naive datetime.

    SQLite hands datetimes back without tzinfo, so everything written by
    the app is naive UTC to keep comparisons between fresh and reloaded
    values valid.
    """
    return datetime.now(UTC).replace(tzinfo=None)
