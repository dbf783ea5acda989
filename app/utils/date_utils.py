"""
Date/Time utilities for SkinAI Backend
Handles MongoDB's requirement for timezone-naive datetimes
"""

from datetime import datetime, timezone


def get_utc_now() -> datetime:
    """
    Get current UTC time as timezone-NAIVE datetime for MongoDB compatibility.
    MongoDB stores all datetimes as UTC internally but expects naive datetimes.
    """
    return datetime.now(timezone.utc).replace(tzinfo=None)


def get_utc_now_aware() -> datetime:
    """
    Get current UTC time WITH timezone awareness for Python operations.
    """
    return datetime.now(timezone.utc)


def utc_now_iso() -> str:
    """Current UTC time as ISO-8601 with a trailing Z, e.g. 2025-01-31T09:15:02.123Z"""
    return get_utc_now_aware().isoformat(timespec="milliseconds").replace("+00:00", "Z")
