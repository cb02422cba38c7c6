"""Shared utility helpers used across connectors, services and routers."""

from datetime import datetime


def safe_int(v):
    """Safely convert a value to int, returning None on failure."""
    if v is None:
        return None
    try:
        return int(v)
    except (ValueError, TypeError):
        return None


def safe_float(v, default=None):
    """Safely convert a value to float (Shopify sends prices as strings)."""
    if v is None or v == "":
        return default
    try:
        return float(v)
    except (ValueError, TypeError):
        return default


def iso(dt: datetime | None) -> str | None:
    """ISO-8601 string for JSON responses, None passthrough."""
    return dt.isoformat() if dt else None


def minutes_between(start: datetime, end: datetime) -> int:
    """Whole minutes elapsed (floored, never negative)."""
    return max(0, int((end - start).total_seconds() // 60))
