"""Shared utility helpers used across connectors and services."""

import math


def safe_int(v):
    """Safely convert a value to int, returning None on failure."""
    if v is None:
        return None
    try:
        return int(v)
    except (ValueError, TypeError):
        try:
            return int(float(v))
        except (ValueError, TypeError, OverflowError):
            return None


def safe_float(v):
    """Safely convert a value to float, returning None on failure."""
    if v is None:
        return None
    try:
        return float(v)
    except (ValueError, TypeError):
        return None


def float_or_zero(v) -> float:
    """Permissive numeric parse for spreadsheet cells: '$1,250.50' -> 1250.5, junk -> 0."""
    if isinstance(v, str):
        v = v.replace("$", "").replace(",", "").strip()
    result = safe_float(v)
    if result is None or not math.isfinite(result):
        return 0.0
    return result


def int_or_default(v, default: int = 0) -> int:
    if isinstance(v, str):
        v = v.replace(",", "").strip()
    result = safe_int(v)
    return result if result is not None else default


def parse_bool(v) -> bool:
    """Only the literal 'true' (any case) counts as true."""
    if isinstance(v, bool):
        return v
    return str(v or "").strip().lower() == "true"
