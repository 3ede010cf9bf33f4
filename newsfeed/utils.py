# newsfeed/utils.py
from __future__ import annotations

from datetime import datetime, timezone
from math import isnan
from typing import Any, Iterable, List, Optional


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def coerce_datetime(dt: Optional[datetime]) -> Optional[datetime]:
    """Naive datetimes (SQLite hands these back) are treated as UTC."""
    if not dt:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    return max(low, min(high, value))


def as_unit_float(value: Any, default: float) -> float:
    """Best-effort float in [0, 1]; None, NaN and junk fall back to `default`."""
    try:
        f = float(value)
    except (TypeError, ValueError):
        return default
    if isnan(f):
        return default
    return clamp(f)


def dedupe_keep_order(items: Iterable[str]) -> List[str]:
    """Drop repeats compared case- and whitespace-insensitively; first spelling wins."""
    seen: set[str] = set()
    out: List[str] = []
    for it in items:
        if not isinstance(it, str):
            continue
        key = " ".join(it.lower().split())
        if not key or key in seen:
            continue
        seen.add(key)
        out.append(it.strip())
    return out
