"""
Timestamp parsing helpers shared by the normalizer and the date bucketer.

Rules:
- Naive `datetime` (no tzinfo) is assumed to be UTC.
- ISO8601 strings ending with 'Z' are treated as UTC.
- ISO8601 strings with an offset keep that offset.
- Numeric epochs are milliseconds.

Parsing helpers here return None instead of raising.
"""

from __future__ import annotations

import math
from datetime import datetime, tzinfo
from typing import Any, Optional, Union
from zoneinfo import ZoneInfo

UTC = ZoneInfo("UTC")

# Accessors exposed by SDK timestamp wrappers (Firestore, protobuf, JS-style)
_DATE_ACCESSORS = ("to_datetime", "ToDatetime", "toDate", "to_pydatetime")


def utc_now() -> datetime:
    """Return tz-aware current time in UTC."""
    return datetime.now(tz=UTC)


def resolve_timezone(value: Union[str, tzinfo, None]) -> tzinfo:
    """Accept an IANA name or a tzinfo; None means UTC."""
    if value is None:
        return UTC
    if isinstance(value, tzinfo):
        return value
    return ZoneInfo(value)


def ensure_aware(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


def parse_datetime_string(value: str) -> Optional[datetime]:
    s = value.strip()
    if not s:
        return None
    if s.endswith("Z") or s.endswith("z"):
        s = s[:-1] + "+00:00"
    try:
        return ensure_aware(datetime.fromisoformat(s))
    except ValueError:
        return None


def from_epoch_millis(value: Any) -> Optional[datetime]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    if not math.isfinite(value):
        return None
    try:
        return datetime.fromtimestamp(value / 1000.0, tz=UTC)
    except (OverflowError, OSError, ValueError):
        return None


def from_date_accessor(value: Any) -> Optional[datetime]:
    """Best-effort conversion for objects exposing a datetime accessor."""
    for name in _DATE_ACCESSORS:
        accessor = getattr(value, name, None)
        if not callable(accessor):
            continue
        try:
            out = accessor()
        except Exception:
            return None
        if isinstance(out, datetime):
            return ensure_aware(out)
        return None
    return None


def from_seconds_map(value: Any) -> Optional[datetime]:
    """Serialized timestamp map: {_seconds, _nanoseconds} or {seconds, nanoseconds}."""
    if not isinstance(value, dict):
        return None
    seconds = value.get("_seconds", value.get("seconds"))
    nanos = value.get("_nanoseconds", value.get("nanoseconds", 0))
    if isinstance(seconds, bool) or not isinstance(seconds, (int, float)):
        return None
    if isinstance(nanos, bool) or not isinstance(nanos, (int, float)):
        return None
    return from_epoch_millis(seconds * 1000.0 + nanos / 1_000_000.0)


def to_epoch_millis(value: Any) -> Optional[float]:
    """Epoch milliseconds for a parseable ISO string or datetime, else None."""
    if isinstance(value, datetime):
        return ensure_aware(value).timestamp() * 1000.0
    if isinstance(value, str):
        parsed = parse_datetime_string(value)
        if parsed is not None:
            return parsed.timestamp() * 1000.0
    return None


def isoformat(value: datetime) -> str:
    """ISO8601 with millisecond precision and explicit offset."""
    return ensure_aware(value).isoformat(timespec="milliseconds")
