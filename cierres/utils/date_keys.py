"""Calendar-date bucket keys (YYYY-MM-DD) for closing records."""
import logging
import re
from datetime import datetime, tzinfo
from typing import Dict, Iterable, List, Optional, Union

from cierres.models.closing import DailyClosingRecord
from cierres.utils.timeutils import ensure_aware, parse_datetime_string, resolve_timezone

logger = logging.getLogger(__name__)

DATE_KEY_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def build_date_key(value: datetime) -> str:
    return f"{value.year:04d}-{value.month:02d}-{value.day:02d}"


def _local_date_key(value: datetime, zone: tzinfo) -> Optional[str]:
    try:
        return build_date_key(ensure_aware(value).astimezone(zone))
    except (OverflowError, ValueError):
        # shifting to the reference zone left the supported year range
        return None


def date_key_of(value: Union[str, datetime], tz: Union[str, tzinfo, None] = None) -> str:
    """
    Derive the bucket key for a timestamp.

    Resolution order:
    1. A bare YYYY-MM-DD string is already a key
    2. A parseable timestamp is converted to the local date in `tz`
    3. A timestamp that cannot be shifted into `tz` (year 1 or 9999 edges)
       or an unparseable string with a YYYY-MM-DD prefix keeps the prefix
    4. Today's date in `tz`
    """
    zone = resolve_timezone(tz)

    if isinstance(value, datetime):
        key = _local_date_key(value, zone)
        return key if key is not None else build_date_key(value)

    if isinstance(value, str):
        text = value.strip()
        if DATE_KEY_PATTERN.match(text):
            return text
        parsed = parse_datetime_string(text)
        key = _local_date_key(parsed, zone) if parsed is not None else None
        if key is not None:
            return key
        if len(text) >= 10 and DATE_KEY_PATTERN.match(text[:10]):
            return text[:10]

    logger.debug("Unparseable closing date %r, bucketing under today", value)
    return build_date_key(datetime.now(zone))


def group_by_date_key(
    records: Iterable[DailyClosingRecord],
    tz: Union[str, tzinfo, None] = None
) -> Dict[str, List[DailyClosingRecord]]:
    """Group records by the date key of their closing date, keeping input order."""
    zone = resolve_timezone(tz)
    grouped: Dict[str, List[DailyClosingRecord]] = {}
    for record in records:
        grouped.setdefault(date_key_of(record.closing_date, zone), []).append(record)
    return grouped
