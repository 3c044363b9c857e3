"""
Retention trimming for a company's closings.

Algorithm:
1. Flatten {date_key: [records]} into (date_key, record) pairs,
   re-deriving each key from the record's closing date
2. Sort pairs newest-first by recency key
3. Keep the first max_records pairs
4. Regroup by date key and sort every bucket newest-first

Eviction is global: one busy day can push every other day out.
"""

import logging
from datetime import tzinfo
from typing import Dict, Iterable, List, Optional, Tuple, Union

from cierres.core.config import settings
from cierres.models.closing import DailyClosingRecord
from cierres.utils.date_keys import date_key_of
from cierres.utils.timeutils import resolve_timezone, to_epoch_millis

logger = logging.getLogger(__name__)

ClosingsMap = Dict[str, List[DailyClosingRecord]]


def recency_key(record: DailyClosingRecord) -> float:
    """Epoch ms of created_at, else closing_date, else 0 (oldest)."""
    created = to_epoch_millis(record.created_at)
    if created is not None:
        return created
    closing = to_epoch_millis(record.closing_date)
    if closing is not None:
        return closing
    return 0


def sort_records_descending(records: Iterable[DailyClosingRecord]) -> List[DailyClosingRecord]:
    return sorted(records, key=recency_key, reverse=True)


def trim_closings_map(
    closings: ClosingsMap,
    max_records: Optional[int] = None,
    tz: Union[str, tzinfo, None] = None
) -> ClosingsMap:
    """Cap the total number of records across all buckets."""
    if max_records is None:
        max_records = settings.MAX_CLOSING_RECORDS
    zone = resolve_timezone(tz if tz is not None else settings.LEDGER_TIMEZONE)

    buffer: List[Tuple[str, DailyClosingRecord]] = []
    for records in closings.values():
        for record in records:
            buffer.append((date_key_of(record.closing_date, zone), record))

    buffer.sort(key=lambda pair: recency_key(pair[1]), reverse=True)
    kept = buffer[:max(max_records, 0)]
    if len(kept) < len(buffer):
        logger.debug(
            "Evicted %d closing record(s) over retention cap of %d",
            len(buffer) - len(kept),
            max_records
        )

    result: ClosingsMap = {}
    for date_key, record in kept:
        result.setdefault(date_key, []).append(record)

    for date_key in result:
        result[date_key] = sort_records_descending(result[date_key])

    return result
