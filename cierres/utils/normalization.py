"""
Normalization of closing records and documents.

Everything read from storage or received from callers passes through here.
Functions in this module never raise: malformed fields degrade to defaults,
malformed records are dropped.
"""

import logging
import math
import re
import secrets
import string
import time
from collections.abc import Mapping
from datetime import date, datetime, tzinfo
from enum import Enum
from typing import Any, Dict, List, NamedTuple, Optional, Union

from pydantic import BaseModel

from cierres.core.config import settings
from cierres.models.closing import (
    AdjustmentResolution,
    DailyClosingRecord,
    DailyClosingsDocument,
    RemovedAdjustment,
)
from cierres.utils.date_keys import date_key_of, group_by_date_key
from cierres.utils.retention import sort_records_descending, trim_closings_map
from cierres.utils.timeutils import (
    from_date_accessor,
    from_epoch_millis,
    from_seconds_map,
    isoformat,
    parse_datetime_string,
    resolve_timezone,
    utc_now,
)

logger = logging.getLogger(__name__)

# Leading decimal number, same prefix rule as JavaScript parseFloat
_NUMERIC_PREFIX = re.compile(r"^\s*([+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?)")
_ID_ALPHABET = string.digits + string.ascii_lowercase


class TimestampSource(str, Enum):
    PARSED = "parsed"      # parsed and re-serialized as ISO8601
    VERBATIM = "verbatim"  # non-empty string that did not parse, kept trimmed
    DEFAULTED = "defaulted"


class ResolvedTimestamp(NamedTuple):
    value: str
    source: TimestampSource

    @property
    def defaulted(self) -> bool:
        return self.source is TimestampSource.DEFAULTED


def resolve_timestamp(
    value: Any,
    fallback: Optional[str] = None,
    tz: Union[str, tzinfo, None] = None
) -> ResolvedTimestamp:
    """
    Resolve heterogeneous timestamp shapes to an ISO8601 string.

    Tries, in order: non-empty string, datetime, date (midnight in `tz`,
    the ledger timezone by default), epoch milliseconds, object with a
    datetime accessor. Falls back to `fallback`, then now.
    """
    if isinstance(value, str):
        trimmed = value.strip()
        if trimmed:
            parsed = parse_datetime_string(trimmed)
            if parsed is not None:
                return ResolvedTimestamp(isoformat(parsed), TimestampSource.PARSED)
            return ResolvedTimestamp(trimmed, TimestampSource.VERBATIM)

    if isinstance(value, datetime):
        return ResolvedTimestamp(isoformat(value), TimestampSource.PARSED)

    if isinstance(value, date):
        zone = resolve_timezone(tz if tz is not None else settings.LEDGER_TIMEZONE)
        midnight = datetime.combine(value, datetime.min.time(), tzinfo=zone)
        return ResolvedTimestamp(isoformat(midnight), TimestampSource.PARSED)

    from_number = from_epoch_millis(value)
    if from_number is not None:
        return ResolvedTimestamp(isoformat(from_number), TimestampSource.PARSED)

    if value is not None and not isinstance(value, (str, int, float)):
        from_accessor = from_date_accessor(value) or from_seconds_map(value)
        if from_accessor is not None:
            return ResolvedTimestamp(isoformat(from_accessor), TimestampSource.PARSED)

    if fallback:
        return ResolvedTimestamp(fallback, TimestampSource.DEFAULTED)
    return ResolvedTimestamp(isoformat(utc_now()), TimestampSource.DEFAULTED)


def resolve_iso_string(
    value: Any,
    fallback: Optional[str] = None,
    tz: Union[str, tzinfo, None] = None
) -> str:
    return resolve_timestamp(value, fallback, tz).value


def sanitize_money(value: Any) -> int:
    """Whole currency units, truncated toward zero. Invalid input is 0."""
    if isinstance(value, bool):
        return 0
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if math.isfinite(value) else 0
    if isinstance(value, str):
        match = _NUMERIC_PREFIX.match(value)
        if match:
            parsed = float(match.group(1))
            if math.isfinite(parsed):
                return int(parsed)
    return 0


def _parse_denomination(key: Any) -> Optional[int]:
    if isinstance(key, bool):
        return None
    try:
        number = float(key.strip() if isinstance(key, str) else key)
    except (TypeError, ValueError, OverflowError):
        return None
    if not math.isfinite(number):
        return None
    denomination = int(number)
    return denomination if denomination > 0 else None


def sanitize_breakdown(value: Any) -> Dict[int, int]:
    """Keep denominations with a positive count; absent means zero."""
    if not isinstance(value, Mapping):
        return {}
    result: Dict[int, int] = {}
    for key, raw_count in value.items():
        denomination = _parse_denomination(key)
        if denomination is None:
            continue
        count = sanitize_money(raw_count)
        if count > 0:
            result[denomination] = count
    return result


def _pick(candidate: Mapping, *keys: str) -> Any:
    """First present value among camelCase/snake_case spellings."""
    for key in keys:
        if key in candidate:
            return candidate[key]
    return None


def _trimmed_text(value: Any) -> Optional[str]:
    if isinstance(value, str):
        trimmed = value.strip()
        if trimmed:
            return trimmed
    return None


def _sanitize_removed_adjustment(value: Any) -> Optional[RemovedAdjustment]:
    if not isinstance(value, Mapping):
        return None
    fields: Dict[str, Any] = {}

    adjustment_id = _trimmed_text(value.get("id"))
    if adjustment_id:
        fields["id"] = adjustment_id

    currency = value.get("currency")
    if currency in ("CRC", "USD"):
        fields["currency"] = currency

    for name, keys in (
        ("amount", ("amount",)),
        ("amount_ingreso", ("amountIngreso", "amount_ingreso")),
        ("amount_egreso", ("amountEgreso", "amount_egreso")),
    ):
        raw = _pick(value, *keys)
        if raw is not None:
            fields[name] = sanitize_money(raw)

    manager = _trimmed_text(value.get("manager"))
    if manager:
        fields["manager"] = manager

    created_at = resolve_timestamp(_pick(value, "createdAt", "created_at"))
    if not created_at.defaulted:
        fields["created_at"] = created_at.value

    if not fields:
        return None
    return RemovedAdjustment(**fields)


def sanitize_adjustment_resolution(value: Any) -> Optional[AdjustmentResolution]:
    """Best-effort per sub-field; None when nothing survives."""
    if isinstance(value, BaseModel):
        value = value.model_dump(by_alias=True, exclude_none=True)
    if not isinstance(value, Mapping):
        return None

    fields: Dict[str, Any] = {}

    raw_removed = _pick(value, "removedAdjustments", "removed_adjustments")
    if isinstance(raw_removed, (list, tuple)):
        removed = [
            adjustment
            for adjustment in (_sanitize_removed_adjustment(item) for item in raw_removed)
            if adjustment is not None
        ]
        if removed:
            fields["removed_adjustments"] = removed

    note = _trimmed_text(value.get("note"))
    if note:
        fields["note"] = note

    for name, keys in (
        ("post_adjustment_balance_crc", ("postAdjustmentBalanceCRC", "post_adjustment_balance_crc")),
        ("post_adjustment_balance_usd", ("postAdjustmentBalanceUSD", "post_adjustment_balance_usd")),
    ):
        raw = _pick(value, *keys)
        if raw is not None:
            fields[name] = sanitize_money(raw)

    if not fields:
        return None
    return AdjustmentResolution(**fields)


def generate_record_id() -> str:
    """dc_<epoch ms>_<6 random base36 chars>"""
    suffix = "".join(secrets.choice(_ID_ALPHABET) for _ in range(6))
    return f"dc_{int(time.time() * 1000)}_{suffix}"


def sanitize_record(raw: Any, tz: Union[str, tzinfo, None] = None) -> Optional[DailyClosingRecord]:
    """
    Coerce arbitrary input into a DailyClosingRecord.

    Returns None only when the input is not a mapping. Missing id is
    generated, missing closing date defaults to now, missing created_at
    defaults to the closing date. Plain dates are read as midnight in `tz`.
    """
    if isinstance(raw, BaseModel):
        raw = raw.model_dump(by_alias=True)
    if not isinstance(raw, Mapping):
        return None

    record_id = _trimmed_text(raw.get("id")) or generate_record_id()
    closing_date = resolve_iso_string(
        _pick(raw, "closingDate", "closing_date"), isoformat(utc_now()), tz
    )
    created_at = resolve_iso_string(_pick(raw, "createdAt", "created_at"), closing_date, tz)
    manager = raw.get("manager")
    notes = raw.get("notes")

    return DailyClosingRecord(
        id=record_id,
        created_at=created_at,
        closing_date=closing_date,
        manager=manager.strip() if isinstance(manager, str) else "",
        total_crc=sanitize_money(_pick(raw, "totalCRC", "total_crc")),
        total_usd=sanitize_money(_pick(raw, "totalUSD", "total_usd")),
        recorded_balance_crc=sanitize_money(_pick(raw, "recordedBalanceCRC", "recorded_balance_crc")),
        recorded_balance_usd=sanitize_money(_pick(raw, "recordedBalanceUSD", "recorded_balance_usd")),
        diff_crc=sanitize_money(_pick(raw, "diffCRC", "diff_crc")),
        diff_usd=sanitize_money(_pick(raw, "diffUSD", "diff_usd")),
        notes=notes.strip() if isinstance(notes, str) else "",
        breakdown_crc=sanitize_breakdown(_pick(raw, "breakdownCRC", "breakdown_crc")),
        breakdown_usd=sanitize_breakdown(_pick(raw, "breakdownUSD", "breakdown_usd")),
        adjustment_resolution=sanitize_adjustment_resolution(
            _pick(raw, "adjustmentResolution", "adjustment_resolution")
        ),
    )


def _sanitize_records(raw_list: Any, tz: tzinfo) -> List[DailyClosingRecord]:
    records: List[DailyClosingRecord] = []
    for raw in raw_list:
        record = sanitize_record(raw, tz)
        if record is None:
            logger.debug("Dropped malformed closing record of type %s", type(raw).__name__)
            continue
        records.append(record)
    return records


def sanitize_document(
    raw: Any,
    fallback_company: str,
    tz: Union[str, tzinfo, None] = None,
    max_records: Optional[int] = None
) -> DailyClosingsDocument:
    """
    Coerce a stored document into a DailyClosingsDocument.

    Accepts the bucketed `closingsByDate` shape or the legacy flat
    `closings` list. Unusable input yields an empty document.
    """
    zone = resolve_timezone(tz if tz is not None else settings.LEDGER_TIMEZONE)
    now = isoformat(utc_now())
    if isinstance(raw, BaseModel):
        raw = raw.model_dump(by_alias=True)
    if not isinstance(raw, Mapping):
        return DailyClosingsDocument(company=fallback_company, updated_at=now)

    company = _trimmed_text(raw.get("company")) or fallback_company
    updated_at = resolve_iso_string(_pick(raw, "updatedAt", "updated_at"), now)

    closings: Dict[str, List[DailyClosingRecord]] = {}
    by_date = _pick(raw, "closingsByDate", "closings_by_date")
    legacy = raw.get("closings")

    if isinstance(by_date, Mapping):
        for raw_key, raw_list in by_date.items():
            if not isinstance(raw_list, (list, tuple)):
                continue
            records = _sanitize_records(raw_list, zone)
            if not records:
                continue
            key = date_key_of(str(raw_key), zone)
            closings[key] = sort_records_descending(closings.get(key, []) + records)
    elif isinstance(legacy, (list, tuple)):
        closings = group_by_date_key(_sanitize_records(legacy, zone), zone)

    return DailyClosingsDocument(
        company=company,
        updated_at=updated_at,
        closings_by_date=trim_closings_map(closings, max_records, zone),
    )
