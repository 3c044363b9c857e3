"""Tests for calendar-date bucket keys."""
import pytest
from datetime import datetime, timezone
from zoneinfo import ZoneInfo

from cierres.models.closing import DailyClosingRecord
from cierres.utils.date_keys import date_key_of, group_by_date_key


def _record(record_id: str, closing_date: str) -> DailyClosingRecord:
    return DailyClosingRecord(id=record_id, created_at=closing_date, closing_date=closing_date)


def test_date_key_uses_reference_timezone():
    # 02:30 UTC is still the previous evening in Costa Rica (UTC-6)
    assert date_key_of("2024-06-02T02:30:00Z", "UTC") == "2024-06-02"
    assert date_key_of("2024-06-02T02:30:00Z", "America/Costa_Rica") == "2024-06-01"
    assert date_key_of("2024-06-02T02:30:00Z", ZoneInfo("Asia/Tokyo")) == "2024-06-02"


def test_date_key_from_datetime():
    moment = datetime(2024, 12, 31, 23, 59, tzinfo=timezone.utc)

    assert date_key_of(moment, "UTC") == "2024-12-31"
    assert date_key_of(moment, "Europe/Madrid") == "2025-01-01"


def test_bare_date_key_maps_to_itself():
    assert date_key_of("2024-06-01", "America/Costa_Rica") == "2024-06-01"
    assert date_key_of(" 2024-06-01 ", "Asia/Tokyo") == "2024-06-01"


def test_unparseable_string_with_date_prefix_trusts_prefix():
    assert date_key_of("2024-06-01 cierre de la tarde", "UTC") == "2024-06-01"


@pytest.mark.parametrize("value, expected", [
    ("0001-01-01T00:00:00Z", "0001-01-01"),
    ("9999-12-31T23:30:00-06:00", "9999-12-31"),
])
def test_date_key_out_of_range_shift_keeps_prefix(value, expected):
    assert date_key_of(value, "America/Costa_Rica") == expected
    assert date_key_of(value, "Asia/Tokyo") == expected


def test_date_key_out_of_range_datetime_keeps_own_date():
    moment = datetime(1, 1, 1, 0, 0, tzinfo=timezone.utc)

    assert date_key_of(moment, "America/Costa_Rica") == "0001-01-01"


@pytest.mark.parametrize("value", ["cierre", "", "06/01/2024"])
def test_unparseable_value_falls_back_to_today(value):
    zone = ZoneInfo("America/Costa_Rica")
    today = datetime.now(zone).strftime("%Y-%m-%d")

    assert date_key_of(value, zone) == today


def test_group_by_date_key_keeps_input_order():
    records = [
        _record("a", "2024-06-01T10:00:00+00:00"),
        _record("b", "2024-06-02T10:00:00+00:00"),
        _record("c", "2024-06-01T08:00:00+00:00"),
    ]

    grouped = group_by_date_key(records, "UTC")

    assert {key: [r.id for r in value] for key, value in grouped.items()} == {
        "2024-06-01": ["a", "c"],
        "2024-06-02": ["b"],
    }
