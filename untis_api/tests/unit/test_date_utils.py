from datetime import date, datetime

import pytest

from untis_api.core.date_utils import (coerce_compact_date, coerce_iso_date,
                                       compact_date_to_date, iso_to_compact_date,
                                       parse_iso_date, parse_untis_datetime,
                                       to_compact_date, to_display_date,
                                       to_iso_date)


def test_to_compact_date_zero_pads():
    assert to_compact_date(date(2025, 1, 5)) == "20250105"


def test_to_iso_date_zero_pads():
    assert to_iso_date(date(2025, 3, 9)) == "2025-03-09"


def test_datetime_uses_local_calendar_date():
    # No timezone conversion: late evening stays on the same calendar day
    assert to_compact_date(datetime(2025, 12, 31, 23, 59)) == "20251231"
    assert to_iso_date(datetime(2025, 12, 31, 23, 59)) == "2025-12-31"


@pytest.mark.parametrize("d", [date(2024, 2, 29), date(2025, 1, 1), date(2025, 12, 31)])
def test_compact_and_iso_round_trip(d):
    assert compact_date_to_date(iso_to_compact_date(to_iso_date(d))) == d
    assert compact_date_to_date(to_compact_date(d)) == d


@pytest.mark.parametrize("value", [20250131, "20250131"])
def test_to_display_date(value):
    assert to_display_date(value) == "31.01.2025"


@pytest.mark.parametrize("value", [None, 0, ""])
def test_to_display_date_falsy_returns_sentinel(value):
    assert to_display_date(value) == "Unknown Date"


@pytest.mark.parametrize("value", ["2025-01-01", "2025011", "abcdefgh", "20251340"])
def test_compact_date_to_date_rejects_malformed(value):
    with pytest.raises(ValueError):
        compact_date_to_date(value)


def test_parse_untis_datetime():
    assert parse_untis_datetime("2025-01-13T08:00") == datetime(2025, 1, 13, 8, 0)
    assert parse_untis_datetime("2025-01-13T08:00:30") == datetime(2025, 1, 13, 8, 0, 30)
    assert parse_untis_datetime(None) is None
    with pytest.raises(ValueError):
        parse_untis_datetime("08:00")


def test_parse_iso_date_ignores_time_part():
    assert parse_iso_date("2025-01-13T00:00") == date(2025, 1, 13)
    assert parse_iso_date("") is None


def test_coerce_helpers_accept_both_encodings():
    assert coerce_compact_date("2025-02-03") == "20250203"
    assert coerce_compact_date("20250203") == "20250203"
    assert coerce_compact_date(date(2025, 2, 3)) == "20250203"
    assert coerce_iso_date("20250203") == "2025-02-03"
    assert coerce_iso_date("2025-02-03") == "2025-02-03"
    assert coerce_iso_date(date(2025, 2, 3)) == "2025-02-03"
