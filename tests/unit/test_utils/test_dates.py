"""Tests for timezone aware timestamp helpers."""

from datetime import date, time

import pytest

from src.utils.dates import (
    date_parts,
    end_of_day_ms,
    from_local,
    get_timezone,
    hh_mm,
    is_valid_timezone,
    local_dates_between,
    month_year_key,
    now_ms,
    parse_hh_mm,
    start_of_day_ms,
)
from tests.utils.factories import BASE_TIMESTAMP

IST = "Asia/Kolkata"
HOUR = 60 * 60 * 1000


@pytest.mark.unit
def test_now_ms(freeze_time_fixture):
    assert now_ms() == BASE_TIMESTAMP


@pytest.mark.unit
def test_invalid_timezone_falls_back_to_default():
    assert is_valid_timezone("Asia/Kolkata")
    assert not is_valid_timezone("Mars/Olympus")
    assert not is_valid_timezone(None)
    assert get_timezone("Mars/Olympus").zone == "Asia/Kolkata"


@pytest.mark.unit
def test_local_parts_of_a_timestamp():
    """2025-10-15 05:00 UTC is 10:30 in India."""
    assert hh_mm(BASE_TIMESTAMP, IST) == "10:30"
    assert hh_mm(BASE_TIMESTAMP, "UTC") == "05:00"
    assert date_parts(BASE_TIMESTAMP, IST) == {"date": 15, "month": 10, "year": 2025}
    assert month_year_key(BASE_TIMESTAMP, IST) == "10-2025"


@pytest.mark.unit
def test_day_boundaries_follow_the_timezone():
    start = start_of_day_ms(BASE_TIMESTAMP, IST)
    end = end_of_day_ms(BASE_TIMESTAMP, IST)

    assert start == from_local(date(2025, 10, 15), time.min, IST)
    assert hh_mm(start, IST) == "00:00"
    assert hh_mm(end, IST) == "23:59"
    assert end - start == 24 * HOUR - 1


@pytest.mark.unit
def test_local_dates_between_is_inclusive():
    days = local_dates_between(BASE_TIMESTAMP, BASE_TIMESTAMP + 48 * HOUR, IST)

    assert days == [date(2025, 10, 15), date(2025, 10, 16), date(2025, 10, 17)]
    assert local_dates_between(BASE_TIMESTAMP, BASE_TIMESTAMP, IST) == [date(2025, 10, 15)]


@pytest.mark.unit
def test_parse_hh_mm():
    assert parse_hh_mm("09:45") == time(9, 45)
    assert parse_hh_mm("nine") is None
    assert parse_hh_mm(None) is None
