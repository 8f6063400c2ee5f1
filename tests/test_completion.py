from datetime import date, datetime, time

import pytest

from squadstats.derive import is_eligible, parse_end_time


NOW = datetime(2024, 5, 10, 15, 0)


def test_past_days_are_eligible():
    assert is_eligible(date(2024, 5, 9), None, NOW)
    assert is_eligible(date(2023, 1, 1), "23:59", NOW)


def test_future_days_are_not_eligible():
    assert not is_eligible(date(2024, 5, 11), "00:01", NOW)


def test_today_without_end_time_is_not_eligible():
    assert not is_eligible(date(2024, 5, 10), None, NOW)
    assert not is_eligible(date(2024, 5, 10), "", NOW)


@pytest.mark.parametrize(
    ("end_time", "expected"),
    [("14:30", True), ("14:30:00", True), ("15:00", False), ("15:30", False)],
)
def test_today_depends_on_end_time(end_time, expected):
    assert is_eligible(date(2024, 5, 10), end_time, NOW) is expected


def test_unparsable_end_time_counts_as_missing(caplog):
    caplog.set_level("WARNING")
    assert not is_eligible(date(2024, 5, 10), "after lunch", NOW)
    assert "unparsable" in caplog.text


def test_datetime_event_date_uses_its_day():
    assert is_eligible(datetime(2024, 5, 9, 20, 0), None, NOW)


def test_parse_end_time():
    assert parse_end_time("09:05") == time(9, 5)
    assert parse_end_time("21:15:30") == time(21, 15, 30)
    assert parse_end_time("  ") is None
    assert parse_end_time(None) is None
