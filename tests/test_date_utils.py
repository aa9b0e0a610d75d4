from datetime import date, datetime, timedelta

import pytest

from app.issuetracker.date_utils import (
    add_business_days,
    default_due_date,
    is_not_past_date,
    parse_datetime,
    start_of_day,
)

FRIDAY = datetime(2026, 10, 16, 9, 30)


def test_add_business_days_skips_weekend():
    assert add_business_days(1, FRIDAY) == datetime(2026, 10, 19, 9, 30)
    assert add_business_days(5, FRIDAY) == datetime(2026, 10, 23, 9, 30)
    assert add_business_days(0, FRIDAY) == FRIDAY


def test_add_business_days_from_saturday():
    saturday = datetime(2026, 10, 17, 12, 0)
    assert add_business_days(1, saturday) == datetime(2026, 10, 19, 12, 0)


def test_default_due_date_is_ten_business_days():
    assert default_due_date(FRIDAY) == datetime(2026, 10, 30, 9, 30)
    due = default_due_date()
    assert due > datetime.now() - timedelta(days=1)
    assert due.weekday() < 5


def test_is_not_past_date():
    now = datetime(2026, 10, 18, 15, 0)
    assert is_not_past_date(datetime(2026, 10, 18, 0, 0), now)
    assert is_not_past_date(date(2026, 10, 18), now)
    assert is_not_past_date(datetime(2026, 11, 1), now)
    assert not is_not_past_date(datetime(2026, 10, 17, 23, 59), now)


def test_start_of_day():
    assert start_of_day(datetime(2026, 10, 18, 15, 45, 10)) == datetime(2026, 10, 18)


def test_parse_datetime_variants():
    assert parse_datetime(None) is None
    assert parse_datetime("") is None
    assert parse_datetime("2026-10-20") == datetime(2026, 10, 20)
    assert parse_datetime("2026-10-20T10:15:00") == datetime(2026, 10, 20, 10, 15)
    assert parse_datetime("2026-10-20T10:15:00Z") == datetime(2026, 10, 20, 10, 15)
    assert parse_datetime("2026-10-20T12:15:00+02:00") == datetime(2026, 10, 20, 10, 15)


def test_parse_datetime_rejects_garbage():
    with pytest.raises(ValueError):
        parse_datetime("next tuesday")


def test_parse_datetime_out_of_range_offset_is_value_error():
    with pytest.raises(ValueError):
        parse_datetime("9999-12-31T23:00:00-05:00")
    with pytest.raises(ValueError):
        parse_datetime("0001-01-01T00:30:00+01:00")
    assert parse_datetime("   ") is None
