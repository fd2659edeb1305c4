from datetime import date, datetime, timedelta
from zoneinfo import ZoneInfo

import pytest

from order_scraper.common.date_utils import order_age_days, parse_date_input, parse_duration

REFERENCE = datetime(2024, 5, 15, 12, 0, tzinfo=ZoneInfo("America/Los_Angeles"))


@pytest.mark.parametrize(
    "value, expected",
    [
        ("2 weeks", timedelta(weeks=2)),
        ("3d", timedelta(days=3)),
        ("1.5 hours", timedelta(hours=1.5)),
        ("-3 days", timedelta(days=-3)),
        ("45 MIN", timedelta(minutes=45)),
    ],
)
def test_parse_duration(value, expected):
    assert parse_duration(value) == expected


def test_parse_duration_rejects_other_text():
    assert parse_duration("2024-01-01") is None
    assert parse_duration("soon") is None


def test_parse_date_input_counts_durations_back_from_reference():
    assert parse_date_input("2 weeks", REFERENCE) == REFERENCE - timedelta(weeks=2)


def test_parse_date_input_accepts_iso_dates_in_reference_timezone():
    parsed = parse_date_input("2023-12-01", REFERENCE)

    assert parsed.date() == date(2023, 12, 1)
    assert parsed.tzinfo == REFERENCE.tzinfo


def test_parse_date_input_rejects_other_formats():
    with pytest.raises(ValueError):
        parse_date_input("Dec 1 2023", REFERENCE)


def test_order_age_days():
    assert order_age_days("2024-04-15", date(2024, 5, 15)) == 30
    assert order_age_days(date(2024, 5, 15), date(2024, 5, 15)) == 0
