from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo

import pytest

from availability import is_store_operating_now, parse_hhmm, resolve_timezone
from schemas import StoreSettings

KOLKATA = ZoneInfo("Asia/Kolkata")


def store(**schedule):
    return StoreSettings(owner_id="owner-1", is_live=False, schedule=schedule)


MONDAY_SHIFT = dict(enabled=True, days=[1], start_time="09:00", end_time="18:00", timezone="Asia/Kolkata")


@pytest.mark.parametrize("day,hour,minute,expected", [
    (17, 8, 59, False),
    (17, 9, 0, True),
    (17, 17, 59, True),
    (17, 18, 0, False),
    (18, 10, 0, False),  # Tuesday
])
def test_schedule_boundaries(day, hour, minute, expected):
    now = datetime(2025, 11, day, hour, minute, tzinfo=KOLKATA)
    assert is_store_operating_now(store(**MONDAY_SHIFT), now) is expected


def test_schedule_is_evaluated_in_store_timezone():
    # 03:30 UTC Monday is 09:00 in Kolkata
    now = datetime(2025, 11, 17, 3, 30, tzinfo=timezone.utc)
    assert is_store_operating_now(store(**MONDAY_SHIFT), now) is True


def test_naive_clock_is_treated_as_utc():
    assert is_store_operating_now(store(**MONDAY_SHIFT), datetime(2025, 11, 17, 3, 29)) is False
    assert is_store_operating_now(store(**MONDAY_SHIFT), datetime(2025, 11, 17, 3, 30)) is True


def test_sunday_is_day_zero():
    sunday = dict(MONDAY_SHIFT, days=[0])
    assert is_store_operating_now(store(**sunday), datetime(2025, 11, 16, 10, 0, tzinfo=KOLKATA)) is True


def test_disabled_schedule_follows_live_flag():
    now = datetime(2025, 11, 17, 3, 0, tzinfo=KOLKATA)
    live = StoreSettings(owner_id="o", is_live=True, schedule=dict(MONDAY_SHIFT, enabled=False))
    offline = StoreSettings(owner_id="o", is_live=False, schedule=dict(MONDAY_SHIFT, enabled=False))

    assert is_store_operating_now(live, now) is True
    assert is_store_operating_now(offline, now) is False


@pytest.mark.parametrize("override", [
    {"days": []},
    {"days": None},
    {"start_time": None},
    {"end_time": ""},
    {"start_time": "nine"},
])
def test_incomplete_schedule_is_closed(override):
    now = datetime(2025, 11, 17, 10, 0, tzinfo=KOLKATA)
    settings = StoreSettings(owner_id="o", is_live=True, schedule=dict(MONDAY_SHIFT, **override))
    assert is_store_operating_now(settings, now) is False


def test_days_stored_as_json_text():
    settings = store(**dict(MONDAY_SHIFT, days="[1, 2]", start_time="09:00:00"))

    assert settings.schedule.days == [1, 2]
    assert settings.schedule.start_time == "09:00"
    assert is_store_operating_now(settings, datetime(2025, 11, 18, 10, 0, tzinfo=KOLKATA)) is True


def test_unknown_timezone_uses_fallback_offset():
    settings = store(**dict(MONDAY_SHIFT, timezone="Mars/Olympus"))
    # 03:30 UTC + 05:30 = 09:00
    assert is_store_operating_now(settings, datetime(2025, 11, 17, 3, 30, tzinfo=timezone.utc)) is True
    # With a zero offset the same instant is 03:30 local
    assert is_store_operating_now(
        settings, datetime(2025, 11, 17, 3, 30, tzinfo=timezone.utc), fallback_offset=timedelta(0)
    ) is False


def test_resolve_timezone():
    assert resolve_timezone("Asia/Kolkata") == KOLKATA
    assert resolve_timezone(None, timedelta(hours=1)) == timezone(timedelta(hours=1))


@pytest.mark.parametrize("value,expected", [
    ("09:00", 540),
    ("00:00", 0),
    ("18:30", 1110),
    ("7:5", 425),
    ("25:00", None),
    ("12:75", None),
    ("noon", None),
    (None, None),
])
def test_parse_hhmm(value, expected):
    assert parse_hhmm(value) == expected


@pytest.mark.parametrize("days", ['"5"', "5", ["1", "x"], [1, None], {"day": 1}, "[1, "])
def test_unreadable_days_mean_closed(days):
    settings = store(**dict(MONDAY_SHIFT, days=days))

    assert settings.schedule.days is None
    assert is_store_operating_now(settings, datetime(2025, 11, 17, 10, 0, tzinfo=KOLKATA)) is False
