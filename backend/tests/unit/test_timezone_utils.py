from datetime import date, datetime, time

import pytest
import pytz

from app.core.exceptions import ValidationException
from app.core.timezone_utils import (
    day_of_week,
    ensure_utc,
    get_timezone,
    iter_dates,
    local_day_bounds,
    localize_existing,
    parse_wall_clock,
    wall_clock_to_utc,
)

CHICAGO = pytz.timezone("America/Chicago")


def test_day_of_week_is_sunday_first():
    assert day_of_week(date(2026, 10, 18)) == 0  # Sunday
    assert day_of_week(date(2026, 10, 19)) == 1  # Monday
    assert day_of_week(date(2026, 10, 24)) == 6  # Saturday


def test_wall_clock_keeps_local_time_across_dst_change():
    # DST ends in Chicago on 2026-11-01
    before = wall_clock_to_utc(date(2026, 10, 27), time(16, 0), CHICAGO)
    after = wall_clock_to_utc(date(2026, 11, 3), time(16, 0), CHICAGO)

    assert before == datetime(2026, 10, 27, 21, 0, tzinfo=pytz.UTC)
    assert after == datetime(2026, 11, 3, 22, 0, tzinfo=pytz.UTC)
    assert before.astimezone(CHICAGO).hour == after.astimezone(CHICAGO).hour == 16


def test_localize_existing_skips_spring_forward_gap():
    assert localize_existing(datetime(2027, 3, 14, 2, 30), CHICAGO) is None
    after_gap = localize_existing(datetime(2027, 3, 14, 3, 0), CHICAGO)
    assert after_gap.astimezone(pytz.UTC) == datetime(2027, 3, 14, 8, 0, tzinfo=pytz.UTC)


def test_localize_existing_resolves_fall_back_to_standard_time():
    repeated = localize_existing(datetime(2026, 11, 1, 1, 30), CHICAGO)
    assert repeated.astimezone(pytz.UTC) == datetime(2026, 11, 1, 7, 30, tzinfo=pytz.UTC)


def test_ensure_utc_reads_naive_values_in_given_zone():
    result = ensure_utc(datetime(2026, 10, 19, 9, 0), "America/Chicago")
    assert result == datetime(2026, 10, 19, 14, 0, tzinfo=pytz.UTC)


def test_ensure_utc_keeps_aware_instant():
    aware = CHICAGO.localize(datetime(2026, 10, 19, 9, 0))
    assert ensure_utc(aware, "Asia/Tokyo") == datetime(2026, 10, 19, 14, 0, tzinfo=pytz.UTC)


def test_local_day_bounds_cover_whole_local_days():
    start, end = local_day_bounds(date(2026, 10, 19), date(2026, 10, 20), CHICAGO)
    assert start == datetime(2026, 10, 19, 5, 0, tzinfo=pytz.UTC)
    assert end == datetime(2026, 10, 21, 5, 0, tzinfo=pytz.UTC)


def test_iter_dates_is_inclusive():
    days = list(iter_dates(date(2026, 10, 30), date(2026, 11, 2)))
    assert days == [date(2026, 10, 30), date(2026, 10, 31), date(2026, 11, 1), date(2026, 11, 2)]


def test_parse_wall_clock_rejects_bad_format():
    assert parse_wall_clock("09:30") == time(9, 30)
    with pytest.raises(ValidationException, match="HH:MM"):
        parse_wall_clock("9.30am")


def test_unknown_timezone_is_a_validation_error():
    with pytest.raises(ValidationException, match="Unknown timezone"):
        get_timezone("Mars/Olympus_Mons")
