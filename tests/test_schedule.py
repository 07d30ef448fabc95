from datetime import timedelta

import pytest

from transit_eta.domain import RouteType, ScheduledDeparture
from transit_eta.fusion import scheduled_eta_minutes
from transit_eta.schedule import (
    MalformedScheduleEntry,
    next_occurrence,
    parse_time_of_day,
    select_upcoming,
)


def _dep(trip_id, at):
    return ScheduledDeparture(trip_id, "R33", "33", RouteType.TRAM, "Sepolno", "S100", at)


def test_parse_time_of_day():
    assert parse_time_of_day("08:05:30") == 8 * 3600 + 5 * 60 + 30
    assert parse_time_of_day(" 8:05 ") == 8 * 3600 + 5 * 60


def test_after_midnight_hours_are_kept():
    assert parse_time_of_day("25:10:00") == 25 * 3600 + 10 * 60


def test_after_midnight_time_runs_tomorrow(now):
    just_after_midnight = now.replace(hour=0, minute=10)
    ((_, at),) = select_upcoming([_dep("owl", "24:30:00")], just_after_midnight)

    assert at == just_after_midnight + timedelta(hours=24, minutes=20)
    assert scheduled_eta_minutes(at, just_after_midnight) == 1460


def test_after_midnight_time_late_in_the_evening(now):
    evening = now.replace(hour=23, minute=50)
    at = next_occurrence(parse_time_of_day("24:05:00"), evening, timedelta(minutes=5))
    assert at == evening + timedelta(minutes=15)


@pytest.mark.parametrize("value", ["", "noon", "12:61:00", "12:00:00:00", "-1:00:00"])
def test_malformed_times(value):
    with pytest.raises(MalformedScheduleEntry):
        parse_time_of_day(value)


def test_next_occurrence_keeps_recent_past_today(now):
    grace = timedelta(minutes=5)
    assert next_occurrence(parse_time_of_day("11:57:00"), now, grace) == now - timedelta(minutes=3)
    assert next_occurrence(parse_time_of_day("11:50:00"), now, grace) == now + timedelta(hours=23, minutes=50)


def test_select_upcoming_sorts_and_caps(now):
    deps = [_dep("late", "13:00:00"), _dep("soon", "12:01:00"), _dep("just-gone", "11:56:00"), _dep("mid", "12:30:00")]
    upcoming = select_upcoming(deps, now, grace_min=5, limit=3)
    assert [d.trip_id for d, _ in upcoming] == ["just-gone", "soon", "mid"]


def test_select_upcoming_skips_malformed_entries(now, caplog):
    deps = [_dep("bad", "xx:yy"), _dep("good", "12:10:00")]
    with caplog.at_level("WARNING"):
        upcoming = select_upcoming(deps, now)
    assert [d.trip_id for d, _ in upcoming] == ["good"]
    assert "bad" in caplog.text
