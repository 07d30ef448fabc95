import logging
from datetime import datetime, timedelta
from typing import Iterable, List, Tuple

from .domain import ScheduledDeparture

logger = logging.getLogger(__name__)

SECONDS_PER_DAY = 24 * 3600


class MalformedScheduleEntry(ValueError):
    """A stop_times arrival value that is not a HH:MM[:SS] time of day."""


def parse_time_of_day(value: str) -> int:
    """
    Seconds after midnight for a GTFS time string.

    GTFS allows hours past 24 for trips of today's service that run after
    midnight ("25:10:00" is 01:10 tomorrow); the value is kept as is.
    """
    try:
        parts = [int(p) for p in str(value).strip().split(":")]
    except ValueError:
        raise MalformedScheduleEntry(f"unparseable time of day: {value!r}") from None
    if len(parts) == 2:
        parts.append(0)
    if len(parts) != 3:
        raise MalformedScheduleEntry(f"unparseable time of day: {value!r}")
    h, m, s = parts
    if h < 0 or not 0 <= m < 60 or not 0 <= s < 60:
        raise MalformedScheduleEntry(f"time of day out of range: {value!r}")
    return h * 3600 + m * 60 + s


def next_occurrence(seconds_of_day: int, now: datetime, grace: timedelta) -> datetime:
    """
    Today's occurrence unless it is more than `grace` in the past, else tomorrow's.

    Times past 24:00 already belong to tomorrow and are never rolled.
    """
    midnight = now.replace(hour=0, minute=0, second=0, microsecond=0)
    at = midnight + timedelta(seconds=seconds_of_day)
    if seconds_of_day < SECONDS_PER_DAY and at < now - grace:
        at += timedelta(days=1)
    return at


def select_upcoming(
    departures: Iterable[ScheduledDeparture],
    now: datetime,
    grace_min: int = 5,
    limit: int = 20,
) -> List[Tuple[ScheduledDeparture, datetime]]:
    """The `limit` nearest departures, each paired with its next absolute arrival time."""
    grace = timedelta(minutes=grace_min)
    window_start = now - grace
    upcoming: List[Tuple[ScheduledDeparture, datetime]] = []
    for dep in departures:
        try:
            seconds = parse_time_of_day(dep.arrival_time)
        except MalformedScheduleEntry as e:
            logger.warning("Skipping trip %s at stop %s: %s", dep.trip_id, dep.stop_id, e)
            continue
        at = next_occurrence(seconds, now, grace)
        if at >= window_start:
            upcoming.append((dep, at))

    upcoming.sort(key=lambda pair: pair[1])
    return upcoming[:limit]
