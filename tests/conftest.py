import pytest

from transit_eta.config import Settings
from transit_eta.domain import Route, StopTime, Trip, VehicleObservation
from transit_eta.history import PositionHistoryCache

from fakes import NOW, STOP, FakeTimetable, north_of


@pytest.fixture
def settings():
    return Settings(timezone="UTC")


@pytest.fixture
def history():
    return PositionHistoryCache(capacity=100, max_age_s=600)


@pytest.fixture
def stop():
    return STOP


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def observe(stop):
    """Build an observation `meters` north of the test stop."""
    def build(vehicle_id="V1", meters=500.0, at=NOW, line="33"):
        lat, lon = north_of(stop.lat, stop.lon, meters)
        return VehicleObservation(vehicle_id=vehicle_id, line=line, latitude=lat, longitude=lon, observed_at=at)
    return build


@pytest.fixture
def timetable():
    routes = [
        Route("R33", "33", "Pilczyce - Sepolno", 0),
        Route("RA", "A", "Kowale - Karlowice", 3),
        Route("RF", "F", "Ferry", 4),
    ]
    trips = [
        Trip("T1", "R33", "SAT", "Sepolno"),
        Trip("T2", "R33", "SAT", "Sepolno"),
        Trip("T3", "RA", "SAT", "Karlowice"),
        Trip("T4", "R33", "SAT", None),
        Trip("T5", "RF", "SAT", "Wyspa"),
    ]
    stop_times = [
        StopTime("T1", "S100", "12:04:30"),
        StopTime("T2", "S100", "12:10:00"),
        StopTime("T3", "S100", "11:58:00"),
        StopTime("T4", "S100", "11:50:00"),
        StopTime("T5", "S100", "12:20:00"),
    ]
    return FakeTimetable(stops=[STOP], stop_times=stop_times, trips=trips, routes=routes)
