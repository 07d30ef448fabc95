import math
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional

from transit_eta.domain import Route, Stop, StopTime, Trip
from transit_eta.models import StopInfo

METERS_PER_DEGREE_LAT = 6_371_000.0 * math.pi / 180.0

STOP = Stop(stop_id="S100", stop_code="100", name="Rynek", lat=51.1100, lon=17.0320)
NOW = datetime(2026, 10, 17, 12, 0, 0, tzinfo=timezone.utc)

def north_of(lat: float, lon: float, meters: float):
    """A point `meters` due north; haversine distance back to (lat, lon) is exactly `meters`."""
    return lat + meters / METERS_PER_DEGREE_LAT, lon

class FakeTimetable:
    def __init__(self, stops=(), stop_times=(), trips=(), routes=()):
        self.stops = {s.stop_code: s for s in stops}
        self.stop_times = list(stop_times)
        self.trips = {t.trip_id: t for t in trips}
        self.routes = {r.route_id: r for r in routes}
        self.fail_departures = False
        self.fail_stop = False
        self.trip_lookups = 0
        self.route_lookups = 0

    async def get_stop(self, stop_code: str) -> Optional[Stop]:
        if self.fail_stop:
            raise RuntimeError("timetable exploded")
        return self.stops.get(stop_code)

    async def get_stops(self, stop_id: Optional[str] = None) -> List[StopInfo]:
        return [
            StopInfo(stop_id=s.stop_id, stop_code=s.stop_code, stop_name=s.name, latitude=s.lat, longitude=s.lon)
            for s in self.stops.values()
            if stop_id is None or s.stop_id == stop_id
        ]

    async def get_active_scheduled_departures(self, stop_id: str) -> List[StopTime]:
        if self.fail_departures:
            raise RuntimeError("stop_times unavailable")
        return [st for st in self.stop_times if st.stop_id == stop_id]

    async def get_trip(self, trip_id: str) -> Optional[Trip]:
        return self.trips.get(trip_id)

    async def get_trips(self, trip_ids: Iterable[str]) -> Dict[str, Trip]:
        self.trip_lookups += 1
        return {t: self.trips[t] for t in trip_ids if t in self.trips}

    async def get_route(self, route_id: str) -> Optional[Route]:
        return self.routes.get(route_id)

    async def get_routes(self, route_ids: Iterable[str]) -> Dict[str, Route]:
        self.route_lookups += 1
        return {r: self.routes[r] for r in route_ids if r in self.routes}

    def stop_count(self) -> int:
        return len(self.stops)

class FakePositions:
    def __init__(self, observations=(), error: Optional[Exception] = None):
        self.observations = list(observations)
        self.error = error
        self.calls = []

    async def get_positions_for_lines(self, lines, mode):
        lines = list(lines)
        self.calls.append((mode, lines))
        if self.error is not None:
            raise self.error
        wanted = {l.casefold() for l in lines}
        return [o for o in self.observations if o.line.casefold() in wanted]

