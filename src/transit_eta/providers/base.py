from typing import Dict, Iterable, List, Optional, Protocol

from ..domain import Route, Stop, StopTime, Trip, VehicleObservation
from ..models import StopInfo


class UpstreamError(RuntimeError):
    """An upstream data source failed or returned something unusable."""


class TimetableProvider(Protocol):
    async def get_stop(self, stop_code: str) -> Optional[Stop]:
        ...

    async def get_stops(self, stop_id: Optional[str] = None) -> List[StopInfo]:
        ...

    async def get_active_scheduled_departures(self, stop_id: str) -> List[StopTime]:
        ...

    async def get_trip(self, trip_id: str) -> Optional[Trip]:
        ...

    async def get_trips(self, trip_ids: Iterable[str]) -> Dict[str, Trip]:
        ...

    async def get_route(self, route_id: str) -> Optional[Route]:
        ...

    async def get_routes(self, route_ids: Iterable[str]) -> Dict[str, Route]:
        ...

    def stop_count(self) -> int:
        ...


class PositionProvider(Protocol):
    async def get_positions_for_lines(self, lines: Iterable[str], mode: str) -> List[VehicleObservation]:
        ...
