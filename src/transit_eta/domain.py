from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum, IntEnum
from typing import Optional

from .models import ArrivalsResponse


class RouteType(IntEnum):
    """GTFS route_type values the engine knows how to match."""
    TRAM = 0
    BUS = 3

    @property
    def mode(self) -> str:
        return self.name.lower()

    @classmethod
    def from_gtfs(cls, value) -> Optional["RouteType"]:
        try:
            return cls(int(value))
        except (TypeError, ValueError):
            return None


@dataclass(frozen=True)
class LineKey:
    """Normalized line identity: '  a ' and 'A' are the same line."""
    value: str

    @classmethod
    def of(cls, line: Optional[str]) -> "LineKey":
        return cls((line or "").strip().casefold())

    def __bool__(self) -> bool:
        return bool(self.value)


@dataclass(frozen=True)
class Stop:
    stop_id: str
    stop_code: str
    name: str
    lat: float
    lon: float


@dataclass(frozen=True)
class Route:
    route_id: str
    short_name: str
    long_name: str
    route_type: int


@dataclass(frozen=True)
class Trip:
    trip_id: str
    route_id: str
    service_id: str
    headsign: Optional[str] = None


@dataclass(frozen=True)
class StopTime:
    trip_id: str
    stop_id: str
    arrival_time: str


@dataclass(frozen=True)
class ScheduledDeparture:
    trip_id: str
    route_id: str
    line: str
    route_type: Optional[RouteType]
    headsign: str
    stop_id: str
    arrival_time: str


@dataclass(frozen=True)
class VehicleObservation:
    vehicle_id: str
    line: str
    latitude: float
    longitude: float
    observed_at: datetime

    @property
    def line_key(self) -> LineKey:
        return LineKey.of(self.line)


@dataclass(frozen=True)
class UpstreamUnavailable:
    """A live-position fetch that failed or timed out; the mode runs schedule-only."""
    mode: str
    reason: str


class Outcome(str, Enum):
    OK = "ok"
    STOP_NOT_FOUND = "stop_not_found"
    FAILED = "failed"


@dataclass(frozen=True)
class ArrivalsResult:
    outcome: Outcome
    stop_code: str
    response: Optional[ArrivalsResponse] = None
    error: Optional[str] = None

    @classmethod
    def ok(cls, response: ArrivalsResponse) -> "ArrivalsResult":
        return cls(Outcome.OK, response.stop_code, response=response)

    @classmethod
    def not_found(cls, stop_code: str) -> "ArrivalsResult":
        return cls(Outcome.STOP_NOT_FOUND, stop_code)

    @classmethod
    def failed(cls, stop_code: str, error: str) -> "ArrivalsResult":
        return cls(Outcome.FAILED, stop_code, error=error)

    @property
    def is_ok(self) -> bool:
        return self.outcome is Outcome.OK
