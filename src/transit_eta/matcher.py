import math
from typing import Iterable, Optional, Tuple

from .config import Settings
from .domain import LineKey, RouteType, VehicleObservation
from .geo import distance_meters


def max_distance_for(route_type: Optional[RouteType], settings: Settings) -> Optional[float]:
    """Matching radius per mode; trams get the tighter one, unknown modes are never matched."""
    if route_type is RouteType.TRAM:
        return settings.tram_max_distance_m
    if route_type is RouteType.BUS:
        return settings.bus_max_distance_m
    return None


def find_closest(
    positions: Iterable[VehicleObservation],
    line: str,
    stop_lat: float,
    stop_lon: float,
    max_distance_m: float,
) -> Optional[Tuple[VehicleObservation, float]]:
    """Nearest vehicle of the same line strictly inside max_distance_m, with its distance."""
    key = LineKey.of(line)
    if not key:
        return None

    best: Optional[Tuple[VehicleObservation, float]] = None
    for obs in positions:
        if obs.line_key != key:
            continue
        d = distance_meters(stop_lat, stop_lon, obs.latitude, obs.longitude)
        if not math.isfinite(d) or d >= max_distance_m:
            continue
        if best is None or d < best[1]:
            best = (obs, d)
    return best
