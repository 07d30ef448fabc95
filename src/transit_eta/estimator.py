"""
Arrival estimation for a single stop.

Pulls the stop's scheduled departures for today, picks the nearest ones,
fetches live positions for the lines involved and lets each departure be
overridden by a real-time ETA when a matching vehicle is plainly on its way.
Anything that goes wrong upstream only costs real-time quality: the
schedule-only answer is always available.
"""
import asyncio
import logging
from datetime import datetime
from typing import Callable, Dict, List, Optional, Tuple
from zoneinfo import ZoneInfo

from .approach import ApproachDetector
from .config import Settings
from .domain import (
    ArrivalsResult,
    RouteType,
    ScheduledDeparture,
    Stop,
    UpstreamUnavailable,
    VehicleObservation,
)
from .fusion import FusionPolicy, scheduled_eta_minutes
from .history import PositionHistoryCache
from .matcher import find_closest, max_distance_for
from .models import ArrivalInfo, ArrivalsResponse
from .providers.base import PositionProvider, TimetableProvider
from .schedule import select_upcoming

logger = logging.getLogger(__name__)

UNKNOWN_DIRECTION = "Unknown Direction"


class ArrivalEstimator:
    def __init__(
        self,
        timetable: TimetableProvider,
        positions: PositionProvider,
        history: PositionHistoryCache,
        settings: Settings,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.timetable = timetable
        self.positions = positions
        self.history = history
        self.settings = settings
        self.approach = ApproachDetector(history, settings)
        self.fusion = FusionPolicy(settings)
        tz = ZoneInfo(settings.timezone)
        self.clock = clock or (lambda: datetime.now(tz))

    async def get_arrivals(self, stop_code: str, count: int = 3) -> ArrivalsResult:
        try:
            return await self._get_arrivals(stop_code, count)
        except Exception as e:
            logger.exception("Failed to get arrivals for stop %s", stop_code)
            return ArrivalsResult.failed(stop_code, str(e) or e.__class__.__name__)

    async def _get_arrivals(self, stop_code: str, count: int) -> ArrivalsResult:
        s = self.settings
        count = count if count > 0 else s.default_count
        logger.info("Getting arrivals for stop %s (count=%d)", stop_code, count)

        stop = await self.timetable.get_stop(stop_code)
        if stop is None:
            logger.warning("Stop not found: %s", stop_code)
            return ArrivalsResult.not_found(stop_code)

        now = self.clock()
        departures = await self._scheduled_departures(stop)
        upcoming = select_upcoming(departures, now, s.grace_min, s.candidate_limit)
        logger.info(
            "Stop %s (%s): %d active departures, %d in window",
            stop_code, stop.stop_id, len(departures), len(upcoming),
        )

        tram_lines = _lines_of(upcoming, RouteType.TRAM)
        bus_lines = _lines_of(upcoming, RouteType.BUS)
        (tram, tram_err), (bus, bus_err) = await asyncio.gather(
            self._fetch_positions(tram_lines, RouteType.TRAM),
            self._fetch_positions(bus_lines, RouteType.BUS),
        )
        positions: Dict[RouteType, List[VehicleObservation]] = {RouteType.TRAM: tram, RouteType.BUS: bus}
        if tram_err is None and bus_err is None:
            logger.info("Retrieved %d tram and %d bus positions", len(tram), len(bus))

        for obs in tram + bus:
            self.history.record(obs)

        arrivals = [self._estimate(stop, dep, at, positions, now) for dep, at in upcoming]
        arrivals = _deduplicate(arrivals)
        arrivals.sort(key=lambda a: a.eta_min)
        arrivals = arrivals[:count]

        logger.info("Returning %d arrivals for stop %s", len(arrivals), stop_code)
        return ArrivalsResult.ok(
            ArrivalsResponse(stop_code=stop.stop_code, stop_name=stop.name, arrivals=arrivals)
        )

    async def _scheduled_departures(self, stop: Stop) -> List[ScheduledDeparture]:
        """Today's departures joined with their trip and route, in two batched lookups."""
        try:
            stop_times = await self.timetable.get_active_scheduled_departures(stop.stop_id)
            trips = await self.timetable.get_trips({st.trip_id for st in stop_times})
            routes = await self.timetable.get_routes({t.route_id for t in trips.values()})
        except Exception as e:
            logger.warning("Timetable lookup failed for stop %s, no departures: %s", stop.stop_code, e)
            return []

        departures: List[ScheduledDeparture] = []
        for st in stop_times:
            trip = trips.get(st.trip_id)
            if trip is None:
                continue
            route = routes.get(trip.route_id)
            if route is None:
                continue
            departures.append(
                ScheduledDeparture(
                    trip_id=trip.trip_id,
                    route_id=route.route_id,
                    line=route.short_name,
                    route_type=RouteType.from_gtfs(route.route_type),
                    headsign=trip.headsign or UNKNOWN_DIRECTION,
                    stop_id=st.stop_id,
                    arrival_time=st.arrival_time,
                )
            )
        return departures

    async def _fetch_positions(
        self, lines: List[str], route_type: RouteType
    ) -> Tuple[List[VehicleObservation], Optional[UpstreamUnavailable]]:
        if not lines:
            return [], None
        try:
            return await self.positions.get_positions_for_lines(lines, route_type.mode), None
        except Exception as e:
            unavailable = UpstreamUnavailable(mode=route_type.mode, reason=str(e) or e.__class__.__name__)
            logger.warning(
                "Failed to retrieve %s positions, using schedule-only data: %s",
                unavailable.mode, unavailable.reason,
            )
            return [], unavailable

    def _estimate(
        self,
        stop: Stop,
        dep: ScheduledDeparture,
        at: datetime,
        positions: Dict[RouteType, List[VehicleObservation]],
        now: datetime,
    ) -> ArrivalInfo:
        scheduled_eta = scheduled_eta_minutes(at, now)
        decision = self.fusion.schedule_only(scheduled_eta)

        radius = max_distance_for(dep.route_type, self.settings)
        if radius is not None:
            match = find_closest(positions.get(dep.route_type, []), dep.line, stop.lat, stop.lon, radius)
            if match is not None:
                vehicle, distance = match
                if self.approach.is_approaching(vehicle.vehicle_id, vehicle, stop.lat, stop.lon, now):
                    decision = self.fusion.fuse(scheduled_eta, distance)

        return ArrivalInfo(
            line=dep.line,
            direction=dep.headsign,
            eta_min=decision.eta_min,
            is_real_time=decision.is_real_time,
            delay_min=decision.delay_min,
            scheduled_departure=dep.arrival_time,
            stop_code=stop.stop_code,
        )


def _lines_of(upcoming: List[Tuple[ScheduledDeparture, datetime]], route_type: RouteType) -> List[str]:
    seen, lines = set(), []
    for dep, _ in upcoming:
        if dep.route_type is route_type and dep.line and dep.line not in seen:
            seen.add(dep.line)
            lines.append(dep.line)
    return lines


def _deduplicate(arrivals: List[ArrivalInfo]) -> List[ArrivalInfo]:
    seen, out = set(), []
    for a in arrivals:
        key = (a.line, a.direction, a.scheduled_departure)
        if key in seen:
            continue
        seen.add(key)
        out.append(a)
    return out
