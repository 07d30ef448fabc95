# src/transit_eta/providers/gtfs.py
"""
Static timetable backed by a GTFS feed.

The whole feed is loaded into pandas frames once; lookups afterwards are
in-memory. Service activation follows calendar.txt (weekday flags plus the
start/end date range) and calendar_dates.txt exceptions for "today" in the
configured timezone.
"""
import io
import logging
import os
import zipfile
from datetime import date, datetime
from typing import Callable, Dict, Iterable, List, Optional, Set
from zoneinfo import ZoneInfo

import httpx
import pandas as pd

from ..domain import Route, Stop, StopTime, Trip
from ..models import StopInfo
from .base import UpstreamError

logger = logging.getLogger(__name__)

GTFS_FILES = ("stops", "routes", "trips", "stop_times", "calendar", "calendar_dates")
WEEKDAYS = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")


def _read_tables(path: str) -> Dict[str, pd.DataFrame]:
    """Read the GTFS tables from a directory or a .zip; identifiers stay strings."""
    tables: Dict[str, pd.DataFrame] = {}
    if zipfile.is_zipfile(path):
        with zipfile.ZipFile(path) as zf:
            names = {os.path.basename(n): n for n in zf.namelist()}
            for name in GTFS_FILES:
                member = names.get(f"{name}.txt")
                if member is None:
                    continue
                with zf.open(member) as fh:
                    tables[name] = pd.read_csv(fh, dtype=str, keep_default_na=False, encoding="utf-8-sig")
    else:
        for name in GTFS_FILES:
            fp = os.path.join(path, f"{name}.txt")
            if os.path.exists(fp):
                tables[name] = pd.read_csv(fp, dtype=str, keep_default_na=False, encoding="utf-8-sig")

    for name in ("stops", "routes", "trips", "stop_times"):
        if name not in tables:
            logger.warning("GTFS file not found: %s.txt in %s", name, path)
            tables[name] = pd.DataFrame()
    return tables


def _col(df: pd.DataFrame, name: str) -> pd.Series:
    if name in df.columns:
        return df[name].astype(str).str.strip()
    return pd.Series([""] * len(df), index=df.index, dtype=str)


def _to_float(value: str) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return float("nan")


def _to_int(value: str, default: Optional[int] = None) -> Optional[int]:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


class GtfsTimetable:
    def __init__(self, path: str, timezone: str = "Europe/Warsaw", clock: Optional[Callable[[], datetime]] = None):
        self.path = path
        tz = ZoneInfo(timezone)
        self.clock = clock or (lambda: datetime.now(tz))
        self._load(_read_tables(path))

    @classmethod
    def download(cls, url: str, dest: str, timeout_s: float = 120.0, **kwargs) -> "GtfsTimetable":
        """Fetch a GTFS zip to `dest` and load it."""
        logger.info("Downloading GTFS data from %s", url)
        try:
            with httpx.Client(timeout=timeout_s, follow_redirects=True) as c:
                r = c.get(url)
                r.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise UpstreamError(f"GTFS download failed with HTTP {e.response.status_code}") from e
        except httpx.HTTPError as e:
            raise UpstreamError(f"GTFS download failed: {e}") from e

        if not zipfile.is_zipfile(io.BytesIO(r.content)):
            raise UpstreamError(f"GTFS download from {url} is not a zip archive")
        os.makedirs(os.path.dirname(os.path.abspath(dest)), exist_ok=True)
        with open(dest, "wb") as fh:
            fh.write(r.content)
        return cls(dest, **kwargs)

    def _load(self, tables: Dict[str, pd.DataFrame]) -> None:
        stops, routes, trips, stop_times = (tables[n] for n in ("stops", "routes", "trips", "stop_times"))

        self._stops_by_code: Dict[str, Stop] = {}
        self._stops_by_id: Dict[str, Stop] = {}
        for stop_id, code, name, lat, lon in zip(
            _col(stops, "stop_id"), _col(stops, "stop_code"), _col(stops, "stop_name"),
            _col(stops, "stop_lat"), _col(stops, "stop_lon"),
        ):
            if not stop_id:
                continue
            stop = Stop(stop_id=stop_id, stop_code=code or stop_id, name=name, lat=_to_float(lat), lon=_to_float(lon))
            self._stops_by_id[stop_id.casefold()] = stop
            self._stops_by_code.setdefault(stop.stop_code, stop)

        self._routes: Dict[str, Route] = {}
        for route_id, short, long_, rtype in zip(
            _col(routes, "route_id"), _col(routes, "route_short_name"),
            _col(routes, "route_long_name"), _col(routes, "route_type"),
        ):
            if route_id:
                self._routes[route_id.casefold()] = Route(route_id, short, long_, _to_int(rtype, -1))

        self._trips: Dict[str, Trip] = {}
        for trip_id, route_id, service_id, headsign in zip(
            _col(trips, "trip_id"), _col(trips, "route_id"), _col(trips, "service_id"),
            _col(trips, "trip_headsign"),
        ):
            if trip_id:
                self._trips[trip_id.casefold()] = Trip(trip_id, route_id, service_id, headsign or None)

        st = pd.DataFrame({
            "trip_id": _col(stop_times, "trip_id"),
            "stop_id": _col(stop_times, "stop_id"),
            "arrival_time": _col(stop_times, "arrival_time"),
        })
        st["stop_key"] = st["stop_id"].str.casefold()
        self._stop_times = {key: group for key, group in st.groupby("stop_key", sort=False)}

        self._calendar = tables.get("calendar")
        self._calendar_dates = tables.get("calendar_dates")
        self._active_cache: Optional[tuple] = None

        self._lines_by_stop = self._build_lines_by_stop(st)
        logger.info(
            "GTFS data loaded. Stops: %d, Routes: %d, Trips: %d, StopTimes: %d",
            len(self._stops_by_id), len(self._routes), len(self._trips), len(st),
        )

    def _build_lines_by_stop(self, st: pd.DataFrame) -> Dict[str, List[str]]:
        trip_line = {
            trip.trip_id: self._routes[trip.route_id.casefold()].short_name
            for trip in self._trips.values()
            if trip.route_id.casefold() in self._routes and self._routes[trip.route_id.casefold()].short_name
        }
        lines = st.assign(line=st["trip_id"].map(trip_line)).dropna(subset=["line"])
        return {
            key: sorted(set(group["line"]))
            for key, group in lines.groupby("stop_key", sort=False)
        }

    def active_service_ids(self, today: date) -> Optional[Set[str]]:
        """Service ids running on `today`; None when the feed carries no calendar at all."""
        if self._active_cache and self._active_cache[0] == today:
            return self._active_cache[1]

        cal, dates = self._calendar, self._calendar_dates
        if (cal is None or cal.empty) and (dates is None or dates.empty):
            return None

        active: Set[str] = set()
        stamp = today.strftime("%Y%m%d")
        if cal is not None and not cal.empty:
            weekday = WEEKDAYS[today.weekday()]
            runs = (
                (_col(cal, weekday) == "1")
                & (_col(cal, "start_date") <= stamp)
                & (_col(cal, "end_date") >= stamp)
            )
            active.update(_col(cal, "service_id")[runs])

        if dates is not None and not dates.empty:
            today_rows = dates[_col(dates, "date") == stamp]
            for service_id, exception in zip(_col(today_rows, "service_id"), _col(today_rows, "exception_type")):
                if exception == "1":
                    active.add(service_id)
                elif exception == "2":
                    active.discard(service_id)

        self._active_cache = (today, active)
        return active

    async def get_stop(self, stop_code: str) -> Optional[Stop]:
        return self._stops_by_code.get((stop_code or "").strip())

    async def get_stops(self, stop_id: Optional[str] = None) -> List[StopInfo]:
        if stop_id:
            stop = self._stops_by_id.get(stop_id.strip().casefold())
            stops = [stop] if stop else []
        else:
            stops = list(self._stops_by_id.values())
        return [
            StopInfo(
                stop_id=s.stop_id,
                stop_code=s.stop_code,
                stop_name=s.name,
                latitude=s.lat,
                longitude=s.lon,
                lines=self._lines_by_stop.get(s.stop_id.casefold(), []),
            )
            for s in stops
        ]

    async def get_active_scheduled_departures(self, stop_id: str) -> List[StopTime]:
        group = self._stop_times.get((stop_id or "").casefold())
        if group is None:
            return []

        active = self.active_service_ids(self.clock().date())
        if active is None:
            logger.warning("GTFS feed has no calendar data, treating every trip as active")

        out: List[StopTime] = []
        for trip_id, sid, arrival in zip(group["trip_id"], group["stop_id"], group["arrival_time"]):
            if active is not None:
                trip = self._trips.get(trip_id.casefold())
                if trip is None or trip.service_id not in active:
                    continue
            out.append(StopTime(trip_id=trip_id, stop_id=sid, arrival_time=arrival))
        return out

    async def get_trip(self, trip_id: str) -> Optional[Trip]:
        return self._trips.get((trip_id or "").casefold())

    async def get_trips(self, trip_ids: Iterable[str]) -> Dict[str, Trip]:
        found = {}
        for trip_id in trip_ids:
            trip = self._trips.get((trip_id or "").casefold())
            if trip is not None:
                found[trip_id] = trip
        return found

    async def get_route(self, route_id: str) -> Optional[Route]:
        return self._routes.get((route_id or "").casefold())

    async def get_routes(self, route_ids: Iterable[str]) -> Dict[str, Route]:
        found = {}
        for route_id in route_ids:
            route = self._routes.get((route_id or "").casefold())
            if route is not None:
                found[route_id] = route
        return found

    def stop_count(self) -> int:
        return len(self._stops_by_id)
