# src/transit_eta/providers/mpk.py
import asyncio
import logging
import math
from datetime import datetime
from typing import Callable, Iterable, List, Optional, Tuple
from zoneinfo import ZoneInfo

import httpx

from ..cache import ttl_cache
from ..config import DEFAULT_BBOX
from ..domain import VehicleObservation
from .base import UpstreamError

logger = logging.getLogger(__name__)

MPK_POSITIONS_URL = "https://mpk.wroc.pl/bus_position"
HTTP_HEADERS = {"User-Agent": "transit-eta/0.1"}


def is_plausible(lat: float, lon: float, bbox: Tuple[float, float, float, float]) -> bool:
    """False for NaN/inf, the (0, 0) null fix and anything outside the service area."""
    if not (math.isfinite(lat) and math.isfinite(lon)):
        return False
    if lat == 0.0 and lon == 0.0:
        return False
    lat_min, lon_min, lat_max, lon_max = bbox
    return lat_min <= lat <= lat_max and lon_min <= lon <= lon_max


class MpkPositionProvider:
    """
    Live vehicle positions from the Wroclaw MPK feed.

    The feed takes one form field per line (``busList[tram][]=33``) and answers
    with ``[{"name": "33", "type": "tram", "x": lat, "y": lon, "k": id}, ...]``.
    It carries no timestamp, so every sample is stamped with the fetch time;
    cached responses keep their original stamp.
    """

    def __init__(
        self,
        url: Optional[str] = None,
        timeout_s: float = 30.0,
        max_concurrency: int = 5,
        cache_ttl_s: float = 30.0,
        bbox: Tuple[float, float, float, float] = DEFAULT_BBOX,
        timezone: str = "Europe/Warsaw",
        clock: Optional[Callable[[], datetime]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        **_,
    ):
        self.url = url or MPK_POSITIONS_URL
        self.timeout_s = timeout_s
        self.max_concurrency = max(1, int(max_concurrency))
        self.bbox = tuple(bbox)
        tz = ZoneInfo(timezone)
        self.clock = clock or (lambda: datetime.now(tz))
        self.transport = transport
        self._fetch_line = ttl_cache(cache_ttl_s, key=lambda client, line, mode: (line, mode))(
            self._fetch_line_uncached
        )

    async def get_positions_for_lines(self, lines: Iterable[str], mode: str) -> List[VehicleObservation]:
        wanted = list(dict.fromkeys(l for l in lines if l))
        if not wanted:
            return []

        semaphore = asyncio.Semaphore(self.max_concurrency)
        failures: List[str] = []

        async with httpx.AsyncClient(
            timeout=httpx.Timeout(self.timeout_s), headers=HTTP_HEADERS, transport=self.transport
        ) as client:

            async def one(line: str) -> List[VehicleObservation]:
                async with semaphore:
                    try:
                        return await self._fetch_line(client, line, mode)
                    except UpstreamError as e:
                        logger.warning("Failed to get %s positions for line %s: %s", mode, line, e)
                        failures.append(line)
                        return []

            results = await asyncio.gather(*(one(line) for line in wanted))

        if failures and len(failures) == len(wanted):
            raise UpstreamError(f"MPK feed unavailable for all {len(wanted)} {mode} lines")

        positions = [obs for per_line in results for obs in per_line]
        logger.debug("Fetched %d %s positions for %d lines", len(positions), mode, len(wanted))
        return positions

    async def _fetch_line_uncached(self, client: httpx.AsyncClient, line: str, mode: str) -> List[VehicleObservation]:
        try:
            r = await client.post(self.url, data={f"busList[{mode}][]": line})
            r.raise_for_status()
            data = r.json() if r.content.strip() else []
        except httpx.HTTPStatusError as e:
            raise UpstreamError(f"MPK error {e.response.status_code}: {e.response.text[:200]}") from e
        except httpx.HTTPError as e:
            raise UpstreamError(f"MPK request failed: {e}") from e
        except ValueError as e:
            raise UpstreamError(f"MPK returned invalid JSON: {e}") from e

        if not isinstance(data, list):
            raise UpstreamError(f"MPK returned unexpected payload type {type(data).__name__}")

        observed_at = self.clock()
        out: List[VehicleObservation] = []
        for item in data:
            obs = self._to_observation(item, line, observed_at)
            if obs is not None:
                out.append(obs)
        return out

    def _to_observation(self, item, line: str, observed_at: datetime) -> Optional[VehicleObservation]:
        if not isinstance(item, dict):
            return None
        try:
            lat = float(item.get("x"))
            lon = float(item.get("y"))
        except (TypeError, ValueError):
            return None
        vehicle_id = item.get("k")
        if vehicle_id is None or not is_plausible(lat, lon, self.bbox):
            return None
        return VehicleObservation(
            vehicle_id=str(vehicle_id),
            line=str(item.get("name") or line),
            latitude=lat,
            longitude=lon,
            observed_at=observed_at,
        )
