"""
Rolling per-vehicle position history.

Keeps the two most recent distinct-timestamp observations for each vehicle so
the approach detector can tell which way a vehicle is moving. Bounded both by
fleet size (least recently updated vehicle is evicted) and by age (vehicles
not seen for ``max_age`` are swept).
"""
import logging
import threading
from collections import OrderedDict
from datetime import datetime, timedelta
from typing import Optional, Tuple

from .domain import VehicleObservation

logger = logging.getLogger(__name__)

HISTORY_DEPTH = 2


class PositionHistoryCache:
    def __init__(self, capacity: int = 2000, max_age_s: float = 600.0):
        self.capacity = max(1, capacity)
        self.max_age = timedelta(seconds=max_age_s)
        self._lock = threading.Lock()
        self._entries: "OrderedDict[str, Tuple[VehicleObservation, ...]]" = OrderedDict()
        self._last_sweep: Optional[datetime] = None

    def record(self, observation: VehicleObservation) -> bool:
        """Store an observation; returns False when it was a duplicate or out of order."""
        with self._lock:
            samples = self._entries.get(observation.vehicle_id, ())
            if samples:
                newest = samples[-1].observed_at
                if observation.observed_at == newest:
                    return False
                if observation.observed_at < newest:
                    logger.debug(
                        "Dropping out-of-order sample for vehicle %s (%s < %s)",
                        observation.vehicle_id, observation.observed_at, newest,
                    )
                    return False

            self._entries[observation.vehicle_id] = (samples + (observation,))[-HISTORY_DEPTH:]
            self._entries.move_to_end(observation.vehicle_id)

            while len(self._entries) > self.capacity:
                evicted, _ = self._entries.popitem(last=False)
                logger.debug("History full, evicted vehicle %s", evicted)

            self._maybe_sweep(observation.observed_at)
            return True

    def previous(self, vehicle_id: str) -> Optional[VehicleObservation]:
        with self._lock:
            samples = self._entries.get(vehicle_id, ())
            return samples[-2] if len(samples) >= HISTORY_DEPTH else None

    def latest(self, vehicle_id: str) -> Optional[VehicleObservation]:
        with self._lock:
            samples = self._entries.get(vehicle_id, ())
            return samples[-1] if samples else None

    def sweep(self, now: datetime) -> int:
        """Forget vehicles whose newest sample is older than max_age. Returns how many were dropped."""
        with self._lock:
            return self._sweep(now)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def _maybe_sweep(self, now: datetime) -> None:
        if self._last_sweep is None:
            self._last_sweep = now
            return
        if now - self._last_sweep >= self.max_age / 2:
            self._sweep(now)

    def _sweep(self, now: datetime) -> int:
        cutoff = now - self.max_age
        stale = [vid for vid, samples in self._entries.items() if samples[-1].observed_at < cutoff]
        for vid in stale:
            del self._entries[vid]
        self._last_sweep = now
        if stale:
            logger.debug("Swept %d stale vehicles from position history", len(stale))
        return len(stale)
