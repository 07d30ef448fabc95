import math
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from .config import Settings


@dataclass(frozen=True)
class EtaDecision:
    eta_min: int
    is_real_time: bool
    delay_min: Optional[int] = None


def scheduled_eta_minutes(arrival: datetime, now: datetime) -> int:
    """Whole minutes until a scheduled arrival, never negative."""
    seconds = (arrival - now).total_seconds()
    return max(0, int(seconds // 60))


class FusionPolicy:
    """
    Chooses between the timetable ETA and a distance-based ETA for an
    approaching vehicle.

    The distance ETA assumes a flat urban average speed, so it is only
    trusted when it lands within ``fusion_tolerance_min`` of the schedule.
    """

    def __init__(self, settings: Settings):
        self.settings = settings

    def schedule_only(self, scheduled_eta: int) -> EtaDecision:
        return EtaDecision(eta_min=scheduled_eta, is_real_time=False)

    def fuse(self, scheduled_eta: int, distance_m: Optional[float]) -> EtaDecision:
        s = self.settings
        if distance_m is None or not math.isfinite(distance_m):
            return self.schedule_only(scheduled_eta)

        if distance_m < s.close_distance_m and scheduled_eta <= s.close_schedule_min:
            return self._real_time(0, scheduled_eta)

        if distance_m < s.realtime_radius_m:
            candidate = max(1, math.ceil(distance_m / s.avg_speed_mps / 60.0))
            low = scheduled_eta - s.fusion_tolerance_min
            high = scheduled_eta + s.fusion_tolerance_min
            if low <= candidate <= high:
                return self._real_time(candidate, scheduled_eta)

        return self.schedule_only(scheduled_eta)

    def _real_time(self, eta_min: int, scheduled_eta: int) -> EtaDecision:
        diff = eta_min - scheduled_eta
        delay = int(round(diff)) if abs(diff) >= 1 else None
        return EtaDecision(eta_min=eta_min, is_real_time=True, delay_min=delay)
