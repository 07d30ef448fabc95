import logging
from datetime import datetime

from .config import Settings
from .domain import VehicleObservation
from .geo import distance_meters
from .history import PositionHistoryCache

logger = logging.getLogger(__name__)


class ApproachDetector:
    """
    Decides whether a vehicle's last two GPS fixes show it genuinely heading
    toward a stop.

    Stateless apart from the injected history: the current observation must
    already have been recorded, and the sample before it is read back from the
    cache. Without a previous sample the answer is always False, so a vehicle
    only overrides the timetable once it has been seen moving.
    """

    def __init__(self, history: PositionHistoryCache, settings: Settings):
        self.history = history
        self.settings = settings

    def is_approaching(
        self,
        vehicle_id: str,
        current: VehicleObservation,
        stop_lat: float,
        stop_lon: float,
        now: datetime,
    ) -> bool:
        s = self.settings

        age_s = (now - current.observed_at).total_seconds()
        if age_s > s.stale_fix_s:
            logger.debug("Vehicle %s fix is stale (%.0fs old)", vehicle_id, age_s)
            return False

        previous = self.history.previous(vehicle_id)
        if previous is None or previous.observed_at >= current.observed_at:
            return False

        prev_dist = distance_meters(stop_lat, stop_lon, previous.latitude, previous.longitude)
        curr_dist = distance_meters(stop_lat, stop_lon, current.latitude, current.longitude)

        # NaN fails every comparison below, so non-finite distances reject here too
        if not curr_dist + s.approach_tolerance_m < prev_dist:
            return False

        closed_m = prev_dist - curr_dist
        if curr_dist < s.near_stop_m and closed_m < s.stationary_m:
            return False

        elapsed_s = (current.observed_at - previous.observed_at).total_seconds()
        if elapsed_s > 0:
            rate = closed_m / elapsed_s
            if rate < s.min_approach_speed_mps:
                logger.debug("Vehicle %s closing at %.2f m/s, treating as drift", vehicle_id, rate)
                return False

        return True
