import asyncio
import logging
from typing import Iterable, List

from .estimator import ArrivalEstimator
from .models import ArrivalInfo

logger = logging.getLogger(__name__)


class BatchArrivalAggregator:
    """Runs the estimator over several stops at once and ranks everything by ETA."""

    def __init__(self, estimator: ArrivalEstimator, max_concurrency: int = 5):
        self.estimator = estimator
        self.max_concurrency = max(1, max_concurrency)

    async def get_arrivals_for_stops(self, stop_codes: Iterable[str], count_per_stop: int = 3) -> List[ArrivalInfo]:
        codes = list(stop_codes or [])
        if not codes:
            return []

        semaphore = asyncio.Semaphore(self.max_concurrency)

        async def one(stop_code: str) -> List[ArrivalInfo]:
            async with semaphore:
                try:
                    result = await self.estimator.get_arrivals(stop_code, count_per_stop)
                except Exception:
                    logger.exception("Failed to get arrivals for stop %s", stop_code)
                    return []
            if not result.is_ok:
                logger.warning("Skipping stop %s in batch: %s", stop_code, result.outcome.value)
                return []
            return result.response.arrivals

        per_stop = await asyncio.gather(*(one(code) for code in codes))
        merged = [a for arrivals in per_stop for a in arrivals]
        merged.sort(key=lambda a: a.eta_min)
        return merged
