import asyncio

from transit_eta.aggregator import BatchArrivalAggregator
from transit_eta.domain import ArrivalsResult
from transit_eta.models import ArrivalInfo, ArrivalsResponse


def _arrival(stop_code, eta):
    return ArrivalInfo(line="33", direction="Sepolno", eta_min=eta, scheduled_departure="12:00:00", stop_code=stop_code)


class FakeEstimator:
    def __init__(self, etas, failing=(), raising=()):
        self.etas = etas
        self.failing = set(failing)
        self.raising = set(raising)
        self.in_flight = 0
        self.max_in_flight = 0

    async def get_arrivals(self, stop_code, count):
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(0.01)
            if stop_code in self.raising:
                raise RuntimeError("boom")
            if stop_code in self.failing:
                return ArrivalsResult.failed(stop_code, "upstream exploded")
            if stop_code not in self.etas:
                return ArrivalsResult.not_found(stop_code)
            arrivals = [_arrival(stop_code, eta) for eta in self.etas[stop_code][:count]]
            return ArrivalsResult.ok(ArrivalsResponse(stop_code=stop_code, stop_name=stop_code, arrivals=arrivals))
        finally:
            self.in_flight -= 1


def _run(aggregator, codes, count=3):
    return asyncio.run(aggregator.get_arrivals_for_stops(codes, count))


def test_merges_and_ranks_across_stops():
    estimator = FakeEstimator({"A": [2, 9, 15, 30], "B": [1, 4, 12]})
    arrivals = _run(BatchArrivalAggregator(estimator), ["A", "B"])

    assert len(arrivals) == 6
    assert [a.eta_min for a in arrivals] == [1, 2, 4, 9, 12, 15]


def test_failed_stop_is_excluded():
    estimator = FakeEstimator({"A": [2, 9, 15], "B": [1]}, failing=["B"])
    arrivals = _run(BatchArrivalAggregator(estimator), ["A", "B"])
    assert [a.stop_code for a in arrivals] == ["A", "A", "A"]


def test_raising_and_unknown_stops_are_excluded():
    estimator = FakeEstimator({"A": [5]}, raising=["X"])
    arrivals = _run(BatchArrivalAggregator(estimator), ["X", "A", "missing"])
    assert [a.stop_code for a in arrivals] == ["A"]


def test_empty_input():
    assert _run(BatchArrivalAggregator(FakeEstimator({})), []) == []


def test_concurrency_is_capped():
    codes = [f"S{i}" for i in range(12)]
    estimator = FakeEstimator({code: [i] for i, code in enumerate(codes)})
    arrivals = _run(BatchArrivalAggregator(estimator, max_concurrency=3), codes, count=1)

    assert len(arrivals) == 12
    assert estimator.max_in_flight == 3
