from typing import Iterable, List, Optional
from datetime import datetime, timezone

from ..domain import LineKey, VehicleObservation

# A couple of deterministic vehicles around Wroclaw's Rynek for demos
DEFAULT_VEHICLES = [
    {"vehicle_id": "MOCK-33-001", "line": "33", "latitude": 51.1101, "longitude": 17.0305},
    {"vehicle_id": "MOCK-33-007", "line": "33", "latitude": 51.1190, "longitude": 17.0420},
    {"vehicle_id": "MOCK-A-002", "line": "A", "latitude": 51.1045, "longitude": 17.0250},
]


class MockPositionProvider:
    def __init__(self, vehicles: Optional[List[dict]] = None, **kwargs):
        # kwargs may carry options meant for other providers; unused here
        self.vehicles = vehicles if vehicles is not None else DEFAULT_VEHICLES

    async def get_positions_for_lines(self, lines: Iterable[str], mode: str) -> List[VehicleObservation]:
        wanted = {LineKey.of(l) for l in lines}
        now = datetime.now(timezone.utc)
        return [
            VehicleObservation(
                vehicle_id=v["vehicle_id"],
                line=v["line"],
                latitude=float(v["latitude"]),
                longitude=float(v["longitude"]),
                observed_at=v.get("observed_at") or now,
            )
            for v in self.vehicles
            if LineKey.of(v["line"]) in wanted
        ]
