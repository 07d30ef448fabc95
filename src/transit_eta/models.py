from pydantic import BaseModel, Field
from typing import List, Optional

class ArrivalInfo(BaseModel):
    line: str = Field(..., description="Public-facing line name, e.g. '33' or 'A'")
    direction: str = Field(..., description="Trip headsign")
    eta_min: int = Field(..., ge=0, description="Estimated time until arrival in whole minutes")
    is_real_time: bool = Field(False, description="True when the ETA comes from a live vehicle position")
    delay_min: Optional[int] = Field(None, description="Minutes later (+) or earlier (-) than schedule, real-time only")
    scheduled_departure: str = Field(..., description="Scheduled time of day, HH:MM:SS")
    stop_code: Optional[str] = Field(None, description="Stop the arrival belongs to")

class ArrivalsResponse(BaseModel):
    stop_code: str
    stop_name: str
    arrivals: List[ArrivalInfo]

class ArrivalsBatchRequest(BaseModel):
    stop_codes: List[str] = Field(default_factory=list)
    count_per_stop: int = 3

class StopInfo(BaseModel):
    stop_id: str
    stop_code: str
    stop_name: str
    latitude: float
    longitude: float
    lines: List[str] = Field(default_factory=list)

class StopsResponse(BaseModel):
    stops: List[StopInfo]
    total: int
