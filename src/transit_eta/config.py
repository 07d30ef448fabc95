import os
from dataclasses import dataclass
from typing import Optional, Tuple

from dotenv import load_dotenv

# (lat_min, lon_min, lat_max, lon_max) around Wroclaw
DEFAULT_BBOX = (50.95, 16.80, 51.25, 17.30)


def env_str(name: str, default: str) -> str:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    return value.strip()


def env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        return default


def env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        return float(value)
    except ValueError:
        return default


def env_bbox(name: str, default: Tuple[float, float, float, float]) -> Tuple[float, float, float, float]:
    value = os.getenv(name)
    if not value:
        return default
    try:
        parts = tuple(float(p) for p in value.split(","))
    except ValueError:
        return default
    if len(parts) != 4:
        return default
    return parts  # type: ignore[return-value]


@dataclass(frozen=True)
class Settings:
    # timetable
    gtfs_path: str = "data/gtfs"
    gtfs_url: Optional[str] = None
    timezone: str = "Europe/Warsaw"

    # live positions
    provider: str = "mpk"
    provider_opts: str = "{}"
    positions_url: str = "https://mpk.wroc.pl/bus_position"
    positions_timeout_s: float = 30.0
    positions_cache_ttl_s: int = 30
    fetch_concurrency: int = 5
    batch_concurrency: int = 5
    bbox: Tuple[float, float, float, float] = DEFAULT_BBOX

    # eta fusion
    avg_speed_kmh: float = 20.0
    fusion_tolerance_min: int = 5
    close_distance_m: float = 100.0
    close_schedule_min: int = 5
    realtime_radius_m: float = 2000.0

    # vehicle matching
    tram_max_distance_m: float = 3000.0
    bus_max_distance_m: float = 5000.0

    # approach detection
    stale_fix_s: float = 60.0
    approach_tolerance_m: float = 10.0
    near_stop_m: float = 50.0
    stationary_m: float = 5.0
    min_approach_speed_mps: float = 2.0

    # candidate window
    grace_min: int = 5
    candidate_limit: int = 20
    default_count: int = 5

    # position history
    history_capacity: int = 2000
    history_max_age_s: float = 600.0

    frontend_origin: str = "http://localhost:5173"
    log_level: str = "INFO"

    @property
    def avg_speed_mps(self) -> float:
        return self.avg_speed_kmh * 1000.0 / 3600.0


def load_settings() -> Settings:
    """Build settings from the process environment (and a .env file, if any)."""
    load_dotenv()
    d = Settings()
    return Settings(
        gtfs_path=env_str("GTFS_PATH", d.gtfs_path),
        gtfs_url=os.getenv("GTFS_URL") or None,
        timezone=env_str("TIMEZONE", d.timezone),
        provider=env_str("PROVIDER", d.provider),
        provider_opts=env_str("PROVIDER_OPTS", d.provider_opts),
        positions_url=env_str("POSITIONS_URL", d.positions_url),
        positions_timeout_s=env_float("POSITIONS_TIMEOUT_S", d.positions_timeout_s),
        positions_cache_ttl_s=env_int("POSITIONS_CACHE_TTL_S", d.positions_cache_ttl_s),
        fetch_concurrency=max(1, env_int("FETCH_CONCURRENCY", d.fetch_concurrency)),
        batch_concurrency=max(1, env_int("BATCH_CONCURRENCY", d.batch_concurrency)),
        bbox=env_bbox("BBOX", d.bbox),
        avg_speed_kmh=env_float("AVG_SPEED_KMH", d.avg_speed_kmh),
        fusion_tolerance_min=env_int("FUSION_TOLERANCE_MIN", d.fusion_tolerance_min),
        close_distance_m=env_float("CLOSE_DISTANCE_M", d.close_distance_m),
        close_schedule_min=env_int("CLOSE_SCHEDULE_MIN", d.close_schedule_min),
        realtime_radius_m=env_float("REALTIME_RADIUS_M", d.realtime_radius_m),
        tram_max_distance_m=env_float("TRAM_MAX_DISTANCE_M", d.tram_max_distance_m),
        bus_max_distance_m=env_float("BUS_MAX_DISTANCE_M", d.bus_max_distance_m),
        stale_fix_s=env_float("STALE_FIX_S", d.stale_fix_s),
        approach_tolerance_m=env_float("APPROACH_TOLERANCE_M", d.approach_tolerance_m),
        near_stop_m=env_float("NEAR_STOP_M", d.near_stop_m),
        stationary_m=env_float("STATIONARY_M", d.stationary_m),
        min_approach_speed_mps=env_float("MIN_APPROACH_SPEED_MPS", d.min_approach_speed_mps),
        grace_min=env_int("GRACE_MIN", d.grace_min),
        candidate_limit=max(1, env_int("CANDIDATE_LIMIT", d.candidate_limit)),
        history_capacity=max(1, env_int("HISTORY_CAPACITY", d.history_capacity)),
        history_max_age_s=env_float("HISTORY_MAX_AGE_S", d.history_max_age_s),
        frontend_origin=env_str("FRONTEND_ORIGIN", d.frontend_origin),
        log_level=env_str("LOG_LEVEL", d.log_level).upper(),
    )
