import json
import importlib
import logging
import os
from contextlib import asynccontextmanager
from typing import List, Optional

from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware

from .aggregator import BatchArrivalAggregator
from .config import Settings, load_settings
from .domain import Outcome
from .estimator import ArrivalEstimator
from .history import PositionHistoryCache
from .models import ArrivalInfo, ArrivalsBatchRequest, ArrivalsResponse, StopsResponse
from .providers.base import PositionProvider, TimetableProvider
from .providers.gtfs import GtfsTimetable

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


# =========================
# Provider loaders
# =========================
def load_position_provider(settings: Settings) -> PositionProvider:
    provider_name = settings.provider
    try:
        opts = json.loads(settings.provider_opts)
    except json.JSONDecodeError:
        logger.warning("PROVIDER_OPTS is not valid JSON, ignoring it")
        opts = {}
    if not isinstance(opts, dict):
        opts = {}
    try:
        module = importlib.import_module(f"transit_eta.providers.{provider_name}")
    except ModuleNotFoundError as e:
        raise RuntimeError(f"Provider module not found: {provider_name}") from e
    class_name = f"{provider_name.capitalize()}PositionProvider"
    ProviderClass = getattr(module, class_name, None)
    if ProviderClass is None:
        raise RuntimeError(f"Provider class not found in module '{provider_name}'")

    defaults = {
        "url": settings.positions_url,
        "timeout_s": settings.positions_timeout_s,
        "max_concurrency": settings.fetch_concurrency,
        "cache_ttl_s": settings.positions_cache_ttl_s,
        "bbox": settings.bbox,
        "timezone": settings.timezone,
    }
    return ProviderClass(**{**defaults, **opts})


def load_timetable(settings: Settings) -> TimetableProvider:
    path = settings.gtfs_path
    if settings.gtfs_url and not os.path.exists(path):
        dest = path if path.endswith(".zip") else os.path.join(path, "gtfs.zip")
        return GtfsTimetable.download(settings.gtfs_url, dest, timezone=settings.timezone)
    if not os.path.exists(path):
        raise RuntimeError(f"GTFS data not found at {path} (set GTFS_PATH or GTFS_URL)")
    return GtfsTimetable(path, timezone=settings.timezone)


# =========================
# App factory
# =========================
def create_app(
    settings: Optional[Settings] = None,
    timetable: Optional[TimetableProvider] = None,
    positions: Optional[PositionProvider] = None,
    history: Optional[PositionHistoryCache] = None,
) -> FastAPI:
    settings = settings or load_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        state = app.state
        state.settings = settings
        state.timetable = timetable or load_timetable(settings)
        state.positions = positions or load_position_provider(settings)
        state.history = history or PositionHistoryCache(settings.history_capacity, settings.history_max_age_s)
        state.estimator = ArrivalEstimator(state.timetable, state.positions, state.history, settings)
        state.aggregator = BatchArrivalAggregator(state.estimator, settings.batch_concurrency)
        logger.info(
            "transit-eta ready: %d stops, position provider %s",
            state.timetable.stop_count(), type(state.positions).__name__,
        )
        yield

    app = FastAPI(title="transit-eta", version="0.1.0", lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[settings.frontend_origin],
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # =========================
    # Basic endpoints
    # =========================
    @app.get("/health")
    async def health(request: Request):
        state = request.app.state
        return {
            "status": "ok",
            "gtfs_stops": state.timetable.stop_count(),
            "tracked_vehicles": len(state.history),
        }

    # =========================
    # Stops & arrivals
    # =========================
    @app.get("/stops", response_model=StopsResponse)
    async def stops(request: Request, stop_id: Optional[str] = Query(None, description="GTFS stop_id filter")):
        logger.info("Getting stops with filter: %s", stop_id or "none")
        try:
            items = await request.app.state.timetable.get_stops(stop_id)
        except Exception as e:
            logger.exception("Error getting stops")
            raise HTTPException(status_code=500, detail="Internal server error") from e
        return StopsResponse(stops=items, total=len(items))

    @app.get("/stops/{stop_code}/arrivals", response_model=ArrivalsResponse)
    async def arrivals(request: Request, stop_code: str, count: int = Query(3, description="Number of arrivals")):
        result = await request.app.state.estimator.get_arrivals(stop_code, count)
        if result.outcome is Outcome.STOP_NOT_FOUND:
            raise HTTPException(status_code=404, detail=f"Stop code '{stop_code}' not found")
        if result.outcome is Outcome.FAILED:
            raise HTTPException(status_code=500, detail="Internal server error")
        return result.response

    @app.post("/stops/arrivals/batch", response_model=List[ArrivalInfo])
    async def arrivals_batch(request: Request, body: ArrivalsBatchRequest):
        logger.info("Batch arrivals for %d stops (count_per_stop=%d)", len(body.stop_codes), body.count_per_stop)
        return await request.app.state.aggregator.get_arrivals_for_stops(body.stop_codes, body.count_per_stop)

    return app


def configure_logging(level: str) -> None:
    logging.basicConfig(level=getattr(logging, level, logging.INFO), format=LOG_FORMAT)


_settings = load_settings()
configure_logging(_settings.log_level)
app = create_app(_settings)
