from contextlib import asynccontextmanager
import logging
import time

from fastapi import FastAPI
from starlette.requests import Request

from listings_api.api.router import api_router
from listings_api.core.config import get_settings
from listings_api.core.telemetry import (
    TelemetryRuntime,
    configure_api_logging,
    setup_api_telemetry,
    shutdown_api_telemetry,
)
from listings_api.services.listing_kinds import LISTING_KINDS
from listings_api.services.repository import get_repository

settings = get_settings()
logger = logging.getLogger(__name__)
telemetry: TelemetryRuntime | None = None


@asynccontextmanager
async def lifespan(_: FastAPI):
    logger.info(
        "listings api starting env=%s storage=%s kinds=%s",
        settings.environment,
        settings.storage_backend,
        ",".join(LISTING_KINDS),
    )
    try:
        yield
    finally:
        if telemetry is not None:
            shutdown_api_telemetry(app, telemetry)
        await get_repository().close()
        get_repository.cache_clear()


configure_api_logging()
app = FastAPI(title=settings.app_name, lifespan=lifespan)
telemetry = setup_api_telemetry(app, settings)


@app.middleware("http")
async def log_listing_requests(request: Request, call_next):
    started = time.perf_counter()
    response = await call_next(request)
    duration_ms = (time.perf_counter() - started) * 1000.0
    area = request.url.path.strip("/").split("/", 1)[0] or "root"
    response.headers["X-Response-Time-Ms"] = f"{duration_ms:.1f}"
    log = logger.warning if response.status_code >= 500 else logger.info
    log(
        "%s %s area=%s status=%s duration_ms=%.2f",
        request.method,
        request.url.path,
        area,
        response.status_code,
        duration_ms,
    )
    return response


app.include_router(api_router)
