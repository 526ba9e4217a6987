from contextlib import asynccontextmanager
import logging
import time

from fastapi import FastAPI
from starlette.requests import Request

from webmentions.api.router import api_router
from webmentions.core.config import get_settings
from webmentions.core.telemetry import TelemetryRuntime, setup_api_telemetry, shutdown_api_telemetry
from webmentions.services.mentions_api import get_mentions_api
from webmentions.services.repository import describe_database, get_repository

settings = get_settings()
_telemetry_runtime: TelemetryRuntime | None = None
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_: FastAPI):
    logger.info(
        "webmentions api starting site=%s storage=%s",
        settings.site_url,
        describe_database(settings.database_url),
    )
    try:
        yield
    finally:
        if _telemetry_runtime is not None:
            shutdown_api_telemetry(app, _telemetry_runtime)
        repository = get_repository()
        close = getattr(repository, "close", None)
        if close is not None:
            # Ensure asyncpg pool shuts down on app teardown.
            await close()
        get_mentions_api.cache_clear()
        get_repository.cache_clear()


app = FastAPI(title=settings.app_name, lifespan=lifespan)
_telemetry_runtime = setup_api_telemetry(app, settings)


@app.middleware("http")
async def request_logging_middleware(request: Request, call_next):
    started_at = time.perf_counter()
    response = await call_next(request)
    elapsed_ms = (time.perf_counter() - started_at) * 1000.0
    logger.info(
        "http request method=%s path=%s status=%s duration_ms=%.2f",
        request.method,
        request.url.path,
        response.status_code,
        elapsed_ms,
    )
    return response


app.include_router(api_router)
