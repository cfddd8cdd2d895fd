from contextlib import asynccontextmanager
import logging
import time

from fastapi import FastAPI
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.requests import Request

from scholarship_gateway.api.router import api_router
from scholarship_gateway.core.config import get_settings
from scholarship_gateway.core.telemetry import TelemetryRuntime, setup_api_telemetry, shutdown_api_telemetry
from scholarship_gateway.services.repository import get_repository
from scholarship_gateway.services.storage import StorageError, get_storage
from scholarship_gateway.services.tasks import get_task_runner

settings = get_settings()
_telemetry_runtime: TelemetryRuntime | None = None
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_: FastAPI):
    await _ensure_upload_bucket()
    try:
        yield
    finally:
        # Give in-flight newsletter dispatches a bounded chance to finish.
        await get_task_runner().drain(timeout_seconds=get_settings().shutdown_drain_seconds)
        if _telemetry_runtime is not None:
            shutdown_api_telemetry(app, _telemetry_runtime)
        await get_repository().close()
        get_repository.cache_clear()


app = FastAPI(title=settings.app_name, lifespan=lifespan)
_telemetry_runtime = setup_api_telemetry(app, settings)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(_: Request, exc: StarletteHTTPException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "message": exc.detail},
        headers=getattr(exc, "headers", None),
    )


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


async def _ensure_upload_bucket() -> None:
    storage = get_storage()
    if not storage.configured:
        logger.info("storage not configured; skipping bucket check")
        return
    try:
        created = await storage.ensure_bucket()
    except StorageError as exc:
        logger.warning("bucket check/create skipped: %s", exc)
        return
    if created:
        logger.info("created storage bucket %s", storage.bucket)
    else:
        logger.info("storage bucket %s already exists", storage.bucket)


app.include_router(api_router)
