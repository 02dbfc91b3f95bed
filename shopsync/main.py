"""
main.py — ShopSync FastAPI application

Mounts the routers, installs the error handlers and owns the lifespan:
logging setup, service construction, scheduler start/stop and shutdown of
the shared HTTP client.

Business Rules:
- Services are built once per process and stored on app.state.services
- Every error leaves as ErrorResponse with secrets scrubbed from the text
- The scheduler is skipped under TESTING=1 or when scheduler_enabled=false

Called by: uvicorn (shopsync.main:app)
Depends on: config, dependencies, routers/*, scheduler, logging_config
"""

import os
import uuid
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from loguru import logger
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from starlette.exceptions import HTTPException as StarletteHTTPException

from .config import APP_VERSION, settings
from .dependencies import build_services
from .exceptions import ShopSyncError
from .http_client import close_clients
from .logging_config import setup_logging
from .rate_limit import limiter
from .routers import admin, dropship, inventory, pricing, sync
from .schemas.common import ErrorResponse
from .utils.sanitize import sanitize_error_message, scrub


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    services = build_services(settings)
    app.state.services = services
    logger.info(
        f"ShopSync {APP_VERSION} starting — Keystone environment {services.client.environment}, "
        f"data source {services.client.data_source_name()}"
    )

    from .scheduler import configure_scheduler, scheduler

    run_scheduler = settings.scheduler_enabled and not os.environ.get("TESTING")
    if run_scheduler:
        configure_scheduler(services)
        scheduler.start()
    yield
    if run_scheduler and scheduler.running:
        scheduler.shutdown(wait=False)
    await close_clients()
    logger.info("ShopSync stopped")


app = FastAPI(title="ShopSync", version=APP_VERSION, lifespan=lifespan)
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

for module in (sync, pricing, dropship, inventory, admin):
    app.include_router(module.router)


# ── Error handlers ────────────────────────────────────────────────────


def _request_id(request: Request) -> str:
    return request.headers.get("x-request-id") or uuid.uuid4().hex[:12]


def _error(request: Request, status_code: int, message: str, detail: list | None = None) -> JSONResponse:
    body = ErrorResponse(
        error=sanitize_error_message(message),
        status_code=status_code,
        request_id=_request_id(request),
        detail=scrub(detail) if detail else None,
    )
    return JSONResponse(status_code=status_code, content=body.model_dump(mode="json"))


@app.exception_handler(ShopSyncError)
async def shopsync_error_handler(request: Request, exc: ShopSyncError):
    if exc.status_code >= 500:
        logger.error(f"{exc.__class__.__name__} on {request.method} {request.url.path}: {exc}")
    return _error(request, exc.status_code, str(exc))


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return _error(request, exc.status_code, str(exc.detail))


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    detail = [
        {"loc": [str(p) for p in err.get("loc", ())], "msg": err.get("msg", "")}
        for err in exc.errors()
    ]
    return _error(request, 422, "Request validation failed", detail)


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    return _error(request, 500, "Internal server error")


@app.get("/health")
async def health(request: Request):
    services = getattr(request.app.state, "services", None)
    body = {"status": "ok", "version": APP_VERSION}
    if services is not None:
        body["keystone_environment"] = services.client.environment
        body["data_source"] = services.client.data_source_name()
        body["sync_running"] = services.sync.is_running
    return body
