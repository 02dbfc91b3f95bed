"""
routers/sync.py — Inventory sync control for the admin panel

Start/cancel syncs, poll status, browse run history, edit the schedule,
and queue single-part refreshes.

Business Rules:
- Start endpoints return immediately (202); the run continues as a
  background task and the UI polls /api/sync/status
- Starting while a sync runs is a 409, not a queued second run
- Error strings are scrubbed of secrets before they leave the service

Called by: main.py (router mount)
Depends on: dependencies (ServiceContainer), services/sync_service.py
"""

from dataclasses import asdict

from fastapi import APIRouter, BackgroundTasks, Depends, Query, Request

from ..dependencies import ServiceContainer, get_services
from ..exceptions import SyncInProgressError
from ..rate_limit import limiter
from ..schemas.sync import PartUpdateRequest, SyncConfigUpdate, SyncStartRequest
from ..utils.sanitize import scrub, scrub_model

router = APIRouter()


def _start(sync_type: str, body: SyncStartRequest | None, background: BackgroundTasks, services: ServiceContainer) -> dict:
    sync = services.sync
    if sync.is_running:
        raise SyncInProgressError("Sync already in progress")
    body = body or SyncStartRequest()
    run = sync.perform_full_sync if sync_type == "full" else sync.perform_incremental_sync
    background.add_task(run, max_items=body.max_items, batch_size=body.batch_size)
    return {"accepted": True, "sync_type": sync_type, "status": scrub_model(sync.get_sync_status())}


@router.post("/api/sync/full", status_code=202)
@limiter.limit("6/minute")
async def start_full_sync(
    request: Request,
    background: BackgroundTasks,
    body: SyncStartRequest | None = None,
    services: ServiceContainer = Depends(get_services),
):
    return _start("full", body, background, services)


@router.post("/api/sync/incremental", status_code=202)
@limiter.limit("6/minute")
async def start_incremental_sync(
    request: Request,
    background: BackgroundTasks,
    body: SyncStartRequest | None = None,
    services: ServiceContainer = Depends(get_services),
):
    return _start("incremental", body, background, services)


@router.post("/api/sync/cancel")
async def cancel_sync(services: ServiceContainer = Depends(get_services)):
    cancelled = services.sync.cancel_sync()
    return {"cancelled": cancelled}


@router.get("/api/sync/status")
async def sync_status(services: ServiceContainer = Depends(get_services)):
    status = scrub_model(services.sync.get_sync_status())
    status["pending_updates"] = services.sync.pending_count()
    return status


@router.get("/api/sync/logs")
async def sync_logs(
    limit: int = Query(20, ge=1, le=200),
    services: ServiceContainer = Depends(get_services),
):
    return [scrub_model(row) for row in services.sync.get_sync_logs(limit)]


@router.get("/api/sync/schedule")
async def sync_schedule(services: ServiceContainer = Depends(get_services)):
    return scrub_model(services.sync.should_run_scheduled_sync())


@router.get("/api/sync/config")
async def get_sync_config(services: ServiceContainer = Depends(get_services)):
    return services.sync.get_sync_config()


@router.put("/api/sync/config")
async def update_sync_config(body: SyncConfigUpdate, services: ServiceContainer = Depends(get_services)):
    return services.sync.update_sync_config(**body.model_dump(exclude_none=True))


@router.post("/api/sync/parts", status_code=201)
async def request_part_update(body: PartUpdateRequest, services: ServiceContainer = Depends(get_services)):
    return services.sync.request_part_update(
        body.vcpn, requested_by=body.requested_by, priority=body.priority, operation=body.operation
    )


@router.post("/api/sync/pending/process")
@limiter.limit("6/minute")
async def process_pending(request: Request, services: ServiceContainer = Depends(get_services)):
    result = await services.sync.process_pending_updates()
    return scrub(asdict(result))
