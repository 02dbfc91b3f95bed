"""
schemas/sync.py — Value objects for the inventory sync orchestrator

SyncResult is the immutable record of one run; SyncStatus is the live
snapshot the UI polls while a run is in flight.

Business Rules:
- SyncResult is frozen once built and persisted to sync_logs as-is
- success == (no errors) for runs that reach the end
- SyncStatus returned to callers is always a copy

Called by: services/sync_service.py, routers/sync.py, scheduler.py
Depends on: pydantic
"""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

SyncType = Literal["full", "incremental"]


class SyncResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    success: bool
    sync_type: SyncType
    message: str = ""
    items_processed: int = 0
    items_updated: int = 0
    items_added: int = 0
    items_skipped: int = 0
    errors: tuple[str, ...] = ()
    duration_seconds: float = 0.0
    started_at: datetime
    cancelled: bool = False


class SyncStatus(BaseModel):
    is_running: bool = False
    sync_type: SyncType | None = None
    progress: int = 0
    current_operation: str = "Idle"
    last_sync: datetime | None = None
    last_result: SyncResult | None = None
    next_scheduled_sync: datetime | None = None


class ScheduleDecision(BaseModel):
    should_run: bool
    sync_type: SyncType | None = None
    reason: str = ""
    next_due: datetime | None = None


class SyncLogOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    sync_type: str
    status: str
    success: bool
    started_at: datetime
    finished_at: datetime | None = None
    duration_seconds: float | None = None
    records_processed: int = 0
    records_created: int = 0
    records_updated: int = 0
    records_skipped: int = 0
    records_failed: int = 0
    errors: list[str] | None = None
    message: str | None = None


class SyncConfigOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    auto_sync_enabled: bool
    full_sync_interval_hours: int
    incremental_sync_interval_hours: int
    batch_size: int
    full_sync_max_items: int
    incremental_sync_max_items: int
    max_retries: int


class SyncConfigUpdate(BaseModel):
    """Partial update. Omitted fields keep their stored value."""

    auto_sync_enabled: bool | None = None
    full_sync_interval_hours: int | None = Field(default=None, ge=1, le=24 * 30)
    incremental_sync_interval_hours: int | None = Field(default=None, ge=1, le=24 * 7)
    batch_size: int | None = Field(default=None, ge=1, le=1000)
    full_sync_max_items: int | None = Field(default=None, ge=1, le=100000)
    incremental_sync_max_items: int | None = Field(default=None, ge=1, le=100000)
    max_retries: int | None = Field(default=None, ge=0, le=10)


class SyncStartRequest(BaseModel):
    max_items: int | None = Field(default=None, ge=1, le=100000)
    batch_size: int | None = Field(default=None, ge=1, le=1000)


class PartUpdateRequest(BaseModel):
    vcpn: str = Field(min_length=1, max_length=100)
    priority: int = Field(default=5, ge=1, le=10)
    operation: Literal["create", "update", "delete"] = "update"
    requested_by: str = "user"
