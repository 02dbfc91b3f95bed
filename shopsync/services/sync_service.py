"""Inventory sync service — pulls the Keystone catalog into the local cache.

One instance per process, built at startup (see dependencies.py). Owns the
live SyncStatus the admin panel polls and the cancel signal for the run in
flight. Owns no timer: scheduler.py asks should_run_scheduled_sync() and
calls the chosen sync.

Business Rules:
- idle -> running -> completed | failed | cancelled -> idle; only one exit
  per run, status reset and progress forced to 100 on the way out
- A second run while one is in flight is refused with a failed result
  ("Sync already in progress"); nothing queues behind it
- Full sync: one bulk fetch capped at full_sync_max_items
- Incremental sync: drain pending_updates first, then a smaller bulk fetch
- Pending updates are retried up to max_retries with backoff, then dropped;
  a standalone pending drain holds the same lock as a sync run
- Cancellation stops new work; items already upserted stay (no rollback)
- The public sync methods never raise; failures come back in SyncResult
- Every run, cancelled or failed included, is written to sync_logs

Called by: routers/sync.py, scheduler.py
Depends on: connectors/keystone.py, services/batch_processor.py,
            services/cache_store.py, models (SyncLog, PendingUpdate, SyncConfig)
"""

import asyncio
import logging
import time
from datetime import datetime, timedelta, timezone

from ..config import Settings, settings as default_settings
from ..database import session_scope
from ..exceptions import CatalogValidationError, SyncInProgressError
from ..models import PendingUpdate, SyncConfig, SyncLog
from ..schemas.sync import (
    ScheduleDecision,
    SyncConfigOut,
    SyncConfigUpdate,
    SyncLogOut,
    SyncResult,
    SyncStatus,
)
from .batch_processor import BatchProcessor, BatchResult
from .cache_store import InventoryCacheStore

log = logging.getLogger(__name__)

PENDING_OPERATIONS = ("create", "update", "delete")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _utc(dt):
    """Make a naive datetime UTC-aware (no-op if already aware)."""
    if dt is None:
        return None
    return dt.replace(tzinfo=timezone.utc) if dt.tzinfo is None else dt


def decide_schedule(last_sync, last_full_sync, config, now: datetime) -> ScheduleDecision:
    """Pure scheduling rule.

    Full sync when none has ever run or the full interval has elapsed since
    the last full sync; otherwise incremental once the incremental interval
    has elapsed since the last sync of any kind.
    """
    if not config.auto_sync_enabled:
        return ScheduleDecision(should_run=False, reason="Automatic sync is disabled")

    last_sync = _utc(last_sync)
    last_full_sync = _utc(last_full_sync)
    full_every = timedelta(hours=config.full_sync_interval_hours)
    incr_every = timedelta(hours=config.incremental_sync_interval_hours)

    if last_sync is None and last_full_sync is None:
        return ScheduleDecision(should_run=True, sync_type="full", reason="No previous sync", next_due=now)
    if last_full_sync is None or now >= last_full_sync + full_every:
        return ScheduleDecision(
            should_run=True, sync_type="full", reason="Full sync interval elapsed", next_due=now
        )
    if last_sync is None or now >= last_sync + incr_every:
        return ScheduleDecision(
            should_run=True, sync_type="incremental", reason="Incremental sync interval elapsed", next_due=now
        )

    next_due = min(last_full_sync + full_every, last_sync + incr_every)
    return ScheduleDecision(should_run=False, reason="Not due yet", next_due=next_due)


class InventorySyncService:
    def __init__(
        self,
        client,
        session_factory=None,
        settings: Settings | None = None,
        batch_delay_seconds: float | None = None,
        retry_delay_seconds: float | None = None,
        clock=None,
    ):
        self.client = client
        self.session_factory = session_factory
        self.settings = settings or default_settings
        self.batch_delay_seconds = (
            self.settings.sync_batch_delay_seconds if batch_delay_seconds is None else batch_delay_seconds
        )
        self.retry_delay_seconds = (
            self.settings.pending_retry_delay_seconds if retry_delay_seconds is None else retry_delay_seconds
        )
        self._clock = clock or _utcnow
        self._status = SyncStatus()
        self._lock = asyncio.Lock()
        self._cancel_event: asyncio.Event | None = None

    # ── Status ────────────────────────────────────────────────────────

    @property
    def is_running(self) -> bool:
        return self._lock.locked()

    def get_sync_status(self) -> SyncStatus:
        return self._status.model_copy(deep=True)

    def _set_operation(self, label: str, progress: int | None = None) -> None:
        self._status.current_operation = label
        if progress is not None:
            self._status.progress = progress

    def _on_progress(self, done: int, total: int) -> None:
        if total:
            self._status.progress = 20 + int(75 * done / total)
        self._status.current_operation = f"Processed {done} of {total} items"

    def cancel_sync(self) -> bool:
        """Signal the running sync to stop. False when nothing is running."""
        if not self.is_running or self._cancel_event is None:
            return False
        self._cancel_event.set()
        self._status.current_operation = "Cancelled"
        log.info("Inventory sync cancellation requested")
        return True

    # ── Config ────────────────────────────────────────────────────────

    def _load_config(self, db) -> SyncConfig:
        row = db.query(SyncConfig).first()
        if row is None:
            s = self.settings
            row = SyncConfig(
                auto_sync_enabled=True,
                full_sync_interval_hours=s.full_sync_interval_hours,
                incremental_sync_interval_hours=s.incremental_sync_interval_hours,
                batch_size=s.sync_batch_size,
                full_sync_max_items=s.full_sync_max_items,
                incremental_sync_max_items=s.incremental_sync_max_items,
                max_retries=s.pending_max_retries,
            )
            db.add(row)
            db.commit()
            db.refresh(row)
        return row

    def get_sync_config(self) -> SyncConfigOut:
        with session_scope(self.session_factory) as db:
            return SyncConfigOut.model_validate(self._load_config(db))

    def update_sync_config(self, **changes) -> SyncConfigOut:
        update = SyncConfigUpdate(**changes)
        with session_scope(self.session_factory) as db:
            row = self._load_config(db)
            for key, value in update.model_dump(exclude_none=True).items():
                setattr(row, key, value)
            db.commit()
            db.refresh(row)
            log.info(f"Sync config updated: {update.model_dump(exclude_none=True)}")
            return SyncConfigOut.model_validate(row)

    # ── History & scheduling ──────────────────────────────────────────

    def get_sync_logs(self, limit: int = 20) -> list[SyncLogOut]:
        with session_scope(self.session_factory) as db:
            rows = (
                db.query(SyncLog)
                .order_by(SyncLog.started_at.desc(), SyncLog.id.desc())
                .limit(limit)
                .all()
            )
            return [SyncLogOut.model_validate(r) for r in rows]

    def should_run_scheduled_sync(self, now: datetime | None = None) -> ScheduleDecision:
        now = now or self._clock()
        with session_scope(self.session_factory) as db:
            config = self._load_config(db)
            last = db.query(SyncLog).order_by(SyncLog.started_at.desc()).first()
            last_full = (
                db.query(SyncLog)
                .filter(SyncLog.sync_type == "full")
                .order_by(SyncLog.started_at.desc())
                .first()
            )
            decision = decide_schedule(
                last.started_at if last else None,
                last_full.started_at if last_full else None,
                config,
                now,
            )
        if decision.next_due is not None:
            self._status.next_scheduled_sync = decision.next_due
        return decision

    # ── Pending updates ───────────────────────────────────────────────

    def request_part_update(
        self, vcpn: str, requested_by: str = "user", priority: int = 5, operation: str = "update"
    ) -> dict:
        """Queue a single-part refresh. Re-requests keep the higher priority."""
        vcpn = (vcpn or "").strip()
        if not vcpn:
            raise CatalogValidationError("VCPN is required")
        if operation not in PENDING_OPERATIONS:
            raise CatalogValidationError(f"Unknown operation: {operation}")

        with session_scope(self.session_factory) as db:
            row = db.query(PendingUpdate).filter(PendingUpdate.keystone_vcpn == vcpn).first()
            if row is None:
                row = PendingUpdate(
                    keystone_vcpn=vcpn,
                    operation=operation,
                    priority=priority,
                    retry_count=0,
                    requested_by=requested_by,
                )
                db.add(row)
            else:
                row.priority = max(row.priority or 0, priority)
                row.operation = operation
                row.requested_by = requested_by
                row.retry_count = 0
                row.last_error = None
            db.commit()
            log.info(f"Queued {operation} for part {vcpn} (priority {row.priority}, by {requested_by})")
            return {
                "vcpn": row.keystone_vcpn,
                "operation": row.operation,
                "priority": row.priority,
                "retry_count": row.retry_count,
            }

    def pending_count(self) -> int:
        with session_scope(self.session_factory) as db:
            return db.query(PendingUpdate).count()

    async def _apply_pending(
        self,
        db,
        store: InventoryCacheStore,
        row: PendingUpdate,
        max_retries: int,
        result: BatchResult,
        cancel_event: asyncio.Event | None = None,
    ) -> bool:
        """Apply one queued update, retrying with backoff. Returns False when
        cancelled before finishing; the row then stays queued."""
        vcpn = row.keystone_vcpn
        operation = row.operation
        while True:
            if cancel_event is not None and cancel_event.is_set():
                return False
            try:
                if operation == "delete":
                    store.delete(vcpn)
                    outcome = "deleted"
                else:
                    record = await self.client.fetch_single_part(vcpn)
                    if record is None:
                        raise LookupError(f"Part {vcpn} not found in Keystone")
                    record = dict(record, keystone_vcpn=record.get("keystone_vcpn") or vcpn)
                    record["last_synced_at"] = self._clock()
                    outcome = store.upsert(record)
            except Exception as e:
                db.rollback()
                row.retry_count = (row.retry_count or 0) + 1
                row.last_error = str(e)[:1000]
                if row.retry_count > max_retries:
                    log.error(f"Dropping pending {operation} for {vcpn} after {max_retries} retries: {e}")
                    result.errors.append(f"{vcpn}: {e} (dropped after {max_retries} retries)")
                    db.delete(row)
                    db.commit()
                    return True
                db.commit()
                log.warning(f"Pending {operation} for {vcpn} failed (attempt {row.retry_count}): {e}")
                if self.retry_delay_seconds > 0:
                    await asyncio.sleep(self.retry_delay_seconds * 2 ** (row.retry_count - 1))
                continue

            if outcome == "created":
                result.added += 1
            elif outcome == "updated":
                result.updated += 1
            db.delete(row)
            db.commit()
            return True

    async def process_pending_updates(
        self, limit: int | None = None, cancel_event: asyncio.Event | None = None
    ) -> BatchResult:
        """Drain queued part refreshes outside a sync run.

        Holds the same lock as a sync, so it is refused while one is running
        and a sync is refused while it drains.
        """
        if self._lock.locked():
            raise SyncInProgressError("Sync already in progress")
        async with self._lock:
            return await self._drain_pending(limit, cancel_event)

    async def _drain_pending(self, limit: int | None, cancel_event: asyncio.Event | None) -> BatchResult:
        """Highest priority first, oldest first. Caller holds self._lock."""
        result = BatchResult()
        with session_scope(self.session_factory) as db:
            config = self._load_config(db)
            limit = limit or config.incremental_sync_max_items
            max_retries = config.max_retries
            rows = (
                db.query(PendingUpdate)
                .order_by(PendingUpdate.priority.desc(), PendingUpdate.created_at, PendingUpdate.id)
                .limit(limit)
                .all()
            )
            if not rows:
                return result
            log.info(f"Processing {len(rows)} pending part update(s)")
            store = InventoryCacheStore(db)
            for row in rows:
                if not await self._apply_pending(db, store, row, max_retries, result, cancel_event):
                    result.cancelled = True
                    break
                result.processed += 1
        return result

    # ── Sync runs ─────────────────────────────────────────────────────

    async def perform_full_sync(self, max_items: int | None = None, batch_size: int | None = None) -> SyncResult:
        return await self._run("full", max_items, batch_size)

    async def perform_incremental_sync(self, max_items: int | None = None, batch_size: int | None = None) -> SyncResult:
        return await self._run("incremental", max_items, batch_size)

    async def _run(self, sync_type: str, max_items: int | None, batch_size: int | None) -> SyncResult:
        started = self._clock()
        if self._lock.locked():
            log.warning(f"Refusing {sync_type} sync: another sync is in progress")
            return SyncResult(
                success=False,
                sync_type=sync_type,
                message="Sync already in progress",
                errors=("Sync already in progress",),
                started_at=started,
            )

        async with self._lock:
            cancel_event = asyncio.Event()
            self._cancel_event = cancel_event
            previous = self._status
            self._status = SyncStatus(
                is_running=True,
                sync_type=sync_type,
                progress=0,
                current_operation=f"Starting {sync_type} sync",
                last_sync=previous.last_sync,
                last_result=previous.last_result,
                next_scheduled_sync=previous.next_scheduled_sync,
            )
            log.info(f"Starting {sync_type} inventory sync")

            t0 = time.monotonic()
            counters = BatchResult()
            skipped = 0
            status = "completed"
            message = ""
            try:
                config = self.get_sync_config()
                if max_items is None:
                    max_items = (
                        config.full_sync_max_items if sync_type == "full" else config.incremental_sync_max_items
                    )
                batch_size = batch_size or config.batch_size

                if sync_type == "incremental":
                    self._set_operation("Processing pending updates", 5)
                    counters.merge(await self._drain_pending(None, cancel_event))

                if not cancel_event.is_set():
                    self._set_operation("Fetching inventory from Keystone", 10)
                    items = await self.client.fetch_bulk_inventory(max_items, cancel_event=cancel_event)
                    records = []
                    now = self._clock()
                    for item in items:
                        if not item.get("keystone_vcpn"):
                            skipped += 1
                            continue
                        records.append(dict(item, last_synced_at=now))

                    if records and not cancel_event.is_set():
                        self._set_operation(f"Processing {len(records)} items", 20)
                        with session_scope(self.session_factory) as db:
                            processor = BatchProcessor(
                                InventoryCacheStore(db),
                                batch_size=batch_size,
                                delay_seconds=self.batch_delay_seconds,
                                cancel_event=cancel_event,
                                on_progress=self._on_progress,
                            )
                            counters.merge(await processor.process_all(records))

                label = sync_type.capitalize()
                if cancel_event.is_set() or counters.cancelled:
                    status = "cancelled"
                    message = "Sync cancelled"
                else:
                    message = (
                        f"{label} sync completed: {counters.processed} processed, "
                        f"{counters.added} added, {counters.updated} updated"
                    )
                    if skipped:
                        message += f", {skipped} skipped"
                    if counters.errors:
                        message += f", {len(counters.errors)} error(s)"
            except Exception as e:
                log.exception(f"{sync_type.capitalize()} inventory sync failed")
                status = "failed"
                counters.errors.append(str(e))
                message = f"{sync_type.capitalize()} sync failed: {e}"
            finally:
                cancelled = status == "cancelled"
                result = SyncResult(
                    success=status == "completed" and not counters.errors,
                    sync_type=sync_type,
                    message=message or "Sync interrupted",
                    items_processed=counters.processed,
                    items_updated=counters.updated,
                    items_added=counters.added,
                    items_skipped=skipped,
                    errors=tuple(counters.errors),
                    duration_seconds=round(time.monotonic() - t0, 3),
                    started_at=started,
                    cancelled=cancelled,
                )
                self._write_log(result, status)
                self._status = SyncStatus(
                    is_running=False,
                    sync_type=None,
                    progress=100,
                    current_operation="Cancelled" if cancelled else "Idle",
                    last_sync=started,
                    last_result=result,
                    next_scheduled_sync=self._status.next_scheduled_sync,
                )
                self._cancel_event = None

        log.info(
            f"{sync_type.capitalize()} sync {status} in {result.duration_seconds:.1f}s — "
            f"{result.items_processed} processed, {len(result.errors)} error(s)"
        )
        return result

    def _write_log(self, result: SyncResult, status: str) -> None:
        try:
            with session_scope(self.session_factory) as db:
                db.add(
                    SyncLog(
                        source="keystone",
                        sync_type=result.sync_type,
                        status=status,
                        success=result.success,
                        started_at=result.started_at,
                        finished_at=self._clock(),
                        duration_seconds=result.duration_seconds,
                        records_processed=result.items_processed,
                        records_created=result.items_added,
                        records_updated=result.items_updated,
                        records_skipped=result.items_skipped,
                        records_failed=len(result.errors),
                        errors=list(result.errors) or None,
                        message=result.message,
                    )
                )
                db.commit()
        except Exception:
            log.exception("Failed to write sync log")
