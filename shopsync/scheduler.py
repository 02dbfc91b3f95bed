"""Background scheduler — periodic inventory sync and counter housekeeping.

APScheduler jobs, registered once at startup by configure_scheduler():
  - sync_tick: every scheduler_tick_minutes, asks the sync service whether a
    full or incremental sync is due and runs it
  - pending_updates: every 5 minutes, drains queued single-part refreshes
    when no sync is running
  - daily_counters: at midnight UTC, resets the price check and dropship
    order "today" counters

The sync service owns the scheduling rule; this module only polls it.
"""

import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from .exceptions import SyncInProgressError

log = logging.getLogger(__name__)

scheduler = AsyncIOScheduler(timezone="UTC")


def configure_scheduler(services) -> None:
    """Register all jobs against ``services`` (a dependencies.ServiceContainer)."""
    from .config import settings

    scheduler.add_job(
        _job_sync_tick,
        IntervalTrigger(minutes=settings.scheduler_tick_minutes),
        id="sync_tick",
        args=[services],
        replace_existing=True,
        max_instances=1,
        coalesce=True,
    )
    scheduler.add_job(
        _job_pending_updates,
        IntervalTrigger(minutes=5),
        id="pending_updates",
        args=[services],
        replace_existing=True,
        max_instances=1,
        coalesce=True,
    )
    scheduler.add_job(
        _job_daily_counters,
        CronTrigger(hour=0, minute=0),
        id="daily_counters",
        args=[services],
        replace_existing=True,
    )
    log.info(f"Scheduler configured — sync check every {settings.scheduler_tick_minutes} min")


async def _job_sync_tick(services) -> None:
    sync = services.sync
    if sync.is_running:
        log.debug("Sync tick: a sync is already running, skipping")
        return
    try:
        decision = sync.should_run_scheduled_sync()
    except Exception as e:
        log.error(f"Sync tick: could not evaluate schedule: {e}")
        return
    if not decision.should_run:
        log.debug(f"Sync tick: {decision.reason}")
        return

    log.info(f"Sync tick: starting {decision.sync_type} sync ({decision.reason})")
    if decision.sync_type == "full":
        result = await sync.perform_full_sync()
    else:
        result = await sync.perform_incremental_sync()
    if not result.success:
        log.warning(f"Scheduled {decision.sync_type} sync did not succeed: {result.message}")


async def _job_pending_updates(services) -> None:
    sync = services.sync
    if sync.is_running:
        return
    try:
        if not sync.pending_count():
            return
        result = await sync.process_pending_updates()
    except SyncInProgressError:
        log.info("Pending update job skipped: sync started first")
        return
    except Exception as e:
        log.error(f"Pending update job error: {e}")
        return
    log.info(
        f"Pending updates: {result.processed} processed, {result.added} added, "
        f"{result.updated} updated, {len(result.errors)} dropped"
    )


async def _job_daily_counters(services) -> None:
    services.pricing.reset_daily_counters()
    services.dropship.reset_daily_counters()
    log.info("Daily price check and dropship counters reset")
