"""Batch processor — feeds records to the cache store in fixed-size batches.

Business Rules:
- Items are processed one at a time, batches strictly in order
- A failing item is recorded as "<natural key>: <error>" and skipped; the
  batch carries on
- processed counts every item attempted, failed or not
- The delay is a plain sleep between batches (none after the last one)
- Cancellation is checked before every item and every batch; work already
  upserted stays upserted

Called by: services/sync_service.py
Depends on: services/cache_store.py (anything with upsert(record) -> str)
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Callable

log = logging.getLogger(__name__)


@dataclass
class BatchResult:
    processed: int = 0
    updated: int = 0
    added: int = 0
    errors: list[str] = field(default_factory=list)
    batches: int = 0
    cancelled: bool = False

    def merge(self, other: "BatchResult") -> None:
        self.processed += other.processed
        self.updated += other.updated
        self.added += other.added
        self.errors.extend(other.errors)
        self.batches += other.batches
        self.cancelled = self.cancelled or other.cancelled


def record_key(item: dict) -> str:
    return str(item.get("keystone_vcpn") or item.get("sku") or "unknown")


class BatchProcessor:
    def __init__(
        self,
        store,
        batch_size: int = 100,
        delay_seconds: float = 0.1,
        cancel_event: asyncio.Event | None = None,
        on_progress: Callable[[int, int], None] | None = None,
    ):
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        self.store = store
        self.batch_size = batch_size
        self.delay_seconds = delay_seconds
        self.cancel_event = cancel_event
        self.on_progress = on_progress

    def _cancelled(self) -> bool:
        return self.cancel_event is not None and self.cancel_event.is_set()

    def split(self, items: list) -> list[list]:
        return [items[i:i + self.batch_size] for i in range(0, len(items), self.batch_size)]

    async def process_batch(self, items: list[dict]) -> BatchResult:
        result = BatchResult(batches=1)
        for item in items:
            if self._cancelled():
                result.cancelled = True
                break
            result.processed += 1
            try:
                outcome = self.store.upsert(item)
            except Exception as e:
                key = record_key(item)
                log.warning(f"Upsert failed for {key}: {e}")
                result.errors.append(f"{key}: {e}")
                continue
            if outcome == "created":
                result.added += 1
            else:
                result.updated += 1
        return result

    async def process_all(self, items: list[dict]) -> BatchResult:
        total = len(items)
        batches = self.split(items)
        result = BatchResult()
        for index, batch in enumerate(batches):
            if self._cancelled():
                result.cancelled = True
                break
            result.merge(await self.process_batch(batch))
            if self.on_progress is not None:
                self.on_progress(result.processed, total)
            if result.cancelled:
                break
            if index < len(batches) - 1 and self.delay_seconds > 0:
                await asyncio.sleep(self.delay_seconds)
        log.debug(
            f"Processed {result.processed}/{total} items in {result.batches} batch(es), "
            f"{len(result.errors)} error(s)"
        )
        return result
