"""CSV import service — bulk-loads a Keystone catalog export into inventory.

Business Rules:
- One ImportBatch ledger row per uploaded file, created as "pending"
- Rows are processed in chunks (default 1000); after every chunk the ledger
  gets running totals and status "processing"
- Per row: map headers, look up by SKU or VCPN, update if found else insert
- A bad row is counted in error_records and the chunk carries on; a
  database failure abandons the chunk and its unhandled rows count as errors
- Rows with neither PartNumber nor VCPN are errors
- Final status: completed (no errors), completed_with_errors (some rows
  written), failed (unreadable file, or errors and nothing written)
- Imported rows are tagged import_source="csv_upload" with the batch id

Called by: routers/inventory.py
Depends on: file_utils.py, services/cache_store.py, models.ImportBatch
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable

from sqlalchemy.exc import DataError, IntegrityError, SQLAlchemyError

from ..config import Settings, settings as default_settings
from ..database import session_scope
from ..exceptions import CatalogValidationError, NotFoundError
from ..file_utils import map_inventory_row, parse_tabular_file
from ..models import ImportBatch
from ..schemas.imports import ImportBatchOut
from .cache_store import InventoryCacheStore

log = logging.getLogger(__name__)

IMPORT_SOURCE = "csv_upload"
MAX_LOGGED_ERRORS = 100

# Bad data in one row. Anything else (lost connection, locked table) abandons
# the rest of the chunk.
ROW_ERRORS = (ValueError, TypeError, IntegrityError, DataError)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class _Counters:
    processed: int = 0
    inserted: int = 0
    updated: int = 0
    errors: int = 0


class CsvImportService:
    def __init__(
        self,
        session_factory=None,
        settings: Settings | None = None,
        chunk_size: int | None = None,
        chunk_delay_seconds: float | None = None,
        on_progress: Callable[[ImportBatchOut], None] | None = None,
        clock=None,
    ):
        self.session_factory = session_factory
        self.settings = settings or default_settings
        self.chunk_size = chunk_size or self.settings.csv_chunk_size
        self.chunk_delay_seconds = (
            self.settings.csv_chunk_delay_seconds if chunk_delay_seconds is None else chunk_delay_seconds
        )
        self.on_progress = on_progress
        self._clock = clock or _utcnow

    # ── Ledger ────────────────────────────────────────────────────────

    def create_batch(self, file_name: str, file_size: int = 0, created_by: str = "admin") -> ImportBatchOut:
        now = self._clock()
        with session_scope(self.session_factory) as db:
            batch = ImportBatch(
                batch_name=f"CSV Upload - {now:%Y-%m-%d %H:%M:%S}",
                file_name=file_name or "upload.csv",
                file_size=file_size or 0,
                status="pending",
                started_at=now,
                created_by=created_by,
            )
            db.add(batch)
            db.commit()
            db.refresh(batch)
            log.info(f"Created import batch {batch.id} for {batch.file_name}")
            return ImportBatchOut.model_validate(batch)

    def get_batch(self, batch_id: int) -> ImportBatchOut:
        with session_scope(self.session_factory) as db:
            batch = db.get(ImportBatch, batch_id)
            if batch is None:
                raise NotFoundError(f"Import batch {batch_id} not found")
            return ImportBatchOut.model_validate(batch)

    def list_batches(self, limit: int = 20) -> list[ImportBatchOut]:
        with session_scope(self.session_factory) as db:
            rows = (
                db.query(ImportBatch)
                .order_by(ImportBatch.started_at.desc(), ImportBatch.id.desc())
                .limit(limit)
                .all()
            )
            return [ImportBatchOut.model_validate(r) for r in rows]

    def _record_progress(self, db, batch: ImportBatch, counters: _Counters) -> None:
        batch.processed_records = counters.processed
        batch.inserted_records = counters.inserted
        batch.updated_records = counters.updated
        batch.error_records = counters.errors
        batch.status = "processing"
        db.commit()
        if self.on_progress is not None:
            self.on_progress(ImportBatchOut.model_validate(batch))

    # ── Import ────────────────────────────────────────────────────────

    async def import_file(self, content: bytes, batch_id: int, filename: str = "upload.csv") -> ImportBatchOut:
        """Parse ``content`` and upsert every row. Never raises for bad data;
        the outcome is on the returned ledger row."""
        with session_scope(self.session_factory) as db:
            batch = db.get(ImportBatch, batch_id)
            if batch is None:
                raise NotFoundError(f"Import batch {batch_id} not found")

            counters = _Counters()
            error_lines: list[str] = []
            try:
                try:
                    rows = parse_tabular_file(content, filename)
                except CatalogValidationError as e:
                    batch.status = "failed"
                    batch.error_log = str(e)
                    batch.processing_notes = "File could not be parsed"
                    batch.completed_at = self._clock()
                    db.commit()
                    return ImportBatchOut.model_validate(batch)

                batch.total_records = len(rows)
                batch.status = "processing"
                db.commit()
                log.info(f"Import batch {batch_id}: {len(rows)} rows from {filename}")

                store = InventoryCacheStore(db)
                imported_at = self._clock()
                starts = list(range(0, len(rows), self.chunk_size))
                for index, start in enumerate(starts):
                    chunk = rows[start:start + self.chunk_size]
                    handled = 0
                    try:
                        for offset, row in enumerate(chunk):
                            line_no = start + offset + 2  # header is line 1
                            try:
                                self._import_row(store, row, batch_id, imported_at, counters)
                            except ROW_ERRORS as e:
                                counters.errors += 1
                                if len(error_lines) < MAX_LOGGED_ERRORS:
                                    error_lines.append(f"Row {line_no}: {e}")
                            handled += 1
                    except SQLAlchemyError as e:
                        db.rollback()
                        log.exception(f"Import batch {batch_id}: chunk starting at row {start + 2} failed")
                        counters.errors += len(chunk) - handled
                        error_lines.append(f"Chunk starting at row {start + 2}: {e}")

                    self._record_progress(db, batch, counters)
                    if index < len(starts) - 1 and self.chunk_delay_seconds > 0:
                        await asyncio.sleep(self.chunk_delay_seconds)

                self._finalize(batch, counters, error_lines)
            except Exception as e:
                log.exception(f"Import batch {batch_id} failed")
                db.rollback()
                batch.status = "failed"
                batch.error_log = "\n".join(error_lines + [str(e)])
                batch.completed_at = self._clock()
            db.commit()
            log.info(
                f"Import batch {batch_id} {batch.status}: {counters.processed} processed, "
                f"{counters.inserted} inserted, {counters.updated} updated, {counters.errors} errors"
            )
            return ImportBatchOut.model_validate(batch)

    def _import_row(self, store: InventoryCacheStore, row: dict, batch_id: int, imported_at: datetime, counters: _Counters) -> None:
        record = map_inventory_row(row)
        if not record.get("sku") and not record.get("keystone_vcpn"):
            raise ValueError("missing PartNumber and VCPN")
        record["import_batch_id"] = batch_id
        record["import_source"] = IMPORT_SOURCE
        record["last_import_date"] = imported_at
        outcome = store.upsert(record, match_sku=True)
        counters.processed += 1
        if outcome == "created":
            counters.inserted += 1
        else:
            counters.updated += 1

    def _finalize(self, batch: ImportBatch, counters: _Counters, error_lines: list[str]) -> None:
        batch.processed_records = counters.processed
        batch.inserted_records = counters.inserted
        batch.updated_records = counters.updated
        batch.error_records = counters.errors
        batch.completed_at = self._clock()
        if counters.errors == 0:
            batch.status = "completed"
        elif counters.processed > 0:
            batch.status = "completed_with_errors"
        else:
            batch.status = "failed"
        notes = (
            f"Successfully processed {counters.processed} records. "
            f"{counters.inserted} new items added, {counters.updated} items updated."
        )
        if counters.errors:
            notes += f" {counters.errors} records failed."
        batch.processing_notes = notes
        batch.error_log = "\n".join(error_lines) or None
