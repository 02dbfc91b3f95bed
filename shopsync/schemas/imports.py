"""
schemas/imports.py — CSV import ledger output

Called by: routers/inventory.py
Depends on: pydantic
"""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict


class ImportBatchOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    batch_name: str
    file_name: str
    file_size: int | None = 0
    total_records: int = 0
    processed_records: int = 0
    inserted_records: int = 0
    updated_records: int = 0
    error_records: int = 0
    status: str
    started_at: datetime | None = None
    completed_at: datetime | None = None
    created_by: str | None = None
    error_log: str | None = None
    processing_notes: str | None = None
