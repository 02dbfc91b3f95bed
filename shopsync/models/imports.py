"""CSV import ledger."""

from datetime import datetime, timezone

from sqlalchemy import BigInteger, Column, Index, Integer, String, Text

from ..database import UTCDateTime
from .base import Base

IMPORT_STATUSES = ("pending", "processing", "completed", "completed_with_errors", "failed")


class ImportBatch(Base):
    """One uploaded file. Counters only grow while the batch is processing."""

    __tablename__ = "inventory_import_batches"
    id = Column(Integer, primary_key=True)
    batch_name = Column(String(255), nullable=False)
    file_name = Column(String(255), nullable=False)
    file_size = Column(BigInteger, default=0)
    total_records = Column(Integer, default=0)
    processed_records = Column(Integer, default=0)
    inserted_records = Column(Integer, default=0)
    updated_records = Column(Integer, default=0)
    error_records = Column(Integer, default=0)
    status = Column(String(30), nullable=False, default="pending")
    started_at = Column(UTCDateTime, default=lambda: datetime.now(timezone.utc))
    completed_at = Column(UTCDateTime)
    created_by = Column(String(100), default="admin")
    error_log = Column(Text)
    processing_notes = Column(Text)

    __table_args__ = (Index("ix_import_batches_status", "status", "started_at"),)
