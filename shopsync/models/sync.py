"""Sync models — run log, queued single-part refreshes, schedule config."""

from datetime import datetime, timezone

from sqlalchemy import JSON, Boolean, Column, Float, Index, Integer, String, Text

from ..database import UTCDateTime
from .base import Base


def _now():
    return datetime.now(timezone.utc)


class SyncLog(Base):
    """One row per sync run. Written once at the end of the run, never updated."""

    __tablename__ = "sync_logs"
    id = Column(Integer, primary_key=True)
    source = Column(String(50), nullable=False, default="keystone")
    sync_type = Column(String(20), nullable=False)  # full | incremental
    status = Column(String(20), nullable=False)  # completed | failed | cancelled
    success = Column(Boolean, nullable=False, default=False)
    started_at = Column(UTCDateTime, nullable=False)
    finished_at = Column(UTCDateTime)
    duration_seconds = Column(Float)
    records_processed = Column(Integer, default=0)
    records_created = Column(Integer, default=0)
    records_updated = Column(Integer, default=0)
    records_skipped = Column(Integer, default=0)
    records_failed = Column(Integer, default=0)
    errors = Column(JSON)
    message = Column(Text)
    created_at = Column(UTCDateTime, default=_now)

    __table_args__ = (Index("ix_sync_source_time", "source", "started_at"),)


class PendingUpdate(Base):
    """A queued refresh of a single part, drained by the incremental sync."""

    __tablename__ = "pending_updates"
    id = Column(Integer, primary_key=True)
    keystone_vcpn = Column(String(100), nullable=False, unique=True)
    operation = Column(String(20), nullable=False, default="update")  # create | update | delete
    priority = Column(Integer, nullable=False, default=5)
    retry_count = Column(Integer, nullable=False, default=0)
    requested_by = Column(String(100))
    last_error = Column(Text)
    created_at = Column(UTCDateTime, default=_now)
    updated_at = Column(UTCDateTime, default=_now, onupdate=_now)

    __table_args__ = (Index("ix_pending_priority", "priority", "created_at"),)


class SyncConfig(Base):
    """Single-row schedule and sizing config, editable from the admin panel."""

    __tablename__ = "sync_config"
    id = Column(Integer, primary_key=True)
    auto_sync_enabled = Column(Boolean, nullable=False, default=True)
    full_sync_interval_hours = Column(Integer, nullable=False, default=24)
    incremental_sync_interval_hours = Column(Integer, nullable=False, default=6)
    batch_size = Column(Integer, nullable=False, default=100)
    full_sync_max_items = Column(Integer, nullable=False, default=10000)
    incremental_sync_max_items = Column(Integer, nullable=False, default=500)
    max_retries = Column(Integer, nullable=False, default=3)
    updated_at = Column(UTCDateTime, default=_now, onupdate=_now)
