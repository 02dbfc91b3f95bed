"""Audit log of Keystone price-check and dropship-order calls."""

from datetime import datetime, timezone

from sqlalchemy import JSON, Boolean, Column, Index, Integer, String, Text

from ..database import UTCDateTime
from .base import Base


class KeystoneApiLog(Base):
    """Request/response summary only. Tokens and full addresses are never stored."""

    __tablename__ = "keystone_api_logs"
    id = Column(Integer, primary_key=True)
    endpoint = Column(String(100), nullable=False)
    method = Column(String(10), nullable=False, default="POST")
    reference = Column(String(100), index=True)
    request_data = Column(JSON)
    success = Column(Boolean, nullable=False, default=False)
    response_data = Column(JSON)
    error_message = Column(Text)
    environment = Column(String(20))
    created_at = Column(UTCDateTime, default=lambda: datetime.now(timezone.utc))

    __table_args__ = (Index("ix_keystone_api_logs_endpoint_time", "endpoint", "created_at"),)
