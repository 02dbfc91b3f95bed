"""
schemas/pricing.py — Price check request/response shapes

Business Rules:
- A request carries 1..12 VCPNs; the service validates, not the schema,
  so that the caller gets the same error text over HTTP and in-process
- Rate-limited responses have empty results and a countdown message

Called by: services/price_check_service.py, routers/pricing.py
Depends on: pydantic
"""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field


class PriceCheckRequest(BaseModel):
    vcpns: list[str] = Field(default_factory=list)


class PriceResult(BaseModel):
    vcpn: str
    cost: float = 0.0
    list_price: float = 0.0
    availability: str = ""
    currency: str = "USD"
    last_updated: datetime | None = None


class PriceCheckResponse(BaseModel):
    success: bool
    results: list[PriceResult] = Field(default_factory=list)
    message: str = ""
    request_id: str | None = None
    error_type: str | None = None  # validation | rate_limited | remote
    is_rate_limited: bool = False
    next_allowed_time: datetime | None = None
    rate_limit_message: str | None = None


class PriceCheckHistoryEntry(BaseModel):
    timestamp: datetime
    request_id: str | None = None
    vcpns: list[str]
    success: bool
    result_count: int = 0
    message: str = ""


class PriceCheckStatus(BaseModel):
    is_rate_limited: bool
    last_check_time: datetime | None = None
    next_allowed_time: datetime | None = None
    seconds_remaining: int = 0
    rate_limit_message: str | None = None
    total_checks_today: int = 0
    recent_checks: list[PriceCheckHistoryEntry] = Field(default_factory=list)
