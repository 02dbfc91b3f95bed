"""
schemas/common.py — Shared response models

Called by: rate_limit.py, services/*, routers/*
Depends on: pydantic
"""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel


class OkResponse(BaseModel):
    ok: bool = True
    message: str = ""


class RateLimitState(BaseModel):
    """Snapshot of a cooldown limiter, recomputed on every read."""

    is_rate_limited: bool = False
    last_action_time: datetime | None = None
    next_allowed_time: datetime | None = None
    seconds_remaining: int = 0
    message: str | None = None


class EnvironmentUpdate(BaseModel):
    environment: str


class EnvironmentOut(BaseModel):
    environment: str
    live_credentials: bool
    data_source: str


class ErrorResponse(BaseModel):
    """Body of every error response (ShopSyncError, HTTPException, 422)."""

    error: str
    status_code: int
    request_id: str = ""
    detail: list | None = None
