"""Rate limiting — endpoint throttling plus cooldowns on Keystone calls.

Two unrelated limits live here:
  - limiter: slowapi Limiter for our own HTTP endpoints. Uses Redis when
    configured and reachable, in-memory storage otherwise.
  - CooldownLimiter: "one action per window" guard in front of expensive
    Keystone calls (price check: 1 hour, dropship order: 2 minutes). State
    is persisted to the local state store and expires lazily: every read
    compares now against next_allowed_time, there is no timer.
"""

import math
from datetime import datetime, timedelta, timezone

from loguru import logger
from slowapi import Limiter
from slowapi.util import get_remote_address

from .config import settings
from .schemas.common import RateLimitState
from .state_store import StateStore


def _resolve_storage() -> str | None:
    """Try Redis for distributed rate limiting; fall back to in-memory."""
    if settings.cache_backend != "redis" or not settings.redis_url:
        return None
    try:
        import redis as redis_lib

        r = redis_lib.from_url(settings.redis_url, socket_connect_timeout=2)
        r.ping()
        logger.info("Rate limiter using Redis storage")
        return settings.redis_url
    except Exception:
        logger.warning(
            "Redis unavailable — rate limiter using in-memory storage "
            "(limits won't be shared across workers)"
        )
        return None


limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[settings.rate_limit_default],
    enabled=settings.rate_limit_enabled,
    storage_uri=_resolve_storage(),
)


# ── Cooldown limiter ──────────────────────────────────────────────────


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _parse_ts(value) -> datetime | None:
    if not value:
        return None
    if isinstance(value, datetime):
        dt = value
    else:
        dt = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    return dt if dt.tzinfo else dt.replace(tzinfo=timezone.utc)


def format_duration(seconds: int) -> str:
    """120 -> '2m 0s', 3725 -> '1h 2m', 9 -> '9s'."""
    if seconds <= 0:
        return "0s"
    hours, rest = divmod(int(seconds), 3600)
    minutes, secs = divmod(rest, 60)
    if hours > 0:
        return f"{hours}h {minutes}m"
    if minutes > 0:
        return f"{minutes}m {secs}s"
    return f"{secs}s"


class CooldownLimiter:
    """Allow one action per ``cooldown`` window.

    ``label`` is the human name used in messages ("Price check",
    "Order placement"). Every method takes an optional ``now`` so tests can
    move the clock without sleeping.

    Storage failures are logged and treated as "not limited" — a broken
    state file must not block price checks or orders outright.
    """

    def __init__(self, key: str, cooldown: timedelta, store: StateStore, label: str = "Action"):
        self.key = key
        self.cooldown = cooldown
        self.store = store
        self.label = label
        self.last_action_time: datetime | None = None
        self.next_allowed_time: datetime | None = None
        self._load()

    # ── persistence ──

    def _load(self) -> None:
        try:
            saved = self.store.get(self.key) or {}
            self.last_action_time = _parse_ts(saved.get("last_action_time"))
            self.next_allowed_time = _parse_ts(saved.get("next_allowed_time"))
        except Exception as e:
            logger.warning(f"Failed to load rate limit state '{self.key}': {e}")
            self.last_action_time = None
            self.next_allowed_time = None
        self._refresh()

    def _save(self) -> None:
        try:
            self.store.set(
                self.key,
                {
                    "last_action_time": self.last_action_time.isoformat() if self.last_action_time else None,
                    "next_allowed_time": self.next_allowed_time.isoformat() if self.next_allowed_time else None,
                },
            )
        except Exception as e:
            logger.warning(f"Failed to save rate limit state '{self.key}': {e}")

    # ── lazy expiry ──

    def _refresh(self, now: datetime | None = None) -> None:
        """Clear the limit once now >= next_allowed_time."""
        now = now or _utcnow()
        if self.last_action_time is None:
            if self.next_allowed_time is not None:
                self.next_allowed_time = None
                self._save()
            return
        next_allowed = self.last_action_time + self.cooldown
        if now >= next_allowed:
            self.last_action_time = None
            self.next_allowed_time = None
            self._save()
        elif self.next_allowed_time != next_allowed:
            self.next_allowed_time = next_allowed
            self._save()

    def is_action_allowed(self, now: datetime | None = None) -> bool:
        self._refresh(now)
        return self.next_allowed_time is None

    def time_remaining_seconds(self, now: datetime | None = None) -> int:
        now = now or _utcnow()
        self._refresh(now)
        if self.next_allowed_time is None:
            return 0
        remaining = (self.next_allowed_time - now).total_seconds()
        return max(0, math.ceil(remaining))

    def record_action(self, now: datetime | None = None) -> None:
        now = now or _utcnow()
        self.last_action_time = now
        self.next_allowed_time = now + self.cooldown
        logger.info(f"{self.label} cooldown set, next allowed at {self.next_allowed_time.isoformat()}")
        self._save()

    def clear(self) -> None:
        self.last_action_time = None
        self.next_allowed_time = None
        logger.info(f"{self.label} cooldown cleared")
        self._save()

    def message(self, now: datetime | None = None) -> str | None:
        remaining = self.time_remaining_seconds(now)
        if not remaining:
            return None
        return f"{self.label} rate limited. Next allowed in {format_duration(remaining)}."

    def state(self, now: datetime | None = None) -> RateLimitState:
        now = now or _utcnow()
        remaining = self.time_remaining_seconds(now)
        return RateLimitState(
            is_rate_limited=self.next_allowed_time is not None,
            last_action_time=self.last_action_time,
            next_allowed_time=self.next_allowed_time,
            seconds_remaining=remaining,
            message=self.message(now),
        )
