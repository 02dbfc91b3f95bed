"""
tests/test_rate_limiting.py — Tests for rate limiting behavior

Covers: slowapi endpoint limiter configuration and Redis fallback, the
CooldownLimiter (record, lazy expiry, persistence, fail-open) and
format_duration.

Called by: pytest
Depends on: shopsync.rate_limit, shopsync.state_store
"""

from datetime import datetime, timedelta, timezone
from unittest.mock import patch

import pytest

from shopsync.rate_limit import CooldownLimiter, format_duration
from shopsync.state_store import MemoryStateStore, StateStore

T0 = datetime(2026, 3, 2, 9, 0, 0, tzinfo=timezone.utc)


class BrokenStore(StateStore):
    def get(self, key, default=None):
        raise OSError("disk on fire")

    def set(self, key, value):
        raise OSError("disk on fire")

    def delete(self, key):
        raise OSError("disk on fire")


# ── Endpoint limiter ──────────────────────────────────────────────────


def test_limiter_is_configured():
    """Rate limiter module exports a Limiter with key_func."""
    from shopsync.rate_limit import limiter
    assert limiter is not None
    assert limiter._key_func is not None


def test_limiter_uses_remote_address():
    """Key function is get_remote_address (IP-based limiting)."""
    from slowapi.util import get_remote_address
    from shopsync.rate_limit import limiter
    assert limiter._key_func is get_remote_address


def test_resolve_storage_no_redis():
    """_resolve_storage returns None when Redis is not configured."""
    with patch("shopsync.rate_limit.settings") as mock_settings:
        mock_settings.cache_backend = "memory"
        mock_settings.redis_url = ""
        from shopsync.rate_limit import _resolve_storage
        assert _resolve_storage() is None


def test_resolve_storage_redis_unavailable():
    """_resolve_storage returns None when Redis ping fails."""
    import redis as redis_lib

    with patch("shopsync.rate_limit.settings") as mock_settings:
        mock_settings.cache_backend = "redis"
        mock_settings.redis_url = "redis://localhost:6379/15"
        with patch.object(redis_lib, "from_url") as mock_from_url:
            mock_from_url.return_value.ping.side_effect = ConnectionError
            from shopsync.rate_limit import _resolve_storage
            assert _resolve_storage() is None


def test_resolve_storage_redis_available():
    import redis as redis_lib

    with patch("shopsync.rate_limit.settings") as mock_settings:
        mock_settings.cache_backend = "redis"
        mock_settings.redis_url = "redis://localhost:6379/15"
        with patch.object(redis_lib, "from_url") as mock_from_url:
            mock_from_url.return_value.ping.return_value = True
            from shopsync.rate_limit import _resolve_storage
            assert _resolve_storage() == "redis://localhost:6379/15"


# ── CooldownLimiter ───────────────────────────────────────────────────


def _limiter(store=None, minutes=60) -> CooldownLimiter:
    return CooldownLimiter("test_limit", timedelta(minutes=minutes), store or MemoryStateStore(), label="Price check")


def test_fresh_limiter_allows_action():
    lim = _limiter()
    assert lim.is_action_allowed(T0) is True
    assert lim.time_remaining_seconds(T0) == 0
    assert lim.message(T0) is None


def test_record_action_blocks_until_cooldown_elapses():
    lim = _limiter()
    lim.record_action(T0)

    assert lim.is_action_allowed(T0) is False
    assert lim.time_remaining_seconds(T0) == 3600
    assert lim.next_allowed_time == T0 + timedelta(hours=1)

    later = T0 + timedelta(minutes=59, seconds=30)
    assert lim.is_action_allowed(later) is False
    assert lim.time_remaining_seconds(later) == 30


def test_limit_self_clears_on_read_after_cooldown():
    store = MemoryStateStore()
    lim = _limiter(store)
    lim.record_action(T0)

    after = T0 + timedelta(hours=1)
    assert lim.is_action_allowed(after) is True
    assert lim.last_action_time is None
    assert lim.next_allowed_time is None
    assert store.get("test_limit") == {"last_action_time": None, "next_allowed_time": None}


def test_remaining_seconds_rounds_up():
    lim = _limiter(minutes=2)
    lim.record_action(T0)
    assert lim.time_remaining_seconds(T0 + timedelta(seconds=119, milliseconds=400)) == 1


def test_state_reports_countdown_message():
    lim = _limiter()
    lim.record_action(T0)
    state = lim.state(T0 + timedelta(minutes=55, seconds=50))
    assert state.is_rate_limited is True
    assert state.seconds_remaining == 250
    assert state.message == "Price check rate limited. Next allowed in 4m 10s."


def test_state_persists_across_instances():
    store = MemoryStateStore()
    _limiter(store).record_action(T0)

    reloaded = _limiter(store)
    assert reloaded.is_action_allowed(T0 + timedelta(minutes=10)) is False
    assert reloaded.last_action_time == T0


def test_reload_after_expiry_clears_state():
    store = MemoryStateStore()
    _limiter(store).record_action(datetime.now(timezone.utc) - timedelta(hours=2))

    reloaded = _limiter(store)
    assert reloaded.next_allowed_time is None
    assert reloaded.is_action_allowed() is True


def test_clear_resets_limit():
    lim = _limiter()
    lim.record_action(T0)
    lim.clear()
    assert lim.is_action_allowed(T0) is True


def test_broken_store_fails_open():
    lim = _limiter(BrokenStore())
    assert lim.is_action_allowed(T0) is True
    lim.record_action(T0)
    # In-process state still applies even though nothing could be saved
    assert lim.is_action_allowed(T0 + timedelta(minutes=1)) is False


@pytest.mark.parametrize(
    "seconds,expected",
    [(0, "0s"), (-5, "0s"), (9, "9s"), (250, "4m 10s"), (120, "2m 0s"), (3900, "1h 5m"), (7200, "2h 0m")],
)
def test_format_duration(seconds, expected):
    assert format_duration(seconds) == expected
