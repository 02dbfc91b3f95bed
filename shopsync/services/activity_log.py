"""Bookkeeping shared by the price check and dropship order services.

  - record_api_call: one keystone_api_logs row per outbound call
  - DailyCounter: per-day call count kept in the local state store
  - append_history: bounded most-recent-first list in the local state store

None of these may break the call they describe, so failures are logged and
the caller carries on.
"""

import logging
from datetime import datetime

from ..database import session_scope
from ..models import KeystoneApiLog
from ..state_store import StateStore

log = logging.getLogger(__name__)


def record_api_call(
    session_factory,
    endpoint: str,
    *,
    request_data: dict | None,
    success: bool,
    response_data: dict | None = None,
    error_message: str | None = None,
    environment: str | None = None,
    reference: str | None = None,
    method: str = "POST",
) -> None:
    try:
        with session_scope(session_factory) as db:
            db.add(
                KeystoneApiLog(
                    endpoint=endpoint,
                    method=method,
                    reference=reference,
                    request_data=request_data,
                    success=success,
                    response_data=response_data,
                    error_message=error_message,
                    environment=environment,
                )
            )
            db.commit()
    except Exception:
        log.exception(f"Failed to write Keystone API log for {endpoint}")


class DailyCounter:
    """Calls made today, reset lazily when the date rolls over."""

    def __init__(self, key: str, store: StateStore):
        self.key = key
        self.store = store

    def _read(self) -> dict:
        try:
            data = self.store.get(self.key) or {}
        except Exception as e:
            log.warning(f"Failed to read counter '{self.key}': {e}")
            return {}
        return data if isinstance(data, dict) else {}

    def value(self, now: datetime) -> int:
        data = self._read()
        if data.get("date") != now.date().isoformat():
            return 0
        return int(data.get("count") or 0)

    def increment(self, now: datetime) -> int:
        count = self.value(now) + 1
        try:
            self.store.set(self.key, {"date": now.date().isoformat(), "count": count})
        except Exception as e:
            log.warning(f"Failed to save counter '{self.key}': {e}")
        return count

    def reset(self) -> None:
        try:
            self.store.delete(self.key)
        except Exception as e:
            log.warning(f"Failed to reset counter '{self.key}': {e}")


def read_history(store: StateStore, key: str) -> list[dict]:
    try:
        data = store.get(key) or []
    except Exception as e:
        log.warning(f"Failed to read history '{key}': {e}")
        return []
    return data if isinstance(data, list) else []


def append_history(store: StateStore, key: str, entry: dict, keep: int) -> None:
    entries = [entry] + read_history(store, key)
    try:
        store.set(key, entries[:keep])
    except Exception as e:
        log.warning(f"Failed to save history '{key}': {e}")
