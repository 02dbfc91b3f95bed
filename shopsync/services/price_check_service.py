"""Price check service — live Keystone pricing for up to 12 parts per call.

Keystone limits price checks to one per hour per account, so the service
puts a persisted cooldown in front of the call and tells the UI how long to
wait instead of letting the request fail upstream.

Business Rules:
- 1..12 non-blank VCPNs; anything else is refused before the cooldown or
  the network is touched
- One successful check starts the cooldown (default 60 min); failed calls
  do not
- A rate-limited call returns is_rate_limited with a countdown message and
  no results
- Every call that reaches Keystone is written to keystone_api_logs
- Admin history keeps the last 10 checks

Called by: routers/pricing.py, scheduler.py (daily counter reset)
Depends on: connectors/keystone.py, rate_limit.CooldownLimiter, state_store
"""

import logging
from datetime import datetime, timedelta, timezone

from ..config import Settings, settings as default_settings
from ..connectors.keystone import validate_vcpns
from ..exceptions import CatalogValidationError, KeystoneAPIError, KeystoneConfigError
from ..rate_limit import CooldownLimiter
from ..schemas.pricing import PriceCheckHistoryEntry, PriceCheckResponse, PriceCheckStatus
from ..state_store import StateStore
from .activity_log import DailyCounter, append_history, read_history, record_api_call

log = logging.getLogger(__name__)

RATE_LIMIT_KEY = "price_check_rate_limit"
HISTORY_KEY = "price_check_history"
COUNTER_KEY = "price_check_daily_count"
HISTORY_SIZE = 10
ENDPOINT = "pricing/bulk"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PriceCheckService:
    def __init__(
        self,
        client,
        state_store: StateStore,
        session_factory=None,
        settings: Settings | None = None,
        clock=None,
    ):
        self.client = client
        self.state_store = state_store
        self.session_factory = session_factory
        self.settings = settings or default_settings
        self._clock = clock or _utcnow
        self.limiter = CooldownLimiter(
            RATE_LIMIT_KEY,
            timedelta(minutes=self.settings.price_check_cooldown_minutes),
            state_store,
            label="Price check",
        )
        self.counter = DailyCounter(COUNTER_KEY, state_store)

    def _history(self, now: datetime, request_id: str, vcpns: list[str], success: bool, count: int, message: str) -> None:
        entry = PriceCheckHistoryEntry(
            timestamp=now,
            request_id=request_id,
            vcpns=vcpns,
            success=success,
            result_count=count,
            message=message,
        )
        append_history(self.state_store, HISTORY_KEY, entry.model_dump(mode="json"), HISTORY_SIZE)

    async def check_prices(self, vcpns: list[str], request_id: str | None = None) -> PriceCheckResponse:
        now = self._clock()
        try:
            cleaned = validate_vcpns(vcpns)
        except CatalogValidationError as e:
            return PriceCheckResponse(success=False, message=str(e), error_type="validation")

        if not self.limiter.is_action_allowed(now):
            rl_message = self.limiter.message(now)
            log.info(f"Price check refused: {rl_message}")
            return PriceCheckResponse(
                success=False,
                message=rl_message or "Price check rate limited",
                error_type="rate_limited",
                is_rate_limited=True,
                next_allowed_time=self.limiter.next_allowed_time,
                rate_limit_message=rl_message,
            )

        request_id = request_id or f"PC-{int(now.timestamp() * 1000)}"
        environment = self.client.environment
        try:
            results = await self.client.fetch_bulk_pricing(cleaned)
        except (KeystoneAPIError, KeystoneConfigError) as e:
            log.error(f"Price check {request_id} failed: {e}")
            record_api_call(
                self.session_factory,
                ENDPOINT,
                request_data={"vcpns": cleaned, "request_id": request_id},
                success=False,
                error_message=str(e),
                environment=environment,
                reference=request_id,
            )
            self._history(now, request_id, cleaned, False, 0, str(e))
            return PriceCheckResponse(
                success=False, message=str(e), request_id=request_id, error_type="remote"
            )

        self.limiter.record_action(now)
        self.counter.increment(now)
        message = f"Retrieved pricing for {len(results)} part(s)"
        record_api_call(
            self.session_factory,
            ENDPOINT,
            request_data={"vcpns": cleaned, "request_id": request_id},
            success=True,
            response_data={"result_count": len(results)},
            environment=environment,
            reference=request_id,
        )
        self._history(now, request_id, cleaned, True, len(results), message)
        log.info(f"Price check {request_id}: {len(results)} result(s)")
        return PriceCheckResponse(success=True, results=results, message=message, request_id=request_id)

    def get_status(self, now: datetime | None = None) -> PriceCheckStatus:
        now = now or self._clock()
        state = self.limiter.state(now)
        return PriceCheckStatus(
            is_rate_limited=state.is_rate_limited,
            last_check_time=state.last_action_time,
            next_allowed_time=state.next_allowed_time,
            seconds_remaining=state.seconds_remaining,
            rate_limit_message=state.message,
            total_checks_today=self.counter.value(now),
            recent_checks=[
                PriceCheckHistoryEntry.model_validate(e) for e in read_history(self.state_store, HISTORY_KEY)
            ],
        )

    def clear_rate_limit(self) -> None:
        self.limiter.clear()

    def reset_daily_counters(self) -> None:
        self.counter.reset()
