"""Dropship order service — places customer orders directly with Keystone.

Business Rules:
- Reference DO-{epoch ms}-{6 random uppercase letters/digits} when absent
- Validation runs before the cooldown and the network, and names the
  first missing field ("Shipping address zipCode is required")
- 1..100 line items, each with a VCPN and quantity > 0
- Billing address defaults to the shipping address; shipping method to
  "standard"
- One order per 2 minutes (configurable), persisted across restarts
- Every placed or failed call is logged to keystone_api_logs under its
  reference, which is how get_order_by_reference finds it
- Admin history keeps the last 20 orders; addresses are never stored

Called by: routers/dropship.py, scheduler.py (daily counter reset)
Depends on: connectors/keystone.py, rate_limit.CooldownLimiter, state_store
"""

import logging
import random
import re
import string
from datetime import datetime, timedelta, timezone

from ..config import Settings, settings as default_settings
from ..database import session_scope
from ..exceptions import KeystoneAPIError, KeystoneConfigError
from ..models import KeystoneApiLog
from ..rate_limit import CooldownLimiter
from ..schemas.dropship import (
    DropshipHistoryEntry,
    DropshipOrderRequest,
    DropshipOrderResponse,
    DropshipStatus,
    OrderLookupOut,
    TrackingInfo,
)
from ..state_store import StateStore
from ..utils import safe_float
from .activity_log import DailyCounter, append_history, read_history, record_api_call

log = logging.getLogger(__name__)

RATE_LIMIT_KEY = "dropship_order_rate_limit"
HISTORY_KEY = "dropship_order_history"
COUNTER_KEY = "dropship_order_daily_count"
HISTORY_SIZE = 20
MAX_ITEMS = 100
ENDPOINT = "orders/place-dropship"

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
_REQUIRED_ADDRESS_FIELDS = (
    ("address1", "address1"),
    ("city", "city"),
    ("state", "state"),
    ("zip_code", "zipCode"),
    ("country", "country"),
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def generate_order_reference(now: datetime | None = None, rng: random.Random | None = None) -> str:
    now = now or _utcnow()
    rng = rng or random.Random()
    suffix = "".join(rng.choice(string.ascii_uppercase + string.digits) for _ in range(6))
    return f"DO-{int(now.timestamp() * 1000)}-{suffix}"


def validate_order(request: DropshipOrderRequest) -> str | None:
    """First validation failure as a user-facing message, or None."""
    if not request.order_reference.strip():
        return "Order reference is required"

    customer = request.customer_info
    if not customer.first_name.strip():
        return "Customer firstName is required"
    if not customer.last_name.strip():
        return "Customer lastName is required"
    if not customer.email.strip():
        return "Customer email is required"
    if not EMAIL_RE.match(customer.email.strip()):
        return "Customer email is not a valid email address"

    if not request.items:
        return "At least one item is required"
    if len(request.items) > MAX_ITEMS:
        return f"Too many items. Maximum {MAX_ITEMS} allowed per order"
    for i, item in enumerate(request.items, start=1):
        if not item.vcpn.strip():
            return f"Item {i}: VCPN is required"
        if item.quantity <= 0:
            return f"Item {i}: quantity must be greater than 0"

    for attr, wire_name in _REQUIRED_ADDRESS_FIELDS:
        if not getattr(request.shipping_address, attr).strip():
            return f"Shipping address {wire_name} is required"
    return None


def _request_summary(request: DropshipOrderRequest) -> dict:
    ship = request.shipping_address
    return {
        "order_reference": request.order_reference,
        "item_count": len(request.items),
        "items": [{"vcpn": i.vcpn, "quantity": i.quantity} for i in request.items],
        "shipping_method": request.shipping_method,
        "ship_to": {"city": ship.city, "state": ship.state, "country": ship.country},
        "po_number": request.po_number or None,
    }


class DropshipOrderService:
    def __init__(
        self,
        client,
        state_store: StateStore,
        session_factory=None,
        settings: Settings | None = None,
        clock=None,
        rng: random.Random | None = None,
    ):
        self.client = client
        self.state_store = state_store
        self.session_factory = session_factory
        self.settings = settings or default_settings
        self._clock = clock or _utcnow
        self._rng = rng or random.Random()
        self.limiter = CooldownLimiter(
            RATE_LIMIT_KEY,
            timedelta(minutes=self.settings.dropship_cooldown_minutes),
            state_store,
            label="Order placement",
        )
        self.counter = DailyCounter(COUNTER_KEY, state_store)

    def _history(self, now: datetime, response: DropshipOrderResponse, item_count: int) -> None:
        entry = DropshipHistoryEntry(
            timestamp=now,
            order_reference=response.order_reference or "",
            success=response.success,
            item_count=item_count,
            total_value=response.total_value,
            keystone_order_id=response.keystone_order_id,
            message=response.message,
        )
        append_history(self.state_store, HISTORY_KEY, entry.model_dump(mode="json"), HISTORY_SIZE)

    async def place_dropship_order(self, request: DropshipOrderRequest | dict) -> DropshipOrderResponse:
        now = self._clock()
        if isinstance(request, dict):
            request = DropshipOrderRequest.model_validate(request)

        reference = request.order_reference.strip() or generate_order_reference(now, self._rng)
        request = request.model_copy(
            update={
                "order_reference": reference,
                "billing_address": request.billing_address or request.shipping_address,
                "shipping_method": request.shipping_method.strip() or "standard",
            }
        )

        error = validate_order(request)
        if error:
            log.info(f"Dropship order {reference} rejected: {error}")
            return DropshipOrderResponse(
                success=False, message=error, order_reference=reference, error_type="validation"
            )

        if not self.limiter.is_action_allowed(now):
            rl_message = self.limiter.message(now)
            return DropshipOrderResponse(
                success=False,
                message=rl_message or "Order placement rate limited",
                order_reference=reference,
                error_type="rate_limited",
                is_rate_limited=True,
                next_allowed_time=self.limiter.next_allowed_time,
                rate_limit_message=rl_message,
            )

        environment = self.client.environment
        summary = _request_summary(request)
        try:
            data = await self.client.place_dropship_order(request.model_dump(by_alias=True))
        except (KeystoneAPIError, KeystoneConfigError) as e:
            log.error(f"Dropship order {reference} failed: {e}")
            record_api_call(
                self.session_factory,
                ENDPOINT,
                request_data=summary,
                success=False,
                error_message=str(e),
                environment=environment,
                reference=reference,
            )
            response = DropshipOrderResponse(
                success=False, message=str(e), order_reference=reference, error_type="remote"
            )
            self._history(now, response, len(request.items))
            return response

        tracking = data.get("trackingInfo") or {}
        response = DropshipOrderResponse(
            success=True,
            message=f"Order {reference} placed with Keystone",
            order_reference=reference,
            keystone_order_id=data.get("keystoneOrderId"),
            total_value=safe_float(data.get("totalValue")),
            estimated_shipping=safe_float(data.get("estimatedShipping")),
            estimated_delivery_date=data.get("estimatedDeliveryDate"),
            tracking_info=TrackingInfo.model_validate(tracking) if isinstance(tracking, dict) else None,
        )
        self.limiter.record_action(now)
        self.counter.increment(now)
        record_api_call(
            self.session_factory,
            ENDPOINT,
            request_data=summary,
            success=True,
            response_data=response.model_dump(mode="json", exclude={"message"}),
            environment=environment,
            reference=reference,
        )
        self._history(now, response, len(request.items))
        log.info(f"Dropship order {reference} placed as {response.keystone_order_id}")
        return response

    def get_order_by_reference(self, reference: str) -> OrderLookupOut | None:
        with session_scope(self.session_factory) as db:
            row = (
                db.query(KeystoneApiLog)
                .filter(KeystoneApiLog.endpoint == ENDPOINT, KeystoneApiLog.reference == reference)
                .order_by(KeystoneApiLog.created_at.desc(), KeystoneApiLog.id.desc())
                .first()
            )
            if row is None:
                return None
            return OrderLookupOut(
                order_reference=reference,
                success=row.success,
                created_at=row.created_at,
                request_data=row.request_data,
                response_data=row.response_data,
                error_message=row.error_message,
            )

    def get_status(self, now: datetime | None = None) -> DropshipStatus:
        now = now or self._clock()
        state = self.limiter.state(now)
        return DropshipStatus(
            is_rate_limited=state.is_rate_limited,
            last_order_time=state.last_action_time,
            next_allowed_time=state.next_allowed_time,
            seconds_remaining=state.seconds_remaining,
            rate_limit_message=state.message,
            total_orders_today=self.counter.value(now),
            recent_orders=[
                DropshipHistoryEntry.model_validate(e) for e in read_history(self.state_store, HISTORY_KEY)
            ],
        )

    def clear_rate_limit(self) -> None:
        self.limiter.clear()

    def reset_daily_counters(self) -> None:
        self.counter.reset()
