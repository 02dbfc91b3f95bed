"""Keystone connector — inventory, pricing and dropship calls via the proxy.

Keystone only accepts calls from a whitelisted IP, so every request goes
through our fixed-IP proxy with a bearer token. Two data sources sit behind
KeystoneClient:
  - LiveKeystoneSource: real HTTP calls to the proxy.
  - SimulatedKeystoneSource: plausible random data so the admin screens stay
    usable in development without credentials.

Which one serves a call is decided in KeystoneClient._resolve_source() and
nowhere else. Development falls back to the simulated source when
credentials are missing or the proxy fails; production raises instead.
"""

import asyncio
import logging
import random
from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone

import httpx

from ..config import Settings, settings as default_settings
from ..exceptions import CatalogValidationError, KeystoneAPIError, KeystoneConfigError
from ..schemas.pricing import PriceResult
from ..state_store import StateStore, get_environment
from ..utils import float_or_zero, safe_float, safe_int

log = logging.getLogger(__name__)

MAX_PRICING_VCPNS = 12
SIMULATED_CATALOG_SIZE = 1000

_SIM_BRANDS = ["Ford", "Chevy", "Dodge", "Toyota"]
_SIM_CATEGORIES = ["Engine", "Transmission", "Suspension", "Electrical"]
_SIM_AVAILABILITY = ["In Stock", "Limited", "Backorder"]


# ── Payload normalization ─────────────────────────────────────────────


def _first(raw: dict, *keys):
    for key in keys:
        value = raw.get(key)
        if value not in (None, ""):
            return value
    return None


def extract_items(data) -> list:
    """Keystone answers with a bare list, {"items": [...]} or {"data": [...]}."""
    if isinstance(data, list):
        return data
    if isinstance(data, dict):
        for key in ("items", "data", "results"):
            if isinstance(data.get(key), list):
                return data[key]
    return []


def transform_item(raw: dict) -> dict:
    """Map one Keystone inventory item onto InventoryItem column names."""
    vcpn = _first(raw, "vcpn", "keystone_vcpn", "id")
    weight = safe_float(raw.get("weight"))
    return {
        "keystone_vcpn": str(vcpn).strip() if vcpn is not None else None,
        "sku": _first(raw, "part_number", "sku", "partNumber"),
        "name": _first(raw, "name", "title") or "Unnamed Part",
        "description": _first(raw, "description", "desc") or "",
        "brand": _first(raw, "brand", "manufacturer") or "Unknown",
        "cost": float_or_zero(_first(raw, "cost", "wholesale_price")),
        "list_price": float_or_zero(_first(raw, "list_price", "retail_price", "price")),
        "quantity_available": safe_int(_first(raw, "quantity_available", "quantity", "qty")) or 0,
        "category": _first(raw, "category") or "Uncategorized",
        "subcategory": _first(raw, "subcategory", "sub_category"),
        "availability": _first(raw, "availability", "stock_status") or "Unknown",
        "weight": weight,
        "dimensions": _first(raw, "dimensions"),
        "image_url": _first(raw, "image_url", "imageUrl"),
        "specifications": _first(raw, "specifications", "specs"),
    }


def transform_price(raw: dict) -> PriceResult:
    return PriceResult(
        vcpn=str(_first(raw, "vcpn", "id") or ""),
        cost=float_or_zero(raw.get("cost")),
        list_price=float_or_zero(_first(raw, "listPrice", "list_price", "price")),
        availability=str(_first(raw, "availability", "stock_status") or "Unknown"),
        currency=str(raw.get("currency") or "USD"),
        last_updated=datetime.now(timezone.utc),
    )


def validate_vcpns(vcpns) -> list[str]:
    """1..12 non-blank VCPNs, stripped. Raises before anything hits the wire."""
    if not vcpns:
        raise CatalogValidationError("No VCPNs provided")
    if len(vcpns) > MAX_PRICING_VCPNS:
        raise CatalogValidationError(
            f"Too many VCPNs. Maximum {MAX_PRICING_VCPNS} allowed per request"
        )
    cleaned = [str(v).strip() if v is not None else "" for v in vcpns]
    if any(not v for v in cleaned):
        raise CatalogValidationError("Some VCPNs are empty or invalid")
    return cleaned


def _error_message(resp: httpx.Response) -> str:
    try:
        body = resp.json()
    except ValueError:
        body = None
    if isinstance(body, dict):
        for key in ("error", "message", "detail"):
            if body.get(key):
                return str(body[key])
    return f"HTTP {resp.status_code}: {resp.reason_phrase}"


# ── Data sources ──────────────────────────────────────────────────────


class KeystoneSource(ABC):
    name = "base"

    @abstractmethod
    async def fetch_inventory(self, limit: int) -> list[dict]:
        pass

    @abstractmethod
    async def fetch_pricing(self, vcpns: list[str]) -> list[PriceResult]:
        pass

    @abstractmethod
    async def fetch_part(self, vcpn: str) -> dict | None:
        pass

    @abstractmethod
    async def place_order(self, payload: dict) -> dict:
        pass


class LiveKeystoneSource(KeystoneSource):
    """Real calls through the proxy. Every non-2xx becomes KeystoneAPIError."""

    name = "live"

    def __init__(self, base_url: str, token: str, timeout: float = 30, client: httpx.AsyncClient | None = None):
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.timeout = timeout
        self._client = client

    def _http(self) -> httpx.AsyncClient:
        if self._client is not None:
            return self._client
        from ..http_client import http

        return http

    async def _request(self, method: str, path: str, *, allow_404: bool = False, **kwargs):
        url = f"{self.base_url}{path}"
        headers = {
            "Authorization": f"Bearer {self.token}",
            "Content-Type": "application/json",
        }
        try:
            resp = await self._http().request(method, url, headers=headers, timeout=self.timeout, **kwargs)
        except httpx.HTTPError as e:
            raise KeystoneAPIError(f"Keystone proxy unreachable: {e}") from e
        if allow_404 and resp.status_code == 404:
            return None
        if resp.status_code >= 400:
            raise KeystoneAPIError(_error_message(resp), status=resp.status_code)
        try:
            return resp.json()
        except ValueError as e:
            raise KeystoneAPIError(f"Invalid JSON from Keystone proxy: {e}", status=resp.status_code) from e

    async def fetch_inventory(self, limit: int) -> list[dict]:
        data = await self._request("GET", "/inventory", params={"limit": limit})
        return [transform_item(raw) for raw in extract_items(data) if isinstance(raw, dict)]

    async def fetch_pricing(self, vcpns: list[str]) -> list[PriceResult]:
        data = await self._request(
            "POST", "/pricing/bulk", json={"vcpns": vcpns, "includeAvailability": True}
        )
        return [transform_price(raw) for raw in extract_items(data) if isinstance(raw, dict)]

    async def fetch_part(self, vcpn: str) -> dict | None:
        data = await self._request("GET", f"/inventory/{vcpn}", allow_404=True)
        if data is None:
            return None
        if isinstance(data, dict) and isinstance(data.get("item"), dict):
            data = data["item"]
        return transform_item(data) if isinstance(data, dict) else None

    async def place_order(self, payload: dict) -> dict:
        data = await self._request("POST", "/orders/place-dropship", json=payload)
        return data if isinstance(data, dict) else {}

    async def check_health(self) -> bool:
        data = await self._request("GET", "/health")
        return not isinstance(data, dict) or data.get("status", "ok") in ("ok", "healthy")


class SimulatedKeystoneSource(KeystoneSource):
    """Randomized stand-in for the proxy. Pass ``rng`` for reproducible output."""

    name = "simulated"

    def __init__(self, rng: random.Random | None = None):
        self.rng = rng or random.Random()

    def _raw_item(self, i: int) -> dict:
        r = self.rng
        return {
            "vcpn": f"VCPN{i:06d}",
            "partNumber": f"PART{i:04d}",
            "title": f"Simulated Part {i}",
            "description": f"Simulated catalog item {i}",
            "manufacturer": _SIM_BRANDS[i % 4],
            "category": _SIM_CATEGORIES[i % 4],
            "retail_price": round(r.uniform(50, 550), 2),
            "wholesale_price": round(r.uniform(25, 325), 2),
            "quantity_available": r.randint(0, 99),
            "stock_status": r.choice(_SIM_AVAILABILITY),
            "weight": round(r.uniform(1, 51), 2),
            "dimensions": f'{r.randint(5, 24)}"x{r.randint(5, 24)}"x{r.randint(5, 24)}"',
        }

    async def fetch_inventory(self, limit: int) -> list[dict]:
        count = max(0, min(limit, SIMULATED_CATALOG_SIZE))
        return [transform_item(self._raw_item(i)) for i in range(1, count + 1)]

    async def fetch_pricing(self, vcpns: list[str]) -> list[PriceResult]:
        r = self.rng
        return [
            transform_price({
                "vcpn": vcpn,
                "cost": round(r.uniform(50, 550), 2),
                "listPrice": round(r.uniform(100, 700), 2),
                "availability": r.choice(_SIM_AVAILABILITY),
            })
            for vcpn in vcpns
        ]

    async def fetch_part(self, vcpn: str) -> dict | None:
        item = transform_item(self._raw_item(self.rng.randint(1, SIMULATED_CATALOG_SIZE)))
        item["keystone_vcpn"] = vcpn
        return item

    async def place_order(self, payload: dict) -> dict:
        r = self.rng
        total = sum(
            float_or_zero(item.get("unitPrice") or 25.99) * (safe_int(item.get("quantity")) or 0)
            for item in payload.get("items", [])
        )
        delivery = datetime.now(timezone.utc) + timedelta(days=r.randint(3, 7))
        tracking = "1Z" + "".join(r.choice("0123456789ABCDEFGHJKLMNPQRSTUVWXYZ") for _ in range(16))
        return {
            "keystoneOrderId": f"KS-{int(datetime.now(timezone.utc).timestamp() * 1000)}-{r.randint(1000, 9999)}",
            "totalValue": round(total, 2),
            "estimatedShipping": round(total * 0.1 + 5.99, 2),
            "estimatedDeliveryDate": delivery.date().isoformat(),
            "trackingInfo": {
                "carrier": "UPS",
                "trackingNumber": tracking,
                "trackingUrl": f"https://www.ups.com/track?tracknum={tracking}",
            },
        }


# ── Client ────────────────────────────────────────────────────────────


class KeystoneClient:
    """Facade the services talk to. Resolves the data source per call.

    The environment flag is re-read from the state store on every call so an
    admin switch takes effect without a restart.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        state_store: StateStore | None = None,
        http_client: httpx.AsyncClient | None = None,
        simulated: SimulatedKeystoneSource | None = None,
    ):
        self.settings = settings or default_settings
        self.state_store = state_store
        self.http_client = http_client
        self.simulated = simulated or SimulatedKeystoneSource()

    @property
    def environment(self) -> str:
        default = self.settings.keystone_environment
        if self.state_store is None:
            return default
        return get_environment(self.state_store, default)

    def _token(self, environment: str) -> str:
        if environment == "production":
            return self.settings.keystone_security_token_prod
        return self.settings.keystone_security_token_dev

    def has_credentials(self, environment: str | None = None) -> bool:
        environment = environment or self.environment
        return bool(self.settings.keystone_proxy_url and self._token(environment))

    def _resolve_source(self) -> tuple[KeystoneSource, str]:
        environment = self.environment
        if self.has_credentials(environment):
            source = LiveKeystoneSource(
                self.settings.keystone_proxy_url,
                self._token(environment),
                timeout=self.settings.keystone_timeout_seconds,
                client=self.http_client,
            )
            return source, environment
        if environment == "production":
            raise KeystoneConfigError(
                "Keystone proxy URL or production security token is not configured"
            )
        log.info("Keystone credentials missing in development, using simulated data")
        return self.simulated, environment

    def data_source_name(self) -> str:
        try:
            source, _ = self._resolve_source()
        except KeystoneConfigError:
            return "unconfigured"
        return source.name

    async def _call(self, op: str, invoke):
        """Run ``invoke(source)`` on the resolved source with dev fallback."""
        source, environment = self._resolve_source()
        try:
            return await invoke(source)
        except KeystoneAPIError as e:
            if environment == "production" or source is self.simulated:
                log.error(f"Keystone {op} failed: {e}")
                raise
            log.warning(f"Keystone {op} failed in development, falling back to simulated data: {e}")
            return await invoke(self.simulated)

    async def fetch_bulk_inventory(self, limit: int, cancel_event: asyncio.Event | None = None) -> list[dict]:
        """Fetch up to ``limit`` items. Returns [] if ``cancel_event`` fires first."""
        if cancel_event is not None and cancel_event.is_set():
            return []
        fetch = asyncio.ensure_future(self._call("inventory fetch", lambda s: s.fetch_inventory(limit)))
        if cancel_event is None:
            return await fetch

        waiter = asyncio.ensure_future(cancel_event.wait())
        try:
            done, _ = await asyncio.wait({fetch, waiter}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            waiter.cancel()
        if fetch in done:
            return fetch.result()
        fetch.cancel()
        try:
            await fetch
        except asyncio.CancelledError:
            pass
        log.info("Keystone inventory fetch aborted by cancellation")
        return []

    async def fetch_bulk_pricing(self, vcpns: list[str]) -> list[PriceResult]:
        cleaned = validate_vcpns(vcpns)
        return await self._call("pricing", lambda s: s.fetch_pricing(cleaned))

    async def fetch_single_part(self, vcpn: str) -> dict | None:
        vcpn = (vcpn or "").strip()
        if not vcpn:
            raise CatalogValidationError("VCPN is required")
        return await self._call("part lookup", lambda s: s.fetch_part(vcpn))

    async def place_dropship_order(self, payload: dict) -> dict:
        return await self._call("dropship order", lambda s: s.place_order(payload))

    async def check_health(self) -> dict:
        """Probe the proxy. Never raises; reports what it found."""
        environment = self.environment
        result = {
            "environment": environment,
            "configured": self.has_credentials(environment),
            "data_source": self.data_source_name(),
            "reachable": False,
            "error": None,
        }
        if not result["configured"]:
            return result
        source = LiveKeystoneSource(
            self.settings.keystone_proxy_url,
            self._token(environment),
            timeout=min(self.settings.keystone_timeout_seconds, 10),
            client=self.http_client,
        )
        try:
            result["reachable"] = await source.check_health()
        except KeystoneAPIError as e:
            result["error"] = str(e)
        return result
