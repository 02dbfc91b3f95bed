"""
tests/test_keystone_client.py — Keystone connector against a mocked proxy

Covers: bearer auth and endpoint shapes (httpx.MockTransport), payload
normalization, VCPN validation before any request, data-source resolution
per environment, development fallback, production fail-fast, cancellation
of the bulk fetch, and the simulated source.

Called by: pytest
Depends on: shopsync.connectors.keystone
"""

import asyncio
import json
import random

import httpx
import pytest

from shopsync.config import Settings
from shopsync.connectors.keystone import (
    SIMULATED_CATALOG_SIZE,
    KeystoneClient,
    SimulatedKeystoneSource,
    extract_items,
    transform_item,
    validate_vcpns,
)
from shopsync.exceptions import CatalogValidationError, KeystoneAPIError, KeystoneConfigError
from shopsync.state_store import MemoryStateStore, set_environment

PROXY = "https://proxy.test/api/keystone"


def _settings(**overrides) -> Settings:
    values = dict(
        keystone_proxy_url=PROXY,
        keystone_security_token_dev="dev-token-123",
        keystone_security_token_prod="prod-token-456",
        keystone_environment="development",
        keystone_timeout_seconds=5,
    )
    values.update(overrides)
    return Settings(**values)


def _client(handler, settings=None, store=None) -> tuple[KeystoneClient, list[httpx.Request]]:
    seen: list[httpx.Request] = []

    def _record(request: httpx.Request):
        seen.append(request)
        return handler(request)

    http = httpx.AsyncClient(transport=httpx.MockTransport(_record))
    client = KeystoneClient(
        settings=settings or _settings(),
        state_store=store or MemoryStateStore(),
        http_client=http,
        simulated=SimulatedKeystoneSource(random.Random(7)),
    )
    return client, seen


# ── Payload helpers ───────────────────────────────────────────────────


def test_extract_items_accepts_known_envelopes():
    assert extract_items([{"vcpn": "A"}]) == [{"vcpn": "A"}]
    assert extract_items({"items": [1]}) == [1]
    assert extract_items({"data": [2]}) == [2]
    assert extract_items({"unexpected": True}) == []
    assert extract_items(None) == []


def test_transform_item_maps_aliases_and_defaults():
    item = transform_item({
        "id": "VC-9",
        "partNumber": "P-9",
        "title": "Brake Pad",
        "manufacturer": "Bosch",
        "retail_price": "49.99",
        "wholesale_price": "20",
        "qty": "7",
        "stock_status": "Limited",
    })
    assert item["keystone_vcpn"] == "VC-9"
    assert item["sku"] == "P-9"
    assert item["name"] == "Brake Pad"
    assert item["brand"] == "Bosch"
    assert item["list_price"] == 49.99
    assert item["cost"] == 20.0
    assert item["quantity_available"] == 7
    assert item["availability"] == "Limited"
    assert item["category"] == "Uncategorized"


def test_transform_item_without_vcpn():
    assert transform_item({"name": "Orphan"})["keystone_vcpn"] is None


@pytest.mark.parametrize(
    "vcpns,message",
    [
        ([], "No VCPNs provided"),
        ([f"V{i}" for i in range(13)], "Too many VCPNs. Maximum 12 allowed per request"),
        (["V1", "  "], "Some VCPNs are empty or invalid"),
    ],
)
def test_validate_vcpns_rejects(vcpns, message):
    with pytest.raises(CatalogValidationError, match=message):
        validate_vcpns(vcpns)


def test_validate_vcpns_strips():
    assert validate_vcpns([" A1 ", "B2"]) == ["A1", "B2"]


# ── Live source over MockTransport ────────────────────────────────────


@pytest.mark.asyncio
async def test_bulk_inventory_uses_bearer_token_and_limit():
    client, seen = _client(lambda r: httpx.Response(200, json={"items": [{"vcpn": "V1", "name": "One"}]}))

    items = await client.fetch_bulk_inventory(25)

    assert [i["keystone_vcpn"] for i in items] == ["V1"]
    request = seen[0]
    assert request.method == "GET"
    assert request.url.path == "/api/keystone/inventory"
    assert request.url.params["limit"] == "25"
    assert request.headers["authorization"] == "Bearer dev-token-123"


@pytest.mark.asyncio
async def test_bulk_pricing_posts_vcpns():
    def handler(request):
        body = json.loads(request.content)
        return httpx.Response(200, json=[{"vcpn": v, "cost": 5, "listPrice": 9.5} for v in body["vcpns"]])

    client, seen = _client(handler)
    results = await client.fetch_bulk_pricing(["A1", "B2"])

    assert [r.vcpn for r in results] == ["A1", "B2"]
    assert results[0].list_price == 9.5
    assert seen[0].url.path == "/api/keystone/pricing/bulk"
    assert json.loads(seen[0].content) == {"vcpns": ["A1", "B2"], "includeAvailability": True}


@pytest.mark.asyncio
async def test_pricing_validation_happens_before_request():
    client, seen = _client(lambda r: httpx.Response(200, json=[]))
    with pytest.raises(CatalogValidationError):
        await client.fetch_bulk_pricing([f"V{i}" for i in range(13)])
    assert seen == []


@pytest.mark.asyncio
async def test_single_part_not_found_returns_none():
    client, seen = _client(lambda r: httpx.Response(404, json={"error": "not found"}))
    assert await client.fetch_single_part("MISSING") is None
    assert seen[0].url.path == "/api/keystone/inventory/MISSING"


@pytest.mark.asyncio
async def test_single_part_requires_vcpn():
    client, seen = _client(lambda r: httpx.Response(200, json={}))
    with pytest.raises(CatalogValidationError):
        await client.fetch_single_part("  ")
    assert seen == []


@pytest.mark.asyncio
async def test_dropship_order_posts_payload():
    client, seen = _client(lambda r: httpx.Response(200, json={"keystoneOrderId": "KS-1"}))
    data = await client.place_dropship_order({"orderReference": "DO-1", "items": []})
    assert data == {"keystoneOrderId": "KS-1"}
    assert seen[0].method == "POST"
    assert seen[0].url.path == "/api/keystone/orders/place-dropship"


# ── Environment handling ──────────────────────────────────────────────


@pytest.mark.asyncio
async def test_development_falls_back_to_simulated_on_proxy_error():
    client, seen = _client(lambda r: httpx.Response(500, json={"error": "boom"}))

    items = await client.fetch_bulk_inventory(5)

    assert len(seen) == 1
    assert len(items) == 5
    assert items[0]["keystone_vcpn"] == "VCPN000001"


@pytest.mark.asyncio
async def test_production_raises_proxy_error():
    store = MemoryStateStore()
    set_environment(store, "production")
    client, seen = _client(lambda r: httpx.Response(503, json={"message": "Keystone down"}), store=store)

    with pytest.raises(KeystoneAPIError) as exc_info:
        await client.fetch_bulk_inventory(5)

    assert str(exc_info.value) == "Keystone down"
    assert exc_info.value.status == 503
    assert seen[0].headers["authorization"] == "Bearer prod-token-456"


@pytest.mark.asyncio
async def test_production_without_credentials_fails_fast():
    client, seen = _client(
        lambda r: httpx.Response(200, json=[]),
        settings=_settings(keystone_environment="production", keystone_security_token_prod=""),
    )
    with pytest.raises(KeystoneConfigError):
        await client.fetch_bulk_inventory(5)
    assert seen == []
    assert client.data_source_name() == "unconfigured"


@pytest.mark.asyncio
async def test_development_without_credentials_uses_simulated():
    client, seen = _client(
        lambda r: httpx.Response(200, json=[]),
        settings=_settings(keystone_proxy_url=""),
    )
    items = await client.fetch_bulk_inventory(3)
    assert len(items) == 3
    assert seen == []
    assert client.data_source_name() == "simulated"


def test_environment_switch_is_read_per_call():
    store = MemoryStateStore()
    client, _ = _client(lambda r: httpx.Response(200, json=[]), store=store)
    assert client.environment == "development"
    set_environment(store, "production")
    assert client.environment == "production"
    assert client.data_source_name() == "live"


@pytest.mark.asyncio
async def test_error_message_falls_back_to_status_line():
    store = MemoryStateStore()
    set_environment(store, "production")
    client, _ = _client(lambda r: httpx.Response(502, text="<html>bad gateway</html>"), store=store)
    with pytest.raises(KeystoneAPIError, match="HTTP 502: Bad Gateway"):
        await client.fetch_bulk_inventory(1)


# ── Cancellation ──────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_bulk_fetch_returns_empty_when_already_cancelled():
    client, seen = _client(lambda r: httpx.Response(200, json=[]))
    event = asyncio.Event()
    event.set()
    assert await client.fetch_bulk_inventory(10, cancel_event=event) == []
    assert seen == []


@pytest.mark.asyncio
async def test_bulk_fetch_aborts_when_cancelled_mid_flight():
    class SlowSource(SimulatedKeystoneSource):
        async def fetch_inventory(self, limit):
            await asyncio.sleep(5)
            return await super().fetch_inventory(limit)

    client = KeystoneClient(
        settings=_settings(keystone_proxy_url=""),
        state_store=MemoryStateStore(),
        simulated=SlowSource(random.Random(1)),
    )
    event = asyncio.Event()
    asyncio.get_running_loop().call_later(0.05, event.set)

    items = await asyncio.wait_for(client.fetch_bulk_inventory(10, cancel_event=event), timeout=2)

    assert items == []


# ── Simulated source ──────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_simulated_inventory_is_capped():
    source = SimulatedKeystoneSource(random.Random(3))
    items = await source.fetch_inventory(SIMULATED_CATALOG_SIZE + 500)
    assert len(items) == SIMULATED_CATALOG_SIZE
    assert len({i["keystone_vcpn"] for i in items}) == SIMULATED_CATALOG_SIZE


@pytest.mark.asyncio
async def test_simulated_order_totals_line_items():
    source = SimulatedKeystoneSource(random.Random(3))
    data = await source.place_order({"items": [{"vcpn": "A", "quantity": 2, "unitPrice": 10}]})
    assert data["totalValue"] == 20.0
    assert data["estimatedShipping"] == 7.99
    assert data["keystoneOrderId"].startswith("KS-")
    assert data["trackingInfo"]["carrier"] == "UPS"


@pytest.mark.asyncio
async def test_health_check_reports_unconfigured_without_request():
    client, seen = _client(lambda r: httpx.Response(200, json={}), settings=_settings(keystone_proxy_url=""))
    health = await client.check_health()
    assert health["configured"] is False
    assert health["reachable"] is False
    assert seen == []


@pytest.mark.asyncio
async def test_health_check_reports_proxy_error():
    client, _ = _client(lambda r: httpx.Response(503, json={"error": "maintenance"}))
    health = await client.check_health()
    assert health["configured"] is True
    assert health["reachable"] is False
    assert health["error"] == "maintenance"
