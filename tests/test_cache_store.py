"""
tests/test_cache_store.py — Upsert-by-natural-key on the inventory table

Called by: pytest
Depends on: shopsync.services.cache_store
"""

import pytest

from shopsync.models import InventoryItem
from shopsync.services.cache_store import InventoryCacheStore


def test_upsert_creates_then_updates(db_session):
    store = InventoryCacheStore(db_session)

    assert store.upsert({"keystone_vcpn": "V1", "sku": "S1", "name": "Widget", "cost": 5}) == "created"
    assert store.upsert({"keystone_vcpn": "V1", "sku": "S1", "name": "Widget", "cost": 6}) == "updated"

    assert store.count() == 1
    assert store.get("V1").cost == 6


def test_upsert_is_idempotent(db_session):
    store = InventoryCacheStore(db_session)
    record = {"keystone_vcpn": "V1", "name": "Widget", "list_price": 19.5}
    store.upsert(record)
    store.upsert(record)
    store.upsert(record)
    assert store.count() == 1


def test_sku_match_updates_csv_row_and_fills_vcpn(db_session):
    store = InventoryCacheStore(db_session)
    store.upsert({"sku": "S1", "name": "From CSV"})

    assert store.upsert({"keystone_vcpn": "V1", "sku": "S1", "name": "From Keystone"}) == "updated"

    item = db_session.query(InventoryItem).one()
    assert item.keystone_vcpn == "V1"
    assert item.name == "From Keystone"


def test_vcpn_hit_wins_over_sku_hit(db_session):
    store = InventoryCacheStore(db_session)
    store.upsert({"keystone_vcpn": "V1", "sku": "S1", "name": "one"})
    store.upsert({"keystone_vcpn": "V2", "sku": "S2", "name": "two"})

    store.upsert({"keystone_vcpn": "V2", "sku": "S1", "name": "two-renamed"}, match_sku=True)

    assert store.get("V2").name == "two-renamed"
    assert store.get("V1").name == "one"


def test_shared_part_number_keeps_vendor_parts_apart(db_session):
    store = InventoryCacheStore(db_session)

    assert store.upsert({"keystone_vcpn": "ABC12345", "sku": "12345", "name": "Acme part"}) == "created"
    assert store.upsert({"keystone_vcpn": "XYZ12345", "sku": "12345", "name": "Xyz part"}) == "created"

    assert store.count() == 2
    assert store.get("ABC12345").name == "Acme part"
    assert store.get("XYZ12345").name == "Xyz part"


def test_csv_row_without_vcpn_updates_keyed_row(db_session):
    store = InventoryCacheStore(db_session)
    store.upsert({"keystone_vcpn": "ABC12345", "sku": "12345", "name": "Acme part"})
    store.upsert({"sku": "12345", "name": "From CSV"}, match_sku=True)

    assert store.count() == 1
    assert store.get("ABC12345").name == "From CSV"


def test_csv_sku_match_reaches_row_with_other_vcpn(db_session):
    store = InventoryCacheStore(db_session)
    store.upsert({"keystone_vcpn": "ABC12345", "sku": "12345", "name": "Acme part"})

    assert store.upsert({"keystone_vcpn": "NEW1", "sku": "12345", "name": "Renamed"}, match_sku=True) == "updated"
    assert store.count() == 1


def test_none_key_does_not_clear_stored_key(db_session):
    store = InventoryCacheStore(db_session)
    store.upsert({"keystone_vcpn": "V1", "sku": "S1", "name": "Widget"})
    store.upsert({"keystone_vcpn": None, "sku": "S1", "name": "Widget v2"})
    item = store.get("V1")
    assert item is not None
    assert item.name == "Widget v2"


def test_unknown_fields_ignored(db_session):
    store = InventoryCacheStore(db_session)
    store.upsert({"keystone_vcpn": "V1", "name": "Widget", "not_a_column": 42, "id": 999})
    item = store.get("V1")
    assert item.id != 999


def test_record_without_keys_rejected(db_session):
    with pytest.raises(ValueError):
        InventoryCacheStore(db_session).upsert({"name": "Nameless"})


def test_delete(db_session):
    store = InventoryCacheStore(db_session)
    store.upsert({"keystone_vcpn": "V1", "name": "Widget"})
    assert store.delete("V1") is True
    assert store.delete("V1") is False
    assert store.count() == 0


def test_list_items_search_and_paging(db_session):
    store = InventoryCacheStore(db_session)
    for i in range(1, 6):
        store.upsert({"keystone_vcpn": f"V{i}", "name": f"Part {i}", "brand": "Ford" if i % 2 else "Dodge"})

    items, total = store.list_items(limit=2, offset=0)
    assert total == 5
    assert [i.keystone_vcpn for i in items] == ["V1", "V2"]

    items, total = store.list_items(search="dodge")
    assert total == 2
    assert {i.keystone_vcpn for i in items} == {"V2", "V4"}
