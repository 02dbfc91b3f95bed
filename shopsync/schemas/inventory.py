"""
schemas/inventory.py — Inventory list/detail output

Called by: routers/inventory.py
Depends on: pydantic
"""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict


class InventoryItemOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    keystone_vcpn: str | None = None
    sku: str | None = None
    name: str = ""
    description: str | None = None
    brand: str | None = None
    supplier: str | None = None
    cost: float | None = 0.0
    list_price: float | None = 0.0
    quantity_available: int | None = 0
    regional_qty: dict | None = None
    category: str | None = None
    subcategory: str | None = None
    availability: str | None = None
    status: str = "active"
    image_url: str | None = None
    last_synced_at: datetime | None = None
    updated_at: datetime | None = None


class InventoryPage(BaseModel):
    items: list[InventoryItemOut]
    total: int
    limit: int
    offset: int
