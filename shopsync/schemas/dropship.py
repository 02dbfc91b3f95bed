"""
schemas/dropship.py — Dropship order shapes

Wire names are camelCase (orderReference, zipCode), matching the Keystone
proxy. Fields default to empty values: the order service checks required
fields itself so a missing value is reported by name ("Shipping address
zipCode is required") instead of as a generic 422.

Called by: services/dropship_order_service.py, routers/dropship.py
Depends on: pydantic
"""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class CustomerInfo(_CamelModel):
    first_name: str = ""
    last_name: str = ""
    email: str = ""
    phone: str = ""
    company: str = ""


class Address(_CamelModel):
    address1: str = ""
    address2: str = ""
    city: str = ""
    state: str = ""
    zip_code: str = ""
    country: str = ""


class DropshipOrderItem(_CamelModel):
    vcpn: str = ""
    quantity: int = 0
    unit_price: float | None = None
    description: str = ""


class DropshipOrderRequest(_CamelModel):
    order_reference: str = ""
    customer_info: CustomerInfo = Field(default_factory=CustomerInfo)
    shipping_address: Address = Field(default_factory=Address)
    billing_address: Address | None = None
    items: list[DropshipOrderItem] = Field(default_factory=list)
    shipping_method: str = ""
    special_instructions: str = ""
    po_number: str = ""


class TrackingInfo(_CamelModel):
    carrier: str | None = None
    tracking_number: str | None = None
    tracking_url: str | None = None


class DropshipOrderResponse(_CamelModel):
    success: bool
    message: str = ""
    order_reference: str | None = None
    keystone_order_id: str | None = None
    total_value: float | None = None
    estimated_shipping: float | None = None
    estimated_delivery_date: str | None = None
    tracking_info: TrackingInfo | None = None
    error_type: str | None = None  # validation | rate_limited | remote
    is_rate_limited: bool = False
    next_allowed_time: datetime | None = None
    rate_limit_message: str | None = None


class DropshipHistoryEntry(BaseModel):
    timestamp: datetime
    order_reference: str
    success: bool
    item_count: int = 0
    total_value: float | None = None
    keystone_order_id: str | None = None
    message: str = ""


class DropshipStatus(BaseModel):
    is_rate_limited: bool
    last_order_time: datetime | None = None
    next_allowed_time: datetime | None = None
    seconds_remaining: int = 0
    rate_limit_message: str | None = None
    total_orders_today: int = 0
    recent_orders: list[DropshipHistoryEntry] = Field(default_factory=list)


class OrderLookupOut(BaseModel):
    order_reference: str
    success: bool
    created_at: datetime | None = None
    request_data: dict | None = None
    response_data: dict | None = None
    error_message: str | None = None
