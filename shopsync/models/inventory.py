"""Inventory model — local cache of the Keystone catalog plus CSV-imported rows."""

from datetime import datetime, timezone

from sqlalchemy import JSON, Boolean, Column, Float, Index, Integer, String, Text

from ..database import UTCDateTime
from .base import Base

ITEM_STATUSES = ("active", "inactive", "discontinued")


def _now():
    return datetime.now(timezone.utc)


class InventoryItem(Base):
    """One part. Natural key is keystone_vcpn; CSV rows without one key on sku.

    Rows are created on first sync/import and updated in place afterwards.
    Sync and import never delete; removal goes through the explicit delete
    operation on the cache store.
    """

    __tablename__ = "inventory"
    id = Column(Integer, primary_key=True)
    keystone_vcpn = Column(String(100), unique=True)
    sku = Column(String(100), index=True)
    name = Column(String(500), nullable=False, default="")
    description = Column(Text)
    brand = Column(String(255))
    supplier = Column(String(255))
    vendor_code = Column(String(50))
    manufacturer_part_no = Column(String(100))

    cost = Column(Float, default=0)
    list_price = Column(Float, default=0)
    core_charge = Column(Float, default=0)
    quantity_available = Column(Integer, default=0)
    regional_qty = Column(JSON)
    case_qty = Column(Integer, default=1)
    availability = Column(String(50))

    category = Column(String(255))
    subcategory = Column(String(255))

    weight = Column(Float)
    height = Column(Float)
    length = Column(Float)
    width = Column(Float)
    dimensions = Column(String(100))

    upsable = Column(Boolean, default=False)
    is_non_returnable = Column(Boolean, default=False)
    is_oversized = Column(Boolean, default=False)
    is_hazmat = Column(Boolean, default=False)
    is_chemical = Column(Boolean, default=False)
    is_kit = Column(Boolean, default=False)
    kit_components = Column(Text)
    prop65_toxicity = Column(String(255))
    upc_code = Column(String(50))
    aaia_code = Column(String(50))
    ups_ground_assessorial = Column(Float, default=0)
    us_ltl = Column(Float, default=0)

    image_url = Column(String(1000))
    specifications = Column(JSON)
    status = Column(String(20), nullable=False, default="active")

    import_batch_id = Column(Integer, index=True)
    import_source = Column(String(50))
    last_import_date = Column(UTCDateTime)
    last_synced_at = Column(UTCDateTime)
    created_at = Column(UTCDateTime, default=_now)
    updated_at = Column(UTCDateTime, default=_now, onupdate=_now)

    __table_args__ = (
        Index("ix_inventory_brand_category", "brand", "category"),
    )

    def to_dict(self) -> dict:
        return {c.name: getattr(self, c.name) for c in self.__table__.columns}
