"""Inventory cache store — upsert-by-natural-key access to the inventory table.

Business Rules:
- Natural key is keystone_vcpn; rows imported from CSV without one key on sku
- Keystone records (sync, pending) match on vcpn; sku only finds rows that
  have no vcpn yet, so vendor parts sharing a part number stay apart
- CSV rows (match_sku=True) use one OR query (vcpn = X OR sku = Y); a vcpn
  hit wins over a sku hit
- One commit per record so a bad row never takes its neighbours down with it
- Sync and import never delete; delete() is the explicit removal path

Called by: services/batch_processor.py, services/sync_service.py,
           services/csv_import_service.py, routers/inventory.py
Depends on: models.InventoryItem
"""

import logging

from sqlalchemy import or_
from sqlalchemy.orm import Session

from ..models import InventoryItem

log = logging.getLogger(__name__)

_KEY_FIELDS = ("keystone_vcpn", "sku")
_WRITABLE = frozenset(
    c.name for c in InventoryItem.__table__.columns
) - {"id", "created_at", "updated_at"}


class InventoryCacheStore:
    def __init__(self, db: Session):
        self.db = db

    def find_existing(self, vcpn: str | None, sku: str | None, match_sku: bool = False) -> InventoryItem | None:
        if vcpn and not match_sku:
            item = self.get(vcpn)
            if item is None and sku:
                item = (
                    self.db.query(InventoryItem)
                    .filter(InventoryItem.sku == sku, InventoryItem.keystone_vcpn.is_(None))
                    .first()
                )
            return item

        clauses = []
        if vcpn:
            clauses.append(InventoryItem.keystone_vcpn == vcpn)
        if sku:
            clauses.append(InventoryItem.sku == sku)
        if not clauses:
            return None
        rows = self.db.query(InventoryItem).filter(or_(*clauses)).limit(2).all()
        if len(rows) > 1 and vcpn:
            for row in rows:
                if row.keystone_vcpn == vcpn:
                    return row
        return rows[0] if rows else None

    def upsert(self, record: dict, match_sku: bool = False) -> str:
        """Insert or update one record. Returns "created" or "updated".

        Keys not on the inventory table are ignored. A None natural key never
        overwrites a stored one. With ``match_sku`` a sku hit counts even when
        the stored row already carries a different vcpn (CSV imports).
        """
        vcpn = record.get("keystone_vcpn") or None
        sku = record.get("sku") or None
        if not vcpn and not sku:
            raise ValueError("Record has neither keystone_vcpn nor sku")

        try:
            item = self.find_existing(vcpn, sku, match_sku=match_sku)
            outcome = "updated"
            if item is None:
                item = InventoryItem()
                self.db.add(item)
                outcome = "created"
            for key, value in record.items():
                if key not in _WRITABLE:
                    continue
                if key in _KEY_FIELDS and not value:
                    continue
                setattr(item, key, value)
            if item.name is None:
                item.name = ""
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        return outcome

    def get(self, vcpn: str) -> InventoryItem | None:
        return self.db.query(InventoryItem).filter(InventoryItem.keystone_vcpn == vcpn).first()

    def delete(self, vcpn: str) -> bool:
        item = self.get(vcpn)
        if item is None:
            return False
        try:
            self.db.delete(item)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        log.info(f"Deleted inventory item {vcpn}")
        return True

    def count(self) -> int:
        return self.db.query(InventoryItem).count()

    def list_items(self, limit: int = 50, offset: int = 0, search: str | None = None) -> tuple[list[InventoryItem], int]:
        q = self.db.query(InventoryItem)
        if search:
            term = f"%{search.strip()}%"
            q = q.filter(
                or_(
                    InventoryItem.keystone_vcpn.ilike(term),
                    InventoryItem.sku.ilike(term),
                    InventoryItem.name.ilike(term),
                    InventoryItem.brand.ilike(term),
                )
            )
        total = q.count()
        items = q.order_by(InventoryItem.id).offset(offset).limit(limit).all()
        return items, total
