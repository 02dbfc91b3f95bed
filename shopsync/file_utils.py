"""Shared file parsing utilities for inventory CSV/Excel imports.

Used by:
  - services/csv_import_service.py: import_file
  - routers/inventory.py: upload validation (allowed extensions)
"""

import csv
import io
import logging

from .exceptions import CatalogValidationError
from .utils import float_or_zero, int_or_default, parse_bool

log = logging.getLogger(__name__)

ALLOWED_EXTENSIONS = (".csv", ".tsv", ".txt", ".xlsx")


def parse_tabular_file(content: bytes, filename: str) -> list[dict]:
    """Parse CSV/TSV/Excel file bytes into a list of row dicts.

    All header keys are stripped and lowercased.
    All values are stripped strings.
    Raises CatalogValidationError when the file cannot be read at all.
    """
    fname = (filename or "").lower()
    try:
        if fname.endswith(".xlsx"):
            return _parse_excel(content)
        delimiter = "\t" if fname.endswith(".tsv") else ","
        return _parse_csv(content, delimiter)
    except Exception as e:
        log.warning(f"File parse error ({filename}): {e}")
        raise CatalogValidationError(f"Could not parse {filename}: {e}") from e


def _parse_excel(content: bytes) -> list[dict]:
    """Parse Excel bytes into list of row dicts."""
    import openpyxl

    wb = openpyxl.load_workbook(io.BytesIO(content), read_only=True, data_only=True)
    try:
        ws = wb.active
        rows = []
        headers = []
        for i, row in enumerate(ws.iter_rows(values_only=True)):
            if i == 0:
                headers = [str(c if c is not None else "").strip().lower() for c in row]
                continue
            if not headers or not any(v not in (None, "") for v in row):
                continue
            values = [str(v if v is not None else "").strip() for v in row]
            rows.append({h: v for h, v in zip(headers, values) if h})
        return rows
    finally:
        wb.close()


def _parse_csv(content: bytes, delimiter: str = ",") -> list[dict]:
    """Parse CSV/TSV bytes into list of row dicts. Quoted fields may hold commas."""
    text = content.decode("utf-8-sig", errors="replace")
    reader = csv.DictReader(io.StringIO(text), delimiter=delimiter)
    rows = []
    for row in reader:
        cleaned = {
            k.strip().lower(): (v or "").strip()
            for k, v in row.items()
            if k and not isinstance(v, list)
        }
        if any(cleaned.values()):
            rows.append(cleaned)
    return rows


# ── Inventory row mapping ───────────────────────────────────────────────

# Lowercased CSV header -> (InventoryItem field, converter)
_TEXT = "text"
_FLOAT = "float"
_INT = "int"
_BOOL = "bool"

INVENTORY_COLUMNS = {
    "vendorname": ("supplier", _TEXT),
    "vcpn": ("keystone_vcpn", _TEXT),
    "vendorcode": ("vendor_code", _TEXT),
    "partnumber": ("sku", _TEXT),
    "manufacturerpartno": ("manufacturer_part_no", _TEXT),
    "jobberprice": ("list_price", _FLOAT),
    "cost": ("cost", _FLOAT),
    "upsable": ("upsable", _BOOL),
    "corecharge": ("core_charge", _FLOAT),
    "isnonreturnable": ("is_non_returnable", _BOOL),
    "prop65toxicity": ("prop65_toxicity", _TEXT),
    "upccode": ("upc_code", _TEXT),
    "isoversized": ("is_oversized", _BOOL),
    "weight": ("weight", _FLOAT),
    "height": ("height", _FLOAT),
    "length": ("length", _FLOAT),
    "width": ("width", _FLOAT),
    "aaiacode": ("aaia_code", _TEXT),
    "ishazmat": ("is_hazmat", _BOOL),
    "ischemical": ("is_chemical", _BOOL),
    "ups_ground_assessorial": ("ups_ground_assessorial", _FLOAT),
    "us_ltl": ("us_ltl", _FLOAT),
    "totalqty": ("quantity_available", _INT),
    "kitcomponents": ("kit_components", _TEXT),
    "iskit": ("is_kit", _BOOL),
}

# Warehouse quantity columns -> key in regional_qty
REGIONAL_QTY_COLUMNS = {
    "eastqty": "east",
    "midwestqty": "midwest",
    "californiaqty": "california",
    "southeastqty": "southeast",
    "pacificnwqty": "pacific_nw",
    "texasqty": "texas",
    "greatlakesqty": "great_lakes",
    "floridaqty": "florida",
}


def _convert(value: str, kind: str):
    if kind == _FLOAT:
        return float_or_zero(value)
    if kind == _INT:
        return int_or_default(value, 0)
    if kind == _BOOL:
        return parse_bool(value)
    return value or None


def map_inventory_row(row: dict) -> dict:
    """Map one parsed row (lowercased headers) onto InventoryItem fields.

    Unknown headers are ignored. Numbers that don't parse become 0; only the
    literal "true" (any case) counts as a true boolean.
    """
    norm = {str(k).strip().lower(): v for k, v in row.items() if k}
    record = {}
    for header, (field, kind) in INVENTORY_COLUMNS.items():
        if header in norm:
            record[field] = _convert(norm[header], kind)

    if "longdescription" in norm:
        desc = norm["longdescription"] or ""
        record["name"] = desc[:500]
        record["description"] = desc or None

    if "caseqty" in norm:
        record["case_qty"] = int_or_default(norm["caseqty"], 1) or 1

    regional = {
        key: int_or_default(norm[header], 0)
        for header, key in REGIONAL_QTY_COLUMNS.items()
        if header in norm
    }
    if regional:
        record["regional_qty"] = regional
    return record
