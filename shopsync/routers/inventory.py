"""
routers/inventory.py — Local inventory cache browsing and CSV/XLSX upload

Business Rules:
- Listing is paginated and searchable across VCPN, SKU, name and brand
- Delete is the only path that removes inventory rows
- Uploads: .csv/.tsv/.txt/.xlsx up to max_upload_size_mb; the file is
  imported inline and the finished ledger row is returned

Called by: main.py (router mount)
Depends on: database, dependencies, services/cache_store.py,
            services/csv_import_service.py
"""

from fastapi import APIRouter, Depends, File, HTTPException, Query, Request, UploadFile
from sqlalchemy.orm import Session

from ..config import settings
from ..database import get_db
from ..dependencies import ServiceContainer, get_services
from ..exceptions import NotFoundError
from ..file_utils import ALLOWED_EXTENSIONS
from ..rate_limit import limiter
from ..schemas.common import OkResponse
from ..schemas.imports import ImportBatchOut
from ..schemas.inventory import InventoryItemOut, InventoryPage
from ..services.cache_store import InventoryCacheStore
from ..utils.sanitize import scrub_model

router = APIRouter()


@router.get("/api/inventory", response_model=InventoryPage)
async def list_inventory(
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    search: str | None = Query(None, max_length=100),
    db: Session = Depends(get_db),
):
    items, total = InventoryCacheStore(db).list_items(limit=limit, offset=offset, search=search)
    return InventoryPage(
        items=[InventoryItemOut.model_validate(i) for i in items],
        total=total,
        limit=limit,
        offset=offset,
    )


@router.post("/api/inventory/upload", response_model=ImportBatchOut)
@limiter.limit("10/minute")
async def upload_inventory(
    request: Request,
    file: UploadFile = File(...),
    services: ServiceContainer = Depends(get_services),
):
    filename = file.filename or "upload.csv"
    if not filename.lower().endswith(ALLOWED_EXTENSIONS):
        raise HTTPException(400, f"Unsupported file type. Allowed: {', '.join(ALLOWED_EXTENSIONS)}")
    content = await file.read()
    if len(content) > settings.max_upload_size_mb * 1024 * 1024:
        raise HTTPException(413, f"File too large. Maximum {settings.max_upload_size_mb} MB")
    if not content:
        raise HTTPException(400, "Uploaded file is empty")

    batch = services.csv_import.create_batch(filename, len(content))
    result = await services.csv_import.import_file(content, batch.id, filename=filename)
    return scrub_model(result)


@router.get("/api/inventory/imports", response_model=list[ImportBatchOut])
async def list_import_batches(
    limit: int = Query(20, ge=1, le=200),
    services: ServiceContainer = Depends(get_services),
):
    return services.csv_import.list_batches(limit)


@router.get("/api/inventory/imports/{batch_id}", response_model=ImportBatchOut)
async def get_import_batch(batch_id: int, services: ServiceContainer = Depends(get_services)):
    return services.csv_import.get_batch(batch_id)


@router.get("/api/inventory/{vcpn}", response_model=InventoryItemOut)
async def get_inventory_item(vcpn: str, db: Session = Depends(get_db)):
    item = InventoryCacheStore(db).get(vcpn)
    if item is None:
        raise NotFoundError(f"Inventory item {vcpn} not found")
    return item


@router.delete("/api/inventory/{vcpn}", response_model=OkResponse)
async def delete_inventory_item(vcpn: str, db: Session = Depends(get_db)):
    if not InventoryCacheStore(db).delete(vcpn):
        raise NotFoundError(f"Inventory item {vcpn} not found")
    return OkResponse(message=f"Deleted {vcpn}")
