"""
routers/dropship.py — Dropship orders placed with Keystone

Business Rules:
- Same status mapping as price checks: 400 validation, 429 cooldown,
  502 Keystone failure, body always a DropshipOrderResponse (camelCase)
- Lookup by reference reads the Keystone API log

Called by: main.py (router mount)
Depends on: dependencies (ServiceContainer), services/dropship_order_service.py
"""

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from ..dependencies import ServiceContainer, get_services
from ..exceptions import NotFoundError
from ..schemas.common import OkResponse
from ..schemas.dropship import DropshipOrderRequest
from ..utils.sanitize import scrub_model
from .pricing import ERROR_STATUS

router = APIRouter()


@router.post("/api/dropship/orders")
async def place_order(body: DropshipOrderRequest, services: ServiceContainer = Depends(get_services)):
    result = await services.dropship.place_dropship_order(body)
    status_code = 201 if result.success else ERROR_STATUS.get(result.error_type, 500)
    return JSONResponse(status_code=status_code, content=scrub_model(result))


@router.get("/api/dropship/status")
async def dropship_status(services: ServiceContainer = Depends(get_services)):
    return scrub_model(services.dropship.get_status())


@router.get("/api/dropship/orders/{reference}")
async def get_order(reference: str, services: ServiceContainer = Depends(get_services)):
    found = services.dropship.get_order_by_reference(reference)
    if found is None:
        raise NotFoundError(f"No order found with reference {reference}")
    return scrub_model(found)


@router.post("/api/dropship/clear-rate-limit", response_model=OkResponse)
async def clear_dropship_rate_limit(services: ServiceContainer = Depends(get_services)):
    services.dropship.clear_rate_limit()
    return OkResponse(message="Dropship order rate limit cleared")
