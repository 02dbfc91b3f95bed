"""
routers/pricing.py — Live Keystone price checks

Business Rules:
- Validation failures are 400, an active cooldown is 429 (body carries the
  countdown), Keystone failures are 502; the body is always a
  PriceCheckResponse so the UI renders one shape
- Messages are scrubbed of secrets before they leave the service

Called by: main.py (router mount)
Depends on: dependencies (ServiceContainer), services/price_check_service.py
"""

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from ..dependencies import ServiceContainer, get_services
from ..schemas.common import OkResponse
from ..schemas.pricing import PriceCheckRequest
from ..utils.sanitize import scrub_model

router = APIRouter()

ERROR_STATUS = {"validation": 400, "rate_limited": 429, "remote": 502}


@router.post("/api/pricing/check")
async def check_prices(body: PriceCheckRequest, services: ServiceContainer = Depends(get_services)):
    result = await services.pricing.check_prices(body.vcpns)
    status_code = 200 if result.success else ERROR_STATUS.get(result.error_type, 500)
    return JSONResponse(status_code=status_code, content=scrub_model(result))


@router.get("/api/pricing/status")
async def pricing_status(services: ServiceContainer = Depends(get_services)):
    return scrub_model(services.pricing.get_status())


@router.post("/api/pricing/clear-rate-limit", response_model=OkResponse)
async def clear_pricing_rate_limit(services: ServiceContainer = Depends(get_services)):
    services.pricing.clear_rate_limit()
    return OkResponse(message="Price check rate limit cleared")
