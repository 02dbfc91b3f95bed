"""
routers/admin.py — Keystone environment switch and proxy health

Business Rules:
- The environment flag (development | production) is persisted in the
  local state store and read by KeystoneClient on every call
- Switching to production without production credentials is allowed but
  reported as data_source "unconfigured"; calls will then fail loudly

Called by: main.py (router mount)
Depends on: dependencies, state_store
"""

from fastapi import APIRouter, Depends
from loguru import logger

from ..dependencies import ServiceContainer, get_services
from ..exceptions import CatalogValidationError
from ..schemas.common import EnvironmentOut, EnvironmentUpdate
from ..state_store import set_environment
from ..utils.sanitize import scrub

router = APIRouter()


def _environment_out(services: ServiceContainer) -> EnvironmentOut:
    client = services.client
    environment = client.environment
    return EnvironmentOut(
        environment=environment,
        live_credentials=client.has_credentials(environment),
        data_source=client.data_source_name(),
    )


@router.get("/api/admin/environment", response_model=EnvironmentOut)
async def get_environment(services: ServiceContainer = Depends(get_services)):
    return _environment_out(services)


@router.put("/api/admin/environment", response_model=EnvironmentOut)
async def update_environment(body: EnvironmentUpdate, services: ServiceContainer = Depends(get_services)):
    try:
        set_environment(services.state_store, body.environment)
    except ValueError as e:
        raise CatalogValidationError(str(e)) from e
    out = _environment_out(services)
    if out.environment == "production" and not out.live_credentials:
        logger.warning("Switched to production without production Keystone credentials")
    return out


@router.get("/api/admin/keystone/health")
async def keystone_health(services: ServiceContainer = Depends(get_services)):
    return scrub(await services.client.check_health())
