"""
dependencies.py — Service wiring and shared FastAPI dependencies

Every stateful service (sync status, cooldowns, cancel signal) is built
once in the app lifespan and parked on app.state.services. Routers reach
them through the get_* dependencies below, and tests swap the whole
container with app.dependency_overrides[get_services].

Business Rules:
- One ServiceContainer per process; no module-level service singletons
- All services share one KeystoneClient and one local state store

Called by: main.py (lifespan), routers/*, scheduler.py
Depends on: config, database, state_store, connectors/keystone.py, services/
"""

from dataclasses import dataclass

from fastapi import HTTPException, Request

from .config import Settings, settings as default_settings
from .connectors.keystone import KeystoneClient
from .services.csv_import_service import CsvImportService
from .services.dropship_order_service import DropshipOrderService
from .services.price_check_service import PriceCheckService
from .services.sync_service import InventorySyncService
from .state_store import JsonFileStateStore, StateStore
from .utils.sanitize import register_secrets


@dataclass
class ServiceContainer:
    settings: Settings
    state_store: StateStore
    client: KeystoneClient
    sync: InventorySyncService
    pricing: PriceCheckService
    dropship: DropshipOrderService
    csv_import: CsvImportService
    session_factory: object = None


def build_services(
    settings: Settings | None = None,
    session_factory=None,
    state_store: StateStore | None = None,
    client: KeystoneClient | None = None,
) -> ServiceContainer:
    settings = settings or default_settings
    register_secrets(settings)
    if session_factory is None:
        from .database import SessionLocal

        session_factory = SessionLocal
    state_store = state_store or JsonFileStateStore(settings.state_file)
    client = client or KeystoneClient(settings=settings, state_store=state_store)
    return ServiceContainer(
        settings=settings,
        state_store=state_store,
        client=client,
        sync=InventorySyncService(client, session_factory, settings=settings),
        pricing=PriceCheckService(client, state_store, session_factory, settings=settings),
        dropship=DropshipOrderService(client, state_store, session_factory, settings=settings),
        csv_import=CsvImportService(session_factory, settings=settings),
        session_factory=session_factory,
    )


def get_services(request: Request) -> ServiceContainer:
    services = getattr(request.app.state, "services", None)
    if services is None:
        raise HTTPException(503, "Services are not initialized")
    return services
