"""
app.py — FastAPI application factory and startup lifecycle.

This is the ASGI application object imported by uvicorn.
It wires all services, registers routers, and runs startup initialization.

Usage (via launcher):
    python main.py

Usage (direct uvicorn):
    uvicorn app:app --reload
"""

from __future__ import annotations

import asyncio
import contextlib
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional

from fastapi import FastAPI

from stayboard.controllers.availability_controller import router as availability_router
from stayboard.controllers.booking_controller import router as booking_router
from stayboard.controllers.dashboard_controller import router as dashboard_router
from stayboard.controllers.property_controller import router as property_router
from stayboard.repository.data_repository import DataRepository
from stayboard.services.assignment_service import AssignmentService
from stayboard.services.auth_service import AuthService, PropertyAccessPolicy
from stayboard.services.availability_service import AvailabilityService
from stayboard.services.booking_service import BookingService
from stayboard.services.dashboard_service import DashboardService
from stayboard.services.inventory_service import InventoryService
from stayboard.utils.config import Settings, get_settings
from stayboard.utils.logger import get_logger


logger = get_logger(__name__)


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """
    Build and wire the FastAPI application.

    Instantiates all services with explicit dependency injection via app.state.
    Every dependency is traceable from this function.
    """
    settings = settings or get_settings()

    # --- Repository (SQLite connection factory) ---
    repository = DataRepository(settings)

    # --- Services ---
    auth_service = AuthService(settings=settings)
    inventory_service = InventoryService(repository=repository, settings=settings)
    booking_service = BookingService(repository=repository, settings=settings)
    availability_service = AvailabilityService(repository=repository, settings=settings)
    dashboard_service = DashboardService(repository=repository, settings=settings)
    assignment_service = AssignmentService(
        repository=repository,
        settings=settings,
        booking_service=booking_service,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Run startup initialization before accepting requests."""
        _startup(app)
        sweep_task: asyncio.Task | None = None
        if settings.hold_sweep_interval_seconds > 0:
            sweep_task = asyncio.create_task(
                _hold_sweep_loop(booking_service, settings.hold_sweep_interval_seconds)
            )
        try:
            yield
        finally:
            if sweep_task is not None:
                sweep_task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await sweep_task

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        lifespan=lifespan,
    )

    # --- Routers ---
    app.include_router(dashboard_router)
    app.include_router(property_router)
    app.include_router(booking_router)
    app.include_router(availability_router)

    # --- Inject services into app.state for dependency resolution ---
    app.state.settings = settings
    app.state.repository = repository
    app.state.auth_service = auth_service
    app.state.access_policy = PropertyAccessPolicy()
    app.state.inventory_service = inventory_service
    app.state.booking_service = booking_service
    app.state.availability_service = availability_service
    app.state.dashboard_service = dashboard_service
    app.state.assignment_service = assignment_service

    return app


def _startup(app: FastAPI) -> None:
    """
    Idempotent startup sequence. Safe to re-run on server restarts.

    The schema must exist before the demo property is seeded; seeding is
    skipped when any property already exists.
    """
    repository: DataRepository = app.state.repository
    settings: Settings = app.state.settings

    logger.info("Startup: initializing database schema | path=%s", repository.database_path)
    repository.initialize_database()

    if settings.seed_demo_data:
        seeded = repository.seed_demo_data(owner_id="admin")
        logger.info("Startup: demo data %s", "seeded" if seeded else "already present")

    logger.info("Startup complete | hold_sweep_interval_seconds=%s", settings.hold_sweep_interval_seconds)


async def _hold_sweep_loop(booking_service: BookingService, interval_seconds: int) -> None:
    """Release expired tentative holds every ``interval_seconds`` until cancelled."""
    while True:
        await asyncio.sleep(interval_seconds)
        try:
            await asyncio.to_thread(
                booking_service.release_expired_holds,
                now=datetime.now(timezone.utc),
            )
        except Exception:
            logger.exception("Hold sweep failed")


# Module-level app object for uvicorn
app = create_app()
