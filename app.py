"""
app.py: FastAPI application factory and startup lifecycle.

This is the ASGI application object imported by uvicorn.
It wires all services, registers routers, and runs startup initialization.

Usage (via launcher):
    python main.py

Usage (direct uvicorn):
    uvicorn app:app --reload
"""

from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI

from catering_booking.controllers.booking_controller import router as booking_router
from catering_booking.controllers.dependencies import install_exception_handlers
from catering_booking.controllers.operator_controller import router as operator_router
from catering_booking.controllers.payment_controller import router as payment_router
from catering_booking.repository.data_repository import DataRepository
from catering_booking.services.admission_service import (
    BookingAdmissionService,
    build_booking_rules,
)
from catering_booking.services.affiliate_service import AffiliateService
from catering_booking.services.auth_service import OperatorAuthService
from catering_booking.services.availability_service import AvailabilityService
from catering_booking.services.idempotency_service import IdempotencyGuard
from catering_booking.services.payment_service import PaymentEventService
from catering_booking.utils.config import get_settings
from catering_booking.utils.logger import get_logger


logger = get_logger(__name__)


def create_app() -> FastAPI:
    """
    Build and wire the FastAPI application.

    Every service receives its collaborators explicitly and is published on
    app.state for the controller dependency providers.
    """
    settings = get_settings()

    # --- Rules are validated once; a bad configuration fails here ---
    rules = build_booking_rules(settings)

    # --- Repository (calendar store) ---
    repository = DataRepository(settings)

    # --- Services ---
    idempotency_guard = IdempotencyGuard(repository=repository, settings=settings)
    admission_service = BookingAdmissionService(
        repository=repository,
        settings=settings,
        idempotency_guard=idempotency_guard,
        rules=rules,
    )
    availability_service = AvailabilityService(
        repository=repository,
        settings=settings,
        rules=rules,
    )
    payment_service = PaymentEventService(
        admission_service=admission_service,
        repository=repository,
        settings=settings,
    )
    affiliate_service = AffiliateService(settings=settings)
    auth_service = OperatorAuthService(settings=settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Run startup initialization before accepting requests."""
        _startup(app)
        yield

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        lifespan=lifespan,
    )
    install_exception_handlers(app)

    # --- Routers ---
    app.include_router(booking_router)
    app.include_router(payment_router)
    app.include_router(operator_router)

    # --- Inject services into app.state for dependency resolution ---
    app.state.repository = repository
    app.state.idempotency_guard = idempotency_guard
    app.state.admission_service = admission_service
    app.state.availability_service = availability_service
    app.state.payment_service = payment_service
    app.state.affiliate_service = affiliate_service
    app.state.auth_service = auth_service

    return app


def _startup(app: FastAPI) -> None:
    """Idempotent startup sequence. Safe to re-run on server restarts."""
    repository: DataRepository = app.state.repository

    logger.info("Startup: initializing calendar store at %s", repository.database_path)
    repository.initialize_database()

    if not app.state.auth_service.auth_enabled:
        logger.warning("Startup: ADMIN_TOKEN not set, operator endpoints are unprotected")
    if not app.state.affiliate_service.has_affiliates:
        logger.warning("Startup: AFFILIATE_PINS not set, direct bookings will be refused")

    logger.info("Startup complete, accepting bookings")


# Module-level app object for uvicorn
app = create_app()
