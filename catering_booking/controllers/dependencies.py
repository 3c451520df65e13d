"""Shared FastAPI dependency providers for controller layer."""

from __future__ import annotations

from fastapi import Depends, FastAPI, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from catering_booking.repository.data_repository import DataRepository
from catering_booking.services.admission_service import BookingAdmissionService
from catering_booking.services.affiliate_service import AffiliateService
from catering_booking.services.auth_service import (
    InvalidOperatorTokenError,
    OperatorAuthService,
    OperatorTokenNotConfiguredError,
)
from catering_booking.services.availability_service import AvailabilityService
from catering_booking.services.payment_service import PaymentEventService
from catering_booking.utils.config import get_settings


bearer_scheme = HTTPBearer(auto_error=False)


def _require_state(request: Request, name: str, label: str):
    service = getattr(request.app.state, name, None)
    if service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=f"{label} is not initialized",
        )
    return service


def get_repository(request: Request) -> DataRepository:
    return _require_state(request, "repository", "Repository")


def get_admission_service(request: Request) -> BookingAdmissionService:
    return _require_state(request, "admission_service", "Admission service")


def get_availability_service(request: Request) -> AvailabilityService:
    return _require_state(request, "availability_service", "Availability service")


def get_payment_service(request: Request) -> PaymentEventService:
    return _require_state(request, "payment_service", "Payment service")


def get_affiliate_service(request: Request) -> AffiliateService:
    service = getattr(request.app.state, "affiliate_service", None)
    if service is None:
        service = AffiliateService(settings=get_settings())
        request.app.state.affiliate_service = service
    return service


def get_auth_service(request: Request) -> OperatorAuthService:
    service = getattr(request.app.state, "auth_service", None)
    if service is None:
        service = OperatorAuthService(settings=get_settings())
        request.app.state.auth_service = service
    return service


async def require_operator(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    auth_service: OperatorAuthService = Depends(get_auth_service),
) -> None:
    if not auth_service.auth_enabled:
        return
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authorization header with Bearer token is required",
        )
    try:
        auth_service.validate_bearer_token(credentials.credentials)
    except (OperatorTokenNotConfiguredError, InvalidOperatorTokenError) as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=str(exc),
        ) from exc


async def _validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={
            "ok": False,
            "error": "invalid_input",
            "detail": [
                {"loc": [str(part) for part in error.get("loc", ())], "msg": str(error.get("msg", ""))}
                for error in exc.errors()
            ],
        },
    )


def install_exception_handlers(app: FastAPI) -> None:
    """Report malformed request bodies as 400 rather than FastAPI's 422."""
    app.add_exception_handler(RequestValidationError, _validation_error_handler)
