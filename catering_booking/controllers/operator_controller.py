"""Controller layer for operator follow-up of bookings and rejections."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field

from catering_booking.controllers.dependencies import (
    get_auth_service,
    get_availability_service,
    get_repository,
    require_operator,
)
from catering_booking.domain.time_window import day_bounds_for_date, parse_calendar_date
from catering_booking.repository.data_repository import CalendarStoreError, DataRepository
from catering_booking.services.auth_service import (
    InvalidOperatorTokenError,
    OperatorAuthService,
    OperatorTokenNotConfiguredError,
)
from catering_booking.services.availability_service import AvailabilityService
from catering_booking.utils.logger import get_logger


logger = get_logger(__name__)

router = APIRouter(tags=["operator"])


class LoginRequest(BaseModel):
    admin_token: str = Field(min_length=1)


class LoginResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"


class RejectionRow(BaseModel):
    rejection_id: int = Field(gt=0)
    source: str
    reason_code: str
    detail: str
    idempotency_token: Optional[str] = None
    requester_name: str
    start: Optional[str] = None
    created_at: str


class BookingRow(BaseModel):
    booking_id: str
    title: str
    location: str
    start: datetime
    end: datetime
    cancelled: bool
    attendees: list[str]
    tags: dict[str, str]


class CancelResponse(BaseModel):
    booking_id: str
    cancelled: bool


@router.post("/login", response_model=LoginResponse, status_code=status.HTTP_200_OK)
async def login(
    payload: LoginRequest,
    auth_service: OperatorAuthService = Depends(get_auth_service),
) -> LoginResponse:
    try:
        return LoginResponse(access_token=auth_service.login(payload.admin_token))
    except (OperatorTokenNotConfiguredError, InvalidOperatorTokenError) as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=str(exc),
        ) from exc


@router.get(
    "/operator/rejections",
    response_model=list[RejectionRow],
    dependencies=[Depends(require_operator)],
)
async def list_rejections(
    limit: int = Query(default=100, ge=1, le=1000),
    repository: DataRepository = Depends(get_repository),
) -> list[RejectionRow]:
    """Paid sessions that were acknowledged but not booked."""
    return [
        RejectionRow(
            rejection_id=row.rejection_id,
            source=row.source,
            reason_code=row.reason_code,
            detail=row.detail,
            idempotency_token=row.idempotency_token,
            requester_name=row.requester_name,
            start=row.start,
            created_at=row.created_at,
        )
        for row in repository.list_rejections(limit=limit)
    ]


@router.get(
    "/operator/bookings",
    response_model=list[BookingRow],
    dependencies=[Depends(require_operator)],
)
async def list_bookings(
    raw_date: str = Query(alias="date"),
    repository: DataRepository = Depends(get_repository),
    availability_service: AvailabilityService = Depends(get_availability_service),
) -> list[BookingRow]:
    rules = availability_service.rules
    day = parse_calendar_date(raw_date, rules)
    if day is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="date required (YYYY-MM-DD or MM/DD/YYYY)",
        )
    bounds = day_bounds_for_date(day, rules)
    try:
        stored = repository.list_stored_bookings(bounds.start, bounds.end)
    except CalendarStoreError as exc:
        logger.exception("Operator booking listing failed")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to list bookings",
        ) from exc
    return [
        BookingRow(
            booking_id=booking.booking_id,
            title=booking.title,
            location=booking.location,
            start=booking.start,
            end=booking.end,
            cancelled=booking.cancelled,
            attendees=list(booking.attendees),
            tags=booking.tags,
        )
        for booking in stored
    ]


@router.post(
    "/operator/bookings/{booking_id}/cancel",
    response_model=CancelResponse,
    dependencies=[Depends(require_operator)],
)
async def cancel_booking(
    booking_id: str,
    repository: DataRepository = Depends(get_repository),
) -> CancelResponse:
    try:
        cancelled = repository.cancel_booking(booking_id)
    except CalendarStoreError as exc:
        logger.exception("Operator cancellation failed")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to cancel booking",
        ) from exc
    if not cancelled:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Booking {booking_id} not found",
        )
    return CancelResponse(booking_id=booking_id, cancelled=True)
