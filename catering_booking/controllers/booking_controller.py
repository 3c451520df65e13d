"""HTTP controller layer for availability and direct bookings."""

from __future__ import annotations

from dataclasses import replace
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field

from catering_booking.controllers.dependencies import (
    get_admission_service,
    get_affiliate_service,
    get_availability_service,
)
from catering_booking.domain.models import (
    BookingRequest,
    BookingRequestError,
    OutcomeStatus,
    ReasonCode,
)
from catering_booking.domain.time_window import ensure_aware, parse_calendar_date
from catering_booking.repository.data_repository import CalendarStoreError
from catering_booking.services.admission_service import BookingAdmissionService
from catering_booking.services.affiliate_service import AffiliateService, InvalidCredentialError
from catering_booking.services.availability_service import AvailabilityService
from catering_booking.utils.logger import get_logger


logger = get_logger(__name__)

router = APIRouter(tags=["booking"])

_CONFLICT_REASONS = {
    ReasonCode.OUTSIDE_BUSINESS_HOURS,
    ReasonCode.DAY_CAPACITY_EXCEEDED,
    ReasonCode.OVERLAP_CAPACITY_EXCEEDED,
}


class SlotResponse(BaseModel):
    hour: int = Field(ge=0, le=23)
    start_at: datetime


class AvailabilityResponse(BaseModel):
    date: str
    package_code: str
    service_hours: float = Field(gt=0.0)
    day_start: datetime
    day_end: datetime
    active_bookings: int = Field(ge=0)
    reason: Optional[str] = None
    slots: list[SlotResponse]


class DirectBookingRequest(BaseModel):
    """Required fields default to blank so admission reports them as ``missing_fields``."""

    pin: str = ""
    full_name: str = ""
    package_code: str = ""
    offering_code: str = ""
    start_at: Optional[datetime] = None
    venue: str = ""
    email: str = ""
    phone: str = ""
    notes: str = ""
    total: Optional[float] = Field(default=None, ge=0.0)
    deposit: Optional[float] = Field(default=None, ge=0.0)
    second_enabled: bool = False
    second_offering_code: str = ""
    second_package_code: str = ""
    fountain_enabled: bool = False
    fountain_type: str = ""
    fountain_size: str = ""
    affiliate_name: str = ""
    affiliate_email: str = ""
    idempotency_key: str = ""


class DirectBookingResponse(BaseModel):
    ok: bool = True
    booking_id: Optional[str] = None
    already: bool = False


def _error(status_code: int, error: str, message: str) -> HTTPException:
    return HTTPException(status_code=status_code, detail={"error": error, "message": message})


@router.get("/health", status_code=status.HTTP_200_OK)
async def health() -> dict[str, str]:
    return {"status": "ok"}


@router.get(
    "/availability",
    response_model=AvailabilityResponse,
    status_code=status.HTTP_200_OK,
)
async def availability(
    raw_date: str = Query(default="", alias="date"),
    pkg: str = Query(default=""),
    service: AvailabilityService = Depends(get_availability_service),
) -> AvailabilityResponse:
    """List offerable start hours for one local calendar date."""
    day = parse_calendar_date(raw_date, service.rules)
    if day is None:
        raise _error(
            status.HTTP_400_BAD_REQUEST,
            "invalid_date",
            "date required (YYYY-MM-DD or MM/DD/YYYY)",
        )
    try:
        report = service.available_start_hours(day, pkg.strip())
    except CalendarStoreError as exc:
        logger.exception("Availability read failed")
        raise _error(
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            "availability_failed",
            str(exc),
        ) from exc

    return AvailabilityResponse(
        date=report.day.isoformat(),
        package_code=report.package_code,
        service_hours=report.service_hours,
        day_start=report.day_bounds.start,
        day_end=report.day_bounds.end,
        active_bookings=report.active_bookings,
        reason=report.reason,
        slots=[SlotResponse(hour=slot.hour, start_at=slot.start) for slot in report.slots],
    )


@router.post(
    "/bookings",
    response_model=DirectBookingResponse,
    status_code=status.HTTP_200_OK,
)
async def create_booking(
    payload: DirectBookingRequest,
    admission_service: BookingAdmissionService = Depends(get_admission_service),
    affiliate_service: AffiliateService = Depends(get_affiliate_service),
) -> DirectBookingResponse:
    """Affiliate-authenticated booking that bypasses the payment flow."""
    try:
        affiliate = affiliate_service.resolve(payload.pin)
    except InvalidCredentialError as exc:
        raise _error(
            status.HTTP_400_BAD_REQUEST,
            ReasonCode.INVALID_CREDENTIAL.value,
            "PIN does not match a known affiliate.",
        ) from exc

    if payload.affiliate_name or payload.affiliate_email:
        affiliate = replace(
            affiliate,
            name=payload.affiliate_name.strip() or affiliate.name,
            email=payload.affiliate_email.strip() or affiliate.email,
        )

    rules = admission_service.rules
    try:
        request = BookingRequest(
            requester_name=payload.full_name.strip(),
            package_code=payload.package_code.strip(),
            offering_code=payload.offering_code.strip(),
            start=ensure_aware(payload.start_at, rules) if payload.start_at else None,
            venue=payload.venue.strip(),
            emails=(payload.email.strip(),) if payload.email.strip() else (),
            phone=payload.phone.strip(),
            notes=payload.notes.strip(),
            total=payload.total,
            deposit=payload.deposit,
            idempotency_token=payload.idempotency_key.strip() or None,
            affiliate=affiliate,
            second_offering_code=(
                payload.second_offering_code.strip() if payload.second_enabled else ""
            ),
            second_package_code=(
                payload.second_package_code.strip() if payload.second_enabled else ""
            ),
            fountain_type=payload.fountain_type.strip() if payload.fountain_enabled else "",
            fountain_size=payload.fountain_size.strip() if payload.fountain_enabled else "",
            source="direct",
        )
    except BookingRequestError as exc:
        raise _error(status.HTTP_400_BAD_REQUEST, ReasonCode.INVALID_INPUT.value, str(exc)) from exc

    try:
        outcome = admission_service.admit(request)
    except CalendarStoreError as exc:
        logger.exception("Direct booking failed against the calendar store")
        raise _error(
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            "create_event_failed",
            str(exc),
        ) from exc

    if outcome.status is OutcomeStatus.COMMITTED:
        return DirectBookingResponse(booking_id=outcome.booking_id)
    if outcome.status is OutcomeStatus.ALREADY_EXISTS:
        return DirectBookingResponse(booking_id=outcome.booking_id, already=True)

    status_code = (
        status.HTTP_409_CONFLICT
        if outcome.reason in _CONFLICT_REASONS
        else status.HTTP_400_BAD_REQUEST
    )
    raise _error(status_code, outcome.reason_code, outcome.detail)
