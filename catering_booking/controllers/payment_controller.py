"""Controller for verified payment-completed deliveries."""

from __future__ import annotations

from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field

from catering_booking.controllers.dependencies import get_payment_service
from catering_booking.repository.data_repository import CalendarStoreError
from catering_booking.services.payment_service import (
    CheckoutSession,
    PaymentEvent,
    PaymentEventService,
)
from catering_booking.utils.logger import get_logger


logger = get_logger(__name__)

router = APIRouter(tags=["payments"])


class CheckoutSessionPayload(BaseModel):
    session_id: str = ""
    payment_status: str = ""
    amount_total: Optional[int] = Field(default=None, ge=0)
    customer_name: str = ""
    customer_email: str = ""
    metadata: dict[str, str] = Field(default_factory=dict)


class PaymentEventPayload(BaseModel):
    event_id: str = Field(min_length=1)
    event_type: str = Field(min_length=1)
    session: Optional[CheckoutSessionPayload] = None


@router.post("/webhooks/payment", status_code=status.HTTP_200_OK)
async def payment_webhook(
    payload: PaymentEventPayload,
    service: PaymentEventService = Depends(get_payment_service),
) -> dict[str, Any]:
    """Acknowledge the delivery; business rejections never trigger a redelivery.

    Calendar store failures answer 503 so the provider redelivers the same
    session, which the idempotency guard then turns into a no-op once a
    booking exists.
    """
    event = PaymentEvent(
        event_id=payload.event_id,
        event_type=payload.event_type,
        session=(
            CheckoutSession(
                session_id=payload.session.session_id.strip(),
                payment_status=payload.session.payment_status.strip(),
                amount_total=payload.session.amount_total,
                customer_name=payload.session.customer_name,
                customer_email=payload.session.customer_email,
                metadata=dict(payload.session.metadata),
            )
            if payload.session is not None
            else None
        ),
    )
    try:
        return service.handle(event)
    except CalendarStoreError as exc:
        logger.exception("Payment event %s could not reach the calendar store", payload.event_id)
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={"error": "create_event_failed", "message": str(exc)},
        ) from exc
