"""Payment-completed events turned into idempotent booking admissions."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional

from catering_booking.domain.models import (
    AdmissionOutcome,
    Affiliate,
    BookingRequest,
    BookingRequestError,
    OutcomeStatus,
    ReasonCode,
)
from catering_booking.domain.time_window import parse_start_instant
from catering_booking.repository.data_repository import DataRepository
from catering_booking.services.admission_service import BookingAdmissionService
from catering_booking.utils.config import Settings, get_settings
from catering_booking.utils.logger import bind_booking_ref, get_logger, reset_booking_ref


logger = get_logger(__name__)

CHECKOUT_COMPLETED = "checkout.session.completed"
PAYMENT_SOURCE = "payment"


@dataclass(frozen=True)
class CheckoutSession:
    session_id: str
    payment_status: str
    amount_total: Optional[int] = None
    customer_name: str = ""
    customer_email: str = ""
    metadata: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class PaymentEvent:
    """An already-verified, at-least-once delivery from the payment provider."""

    event_id: str
    event_type: str
    session: Optional[CheckoutSession] = None


def _text(value: Any) -> str:
    return value.strip() if isinstance(value, str) else ""


def _amount(value: Any) -> Optional[float]:
    text = _text(value)
    if not text:
        return None
    try:
        return float(text)
    except ValueError:
        return None


class PaymentEventService:
    """Acknowledges every event; only store failures propagate."""

    def __init__(
        self,
        admission_service: Optional[BookingAdmissionService] = None,
        repository: Optional[DataRepository] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._repository = repository or DataRepository(self._settings)
        self._admission = admission_service or BookingAdmissionService(
            repository=self._repository,
            settings=self._settings,
        )

    def build_request(self, session: CheckoutSession) -> BookingRequest:
        metadata = session.metadata
        rules = self._admission.rules

        deposit = _amount(metadata.get("deposit"))
        if deposit is None and session.amount_total is not None:
            deposit = float(round(session.amount_total / 100))
        # A zero total in checkout metadata means the quote was not filled in.
        total = _amount(metadata.get("total")) or None

        checkout_email = _text(session.customer_email)
        meta_email = _text(metadata.get("email"))
        emails = [email for email in (checkout_email, meta_email) if email]
        if len(emails) == 2 and emails[0] == emails[1]:
            emails.pop()

        affiliate = None
        affiliate_name = _text(metadata.get("affiliate_name"))
        affiliate_email = _text(metadata.get("affiliate_email"))
        if affiliate_name or affiliate_email:
            affiliate = Affiliate(pin="", name=affiliate_name, email=affiliate_email)

        return BookingRequest(
            requester_name=(
                _text(metadata.get("full_name")) or _text(session.customer_name) or "Client"
            ),
            package_code=_text(metadata.get("package_code")),
            offering_code=_text(metadata.get("offering_code")),
            start=parse_start_instant(metadata.get("start_at"), rules),
            venue=_text(metadata.get("venue")),
            emails=tuple(emails),
            phone=_text(metadata.get("phone")),
            notes=_text(metadata.get("notes")),
            total=total,
            deposit=deposit,
            idempotency_token=_text(session.session_id) or None,
            affiliate=affiliate,
            source=PAYMENT_SOURCE,
        )

    def handle(self, event: PaymentEvent) -> dict[str, Any]:
        session_id = event.session.session_id if event.session is not None else ""
        ref = bind_booking_ref(session_id or event.event_id)
        try:
            return self._handle(event)
        finally:
            reset_booking_ref(ref)

    def _handle(self, event: PaymentEvent) -> dict[str, Any]:
        if event.event_type != CHECKOUT_COMPLETED or event.session is None:
            logger.info(
                "Payment event ignored | event_id=%s | type=%s",
                event.event_id,
                event.event_type,
            )
            return {"ok": True, "ignored": event.event_type}

        session = event.session
        if session.payment_status != "paid":
            logger.info(
                "Payment event skipped | session_id=%s | payment_status=%s",
                session.session_id,
                session.payment_status,
            )
            return {"ok": True, "skipped": "not_paid"}

        try:
            request = self.build_request(session)
        except BookingRequestError as exc:
            self._record(session, None, ReasonCode.INVALID_INPUT.value, str(exc))
            return {"ok": True, "skipped": ReasonCode.INVALID_INPUT.value, "detail": str(exc)}

        outcome = self._admission.admit(request)
        return self._acknowledge(session, request, outcome)

    def _acknowledge(
        self,
        session: CheckoutSession,
        request: BookingRequest,
        outcome: AdmissionOutcome,
    ) -> dict[str, Any]:
        if outcome.status is OutcomeStatus.COMMITTED:
            return {"ok": True, "created": outcome.booking_id}
        if outcome.status is OutcomeStatus.ALREADY_EXISTS:
            return {"ok": True, "already": True, "booking_id": outcome.booking_id}

        self._record(session, request, outcome.reason_code, outcome.detail)
        return {"ok": True, "skipped": outcome.reason_code, "detail": outcome.detail}

    def _record(
        self,
        session: CheckoutSession,
        request: Optional[BookingRequest],
        reason_code: str,
        detail: str,
    ) -> None:
        logger.warning(
            "Paid session not booked | session_id=%s | reason=%s | detail=%s",
            session.session_id,
            reason_code,
            detail,
        )
        self._repository.record_rejection(
            source=PAYMENT_SOURCE,
            reason_code=reason_code,
            detail=detail,
            idempotency_token=session.session_id or None,
            requester_name=request.requester_name if request else _text(session.customer_name),
            start=request.start if request else None,
        )
