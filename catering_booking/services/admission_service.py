"""Booking admission: hours, idempotency, capacity, then a single commit."""

from __future__ import annotations

import re
from typing import Optional

from catering_booking.domain.capacity import count_active_on_day, count_overlapping, evaluate
from catering_booking.domain.constraints import BookingRules, validate_booking_rules
from catering_booking.domain.models import (
    AdmissionOutcome,
    AdmissionStage,
    BookingRecord,
    BookingRequest,
    BookingRequestError,
    OperationalWindow,
    OutcomeStatus,
    ReasonCode,
    offering_label,
    package_label,
)
from catering_booking.domain.time_window import (
    OutsideBusinessHoursError,
    calendar_day_bounds,
    operational_window,
    service_duration,
    service_end,
    validate_business_hours,
)
from catering_booking.repository.data_repository import IDEMPOTENCY_TAG, DataRepository
from catering_booking.services.idempotency_service import IdempotencyGuard
from catering_booking.utils.config import Settings, get_settings
from catering_booking.utils.logger import bind_booking_ref, get_logger, reset_booking_ref


logger = get_logger(__name__)

_EMAIL_PATTERN = re.compile(r"\S+@\S+\.\S+")


def build_booking_rules(settings: Settings) -> BookingRules:
    rules = BookingRules(
        timezone=settings.timezone,
        hours_start=settings.hours_start,
        hours_end=settings.hours_end,
        prep_hours=settings.prep_hours,
        cleanup_hours=settings.cleanup_hours,
        max_per_day=settings.max_bookings_per_day,
        max_per_slot=settings.max_bookings_per_slot,
        default_service_hours=settings.default_service_hours,
        package_service_hours=settings.package_service_hours,
    )
    validate_booking_rules(rules)
    return rules


def _attendees(request: BookingRequest) -> tuple[str, ...]:
    candidates = list(request.emails)
    if request.affiliate is not None and request.affiliate.email:
        candidates.append(request.affiliate.email)
    seen: set[str] = set()
    attendees: list[str] = []
    for email in candidates:
        email = email.strip()
        if not email or not _EMAIL_PATTERN.fullmatch(email):
            continue
        if email.lower() in seen:
            continue
        seen.add(email.lower())
        attendees.append(email)
    return tuple(attendees)


def _money(amount: Optional[float]) -> str:
    return f"${amount:.0f}" if amount else "-"


def build_booking_record(
    request: BookingRequest,
    rules: BookingRules,
    business_name: str,
) -> BookingRecord:
    """Render the calendar entry for an admitted request.

    The entry spans the live service only; prep and cleanup are implied by
    the rules and recomputed whenever capacity is checked.
    """
    if request.start is None:
        raise BookingRequestError("a booking record needs a start instant")
    live_hours = service_duration(request.package_code, rules)
    deposit = request.deposit or 0.0
    balance = max(0.0, (request.total or 0.0) - deposit)
    paid_suffix = " (paid)" if request.source == "payment" else ""

    lines = [
        f"Client: {request.requester_name}",
        f"Email: {request.emails[0]}" if request.emails else "",
        f"Phone: {request.phone}" if request.phone else "",
        f"Venue: {request.venue}" if request.venue else "",
        "",
        f"Main bar: {offering_label(request.offering_code)} - {package_label(request.package_code)}",
    ]
    if request.second_offering_code:
        lines.append(
            f"Second bar: {offering_label(request.second_offering_code)} - "
            f"{package_label(request.second_package_code)}"
        )
    if request.fountain_type or request.fountain_size:
        lines.append(
            f"Chocolate fountain: {request.fountain_type or '-'} - {request.fountain_size or '-'} ppl"
        )
    lines.extend(
        [
            "",
            "Totals:",
            f"  Total: {_money(request.total)}",
            f"  Deposit: {_money(deposit)}{paid_suffix}",
            f"  Balance: {_money(balance)}",
            "",
            "Timing:",
            f"  Prep: {rules.prep_hours:g}h before start",
            f"  Service: {live_hours:g}h",
            f"  Clean up: +{rules.cleanup_hours:g}h after",
        ]
    )
    if request.affiliate is not None:
        affiliate = request.affiliate.name or request.affiliate.pin
        if request.affiliate.email:
            affiliate += f" <{request.affiliate.email}>"
        lines.extend(["", f"Affiliate: {affiliate}"])
    if request.notes:
        lines.append(f"Notes: {request.notes}")

    tags = {
        "package": request.package_code,
        "offering": request.offering_code,
        "source": request.source,
    }
    optional_tags = {
        "second_offering": request.second_offering_code,
        "second_package": request.second_package_code,
        "fountain_type": request.fountain_type,
        "fountain_size": request.fountain_size,
        "affiliate_name": request.affiliate.name if request.affiliate else "",
        "affiliate_email": request.affiliate.email if request.affiliate else "",
        IDEMPOTENCY_TAG: (request.idempotency_token or "").strip(),
    }
    tags.update({key: value for key, value in optional_tags.items() if value})

    title = " | ".join(
        [
            business_name,
            offering_label(request.offering_code),
            package_label(request.package_code),
            request.requester_name,
        ]
    )
    return BookingRecord(
        title=title,
        description="\n".join(_collapse_blank_lines(lines)),
        start=request.start,
        end=service_end(request.start, request.package_code, rules),
        timezone=rules.timezone,
        location=request.venue,
        attendees=_attendees(request),
        tags=tags,
    )


def _collapse_blank_lines(lines: list[str]) -> list[str]:
    collapsed: list[str] = []
    for line in lines:
        if not line and (not collapsed or not collapsed[-1]):
            continue
        collapsed.append(line)
    while collapsed and not collapsed[-1]:
        collapsed.pop()
    return collapsed


class BookingAdmissionService:
    """Runs one request through validation, capacity and commit.

    Rejections come back as ``AdmissionOutcome`` values. Only calendar
    store failures (``CalendarReadError``/``CalendarWriteError``) escape,
    and they are never retried here.
    """

    def __init__(
        self,
        repository: Optional[DataRepository] = None,
        settings: Optional[Settings] = None,
        idempotency_guard: Optional[IdempotencyGuard] = None,
        rules: Optional[BookingRules] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._repository = repository or DataRepository(self._settings)
        self._guard = idempotency_guard or IdempotencyGuard(
            repository=self._repository,
            settings=self._settings,
        )
        if rules is not None:
            validate_booking_rules(rules)
        self._rules = rules or build_booking_rules(self._settings)

    @property
    def rules(self) -> BookingRules:
        return self._rules

    def admit(self, request: BookingRequest) -> AdmissionOutcome:
        ref = bind_booking_ref(request.idempotency_token or request.source)
        try:
            return self._admit(request)
        finally:
            reset_booking_ref(ref)

    def _admit(self, request: BookingRequest) -> AdmissionOutcome:
        rules = self._rules
        stage = AdmissionStage.RECEIVED

        missing = request.missing_fields()
        if missing or request.start is None:
            return self._reject(
                request,
                stage,
                ReasonCode.MISSING_FIELDS,
                f"Missing required fields: {', '.join(missing)}.",
            )
        stage = AdmissionStage.VALIDATED

        try:
            validate_business_hours(request.start, rules)
        except OutsideBusinessHoursError as exc:
            return self._reject(request, stage, ReasonCode.OUTSIDE_BUSINESS_HOURS, str(exc))
        stage = AdmissionStage.HOURS_CHECKED

        bounds = calendar_day_bounds(request.start, rules)
        window = operational_window(request.start, request.package_code, rules)

        existing_id = self._guard.lookup(request.idempotency_token, bounds)
        if existing_id is not None:
            logger.info(
                "Admission no-op | stage=%s | token=%s | booking_id=%s",
                stage.value,
                request.idempotency_token,
                existing_id,
            )
            return AdmissionOutcome(
                status=OutcomeStatus.ALREADY_EXISTS,
                stage=stage,
                detail="A booking with this idempotency token already exists.",
                booking_id=existing_id,
                window=window,
            )
        stage = AdmissionStage.IDEMPOTENCY_CHECKED

        limit = self._settings.calendar_list_limit
        day_bookings = self._repository.list_bookings(bounds.start, bounds.end, limit=limit)
        if bounds.contains(window):
            window_bookings = day_bookings
        else:
            # The operational window spills past midnight; read its own range.
            window_bookings = self._repository.list_bookings(window.start, window.end, limit=limit)

        day_count = count_active_on_day(day_bookings, bounds)
        overlap_count = count_overlapping(window_bookings, window)
        decision = evaluate(
            day_count,
            overlap_count,
            rules,
            service_hours=service_duration(request.package_code, rules),
        )
        if decision.reason is not None:
            return self._reject(request, stage, decision.reason, decision.detail, window=window)
        stage = AdmissionStage.CAPACITY_CHECKED

        record = build_booking_record(request, rules, self._settings.business_name)
        booking_id = self._repository.create_booking(record)
        stage = AdmissionStage.COMMITTED
        logger.info(
            "Admission committed | booking_id=%s | source=%s | day_count=%s | overlap_count=%s",
            booking_id,
            request.source,
            day_count,
            overlap_count,
        )
        return AdmissionOutcome(
            status=OutcomeStatus.COMMITTED,
            stage=stage,
            booking_id=booking_id,
            window=window,
        )

    def _reject(
        self,
        request: BookingRequest,
        stage: AdmissionStage,
        reason: ReasonCode,
        detail: str,
        *,
        window: Optional[OperationalWindow] = None,
    ) -> AdmissionOutcome:
        logger.info(
            "Admission rejected | stage=%s | reason=%s | source=%s | detail=%s",
            stage.value,
            reason.value,
            request.source,
            detail,
        )
        return AdmissionOutcome(
            status=OutcomeStatus.REJECTED,
            stage=stage,
            reason=reason,
            detail=detail,
            window=window,
        )
