"""Day-level and overlap-level capacity rules."""

from __future__ import annotations

from typing import Iterable

from catering_booking.domain.constraints import BookingRules
from catering_booking.domain.models import (
    AdmissionDecision,
    DayBounds,
    ExistingBooking,
    OperationalWindow,
    ReasonCode,
)


def active_bookings(bookings: Iterable[ExistingBooking]) -> list[ExistingBooking]:
    return [booking for booking in bookings if not booking.cancelled]


def count_active_on_day(
    bookings: Iterable[ExistingBooking],
    bounds: DayBounds | None = None,
) -> int:
    """Count non-cancelled bookings, optionally restricted to ``bounds``."""
    active = active_bookings(bookings)
    if bounds is None:
        return len(active)
    return sum(
        1
        for booking in active
        if not (booking.end <= bounds.start or booking.start >= bounds.end)
    )


def count_overlapping(bookings: Iterable[ExistingBooking], window: OperationalWindow) -> int:
    # Half-open intervals: touching endpoints are not an overlap.
    return sum(
        1
        for booking in active_bookings(bookings)
        if window.overlaps(booking.start, booking.end)
    )


def evaluate(
    day_count: int,
    overlap_count: int,
    rules: BookingRules,
    service_hours: float | None = None,
) -> AdmissionDecision:
    """Apply the day cap first, then the overlap cap."""
    if day_count >= rules.max_per_day:
        return AdmissionDecision(
            admitted=False,
            reason=ReasonCode.DAY_CAPACITY_EXCEEDED,
            detail=f"Max {rules.max_per_day} events per day reached.",
        )
    if overlap_count >= rules.max_per_slot:
        live = f"{service_hours:g}h" if service_hours is not None else "service"
        return AdmissionDecision(
            admitted=False,
            reason=ReasonCode.OVERLAP_CAPACITY_EXCEEDED,
            detail=(
                f"Max {rules.max_per_slot} concurrent events in operational window "
                f"(prep+{live}+clean)."
            ),
        )
    return AdmissionDecision(admitted=True)
