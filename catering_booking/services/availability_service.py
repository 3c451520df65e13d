"""Read-only planning aid: which start hours are still offerable on a date."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Callable, Optional

from catering_booking.domain.capacity import count_active_on_day, count_overlapping
from catering_booking.domain.constraints import BookingRules
from catering_booking.domain.models import DayBounds
from catering_booking.domain.time_window import (
    day_bounds_for_date,
    local_slot_start,
    operational_window,
    service_duration,
)
from catering_booking.repository.data_repository import DataRepository
from catering_booking.services.admission_service import build_booking_rules
from catering_booking.utils.config import Settings, get_settings
from catering_booking.utils.logger import get_logger


logger = get_logger(__name__)

DAY_CAP_REACHED = "day_cap_reached"


@dataclass(frozen=True)
class AvailableSlot:
    hour: int
    start: datetime


@dataclass(frozen=True)
class AvailabilityReport:
    day: date
    package_code: str
    service_hours: float
    day_bounds: DayBounds
    active_bookings: int
    slots: list[AvailableSlot]
    reason: Optional[str] = None


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class AvailabilityService:
    """Applies the admission rules to every candidate hour of one day."""

    def __init__(
        self,
        repository: Optional[DataRepository] = None,
        settings: Optional[Settings] = None,
        rules: Optional[BookingRules] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._repository = repository or DataRepository(self._settings)
        self._rules = rules or build_booking_rules(self._settings)
        self._clock = clock or _utc_now

    @property
    def rules(self) -> BookingRules:
        return self._rules

    def available_start_hours(self, day: date, package_code: str) -> AvailabilityReport:
        rules = self._rules
        now = self._clock()
        live_hours = service_duration(package_code, rules)
        bounds = day_bounds_for_date(day, rules)

        candidates = [
            (hour, local_slot_start(day, hour, rules))
            for hour in range(rules.hours_start, rules.hours_end)
        ]
        windows = [
            (hour, start, operational_window(start, package_code, rules))
            for hour, start in candidates
        ]

        # One read covering the day and every candidate window.
        span_start = min([bounds.start] + [window.start for _, _, window in windows])
        span_end = max([bounds.end] + [window.end for _, _, window in windows])
        bookings = self._repository.list_bookings(
            span_start,
            span_end,
            limit=self._settings.calendar_list_limit,
        )
        active_on_day = count_active_on_day(bookings, bounds)

        if active_on_day >= rules.max_per_day:
            logger.info(
                "Availability day cap reached | day=%s | active=%s",
                day.isoformat(),
                active_on_day,
            )
            return AvailabilityReport(
                day=day,
                package_code=package_code,
                service_hours=live_hours,
                day_bounds=bounds,
                active_bookings=active_on_day,
                slots=[],
                reason=DAY_CAP_REACHED,
            )

        slots: list[AvailableSlot] = []
        for hour, start, window in windows:
            if start < now:
                continue
            if count_overlapping(bookings, window) >= rules.max_per_slot:
                continue
            slots.append(AvailableSlot(hour=hour, start=start))

        logger.debug(
            "Availability computed | day=%s | package=%s | slots=%s",
            day.isoformat(),
            package_code,
            [slot.hour for slot in slots],
        )
        return AvailabilityReport(
            day=day,
            package_code=package_code,
            service_hours=live_hours,
            day_bounds=bounds,
            active_bookings=active_on_day,
            slots=slots,
        )
