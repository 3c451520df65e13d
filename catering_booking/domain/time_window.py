"""Pure time arithmetic for service windows, business hours and day bounds.

All local-time questions go through ``zoneinfo`` so the offset is resolved
for the specific calendar day, including daylight-saving transitions.
"""

from __future__ import annotations

import re
from datetime import date, datetime, time, timedelta, timezone
from typing import Optional

from catering_booking.domain.constraints import BookingRules
from catering_booking.domain.models import DayBounds, OperationalWindow


_ISO_DATE = re.compile(r"^(\d{4})-(\d{2})-(\d{2})$")
_US_DATE = re.compile(r"^(\d{1,2})/(\d{1,2})/(\d{4})$")


class OutsideBusinessHoursError(Exception):
    """Raised when a start instant falls outside the offerable hours."""

    def __init__(self, observed_hour: int, rules: BookingRules) -> None:
        self.observed_hour = observed_hour
        super().__init__(
            f"outside_business_hours: {observed_hour:02d}:00 not in "
            f"{rules.hours_start:02d}:00-{rules.hours_end - 1:02d}:59 {rules.timezone}"
        )


def service_duration(package_code: str, rules: BookingRules) -> float:
    """Return live-service hours; unknown packages get the default."""
    return dict(rules.package_service_hours).get(package_code, rules.default_service_hours)


def to_local(instant: datetime, rules: BookingRules) -> datetime:
    return instant.astimezone(rules.zone)


def ensure_aware(instant: datetime, rules: BookingRules) -> datetime:
    """Attach the business timezone to naive datetimes."""
    if instant.tzinfo is None:
        return instant.replace(tzinfo=rules.zone)
    return instant


def validate_business_hours(start: datetime, rules: BookingRules) -> None:
    hour = to_local(start, rules).hour
    if not rules.hours_start <= hour < rules.hours_end:
        raise OutsideBusinessHoursError(hour, rules)


def operational_window(start: datetime, package_code: str, rules: BookingRules) -> OperationalWindow:
    # Windows are computed on absolute UTC instants.
    start = start.astimezone(timezone.utc)
    live = service_duration(package_code, rules)
    return OperationalWindow(
        start=start - timedelta(hours=rules.prep_hours),
        end=start + timedelta(hours=live + rules.cleanup_hours),
    )


def service_end(start: datetime, package_code: str, rules: BookingRules) -> datetime:
    return start.astimezone(timezone.utc) + timedelta(hours=service_duration(package_code, rules))


def day_bounds_for_date(day: date, rules: BookingRules) -> DayBounds:
    zone = rules.zone
    local_start = datetime.combine(day, time.min, tzinfo=zone)
    local_end = datetime.combine(day + timedelta(days=1), time.min, tzinfo=zone)
    return DayBounds(
        start=local_start.astimezone(timezone.utc),
        end=local_end.astimezone(timezone.utc),
    )


def calendar_day_bounds(start: datetime, rules: BookingRules) -> DayBounds:
    """Return the local midnight-to-midnight span containing ``start``."""
    return day_bounds_for_date(to_local(start, rules).date(), rules)


def local_slot_start(day: date, hour: int, rules: BookingRules) -> datetime:
    """Absolute instant for ``hour:00`` local time on ``day``."""
    return datetime.combine(day, time(hour=hour), tzinfo=rules.zone)


def parse_calendar_date(raw: Optional[str], rules: BookingRules) -> Optional[date]:
    """Accept ``YYYY-MM-DD``, ``MM/DD/YYYY`` or an ISO timestamp."""
    value = (raw or "").strip()
    if not value:
        return None

    match = _ISO_DATE.match(value)
    if match:
        try:
            return date(int(match.group(1)), int(match.group(2)), int(match.group(3)))
        except ValueError:
            return None

    match = _US_DATE.match(value)
    if match:
        month, day, year = (int(part) for part in match.groups())
        if year >= 1900:
            try:
                return date(year, month, day)
            except ValueError:
                return None
        return None

    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    return to_local(ensure_aware(parsed, rules), rules).date()


def parse_start_instant(raw: Optional[str], rules: BookingRules) -> Optional[datetime]:
    value = (raw or "").strip()
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    return ensure_aware(parsed, rules)
