"""Business rules that bound when and how often a booking can be admitted."""

from __future__ import annotations

from dataclasses import dataclass
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError


DEFAULT_SERVICE_HOURS_TABLE: tuple[tuple[str, float], ...] = (
    ("50-150-5h", 2.0),
    ("150-250-5h", 2.5),
    ("250-350-6h", 3.0),
)


@dataclass(frozen=True)
class BookingRules:
    timezone: str = "America/Los_Angeles"
    hours_start: int = 9
    hours_end: int = 22
    prep_hours: float = 1.0
    cleanup_hours: float = 1.0
    max_per_day: int = 3
    max_per_slot: int = 2
    default_service_hours: float = 2.0
    package_service_hours: tuple[tuple[str, float], ...] = DEFAULT_SERVICE_HOURS_TABLE

    @property
    def zone(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)


def validate_booking_rules(rules: BookingRules) -> None:
    try:
        ZoneInfo(rules.timezone)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise ValueError(f"timezone {rules.timezone!r} is not a known IANA zone") from exc
    if not 0 <= rules.hours_start <= 23:
        raise ValueError("hours_start must be between 0 and 23")
    if not 1 <= rules.hours_end <= 24:
        raise ValueError("hours_end must be between 1 and 24")
    if rules.hours_start >= rules.hours_end:
        raise ValueError("hours_start must be less than hours_end")
    if rules.prep_hours <= 0:
        raise ValueError("prep_hours must be > 0")
    if rules.cleanup_hours < 0:
        raise ValueError("cleanup_hours must be >= 0")
    if rules.max_per_day < 1:
        raise ValueError("max_per_day must be >= 1")
    if rules.max_per_slot < 1:
        raise ValueError("max_per_slot must be >= 1")
    if rules.default_service_hours <= 0:
        raise ValueError("default_service_hours must be > 0")
    for code, hours in rules.package_service_hours:
        if hours <= 0:
            raise ValueError(f"service hours for package {code!r} must be > 0")
