"""Domain models for slot capacity and booking admission."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional


class PackageCode(str, Enum):
    SMALL = "50-150-5h"
    MEDIUM = "150-250-5h"
    LARGE = "250-350-6h"


class OfferingCode(str, Enum):
    PANCAKE = "pancake"
    MARUCHAN = "maruchan"
    ESQUITES = "esquites"
    SNACK = "snack"
    TOSTILOCO = "tostiloco"


PACKAGE_LABELS: dict[str, str] = {
    PackageCode.SMALL.value: "50-150 guests (5h window)",
    PackageCode.MEDIUM.value: "150-250 guests (5h window)",
    PackageCode.LARGE.value: "250-350 guests (6h window)",
}

OFFERING_LABELS: dict[str, str] = {
    OfferingCode.PANCAKE.value: "Mini Pancake",
    OfferingCode.MARUCHAN.value: "Maruchan",
    OfferingCode.ESQUITES.value: "Esquites (Corn Cups)",
    OfferingCode.SNACK.value: "Snack Bar Classic",
    OfferingCode.TOSTILOCO.value: "Tostiloco (Premium)",
}


def package_label(code: str) -> str:
    return PACKAGE_LABELS.get(code, code)


def offering_label(code: str) -> str:
    return OFFERING_LABELS.get(code, code or "Service")


class BookingRequestError(ValueError):
    """Raised when a booking request carries inconsistent values."""


class ReasonCode(str, Enum):
    MISSING_FIELDS = "missing_fields"
    OUTSIDE_BUSINESS_HOURS = "outside_business_hours"
    DAY_CAPACITY_EXCEEDED = "capacity_day_limit"
    OVERLAP_CAPACITY_EXCEEDED = "capacity_overlap_limit"
    INVALID_CREDENTIAL = "invalid_pin"
    INVALID_INPUT = "invalid_input"


class AdmissionStage(str, Enum):
    RECEIVED = "RECEIVED"
    VALIDATED = "VALIDATED"
    HOURS_CHECKED = "HOURS_CHECKED"
    IDEMPOTENCY_CHECKED = "IDEMPOTENCY_CHECKED"
    CAPACITY_CHECKED = "CAPACITY_CHECKED"
    COMMITTED = "COMMITTED"


class OutcomeStatus(str, Enum):
    COMMITTED = "committed"
    ALREADY_EXISTS = "already_exists"
    REJECTED = "rejected"


@dataclass(frozen=True)
class Affiliate:
    pin: str
    name: str
    email: str = ""


@dataclass(frozen=True)
class BookingRequest:
    """Immutable intake payload shared by every entry point.

    Required fields may be blank here; the admission service reports them
    as ``missing_fields`` instead of failing at construction time.
    """

    requester_name: str
    package_code: str
    offering_code: str
    start: Optional[datetime]
    venue: str = ""
    emails: tuple[str, ...] = ()
    phone: str = ""
    notes: str = ""
    total: Optional[float] = None
    deposit: Optional[float] = None
    idempotency_token: Optional[str] = None
    affiliate: Optional[Affiliate] = None
    second_offering_code: str = ""
    second_package_code: str = ""
    fountain_type: str = ""
    fountain_size: str = ""
    source: str = "direct"

    def __post_init__(self) -> None:
        if self.start is not None and self.start.tzinfo is None:
            raise BookingRequestError("start must be timezone-aware")
        for label, amount in (("total", self.total), ("deposit", self.deposit)):
            if amount is not None and amount < 0:
                raise BookingRequestError(f"{label} must be non-negative")
        if self.total is not None and self.deposit is not None and self.deposit > self.total:
            raise BookingRequestError("deposit cannot exceed total")

    def missing_fields(self) -> list[str]:
        checks = [
            ("requester_name", self.requester_name),
            ("package_code", self.package_code),
            ("offering_code", self.offering_code),
        ]
        missing = [name for name, value in checks if not value or not value.strip()]
        if self.start is None:
            missing.append("start")
        return missing


@dataclass(frozen=True)
class OperationalWindow:
    start: datetime
    end: datetime

    def overlaps(self, start: datetime, end: datetime) -> bool:
        return not (end <= self.start or start >= self.end)


@dataclass(frozen=True)
class DayBounds:
    start: datetime
    end: datetime

    def contains(self, window: OperationalWindow) -> bool:
        return self.start <= window.start and window.end <= self.end


@dataclass(frozen=True)
class ExistingBooking:
    booking_id: str
    start: datetime
    end: datetime
    cancelled: bool = False
    idempotency_tag: Optional[str] = None


@dataclass(frozen=True)
class AdmissionDecision:
    admitted: bool
    reason: Optional[ReasonCode] = None
    detail: str = ""

    def __post_init__(self) -> None:
        if self.admitted == (self.reason is not None):
            raise ValueError("a rejection carries a reason and an admission does not")


@dataclass(frozen=True)
class BookingRecord:
    """Calendar write payload built from an admitted request."""

    title: str
    description: str
    start: datetime
    end: datetime
    timezone: str
    location: str = ""
    attendees: tuple[str, ...] = ()
    tags: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class AdmissionOutcome:
    status: OutcomeStatus
    stage: AdmissionStage
    reason: Optional[ReasonCode] = None
    detail: str = ""
    booking_id: Optional[str] = None
    window: Optional[OperationalWindow] = None

    @property
    def succeeded(self) -> bool:
        return self.status is not OutcomeStatus.REJECTED

    @property
    def reason_code(self) -> str:
        return self.reason.value if self.reason is not None else self.status.value
