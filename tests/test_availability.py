from __future__ import annotations

from dataclasses import replace
from datetime import date, datetime
from zoneinfo import ZoneInfo

from catering_booking.domain.constraints import DEFAULT_SERVICE_HOURS_TABLE
from catering_booking.domain.models import BookingRequest, OutcomeStatus
from catering_booking.repository.data_repository import DataRepository
from catering_booking.services.admission_service import BookingAdmissionService
from catering_booking.services.availability_service import DAY_CAP_REACHED, AvailabilityService
from catering_booking.utils.config import get_settings


LA = ZoneInfo("America/Los_Angeles")
TARGET_DAY = date(2027, 6, 15)


def _build_test_settings(tmp_path, filename: str):
    get_settings.cache_clear()
    base = get_settings()
    return replace(
        base,
        database_path=tmp_path / filename,
        timezone="America/Los_Angeles",
        hours_start=9,
        hours_end=22,
        prep_hours=1.0,
        cleanup_hours=1.0,
        max_bookings_per_day=3,
        max_bookings_per_slot=2,
        default_service_hours=2.0,
        package_service_hours=DEFAULT_SERVICE_HOURS_TABLE,
    )


def _build_services(tmp_path, filename: str, now: datetime):
    settings = _build_test_settings(tmp_path, filename)
    repository = DataRepository(settings)
    repository.initialize_database()
    admission = BookingAdmissionService(repository=repository, settings=settings)
    availability = AvailabilityService(
        repository=repository,
        settings=settings,
        rules=admission.rules,
        clock=lambda: now,
    )
    return admission, availability


def _book(admission: BookingAdmissionService, hour: int) -> None:
    outcome = admission.admit(
        BookingRequest(
            requester_name="Availability Test",
            package_code="50-150-5h",
            offering_code="snack",
            start=datetime(2027, 6, 15, hour, tzinfo=LA),
        )
    )
    assert outcome.status is OutcomeStatus.COMMITTED


def test_empty_day_offers_every_business_hour(tmp_path):
    _, availability = _build_services(
        tmp_path,
        "availability_empty.db",
        now=datetime(2027, 6, 1, 9, tzinfo=LA),
    )

    report = availability.available_start_hours(TARGET_DAY, "150-250-5h")

    assert [slot.hour for slot in report.slots] == list(range(9, 22))
    assert report.service_hours == 2.5
    assert report.active_bookings == 0
    assert report.reason is None
    assert report.slots[0].start == datetime(2027, 6, 15, 9, tzinfo=LA)


def test_past_hours_are_not_offered(tmp_path):
    _, availability = _build_services(
        tmp_path,
        "availability_past.db",
        now=datetime(2027, 6, 15, 12, 30, tzinfo=LA),
    )

    report = availability.available_start_hours(TARGET_DAY, "50-150-5h")

    assert [slot.hour for slot in report.slots] == list(range(13, 22))


def test_hours_at_overlap_cap_are_excluded(tmp_path):
    admission, availability = _build_services(
        tmp_path,
        "availability_overlap.db",
        now=datetime(2027, 6, 1, 9, tzinfo=LA),
    )
    _book(admission, 12)
    _book(admission, 12)

    report = availability.available_start_hours(TARGET_DAY, "50-150-5h")

    # Windows for 10:00-14:00 starts meet both 12:00-14:00 services.
    assert [slot.hour for slot in report.slots] == [9] + list(range(15, 22))
    assert report.active_bookings == 2


def test_day_cap_returns_no_slots_with_reason(tmp_path):
    admission, availability = _build_services(
        tmp_path,
        "availability_day_cap.db",
        now=datetime(2027, 6, 1, 9, tzinfo=LA),
    )
    for hour in (9, 13, 17):
        _book(admission, hour)

    report = availability.available_start_hours(TARGET_DAY, "50-150-5h")

    assert report.slots == []
    assert report.reason == DAY_CAP_REACHED
    assert report.active_bookings == 3


def test_offered_hours_are_admissible(tmp_path):
    admission, availability = _build_services(
        tmp_path,
        "availability_consistent.db",
        now=datetime(2027, 6, 1, 9, tzinfo=LA),
    )
    _book(admission, 12)
    _book(admission, 12)

    report = availability.available_start_hours(TARGET_DAY, "50-150-5h")
    outcome = admission.admit(
        BookingRequest(
            requester_name="Follow Up",
            package_code="50-150-5h",
            offering_code="snack",
            start=report.slots[0].start,
        )
    )

    assert outcome.status is OutcomeStatus.COMMITTED
