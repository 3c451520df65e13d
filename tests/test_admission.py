from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timedelta
from zoneinfo import ZoneInfo

import pytest

from catering_booking.domain.constraints import DEFAULT_SERVICE_HOURS_TABLE, BookingRules
from catering_booking.domain.models import (
    AdmissionStage,
    Affiliate,
    BookingRecord,
    BookingRequest,
    BookingRequestError,
    OutcomeStatus,
    ReasonCode,
)
from catering_booking.repository.data_repository import (
    IDEMPOTENCY_TAG,
    CalendarReadError,
    CalendarWriteError,
    DataRepository,
)
from catering_booking.services.admission_service import (
    BookingAdmissionService,
    build_booking_record,
)
from catering_booking.utils.config import get_settings


LA = ZoneInfo("America/Los_Angeles")


def _build_test_settings(tmp_path, filename: str, **overrides):
    get_settings.cache_clear()
    base = get_settings()
    values = {
        "database_path": tmp_path / filename,
        "business_name": "Manna Snack Bars",
        "timezone": "America/Los_Angeles",
        "hours_start": 9,
        "hours_end": 22,
        "prep_hours": 1.0,
        "cleanup_hours": 1.0,
        "max_bookings_per_day": 3,
        "max_bookings_per_slot": 2,
        "default_service_hours": 2.0,
        "package_service_hours": DEFAULT_SERVICE_HOURS_TABLE,
        "admin_token": None,
        "affiliate_pins": (),
    }
    values.update(overrides)
    return replace(base, **values)


def _build_service(tmp_path, filename: str, **overrides):
    settings = _build_test_settings(tmp_path, filename, **overrides)
    repository = DataRepository(settings)
    repository.initialize_database()
    return BookingAdmissionService(repository=repository, settings=settings), repository


def _at(hour: int, minute: int = 0, day: int = 15) -> datetime:
    return datetime(2027, 6, day, hour, minute, tzinfo=LA)


def _request(start: datetime, **overrides) -> BookingRequest:
    values = {
        "requester_name": "Jane Rivera",
        "package_code": "50-150-5h",
        "offering_code": "pancake",
        "start": start,
        "venue": "Community Hall",
        "emails": ("jane@example.com",),
    }
    values.update(overrides)
    return BookingRequest(**values)


def test_commit_stores_service_span_and_reports_operational_window(tmp_path):
    service, repository = _build_service(tmp_path, "admission_commit.db")

    outcome = service.admit(_request(_at(14), package_code="150-250-5h"))

    assert outcome.status is OutcomeStatus.COMMITTED
    assert outcome.stage is AdmissionStage.COMMITTED
    assert outcome.succeeded
    assert outcome.window is not None
    assert outcome.window.start == _at(13)
    assert outcome.window.end == _at(17, 30)

    stored = repository.get_booking(outcome.booking_id)
    assert stored is not None
    assert stored.start == _at(14)
    assert stored.end == _at(16, 30)
    assert stored.timezone == "America/Los_Angeles"
    assert stored.location == "Community Hall"
    assert stored.attendees == ("jane@example.com",)
    assert stored.tags["package"] == "150-250-5h"
    assert stored.tags["offering"] == "pancake"
    assert IDEMPOTENCY_TAG not in stored.tags


def test_fourth_booking_on_same_day_is_rejected_by_day_cap(tmp_path):
    service, repository = _build_service(tmp_path, "admission_day_cap.db")

    for hour in (9, 13, 17):
        assert service.admit(_request(_at(hour))).status is OutcomeStatus.COMMITTED

    outcome = service.admit(_request(_at(20)))

    assert outcome.status is OutcomeStatus.REJECTED
    assert outcome.reason is ReasonCode.DAY_CAPACITY_EXCEEDED
    assert outcome.stage is AdmissionStage.IDEMPOTENCY_CHECKED
    assert repository.count_bookings() == 3


def test_third_concurrent_booking_is_rejected_but_later_slot_is_admitted(tmp_path):
    service, repository = _build_service(tmp_path, "admission_overlap.db")

    assert service.admit(_request(_at(12))).status is OutcomeStatus.COMMITTED
    assert service.admit(_request(_at(12))).status is OutcomeStatus.COMMITTED

    # Window 12:00-16:00 meets both 12:00-14:00 services.
    rejected = service.admit(_request(_at(13)))
    assert rejected.status is OutcomeStatus.REJECTED
    assert rejected.reason is ReasonCode.OVERLAP_CAPACITY_EXCEEDED
    assert "prep+2h+clean" in rejected.detail

    # Window 14:00-18:00 only touches the 14:00 service ends.
    admitted = service.admit(_request(_at(15)))
    assert admitted.status is OutcomeStatus.COMMITTED
    assert repository.count_bookings() == 3


def test_cancelled_bookings_free_capacity(tmp_path):
    service, repository = _build_service(
        tmp_path,
        "admission_cancelled.db",
        max_bookings_per_slot=1,
    )

    first = service.admit(_request(_at(12)))
    assert service.admit(_request(_at(12))).reason is ReasonCode.OVERLAP_CAPACITY_EXCEEDED

    assert repository.cancel_booking(first.booking_id)
    assert service.admit(_request(_at(12))).status is OutcomeStatus.COMMITTED


def test_repeated_token_is_a_no_op(tmp_path):
    service, repository = _build_service(tmp_path, "admission_idempotent.db")
    request = _request(_at(11), idempotency_token="cs_test_123")

    first = service.admit(request)
    second = service.admit(request)

    assert first.status is OutcomeStatus.COMMITTED
    assert second.status is OutcomeStatus.ALREADY_EXISTS
    assert second.booking_id == first.booking_id
    assert second.succeeded
    assert repository.count_bookings() == 1

    stored = repository.get_booking(first.booking_id)
    assert stored is not None
    assert stored.tags[IDEMPOTENCY_TAG] == "cs_test_123"


def test_repeated_token_wins_over_a_full_day(tmp_path):
    service, repository = _build_service(tmp_path, "admission_idempotent_full.db")
    service.admit(_request(_at(9)))
    service.admit(_request(_at(13)))
    last = service.admit(_request(_at(17), idempotency_token="cs_full_day"))

    replay = service.admit(_request(_at(17), idempotency_token="cs_full_day"))

    assert replay.status is OutcomeStatus.ALREADY_EXISTS
    assert replay.booking_id == last.booking_id
    assert repository.count_bookings() == 3


def test_token_of_a_cancelled_booking_can_book_again(tmp_path):
    service, repository = _build_service(tmp_path, "admission_idempotent_cancel.db")
    request = _request(_at(11), idempotency_token="cs_retry")

    first = service.admit(request)
    repository.cancel_booking(first.booking_id)
    second = service.admit(request)

    assert second.status is OutcomeStatus.COMMITTED
    assert second.booking_id != first.booking_id


def test_blank_token_never_deduplicates(tmp_path):
    service, repository = _build_service(tmp_path, "admission_blank_token.db")

    service.admit(_request(_at(11), idempotency_token="   "))
    service.admit(_request(_at(11), idempotency_token=None))

    assert repository.count_bookings() == 2


def test_missing_fields_are_rejected_before_any_read(tmp_path, monkeypatch):
    service, repository = _build_service(tmp_path, "admission_missing.db")

    def _unexpected_read(*args, **kwargs):
        raise AssertionError("calendar must not be read")

    monkeypatch.setattr(repository, "list_bookings", _unexpected_read)
    outcome = service.admit(_request(None, requester_name=" ", offering_code=""))

    assert outcome.status is OutcomeStatus.REJECTED
    assert outcome.reason is ReasonCode.MISSING_FIELDS
    assert outcome.stage is AdmissionStage.RECEIVED
    assert "requester_name" in outcome.detail
    assert "offering_code" in outcome.detail
    assert "start" in outcome.detail


@pytest.mark.parametrize(("hour", "minute"), [(8, 59), (22, 0)])
def test_start_outside_business_hours_is_rejected(tmp_path, hour, minute):
    service, repository = _build_service(tmp_path, f"admission_hours_{hour}.db")

    outcome = service.admit(_request(_at(hour, minute)))

    assert outcome.reason is ReasonCode.OUTSIDE_BUSINESS_HOURS
    assert outcome.stage is AdmissionStage.VALIDATED
    assert repository.count_bookings() == 0


def test_window_spilling_past_midnight_reads_next_day(tmp_path):
    service, repository = _build_service(
        tmp_path,
        "admission_midnight.db",
        max_bookings_per_slot=1,
    )
    # An early-morning entry on the next day, written straight to the calendar.
    repository.create_booking(
        BookingRecord(
            title="Overnight hold",
            description="",
            start=_at(0, 15, day=16),
            end=_at(0, 45, day=16),
            timezone="America/Los_Angeles",
        )
    )

    # 21:00 + 3h service + 1h clean runs to 01:00 on the 16th.
    outcome = service.admit(_request(_at(21), package_code="250-350-6h"))

    assert outcome.reason is ReasonCode.OVERLAP_CAPACITY_EXCEEDED


def test_day_cap_counts_local_day_only(tmp_path):
    service, repository = _build_service(tmp_path, "admission_local_day.db")
    for hour in (9, 13, 17):
        service.admit(_request(_at(hour, day=14)))

    outcome = service.admit(_request(_at(10)))

    assert outcome.status is OutcomeStatus.COMMITTED


def test_write_failure_propagates(tmp_path, monkeypatch):
    service, repository = _build_service(tmp_path, "admission_write_failure.db")

    def _failing_create(record):
        raise CalendarWriteError("calendar offline")

    monkeypatch.setattr(repository, "create_booking", _failing_create)
    with pytest.raises(CalendarWriteError):
        service.admit(_request(_at(11)))
    assert repository.count_bookings() == 0


def test_read_failure_propagates(tmp_path, monkeypatch):
    service, repository = _build_service(tmp_path, "admission_read_failure.db")

    def _failing_list(*args, **kwargs):
        raise CalendarReadError("calendar offline")

    monkeypatch.setattr(repository, "list_bookings", _failing_list)
    with pytest.raises(CalendarReadError):
        service.admit(_request(_at(11), idempotency_token="cs_read_failure"))


def test_booking_record_formats_title_description_and_attendees():
    request = _request(
        _at(14),
        package_code="150-250-5h",
        offering_code="esquites",
        emails=("jane@example.com", "JANE@example.com", "not-an-email"),
        phone="555-0100",
        total=900.0,
        deposit=300.0,
        idempotency_token="cs_record",
        affiliate=Affiliate(pin="4821", name="Venue Partners", email="events@partners.example"),
        second_offering_code="maruchan",
        second_package_code="50-150-5h",
        notes="Gate code 1234",
        source="payment",
    )
    record = build_booking_record(request, BookingRules(), "Manna Snack Bars")

    assert record.title == (
        "Manna Snack Bars | Esquites (Corn Cups) | 150-250 guests (5h window) | Jane Rivera"
    )
    assert record.end - record.start == timedelta(hours=2.5)
    assert record.attendees == ("jane@example.com", "events@partners.example")
    assert "Deposit: $300 (paid)" in record.description
    assert "Balance: $600" in record.description
    assert "Second bar: Maruchan - 50-150 guests (5h window)" in record.description
    assert "Affiliate: Venue Partners <events@partners.example>" in record.description
    assert "Notes: Gate code 1234" in record.description
    assert "\n\n\n" not in record.description
    assert record.tags[IDEMPOTENCY_TAG] == "cs_record"
    assert record.tags["source"] == "payment"
    assert record.tags["affiliate_name"] == "Venue Partners"


def test_request_rejects_deposit_above_total():
    with pytest.raises(BookingRequestError):
        _request(_at(14), total=100.0, deposit=150.0)


def test_request_rejects_deposit_with_zero_total():
    with pytest.raises(BookingRequestError):
        _request(_at(14), total=0.0, deposit=500.0)


def test_request_rejects_naive_start():
    with pytest.raises(BookingRequestError):
        _request(datetime(2027, 6, 15, 14))


def test_request_rejects_negative_amounts():
    with pytest.raises(BookingRequestError):
        _request(_at(14), total=-1.0)


def test_booking_record_requires_start():
    with pytest.raises(BookingRequestError):
        build_booking_record(_request(None), BookingRules(), "Manna Snack Bars")
