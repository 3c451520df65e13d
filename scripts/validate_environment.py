#!/usr/bin/env python3
"""Validate local booking-engine environment readiness."""

from __future__ import annotations

import importlib
import shutil
import sys
import tempfile
from dataclasses import replace
from datetime import datetime, timedelta
from importlib.metadata import version
from pathlib import Path
from zoneinfo import ZoneInfo

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from catering_booking.domain.models import BookingRequest, OutcomeStatus
from catering_booking.repository.data_repository import DataRepository
from catering_booking.services.admission_service import (
    BookingAdmissionService,
    build_booking_rules,
)
from catering_booking.utils.config import get_settings

SEPARATOR_LINE = "=" * 44


def _print_result(name: str, success: bool, detail: str = "") -> tuple[bool, str]:
    if success:
        return True, f"[PASS] {name}{detail}"
    return False, f"[FAIL] {name}: {detail}"


def main() -> int:
    results: list[str] = []
    all_passed = True
    temp_dir = tempfile.mkdtemp(prefix="catering-env-")

    # CHECK 1: Python version >= 3.10
    if sys.version_info >= (3, 10):
        ok, line = _print_result("Python " + sys.version.split()[0], True)
    else:
        ok, line = _print_result(
            "Python version >= 3.10",
            False,
            f"found {sys.version.split()[0]}",
        )
    results.append(line)
    all_passed = all_passed and ok

    # CHECK 2: Required packages importable with versions
    package_specs = [
        ("fastapi", "fastapi"),
        ("uvicorn", "uvicorn"),
        ("pydantic", "pydantic"),
        ("dotenv", "python-dotenv"),
        ("httpx", "httpx"),
        ("pytest", "pytest"),
    ]
    import_errors: list[str] = []
    for module_name, dist_name in package_specs:
        try:
            importlib.import_module(module_name)
            _ = version(dist_name)
        except Exception as exc:  # pragma: no cover - runtime guard
            import_errors.append(f"{module_name} ({exc})")
    if import_errors:
        ok, line = _print_result(
            "Required packages",
            False,
            "missing/unimportable -> " + "; ".join(import_errors),
        )
    else:
        ok, line = _print_result("Required packages: all importable", True)
    results.append(line)
    all_passed = all_passed and ok

    base_settings = get_settings()

    # CHECK 3: Business timezone and rules
    rules = None
    try:
        rules = build_booking_rules(base_settings)
        offset = datetime(2026, 7, 1, 12, tzinfo=ZoneInfo(rules.timezone)).utcoffset()
        ok, line = _print_result(
            "Booking rules",
            True,
            f": {rules.timezone} (UTC{offset}) hours {rules.hours_start:02d}-{rules.hours_end:02d}",
        )
    except Exception as exc:
        ok, line = _print_result("Booking rules", False, str(exc))
    results.append(line)
    all_passed = all_passed and ok

    try:
        temp_db_path = Path(temp_dir) / "catering_validation.db"
        validation_settings = replace(base_settings, database_path=temp_db_path)
        repository = DataRepository(validation_settings)

        # CHECK 4: Database initialization
        try:
            repository.initialize_database()
            ok, line = _print_result("Database initialization", True)
        except Exception as exc:
            ok, line = _print_result("Database initialization", False, str(exc))
        results.append(line)
        all_passed = all_passed and ok

        # CHECK 5: Admission round trip, then a duplicate no-op
        try:
            if rules is None:
                raise RuntimeError("booking rules unavailable")
            service = BookingAdmissionService(
                repository=repository,
                settings=validation_settings,
                rules=rules,
            )
            start = datetime.now(rules.zone).replace(
                hour=rules.hours_start + 1, minute=0, second=0, microsecond=0
            ) + timedelta(days=7)
            request = BookingRequest(
                requester_name="Environment Check",
                package_code="50-150-5h",
                offering_code="pancake",
                start=start,
                idempotency_token="environment-check",
            )
            first = service.admit(request)
            second = service.admit(request)
            if first.status is not OutcomeStatus.COMMITTED:
                raise RuntimeError(f"expected committed, got {first.status.value}: {first.detail}")
            if second.status is not OutcomeStatus.ALREADY_EXISTS:
                raise RuntimeError(f"expected already_exists, got {second.status.value}")
            ok, line = _print_result(
                "Admission round trip",
                True,
                f": booking {first.booking_id}",
            )
        except Exception as exc:
            ok, line = _print_result("Admission round trip", False, str(exc))
        results.append(line)
        all_passed = all_passed and ok

    finally:
        shutil.rmtree(temp_dir, ignore_errors=True)

    print(SEPARATOR_LINE)
    print(" Booking Engine Environment Validation")
    print(SEPARATOR_LINE)
    for line in results:
        print(f" {line}")
    print(SEPARATOR_LINE)
    if all_passed:
        print(" All checks passed. Environment is ready.")
        print(SEPARATOR_LINE)
        return 0
    print(" One or more checks failed.")
    print(SEPARATOR_LINE)
    return 1


if __name__ == "__main__":
    raise SystemExit(main())
