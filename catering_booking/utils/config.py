"""Application settings loaded once from the environment."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv


DEFAULT_PACKAGE_SERVICE_HOURS = "50-150-5h=2,150-250-5h=2.5,250-350-6h=3"


def _env_int(name: str, default: str) -> int:
    raw = os.getenv(name, default)
    try:
        return int(raw)
    except (TypeError, ValueError):
        raise ValueError(f"Invalid integer for {name}: {raw!r}") from None


def _env_float(name: str, default: str) -> float:
    raw = os.getenv(name, default)
    try:
        return float(raw)
    except (TypeError, ValueError):
        raise ValueError(f"Invalid float for {name}: {raw!r}") from None


def _parse_package_hours(raw: str) -> tuple[tuple[str, float], ...]:
    """Parse ``code=hours`` pairs separated by commas."""
    pairs: list[tuple[str, float]] = []
    for chunk in raw.split(","):
        chunk = chunk.strip()
        if not chunk:
            continue
        code, sep, hours = chunk.partition("=")
        if not sep or not code.strip():
            raise ValueError(f"Invalid PACKAGE_SERVICE_HOURS entry: {chunk!r}")
        try:
            pairs.append((code.strip(), float(hours)))
        except ValueError:
            raise ValueError(f"Invalid PACKAGE_SERVICE_HOURS entry: {chunk!r}") from None
    return tuple(pairs)


def _parse_affiliates(raw: str) -> tuple[tuple[str, str, str], ...]:
    """Parse the AFFILIATE_PINS JSON object into (pin, name, email) rows."""
    if not raw.strip():
        return ()
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ValueError(f"AFFILIATE_PINS must be a JSON object: {exc}") from exc
    if not isinstance(data, dict):
        raise ValueError("AFFILIATE_PINS must be a JSON object keyed by PIN")

    rows: list[tuple[str, str, str]] = []
    for pin, entry in data.items():
        if isinstance(entry, str):
            rows.append((str(pin), entry, ""))
        elif isinstance(entry, dict):
            rows.append(
                (
                    str(pin),
                    str(entry.get("name") or ""),
                    str(entry.get("email") or ""),
                )
            )
        else:
            raise ValueError(f"AFFILIATE_PINS entry for {pin!r} must be a string or object")
    return tuple(rows)


@dataclass(frozen=True)
class Settings:
    app_name: str
    app_version: str
    log_level: str
    database_path: Path
    business_name: str
    timezone: str
    hours_start: int
    hours_end: int
    prep_hours: float
    cleanup_hours: float
    max_bookings_per_day: int
    max_bookings_per_slot: int
    default_service_hours: float
    package_service_hours: tuple[tuple[str, float], ...]
    calendar_list_limit: int
    idempotency_lookup_limit: int
    admin_token: Optional[str]
    affiliate_pins: tuple[tuple[str, str, str], ...]


def load_settings() -> Settings:
    load_dotenv()
    admin_token = os.getenv("ADMIN_TOKEN", "").strip()
    return Settings(
        app_name=os.getenv("APP_NAME", "Catering Slot Booking"),
        app_version=os.getenv("APP_VERSION", "1.0.0"),
        log_level=os.getenv("LOG_LEVEL", "INFO"),
        database_path=Path(os.getenv("DATABASE_PATH", "data/bookings.db")),
        business_name=os.getenv("BUSINESS_NAME", "Manna Snack Bars"),
        timezone=os.getenv("TIMEZONE", "America/Los_Angeles"),
        hours_start=_env_int("HOURS_START", "9"),
        hours_end=_env_int("HOURS_END", "22"),
        prep_hours=_env_float("PREP_HOURS", "1"),
        cleanup_hours=_env_float("CLEANUP_HOURS", "1"),
        max_bookings_per_day=_env_int("MAX_PER_DAY", "3"),
        max_bookings_per_slot=_env_int("MAX_PER_SLOT", "2"),
        default_service_hours=_env_float("DEFAULT_SERVICE_HOURS", "2.0"),
        package_service_hours=_parse_package_hours(
            os.getenv("PACKAGE_SERVICE_HOURS", DEFAULT_PACKAGE_SERVICE_HOURS)
        ),
        calendar_list_limit=_env_int("CALENDAR_LIST_LIMIT", "250"),
        idempotency_lookup_limit=_env_int("IDEMPOTENCY_LOOKUP_LIMIT", "50"),
        admin_token=admin_token or None,
        affiliate_pins=_parse_affiliates(os.getenv("AFFILIATE_PINS", "")),
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return the process-wide settings instance."""
    return load_settings()
