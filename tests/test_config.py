from __future__ import annotations

import pytest

from catering_booking.services.affiliate_service import AffiliateService, InvalidCredentialError
from catering_booking.utils.config import load_settings


def test_settings_read_rules_from_environment(monkeypatch, tmp_path):
    monkeypatch.setenv("DATABASE_PATH", str(tmp_path / "env.db"))
    monkeypatch.setenv("TIMEZONE", "America/Chicago")
    monkeypatch.setenv("MAX_PER_DAY", "5")
    monkeypatch.setenv("PACKAGE_SERVICE_HOURS", "small=1.5, large=4")
    monkeypatch.setenv("ADMIN_TOKEN", "  ")

    settings = load_settings()

    assert settings.database_path == tmp_path / "env.db"
    assert settings.timezone == "America/Chicago"
    assert settings.max_bookings_per_day == 5
    assert settings.package_service_hours == (("small", 1.5), ("large", 4.0))
    assert settings.admin_token is None


def test_invalid_numeric_setting_names_the_variable(monkeypatch):
    monkeypatch.setenv("MAX_PER_SLOT", "two")

    with pytest.raises(ValueError, match="MAX_PER_SLOT"):
        load_settings()


def test_invalid_package_hours_entry_raises(monkeypatch):
    monkeypatch.setenv("PACKAGE_SERVICE_HOURS", "50-150-5h")

    with pytest.raises(ValueError, match="PACKAGE_SERVICE_HOURS"):
        load_settings()


def test_affiliate_pins_accept_names_and_objects(monkeypatch):
    monkeypatch.setenv(
        "AFFILIATE_PINS",
        '{"4821": {"name": "Venue Partners", "email": "events@partners.example"}, "1111": "Solo"}',
    )

    settings = load_settings()
    service = AffiliateService(settings=settings)

    assert service.has_affiliates
    assert service.resolve(" 4821 ").email == "events@partners.example"
    assert service.resolve("1111").name == "Solo"
    with pytest.raises(InvalidCredentialError):
        service.resolve("9999")
    with pytest.raises(InvalidCredentialError):
        service.resolve("")


def test_affiliate_pins_must_be_a_json_object(monkeypatch):
    monkeypatch.setenv("AFFILIATE_PINS", '["4821"]')

    with pytest.raises(ValueError, match="AFFILIATE_PINS"):
        load_settings()
