"""Affiliate PIN resolution for the direct booking entry point."""

from __future__ import annotations

import secrets
from typing import Optional

from catering_booking.domain.models import Affiliate
from catering_booking.utils.config import Settings, get_settings


class InvalidCredentialError(Exception):
    """Raised when a PIN does not match any configured affiliate."""


class AffiliateService:
    def __init__(self, settings: Optional[Settings] = None) -> None:
        self._settings = settings or get_settings()
        self._affiliates = [
            Affiliate(pin=pin, name=name, email=email)
            for pin, name, email in self._settings.affiliate_pins
        ]

    @property
    def has_affiliates(self) -> bool:
        return bool(self._affiliates)

    def resolve(self, pin: Optional[str]) -> Affiliate:
        candidate = (pin or "").strip()
        if not candidate:
            raise InvalidCredentialError("invalid_pin")
        match: Affiliate | None = None
        # Compare against every entry so timing does not reveal the position.
        for affiliate in self._affiliates:
            if secrets.compare_digest(candidate.encode(), affiliate.pin.encode()):
                match = affiliate
        if match is None:
            raise InvalidCredentialError("invalid_pin")
        return match
