"""Duplicate-delivery guard keyed on the request's idempotency token."""

from __future__ import annotations

from typing import Optional

from catering_booking.domain.models import DayBounds
from catering_booking.repository.data_repository import IDEMPOTENCY_TAG, DataRepository
from catering_booking.utils.config import Settings, get_settings
from catering_booking.utils.logger import get_logger


logger = get_logger(__name__)


class IdempotencyGuard:
    """Finds an already-committed booking carrying the same token."""

    def __init__(
        self,
        repository: Optional[DataRepository] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._repository = repository or DataRepository(self._settings)

    def lookup(self, idempotency_token: Optional[str], bounds: DayBounds) -> Optional[str]:
        """Return the id of a live booking with this token on the same day.

        A blank token disables the guard and always yields ``None``.
        """
        token = (idempotency_token or "").strip()
        if not token:
            return None

        matches = self._repository.list_bookings(
            bounds.start,
            bounds.end,
            tag=(IDEMPOTENCY_TAG, token),
            limit=self._settings.idempotency_lookup_limit,
        )
        for booking in matches:
            if not booking.cancelled:
                logger.info(
                    "Idempotency hit | token=%s | booking_id=%s",
                    token,
                    booking.booking_id,
                )
                return booking.booking_id
        return None
