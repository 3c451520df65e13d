"""Structured logging utilities.

Every record carries a ``booking_ref`` correlation field so the lines of one
admission (direct form, webhook delivery or availability query) can be
grepped together. The reference is bound per task through a ``ContextVar``.
"""

from __future__ import annotations

import logging
import sys
from contextvars import ContextVar, Token
from typing import Optional

from catering_booking.utils.config import get_settings


_LOGGER_INITIALIZED = False
_NO_REF = "-"

_booking_ref: ContextVar[str] = ContextVar("booking_ref", default=_NO_REF)

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | [%(booking_ref)s] %(message)s"


def bind_booking_ref(reference: Optional[str]) -> Token:
    """Attach ``reference`` to log records emitted from the current context."""
    return _booking_ref.set((reference or "").strip() or _NO_REF)


def reset_booking_ref(token: Token) -> None:
    _booking_ref.reset(token)


def current_booking_ref() -> str:
    return _booking_ref.get()


class BookingRefFilter(logging.Filter):
    """Injects the bound booking reference into every record."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.booking_ref = _booking_ref.get()  # type: ignore[attr-defined]
        return True


def configure_logging(level: Optional[str] = None) -> None:
    """Configure process-wide logging once."""

    global _LOGGER_INITIALIZED
    if _LOGGER_INITIALIZED:
        return

    resolved_level = (level or get_settings().log_level).upper()

    handler = logging.StreamHandler(sys.stdout)
    handler.addFilter(BookingRefFilter())
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    logging.basicConfig(level=resolved_level, handlers=[handler])
    _LOGGER_INITIALIZED = True


def get_logger(name: str) -> logging.Logger:
    """Return a configured logger for the requested module."""
    configure_logging()
    return logging.getLogger(name)
