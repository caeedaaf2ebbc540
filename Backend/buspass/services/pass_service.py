"""
Pass workflow: lifecycle rules for issued passes and the collaborators
the application flow depends on.

Mobile OTP delivery and document storage live outside this service. The
defaults here keep one-time codes in memory and only log deliveries and
deletions; deployments swap them through the FastAPI dependencies at the
bottom of the module.
"""

import calendar
import secrets
import threading
from datetime import date, datetime, timedelta
from typing import Callable, Dict, Optional, Tuple

from sqlalchemy.orm import Session

from buspass.core.config import settings
from buspass.core.logger import logger, log_pass
from buspass.db import crud
from buspass.db.models import Pass, get_ist_now


def add_months(start: date, months: int) -> date:
    """Same day `months` later, clamped to the end of shorter months (Jan 31 + 1 -> Feb 28/29)"""
    month_index = start.month - 1 + months
    year = start.year + month_index // 12
    month = month_index % 12 + 1
    day = min(start.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def mask_mobile(mobile: str) -> str:
    return f"******{mobile[-4:]}" if len(mobile) >= 4 else "****"


def _random_digits(length: int) -> str:
    return "".join(secrets.choice("0123456789") for _ in range(length))


class PassRuleError(Exception):
    """A pass action is not allowed in the pass's current state"""


class OtpStore:
    """
    One-time codes keyed by purpose (e.g. "application:12").
    A code is valid for OTP_TTL_MINUTES and can be used once.
    """

    def __init__(
        self,
        ttl_minutes: Optional[int] = None,
        generate: Optional[Callable[[], str]] = None,
        clock: Callable[[], datetime] = get_ist_now
    ):
        self.ttl = timedelta(minutes=ttl_minutes if ttl_minutes is not None else settings.OTP_TTL_MINUTES)
        self._generate = generate or (lambda: _random_digits(settings.OTP_LENGTH))
        self._clock = clock
        self._codes: Dict[str, Tuple[str, datetime]] = {}
        self._lock = threading.Lock()

    def issue(self, key: str, mobile: str) -> None:
        """Create a code for key, replacing any earlier one, and send it to mobile"""
        code = self._generate()
        with self._lock:
            self._codes[key] = (code, self._clock() + self.ttl)
        self.deliver(mobile, code)

    def deliver(self, mobile: str, code: str) -> None:
        """SMS gateway hook; the default only records that a code went out"""
        logger.info(f"OTP sent to {mask_mobile(mobile)} (valid {int(self.ttl.total_seconds() // 60)} min)")

    def verify(self, key: str, code: str) -> bool:
        """True when code matches the live code for key; a matching code is consumed"""
        with self._lock:
            entry = self._codes.get(key)
            if entry is None:
                return False
            expected, expires_at = entry
            if self._clock() > expires_at:
                del self._codes[key]
                return False
            if not secrets.compare_digest(expected, code):
                return False
            del self._codes[key]
            return True


class DocumentStore:
    """Uploaded documents are referenced by the string the upload service returned"""

    def delete(self, reference: str) -> None:
        logger.info(f"Document released: {reference}")


# ============ Pass lifecycle ============

def renew_pass(db: Session, bus_pass: Pass, valid_until: date, actor: str) -> Pass:
    """
    Extend a pass to valid_until and make it active again.
    Expired passes can be renewed; cancelled ones cannot.
    """
    if bus_pass.status == "cancelled":
        raise PassRuleError("Cannot renew a cancelled pass")
    if valid_until <= bus_pass.valid_until:
        raise PassRuleError(f"New validity must end after {bus_pass.valid_until.isoformat()}")

    renewed = crud.update_pass_status(
        db,
        bus_pass.id,
        "active",
        valid_until=valid_until,
        renewal_count=bus_pass.renewal_count + 1,
    )
    log_pass(renewed.pass_number, f"renewed until {valid_until.isoformat()}", actor)
    return renewed


def cancel_pass(db: Session, bus_pass: Pass, reason: str, actor: str) -> Pass:
    """Cancel a pass for good"""
    if bus_pass.status == "cancelled":
        raise PassRuleError("Pass is already cancelled")

    cancelled = crud.update_pass_status(
        db,
        bus_pass.id,
        "cancelled",
        cancellation_reason=reason,
        cancelled_at=get_ist_now(),
    )
    log_pass(cancelled.pass_number, "cancelled", actor)
    return cancelled


# Singleton instances
otp_store = OtpStore()
document_store = DocumentStore()


def get_otp_store() -> OtpStore:
    return otp_store


def get_document_store() -> DocumentStore:
    return document_store
