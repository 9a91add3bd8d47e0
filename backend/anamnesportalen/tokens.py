"""
Access-token rules for the patient-facing flow.

A token is issued per entry (magic link or kiosk session) and is the only
credential the patient form needs. These helpers build entry documents and
decide whether an entry may still be read, saved or submitted; the routers
do the database I/O.
"""
from __future__ import annotations

import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from anamnesportalen.config import settings
from anamnesportalen.errors import (
    AlreadySubmitted,
    EntryUnavailable,
    InvalidToken,
    MalformedToken,
    MissingToken,
    TokenExpired,
)
from anamnesportalen.logging_config import token_prefix
from anamnesportalen.schemas import IssueTokenIn

logger = logging.getLogger(__name__)

FILLABLE_STATUSES = ("sent", "in_progress")
SUBMITTED_STATUSES = ("pending", "ready", "reviewed", "submitted")


def utcnow() -> datetime:
    # naive UTC, matching what Mongo hands back
    return datetime.now(timezone.utc).replace(tzinfo=None)


def generate_token() -> str:
    return uuid.uuid4().hex


def check_token_format(token: Any) -> str:
    if not token:
        raise MissingToken()
    if not isinstance(token, str) or len(token) < settings.TOKEN_MIN_LENGTH:
        logger.warning("Rejected malformed token %s", token_prefix(token if isinstance(token, str) else None))
        raise MalformedToken()
    return token


def new_entry(form: Dict[str, Any], body: IssueTokenIn, now: Optional[datetime] = None) -> Dict[str, Any]:
    """Entry document for a freshly issued token."""
    now = now or utcnow()
    return {
        "_id": uuid.uuid4().hex,
        "form_id": body.formId,
        "organization_id": form.get("organizationId"),
        "examination_type": form.get("examinationType"),
        "access_token": generate_token(),
        "booking_id": body.bookingId,
        "first_name": body.firstName,
        "store_id": body.storeId,
        "booking_date": body.bookingDate,
        "is_magic_link": not body.isKioskMode,
        "is_kiosk_mode": body.isKioskMode,
        "customer_data": body.customerData,
        "status": "sent",
        "sent_at": now,
        "created_at": now,
        "expires_at": now + timedelta(days=settings.TOKEN_TTL_DAYS),
    }


def _as_datetime(value: Any) -> Optional[datetime]:
    if isinstance(value, datetime):
        return value.replace(tzinfo=None) if value.tzinfo is None else value.astimezone(timezone.utc).replace(tzinfo=None)
    if isinstance(value, str) and value.strip():
        try:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return None
        return _as_datetime(parsed)
    return None


def is_expired(entry: Dict[str, Any], now: Optional[datetime] = None) -> bool:
    expires_at = _as_datetime(entry.get("expires_at"))
    return expires_at is not None and expires_at < (now or utcnow())


def ensure_fillable(entry: Optional[Dict[str, Any]], token: str, now: Optional[datetime] = None) -> Dict[str, Any]:
    """
    Raise the matching TokenError unless `entry` can still be edited by the
    patient: it must exist, be unexpired and not already submitted.
    """
    if entry is None:
        logger.info("No entry found for token %s", token_prefix(token))
        raise InvalidToken()

    if is_expired(entry, now):
        logger.info("Token %s expired at %s", token_prefix(token), entry.get("expires_at"))
        raise TokenExpired(status="expired")

    status = entry.get("status")
    if status in SUBMITTED_STATUSES:
        raise AlreadySubmitted(status=status)
    if status not in FILLABLE_STATUSES:
        raise EntryUnavailable(status=status)

    return entry
