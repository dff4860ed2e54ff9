"""Booking service — one booking per (event, email), counted for display.

Expected rejections (not signed in, already booked, bad email) come back as
a ``BookingResult`` rather than an exception. The store's unique constraint
on (event_id, email) is the authoritative duplicate guard; the lookup before
the insert only spares the common case a failed write.
"""
import enum
import logging
import uuid
from dataclasses import dataclass
from typing import Optional

from sqlalchemy import func, select, text
from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session

from devevents.config import settings
from devevents.models.booking import Booking
from devevents.models.event import Event
from devevents.schemas.booking import normalize_email
from devevents.services.identity import Identity

logger = logging.getLogger(__name__)


class BookingInsert(str, enum.Enum):
    inserted = "inserted"
    already_exists = "already_exists"


class EventReferenceError(Exception):
    """The booked event does not exist or could not be verified in time."""


@dataclass(frozen=True)
class BookingResult:
    success: bool
    message: str
    requires_auth: bool = False
    refresh_path: Optional[str] = None


def get_booking_count(db: Session, event_id: str) -> int:
    """Number of bookings for an event; 0 if anything goes wrong."""
    try:
        return db.scalar(select(func.count()).select_from(Booking).where(Booking.event_id == event_id)) or 0
    except SQLAlchemyError as e:
        logger.error("Error getting booking count for %s: %s", event_id, e)
        db.rollback()
        return 0


def _apply_statement_timeout(db: Session, timeout_ms: int) -> None:
    if db.get_bind().dialect.name == "postgresql":
        db.execute(text(f"SET LOCAL statement_timeout = {int(timeout_ms)}"))


def _verify_event_exists(db: Session, event_id: str) -> None:
    try:
        uuid.UUID(str(event_id))
    except ValueError:
        raise EventReferenceError("Invalid eventId format")
    try:
        _apply_statement_timeout(db, settings.BOOKING_EVENT_CHECK_TIMEOUT_MS)
        count = db.scalar(select(func.count()).select_from(Event).where(Event.event_id == event_id))
    except OperationalError as e:
        db.rollback()
        raise EventReferenceError("Failed to validate event reference") from e
    if not count:
        raise EventReferenceError("Referenced event does not exist")


def insert_booking(db: Session, event_id: str, email: str) -> BookingInsert:
    """Insert a booking, reporting a (event_id, email) conflict instead of raising."""
    _verify_event_exists(db, event_id)
    db.add(Booking(event_id=event_id, email=email))
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        logger.info("Booking for %s by %s already exists", event_id, email)
        return BookingInsert.already_exists
    return BookingInsert.inserted


def create_booking(
    db: Session,
    event_id: str,
    email: str,
    identity: Optional[Identity],
    slug: Optional[str] = None,
) -> BookingResult:
    """Book ``event_id`` for ``email`` on behalf of a signed-in caller."""
    if identity is None:
        return BookingResult(False, "Please sign in to book an event", requires_auth=True)

    try:
        email = normalize_email(email)
    except ValueError as e:
        return BookingResult(False, str(e))

    already = BookingResult(False, "You have already booked this event")
    try:
        existing = db.scalar(
            select(Booking.booking_id).where(Booking.event_id == event_id, Booking.email == email)
        )
        if existing:
            return already
        if insert_booking(db, event_id, email) is BookingInsert.already_exists:
            return already
    except EventReferenceError as e:
        logger.warning("Booking rejected for event %s: %s", event_id, e)
        return BookingResult(False, str(e))
    except SQLAlchemyError:
        db.rollback()
        logger.error("Booking creation failed for event %s", event_id, exc_info=True)
        return BookingResult(False, "Failed to create booking. Please try again.")

    logger.info("Booking created for event %s by %s", event_id, identity.id)
    return BookingResult(
        True,
        "Booking successful!",
        refresh_path=f"/events/{slug}" if slug else None,
    )
