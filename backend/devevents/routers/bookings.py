"""Booking API routes — delegates to booking_service."""
import logging
from dataclasses import asdict
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from devevents.database import get_db
from devevents.schemas.booking import BookingCountOut, BookingCreate, BookingResultOut
from devevents.services import booking_service
from devevents.services.identity import Identity, get_current_identity

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/", response_model=BookingResultOut)
def create_booking(
    payload: BookingCreate,
    identity: Optional[Identity] = Depends(get_current_identity),
    db: Session = Depends(get_db),
):
    """Book an event for the signed-in caller.

    Expected rejections (not signed in, already booked) come back with
    ``success=false`` and status 200. The email defaults to the caller's.
    """
    email = payload.email or (identity.email if identity else "")
    result = booking_service.create_booking(db, payload.event_id, email, identity, slug=payload.slug)
    return BookingResultOut(**asdict(result))


@router.get("/count", response_model=BookingCountOut)
def booking_count(event_id: str = Query(...), db: Session = Depends(get_db)):
    """Number of bookings for an event (0 when unknown)."""
    count = booking_service.get_booking_count(db, event_id)
    return BookingCountOut(message="Booking count fetched successfully", event_id=event_id, count=count)
