"""Pydantic schemas for Bookings."""
import re
from typing import Optional
from pydantic import BaseModel

_SIMPLE_EMAIL = re.compile(r"^[^\s@.][^\s@]*@[^\s@.]+\.[^\s@.]{2,}$")


def normalize_email(email: str) -> str:
    """Trim and lower-case an email, rejecting anything outside local@domain.tld."""
    value = (email or "").strip().lower()
    if not _SIMPLE_EMAIL.match(value) or ".." in value:
        raise ValueError("Please provide a valid email address")
    return value


class BookingCreate(BaseModel):
    event_id: str
    email: Optional[str] = None
    slug: Optional[str] = None


class BookingResultOut(BaseModel):
    success: bool
    message: str
    requires_auth: bool
    refresh_path: Optional[str] = None


class BookingCountOut(BaseModel):
    message: str
    event_id: str
    count: int
