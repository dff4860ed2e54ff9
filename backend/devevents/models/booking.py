"""Booking ORM model.

``event_id`` is checked against ``events`` before insert rather than by a
foreign key: bookings outlive nothing in scope and are never deleted here.
The (event_id, email) pair is unique at the store level.
"""
import uuid
from sqlalchemy import Column, String, DateTime, UniqueConstraint
from sqlalchemy.sql import func
from devevents.database import Base


class Booking(Base):
    __tablename__ = "bookings"

    booking_id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    event_id = Column(String(36), nullable=False, index=True)
    email = Column(String(320), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    __table_args__ = (UniqueConstraint("event_id", "email", name="uq_bookings_event_email"),)
