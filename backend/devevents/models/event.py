"""Event and EventTag ORM models."""
import uuid
from sqlalchemy import Column, String, Text, DateTime, Integer, ForeignKey, JSON, Index
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from devevents.database import Base


class Event(Base):
    __tablename__ = "events"

    event_id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    slug = Column(String(255), nullable=False, unique=True)
    creator_id = Column(String(255), nullable=False, index=True)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=False)
    overview = Column(Text, nullable=False)
    venue = Column(String(255), nullable=False)
    location = Column(String(255), nullable=False)
    mode = Column(String(50), nullable=False)
    audience = Column(String(255), nullable=False)
    organizer = Column(String(255), nullable=False)
    event_start_at = Column(DateTime(timezone=True), nullable=False)
    agenda = Column(JSON, nullable=False, default=list)
    image = Column(String(1024), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), index=True)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    tag_rows = relationship(
        "EventTag",
        order_by="EventTag.position",
        cascade="all, delete-orphan",
        passive_deletes=True,
        lazy="selectin",
    )

    @property
    def tags(self) -> list[str]:
        return [row.tag for row in self.tag_rows]

    @tags.setter
    def tags(self, values: list[str]) -> None:
        self.tag_rows = [EventTag(position=i, tag=tag) for i, tag in enumerate(values)]


class EventTag(Base):
    __tablename__ = "event_tags"

    event_id = Column(String(36), ForeignKey("events.event_id", ondelete="CASCADE"), primary_key=True)
    position = Column(Integer, primary_key=True)
    tag = Column(String(100), nullable=False)

    __table_args__ = (Index("ix_event_tags_tag", "tag"),)
