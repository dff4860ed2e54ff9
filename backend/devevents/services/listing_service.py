"""Read paths: public listings, owned events, similar events."""
import logging
import math
from dataclasses import dataclass
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from devevents.errors import FieldError, NotFoundError, ValidationError
from devevents.models.event import Event, EventTag
from devevents.services.identity import Identity
from devevents.services.slug import is_valid_slug

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OwnedEventsPage:
    events: list[Event]
    total_events: int
    total_pages: int
    current_page: int


def list_events(db: Session) -> list[Event]:
    return list(db.scalars(select(Event).order_by(Event.created_at.desc())))


def get_event_by_slug(db: Session, slug: str) -> Event:
    if not is_valid_slug(slug):
        raise ValidationError(
            [FieldError("slug", "Slug must be lowercase and URL-friendly")],
            message="Invalid slug format",
        )
    event = db.scalar(select(Event).where(Event.slug == slug))
    if event is None:
        raise NotFoundError("Event", slug)
    return event


def list_owned_events(
    db: Session,
    identity: Optional[Identity],
    page: int = 1,
    page_size: int = 10,
) -> Optional[OwnedEventsPage]:
    """Events the caller created, newest first; None when not signed in."""
    if identity is None:
        return None
    page = max(page, 1)
    page_size = max(page_size, 1)

    owned = Event.creator_id == identity.id
    total = db.scalar(select(func.count()).select_from(Event).where(owned)) or 0
    events = db.scalars(
        select(Event)
        .where(owned)
        .order_by(Event.created_at.desc(), Event.event_id)
        .offset((page - 1) * page_size)
        .limit(page_size)
    )
    return OwnedEventsPage(
        events=list(events),
        total_events=total,
        total_pages=math.ceil(total / page_size),
        current_page=page,
    )


def get_owned_event(db: Session, event_id: str, identity: Optional[Identity]) -> Optional[Event]:
    """The event if the caller created it, else None."""
    if identity is None:
        return None
    return db.scalar(select(Event).where(Event.event_id == event_id, Event.creator_id == identity.id))


def similar_events_by_slug(db: Session, slug: str, limit: Optional[int] = None) -> list[Event]:
    """Other events sharing at least one tag with ``slug``; [] on any failure."""
    try:
        source = db.scalar(select(Event).where(Event.slug == slug))
        if source is None or not source.tags:
            return []
        sharing = select(EventTag.event_id).where(EventTag.tag.in_(source.tags))
        query = (
            select(Event)
            .where(Event.event_id != source.event_id, Event.event_id.in_(sharing))
            .order_by(Event.created_at.desc())
        )
        if limit:
            query = query.limit(limit)
        return list(db.scalars(query))
    except SQLAlchemyError as e:
        logger.error("Similar events lookup failed for %s: %s", slug, e)
        db.rollback()
        return []
