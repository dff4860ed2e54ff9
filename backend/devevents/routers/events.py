"""Event API routes — delegates to event_service and listing_service."""
import logging
from dataclasses import dataclass, field
from typing import Any, Optional

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.orm import Session
from starlette.datastructures import UploadFile

from devevents.config import settings
from devevents.database import get_db
from devevents.errors import FieldError, NotFoundError, UnauthorizedError, ValidationError
from devevents.schemas.event import (
    EventDeletedOut, EventEnvelope, EventListEnvelope, EventOut, ImageUpload, OwnedEventsEnvelope,
)
from devevents.services import event_service, listing_service
from devevents.services.identity import Identity, get_current_identity, require_identity
from devevents.services.image_store import ImageStore, get_image_store

logger = logging.getLogger(__name__)
router = APIRouter()


@dataclass
class EventSubmission:
    """Raw event fields plus the optional image file from one request."""

    fields: dict[str, Any] = field(default_factory=dict)
    image: Optional[ImageUpload] = None


async def read_event_submission(request: Request) -> EventSubmission:
    """Read a multipart/urlencoded form or a JSON object into an EventSubmission."""
    content_type = request.headers.get("content-type", "")
    if content_type.startswith("application/json"):
        try:
            body = await request.json()
        except ValueError:
            raise ValidationError([FieldError("body", "Malformed JSON body")], message="Invalid JSON data format")
        if not isinstance(body, dict):
            raise ValidationError([FieldError("body", "Expected a JSON object")], message="Invalid JSON data format")
        return EventSubmission(fields=body)

    submission = EventSubmission()
    misplaced: list[FieldError] = []
    form = await request.form()
    for key, value in form.multi_items():
        if isinstance(value, UploadFile):
            if key != "image":
                misplaced.append(FieldError(key, "Only the image field accepts a file"))
                continue
            data = await value.read()
            if data:
                submission.image = ImageUpload(
                    filename=value.filename or "upload",
                    content_type=value.content_type or "",
                    data=data,
                )
        else:
            submission.fields[key] = value
    if misplaced:
        raise ValidationError(misplaced)
    return submission


@router.get("/", response_model=EventListEnvelope)
def list_events(db: Session = Depends(get_db)):
    """List all events, newest first."""
    events = listing_service.list_events(db)
    return EventListEnvelope(
        message="Events fetched successfully",
        events=[EventOut.model_validate(e) for e in events],
    )


@router.post("/", response_model=EventEnvelope, status_code=status.HTTP_201_CREATED)
def create_event(
    submission: EventSubmission = Depends(read_event_submission),
    identity: Optional[Identity] = Depends(get_current_identity),
    db: Session = Depends(get_db),
    image_store: ImageStore = Depends(get_image_store),
):
    """Create an event owned by the signed-in caller."""
    event = event_service.create_event(
        db=db,
        payload=submission.fields,
        image=submission.image,
        identity=identity,
        image_store=image_store,
    )
    return EventEnvelope(message="Event created successfully", event=EventOut.model_validate(event))


@router.get("/mine", response_model=OwnedEventsEnvelope)
def list_my_events(
    page: int = Query(1, ge=1),
    page_size: int = Query(settings.DEFAULT_PAGE_SIZE, ge=1, le=100),
    identity: Optional[Identity] = Depends(get_current_identity),
    db: Session = Depends(get_db),
):
    """Paginated list of events the caller created."""
    result = listing_service.list_owned_events(db, identity, page=page, page_size=page_size)
    if result is None:
        raise UnauthorizedError()
    return OwnedEventsEnvelope(
        message="Events fetched successfully",
        events=[EventOut.model_validate(e) for e in result.events],
        total_events=result.total_events,
        total_pages=result.total_pages,
        current_page=result.current_page,
    )


@router.get("/mine/{event_id}", response_model=EventEnvelope)
def get_my_event(
    event_id: str,
    identity: Optional[Identity] = Depends(get_current_identity),
    db: Session = Depends(get_db),
):
    """Fetch one of the caller's own events (edit view)."""
    event = listing_service.get_owned_event(db, event_id, require_identity(identity))
    if event is None:
        raise NotFoundError("Event", event_id)
    return EventEnvelope(message="Event fetched successfully", event=EventOut.model_validate(event))


@router.get("/{slug}", response_model=EventEnvelope)
def get_event(slug: str, db: Session = Depends(get_db)):
    """Fetch a single event by slug."""
    event = listing_service.get_event_by_slug(db, slug)
    return EventEnvelope(message="Event fetched successfully", event=EventOut.model_validate(event))


@router.get("/{slug}/similar", response_model=EventListEnvelope)
def similar_events(slug: str, db: Session = Depends(get_db)):
    """Events sharing a tag with the given one; never fails."""
    events = listing_service.similar_events_by_slug(db, slug)
    return EventListEnvelope(
        message="Similar events fetched successfully",
        events=[EventOut.model_validate(e) for e in events],
    )


@router.put("/{event_id}", response_model=EventEnvelope)
def update_event(
    event_id: str,
    submission: EventSubmission = Depends(read_event_submission),
    identity: Optional[Identity] = Depends(get_current_identity),
    db: Session = Depends(get_db),
    image_store: ImageStore = Depends(get_image_store),
):
    """Update an event (creator only). Omitting the image keeps the current one."""
    event = event_service.update_event(
        db=db,
        event_id=event_id,
        payload=submission.fields,
        image=submission.image,
        identity=identity,
        image_store=image_store,
    )
    return EventEnvelope(message="Event updated successfully", event=EventOut.model_validate(event))


@router.delete("/{event_id}", response_model=EventDeletedOut)
def delete_event(
    event_id: str,
    identity: Optional[Identity] = Depends(get_current_identity),
    db: Session = Depends(get_db),
    image_store: ImageStore = Depends(get_image_store),
):
    """Delete an event (creator only) and reclaim its image."""
    event_service.delete_event(db=db, event_id=event_id, identity=identity, image_store=image_store)
    return EventDeletedOut(message="Event deleted successfully", event_id=event_id)
