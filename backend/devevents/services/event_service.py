"""Event mutation service — create, update and delete under ownership rules.

Responsibilities:
- Authorization: every write needs a server-derived identity; only the
  creator may update or delete, and the ownership filter is part of the
  single UPDATE/DELETE statement rather than a separate read-then-write.
- Validation: payloads go through parse_event_payload before any side effect.
- Image lifecycle: new images are uploaded before the store write; the
  superseded or removed image is deleted only after the store commit, as a
  best-effort step whose failure is logged and never surfaced.
"""
import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Mapping, Optional

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from devevents.config import settings
from devevents.errors import (
    ForbiddenError, NotFoundError, ResourceUploadError, ValidationError,
)
from devevents.models.event import Event, EventTag
from devevents.schemas.event import ImageUpload, parse_event_payload, validate_image
from devevents.services.identity import Identity, require_identity
from devevents.services.image_store import ImageStore, UploadError, UploadedImage, public_id_from_url
from devevents.services.slug import derive_slug, slugify

logger = logging.getLogger(__name__)


def _check_event_id(event_id: str) -> None:
    try:
        uuid.UUID(str(event_id))
    except ValueError:
        raise NotFoundError("Event", event_id)


def _existing_slugs(db: Session, title: str) -> set[str]:
    base = slugify(title)
    return set(db.scalars(select(Event.slug).where(Event.slug.like(f"{base}-%"))))


def _raise_missing_or_forbidden(db: Session, event_id: str) -> None:
    """Called after an owner-filtered statement matched nothing."""
    exists = db.scalar(select(func.count()).select_from(Event).where(Event.event_id == event_id))
    if exists:
        raise ForbiddenError()
    raise NotFoundError("Event", event_id)


def _upload(image_store: ImageStore, image: ImageUpload) -> UploadedImage:
    try:
        return image_store.upload(image)
    except UploadError as e:
        logger.error("Image upload failed for '%s': %s", image.filename, e)
        raise ResourceUploadError()


def _discard_image(image_store: ImageStore, url: Optional[str]) -> None:
    """Best-effort removal of an image that no event references any more."""
    public_id = public_id_from_url(url)
    if public_id is None:
        if url:
            logger.warning("Cannot derive image id from %s; leaving it in place", url)
        return
    try:
        image_store.delete(public_id)
    except Exception as e:
        logger.warning("Failed to delete image %s: %s", public_id, e)


def create_event(
    db: Session,
    payload: Mapping[str, Any],
    image: Optional[ImageUpload],
    identity: Optional[Identity],
    image_store: ImageStore,
) -> Event:
    """Create an event owned by ``identity``.

    The creator is always the caller; any creator-like field in the payload
    has already been dropped by the parser.
    """
    identity = require_identity(identity)

    parsed = parse_event_payload(payload)
    errors = list(parsed.errors) + validate_image(image, settings.IMAGE_MAX_BYTES, required=True)
    if errors:
        raise ValidationError(errors)

    values = dict(parsed.value)
    tags = values.pop("tags")
    uploaded = _upload(image_store, image)

    event = Event(
        **values,
        slug=derive_slug(values["title"], _existing_slugs(db, values["title"])),
        creator_id=identity.id,
        image=uploaded.url,
    )
    event.tags = tags
    try:
        db.add(event)
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        _discard_image(image_store, uploaded.url)
        raise
    db.refresh(event)
    logger.info("Created event '%s' (%s) by %s", event.title, event.event_id, identity.id)
    return event


def update_event(
    db: Session,
    event_id: str,
    payload: Mapping[str, Any],
    image: Optional[ImageUpload],
    identity: Optional[Identity],
    image_store: ImageStore,
) -> Event:
    """Apply a partial update to an event the caller owns."""
    identity = require_identity(identity)
    _check_event_id(event_id)
    owned = (Event.event_id == event_id, Event.creator_id == identity.id)

    current = db.execute(select(Event.image).where(*owned)).first()
    if current is None:
        _raise_missing_or_forbidden(db, event_id)

    parsed = parse_event_payload(payload, partial=True)
    errors = list(parsed.errors) + validate_image(image, settings.IMAGE_MAX_BYTES, required=False)
    if errors:
        raise ValidationError(errors)

    values = dict(parsed.value)
    tags = values.pop("tags", None)
    if "title" in values:
        values["slug"] = derive_slug(values["title"], _existing_slugs(db, values["title"]))

    uploaded = None
    if image is not None and image.size:
        uploaded = _upload(image_store, image)
        values["image"] = uploaded.url
    values["updated_at"] = datetime.now(timezone.utc)

    try:
        outcome = db.execute(
            update(Event).where(*owned).values(**values).execution_options(synchronize_session=False)
        )
        if outcome.rowcount == 0:
            # Deleted or re-owned between the read and the write.
            db.rollback()
            if uploaded:
                _discard_image(image_store, uploaded.url)
            _raise_missing_or_forbidden(db, event_id)
        if tags is not None:
            db.execute(delete(EventTag).where(EventTag.event_id == event_id))
            db.add_all([EventTag(event_id=event_id, position=i, tag=tag) for i, tag in enumerate(tags)])
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        if uploaded:
            _discard_image(image_store, uploaded.url)
        raise

    if uploaded and current.image != uploaded.url:
        _discard_image(image_store, current.image)

    event = db.get(Event, event_id, populate_existing=True)
    logger.info("Updated event %s (%s)", event_id, ", ".join(sorted(values)))
    return event


def delete_event(
    db: Session,
    event_id: str,
    identity: Optional[Identity],
    image_store: ImageStore,
) -> None:
    """Delete an event the caller owns, then reclaim its image."""
    identity = require_identity(identity)
    _check_event_id(event_id)
    owned = (Event.event_id == event_id, Event.creator_id == identity.id)

    image_url = db.scalar(select(Event.image).where(*owned))
    outcome = db.execute(delete(Event).where(*owned).execution_options(synchronize_session=False))
    if outcome.rowcount == 0:
        db.rollback()
        _raise_missing_or_forbidden(db, event_id)
    db.execute(delete(EventTag).where(EventTag.event_id == event_id))
    db.commit()
    logger.info("Deleted event %s by %s", event_id, identity.id)

    _discard_image(image_store, image_url)
