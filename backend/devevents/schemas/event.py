"""Pydantic schemas and payload parsing for Events.

Submitted event data (form fields or JSON) goes through
``parse_event_payload`` which returns either the cleaned field values or a
list of field-level errors. Unknown keys are rejected. Keys the server owns
(creator, slug, image URL, ids, timestamps) are dropped before validation
and never reach the store.
"""
from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from datetime import datetime, date, timezone
from typing import Any, Generic, Mapping, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as PydanticValidationError
from pydantic.alias_generators import to_camel

from devevents.errors import FieldError

logger = logging.getLogger(__name__)

T = TypeVar("T")

SERVER_OWNED_FIELDS = frozenset({
    "id", "_id", "event_id", "eventId",
    "creator_id", "creatorId",
    "slug",
    "image",
    "created_at", "createdAt", "updated_at", "updatedAt",
})

REQUIRED_MESSAGES = {
    "title": "Event title is required",
    "description": "Event description is required",
    "overview": "Event overview is required",
    "venue": "Venue is required",
    "location": "Location is required",
    "mode": "Event mode is required",
    "audience": "Target audience is required",
    "organizer": "Organizer name is required",
    "event_start_at": "Event start date and time are required",
    "agenda": "At least one agenda item is required",
    "tags": "At least one tag is required",
}

_TIME_24H = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)$")
_TIME_12H = re.compile(r"^(\d{1,2}):(\d{2})\s*(am|pm)?$", re.IGNORECASE)


@dataclass(frozen=True)
class PayloadResult(Generic[T]):
    """Either ``value`` (parse succeeded) or ``errors`` (it did not)."""

    value: Optional[T] = None
    errors: tuple[FieldError, ...] = ()

    @property
    def ok(self) -> bool:
        return not self.errors


@dataclass(frozen=True)
class ImageUpload:
    """An image file received with a create/update request."""

    filename: str
    content_type: str
    data: bytes

    @property
    def size(self) -> int:
        return len(self.data)


def split_list_field(value: Any) -> Any:
    """Accept a list, a JSON array string, or a comma-separated string."""
    if isinstance(value, str):
        raw = value.strip()
        if raw.startswith("["):
            try:
                value = json.loads(raw)
            except json.JSONDecodeError:
                value = raw.strip("[]").split(",")
        else:
            value = raw.split(",")
    if isinstance(value, (list, tuple)):
        return [item.strip() if isinstance(item, str) else item for item in value
                if not (isinstance(item, str) and not item.strip())]
    return value


def _parse_time(raw: str) -> tuple[int, int]:
    raw = raw.strip()
    match = _TIME_24H.match(raw)
    if match:
        return int(match.group(1)), int(match.group(2))
    match = _TIME_12H.match(raw)
    if not match:
        raise ValueError("Time must be in HH:MM format (24-hour)")
    hours, minutes = int(match.group(1)), int(match.group(2))
    meridiem = (match.group(3) or "").lower()
    if meridiem == "pm" and hours != 12:
        hours += 12
    elif meridiem == "am" and hours == 12:
        hours = 0
    if not 0 <= hours <= 23 or not 0 <= minutes <= 59:
        raise ValueError("Invalid time format")
    return hours, minutes


def combine_date_time(date_str: str, time_str: str) -> datetime:
    """Combine a YYYY-MM-DD date and a clock time into a UTC instant."""
    day = date.fromisoformat(date_str.strip())
    hours, minutes = _parse_time(time_str)
    return datetime(day.year, day.month, day.day, hours, minutes, tzinfo=timezone.utc)


class _EventFieldsBase(BaseModel):
    model_config = ConfigDict(
        extra="forbid",
        str_strip_whitespace=True,
        alias_generator=to_camel,
        populate_by_name=True,
    )

    @field_validator("agenda", "tags", mode="before", check_fields=False)
    @classmethod
    def _split_lists(cls, v):
        return split_list_field(v)

    @field_validator("event_start_at", check_fields=False)
    @classmethod
    def _assume_utc(cls, v):
        if v is not None and v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v


class EventFields(_EventFieldsBase):
    """All fields a new event must carry."""

    title: str = Field(min_length=1, max_length=255)
    description: str = Field(min_length=1)
    overview: str = Field(min_length=1)
    venue: str = Field(min_length=1, max_length=255)
    location: str = Field(min_length=1, max_length=255)
    mode: str = Field(min_length=1, max_length=50)
    audience: str = Field(min_length=1, max_length=255)
    organizer: str = Field(min_length=1, max_length=255)
    event_start_at: datetime
    agenda: list[str] = Field(min_length=1)
    tags: list[str] = Field(min_length=1)


class EventPatch(_EventFieldsBase):
    """Partial update; a field that is sent must still be valid."""

    title: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = Field(None, min_length=1)
    overview: Optional[str] = Field(None, min_length=1)
    venue: Optional[str] = Field(None, min_length=1, max_length=255)
    location: Optional[str] = Field(None, min_length=1, max_length=255)
    mode: Optional[str] = Field(None, min_length=1, max_length=50)
    audience: Optional[str] = Field(None, min_length=1, max_length=255)
    organizer: Optional[str] = Field(None, min_length=1, max_length=255)
    event_start_at: Optional[datetime] = None
    agenda: Optional[list[str]] = Field(None, min_length=1)
    tags: Optional[list[str]] = Field(None, min_length=1)


_ALIASES = {to_camel(name): name for name in EventFields.model_fields}


def _field_name(loc: tuple) -> str:
    if not loc:
        return "__root__"
    key = str(loc[0])
    return _ALIASES.get(key, key)


def _to_field_errors(exc: PydanticValidationError) -> list[FieldError]:
    errors: list[FieldError] = []
    seen: set[str] = set()
    for err in exc.errors():
        name = _field_name(err["loc"])
        if name in seen:
            continue
        seen.add(name)
        if err["type"] == "extra_forbidden":
            message = f"Unknown field '{name}'"
        elif err["type"] in ("missing", "string_too_short", "too_short") and name in REQUIRED_MESSAGES:
            message = REQUIRED_MESSAGES[name]
        elif name == "event_start_at":
            message = "Invalid event start date"
        else:
            message = err["msg"]
        errors.append(FieldError(name, message))
    return errors


def parse_event_payload(data: Mapping[str, Any], partial: bool = False) -> PayloadResult[dict]:
    """Validate submitted event data.

    Args:
        data: raw key/value pairs from a form or JSON body.
        partial: accept a subset of fields (updates).

    Returns:
        PayloadResult whose ``value`` holds snake_case field values ready for
        the store, or whose ``errors`` lists every failing field.
    """
    fields = dict(data)
    dropped = sorted(k for k in fields if k in SERVER_OWNED_FIELDS)
    for key in dropped:
        fields.pop(key)
    if dropped:
        logger.info("Ignoring server-owned fields in event payload: %s", ", ".join(dropped))

    errors: list[FieldError] = []
    date_str = fields.pop("date", None)
    time_str = fields.pop("time", None)
    has_start = "event_start_at" in fields or "eventStartAt" in fields
    if (date_str or time_str) and not has_start:
        if not date_str:
            errors.append(FieldError("date", "Event date is required"))
        elif not time_str:
            errors.append(FieldError("time", "Event time is required"))
        else:
            try:
                fields["event_start_at"] = combine_date_time(str(date_str), str(time_str))
            except ValueError:
                errors.append(FieldError("date", "Invalid date or time"))

    model = EventPatch if partial else EventFields
    try:
        parsed = model.model_validate(fields)
    except PydanticValidationError as e:
        errors.extend(_to_field_errors(e))
        return PayloadResult(errors=tuple(errors))
    if errors:
        return PayloadResult(errors=tuple(errors))

    if partial:
        values = parsed.model_dump(exclude_unset=True)
        for name, value in values.items():
            if value is None:
                errors.append(FieldError(name, REQUIRED_MESSAGES.get(name, f"{name} cannot be empty")))
        if errors:
            return PayloadResult(errors=tuple(errors))
        return PayloadResult(value=values)
    return PayloadResult(value=parsed.model_dump())


def validate_image(image: Optional[ImageUpload], max_bytes: int, required: bool) -> list[FieldError]:
    """Check presence, type and size of an uploaded image."""
    if image is None or image.size == 0:
        return [FieldError("image", "Event image is required")] if required else []
    if not (image.content_type or "").startswith("image/"):
        return [FieldError("image", "Only image files are allowed")]
    if image.size > max_bytes:
        return [FieldError("image", f"File size must be less than {max_bytes // (1024 * 1024)}MB")]
    return []


class EventOut(BaseModel):
    event_id: str
    slug: str
    creator_id: str
    title: str
    description: str
    overview: str
    venue: str
    location: str
    mode: str
    audience: str
    organizer: str
    event_start_at: datetime
    agenda: list[str]
    tags: list[str]
    image: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class EventEnvelope(BaseModel):
    message: str
    event: EventOut


class EventListEnvelope(BaseModel):
    message: str
    events: list[EventOut]


class OwnedEventsEnvelope(BaseModel):
    message: str
    events: list[EventOut]
    total_events: int
    total_pages: int
    current_page: int


class EventDeletedOut(BaseModel):
    message: str
    event_id: str
