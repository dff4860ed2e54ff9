"""Pytest fixtures — SQLite database, in-memory image store, session tokens."""
import json
from datetime import datetime, timezone, timedelta
from typing import Optional

import pytest
from fastapi.testclient import TestClient

from devevents.database import Base, ConnectionManager, get_db
from devevents.main import app
from devevents.services.identity import Identity, session_provider
from devevents.services.image_store import (
    ImageDeleteError, ImageStore, UploadedImage, UploadError, get_image_store,
)

# Import all models so they register with Base.metadata
from devevents.models.event import Event, EventTag   # noqa: F401
from devevents.models.booking import Booking         # noqa: F401

SQLITE_URL = "sqlite:///./test.db"
PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 64


class FakeImageStore(ImageStore):
    """Records uploads and deletions; can be told to fail either."""

    def __init__(self):
        self.uploaded: list[str] = []
        self.deleted: list[str] = []
        self.fail_uploads = False
        self.fail_deletes = False

    def upload(self, image):
        if self.fail_uploads:
            raise UploadError("upload refused")
        public_id = f"events/img{len(self.uploaded) + 1}"
        self.uploaded.append(public_id)
        return UploadedImage(
            url=f"https://res.cloudinary.com/demo/image/upload/v1700000000/{public_id}.png",
            public_id=public_id,
        )

    def delete(self, public_id):
        if self.fail_deletes:
            raise ImageDeleteError("destroy refused")
        self.deleted.append(public_id)


@pytest.fixture(scope="function")
def db_manager():
    """A fresh SQLite-backed connection manager for each test."""
    manager = ConnectionManager(SQLITE_URL, connect_args={"check_same_thread": False})
    engine = manager.acquire()
    Base.metadata.create_all(bind=engine)
    yield manager
    Base.metadata.drop_all(bind=engine)
    manager.shutdown()


@pytest.fixture(scope="function")
def db(db_manager):
    """Yield a database session on the test pool."""
    with db_manager.session() as session:
        yield session


@pytest.fixture(scope="function")
def image_store():
    return FakeImageStore()


@pytest.fixture(scope="function")
def client(db_manager, image_store):
    """TestClient with the database and image store dependencies overridden."""

    def _override_get_db():
        with db_manager.session() as session:
            yield session

    app.dependency_overrides[get_db] = _override_get_db
    app.dependency_overrides[get_image_store] = lambda: image_store
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------
def make_identity(user_id: str = "user-a", email: Optional[str] = None) -> Identity:
    return Identity(id=user_id, email=email or f"{user_id}@example.com", name=user_id.title())


def auth_headers(user_id: str = "user-a", email: Optional[str] = None) -> dict:
    """Authorization header carrying a session token for ``user_id``."""
    token = session_provider.issue(make_identity(user_id, email))
    return {"Authorization": f"Bearer {token}"}


def event_form(**overrides) -> dict:
    """Form fields for a valid event starting next week."""
    start = datetime.now(timezone.utc) + timedelta(days=7)
    form = {
        "title": "Launch",
        "description": "Product launch for the new platform",
        "overview": "Talks, demos and networking",
        "venue": "Main Hall",
        "location": "Berlin, Germany",
        "mode": "offline",
        "audience": "Developers",
        "organizer": "Dev Guild",
        "eventStartAt": start.isoformat(),
        "agenda": json.dumps(["Welcome", "Keynote"]),
        "tags": json.dumps(["ai"]),
    }
    form.update(overrides)
    return form


def image_file(name: str = "cover.png", content_type: str = "image/png", data: bytes = PNG_BYTES) -> dict:
    return {"image": (name, data, content_type)}


def create_test_event(client: TestClient, user_id: str = "user-a", **overrides) -> dict:
    """Helper — POST /api/events and return the created event JSON."""
    resp = client.post(
        "/api/events/", data=event_form(**overrides), files=image_file(), headers=auth_headers(user_id),
    )
    assert resp.status_code == 201, resp.text
    return resp.json()["event"]
