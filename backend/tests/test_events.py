"""Tests for Event create / update / delete and ownership enforcement.

Covers:
- Creator binding — payload creator fields are ignored
- Authorization — anonymous → 401, non-creator → 403, unknown id → 404
- Validation — field-level 400s, unknown fields rejected
- Image lifecycle — upload before persist, old image reclaimed after commit
- Owned listing with pagination
"""
import uuid
from sqlalchemy import func, select

from devevents.models.event import Event
from tests.conftest import auth_headers, create_test_event, event_form, image_file


def _event_count(db) -> int:
    return db.scalar(select(func.count()).select_from(Event))


class TestEventCreate:
    """Event creation and initial state."""

    def test_create_event(self, client, image_store):
        event = create_test_event(client, user_id="user-a")
        assert event["title"] == "Launch"
        assert event["creator_id"] == "user-a"
        assert event["slug"].startswith("launch-")
        assert event["tags"] == ["ai"]
        assert event["agenda"] == ["Welcome", "Keynote"]
        assert event["image"].endswith("/events/img1.png")
        assert image_store.uploaded == ["events/img1"]

    def test_creator_comes_from_session_not_payload(self, client):
        resp = client.post(
            "/api/events/",
            data=event_form(creatorId="user-b", creator_id="user-b", slug="hand-picked"),
            files=image_file(),
            headers=auth_headers("user-a"),
        )
        assert resp.status_code == 201
        event = resp.json()["event"]
        assert event["creator_id"] == "user-a"
        assert event["slug"] != "hand-picked"

    def test_anonymous_create_unauthorized(self, client, db, image_store):
        resp = client.post("/api/events/", data=event_form(), files=image_file())
        assert resp.status_code == 401
        assert _event_count(db) == 0
        assert image_store.uploaded == []

    def test_missing_fields_reported_per_field(self, client, image_store):
        resp = client.post(
            "/api/events/",
            data=event_form(title="   ", tags=""),
            files=image_file(),
            headers=auth_headers(),
        )
        assert resp.status_code == 400
        fields = {e["field"] for e in resp.json()["errors"]}
        assert {"title", "tags"} <= fields
        assert image_store.uploaded == []

    def test_unknown_field_rejected(self, client):
        resp = client.post(
            "/api/events/", data=event_form(price="10"), files=image_file(), headers=auth_headers(),
        )
        assert resp.status_code == 400
        assert [e["field"] for e in resp.json()["errors"]] == ["price"]

    def test_invalid_start_rejected(self, client):
        resp = client.post(
            "/api/events/", data=event_form(eventStartAt="someday"), files=image_file(), headers=auth_headers(),
        )
        assert resp.status_code == 400
        assert resp.json()["errors"][0]["field"] == "event_start_at"

    def test_image_required(self, client):
        resp = client.post("/api/events/", data=event_form(), headers=auth_headers())
        assert resp.status_code == 400
        assert resp.json()["errors"] == [{"field": "image", "message": "Event image is required"}]

    def test_non_image_file_rejected(self, client):
        resp = client.post(
            "/api/events/",
            data=event_form(),
            files=image_file(name="notes.txt", content_type="text/plain"),
            headers=auth_headers(),
        )
        assert resp.status_code == 400
        assert resp.json()["errors"][0]["message"] == "Only image files are allowed"

    def test_upload_failure_persists_nothing(self, client, db, image_store):
        image_store.fail_uploads = True
        resp = client.post("/api/events/", data=event_form(), files=image_file(), headers=auth_headers())
        assert resp.status_code == 500
        assert resp.json()["code"] == "UPLOAD_FAILED"
        assert _event_count(db) == 0

    def test_date_and_time_fields_combined(self, client):
        form = event_form(date="2030-05-01", time="6:30 pm")
        form.pop("eventStartAt")
        resp = client.post("/api/events/", data=form, files=image_file(), headers=auth_headers())
        assert resp.status_code == 201
        assert resp.json()["event"]["event_start_at"].startswith("2030-05-01T18:30")

    def test_same_title_gets_distinct_slugs(self, client):
        first = create_test_event(client)
        second = create_test_event(client)
        assert first["slug"] != second["slug"]

    def test_accented_title_slug_is_fetchable(self, client):
        event = create_test_event(client, title="AI é Summit")
        assert event["slug"].startswith("ai-summit-")
        resp = client.get(f"/api/events/{event['slug']}")
        assert resp.status_code == 200
        assert resp.json()["event"]["title"] == "AI é Summit"

    def test_file_under_non_image_field_rejected(self, client, db):
        files = {**image_file(), "title": ("title.txt", b"Launch", "text/plain")}
        form = event_form()
        form.pop("title")
        resp = client.post("/api/events/", data=form, files=files, headers=auth_headers())
        assert resp.status_code == 400
        assert resp.json()["errors"] == [{"field": "title", "message": "Only the image field accepts a file"}]
        assert _event_count(db) == 0


class TestEventRead:
    """Public read paths."""

    def test_get_by_slug(self, client):
        event = create_test_event(client)
        resp = client.get(f"/api/events/{event['slug']}")
        assert resp.status_code == 200
        assert resp.json()["event"]["event_id"] == event["event_id"]

    def test_get_by_bad_slug_format(self, client):
        resp = client.get("/api/events/Not_A_Slug")
        assert resp.status_code == 400

    def test_get_unknown_slug(self, client):
        resp = client.get("/api/events/no-such-event")
        assert resp.status_code == 404
        assert resp.json()["message"] == "Event not found"

    def test_list_events(self, client):
        create_test_event(client, user_id="user-a", title="One")
        create_test_event(client, user_id="user-b", title="Two")
        resp = client.get("/api/events/")
        assert resp.status_code == 200
        assert {e["title"] for e in resp.json()["events"]} == {"One", "Two"}


class TestEventUpdate:
    """Updates are creator-only and keep the image unless a new one is sent."""

    def test_launch_scenario(self, client, image_store):
        event = create_test_event(client, user_id="user-a", title="Launch")

        hacked = client.put(
            f"/api/events/{event['event_id']}", data={"title": "Hacked"}, headers=auth_headers("user-b"),
        )
        assert hacked.status_code == 403
        assert client.get(f"/api/events/{event['slug']}").json()["event"]["title"] == "Launch"

        resp = client.put(
            f"/api/events/{event['event_id']}", data={"title": "Launch v2"}, headers=auth_headers("user-a"),
        )
        assert resp.status_code == 200
        updated = resp.json()["event"]
        assert updated["title"] == "Launch v2"
        assert updated["slug"].startswith("launch-v2-")
        assert updated["slug"] != event["slug"]
        assert updated["image"] == event["image"]
        assert updated["creator_id"] == "user-a"
        assert image_store.deleted == []

    def test_non_creator_cannot_touch_image(self, client, image_store):
        event = create_test_event(client, user_id="user-a")
        resp = client.put(
            f"/api/events/{event['event_id']}",
            data={"title": "Mine now"},
            files=image_file(),
            headers=auth_headers("user-b"),
        )
        assert resp.status_code == 403
        assert image_store.uploaded == ["events/img1"]
        assert image_store.deleted == []

    def test_new_image_replaces_and_reclaims_old(self, client, image_store):
        event = create_test_event(client)
        resp = client.put(
            f"/api/events/{event['event_id']}", data={}, files=image_file("new.png"), headers=auth_headers(),
        )
        assert resp.status_code == 200
        assert resp.json()["event"]["image"].endswith("/events/img2.png")
        assert image_store.deleted == ["events/img1"]

    def test_old_image_delete_failure_is_not_fatal(self, client, image_store):
        event = create_test_event(client)
        image_store.fail_deletes = True
        resp = client.put(
            f"/api/events/{event['event_id']}", data={}, files=image_file("new.png"), headers=auth_headers(),
        )
        assert resp.status_code == 200
        assert resp.json()["event"]["image"].endswith("/events/img2.png")

    def test_update_tags_via_json(self, client):
        event = create_test_event(client)
        resp = client.put(
            f"/api/events/{event['event_id']}", json={"tags": ["ai", "ml"]}, headers=auth_headers(),
        )
        assert resp.status_code == 200
        assert resp.json()["event"]["tags"] == ["ai", "ml"]

    def test_malformed_json_is_400(self, client):
        event = create_test_event(client)
        resp = client.put(
            f"/api/events/{event['event_id']}",
            content=b"{not json",
            headers={**auth_headers(), "Content-Type": "application/json"},
        )
        assert resp.status_code == 400
        assert resp.json()["message"] == "Invalid JSON data format"
        assert resp.json()["errors"][0]["field"] == "body"

    def test_update_cannot_reassign_creator(self, client):
        event = create_test_event(client, user_id="user-a")
        resp = client.put(
            f"/api/events/{event['event_id']}", json={"creatorId": "user-b"}, headers=auth_headers("user-a"),
        )
        assert resp.status_code == 200
        assert resp.json()["event"]["creator_id"] == "user-a"

    def test_update_rejects_empty_field(self, client):
        event = create_test_event(client)
        resp = client.put(f"/api/events/{event['event_id']}", data={"agenda": ""}, headers=auth_headers())
        assert resp.status_code == 400
        assert resp.json()["errors"][0]["field"] == "agenda"

    def test_update_unknown_event(self, client):
        resp = client.put(f"/api/events/{uuid.uuid4()}", data={"title": "x"}, headers=auth_headers())
        assert resp.status_code == 404

    def test_update_malformed_id(self, client):
        resp = client.put("/api/events/not-an-id", data={"title": "x"}, headers=auth_headers())
        assert resp.status_code == 404

    def test_anonymous_update_unauthorized(self, client):
        event = create_test_event(client)
        resp = client.put(f"/api/events/{event['event_id']}", data={"title": "x"})
        assert resp.status_code == 401


class TestEventDelete:
    """Deletes are creator-only; the image goes after the record."""

    def test_creator_deletes(self, client, image_store):
        event = create_test_event(client)
        resp = client.delete(f"/api/events/{event['event_id']}", headers=auth_headers())
        assert resp.status_code == 200
        assert resp.json()["event_id"] == event["event_id"]
        assert client.get(f"/api/events/{event['slug']}").status_code == 404
        assert image_store.deleted == ["events/img1"]

    def test_non_creator_forbidden(self, client, db, image_store):
        event = create_test_event(client, user_id="user-a")
        resp = client.delete(f"/api/events/{event['event_id']}", headers=auth_headers("user-b"))
        assert resp.status_code == 403
        assert _event_count(db) == 1
        assert image_store.deleted == []

    def test_unknown_event(self, client, db):
        create_test_event(client)
        resp = client.delete(f"/api/events/{uuid.uuid4()}", headers=auth_headers())
        assert resp.status_code == 404
        assert _event_count(db) == 1

    def test_anonymous_delete_unauthorized(self, client):
        event = create_test_event(client)
        resp = client.delete(f"/api/events/{event['event_id']}")
        assert resp.status_code == 401

    def test_image_delete_failure_keeps_delete(self, client, db, image_store):
        event = create_test_event(client)
        image_store.fail_deletes = True
        resp = client.delete(f"/api/events/{event['event_id']}", headers=auth_headers())
        assert resp.status_code == 200
        assert _event_count(db) == 0


class TestOwnedEvents:
    """GET /api/events/mine — paginated, creator-scoped."""

    def test_pagination(self, client):
        mine = {create_test_event(client, user_id="user-a", title=f"Talk {i}")["event_id"] for i in range(3)}
        create_test_event(client, user_id="user-b", title="Elsewhere")

        first = client.get("/api/events/mine?page=1&page_size=2", headers=auth_headers("user-a")).json()
        second = client.get("/api/events/mine?page=2&page_size=2", headers=auth_headers("user-a")).json()

        assert first["total_events"] == 3
        assert first["total_pages"] == 2
        assert first["current_page"] == 1
        assert len(first["events"]) == 2
        assert len(second["events"]) == 1
        assert {e["event_id"] for e in first["events"] + second["events"]} == mine

    def test_anonymous_gets_401(self, client):
        assert client.get("/api/events/mine").status_code == 401

    def test_owned_event_lookup(self, client):
        event = create_test_event(client, user_id="user-a")
        own = client.get(f"/api/events/mine/{event['event_id']}", headers=auth_headers("user-a"))
        other = client.get(f"/api/events/mine/{event['event_id']}", headers=auth_headers("user-b"))
        assert own.status_code == 200
        assert other.status_code == 404
