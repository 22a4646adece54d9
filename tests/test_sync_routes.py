"""
Tests for the sync and contact routes (Flask endpoints).
These tests verify HTTP request/response handling and error mapping.
"""
from unittest.mock import patch

import pytest

from tribu.models import OutboxEntry, OutboxStatus, SyncRun, db
from tribu.outbox.queue import OutboxQueue
from tribu.people.api import PeopleAPIError
from tribu.sync_lock import tick_lock_manager

T0 = "2025-01-01T00:00:00.000Z"


@pytest.fixture(autouse=True)
def fake_people(people):
    """Route handlers get the fake People API."""
    with patch("tribu.api.routes.get_people_client", return_value=people):
        yield people


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.get_json() == {"status": "ok"}


# ==============================================================================
# SYNC
# ==============================================================================

class TestSyncRoutes:
    def test_status_before_any_run(self, client):
        response = client.get("/api/sync/status")

        assert response.status_code == 200
        assert response.get_json() == {
            "pending": 0,
            "last_sync_at": "",
            "last_sync_error": "",
            "last_sync_stats": None,
            "sync_every_minutes": 5,
        }

    def test_sync_now_runs_a_tick(self, client, make_contact, people):
        make_contact()
        people.add_person("people/c1", update_time=T0)
        client.post("/api/contacts/C1", json={"conf": "1", "emo": "1", "cadence": "S", "baseline": T0})

        response = client.post("/api/sync/now")

        body = response.get_json()
        assert response.status_code == 200
        assert body["ran"] is True
        assert body["pending"] == 0
        assert body["last_sync_stats"]["done"] == 1
        assert body["last_sync_at"]
        assert OutboxEntry.query.one().status is OutboxStatus.DONE

    def test_sync_now_when_tick_running(self, client):
        with tick_lock_manager.acquire_sync_lock("scheduled_tick"):
            response = client.post("/api/sync/now")

        assert response.status_code == 200
        assert response.get_json()["ran"] is False
        assert SyncRun.query.count() == 0

    def test_diagnostics(self, client, make_contact):
        make_contact()
        OutboxQueue().enqueue("C1", "people/c1", "", "{}")
        db.session.commit()

        body = client.get("/api/sync/diagnostics").get_json()

        assert body["outbox"]["pending"] == 1
        assert body["outbox"]["sample"][0]["local_id"] == "C1"
        assert body["last_run"] is None
        assert body["tick_lock"]["is_locked"] is False


# ==============================================================================
# CONTACTS
# ==============================================================================

class TestContactRoutes:
    def test_get_contact(self, client, make_contact, people):
        make_contact()
        people.add_person("people/c1", update_time=T0)

        response = client.get("/api/contacts/C1")

        assert response.status_code == 200
        assert response.get_json()["baseline"] == T0

    def test_get_missing_contact(self, client):
        assert client.get("/api/contacts/nope").status_code == 404

    def test_save_contact(self, client, make_contact):
        make_contact()

        response = client.post("/api/contacts/C1", json={"conf": "2", "emo": "1", "baseline": T0})

        body = response.get_json()
        assert response.status_code == 200
        assert body["ok"] is True
        assert body["outbox_id"]
        assert body["pending"] == 1

    def test_save_validation_error(self, client, make_contact):
        make_contact(people_rn=None)

        response = client.post("/api/contacts/C1", json={"cadence": "C"})

        assert response.status_code == 400
        assert response.get_json()["ok"] is False

    def test_save_missing_contact(self, client):
        assert client.post("/api/contacts/nope", json={}).status_code == 404

    def test_save_remote_failure(self, client, make_contact, people):
        make_contact()
        people.get_error = PeopleAPIError("503 from People API", status_code=503)

        response = client.post("/api/contacts/C1", json={"cadence": "C"})

        assert response.status_code == 502


# ==============================================================================
# LINK BACKFILL
# ==============================================================================

class TestBackfillRoutes:
    def test_backfill_and_reset(self, client, make_contact):
        make_contact("C1", "people/c1")
        make_contact("C2", "people/c2")

        first = client.post("/api/backfill/link", json={"batch_size": 1}).get_json()
        assert first["enqueued"] == 1
        assert first["done"] is False

        assert client.post("/api/backfill/link/reset").get_json() == {"ok": True}

        again = client.post("/api/backfill/link", json={}).get_json()
        assert again["enqueued"] == 2
        assert again["pending"] == 3

    def test_backfill_rejects_bad_batch_size(self, client):
        response = client.post("/api/backfill/link", json={"batch_size": "many"})
        assert response.status_code == 400
