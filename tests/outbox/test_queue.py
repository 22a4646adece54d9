"""
Tests for the durable outbox queue.
"""
from datetime import timedelta

import pytest

from conftest import NOW
from tribu.models import OutboxEntry, OutboxStatus, db
from tribu.outbox.errors import ImmutableEntryError
from tribu.outbox.payloads import LinkOnlyChange, parse_payload
from tribu.outbox.queue import OutboxQueue


@pytest.fixture
def queue(app):
    return OutboxQueue()


def test_enqueue_creates_pending_entry(queue):
    entry_id = queue.enqueue(" C1 ", " people/c1 ", " 2025-01-01T00:00:00Z ", LinkOnlyChange("C1", "people/c1"))
    db.session.commit()

    entry = queue.get(entry_id)
    assert entry.status is OutboxStatus.PENDING
    assert entry.attempts == 0
    assert entry.next_try_at is None
    assert entry.last_error == ""
    assert entry.applied_at is None
    assert entry.local_id == "C1"
    assert entry.remote_id == "people/c1"
    assert entry.baseline == "2025-01-01T00:00:00Z"
    assert parse_payload(entry.payload) == LinkOnlyChange("C1", "people/c1")


def test_enqueue_does_not_commit(queue):
    queue.enqueue("C1", "people/c1", "", LinkOnlyChange("C1", "people/c1"))
    db.session.rollback()

    assert OutboxEntry.query.count() == 0


def test_enqueue_ids_are_unique(queue):
    ids = {queue.enqueue("C1", "people/c1", "", "{}") for _ in range(5)}
    assert len(ids) == 5


def test_scan_due_filters_and_orders(queue):
    first = queue.enqueue("C1", "people/c1", "", "{}")
    later = queue.enqueue("C2", "people/c2", "", "{}")
    done = queue.enqueue("C3", "people/c3", "", "{}")
    retry_due = queue.enqueue("C4", "people/c4", "", "{}")
    db.session.commit()

    queue.write_patch(later, status=OutboxStatus.RETRY, next_try_at=NOW + timedelta(minutes=5))
    queue.write_patch(done, status=OutboxStatus.DONE, applied_at=NOW)
    queue.write_patch(retry_due, status=OutboxStatus.RETRY, next_try_at=NOW)

    assert [e.id for e in queue.scan_due(NOW)] == [first, retry_due]
    assert [e.id for e in queue.scan_due(NOW, limit=1)] == [first]
    assert [e.id for e in queue.scan_due(NOW + timedelta(minutes=5))] == [first, later, retry_due]


def test_count_pending(queue):
    a = queue.enqueue("C1", "people/c1", "", "{}")
    queue.enqueue("C2", "people/c2", "", "{}")
    db.session.commit()
    queue.write_patch(a, status=OutboxStatus.CONFLICT)

    assert queue.count_pending() == 1


def test_write_patch_only_touches_given_fields(queue):
    entry_id = queue.enqueue("C1", "people/c1", "tok", "{}")
    db.session.commit()

    queue.write_patch(entry_id, status=OutboxStatus.RETRY, attempts=1, next_try_at=NOW, last_error="boom")
    entry = queue.write_patch(entry_id, next_try_at=None)

    assert entry.status is OutboxStatus.RETRY
    assert entry.attempts == 1
    assert entry.next_try_at is None
    assert entry.last_error == "boom"
    assert entry.baseline == "tok"


def test_write_patch_rejects_unknown_fields(queue):
    entry_id = queue.enqueue("C1", "people/c1", "", "{}")
    db.session.commit()

    with pytest.raises(ValueError):
        queue.write_patch(entry_id, payload="{}")


def test_write_patch_rejects_unknown_entry(queue):
    with pytest.raises(ValueError):
        queue.write_patch("nope", status=OutboxStatus.DONE)


@pytest.mark.parametrize("terminal", [OutboxStatus.DONE, OutboxStatus.CONFLICT, OutboxStatus.SKIPPED])
def test_terminal_entries_are_immutable(queue, terminal):
    entry_id = queue.enqueue("C1", "people/c1", "", "{}")
    db.session.commit()
    queue.write_patch(entry_id, status=terminal)

    with pytest.raises(ImmutableEntryError):
        queue.write_patch(entry_id, status=OutboxStatus.RETRY)


def test_pending_sample(queue):
    for i in range(4):
        queue.enqueue(f"C{i}", f"people/c{i}", "", "{}")
    db.session.commit()

    sample = queue.pending_sample(limit=2)

    assert [item["local_id"] for item in sample] == ["C0", "C1"]
    assert sample[0]["status"] == "PENDING"
