import uuid
from typing import List, Optional

from sqlalchemy import or_

from tribu.datetime_utils import utcnow
from tribu.logging_config import get_logger
from tribu.models import OutboxEntry, OutboxStatus, db
from tribu.outbox.errors import ImmutableEntryError
from tribu.outbox.payloads import serialize_payload

logger = get_logger(__name__)

NON_TERMINAL = (OutboxStatus.PENDING, OutboxStatus.RETRY)
PATCHABLE_FIELDS = frozenset({"status", "attempts", "next_try_at", "last_error", "applied_at"})


class OutboxQueue:
    """Durable queue of pending remote changes, stored in the outbox table."""

    def __init__(self, session=None):
        self.session = session or db.session

    def enqueue(self, local_id: str, remote_id: str, baseline: str, payload) -> str:
        """
        Append one PENDING entry. The caller owns the transaction: the entry is
        flushed, not committed, so it lands together with the ledger edit.

        Args:
            local_id: local contact id
            remote_id: remote resource name ('' is accepted and skipped by the worker)
            baseline: concurrency token seen when the edit was made ('' = no check)
            payload: NormalChange / LinkOnlyChange, or an already serialized envelope

        Returns:
            str: the new entry id
        """
        entry = OutboxEntry(
            id=str(uuid.uuid4()),
            created_at=utcnow(),
            local_id=str(local_id or "").strip(),
            remote_id=str(remote_id or "").strip(),
            baseline=str(baseline or "").strip(),
            payload=payload if isinstance(payload, str) else serialize_payload(payload),
            status=OutboxStatus.PENDING,
            attempts=0,
            next_try_at=None,
            last_error="",
            applied_at=None,
        )
        self.session.add(entry)
        self.session.flush()

        logger.info("Outbox entry enqueued", outbox_id=entry.id, local_id=entry.local_id, remote_id=entry.remote_id)
        return entry.id

    def count_pending(self) -> int:
        return self.session.query(OutboxEntry).filter(OutboxEntry.status.in_(NON_TERMINAL)).count()

    def scan_due(self, now=None, limit: Optional[int] = None) -> List[OutboxEntry]:
        """Non-terminal entries whose next try is unset or not in the future, oldest first."""
        now = now or utcnow()
        query = (
            self.session.query(OutboxEntry)
            .filter(
                OutboxEntry.status.in_(NON_TERMINAL),
                or_(OutboxEntry.next_try_at.is_(None), OutboxEntry.next_try_at <= now),
            )
            .order_by(OutboxEntry.seq.asc())
        )
        if limit is not None:
            query = query.limit(limit)
        return query.all()

    def get(self, entry_id: str) -> Optional[OutboxEntry]:
        return self.session.query(OutboxEntry).filter_by(id=entry_id).one_or_none()

    def write_patch(self, entry_id: str, **fields) -> OutboxEntry:
        """
        Apply a partial update to one entry and commit it.

        Only the fields passed are written, so next_try_at=None clears the column.

        Raises:
            ValueError: unknown field or entry id
            ImmutableEntryError: the entry is already terminal
        """
        unknown = set(fields) - PATCHABLE_FIELDS
        if unknown:
            raise ValueError(f"Cannot patch outbox fields: {sorted(unknown)}")

        entry = self.get(entry_id)
        if entry is None:
            raise ValueError(f"Outbox entry not found: {entry_id}")
        if entry.status.is_terminal:
            raise ImmutableEntryError(f"Outbox entry {entry_id} is already {entry.status.value}")

        for name, value in fields.items():
            setattr(entry, name, value)
        self.session.commit()
        return entry

    def pending_sample(self, limit: int = 5) -> List[dict]:
        """A few non-terminal entries, for diagnostics."""
        entries = (
            self.session.query(OutboxEntry)
            .filter(OutboxEntry.status.in_(NON_TERMINAL))
            .order_by(OutboxEntry.seq.asc())
            .limit(limit)
            .all()
        )
        return [entry.to_dict() for entry in entries]
