"""
Outbox tick worker.

Each tick drains a bounded batch of due outbox entries in storage order and
applies them to the People API:

1. entries without a remote id, or whose payload is not a JSON envelope with
   a known mode, are SKIPPED;
2. the remote contact is fetched and its concurrency token compared with the
   entry's baseline; a mismatch ends the entry as CONFLICT (remote wins),
   whatever the payload's field contents;
3. payload fields are validated (SKIPPED when bad), merged into the custom
   fields (and events for normal changes) and patched back with the fetched
   etag;
4. on success the contact's category group is refreshed (best effort) and the
   entry is DONE;
5. any failure fetching or patching increments attempts and schedules a
   RETRY, or SKIPS the entry once the attempt budget is spent.

A People API auth/configuration failure aborts the whole tick and leaves the
entry untouched. Only one tick runs at a time per process; a tick that finds
the lock held returns immediately without touching any state.
"""
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from tribu.datetime_utils import utcnow
from tribu.logging_config import get_logger, outbox_log_fields, SyncContext
from tribu.models import OutboxStatus, SyncRun, SyncRunStatus, db
from tribu.outbox.backoff import DEFAULT_BACKOFF_MINUTES, backoff_for, validate_backoff_table
from tribu.outbox.conflict import ConflictDecision, check_conflict, extract_token
from tribu.outbox.errors import MissingRemoteMetadataError, PayloadError
from tribu.outbox.groups import GroupClassifier, group_memberships
from tribu.outbox.merger import merge_custom_fields, merge_events
from tribu.outbox.payloads import decode_envelope, envelope_is_link_only, from_envelope
from tribu.outbox.queue import OutboxQueue
from tribu.people.api import PeopleAuthError
from tribu.sync_lock import SyncLockBusy, tick_lock_manager

logger = get_logger(__name__)

LINK_ONLY_PERSON_FIELDS = "metadata,userDefined"
NORMAL_PERSON_FIELDS = "metadata,userDefined,events,memberships"

MISSING_REMOTE_ID = "missing remote id"
INVALID_PAYLOAD = "invalid payload"
REMOTE_CHANGED = "remote contact changed since the edit was queued (updateTime differs)"


@dataclass
class SyncSettings:
    batch_per_tick: int = 20
    max_attempts: int = 8
    backoff_minutes: tuple = DEFAULT_BACKOFF_MINUTES
    webapp_url: str = ""

    def __post_init__(self):
        if self.batch_per_tick < 1:
            raise ValueError("batch_per_tick must be at least 1")
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.backoff_minutes = validate_backoff_table(self.backoff_minutes)

    @classmethod
    def from_config(cls, config):
        return cls(
            batch_per_tick=int(config.get("SYNC_BATCH_PER_TICK", 20)),
            max_attempts=int(config.get("SYNC_MAX_ATTEMPTS", 8)),
            backoff_minutes=config.get("SYNC_BACKOFF_MINUTES", DEFAULT_BACKOFF_MINUTES),
            webapp_url=config.get("TRIBU_WEBAPP_URL") or "",
        )


@dataclass
class WorkerRunReport:
    """Outcome of one tick. Written by the worker, read by status endpoints."""
    operation_id: str = field(default_factory=lambda: uuid.uuid4().hex[:16])
    started_at: datetime = field(default_factory=utcnow)
    finished_at: Optional[datetime] = None
    duration_seconds: float = 0.0
    processed: int = 0
    done: int = 0
    retry: int = 0
    conflict: int = 0
    skipped: int = 0
    errors: int = 0
    error: Optional[str] = None
    locked: bool = False

    @property
    def ok(self):
        return self.error is None and not self.locked

    def count(self, status: OutboxStatus):
        self.processed += 1
        if status is OutboxStatus.DONE:
            self.done += 1
        elif status is OutboxStatus.RETRY:
            self.retry += 1
        elif status is OutboxStatus.CONFLICT:
            self.conflict += 1
        elif status is OutboxStatus.SKIPPED:
            self.skipped += 1

    def stats(self):
        return {
            "processed": self.processed,
            "done": self.done,
            "retry": self.retry,
            "conflict": self.conflict,
            "skipped": self.skipped,
            "err": self.errors,
        }

    def to_model(self) -> SyncRun:
        return SyncRun(
            operation_id=self.operation_id,
            status=SyncRunStatus.COMPLETED if self.error is None else SyncRunStatus.FAILED,
            started_at=self.started_at,
            completed_at=self.finished_at,
            duration_seconds=self.duration_seconds,
            processed=self.processed,
            done=self.done,
            retry=self.retry,
            conflict=self.conflict,
            skipped=self.skipped,
            errors=self.errors,
            error_message=self.error,
        )


class TickWorker:
    """Applies due outbox entries to the People API."""

    def __init__(self, people_client, settings: Optional[SyncSettings] = None, queue: Optional[OutboxQueue] = None,
                 classifier: Optional[GroupClassifier] = None, lock_manager=None, clock=utcnow):
        self.people = people_client
        self.settings = settings or SyncSettings()
        self.queue = queue or OutboxQueue()
        self.classifier = classifier or GroupClassifier(people_client)
        self.lock_manager = lock_manager or tick_lock_manager
        self.clock = clock

    def tick(self, now: Optional[datetime] = None) -> WorkerRunReport:
        """
        Process up to batch_per_tick due entries.

        Returns:
            WorkerRunReport: the run outcome; persisted unless the tick lock was busy
        """
        report = WorkerRunReport(started_at=self.clock())
        try:
            with self.lock_manager.acquire_sync_lock("outbox_tick", blocking=False):
                self._run_locked(report, now)
        except SyncLockBusy:
            report.locked = True
            logger.info("Outbox tick skipped: another tick is running", operation_id=report.operation_id)
        return report

    def _run_locked(self, report: WorkerRunReport, now: Optional[datetime]):
        ctx = SyncContext("outbox_tick", report.operation_id)
        try:
            with ctx:
                self._run_batch(report, now or self.clock())
                ctx.update(**report.stats())
        except Exception as e:
            # Process-level failure: recorded on the run report, entries already
            # committed stay committed.
            db.session.rollback()
            report.error = str(e) or type(e).__name__
            logger.error("Outbox tick aborted", operation_id=report.operation_id, error=report.error, exc_info=True)

        report.finished_at = self.clock()
        report.duration_seconds = ctx.elapsed_seconds
        self._persist(report)

    def _persist(self, report: WorkerRunReport):
        try:
            db.session.add(report.to_model())
            db.session.commit()
        except Exception:
            db.session.rollback()
            logger.error("Could not persist outbox run report", operation_id=report.operation_id, exc_info=True)

    def _run_batch(self, report: WorkerRunReport, now: datetime):
        entries = self.queue.scan_due(now, limit=self.settings.batch_per_tick)
        if not entries:
            logger.debug("No due outbox entries")
            return

        logger.info(f"Processing {len(entries)} due outbox entries", operation_id=report.operation_id)
        for entry in entries:
            status = self.process_entry(entry, now, report)
            report.count(status)

    def process_entry(self, entry, now: datetime, report: Optional[WorkerRunReport] = None) -> OutboxStatus:
        """Drive one entry to its next status and persist it."""
        if not (entry.remote_id or "").strip():
            return self._finish(entry, OutboxStatus.SKIPPED, now, MISSING_REMOTE_ID)

        try:
            envelope = decode_envelope(entry.payload)
        except PayloadError as e:
            logger.warning("Outbox payload rejected", outbox_id=entry.id, error=str(e))
            return self._finish(entry, OutboxStatus.SKIPPED, now, INVALID_PAYLOAD)

        # PeopleAuthError is not per-entry: it escapes and aborts the tick
        try:
            record = self._fetch_checked(entry, envelope_is_link_only(envelope))
        except PeopleAuthError:
            raise
        except Exception as e:
            return self._count_failure(entry, e, now, report)

        if record is None:
            return self._finish(entry, OutboxStatus.CONFLICT, now, REMOTE_CHANGED)

        try:
            change = from_envelope(envelope)
        except PayloadError as e:
            logger.warning("Outbox payload rejected", outbox_id=entry.id, error=str(e))
            return self._finish(entry, OutboxStatus.SKIPPED, now, INVALID_PAYLOAD)

        try:
            self._patch(entry, record, change)
        except PeopleAuthError:
            raise
        except Exception as e:
            return self._count_failure(entry, e, now, report)

        if not change.is_link_only and change.icon:
            try:
                self.classifier.classify(entry.remote_id, change.icon, member_of=group_memberships(record))
            except Exception as e:
                # A failed lookup may leave the session unusable for _finish's commit
                db.session.rollback()
                logger.warning("Group classification failed", outbox_id=entry.id, remote_id=entry.remote_id, error=str(e))

        return self._finish(entry, OutboxStatus.DONE, now, "")

    def _count_failure(self, entry, error, now: datetime, report: Optional[WorkerRunReport]) -> OutboxStatus:
        if report is not None:
            report.errors += 1
        return self._handle_failure(entry, error, now)

    def _fetch_checked(self, entry, link_only: bool):
        """Fetch the remote record; None when the conflict policy refuses the write."""
        person_fields = LINK_ONLY_PERSON_FIELDS if link_only else NORMAL_PERSON_FIELDS
        record = self.people.get_person(entry.remote_id, person_fields=person_fields) or {}

        current = extract_token(record)
        if check_conflict(entry.baseline, current) is ConflictDecision.CONFLICT:
            logger.info(
                "Outbox conflict: remote wins",
                outbox_id=entry.id,
                remote_id=entry.remote_id,
                baseline=entry.baseline,
                current=current.value,
            )
            return None
        return record

    def _patch(self, entry, record, change):
        """Merge the change into the fetched record and write it back with its etag."""
        sources = (record.get("metadata") or {}).get("sources") or []
        if not sources:
            raise MissingRemoteMetadataError("People: missing metadata.sources")

        person = {
            "resourceName": entry.remote_id,
            "etag": record.get("etag"),
            "metadata": {"sources": sources},
            "userDefined": merge_custom_fields(record.get("userDefined"), change, self.settings.webapp_url),
        }
        update_fields = "userDefined"
        if not change.is_link_only:
            person["events"] = merge_events(record.get("events"), change)
            update_fields = "userDefined,events"

        self.people.update_contact(entry.remote_id, person, update_person_fields=update_fields)

    def _finish(self, entry, status: OutboxStatus, now: datetime, last_error: str) -> OutboxStatus:
        entry = self.queue.write_patch(entry.id, status=status, last_error=last_error, applied_at=now)
        logger.info("Outbox entry finished", **outbox_log_fields(entry))
        return status

    def _handle_failure(self, entry, error, now: datetime) -> OutboxStatus:
        """Count a failed attempt and schedule a retry, or give up at max_attempts."""
        message = str(error) or type(error).__name__
        attempts = min(entry.attempts + 1, self.settings.max_attempts)

        if attempts >= self.settings.max_attempts:
            entry = self.queue.write_patch(
                entry.id,
                status=OutboxStatus.SKIPPED,
                attempts=attempts,
                next_try_at=None,
                last_error=message,
                applied_at=now,
            )
            logger.error(
                f"Outbox entry gave up after {attempts} attempts",
                error=message[:300],
                **outbox_log_fields(entry)
            )
            return OutboxStatus.SKIPPED

        next_try_at = now + backoff_for(attempts, self.settings.backoff_minutes)
        entry = self.queue.write_patch(
            entry.id,
            status=OutboxStatus.RETRY,
            attempts=attempts,
            next_try_at=next_try_at,
            last_error=message,
        )
        logger.warning(
            f"Outbox entry will retry ({attempts}/{self.settings.max_attempts})",
            next_try_at=next_try_at.isoformat(),
            error=message[:300],
            **outbox_log_fields(entry)
        )
        return OutboxStatus.RETRY
