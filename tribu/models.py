from flask_sqlalchemy import SQLAlchemy
from enum import Enum

from tribu.datetime_utils import utcnow, format_datetime_utc

db = SQLAlchemy()


class OutboxStatus(Enum):
    PENDING = "PENDING"
    RETRY = "RETRY"
    DONE = "DONE"
    CONFLICT = "CONFLICT"
    SKIPPED = "SKIPPED"

    @property
    def is_terminal(self):
        return self not in (OutboxStatus.PENDING, OutboxStatus.RETRY)


class SyncRunStatus(Enum):
    COMPLETED = "completed"
    FAILED = "failed"


class Contact(db.Model):
    """Local ledger row: one valued contact."""
    __tablename__ = "contacts"

    id = db.Column(db.Integer, primary_key=True)
    contact_id = db.Column(db.String(64), unique=True, nullable=False, index=True)
    people_rn = db.Column(db.String(128), nullable=True)  # e.g. people/c123, empty until linked

    name = db.Column(db.String(256), nullable=False, default="")
    icon = db.Column(db.String(16), nullable=True)

    # Scored dimensions; None means "not scored"
    conf = db.Column(db.Float, nullable=True)
    emo = db.Column(db.Float, nullable=True)
    ene = db.Column(db.Float, nullable=True)
    est = db.Column(db.Float, nullable=True)
    rep = db.Column(db.Float, nullable=True)

    cadence = db.Column(db.String(8), nullable=True)  # '', S, 1M, 3M, 6M, A, C
    total = db.Column(db.Float, nullable=True)

    updated_at = db.Column(db.DateTime, nullable=True)

    def __repr__(self):
        return f"<Contact {self.contact_id} - {self.name}>"

    def to_dict(self):
        return {
            "contact_id": self.contact_id,
            "people_rn": self.people_rn or "",
            "name": self.name,
            "icon": self.icon or "",
            "conf": self.conf,
            "emo": self.emo,
            "ene": self.ene,
            "est": self.est,
            "rep": self.rep,
            "cadence": self.cadence or "",
            "total": self.total,
        }


class ContactEvent(db.Model):
    """Local mirror of a dated contact event (the next-contact date)."""
    __tablename__ = "contact_events"
    __table_args__ = (db.UniqueConstraint("contact_id", "event_type", name="_contact_event_type_uc"),)

    id = db.Column(db.Integer, primary_key=True)
    contact_id = db.Column(db.String(64), nullable=False, index=True)
    event_type = db.Column(db.String(64), nullable=False)
    event_date = db.Column(db.String(10), nullable=False, default="")  # YYYY-MM-DD or ''

    def __repr__(self):
        return f"<ContactEvent {self.contact_id} {self.event_type} {self.event_date}>"


class ContactGroup(db.Model):
    """Managed remote contact group: canonical name -> remote resource name."""
    __tablename__ = "contact_groups"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(64), unique=True, nullable=False)
    resource_name = db.Column(db.String(128), nullable=False)

    def __repr__(self):
        return f"<ContactGroup {self.name} -> {self.resource_name}>"


class GoogleToken(db.Model):
    '''Model to store Google OAuth access token metadata'''
    __tablename__ = "google_tokens"
    id = db.Column(db.Integer, primary_key=True)
    access_token = db.Column(db.Text, nullable=False)
    expires_at = db.Column(db.DateTime, nullable=False)
    token_type = db.Column(db.String(50), default="Bearer")
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    @classmethod
    def get_current(cls):
        '''Get current Google token'''
        return cls.query.order_by(cls.updated_at.desc()).first()


class OutboxEntry(db.Model):
    """One queued intent to mutate one remote contact."""
    __tablename__ = "outbox"

    # seq gives the natural scan order; id is the opaque public identifier
    seq = db.Column(db.Integer, primary_key=True, autoincrement=True)
    id = db.Column(db.String(36), unique=True, nullable=False, index=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    local_id = db.Column(db.String(64), nullable=False, index=True)
    remote_id = db.Column(db.String(128), nullable=False, default="")
    baseline = db.Column(db.String(64), nullable=False, default="")
    payload = db.Column(db.Text, nullable=False, default="{}")

    status = db.Column(db.Enum(OutboxStatus), nullable=False, default=OutboxStatus.PENDING, index=True)
    attempts = db.Column(db.Integer, nullable=False, default=0)
    next_try_at = db.Column(db.DateTime, nullable=True)
    last_error = db.Column(db.Text, nullable=False, default="")
    applied_at = db.Column(db.DateTime, nullable=True)

    def __repr__(self):
        return f"<OutboxEntry {self.id} - {self.remote_id} - {self.status}>"

    def to_dict(self):
        return {
            "id": self.id,
            "created_at": format_datetime_utc(self.created_at),
            "local_id": self.local_id,
            "remote_id": self.remote_id,
            "status": self.status.value,
            "attempts": self.attempts,
            "next_try_at": format_datetime_utc(self.next_try_at),
            "last_error": self.last_error,
            "applied_at": format_datetime_utc(self.applied_at),
        }


class SyncRun(db.Model):
    """Persisted report of one outbox tick."""
    __tablename__ = "sync_runs"

    id = db.Column(db.Integer, primary_key=True)
    operation_id = db.Column(db.String(32), unique=True, nullable=False, index=True)
    status = db.Column(db.Enum(SyncRunStatus), nullable=False)

    started_at = db.Column(db.DateTime, nullable=False, default=utcnow, index=True)
    completed_at = db.Column(db.DateTime, nullable=True)
    duration_seconds = db.Column(db.Float, nullable=True)

    processed = db.Column(db.Integer, default=0)
    done = db.Column(db.Integer, default=0)
    retry = db.Column(db.Integer, default=0)
    conflict = db.Column(db.Integer, default=0)
    skipped = db.Column(db.Integer, default=0)
    errors = db.Column(db.Integer, default=0)

    # Process-level failure; empty once a tick completes
    error_message = db.Column(db.Text, nullable=True)

    def __repr__(self):
        return f"<SyncRun {self.operation_id} - {self.status}>"

    @classmethod
    def latest(cls):
        return cls.query.order_by(cls.started_at.desc(), cls.id.desc()).first()

    def stats(self):
        return {
            "processed": self.processed,
            "done": self.done,
            "retry": self.retry,
            "conflict": self.conflict,
            "skipped": self.skipped,
            "err": self.errors,
        }

    def to_dict(self):
        return {
            "operation_id": self.operation_id,
            "status": self.status.value,
            "started_at": format_datetime_utc(self.started_at),
            "completed_at": format_datetime_utc(self.completed_at),
            "duration_seconds": self.duration_seconds,
            "stats": self.stats(),
            "error_message": self.error_message,
        }


class SyncState(db.Model):
    """Small key/value store for sync bookkeeping (e.g. backfill cursor)."""
    __tablename__ = "sync_state"

    key = db.Column(db.String(64), primary_key=True)
    value = db.Column(db.String(256), nullable=False, default="")

    @classmethod
    def get_value(cls, key, default=""):
        row = db.session.get(cls, key)
        return row.value if row else default

    @classmethod
    def set_value(cls, key, value):
        row = db.session.get(cls, key)
        if row is None:
            row = cls(key=key, value=str(value))
            db.session.add(row)
        else:
            row.value = str(value)
        return row

    @classmethod
    def delete_value(cls, key):
        row = db.session.get(cls, key)
        if row is not None:
            db.session.delete(row)
