from datetime import datetime, timedelta
from flask import current_app

from tribu.datetime_utils import to_iso_date, today_iso, utcnow
from tribu.logging_config import get_logger
from tribu.models import Contact, ContactEvent, db
from tribu.outbox.conflict import extract_token
from tribu.outbox.groups import Category
from tribu.outbox.merger import NEXT_CONTACT_EVENT_TYPE
from tribu.outbox.payloads import Dimensions, NormalChange
from tribu.outbox.queue import OutboxQueue
from tribu.services.schedule import BIRTHDAY, next_contact_status, normalize_cadence, propose_next_contact
from tribu.services.scoring import compute_icon, compute_total, parse_score
from tribu.sync_lock import ledger_lock_manager

logger = get_logger(__name__)


class ContactValidationError(ValueError):
    """A save request was rejected before touching the ledger."""


class ContactNotFoundError(LookupError):
    pass


# resource name -> (token, expires_at)
_token_cache = {}


def get_remote_token_cached(people_client, people_rn, ttl_seconds=300, now=None):
    """
    Live concurrency token of a remote contact, cached for ttl_seconds.
    Returns '' when the contact cannot be read; the edit then skips the conflict check.
    """
    rn = str(people_rn or "").strip()
    if not rn or people_client is None:
        return ""

    now = now or utcnow()
    hit = _token_cache.get(rn)
    if hit and hit[1] > now:
        return hit[0]

    try:
        record = people_client.get_person(rn, person_fields="metadata")
    except Exception as e:
        logger.warning("Could not read remote token", people_rn=rn, error=str(e))
        return ""

    token = extract_token(record).value
    if token:
        _token_cache[rn] = (token, now + timedelta(seconds=ttl_seconds))
    return token


def clear_token_cache():
    _token_cache.clear()


def has_birthday_month_day(record):
    """True when the remote contact carries a birthday with month and day (year optional)."""
    for birthday in (record or {}).get("birthdays") or []:
        day = (birthday or {}).get("date") or {}
        try:
            if int(day.get("month") or 0) >= 1 and int(day.get("day") or 0) >= 1:
                return True
        except (TypeError, ValueError):
            continue
    return False


def _default_people_client():
    from tribu.people.client import get_people_client
    return get_people_client()


class ContactService:
    """Ledger edits for valued contacts, and the outbox entries they produce."""

    @staticmethod
    def get_next_contact(contact_id):
        event = ContactEvent.query.filter_by(contact_id=contact_id, event_type=NEXT_CONTACT_EVENT_TYPE).one_or_none()
        return to_iso_date(event.event_date) if event else ""

    @staticmethod
    def upsert_next_contact(contact_id, date_iso):
        event = ContactEvent.query.filter_by(contact_id=contact_id, event_type=NEXT_CONTACT_EVENT_TYPE).one_or_none()
        if event is None:
            event = ContactEvent(contact_id=contact_id, event_type=NEXT_CONTACT_EVENT_TYPE)
            db.session.add(event)
        event.event_date = date_iso or ""
        return event

    @staticmethod
    def get_lite(contact_id, people_client=None, now=None):
        """Ledger view of one contact plus its scheduling state and live remote token."""
        cid = str(contact_id or "").strip()
        contact = Contact.query.filter_by(contact_id=cid).one_or_none() if cid else None
        if contact is None:
            raise ContactNotFoundError(f"Contact not found: {cid}")

        now = now or utcnow()
        today = today_iso(now)
        next_contact = ContactService.get_next_contact(cid)
        cadence = normalize_cadence(contact.cadence)

        baseline = ""
        if contact.people_rn:
            client = people_client or _default_people_client()
            baseline = get_remote_token_cached(
                client, contact.people_rn, current_app.config.get("SYNC_META_CACHE_TTL", 300), now
            )

        category = Category.from_icon(contact.icon)
        return {
            "contact": contact.to_dict(),
            "next_contact": next_contact,
            "proposed_next_contact": propose_next_contact(today, cadence),
            "next_contact_status": next_contact_status(next_contact, cadence, today),
            "groups": [category.group_name] if category else [],
            "baseline": baseline,
        }

    @staticmethod
    def _check_stale(data, now):
        """Dirty edits must come from a form loaded less than SYNC_STALE_MINUTES ago."""
        if not data.get("dirty"):
            return
        try:
            fetched_at_ms = float(data.get("fetched_at_ms") or 0)
        except (TypeError, ValueError):
            fetched_at_ms = 0
        if not fetched_at_ms:
            raise ContactValidationError("Stale edit (no load timestamp). Reload and try again.")

        stale_minutes = current_app.config.get("SYNC_STALE_MINUTES", 10)
        now_ms = (now - datetime(1970, 1, 1)).total_seconds() * 1000
        if now_ms - fetched_at_ms > stale_minutes * 60 * 1000:
            raise ContactValidationError(f"Stale edit (>{stale_minutes} min). Reload and try again.")

    @staticmethod
    def save(contact_id, data, people_client=None, now=None):
        """
        Write an edit to the ledger and queue it for the remote contact.

        Args:
            contact_id: local contact id
            data: dict with name, conf, emo, ene, est, rep, cadence, next_contact,
                  baseline, people_rn, dirty, fetched_at_ms
            people_client: People API client (only used for birthday checks and baselines)
            now: override for the current time

        Returns:
            dict with the saved contact view, the outbox entry id (or None) and the pending count

        Raises:
            ContactValidationError, ContactNotFoundError, SyncLockBusy
        """
        cid = str(contact_id or "").strip()
        if not cid:
            raise ContactValidationError("contact_id required")
        data = data or {}
        now = now or utcnow()
        lock_timeout = current_app.config.get("SYNC_LOCK_TIMEOUT", 30)

        with ledger_lock_manager.acquire_sync_lock("contact_save", timeout_seconds=lock_timeout):
            try:
                result = ContactService._save_locked(cid, data, people_client, now)
                db.session.commit()
            except Exception:
                db.session.rollback()
                raise

        result["pending"] = OutboxQueue().count_pending()
        return result

    @staticmethod
    def _save_locked(cid, data, people_client, now):
        ContactService._check_stale(data, now)

        contact = Contact.query.filter_by(contact_id=cid).one_or_none()
        if contact is None:
            raise ContactNotFoundError(f"Contact not found: {cid}")

        cadence = normalize_cadence(data.get("cadence"))
        people_rn = str(contact.people_rn or data.get("people_rn") or "").strip()

        if cadence == BIRTHDAY:
            if not people_rn:
                raise ContactValidationError("Cannot verify birthday: contact has no remote id.")
            client = people_client or _default_people_client()
            record = client.get_person(people_rn, person_fields="birthdays")
            if not has_birthday_month_day(record):
                raise ContactValidationError("Birthday cadence needs a birthday (month/day) on the remote contact.")

        today = today_iso(now)
        if cadence == BIRTHDAY:
            next_contact = ""
        else:
            next_contact = to_iso_date(data.get("next_contact")) or propose_next_contact(today, cadence)

        dims = Dimensions(**{name: parse_score(data.get(name)) for name in ("conf", "emo", "ene", "est", "rep")})
        total = compute_total(dims.conf, dims.emo, dims.ene, dims.est, dims.rep)
        icon = compute_icon(dims.conf, total)

        if people_rn and not contact.people_rn:
            contact.people_rn = people_rn
        contact.name = str(data.get("name", contact.name) or "").strip()
        contact.conf, contact.emo, contact.ene, contact.est, contact.rep = (
            dims.conf, dims.emo, dims.ene, dims.est, dims.rep
        )
        contact.cadence = cadence
        contact.total = total
        contact.icon = icon
        contact.updated_at = now

        ContactService.upsert_next_contact(cid, next_contact)

        outbox_id = None
        if people_rn:
            change = NormalChange(
                local_id=cid,
                remote_id=people_rn,
                display_name=contact.name,
                dims=dims,
                cadence=cadence,
                total=total,
                icon=icon,
                next_contact_date=next_contact,
            )
            baseline = str(data.get("baseline") or "").strip()
            if not baseline:
                client = people_client or _default_people_client()
                baseline = get_remote_token_cached(
                    client, people_rn, current_app.config.get("SYNC_META_CACHE_TTL", 300), now
                )
            outbox_id = OutboxQueue().enqueue(cid, people_rn, baseline, change)
        else:
            logger.info("Contact has no remote id, nothing queued", contact_id=cid)

        category = Category.from_icon(icon)
        return {
            "ok": True,
            "contact": contact.to_dict(),
            "next_contact": next_contact,
            "next_contact_status": next_contact_status(next_contact, cadence, today),
            "proposed_next_contact": propose_next_contact(today, cadence),
            "groups": [category.group_name] if category else [],
            "outbox_id": outbox_id,
        }
