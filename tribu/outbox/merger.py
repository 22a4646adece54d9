"""
Builds the remote custom-field and event sets from the current remote record
plus a queued change, keeping remote data the sync does not own.
"""
from urllib.parse import quote

from tribu.datetime_utils import to_iso_date
from tribu.outbox.payloads import DIMENSION_NAMES

LEGACY_KEY_PREFIX = "tr_"
LEGACY_PACK_KEY = "Tribu"
PACK_KEY = "Tribu ROI"
LINK_KEY = "Tribu Link"
NEXT_CONTACT_EVENT_TYPE = "Próx. Contacto"


def _fmt(value):
    if value is None:
        return ""
    if isinstance(value, float):
        return f"{value:g}"
    return str(value).strip()


def build_packed_value(change):
    """conf | emo | ene | est | rep | total | cadence"""
    parts = [_fmt(getattr(change.dims, name)) for name in DIMENSION_NAMES]
    parts.append(_fmt(change.total))
    parts.append(_fmt(change.cadence))
    return " | ".join(parts)


def make_link(local_id, base_url):
    """Deep link back into the web app for one contact, or '' when unavailable."""
    local_id = str(local_id or "").strip()
    base_url = str(base_url or "").strip()
    if not local_id or not base_url:
        return ""
    sep = "&" if "?" in base_url else "?"
    return f"{base_url}{sep}cid={quote(local_id, safe='')}"


def _drop_key(key, link_only):
    if key == LEGACY_PACK_KEY or key == LINK_KEY:
        return True
    if link_only:
        return False
    return key.startswith(LEGACY_KEY_PREFIX) or key == PACK_KEY


def merge_custom_fields(existing, change, base_url):
    """
    New userDefined list for the remote record.

    Normal changes replace the legacy, packed and link entries; link-only
    changes replace the link entry and leave the packed value alone.
    """
    kept = []
    for item in existing or []:
        key = str((item or {}).get("key") or "")
        if _drop_key(key, change.is_link_only):
            continue
        kept.append({"key": key, "value": str((item or {}).get("value") or "")})

    if not change.is_link_only:
        kept.append({"key": PACK_KEY, "value": build_packed_value(change)})

    link = make_link(change.local_id, base_url)
    if link:
        kept.append({"key": LINK_KEY, "value": link})
    return kept


def merge_events(existing, change):
    """
    New events list: any next-contact event is replaced by the change's date,
    or removed when the change has none. Link-only changes return the input.
    """
    events = list(existing or [])
    if change.is_link_only:
        return events

    kept = [ev for ev in events if str((ev or {}).get("type") or "").strip() != NEXT_CONTACT_EVENT_TYPE]

    iso = to_iso_date(change.next_contact_date)
    if iso:
        year, month, day = (int(part) for part in iso.split("-"))
        kept.append({
            "type": NEXT_CONTACT_EVENT_TYPE,
            "formattedType": NEXT_CONTACT_EVENT_TYPE,
            "date": {"year": year, "month": month, "day": day},
            "metadata": {"primary": True},
        })
    return kept
