"""
Contact cadence codes and next-contact date helpers.

Codes: '' (none), S (weekly), 1M, 3M, 6M, A (annual), C (birthday).
"""
from datetime import date, timedelta

from tribu.datetime_utils import add_months, to_iso_date

CADENCES = ("", "S", "1M", "3M", "6M", "A", "C")
BIRTHDAY = "C"

_ALIASES = {
    "R": "S",  # legacy weekly code
    "WEEKLY": "S",
    "MONTHLY": "1M",
    "QUARTERLY": "3M",
    "SEMIANNUAL": "6M",
    "ANNUAL": "A",
    "YEARLY": "A",
    "BIRTHDAY": "C",
}

_MONTHS = {"1M": 1, "3M": 3, "6M": 6, "A": 12}


def normalize_cadence(value) -> str:
    """Canonical cadence code, or '' when unknown."""
    code = str(value or "").strip().upper()
    code = _ALIASES.get(code, code)
    return code if code in CADENCES else ""


def propose_next_contact(today, cadence) -> str:
    """Latest acceptable next-contact date for a cadence, as ISO, or ''."""
    today_iso = to_iso_date(today)
    code = normalize_cadence(cadence)
    if not today_iso or not code:
        return ""

    start = date.fromisoformat(today_iso)
    if code == "S":
        return (start + timedelta(days=7)).isoformat()
    if code in _MONTHS:
        return add_months(start, _MONTHS[code]).isoformat()
    return ""


def next_contact_status(next_contact, cadence, today) -> str:
    """missing | past | too_far | ok"""
    when = to_iso_date(next_contact)
    today_iso = to_iso_date(today)
    if not when:
        return "missing"
    if when < today_iso:
        return "past"

    latest = propose_next_contact(today_iso, cadence)
    if latest and when > latest:
        return "too_far"
    return "ok"
