"""
Outbox payload variants and their JSON envelope.

Envelope layout (one JSON object per outbox row)::

    {
      "localId": "...", "remoteId": "people/c1", "displayName": "...",
      "dims": {"conf": 1, "emo": 2, "ene": 0, "est": 1, "rep": -1},
      "cadence": "S", "total": 4, "icon": "...", "nextContactDate": "2025-01-08",
      "mode": ""            # or "linkOnly"
    }

A link-only envelope only needs localId, remoteId and mode.
"""
import json
from dataclasses import dataclass, field
from typing import Optional, Union

from tribu.outbox.errors import PayloadError

MODE_NORMAL = ""
MODE_LINK_ONLY = "linkOnly"

DIMENSION_NAMES = ("conf", "emo", "ene", "est", "rep")


def _number_or_none(value, name):
    if value is None:
        return None
    if isinstance(value, bool):
        raise PayloadError(f"dimension '{name}' is not a number")
    if isinstance(value, (int, float)):
        return float(value)
    text = str(value).strip().replace(",", ".")
    if not text:
        return None
    try:
        return float(text)
    except ValueError:
        raise PayloadError(f"dimension '{name}' is not a number: {value!r}")


@dataclass(frozen=True)
class Dimensions:
    conf: Optional[float] = None
    emo: Optional[float] = None
    ene: Optional[float] = None
    est: Optional[float] = None
    rep: Optional[float] = None

    @classmethod
    def from_dict(cls, data):
        data = data or {}
        if not isinstance(data, dict):
            raise PayloadError("dims must be an object")
        return cls(**{name: _number_or_none(data.get(name), name) for name in DIMENSION_NAMES})

    def to_dict(self):
        return {name: getattr(self, name) for name in DIMENSION_NAMES}


@dataclass(frozen=True)
class NormalChange:
    """Full local-derived field set for one contact."""
    local_id: str
    remote_id: str
    display_name: str = ""
    dims: Dimensions = field(default_factory=Dimensions)
    cadence: str = ""
    total: Optional[float] = None
    icon: str = ""
    next_contact_date: str = ""

    mode = MODE_NORMAL

    @property
    def is_link_only(self):
        return False


@dataclass(frozen=True)
class LinkOnlyChange:
    """Only ensures the deep-link custom field exists."""
    local_id: str
    remote_id: str = ""

    mode = MODE_LINK_ONLY

    @property
    def is_link_only(self):
        return True


Change = Union[NormalChange, LinkOnlyChange]


def to_envelope(change: Change) -> dict:
    if isinstance(change, LinkOnlyChange):
        return {
            "localId": change.local_id,
            "remoteId": change.remote_id,
            "mode": MODE_LINK_ONLY,
        }
    return {
        "localId": change.local_id,
        "remoteId": change.remote_id,
        "displayName": change.display_name,
        "dims": change.dims.to_dict(),
        "cadence": change.cadence,
        "total": change.total,
        "icon": change.icon,
        "nextContactDate": change.next_contact_date,
        "mode": MODE_NORMAL,
    }


def serialize_payload(change: Change) -> str:
    return json.dumps(to_envelope(change), ensure_ascii=False, sort_keys=True)


def _text(data, key):
    value = data.get(key)
    return "" if value is None else str(value).strip()


def from_envelope(data) -> Change:
    if not isinstance(data, dict):
        raise PayloadError("payload envelope must be an object")

    mode = _text(data, "mode")
    local_id = _text(data, "localId")
    remote_id = _text(data, "remoteId")
    if not local_id:
        raise PayloadError("payload missing localId")

    if mode == MODE_LINK_ONLY:
        return LinkOnlyChange(local_id=local_id, remote_id=remote_id)
    if mode != MODE_NORMAL:
        raise PayloadError(f"unknown payload mode: {mode!r}")

    total = data.get("total")
    return NormalChange(
        local_id=local_id,
        remote_id=remote_id,
        display_name=_text(data, "displayName"),
        dims=Dimensions.from_dict(data.get("dims")),
        cadence=_text(data, "cadence"),
        total=_number_or_none(total, "total"),
        icon=_text(data, "icon"),
        next_contact_date=_text(data, "nextContactDate"),
    )


def decode_envelope(raw) -> dict:
    """
    Decode a stored payload blob into its envelope without checking field
    contents: it must be a JSON object with a known mode.
    """
    try:
        data = json.loads(raw or "{}")
    except (TypeError, ValueError) as e:
        raise PayloadError(f"payload is not valid JSON: {e}")
    if not isinstance(data, dict):
        raise PayloadError("payload envelope must be an object")
    mode = _text(data, "mode")
    if mode not in (MODE_NORMAL, MODE_LINK_ONLY):
        raise PayloadError(f"unknown payload mode: {mode!r}")
    return data


def envelope_is_link_only(data) -> bool:
    return _text(data, "mode") == MODE_LINK_ONLY


def parse_payload(raw) -> Change:
    """Parse a stored payload blob; raises PayloadError when malformed."""
    return from_envelope(decode_envelope(raw))
