"""
Optimistic concurrency between queued local changes and the remote record.

The remote side wins: a change queued against an older version of the
record is discarded, never merged.
"""
from dataclasses import dataclass
from enum import Enum

# Source type of direct contact edits; other sources (PROFILE, DOMAIN_PROFILE)
# churn independently and would produce false conflicts.
PRIMARY_SOURCE_TYPE = "CONTACT"


class ConflictDecision(Enum):
    PROCEED = "proceed"
    CONFLICT = "conflict"


@dataclass(frozen=True)
class ConcurrencyToken:
    value: str = ""
    source_type: str = ""

    def __bool__(self):
        return bool(self.value)

    def __str__(self):
        return self.value

    @classmethod
    def coerce(cls, token):
        if isinstance(token, cls):
            return token
        return cls(value=str(token or "").strip())

    def differs_from(self, other) -> bool:
        return self.value != ConcurrencyToken.coerce(other).value


def extract_token(record) -> ConcurrencyToken:
    """Concurrency token of a remote record, preferring the primary source."""
    metadata = (record or {}).get("metadata") or {}
    sources = metadata.get("sources") or []
    if not sources:
        return ConcurrencyToken()

    chosen = next(
        (s for s in sources if str((s or {}).get("type") or "") == PRIMARY_SOURCE_TYPE),
        sources[0],
    ) or {}
    return ConcurrencyToken(
        value=str(chosen.get("updateTime") or "").strip(),
        source_type=str(chosen.get("type") or ""),
    )


def check_conflict(baseline, current) -> ConflictDecision:
    """CONFLICT when both tokens are known and differ; an empty baseline skips the check."""
    baseline = ConcurrencyToken.coerce(baseline)
    current = ConcurrencyToken.coerce(current)
    if baseline and current and baseline.differs_from(current):
        return ConflictDecision.CONFLICT
    return ConflictDecision.PROCEED
