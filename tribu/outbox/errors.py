class OutboxError(Exception):
    """Base class for outbox processing errors."""


class PayloadError(OutboxError):
    """The serialized payload envelope cannot be turned into a change."""


class ImmutableEntryError(OutboxError):
    """An attempt was made to patch an entry that already reached a terminal status."""


class MissingRemoteMetadataError(OutboxError):
    """The remote record lacks metadata required to write it back."""


class GroupNotFoundError(OutboxError):
    """A managed group name has no known remote resource name."""
