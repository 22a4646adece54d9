# Package
from tribu.outbox.payloads import LinkOnlyChange, NormalChange, Dimensions, parse_payload, serialize_payload
from tribu.outbox.queue import OutboxQueue
from tribu.outbox.worker import SyncSettings, TickWorker, WorkerRunReport

__all__ = [
    "Dimensions",
    "LinkOnlyChange",
    "NormalChange",
    "OutboxQueue",
    "SyncSettings",
    "TickWorker",
    "WorkerRunReport",
    "parse_payload",
    "serialize_payload",
]
