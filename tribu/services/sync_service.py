from flask import current_app

from tribu.datetime_utils import format_datetime_utc
from tribu.models import SyncRun
from tribu.outbox.queue import OutboxQueue
from tribu.outbox.worker import SyncSettings, TickWorker
from tribu.sync_lock import tick_lock_manager


def build_tick_worker(people_client=None):
    """Worker wired to the app config and the shared People API client."""
    if people_client is None:
        from tribu.people.client import get_people_client
        people_client = get_people_client()
    return TickWorker(people_client, settings=SyncSettings.from_config(current_app.config))


class SyncService:
    """Entry points for scheduled/manual ticks and their status readouts."""

    @staticmethod
    def run_tick(people_client=None):
        return build_tick_worker(people_client).tick()

    @staticmethod
    def status():
        last_run = SyncRun.latest()
        return {
            "pending": OutboxQueue().count_pending(),
            "last_sync_at": format_datetime_utc(last_run.started_at) if last_run else "",
            "last_sync_error": (last_run.error_message or "") if last_run else "",
            "last_sync_stats": last_run.stats() if last_run else None,
            "sync_every_minutes": current_app.config.get("SYNC_INTERVAL_MINUTES", 5),
        }

    @staticmethod
    def diagnostics(sample_size=5):
        queue = OutboxQueue()
        last_run = SyncRun.latest()
        return {
            "outbox": {
                "pending": queue.count_pending(),
                "sample": queue.pending_sample(sample_size),
            },
            "last_run": last_run.to_dict() if last_run else None,
            "tick_lock": tick_lock_manager.get_status(),
        }
