from tribu.logging_config import get_logger
from tribu.models import Contact, SyncState, db
from tribu.outbox.payloads import LinkOnlyChange
from tribu.outbox.queue import OutboxQueue

logger = get_logger(__name__)

CURSOR_KEY = "link_backfill_index"


class LinkBackfillService:
    """
    Queues link-only changes for every linked contact, a batch at a time.

    Walks the ledger in id order from a persisted cursor so repeated calls
    cover the whole population without re-queuing what was already queued.
    Link-only changes carry no baseline: they never touch score data, so a
    concurrent remote edit is not a conflict for them.
    """

    @staticmethod
    def enqueue_batch(batch_size=200):
        batch_size = max(1, int(batch_size or 200))
        queue = OutboxQueue()

        index = int(SyncState.get_value(CURSOR_KEY, "0") or 0)
        contacts = Contact.query.order_by(Contact.id.asc()).all()

        enqueued = 0
        while index < len(contacts) and enqueued < batch_size:
            contact = contacts[index]
            index += 1
            cid = (contact.contact_id or "").strip()
            rn = (contact.people_rn or "").strip()
            if not cid or not rn:
                continue
            queue.enqueue(cid, rn, "", LinkOnlyChange(local_id=cid, remote_id=rn))
            enqueued += 1

        SyncState.set_value(CURSOR_KEY, index)
        db.session.commit()

        logger.info("Link backfill batch queued", enqueued=enqueued, next_index=index, total=len(contacts))
        return {
            "enqueued": enqueued,
            "next_index": index,
            "done": index >= len(contacts),
            "pending": queue.count_pending(),
        }

    @staticmethod
    def reset():
        SyncState.delete_value(CURSOR_KEY)
        db.session.commit()
        logger.info("Link backfill cursor reset")
        return {"ok": True}
