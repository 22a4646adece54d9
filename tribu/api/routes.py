"""
API routes for contact edits and the outbox sync.
"""
from flask import jsonify, request
from tribu.api import api_bp
from tribu.logging_config import get_logger
from tribu.people.api import PeopleAPIError
from tribu.people.client import get_people_client
from tribu.services.backfill_service import LinkBackfillService
from tribu.services.contact_service import ContactNotFoundError, ContactService, ContactValidationError
from tribu.services.sync_service import SyncService
from tribu.sync_lock import SyncLockBusy

logger = get_logger(__name__)


@api_bp.route("/sync/status", methods=["GET"])
def sync_status():
    return jsonify(SyncService.status()), 200


@api_bp.route("/sync/now", methods=["POST"])
def sync_now():
    """Run one outbox tick now (shares the scheduler's tick lock)."""
    try:
        report = SyncService.run_tick(get_people_client())
        body = SyncService.status()
        body["ran"] = not report.locked
        return jsonify(body), 200
    except Exception as e:
        logger.error("Error in /api/sync/now", error=str(e), exc_info=True)
        return jsonify({"error": str(e)}), 500


@api_bp.route("/sync/diagnostics", methods=["GET"])
def sync_diagnostics():
    return jsonify(SyncService.diagnostics()), 200


@api_bp.route("/contacts/<contact_id>", methods=["GET"])
def get_contact(contact_id):
    try:
        return jsonify(ContactService.get_lite(contact_id, people_client=get_people_client())), 200
    except ContactNotFoundError as e:
        return jsonify({"error": str(e)}), 404


@api_bp.route("/contacts/<contact_id>", methods=["POST"])
def save_contact(contact_id):
    """
    Save an edit to the ledger and queue it for Google Contacts.

    Body: {name, conf, emo, ene, est, rep, cadence, next_contact, baseline,
           dirty, fetched_at_ms}
    """
    data = request.get_json(silent=True) or {}
    try:
        result = ContactService.save(contact_id, data, people_client=get_people_client())
        return jsonify(result), 200
    except ContactValidationError as e:
        return jsonify({"ok": False, "error": str(e)}), 400
    except ContactNotFoundError as e:
        return jsonify({"ok": False, "error": str(e)}), 404
    except SyncLockBusy as e:
        return jsonify({"ok": False, "error": f"Another save is in progress: {e}"}), 409
    except PeopleAPIError as e:
        logger.error("People API error while saving contact", contact_id=contact_id, error=str(e))
        return jsonify({"ok": False, "error": str(e)}), 502
    except Exception as e:
        logger.error("Error in save_contact", contact_id=contact_id, error=str(e), exc_info=True)
        return jsonify({"ok": False, "error": str(e)}), 500


@api_bp.route("/backfill/link", methods=["POST"])
def backfill_link():
    data = request.get_json(silent=True) or {}
    try:
        batch_size = int(data.get("batch_size") or 200)
    except (TypeError, ValueError):
        return jsonify({"error": "batch_size must be an integer"}), 400
    return jsonify(LinkBackfillService.enqueue_batch(batch_size)), 200


@api_bp.route("/backfill/link/reset", methods=["POST"])
def backfill_link_reset():
    return jsonify(LinkBackfillService.reset()), 200
