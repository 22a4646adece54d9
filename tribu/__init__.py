import os
import atexit

from flask import Flask, jsonify
from flask_cors import CORS
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.executors.pool import ThreadPoolExecutor

from tribu.logging_config import configure_logging, get_logger
from tribu.models import db

logger = get_logger(__name__)


def run_scheduled_tick(app):
    """Scheduler job: one outbox tick inside an app context."""
    from tribu.services.sync_service import SyncService

    with app.app_context():
        try:
            SyncService.run_tick()
        finally:
            db.session.remove()


def init_scheduler(app):
    """Start the periodic outbox tick."""

    # --- Prevent scheduler duplication in multi-worker environments ---
    # Only run the scheduler on one instance
    if os.environ.get("WERKZEUG_RUN_MAIN") != "true" and not os.environ.get("IS_SYNC_SCHEDULER"):
        logger.info("Skipping scheduler startup on this worker")
        return None

    interval = int(app.config.get("SYNC_INTERVAL_MINUTES", 5))

    # Ticks serialize on the tick lock anyway; one executor thread is enough
    executors = {"default": ThreadPoolExecutor(1)}
    scheduler = BackgroundScheduler(executors=executors)

    scheduler.add_job(
        func=run_scheduled_tick,
        args=[app],
        trigger="interval",
        minutes=interval,
        id="outbox_tick",
        max_instances=1,
        coalesce=True,
        replace_existing=True,
    )

    scheduler.start()
    atexit.register(lambda: scheduler.shutdown(wait=False))

    logger.info(f"Scheduler started (outbox tick every {interval} min)")
    return scheduler


def create_app(config_object=None):
    """
    Build the Flask app.

    Args:
        config_object: optional config class overriding the environment-selected one
    """
    from tribu.config import get_config
    from tribu.db_config import configure_database

    config_class = config_object or get_config()

    app = Flask(__name__)
    app.config.from_object(config_class)

    configure_logging(log_level=app.config.get("LOG_LEVEL", "INFO"), log_file=app.config.get("LOG_FILE"))
    configure_database(app)

    logger.info(f"Starting application in {app.config.get('ENV', 'local')} environment")

    allowed_origins = app.config.get("CORS_ORIGINS", "*")
    if allowed_origins != "*":
        allowed_origins = [origin.strip() for origin in allowed_origins.split(",")]
    CORS(app, resources={r"/api/*": {"origins": allowed_origins}}, supports_credentials=True)

    db.init_app(app)
    with app.app_context():
        db.create_all()

    from tribu.api import api_bp
    app.register_blueprint(api_bp, url_prefix="/api")

    @app.route("/health", methods=["GET"])
    def health():
        return jsonify({"status": "ok"}), 200

    @app.errorhandler(Exception)
    def handle_exception(e):
        from werkzeug.exceptions import HTTPException

        if isinstance(e, HTTPException):
            return jsonify({"error": e.description}), e.code
        logger.error("Unhandled exception", error=str(e), exc_info=True)
        return jsonify({"error": str(e)}), 500

    if not app.config.get("TESTING"):
        try:
            init_scheduler(app)
        except Exception as e:
            logger.error("Failed to start scheduler", error=str(e))

    return app
