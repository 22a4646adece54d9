import logging
import logging.config
import structlog
import uuid
from typing import Optional
import sys
import os

from tribu.datetime_utils import utcnow

# Chatty third-party loggers; the scheduler logs every interval run at INFO
QUIET_LOGGERS = ("apscheduler", "urllib3", "werkzeug")


def _build_log_config(log_level: str, log_file: Optional[str]) -> dict:
    handlers = ["console"]
    config = {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "detailed": {
                "format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
            },
            "json": {
                "()": "structlog.stdlib.ProcessorFormatter",
                "processor": structlog.processors.JSONRenderer()
            }
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "level": log_level,
                "formatter": "detailed",
                "stream": sys.stdout
            }
        },
        "loggers": {},
    }

    if log_file:
        log_dir = os.path.dirname(log_file)
        if log_dir:
            os.makedirs(log_dir, exist_ok=True)
        config["handlers"]["file"] = {
            "class": "logging.handlers.RotatingFileHandler",
            "level": log_level,
            "formatter": "json",
            "filename": log_file,
            "maxBytes": 10485760,  # 10MB
            "backupCount": 5
        }
        handlers.append("file")

    config["loggers"][""] = {"level": log_level, "handlers": list(handlers), "propagate": False}
    config["loggers"]["tribu"] = {"level": log_level, "handlers": list(handlers), "propagate": False}
    for name in QUIET_LOGGERS:
        config["loggers"][name] = {"level": "WARNING"}
    return config


def configure_logging(log_level: str = "INFO", log_file: Optional[str] = None):
    """
    Configure structured logging for the application.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        log_file: Optional log file path. If None, logs to stdout only.
    """
    log_level = (log_level or "INFO").upper()

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.processors.JSONRenderer(ensure_ascii=False)
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    logging.config.dictConfig(_build_log_config(log_level, log_file))

    logger = structlog.get_logger("tribu")
    logger.info("Logging configured", level=log_level, file=log_file)
    return logger


def get_logger(name: str) -> structlog.BoundLogger:
    """Get a structured logger instance."""
    return structlog.get_logger(name)


def outbox_log_fields(entry) -> dict:
    """Structured keys identifying one outbox entry in log lines."""
    status = getattr(entry, "status", None)
    return {
        "outbox_id": getattr(entry, "id", None),
        "local_id": getattr(entry, "local_id", None),
        "remote_id": getattr(entry, "remote_id", None),
        "status": getattr(status, "value", status),
        "attempts": getattr(entry, "attempts", None),
    }


class SyncContext:
    """
    Brackets one sync operation (an outbox tick) in start/finish log lines
    sharing an operation id. Fields added with update() are logged on exit.
    """

    def __init__(self, operation_type: str, operation_id: Optional[str] = None):
        self.operation_type = operation_type
        self.operation_id = operation_id or str(uuid.uuid4())[:8]
        self.logger = get_logger("tribu.sync").bind(operation_type=operation_type, operation_id=self.operation_id)
        self.start_time = None
        self.fields = {}

    def update(self, **fields):
        self.fields.update(fields)

    @property
    def elapsed_seconds(self) -> float:
        if self.start_time is None:
            return 0.0
        return (utcnow() - self.start_time).total_seconds()

    def __enter__(self):
        self.start_time = utcnow()
        self.logger.info("Sync operation started", start_time=self.start_time.isoformat())
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if exc_type is None:
            self.logger.info(
                "Sync operation completed",
                duration_seconds=self.elapsed_seconds,
                status="success",
                **self.fields
            )
        else:
            self.logger.error(
                "Sync operation failed",
                duration_seconds=self.elapsed_seconds,
                status="error",
                error_type=exc_type.__name__,
                error_message=str(exc_val),
                **self.fields
            )
        return False
