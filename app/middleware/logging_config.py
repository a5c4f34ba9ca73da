"""
Logging setup shared by the web app and the Celery worker.

Two kinds of context ride on log records via ``extra=``:
    request   request_id, method, path, status, duration_ms  (timing middleware)
    job       job_id, queue, attempt                         (app.jobs.tasks)
plus tenant_id / project_id from either side.

Production writes one JSON object per line; development and testing get a
short coloured line with the context appended as ``key=value`` tags.
LOG_LEVEL overrides the level.
"""

import json
import logging
import os
import sys
from datetime import datetime, timezone

REQUEST_FIELDS = ("request_id", "method", "path", "status", "duration_ms")
JOB_FIELDS = ("job_id", "queue", "attempt")
SCOPE_FIELDS = ("tenant_id", "project_id")
CONTEXT_FIELDS = REQUEST_FIELDS + JOB_FIELDS + SCOPE_FIELDS

QUIET_LOGGERS = ("urllib3", "werkzeug", "sqlalchemy.engine", "openai", "celery", "kombu", "amqp")


def record_context(record: logging.LogRecord) -> dict:
    """Context fields set on *record*, skipping the ones left empty."""
    context = {}
    for key in CONTEXT_FIELDS:
        value = getattr(record, key, None)
        if value is not None and value != "":
            context[key] = value
    return context


class JSONFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        entry.update(record_context(record))
        if record.exc_info and record.exc_info[0] is not None:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False, default=str)


class ReadableFormatter(logging.Formatter):
    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    def __init__(self, use_color: bool = True):
        super().__init__()
        self.use_color = use_color

    def format(self, record: logging.LogRecord) -> str:
        context = record_context(record)
        duration = context.pop("duration_ms", None)
        # method/path/status already appear in the timing middleware's message
        for key in ("method", "path", "status"):
            context.pop(key, None)

        ts = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")
        level = f"{record.levelname:<8}"
        if self.use_color:
            level = f"{self.COLORS.get(record.levelname, '')}{level}{self.RESET}"
        line = f"{ts} {level} {record.name}: {record.getMessage()}"
        if duration is not None:
            line += f" [{duration:.0f}ms]"
        if context:
            line += " " + " ".join(f"{k}={v}" for k, v in context.items())
        if record.exc_info and record.exc_info[0] is not None:
            line += "\n" + self.formatException(record.exc_info)
        return line


def _install_root_handler(formatter: logging.Formatter, level: int) -> None:
    root = logging.getLogger()
    # Reconfiguring (tests, worker restarts) must not stack handlers
    root.handlers.clear()
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(formatter)
    root.addHandler(handler)
    root.setLevel(level)
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def _level(default: str) -> tuple[str, int]:
    name = os.getenv("LOG_LEVEL", default).upper()
    return name, getattr(logging, name, logging.INFO)


def configure_logging(app):
    """JSON in production, readable lines in development and testing."""
    is_testing = app.config.get("TESTING", False)
    is_prod = not app.config.get("DEBUG", False) and not is_testing

    level_name, level = _level("INFO" if is_prod else "DEBUG")
    formatter = JSONFormatter() if is_prod else ReadableFormatter(use_color=sys.stderr.isatty())
    _install_root_handler(formatter, level)
    app.logger.setLevel(level)

    if not is_testing:
        app.logger.info("Logging configured: level=%s format=%s", level_name, "json" if is_prod else "readable")


def configure_worker_logging(**_kwargs):
    """Celery ``setup_logging`` receiver; workers always log JSON."""
    _, level = _level("INFO")
    _install_root_handler(JSONFormatter(), level)
