#  Project Scaffolder - Logging Configuration
#
#  Configures structured logging with JSON or text format.
#  Provides context variables for request_id / project_id propagation and
#  the request metadata (client IP, user agent) the audit trail records.
#
#  Depends on: (none)
#  Used by:    run.py, app.py, services/audit.py, services/generation.py, services/deployment.py

import contextvars
import json
import logging
import sys
import time

# Context variables for request/project tracing
request_id_var: contextvars.ContextVar[str | None] = contextvars.ContextVar("request_id", default=None)
project_id_var: contextvars.ContextVar[str | None] = contextvars.ContextVar("project_id", default=None)
client_ip_var: contextvars.ContextVar[str | None] = contextvars.ContextVar("client_ip", default=None)
user_agent_var: contextvars.ContextVar[str | None] = contextvars.ContextVar("user_agent", default=None)


def set_request_id(rid: str | None):
    request_id_var.set(rid)


def set_project_id(pid: str | None):
    project_id_var.set(pid)


def set_request_meta(client_ip: str | None, user_agent: str | None):
    client_ip_var.set(client_ip)
    user_agent_var.set(user_agent)


def get_request_meta() -> dict:
    """Snapshot of request metadata for audit entries."""
    return {
        "ip_address": client_ip_var.get(None) or "unknown",
        "user_agent": user_agent_var.get(None),
        "request_id": request_id_var.get(None),
    }


class JSONFormatter(logging.Formatter):
    """Emit log records as single-line JSON with context variables."""

    converter = time.gmtime

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": self.formatTime(record, "%Y-%m-%dT%H:%M:%S") + f".{int(record.msecs):03d}Z",
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        # Inject context vars when present
        rid = request_id_var.get(None)
        if rid:
            entry["request_id"] = rid
        pid = project_id_var.get(None)
        if pid:
            entry["project_id"] = pid
        # Include exception info if present
        if record.exc_info and record.exc_info[0] is not None:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


_TEXT_FORMAT = "%(asctime)s [%(name)s] %(levelname)s: %(message)s"


def setup_logging(level: str = "INFO", fmt: str = "json"):
    """Configure structured logging for the scaffolder.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR).
        fmt: Log format — "json" for structured output, "text" for human-readable.
    """
    root = logging.getLogger("scaffolder")
    root.setLevel(getattr(logging, level.upper(), logging.INFO))

    if not root.handlers:
        handler = logging.StreamHandler(sys.stdout)
        if fmt == "json":
            handler.setFormatter(JSONFormatter())
        else:
            handler.setFormatter(logging.Formatter(_TEXT_FORMAT, datefmt="%H:%M:%S"))
        root.addHandler(handler)

    # Quiet noisy libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
