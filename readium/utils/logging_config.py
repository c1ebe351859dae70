"""structlog on top of stdlib logging.

Both structlog loggers and plain ``logging`` loggers (Flask, werkzeug,
requests) end up in the same handler and are rendered as one JSON object
per line, or as console output with ``LOG_FORMAT=plain``.
"""

import logging
import logging.handlers
import os
import sys
from typing import Any, Dict

import structlog

_LOGGING_INITIALISED = False

REQUIRED_EVENT_FIELDS = ("event", "correlation_id", "path")

_HTTP_EVENTS = frozenset({"http.request", "http.response"})

DEV_LOG_MAX_BYTES = 5 * 1024 * 1024


def _inject_event_defaults(
    _: logging.Logger, __: str, event_dict: Dict[str, Any]
) -> Dict[str, Any]:
    """Copy the request context onto the event and fill the required keys."""
    context = structlog.contextvars.get_contextvars()
    for key in ("correlation_id", "path"):
        if key not in event_dict and key in context:
            event_dict[key] = context[key]

    if "event" not in event_dict:
        event_dict["event"] = event_dict.get("message") or event_dict.get("logger", "log.event")

    for key in REQUIRED_EVENT_FIELDS:
        event_dict.setdefault(key, None)
    return event_dict


def _downgrade_http_events(
    _: logging.Logger, __: str, event_dict: Dict[str, Any]
) -> Dict[str, Any]:
    # Per-request access lines only show up at DEBUG.
    if event_dict.get("event") in _HTTP_EVENTS and event_dict.get("level") == "info":
        event_dict["level"] = "debug"
    return event_dict


def _shared_processors() -> list:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.ExtraAdder(),
        structlog.processors.TimeStamper(fmt="iso"),
        _inject_event_defaults,
        _downgrade_http_events,
        structlog.processors.format_exc_info,
    ]


def _renderer(log_format: str):
    if log_format == "plain":
        return structlog.dev.ConsoleRenderer(colors=True)
    return structlog.processors.JSONRenderer()


def _dev_file_handler(formatter: logging.Formatter) -> logging.Handler:
    log_dir = os.path.join(os.path.dirname(__file__), "..", "..", "instance")
    os.makedirs(log_dir, exist_ok=True)
    handler = logging.handlers.RotatingFileHandler(
        os.path.join(log_dir, "development.log"), maxBytes=DEV_LOG_MAX_BYTES, backupCount=5
    )
    handler.setFormatter(formatter)
    return handler


def setup_logging(force: bool = False, *, level: str | None = None, log_format: str | None = None):
    """Install the stdout handler once per process.

    ``level`` and ``log_format`` default to ``LOG_LEVEL`` / ``LOG_FORMAT``
    from the environment. Pass ``force=True`` to reconfigure.
    """
    global _LOGGING_INITIALISED
    if _LOGGING_INITIALISED and not force:
        return

    log_level = (level or os.getenv("LOG_LEVEL", "INFO")).upper()
    log_format = (log_format or os.getenv("LOG_FORMAT", "json")).strip().lower()
    if log_format not in {"json", "plain"}:
        log_format = "json"

    shared = _shared_processors()
    formatter = structlog.stdlib.ProcessorFormatter(
        processor=_renderer(log_format), foreign_pre_chain=shared, fmt="%(message)s"
    )
    structlog.configure(
        processors=[*shared, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if os.getenv("ENV") == "development":
        root_logger.addHandler(_dev_file_handler(formatter))

    logging.getLogger("urllib3").setLevel(logging.WARNING)

    _LOGGING_INITIALISED = True
