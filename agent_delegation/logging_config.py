"""
Structured logging for assembly and redemption runs.

JSON lines by default, colored console output at DEBUG. Logs go to stderr
so command output on stdout stays machine-readable. Session key material
never reaches a log line: ``redact_secrets`` masks known secret fields.
"""

import logging
import sys
from typing import Any, Optional, TextIO

import structlog

REDACTED = "[redacted]"
SECRET_FIELDS = frozenset({"private_key", "privateKey", "owner_key", "session_private_key"})


def redact_secrets(_logger: Any, _method: str, event_dict: structlog.types.EventDict) -> structlog.types.EventDict:
    for name in SECRET_FIELDS.intersection(event_dict):
        event_dict[name] = REDACTED
    return event_dict


def bind_log_context(**values: Any) -> None:
    """Attach values such as ``chain_id`` or ``agent_id`` to every later log line."""
    structlog.contextvars.bind_contextvars(**{k: v for k, v in values.items() if v is not None})


def setup_logging(
    log_level: Optional[str] = None,
    *,
    json_logs: Optional[bool] = None,
    stream: Optional[TextIO] = None,
) -> None:
    """Configure structlog and route stdlib logging through it.

    Args:
        log_level: Level name (default: ``Settings().log_level``)
        json_logs: Force JSON (True) or console (False) rendering; by default
            only DEBUG uses the console renderer
        stream: Output stream (default: stderr)
    """
    if log_level is None:
        from .config import Settings

        log_level = Settings().log_level

    level = getattr(logging, log_level.upper(), logging.INFO)
    if json_logs is None:
        json_logs = level != logging.DEBUG

    structlog.contextvars.clear_contextvars()

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        redact_secrets,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    if json_logs:
        shared_processors.append(structlog.processors.format_exc_info)
        renderer: structlog.types.Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared_processors,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    )

    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    # httpx logs every request at INFO
    for name in ("httpcore", "httpx"):
        logging.getLogger(name).setLevel(logging.WARNING)
