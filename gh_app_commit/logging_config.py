"""Structured logging for gh-app-commit runs.

``configure_logging`` routes structlog through the stdlib root logger on
stderr, leaving stdout for the pushed commit SHA.  Workflow runs get JSON
lines, local runs the console renderer.

Every event passes through ``redact_secrets`` before rendering: credential
keys are masked outright, and GitHub tokens or JWTs inside string values
(rendered tracebacks included) are replaced.
"""

from __future__ import annotations

import logging
import re
import sys
from typing import Any

import structlog

REDACTED = "[REDACTED]"

_SECRET_KEYS = frozenset({"token", "authorization", "private_key", "app_jwt", "assertion"})
# ghs_/ghp_/gho_/ghu_/ghr_ tokens and three-part base64url JWTs.
_SECRET_PATTERN = re.compile(
    r"\bgh[pousr]_[A-Za-z0-9]{20,}\b|\beyJ[A-Za-z0-9_-]+\.[A-Za-z0-9_-]+\.[A-Za-z0-9_-]+"
)


def redact_secrets(_logger: Any, _method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    """structlog processor masking credentials in an event."""
    for key, value in event_dict.items():
        if key.lower() in _SECRET_KEYS:
            event_dict[key] = REDACTED
        elif isinstance(value, str):
            event_dict[key] = _SECRET_PATTERN.sub(REDACTED, value)
    return event_dict


def configure_logging(*, json_logs: bool = True, log_level: str = "INFO") -> None:
    """Configure structlog and the stdlib root logger.

    Args:
        json_logs: Render JSON lines when *True*, console output otherwise.
        log_level: Root log level name (e.g. ``"INFO"``, ``"DEBUG"``).  Unless it is
            ``DEBUG``, httpx's per-request lines are suppressed.
    """
    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        redact_secrets,
    ]

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    renderer: structlog.types.Processor = (
        structlog.processors.JSONRenderer() if json_logs else structlog.dev.ConsoleRenderer()
    )

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            # Records from plain stdlib loggers (httpx) get the same treatment.
            foreign_pre_chain=shared_processors,
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                renderer,
            ],
        )
    )

    level = log_level.upper()
    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(level)

    logging.getLogger("httpx").setLevel(logging.DEBUG if level == "DEBUG" else logging.WARNING)
