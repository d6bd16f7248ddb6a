"""
Structured logging for the reward engine.

Every module calls get_logger(__name__) and logs a snake_case event with keyword context:
    logger.info("settlement_completed", day_id="2025-01-01", participants=3)

Rendered as one JSON object per line (LOG_FORMAT=json, default) or for the console.
Token amounts are wei and routinely exceed 2**53, so integers that large are rendered
as strings. Values under secret-looking keys never reach the output.

Depends only on the stdlib and structlog so any package module can import it.
"""

from __future__ import annotations

import logging
import os
import sys
from typing import Any

import structlog

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
LOG_LEVEL_VALUE = getattr(logging, LOG_LEVEL, logging.INFO)
LOG_FORMAT = os.getenv("LOG_FORMAT", "json").strip().lower()

MAX_SAFE_INT = 2 ** 53
REDACTED = "[redacted]"
SECRET_KEY_MARKERS = ("private_key", "secret", "authorization", "password")


def _stringify_wei(logger: Any, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    """Integers beyond the JSON-safe range become strings."""
    for key, value in event_dict.items():
        if isinstance(value, int) and not isinstance(value, bool) and abs(value) >= MAX_SAFE_INT:
            event_dict[key] = str(value)
    return event_dict


def _redact_secrets(logger: Any, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    for key in event_dict:
        if any(marker in key.lower() for marker in SECRET_KEY_MARKERS):
            event_dict[key] = REDACTED
    return event_dict


def _event_type(logger: Any, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    """structlog's 'event' is published as event_type."""
    if "event" in event_dict and "event_type" not in event_dict:
        event_dict["event_type"] = event_dict.pop("event")
    return event_dict


def configure_structlog() -> None:
    processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True, key="timestamp"),
        structlog.processors.format_exc_info,
        _redact_secrets,
        _stringify_wei,
    ]
    if LOG_FORMAT == "json":
        processors += [_event_type, structlog.processors.JSONRenderer()]
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty()))
    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(LOG_LEVEL_VALUE),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stdout),
        cache_logger_on_first_use=True,
    )


if not structlog.is_configured():
    configure_structlog()


def get_logger(name: str) -> structlog.BoundLogger:
    return structlog.get_logger(name).bind(logger=name)


def bind_wallet(user_id: str, wallet_address: str) -> structlog.BoundLogger:
    """Logger carrying the acting user on every event, for per-request handlers."""
    return get_logger("backend_time26.api").bind(user_id=user_id, wallet=wallet_address)
