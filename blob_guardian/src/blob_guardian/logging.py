"""Structured logging for Blob Guardian.

Records are JSON lines on stderr carrying ``ts``, ``level``, ``msg`` and
``component``. Binary values (data keys, plaintext, ciphertext) never reach a
record: they are replaced by their length before rendering.
"""
from __future__ import annotations

import logging
import sys
from typing import Any, MutableMapping

import structlog

_PACKAGE = "blob_guardian"
_LEVELS = {
    "critical": logging.CRITICAL,
    "error": logging.ERROR,
    "warning": logging.WARNING,
    "info": logging.INFO,
    "debug": logging.DEBUG,
}

EventDict = MutableMapping[str, Any]


def configure_logging(level: str | None = None) -> None:
    numeric_level = _LEVELS.get((level or "info").lower(), logging.INFO)
    logging.basicConfig(
        level=numeric_level,
        handlers=[logging.StreamHandler(sys.stderr)],
        format="%(message)s",
        force=True,
    )
    structlog.configure(
        processors=[
            structlog.processors.TimeStamper(fmt="iso", key="ts"),
            structlog.stdlib.add_log_level,
            add_component,
            redact_binary_values,
            structlog.processors.format_exc_info,
            structlog.processors.EventRenamer("msg"),
            structlog.processors.JSONRenderer(),
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.make_filtering_bound_logger(numeric_level),
        cache_logger_on_first_use=True,
    )


def add_component(logger: Any, _method: str, event_dict: EventDict) -> EventDict:
    """Set ``component`` from the module logger name, e.g. ``crypto.kms``."""
    if "component" not in event_dict:
        name = getattr(logger, "name", None) or _PACKAGE
        if name.startswith(_PACKAGE + "."):
            name = name[len(_PACKAGE) + 1:]
        event_dict["component"] = name
    return event_dict


def redact_binary_values(_logger: Any, _method: str, event_dict: EventDict) -> EventDict:
    for key, value in event_dict.items():
        if isinstance(value, (bytes, bytearray, memoryview)):
            event_dict[key] = f"<{len(value)} bytes redacted>"
    return event_dict


__all__ = ["add_component", "configure_logging", "redact_binary_values"]
