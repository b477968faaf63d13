"""
Structured logging configuration using structlog.

Production emits one JSON object per line; other environments use the
colored console renderer. Plans and credentials travel through log events
as nested dicts, so every event passes through a redaction processor first.
"""
import logging
import sys
from typing import Any, Optional

import structlog
from structlog.types import EventDict, Processor

from atlas_broker.config.settings import settings

REDACTED = "[redacted]"

# Matched case-insensitively against keys at any nesting depth
SENSITIVE_KEYS = frozenset({"password", "privatekey", "private_key", "authorization"})

# Libraries whose debug output would include Atlas request bodies
QUIET_LOGGERS = ("httpx", "httpcore", "pymongo", "uvicorn.access")


def _redact(value: Any) -> Any:
    if isinstance(value, dict):
        return {
            k: REDACTED if str(k).lower() in SENSITIVE_KEYS and v else _redact(v)
            for k, v in value.items()
        }
    if isinstance(value, list):
        return [_redact(v) for v in value]
    if isinstance(value, tuple):
        return tuple(_redact(v) for v in value)
    return value


def redact_secrets(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    """Mask passwords and API keys anywhere in the event."""
    return _redact(event_dict)


def add_service_context(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    event_dict.setdefault("service", settings.app_name)
    event_dict.setdefault("environment", settings.environment)
    return event_dict


def configure_logging(level: Optional[str] = None, json_logs: Optional[bool] = None) -> None:
    """
    Configure structlog and the standard library root logger.

    Args:
        level: Log level name; defaults to ``settings.log_level``
        json_logs: Force JSON output; defaults to production mode
    """
    level = (level or settings.log_level).upper()
    if json_logs is None:
        json_logs = settings.is_production

    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        add_service_context,
        redact_secrets,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]
    processors.append(
        structlog.processors.JSONRenderer() if json_logs else structlog.dev.ConsoleRenderer()
    )

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level)
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(logging.WARNING, logging.getLevelName(level)))


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Logger for a module (pass ``__name__``)."""
    return structlog.get_logger(name)
