"""Structured logging for the event pipeline.

structlog is bridged to stdlib logging so uvicorn, httpx and SQLAlchemy
records share one format: JSON in production, ConsoleRenderer in debug.
Every entry carries the service name and, inside a request, the correlation
id. Credential material (API key secrets, Authorization headers, encryption
keys) is masked before rendering, wherever it is nested.
"""

import logging
import logging.config
from typing import Any

import structlog
from asgi_correlation_id.context import correlation_id

SERVICE_NAME = "workflow-events"

REDACTED = "***"

# Matched case-insensitively against dict keys at any depth
SENSITIVE_KEYS = frozenset({
    "authorization",
    "secret",
    "api_key_secret",
    "encrypted_secret",
    "credential_encryption_key",
    "auth_jwt_secret",
    "password",
    "token",
})


def add_correlation_id(logger, method, event_dict):
    """Inject correlation_id from asgi-correlation-id context into every log entry."""
    cid = correlation_id.get(None)
    if cid:
        event_dict["correlation_id"] = cid
    return event_dict


def add_service_name(logger, method, event_dict):
    event_dict.setdefault("service", SERVICE_NAME)
    return event_dict


def _redact(value: Any) -> Any:
    if isinstance(value, dict):
        return {
            key: REDACTED if isinstance(key, str) and key.lower() in SENSITIVE_KEYS else _redact(item)
            for key, item in value.items()
        }
    if isinstance(value, list):
        return [_redact(item) for item in value]
    return value


def redact_secrets(logger, method, event_dict):
    """Mask credential material so a stray ``secret=`` or header dump never reaches the output."""
    return _redact(event_dict)


def configure_structlog(log_level: str = "INFO", json_logs: bool = True) -> None:
    """Configure structlog with stdlib bridge.

    Call this before any other package imports; structlog caches the
    processor chain on first use.

    Args:
        log_level: Root log level ("DEBUG", "INFO", "WARNING", "ERROR")
        json_logs: True for JSON output (production), False for ConsoleRenderer (dev)
    """
    shared_processors = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        add_service_name,
        add_correlation_id,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        redact_secrets,
    ]

    renderer = structlog.processors.JSONRenderer() if json_logs else structlog.dev.ConsoleRenderer()

    logging.config.dictConfig({
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "structured": {
                "()": structlog.stdlib.ProcessorFormatter,
                "processors": [
                    structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                    renderer,
                ],
                "foreign_pre_chain": shared_processors,
            },
        },
        "handlers": {
            "default": {
                "class": "logging.StreamHandler",
                "formatter": "structured",
                "stream": "ext://sys.stdout",
            },
        },
        "root": {"handlers": ["default"], "level": log_level},
        "loggers": {
            "uvicorn.access": {"level": "WARNING"},
            "httpx": {"level": "WARNING"},
            # Router cycles poll every few seconds; per-event debug lines only in debug mode
            "workflow_events.router": {"level": log_level},
            "sqlalchemy.engine": {"level": "WARNING"},
        },
    })

    structlog.configure(
        processors=shared_processors + [
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
