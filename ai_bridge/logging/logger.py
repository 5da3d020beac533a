"""
Structured JSON logging for the bridge and its gateway.

Each log entry includes the service name and is written to stdout as one
JSON object per line. A redaction filter scrubs known credentials from
every record before it is formatted. Because that filter renders and
scrubs tracebacks up front, clearing ``exc_info``, JSONFormatter falls back
to the pre-rendered ``exc_text`` when a record has no live exception.
"""

from __future__ import annotations

import json
import logging
import os
import sys
from datetime import datetime, timezone
from typing import Any, Iterable

REDACTED = "[REDACTED]"

# Keys shorter than this are not worth masking (and would mangle unrelated text)
_MIN_SECRET_LENGTH = 8


class JSONFormatter(logging.Formatter):
    """Formats log records as single-line JSON objects."""

    def __init__(self, service_name: str) -> None:
        super().__init__()
        self._service = service_name

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "service": self._service,
            "logger": record.name,
            "message": record.getMessage(),
        }

        if record.exc_info and record.exc_info[1]:
            entry["exception"] = self.formatException(record.exc_info)
        elif record.exc_text:
            entry["exception"] = record.exc_text

        extra = getattr(record, "_extra", None)
        if extra:
            entry["extra"] = extra

        return json.dumps(entry, default=str)


class SecretRedactionFilter(logging.Filter):
    """
    Replaces every configured secret in a record with ``[REDACTED]``.

    The message is rendered eagerly so secrets passed as %-args are caught
    too; args are cleared afterwards.
    """

    def __init__(self, secrets: Iterable[str | None]) -> None:
        super().__init__()
        self._secrets = sorted(
            {s for s in secrets if s and len(s) >= _MIN_SECRET_LENGTH},
            key=len,
            reverse=True,
        )

    def redact(self, text: str) -> str:
        for secret in self._secrets:
            text = text.replace(secret, REDACTED)
        return text

    def filter(self, record: logging.LogRecord) -> bool:
        if not self._secrets:
            return True
        record.msg = self.redact(record.getMessage())
        record.args = None
        if record.exc_info and record.exc_info[1]:
            record.exc_text = self.redact(logging.Formatter().formatException(record.exc_info))
            record.exc_info = None
        extra = getattr(record, "_extra", None)
        if isinstance(extra, dict):
            record._extra = {
                k: self.redact(v) if isinstance(v, str) else v for k, v in extra.items()
            }
        return True


def secrets_from_env(environ: dict[str, str] | None = None) -> list[str]:
    """Every ``*_API_KEY`` value in the environment."""
    environ = os.environ if environ is None else environ
    return [v for k, v in environ.items() if k.endswith("_API_KEY") and v]


def setup_logging(
    service_name: str,
    secrets: Iterable[str | None] | None = None,
) -> logging.Logger:
    """
    Configure the root logger for a service with JSON output to stdout.

    Call once at service startup (in main.py or lifespan). ``secrets``
    defaults to every ``*_API_KEY`` variable in the environment.
    Returns the service-specific logger.
    """
    level_name = os.environ.get("LOG_LEVEL", "INFO").upper()
    level = getattr(logging, level_name, logging.INFO)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JSONFormatter(service_name))
    handler.addFilter(
        SecretRedactionFilter(secrets_from_env() if secrets is None else secrets)
    )

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    # Silence noisy third-party loggers
    for noisy in ("uvicorn.access", "httpx", "httpcore", "openai"):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    logger = logging.getLogger(service_name)
    logger.info("Logging initialized", extra={"_extra": {"level": level_name}})
    return logger
