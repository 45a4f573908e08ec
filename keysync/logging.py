"""Structured logging for reconciliation passes.

Every log line emitted inside ``reconcile_context()`` carries the pass ID and
the family being reconciled, so one pass can be followed across families in
aggregated logs. Keyword arguments to logger calls become structured fields;
secret-looking fields are masked before they are formatted.

Usage:
    from keysync.logging import get_logger, reconcile_context

    logger = get_logger(__name__)

    with reconcile_context(family="awskms"):
        logger.info("Writing managed key", name="key-1")
"""

import json
import logging
import sys
import time
import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
from functools import wraps
from typing import Any, Callable, Iterator

reconcile_id_var: ContextVar[str | None] = ContextVar("reconcile_id", default=None)
family_var: ContextVar[str | None] = ContextVar("family", default=None)

# Substrings of field names whose values never reach a log line
SENSITIVE_FIELDS = {
    "pin", "secret", "token", "credential", "authorization",
    "access_key", "secret_key", "client_secret", "key_id",
}

_REDACTED = "[REDACTED]"


def _is_sensitive(key: str) -> bool:
    lowered = key.lower()
    return any(marker in lowered for marker in SENSITIVE_FIELDS)


def _mask_value(value: Any) -> str:
    # Long secrets keep a short prefix and suffix so they can be told apart
    if isinstance(value, str) and len(value) > 8:
        return f"{value[:4]}...{value[-4:]}"
    return _REDACTED


def mask_sensitive(data: dict[str, Any]) -> dict[str, Any]:
    """Copy of ``data`` with sensitive values masked, nested mappings included."""
    masked: dict[str, Any] = {}
    for key, value in data.items():
        if _is_sensitive(key):
            masked[key] = _mask_value(value)
        elif isinstance(value, dict):
            masked[key] = mask_sensitive(value)
        elif isinstance(value, list):
            masked[key] = [mask_sensitive(v) if isinstance(v, dict) else v for v in value]
        else:
            masked[key] = value
    return masked


def _pass_fields() -> dict[str, str]:
    fields = {}
    reconcile_id = reconcile_id_var.get()
    if reconcile_id:
        fields["reconcile_id"] = reconcile_id
    family = family_var.get()
    if family:
        fields["family"] = family
    return fields


def _record_fields(record: logging.LogRecord) -> dict[str, Any]:
    return mask_sensitive(getattr(record, "extra_fields", None) or {})


class StructuredFormatter(logging.Formatter):
    """One JSON object per line, for log aggregation."""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        entry.update(_pass_fields())
        entry.update(_record_fields(record))
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


class HumanFormatter(logging.Formatter):
    """Colored single-line output for terminals."""

    LEVEL_COLORS = {
        logging.DEBUG: "\033[36m",
        logging.INFO: "\033[32m",
        logging.WARNING: "\033[33m",
        logging.ERROR: "\033[31m",
        logging.CRITICAL: "\033[35m",
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        color = self.LEVEL_COLORS.get(record.levelno, "")
        clock = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")

        tags = []
        context = _pass_fields()
        if "reconcile_id" in context:
            tags.append(f"pass={context['reconcile_id'][:8]}")
        if "family" in context:
            tags.append(f"family={context['family']}")

        parts = [f"{color}{clock} {record.levelname:<7}{self.RESET}", f"{record.name}:"]
        if tags:
            parts.append(f"[{' '.join(tags)}]")
        parts.append(record.getMessage())

        fields = _record_fields(record)
        if fields:
            parts.append(" ".join(f"{k}={v}" for k, v in fields.items()))

        line = " ".join(parts)
        if record.exc_info:
            line = f"{line}\n{self.formatException(record.exc_info)}"
        return line


class StructuredLogger(logging.Logger):
    """Logger whose keyword arguments become structured fields.

    ``logger.info("Wrote key", name="k")`` attaches ``{"name": "k"}`` to the
    record as ``extra_fields``. The stdlib keywords (``exc_info``,
    ``stack_info``, ``stacklevel``, ``extra``) keep their usual meaning.
    """

    _STDLIB_KEYWORDS = ("exc_info", "stack_info", "stacklevel", "extra")

    def _log(self, level, msg, args, **kwargs):
        passthrough = {k: kwargs.pop(k) for k in self._STDLIB_KEYWORDS if k in kwargs}
        if kwargs:
            extra = dict(passthrough.get("extra") or {})
            extra["extra_fields"] = kwargs
            passthrough["extra"] = extra
        # Skip this frame so records point at the caller
        passthrough["stacklevel"] = passthrough.get("stacklevel", 1) + 1
        super()._log(level, msg, args, **passthrough)


def get_logger(name: str) -> StructuredLogger:
    """Get a structured logger for a module."""
    previous = logging.getLoggerClass()
    logging.setLoggerClass(StructuredLogger)
    try:
        return logging.getLogger(name)
    finally:
        logging.setLoggerClass(previous)


def setup_logging(json_output: bool = False, level: str = "INFO"):
    """Route all logging to stderr.

    Args:
        json_output: Emit JSON lines instead of human-readable output
        level: Root logging level (DEBUG, INFO, WARNING, ERROR)
    """
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(StructuredFormatter() if json_output else HumanFormatter())

    root = logging.getLogger()
    root.handlers[:] = [handler]
    root.setLevel(level.upper())

    # requests logs every connection at DEBUG
    logging.getLogger("urllib3").setLevel(logging.WARNING)


@contextmanager
def reconcile_context(
    family: str | None = None,
    reconcile_id: str | None = None,
) -> Iterator[str]:
    """Tag every log line inside the block with a pass ID and family.

    An existing pass ID is reused so nested families share one ID.
    """
    pass_id = reconcile_id or reconcile_id_var.get() or str(uuid.uuid4())
    id_token = reconcile_id_var.set(pass_id)
    family_token = family_var.set(family) if family else None
    try:
        yield pass_id
    finally:
        if family_token is not None:
            family_var.reset(family_token)
        reconcile_id_var.reset(id_token)


def log_operation(operation: str):
    """Log completion or failure of the wrapped call with its duration."""
    def decorator(func: Callable):
        logger = get_logger(func.__module__)

        @wraps(func)
        def wrapper(*args, **kwargs):
            start = time.monotonic()
            try:
                result = func(*args, **kwargs)
            except Exception as e:
                logger.error(
                    f"{operation} failed",
                    operation=operation,
                    error=str(e),
                    duration_ms=round((time.monotonic() - start) * 1000, 2),
                )
                raise
            logger.info(
                f"{operation} completed",
                operation=operation,
                duration_ms=round((time.monotonic() - start) * 1000, 2),
            )
            return result

        return wrapper

    return decorator
