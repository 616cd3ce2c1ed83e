"""
JSON log lines for the dashboard backend.

Two pieces of per-task context end up on every line:
- correlation_id: one per HTTP request, set by CorrelationIdMiddleware
- bound fields: set with bind_log_context() around one webhook event, so lines
  logged deep in the pipeline still say which event and carrier message they
  belong to

Phone numbers passed as the "phone" extra are masked before they are written.
"""
import json
import logging
import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Iterator, Optional

from smsdash.utils.phone import mask_phone

correlation_id_ctx: ContextVar[Optional[str]] = ContextVar("correlation_id", default=None)
_bound_fields: ContextVar[dict] = ContextVar("log_bound_fields", default={})

# Attributes taken from `extra=` or the bound context, in output order
EXTRA_FIELDS = (
    "user_id",
    "client_id",
    "phone",
    "event_type",
    "envelope_id",
    "carrier_message_id",
    "provider",
    "error_code",
)

_MASKED_FIELDS = frozenset({"phone"})

_NOISY_LOGGERS = ("uvicorn.access", "sqlalchemy.engine", "httpcore", "httpx", "aiosqlite")


def get_correlation_id() -> Optional[str]:
    return correlation_id_ctx.get()


def set_correlation_id(cid: str) -> None:
    correlation_id_ctx.set(cid)


def generate_correlation_id() -> str:
    """UUID4 hex, 32 chars."""
    return uuid.uuid4().hex


@contextmanager
def bind_log_context(**fields) -> Iterator[dict]:
    """
    Attach fields to every log line emitted in this task until the block exits.
    Nested binds layer on top of the outer ones. None values are skipped.
    """
    merged = {**_bound_fields.get(), **{k: v for k, v in fields.items() if v is not None}}
    token = _bound_fields.set(merged)
    try:
        yield merged
    finally:
        _bound_fields.reset(token)


def get_log_context() -> dict:
    return dict(_bound_fields.get())


class StructuredJsonFormatter(logging.Formatter):
    """
    One JSON object per record:
    {"timestamp", "level", "correlation_id", "module", "message", <extras>, "exception"?}

    A field passed with `extra=` wins over the same field bound by bind_log_context().
    """

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ"),
            "level": record.levelname,
            "correlation_id": get_correlation_id(),
            "module": record.name,
            "message": record.getMessage(),
        }

        bound = _bound_fields.get()
        for key in EXTRA_FIELDS:
            value = getattr(record, key, None)
            if value is None:
                value = bound.get(key)
            if value is None:
                continue
            entry[key] = mask_phone(str(value)) if key in _MASKED_FIELDS else value

        if record.exc_info and record.exc_info[0] is not None:
            entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(entry, default=str)


def configure_structured_logging(log_level: str = "INFO") -> None:
    """Install the JSON formatter on the root logger. Call once from create_app()."""
    level = getattr(logging, log_level.upper(), logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    stream_handler = logging.StreamHandler()
    stream_handler.setFormatter(StructuredJsonFormatter())
    root_logger.addHandler(stream_handler)

    for noisy in _NOISY_LOGGERS:
        logging.getLogger(noisy).setLevel(logging.WARNING)
