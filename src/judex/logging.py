"""Structured logging configuration for judex.

Production emits one JSON object per line; development gets a compact
text format. Every record carries the current request ID (or ``-``
outside a request) so extraction logs can be joined with access logs.
"""

import json
import logging
import sys
from contextvars import ContextVar, Token
from datetime import datetime, timezone
from typing import Any

from .config import get_settings

# Attributes present on every LogRecord; anything else arrived via ``extra``
_STANDARD_ATTRS = set(vars(logging.LogRecord("", 0, "", 0, "", (), None))) | {
    "message",
    "asctime",
    "request_id",
}

_NOISY_LOGGERS = ("httpx", "httpcore", "openai", "uvicorn.access")

_request_id: ContextVar[str | None] = ContextVar("judex_request_id", default=None)


def bind_request_id(request_id: str | None) -> Token:
    """Attach a request ID to the current context; pass the token to reset."""
    return _request_id.set(request_id)


def reset_request_id(token: Token) -> None:
    _request_id.reset(token)


def current_request_id() -> str | None:
    return _request_id.get()


class RequestContextFilter(logging.Filter):
    """Stamps ``request_id`` onto every record passing the handler."""

    def filter(self, record: logging.LogRecord) -> bool:
        if not getattr(record, "request_id", None):
            record.request_id = _request_id.get() or "-"
        return True


class JSONFormatter(logging.Formatter):
    """One JSON object per record, with ``extra`` fields flattened in."""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
            "request_id": getattr(record, "request_id", "-"),
            "where": f"{record.module}:{record.lineno}",
        }
        entry.update(
            (key, value)
            for key, value in record.__dict__.items()
            if key not in _STANDARD_ATTRS and not key.startswith("_")
        )
        if record.exc_info:
            entry["exc"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str, ensure_ascii=False)


class TextFormatter(logging.Formatter):
    """Compact single-line format for local development."""

    def __init__(self):
        super().__init__(
            fmt="%(asctime)s %(levelname)-7s [%(request_id)s] %(name)s: %(message)s",
            datefmt="%H:%M:%S",
        )


def setup_logging(level: str | None = None, fmt: str | None = None) -> None:
    """Install the root handler.

    Args:
        level: Log level name; defaults to ``settings.log_level``
        fmt: ``json`` or ``text``; defaults to ``settings.log_format``
    """
    settings = get_settings()
    level = (level or settings.log_level).upper()
    fmt = fmt or settings.log_format

    handler = logging.StreamHandler(sys.stdout)
    handler.addFilter(RequestContextFilter())
    handler.setFormatter(JSONFormatter() if fmt == "json" else TextFormatter())

    root = logging.getLogger()
    root.setLevel(getattr(logging, level, logging.INFO))
    root.handlers = [handler]

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    logging.getLogger(__name__).info(
        "Logging ready",
        extra={"environment": settings.environment, "log_level": level, "log_format": fmt},
    )


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


class ContextLogger(logging.LoggerAdapter):
    """Adapter that merges fixed context into each record's ``extra``.

    Per-call ``extra`` keys win over the bound context.
    """

    def process(
        self, msg: str, kwargs: dict[str, Any]
    ) -> tuple[str, dict[str, Any]]:
        kwargs["extra"] = {**self.extra, **kwargs.get("extra", {})}
        return msg, kwargs


def get_context_logger(name: str, **context: Any) -> ContextLogger:
    """Get a logger that tags every record with ``context``.

    Usage:
        log = get_context_logger(__name__, text_chars=len(text))
        log.info("Extraction started")
    """
    return ContextLogger(get_logger(name), context)


# =============================================================================
# Event helpers
# =============================================================================


def _log_event(
    logger_name: str, level: int, event: str, message: str, **fields: Any
) -> None:
    get_logger(logger_name).log(level, message, extra={"event": event, **fields})


def log_extraction_complete(
    source: str,
    element_count: int,
    conflict_count: int,
    confidence: float,
    duration_ms: float,
) -> None:
    _log_event(
        "judex.extraction",
        logging.INFO,
        "extraction_complete",
        f"Extracted {element_count} elements ({source}, {conflict_count} conflicts)",
        source=source,
        element_count=element_count,
        conflict_count=conflict_count,
        confidence=confidence,
        duration_ms=duration_ms,
    )


def log_ai_fallback(reason: str, detail: str | None = None) -> None:
    """Record that the AI branch was dropped and rule output stands alone.

    Args:
        reason: Failure reason code (timeout, invalid_json, ...)
        detail: Optional human-readable detail
    """
    _log_event(
        "judex.extraction",
        logging.WARNING,
        "ai_fallback",
        f"AI extraction unavailable ({reason}), using rule output only",
        reason=reason,
        detail=detail,
    )


def log_merge_conflict(key: str, fields: list[str], resolution: str) -> None:
    _log_event(
        "judex.merge",
        logging.DEBUG,
        "merge_conflict",
        f"Rule and AI disagree on {key} ({', '.join(fields)}): {resolution}",
        key=key,
        fields=fields,
        resolution=resolution,
    )


def log_api_request(
    method: str, path: str, status_code: int, duration_ms: float
) -> None:
    """Access log line for one API request; the request ID comes from context."""
    _log_event(
        "judex.api",
        logging.INFO,
        "api_request",
        f"{method} {path} -> {status_code} in {duration_ms:.0f}ms",
        method=method,
        path=path,
        status_code=status_code,
        duration_ms=duration_ms,
    )
