from __future__ import annotations

import logging
import re
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Any

EMAIL_RE = re.compile(r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b")
GITHUB_TOKEN_RE = re.compile(r"\b(?:gh[pousr]_[A-Za-z0-9]{20,}|github_pat_[A-Za-z0-9_]{20,})\b")
SENSITIVE_KEYWORDS = {"token", "secret", "password", "api_key", "authorization", "recipients"}
REDACTED = "[REDACTED]"
NO_CORRELATION = "-"
_correlation_id_ctx: ContextVar[str | None] = ContextVar("correlation_id", default=None)


def redact_text(value: str) -> str:
    return GITHUB_TOKEN_RE.sub(REDACTED, EMAIL_RE.sub(REDACTED, value))


def sanitize_value(value: Any, key_hint: str | None = None) -> Any:
    if key_hint and any(keyword in key_hint.lower() for keyword in SENSITIVE_KEYWORDS):
        return REDACTED
    if isinstance(value, str):
        return redact_text(value)
    if isinstance(value, dict):
        return {key: sanitize_value(nested, key) for key, nested in value.items()}
    if isinstance(value, list | tuple):
        return [sanitize_value(item) for item in value]
    return value


def get_correlation_id() -> str | None:
    return _correlation_id_ctx.get()


@contextmanager
def correlation_scope(correlation_id: str) -> Iterator[str]:
    """Tag every log record emitted inside the block with ``correlation_id``."""
    token = _correlation_id_ctx.set(correlation_id)
    try:
        yield correlation_id
    finally:
        _correlation_id_ctx.reset(token)


class LogContextFilter(logging.Filter):
    """Redacts addresses and tokens from records and stamps the current correlation id."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.msg = redact_text(record.getMessage())
        record.args = None
        payload = getattr(record, "ops_payload", None)
        if payload is not None:
            record.ops_payload = sanitize_value(payload)
        if not getattr(record, "correlation_id", None):
            record.correlation_id = get_correlation_id() or NO_CORRELATION
        return True


def configure_log_context(logger: logging.Logger | None = None) -> None:
    """Attach a ``LogContextFilter`` to every handler of ``logger`` (the root logger by default)."""
    target = logger or logging.getLogger()
    for handler in target.handlers:
        if not any(isinstance(f, LogContextFilter) for f in handler.filters):
            handler.addFilter(LogContextFilter())
