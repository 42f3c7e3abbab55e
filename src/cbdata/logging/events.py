"""Event schema and module-level emit helpers.

All timestamps use UTC ISO-8601 with ``Z`` suffix.  The ``emit()``
family of functions is safe to call from any context -- failures are
swallowed and printed to stderr.
"""

from __future__ import annotations

import re
import sys
import time
import traceback
from datetime import datetime, timezone
from enum import Enum
from typing import Any
from urllib.parse import urlparse, urlunparse

from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class EventLevel(str, Enum):
    info = "info"
    warning = "warning"
    error = "error"


class EventType(str, Enum):
    # Formula evaluation
    eval_started = "eval_started"
    eval_completed = "eval_completed"
    eval_failed = "eval_failed"

    # Source connectors
    source_fetch = "source_fetch"
    source_fetch_failed = "source_fetch_failed"

    # Multi-formula retrieval
    batch_started = "batch_started"
    batch_completed = "batch_completed"


# ---------------------------------------------------------------------------
# Error codes
# ---------------------------------------------------------------------------

EXPRESSION_SYNTAX_ERROR = "expression_syntax_error"
UNKNOWN_FUNCTION = "unknown_function"
FUNCTION_ARITY = "function_arity"
EXPRESSION_TYPE_ERROR = "expression_type_error"
SOURCE_FETCH_FAILED = "source_fetch_failed"
EVAL_ERROR = "eval_error"


def error_code_for(exc: BaseException) -> str:
    """Map an evaluation exception to its event error code."""
    from cbdata.expressions.errors import (
        ExpressionSyntaxError,
        ExpressionTypeError,
        FunctionArityError,
        SourceFetchError,
        UnknownFunctionError,
    )

    for cls, code in (
        (ExpressionSyntaxError, EXPRESSION_SYNTAX_ERROR),
        (UnknownFunctionError, UNKNOWN_FUNCTION),
        (FunctionArityError, FUNCTION_ARITY),
        (ExpressionTypeError, EXPRESSION_TYPE_ERROR),
        (SourceFetchError, SOURCE_FETCH_FAILED),
    ):
        if isinstance(exc, cls):
            return code
    return EVAL_ERROR


# ---------------------------------------------------------------------------
# Secret redaction
# ---------------------------------------------------------------------------

_SENSITIVE_KEY_RE = re.compile(
    r"(password|passwd|secret|token|api_key|apikey|authorization|cookie"
    r"|session|bearer)",
    re.IGNORECASE,
)

_MAX_VALUE_LEN = 256


def redact_context(context: dict[str, Any]) -> dict[str, Any]:
    """Return a copy of *context* with sensitive values redacted.

    Rules:
    - Keys matching sensitive patterns have their values replaced with
      ``"[REDACTED]"``.
    - String values that look like URLs have query params stripped.
    - String values longer than 256 chars are truncated.
    """
    return _redact_dict(context)


def _redact_dict(d: dict[str, Any]) -> dict[str, Any]:
    out: dict[str, Any] = {}
    for k, v in d.items():
        if _SENSITIVE_KEY_RE.search(k):
            out[k] = "[REDACTED]"
        elif isinstance(v, dict):
            out[k] = _redact_dict(v)
        elif isinstance(v, (list, tuple)):
            out[k] = [_redact_value(item) for item in v]
        else:
            out[k] = _redact_value(v)
    return out


def _redact_value(v: Any) -> Any:
    if isinstance(v, dict):
        return _redact_dict(v)
    if isinstance(v, str):
        # FRED URLs carry api_key in the query string
        if "://" in v:
            parsed = urlparse(v)
            if parsed.scheme in ("http", "https", "file"):
                clean = urlunparse((
                    parsed.scheme,
                    parsed.hostname or "",
                    parsed.path,
                    "",
                    "",
                    "",
                ))
                return clean + "?[REDACTED]" if parsed.query else clean
        if len(v) > _MAX_VALUE_LEN:
            return v[:_MAX_VALUE_LEN] + "...[truncated]"
    return v


# ---------------------------------------------------------------------------
# Event model
# ---------------------------------------------------------------------------


def _utc_now() -> str:
    """Return current UTC timestamp in ISO-8601 with Z suffix."""
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ")


class CbdEvent(BaseModel):
    """A single structured log event."""

    schema_version: int = 1
    ts: str = Field(default_factory=_utc_now)
    level: EventLevel
    event_type: EventType
    context: dict[str, Any] = Field(default_factory=dict)
    message: str = ""
    error_code: str | None = None


# ---------------------------------------------------------------------------
# Module-level sink reference
# ---------------------------------------------------------------------------

# Set by ``set_project_dir``.
_sink: Any = None  # EventSink | None


def set_project_dir(project_dir: Any) -> None:
    """Configure the module-level event sink for a project directory.

    Call this early in a CLI command.  If it is never called, ``emit()``
    silently discards events.

    Reads ``logging_fsync`` and ``logging_tail_bytes`` from the project
    config (``cbdata.yaml``) to configure the sink.
    """
    global _sink
    from pathlib import Path

    from cbdata.config import load_config
    from cbdata.logging.sink import EventSink

    project_dir = Path(project_dir)

    cfg = load_config(project_dir)
    fsync = bool(cfg.get("logging_fsync", False))
    tb = cfg.get("logging_tail_bytes")
    tail_bytes = int(tb) if tb is not None else None

    _sink = EventSink(project_dir, fsync=fsync, tail_bytes=tail_bytes)


def reset_sink() -> None:
    """Detach the module-level sink; later events are discarded."""
    global _sink
    _sink = None


def _get_sink() -> Any:
    """Return the module-level sink, or None."""
    return _sink


# ---------------------------------------------------------------------------
# Rate-limited stderr warnings
# ---------------------------------------------------------------------------

_last_stderr_ts: float = 0.0
_STDERR_INTERVAL_SECS = 60.0


def _stderr_warning(msg: str) -> None:
    """Print a warning to stderr, rate-limited to one per 60 seconds."""
    global _last_stderr_ts
    now = time.monotonic()
    if now - _last_stderr_ts < _STDERR_INTERVAL_SECS:
        return
    _last_stderr_ts = now
    try:
        print(f"[cbdata] {msg}", file=sys.stderr)
    except Exception:
        pass


# ---------------------------------------------------------------------------
# Safe emit helpers
# ---------------------------------------------------------------------------


def emit(event: CbdEvent, *, batch_id: str | None = None) -> None:
    """Write an event to the global log and optionally to a per-batch log.

    **Never raises.**  On failure, prints a rate-limited warning to stderr.

    Applies secret redaction before writing.
    """
    try:
        sink = _get_sink()
        if sink is None:
            return
        event = event.model_copy(update={"context": redact_context(event.context)})
        sink.write(event, batch_id=batch_id)
    except Exception:
        _stderr_warning(f"logging failed: {traceback.format_exc()}")


def emit_info(
    event_type: EventType,
    message: str,
    context: dict[str, Any] | None = None,
    *,
    batch_id: str | None = None,
) -> None:
    """Convenience: emit an info-level event."""
    emit(
        CbdEvent(
            level=EventLevel.info,
            event_type=event_type,
            message=message,
            context=context or {},
        ),
        batch_id=batch_id,
    )


def emit_warning(
    event_type: EventType,
    message: str,
    context: dict[str, Any] | None = None,
    *,
    error_code: str | None = None,
    batch_id: str | None = None,
) -> None:
    """Convenience: emit a warning-level event."""
    emit(
        CbdEvent(
            level=EventLevel.warning,
            event_type=event_type,
            message=message,
            context=context or {},
            error_code=error_code,
        ),
        batch_id=batch_id,
    )


def emit_error(
    event_type: EventType,
    message: str,
    context: dict[str, Any] | None = None,
    *,
    error_code: str | None = None,
    batch_id: str | None = None,
) -> None:
    """Convenience: emit an error-level event."""
    emit(
        CbdEvent(
            level=EventLevel.error,
            event_type=event_type,
            message=message,
            context=context or {},
            error_code=error_code,
        ),
        batch_id=batch_id,
    )
