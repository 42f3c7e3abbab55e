"""Structured event logging for cbdata.

Provides the event schema, a filesystem NDJSON sink, and safe emit helpers
that never raise uncaught exceptions.
"""

from cbdata.logging.events import (
    CbdEvent,
    EventLevel,
    EventType,
    emit,
    emit_error,
    emit_info,
    emit_warning,
    error_code_for,
    redact_context,
    reset_sink,
    set_project_dir,
)
from cbdata.logging.sink import EventSink

__all__ = [
    "CbdEvent",
    "EventLevel",
    "EventSink",
    "EventType",
    "emit",
    "emit_error",
    "emit_info",
    "emit_warning",
    "error_code_for",
    "redact_context",
    "reset_sink",
    "set_project_dir",
]
