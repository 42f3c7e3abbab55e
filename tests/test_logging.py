"""Tests for the structured event logging system."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

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
    set_project_dir,
)
from cbdata.logging.sink import EventSink


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def project_dir(tmp_path: Path) -> Path:
    return tmp_path


@pytest.fixture
def sink(project_dir: Path) -> EventSink:
    return EventSink(project_dir)


# ---------------------------------------------------------------------------
# A) Event schema
# ---------------------------------------------------------------------------


class TestCbdEvent:
    def test_event_defaults(self) -> None:
        evt = CbdEvent(level=EventLevel.info, event_type=EventType.eval_started, message="hello")
        assert evt.schema_version == 1
        assert evt.ts.endswith("Z")
        assert evt.level == "info"
        assert evt.event_type == "eval_started"
        assert evt.context == {}
        assert evt.error_code is None

    def test_all_event_types_exist(self) -> None:
        expected = {
            "eval_started", "eval_completed", "eval_failed",
            "source_fetch", "source_fetch_failed",
            "batch_started", "batch_completed",
        }
        assert {e.value for e in EventType} == expected

    def test_error_codes(self) -> None:
        from cbdata.expressions.errors import (
            FunctionArityError,
            MismatchedQuote,
            SourceFetchError,
            UnknownFunctionError,
        )

        assert error_code_for(MismatchedQuote("x")) == "expression_syntax_error"
        assert error_code_for(UnknownFunctionError("F")) == "unknown_function"
        assert error_code_for(FunctionArityError("f", 3, "m")) == "function_arity"
        assert error_code_for(SourceFetchError("A", "FRED", "r")) == "source_fetch_failed"
        assert error_code_for(ZeroDivisionError()) == "eval_error"


# ---------------------------------------------------------------------------
# B) Filesystem NDJSON sink
# ---------------------------------------------------------------------------


class TestEventSink:
    def test_directories_created(self, sink: EventSink, project_dir: Path) -> None:
        assert (project_dir / "logs").is_dir()
        assert (project_dir / "logs" / "batches").is_dir()

    def test_write_creates_global_log(self, sink: EventSink, project_dir: Path) -> None:
        sink.write(CbdEvent(level=EventLevel.info, event_type=EventType.eval_started, message="m"))
        lines = (project_dir / "logs" / "events.ndjson").read_text().strip().splitlines()
        assert len(lines) == 1
        parsed = json.loads(lines[0])
        assert parsed["message"] == "m"
        assert list(parsed) == sorted(parsed)

    def test_write_batch_log(self, sink: EventSink, project_dir: Path) -> None:
        evt = CbdEvent(level=EventLevel.info, event_type=EventType.batch_started)
        sink.write(evt, batch_id="b_001")
        assert (project_dir / "logs" / "batches" / "b_001.ndjson").exists()
        assert len(sink.read_batch_log("b_001")) == 1

    def test_unsafe_batch_id_ignored(self, sink: EventSink, project_dir: Path) -> None:
        evt = CbdEvent(level=EventLevel.info, event_type=EventType.batch_started)
        sink.write(evt, batch_id="../escape")
        assert not (project_dir / "logs" / "escape.ndjson").exists()
        assert sink.read_batch_log("../escape") == []

    def test_read_global_filters_and_order(self, sink: EventSink) -> None:
        for i in range(3):
            sink.write(CbdEvent(level=EventLevel.info, event_type=EventType.eval_started, message=f"e{i}"))
        sink.write(CbdEvent(level=EventLevel.error, event_type=EventType.eval_failed, message="bad"))

        assert [e["message"] for e in sink.read_global()] == ["bad", "e2", "e1", "e0"]
        assert [e["message"] for e in sink.read_global(level="error")] == ["bad"]
        assert len(sink.read_global(event_type="eval_started", limit=2)) == 2

    def test_tail_bounded_read(self, project_dir: Path) -> None:
        small = EventSink(project_dir, tail_bytes=400)
        for i in range(20):
            small.write(CbdEvent(level=EventLevel.info, event_type=EventType.eval_started, message=f"e{i}"))
        events = small.read_global(limit=100)
        assert 0 < len(events) < 20
        assert events[0]["message"] == "e19"

    def test_corrupt_lines_skipped(self, sink: EventSink, project_dir: Path) -> None:
        sink.write(CbdEvent(level=EventLevel.info, event_type=EventType.eval_started))
        with open(project_dir / "logs" / "events.ndjson", "a") as f:
            f.write("not json\n")
        assert len(sink.read_global()) == 1


# ---------------------------------------------------------------------------
# C) Redaction and emit helpers
# ---------------------------------------------------------------------------


class TestRedaction:
    def test_sensitive_keys(self) -> None:
        out = redact_context({"api_key": "k", "fred_api_key": "k", "series": "GDPH"})
        assert out == {"api_key": "[REDACTED]", "fred_api_key": "[REDACTED]", "series": "GDPH"}

    def test_url_query_stripped(self) -> None:
        url = "https://api.stlouisfed.org/fred/series?series_id=GDPH&api_key=k"
        out = redact_context({"url": url})
        assert out["url"] == "https://api.stlouisfed.org/fred/series?[REDACTED]"

    def test_nested_and_long_values(self) -> None:
        out = redact_context({"outer": {"token": "t"}, "text": "x" * 300, "items": ["a"]})
        assert out["outer"] == {"token": "[REDACTED]"}
        assert out["text"].endswith("...[truncated]")
        assert out["items"] == ["a"]

    def test_input_not_mutated(self) -> None:
        ctx = {"api_key": "k"}
        redact_context(ctx)
        assert ctx == {"api_key": "k"}


class TestEmit:
    def test_without_sink_is_noop(self, project_dir: Path) -> None:
        emit_info(EventType.eval_started, "nothing")
        assert not (project_dir / "logs").exists()

    def test_emit_helpers_write_redacted(self, project_dir: Path) -> None:
        set_project_dir(project_dir)
        emit_info(EventType.eval_started, "i", {"api_key": "k"})
        emit_warning(EventType.source_fetch, "w")
        emit_error(EventType.eval_failed, "e", error_code="eval_error")
        events = EventSink(project_dir).read_global()
        assert [e["level"] for e in events] == ["error", "warning", "info"]
        assert events[0]["error_code"] == "eval_error"
        assert events[2]["context"] == {"api_key": "[REDACTED]"}

    def test_emit_with_batch_id(self, project_dir: Path) -> None:
        set_project_dir(project_dir)
        emit(CbdEvent(level=EventLevel.info, event_type=EventType.batch_completed), batch_id="abc")
        assert len(EventSink(project_dir).read_batch_log("abc")) == 1

    def test_emit_never_raises(self, project_dir: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        from cbdata.logging import events

        set_project_dir(project_dir)

        def boom(*args, **kwargs):
            raise OSError("disk full")

        monkeypatch.setattr(events._sink, "write", boom)
        emit_info(EventType.eval_started, "ignored")

    def test_sink_options_from_config(self, project_dir: Path) -> None:
        from cbdata.logging import events

        (project_dir / "cbdata.yaml").write_text("logging_fsync: true\nlogging_tail_bytes: 1024\n")
        set_project_dir(project_dir)
        assert events._sink._fsync is True
        assert events._sink._tail_bytes == 1024
