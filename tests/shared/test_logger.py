"""Tests for the shared observability logging helpers."""

from __future__ import annotations

import sys
from datetime import datetime, timezone
from pathlib import Path
from types import SimpleNamespace

import pytest
import structlog

PROJECT_ROOT = Path(__file__).resolve().parents[2]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from shared.observability.logger import (  # noqa: E402
    _coerce_level,
    _render_line,
    _structlog_processors,
    generate_request_id,
    get_request_id,
    request_context,
)


@pytest.fixture(autouse=True)
def _clean_context() -> None:
    structlog.contextvars.clear_contextvars()
    yield
    structlog.contextvars.clear_contextvars()


def test_request_context_binds_request_identifier() -> None:
    with request_context(screen="referral_details") as request_id:
        assert get_request_id() == request_id
        context = structlog.contextvars.get_contextvars()
        assert context["request_id"] == request_id
        assert context["screen"] == "referral_details"

    assert get_request_id() is None
    assert "screen" not in structlog.contextvars.get_contextvars()


def test_request_context_uses_supplied_identifier() -> None:
    with request_context("abc123") as request_id:
        assert request_id == "abc123"


def test_request_context_restores_existing_values() -> None:
    structlog.contextvars.bind_contextvars(request_id="outer", custom="value")

    with request_context(custom="inner"):
        assert structlog.contextvars.get_contextvars()["custom"] == "inner"

    context = structlog.contextvars.get_contextvars()
    assert context["request_id"] == "outer"
    assert context["custom"] == "value"


def test_generate_request_id_is_unique_hex() -> None:
    first = generate_request_id()
    second = generate_request_id()

    assert first != second
    int(first, 16)


@pytest.mark.parametrize(
    ("level", "expected"),
    [("info", (20, "INFO")), ("DEBUG", (10, "DEBUG")), (30, (30, "WARNING"))],
)
def test_coerce_level_accepts_names_and_numbers(level, expected) -> None:
    assert _coerce_level(level) == expected


def test_coerce_level_rejects_unknown_names() -> None:
    with pytest.raises(ValueError):
        _coerce_level("verbose")


def test_render_line_shows_request_and_view() -> None:
    record = {
        "time": datetime(2025, 3, 10, 14, 30, tzinfo=timezone.utc),
        "level": SimpleNamespace(name="WARNING"),
        "extra": {"service": "reconciliation", "request_id": "req-1", "view": "referral"},
        "message": '{"event": "lookup_failed"}',
    }

    line = _render_line(record)

    assert line.endswith("\n")
    assert " | reconciliation | req-1 | referral | " in line
    assert '{{"event": "lookup_failed"}}' in line


def test_render_line_uses_placeholders_without_context() -> None:
    record = {
        "time": datetime(2025, 3, 10, tzinfo=timezone.utc),
        "level": SimpleNamespace(name="INFO"),
        "extra": {},
        "message": "started",
    }

    assert " | - | - | - | started" in _render_line(record)


def test_structlog_renderer_follows_json_flag() -> None:
    assert isinstance(_structlog_processors(True)[-1], structlog.processors.JSONRenderer)
    assert isinstance(_structlog_processors(False)[-1], structlog.dev.ConsoleRenderer)


def test_nested_context_keeps_outer_request_id() -> None:
    with request_context("req-outer", path="/referrals/r1"):
        with request_context(get_request_id(), view="referral") as inner:
            context = structlog.contextvars.get_contextvars()
            assert inner == "req-outer"
            assert context["view"] == "referral"
            assert context["path"] == "/referrals/r1"
        assert "view" not in structlog.contextvars.get_contextvars()
        assert get_request_id() == "req-outer"
