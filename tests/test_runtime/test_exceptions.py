"""Тесты исключений слоя движков."""

from __future__ import annotations

import pytest

from podscope.runtime.exceptions import (
    MUST_STOP_CONTAINER_TEXT,
    ComplexError,
    ConnectivityError,
    ErrorCode,
    NotSupportedError,
    ParseError,
    RuntimeAPIError,
    classify_engine_error,
)


def test_not_supported_message() -> None:
    error = NotSupportedError("pod stats", "cli")
    assert str(error) == "pod stats is not supported by the cli runtime"
    assert error.context == {"operation": "pod stats", "runtime": "cli"}
    assert isinstance(error, RuntimeAPIError)


def test_connectivity_error_context() -> None:
    error = ConnectivityError("refused", command="podman ps", host="unix:///x.sock", context={"returncode": 1})
    assert error.context == {"returncode": 1, "command": "podman ps", "host": "unix:///x.sock"}


def test_parse_error_source() -> None:
    assert ParseError("bad", source="container").context == {"source": "container"}
    assert ParseError("bad").context == {}


def test_classify_engine_error_detects_must_stop() -> None:
    error = classify_engine_error(f"conflict: {MUST_STOP_CONTAINER_TEXT}", context={"target": "abc"})
    assert isinstance(error, ComplexError)
    assert error.code is ErrorCode.MUST_STOP_CONTAINER
    assert error.context["target"] == "abc"


def test_classify_engine_error_plain() -> None:
    error = classify_engine_error("no such image")
    assert type(error) is RuntimeAPIError


def test_errors_are_logged(caplog: pytest.LogCaptureFixture) -> None:
    caplog.set_level("DEBUG", logger="podscope.runtime.exceptions")
    RuntimeAPIError("boom", context={"operation": "list"})
    assert "boom" in caplog.text
