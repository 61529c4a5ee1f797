"""Тесты выбора адаптера движка."""

from __future__ import annotations

from types import SimpleNamespace
from typing import Any, Dict, List

import pytest

from podscope.discovery.detector import DiscoveredHost
from podscope.runtime import factory
from podscope.runtime.exceptions import ConnectivityError, RuntimeAPIError
from podscope.runtime.models import RuntimeKind

DOCKER_HOST = DiscoveredHost("unix:///var/run/docker.sock", RuntimeKind.DOCKER, "socket")
PODMAN_HOST = DiscoveredHost("unix:///run/podman/podman.sock", RuntimeKind.PODMAN, "socket")


class DummySettings:
    def __init__(self, **values: Any) -> None:
        self.values = values

    def get_value(self, group: str, key: str, default: Any = None) -> Any:
        return self.values.get(key, default)


def make_builder(mode: str, calls: List[str], error: Exception | None = None):
    def _build(discovered, timeout):
        calls.append(mode)
        if error is not None:
            raise error
        return SimpleNamespace(mode=mode, kind=discovered.kind if discovered else RuntimeKind.APPLE)

    return _build


def test_candidate_modes_for_docker_and_podman() -> None:
    assert factory.candidate_modes(DOCKER_HOST) == ["sdk", "socket"]
    assert factory.candidate_modes(PODMAN_HOST) == ["socket", "libpod"]
    assert factory.candidate_modes(PODMAN_HOST, "cli") == ["cli"]


def test_candidate_modes_without_host(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(factory.os_command, "command_exists", lambda name: name == "container")
    assert factory.candidate_modes(None) == ["cli", "libpod"]

    monkeypatch.setattr(factory.os_command, "command_exists", lambda name: False)
    assert factory.candidate_modes(None) == ["libpod"]


def test_create_runtime_falls_back(caplog: pytest.LogCaptureFixture) -> None:
    calls: List[str] = []
    builders: Dict[str, Any] = {
        "sdk": make_builder("sdk", calls, ConnectivityError("refused")),
        "socket": make_builder("socket", calls),
    }

    with caplog.at_level("WARNING"):
        runtime = factory.create_runtime(DOCKER_HOST, DummySettings(), builders=builders)

    assert runtime.mode == "socket"
    assert calls == ["sdk", "socket"]
    assert "Runtime sdk unavailable: refused" in caplog.text


def test_create_runtime_respects_preferred_mode() -> None:
    calls: List[str] = []
    builders = {mode: make_builder(mode, calls) for mode in ("sdk", "socket", "libpod", "cli")}

    runtime = factory.create_runtime(DOCKER_HOST, DummySettings(preferred="socket"), builders=builders)

    assert runtime.mode == "socket"
    assert calls == ["socket"]


def test_create_runtime_reports_all_attempts() -> None:
    calls: List[str] = []
    builders = {
        "socket": make_builder("socket", calls, ConnectivityError("socket is gone")),
        "libpod": make_builder("libpod", calls, RuntimeAPIError("podman binary not found")),
    }

    with pytest.raises(RuntimeAPIError) as exc_info:
        factory.create_runtime(PODMAN_HOST, DummySettings(), builders=builders)

    message = exc_info.value.message
    assert "socket: socket is gone" in message
    assert "libpod: podman binary not found" in message
    assert exc_info.value.context["attempts"] == ["socket", "libpod"]


def test_unknown_preferred_mode_is_reported() -> None:
    with pytest.raises(RuntimeAPIError, match="unknown runtime mode"):
        factory.create_runtime(DOCKER_HOST, DummySettings(preferred="grpc"), builders={})


def test_sdk_builder_rejects_podman() -> None:
    with pytest.raises(RuntimeAPIError, match="does not drive podman"):
        factory.BUILDERS["sdk"](PODMAN_HOST, 5)


def test_socket_builder_needs_host() -> None:
    with pytest.raises(RuntimeAPIError, match="needs an engine host"):
        factory.BUILDERS["socket"](None, 5)
