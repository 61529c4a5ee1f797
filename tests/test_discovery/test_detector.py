"""Тесты выбора хоста движка."""

from __future__ import annotations

import hashlib
import json
from pathlib import Path
from typing import Dict, List

import pytest

from podscope.discovery import detector
from podscope.discovery.candidates import SocketCandidate
from podscope.discovery.detector import DiscoveredHost, discover, infer_kind
from podscope.runtime.exceptions import ConnectivityError, DiscoveryError
from podscope.runtime.models import RuntimeKind


class FakeValidator:
    """Возвращает заранее заданный вид движка или падает для неизвестных хостов."""

    def __init__(self, kinds: Dict[str, RuntimeKind]) -> None:
        self.kinds = kinds
        self.calls: List[str] = []

    def __call__(self, host: str, timeout: float) -> RuntimeKind:
        self.calls.append(host)
        if host not in self.kinds:
            raise ConnectivityError("ping failed: connection refused", host=host)
        return self.kinds[host]


def write_context(config_dir: Path, name: str, host: str) -> None:
    digest = hashlib.sha256(name.encode("utf-8")).hexdigest()
    meta_dir = config_dir / "contexts" / "meta" / digest
    meta_dir.mkdir(parents=True)
    (meta_dir / "meta.json").write_text(json.dumps({"Endpoints": {"docker": {"Host": host}}}), encoding="utf-8")


@pytest.fixture
def socket_file(tmp_path: Path) -> Path:
    path = tmp_path / "docker.sock"
    path.touch()
    return path


def test_container_host_wins_over_docker_host(tmp_path: Path) -> None:
    validator = FakeValidator({"unix:///run/podman.sock": RuntimeKind.PODMAN})
    env = {"CONTAINER_HOST": "/run/podman.sock", "DOCKER_HOST": "unix:///var/run/docker.sock"}

    found = discover(env, validator=validator, candidates=[], config_dir=tmp_path)

    assert found == DiscoveredHost("unix:///run/podman.sock", RuntimeKind.PODMAN, "CONTAINER_HOST")
    assert validator.calls == ["unix:///run/podman.sock"]


def test_kind_comes_from_validation(tmp_path: Path) -> None:
    validator = FakeValidator({"tcp://box:2375": RuntimeKind.PODMAN})

    found = discover({"DOCKER_HOST": "tcp://box:2375"}, validator=validator, candidates=[], config_dir=tmp_path)

    assert found.kind is RuntimeKind.PODMAN
    assert found.source == "DOCKER_HOST"


def test_unusable_host_variable_fails(tmp_path: Path, socket_file: Path) -> None:
    validator = FakeValidator({f"unix://{socket_file}": RuntimeKind.DOCKER})
    candidates = [SocketCandidate(socket_file, RuntimeKind.DOCKER)]

    with pytest.raises(DiscoveryError) as exc_info:
        discover({"DOCKER_HOST": "tcp://nowhere:1"}, validator=validator, candidates=candidates, config_dir=tmp_path)

    assert "DOCKER_HOST='tcp://nowhere:1' is not usable" in exc_info.value.message
    assert exc_info.value.explicit
    assert validator.calls == ["tcp://nowhere:1"]


def test_whitespace_variable_counts_as_set(tmp_path: Path, socket_file: Path) -> None:
    validator = FakeValidator({f"unix://{socket_file}": RuntimeKind.DOCKER})
    candidates = [SocketCandidate(socket_file, RuntimeKind.DOCKER)]

    with pytest.raises(DiscoveryError, match="DOCKER_HOST"):
        discover({"DOCKER_HOST": "   "}, validator=validator, candidates=candidates, config_dir=tmp_path)


@pytest.mark.parametrize(
    ("variable", "kind"),
    [("CONTAINER_HOST", RuntimeKind.PODMAN), ("DOCKER_HOST", RuntimeKind.DOCKER)],
)
def test_ssh_hosts_are_not_validated(tmp_path: Path, variable: str, kind: RuntimeKind) -> None:
    validator = FakeValidator({})

    found = discover({variable: "ssh://core@vm:2222"}, validator=validator, candidates=[], config_dir=tmp_path)

    assert found.is_ssh
    assert found.kind is kind
    assert validator.calls == []


def test_explicit_context(tmp_path: Path) -> None:
    write_context(tmp_path, "colima", "unix:///home/me/.colima/default/docker.sock")
    validator = FakeValidator({"unix:///home/me/.colima/default/docker.sock": RuntimeKind.DOCKER})

    found = discover({"DOCKER_CONTEXT": "colima"}, validator=validator, candidates=[], config_dir=tmp_path)

    assert found.source == "context:colima"


def test_explicit_context_failure_is_fatal(tmp_path: Path, socket_file: Path) -> None:
    validator = FakeValidator({f"unix://{socket_file}": RuntimeKind.DOCKER})
    candidates = [SocketCandidate(socket_file, RuntimeKind.DOCKER)]

    with pytest.raises(DiscoveryError, match="failed to use DOCKER_CONTEXT 'ghost'") as exc_info:
        discover({"DOCKER_CONTEXT": "ghost"}, validator=validator, candidates=candidates, config_dir=tmp_path)

    assert exc_info.value.explicit


def test_current_context_failure_falls_through(tmp_path: Path, socket_file: Path) -> None:
    (tmp_path / "config.json").write_text(json.dumps({"currentContext": "broken"}), encoding="utf-8")
    write_context(tmp_path, "broken", "unix:///nowhere.sock")
    validator = FakeValidator({f"unix://{socket_file}": RuntimeKind.DOCKER})
    candidates = [SocketCandidate(socket_file, RuntimeKind.DOCKER)]

    found = discover({}, validator=validator, candidates=candidates, config_dir=tmp_path)

    assert found.source == "socket"
    assert validator.calls == ["unix:///nowhere.sock", f"unix://{socket_file}"]


def test_default_context_skips_lookup(tmp_path: Path, socket_file: Path) -> None:
    validator = FakeValidator({f"unix://{socket_file}": RuntimeKind.DOCKER})
    candidates = [SocketCandidate(socket_file, RuntimeKind.DOCKER)]

    found = discover({"DOCKER_CONTEXT": "default"}, validator=validator, candidates=candidates, config_dir=tmp_path)

    assert found.host == f"unix://{socket_file}"


def test_first_working_candidate_is_used(tmp_path: Path) -> None:
    first = tmp_path / "first.sock"
    second = tmp_path / "second.sock"
    first.touch()
    second.touch()
    validator = FakeValidator({f"unix://{second}": RuntimeKind.PODMAN})
    candidates = [
        SocketCandidate(tmp_path / "missing.sock", RuntimeKind.DOCKER),
        SocketCandidate(first, RuntimeKind.DOCKER),
        SocketCandidate(second, RuntimeKind.DOCKER),
    ]

    found = discover({}, validator=validator, candidates=candidates, config_dir=tmp_path)

    assert found == DiscoveredHost(f"unix://{second}", RuntimeKind.PODMAN, "socket")


def test_no_sockets_message(tmp_path: Path) -> None:
    with pytest.raises(DiscoveryError) as exc_info:
        discover({}, validator=FakeValidator({}), candidates=[], config_dir=tmp_path)

    assert "systemctl --user enable --now podman.socket" in exc_info.value.message
    assert not exc_info.value.explicit


def test_all_sockets_fail(tmp_path: Path, socket_file: Path) -> None:
    candidates = [SocketCandidate(socket_file, RuntimeKind.DOCKER)]

    with pytest.raises(DiscoveryError) as exc_info:
        discover({}, validator=FakeValidator({}), candidates=candidates, config_dir=tmp_path)

    assert exc_info.value.message == "no usable Docker or Podman socket found: ping failed: connection refused"
    assert not exc_info.value.explicit


def test_infer_kind() -> None:
    assert infer_kind({"Platform": {"Name": "Podman Engine"}}) is RuntimeKind.PODMAN
    assert infer_kind({"Components": [{"Name": "Podman Engine"}]}) is RuntimeKind.PODMAN
    assert infer_kind({"Platform": {"Name": "Docker Engine - Community"}}) is RuntimeKind.DOCKER
    assert infer_kind({}) is RuntimeKind.DOCKER


def test_detect_host_is_cached(monkeypatch: pytest.MonkeyPatch) -> None:
    calls = []

    def fake_discover(env=None, *, timeout=5):
        calls.append(env)
        return DiscoveredHost("unix:///var/run/docker.sock", RuntimeKind.DOCKER, "socket")

    detector.reset_host_cache()
    monkeypatch.setattr(detector, "discover", fake_discover)
    try:
        first = detector.detect_host({})
        second = detector.detect_host({"DOCKER_HOST": "tcp://other:2375"})
    finally:
        detector.reset_host_cache()

    assert first is second
    assert len(calls) == 1


def test_detect_host_caches_failure(monkeypatch: pytest.MonkeyPatch) -> None:
    calls = []

    def fake_discover(env=None, *, timeout=5):
        calls.append(env)
        raise DiscoveryError("no Docker or Podman socket found")

    detector.reset_host_cache()
    monkeypatch.setattr(detector, "discover", fake_discover)
    try:
        for _ in range(2):
            with pytest.raises(DiscoveryError):
                detector.detect_host({})
    finally:
        detector.reset_host_cache()

    assert len(calls) == 1
