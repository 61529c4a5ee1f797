"""Тесты SSH-туннеля."""

from __future__ import annotations

import io
from pathlib import Path
from typing import List, Optional

import pytest

from podscope.discovery import tunnel as tunnel_module
from podscope.discovery.detector import DiscoveredHost
from podscope.discovery.tunnel import SSHTunnel, establish_tunnel_if_needed
from podscope.runtime.exceptions import ConnectivityError
from podscope.runtime.models import RuntimeKind
from podscope.utils.os_command import BackgroundProcess


class FakeProcess:
    def __init__(self, returncode: Optional[int] = None, stderr: bytes = b"") -> None:
        self.pid = 777
        self.returncode = returncode
        self.stderr = io.BytesIO(stderr)

    def poll(self) -> Optional[int]:
        return self.returncode


@pytest.fixture
def killed(monkeypatch: pytest.MonkeyPatch) -> List[int]:
    pids: List[int] = []
    monkeypatch.setattr(tunnel_module.os_command, "kill_process_tree", pids.append)
    monkeypatch.setattr(tunnel_module, "DIAL_INTERVAL_SEC", 0.01)
    return pids


def test_build_command_uses_url_path_and_port() -> None:
    tunnel = SSHTunnel("ssh://core@vm.local:2222/run/podman/podman.sock", RuntimeKind.PODMAN)

    argv = tunnel.build_command(Path("/tmp/x/dockerhost.sock"))

    assert argv == [
        "ssh",
        "-L",
        "/tmp/x/dockerhost.sock:/run/podman/podman.sock",
        "-p",
        "2222",
        "core@vm.local",
        "-N",
    ]


def test_build_command_defaults_remote_socket() -> None:
    docker_tunnel = SSHTunnel("ssh://me@box", RuntimeKind.DOCKER)
    podman_tunnel = SSHTunnel("ssh://box", RuntimeKind.PODMAN)

    assert docker_tunnel.build_command(Path("/l.sock")) == ["ssh", "-L", "/l.sock:/var/run/docker.sock", "me@box", "-N"]
    assert podman_tunnel.build_command(Path("/l.sock"))[2] == "/l.sock:/run/user/1000/podman/podman.sock"


def test_open_waits_until_socket_answers(killed: List[int]) -> None:
    spawned = []
    answers = iter([False, False, True])
    tunnel = SSHTunnel(
        "ssh://me@box",
        RuntimeKind.DOCKER,
        spawner=lambda argv: spawned.append(argv) or BackgroundProcess(FakeProcess(), "ssh"),
        dialer=lambda path: next(answers),
    )

    local_host = tunnel.open()

    assert local_host == f"unix://{tunnel.local_socket}"
    assert spawned[0][0] == "ssh"
    tmp_dir = tunnel.local_socket.parent
    assert tmp_dir.exists()

    tunnel.close()
    assert killed == [777]
    assert not tmp_dir.exists()


def test_open_reports_ssh_exit(killed: List[int]) -> None:
    tunnel = SSHTunnel(
        "ssh://me@box",
        RuntimeKind.DOCKER,
        spawner=lambda argv: BackgroundProcess(FakeProcess(255, b"Permission denied (publickey).\n"), "ssh"),
        dialer=lambda path: False,
    )

    with pytest.raises(ConnectivityError, match="ssh exited with code 255") as exc_info:
        tunnel.open()
    assert exc_info.value.message.endswith("Permission denied (publickey).")
    assert killed == [777]


def test_open_times_out(killed: List[int]) -> None:
    tunnel = SSHTunnel(
        "ssh://me@box",
        RuntimeKind.DOCKER,
        timeout=0.05,
        spawner=lambda argv: BackgroundProcess(FakeProcess(), "ssh"),
        dialer=lambda path: False,
    )

    with pytest.raises(ConnectivityError, match="did not come up"):
        tunnel.open()
    assert not tunnel.local_socket.parent.exists()


def test_local_socket_requires_open_tunnel() -> None:
    with pytest.raises(ConnectivityError):
        SSHTunnel("ssh://box", RuntimeKind.DOCKER).local_socket


class DummyTunnel:
    def __init__(self, url: str, kind: RuntimeKind, *, timeout: float) -> None:
        self.url = url
        self.kind = kind

    def open(self) -> str:
        return "unix:///tmp/podscope-ssh-1/dockerhost.sock"


def test_establish_rewrites_matching_variable() -> None:
    env = {"CONTAINER_HOST": "ssh://core@vm"}
    discovered = DiscoveredHost("ssh://core@vm", RuntimeKind.PODMAN, "CONTAINER_HOST")

    local, tunnel = establish_tunnel_if_needed(discovered, env, tunnel_factory=DummyTunnel)

    assert tunnel is not None
    assert env["CONTAINER_HOST"] == "unix:///tmp/podscope-ssh-1/dockerhost.sock"
    assert local == DiscoveredHost("unix:///tmp/podscope-ssh-1/dockerhost.sock", RuntimeKind.PODMAN, "CONTAINER_HOST")


def test_establish_from_context_sets_docker_host() -> None:
    env: dict = {}
    discovered = DiscoveredHost("ssh://me@box", RuntimeKind.DOCKER, "context:remote")

    establish_tunnel_if_needed(discovered, env, tunnel_factory=DummyTunnel)

    assert env == {"DOCKER_HOST": "unix:///tmp/podscope-ssh-1/dockerhost.sock"}


def test_local_hosts_pass_through() -> None:
    discovered = DiscoveredHost("unix:///var/run/docker.sock", RuntimeKind.DOCKER, "socket")

    assert establish_tunnel_if_needed(discovered, {}) == (discovered, None)
