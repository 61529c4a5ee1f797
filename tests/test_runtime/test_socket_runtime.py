"""Тесты сокетного адаптера на подставном docker.APIClient."""

from __future__ import annotations

import json
import threading
from types import SimpleNamespace
from typing import Any, Dict, List, Optional

import pytest
import requests
from docker.errors import APIError, NotFound

from podscope.runtime.base import Feature
from podscope.runtime.exceptions import (
    MUST_STOP_CONTAINER_TEXT,
    ComplexError,
    ConnectivityError,
    ErrorCode,
    NotSupportedError,
    RuntimeAPIError,
)
from podscope.runtime.models import RuntimeKind
from podscope.runtime.socket_runtime import SocketRuntime, read_stream


class FakeResponse:
    """Ответ requests с заранее заданным телом."""

    def __init__(self, payload: Any = None, lines: Optional[List[Dict[str, Any]]] = None) -> None:
        self._payload = payload
        self._lines = lines or []
        # CancellableStream.close ничего не делает для закрытого raw
        self.raw = SimpleNamespace(closed=True)

    def raise_for_status(self) -> None:
        return None

    def json(self) -> Any:
        return self._payload

    def iter_lines(self):
        for line in self._lines:
            yield json.dumps(line).encode("utf-8")


class FakeStream:
    def __init__(self, items: List[Dict[str, Any]]) -> None:
        self._items = iter(items)
        self.closed = False

    def __iter__(self):
        return self

    def __next__(self) -> Dict[str, Any]:
        return next(self._items)

    def close(self) -> None:
        self.closed = True


class FakeAPIClient:
    """Минимальный APIClient: записывает вызовы и отдаёт заготовки."""

    base_url = "http+docker://localhost"
    api_version = "1.41"

    def __init__(self) -> None:
        self.calls: List[tuple] = []
        self.responses: Dict[str, Any] = {}
        self.errors: Dict[str, Exception] = {}
        self.closed = False

    def _record(self, name: str, /, *args: Any, **kwargs: Any) -> Any:
        self.calls.append((name, args, kwargs))
        if name in self.errors:
            raise self.errors[name]
        return self.responses.get(name)

    def __getattr__(self, name: str):
        if name.startswith("_"):
            raise AttributeError(name)
        return lambda *args, **kwargs: self._record(name, *args, **kwargs)

    def close(self) -> None:
        self.closed = True


@pytest.fixture
def api() -> FakeAPIClient:
    return FakeAPIClient()


def make_runtime(api: FakeAPIClient, kind: RuntimeKind = RuntimeKind.DOCKER) -> SocketRuntime:
    return SocketRuntime("unix:///var/run/docker.sock", kind, api_client=api)


def test_list_containers_docker_uses_compat_api(api: FakeAPIClient) -> None:
    api.responses["containers"] = [{"Id": "abc", "Names": ["/web"], "State": "running"}]
    runtime = make_runtime(api)

    containers = runtime.list_containers(all_containers=False)

    assert api.calls[0] == ("containers", (), {"all": False})
    assert containers[0].id == "abc"
    assert runtime.mode == "socket"


def test_list_containers_podman_uses_libpod(api: FakeAPIClient) -> None:
    api.responses["get"] = FakeResponse([{"Id": "c1", "Names": ["db"], "Pod": "p1", "PodName": "backend"}])
    runtime = make_runtime(api, RuntimeKind.PODMAN)

    containers = runtime.list_containers()

    name, args, kwargs = api.calls[0]
    assert name == "get"
    assert args[0] == "http+docker://localhost/v4.0.0/libpod/containers/json"
    assert kwargs["params"] == {"all": "true"}
    assert containers[0].pod_name == "backend"


def test_container_operations_forward_arguments(api: FakeAPIClient) -> None:
    runtime = make_runtime(api)

    runtime.stop_container("abc", timeout=5)
    runtime.restart_container("abc")
    runtime.remove_container("abc", force=True, remove_volumes=True)
    runtime.create_volume("data")

    assert api.calls == [
        ("stop", ("abc",), {"timeout": 5}),
        ("restart", ("abc",), {}),
        ("remove_container", ("abc",), {"v": True, "force": True}),
        ("create_volume", (), {"name": "data", "driver_opts": None}),
    ]


def test_not_found_is_translated(api: FakeAPIClient) -> None:
    api.errors["inspect_container"] = NotFound("No such container: abc")
    runtime = make_runtime(api)

    with pytest.raises(RuntimeAPIError) as exc_info:
        runtime.inspect_container("abc")

    assert "not found" in exc_info.value.message
    assert exc_info.value.context["target"] == "abc"


def test_must_stop_error_is_complex(api: FakeAPIClient) -> None:
    api.errors["remove_container"] = APIError("409 Conflict", explanation=f"conflict: {MUST_STOP_CONTAINER_TEXT}")
    runtime = make_runtime(api)

    with pytest.raises(ComplexError) as exc_info:
        runtime.remove_container("abc")

    assert exc_info.value.code is ErrorCode.MUST_STOP_CONTAINER


def test_connection_errors_become_connectivity_errors(api: FakeAPIClient) -> None:
    api.errors["images"] = requests.exceptions.ConnectionError("refused")
    runtime = make_runtime(api)

    with pytest.raises(ConnectivityError) as exc_info:
        runtime.list_images()

    assert exc_info.value.host == "unix:///var/run/docker.sock"


def test_list_volumes_reads_volumes_key(api: FakeAPIClient) -> None:
    api.responses["volumes"] = {"Volumes": [{"Name": "data", "Driver": "local"}], "Warnings": None}
    volumes = make_runtime(api).list_volumes()
    assert [volume.name for volume in volumes] == ["data"]


def test_one_shot_stats(api: FakeAPIClient) -> None:
    api.responses["stats"] = {"id": "abc", "memory_stats": {"usage": 5, "limit": 10}}
    entries = list(make_runtime(api).container_stats("abc", stream=False))
    assert api.calls[0] == ("stats", ("abc",), {"stream": False})
    assert entries[0].memory_stats.limit == 10


def test_streamed_stats_until_end(api: FakeAPIClient) -> None:
    frames = [{"id": "abc", "cpu_stats": {"system_cpu_usage": value}} for value in (1, 2)]
    api.responses["get"] = FakeResponse(lines=frames)
    runtime = make_runtime(api)

    entries = list(runtime.container_stats("abc"))

    name, args, kwargs = api.calls[0]
    assert args[0] == "http+docker://localhost/v1.41/containers/abc/stats"
    assert kwargs["stream"] is True
    assert [entry.cpu_stats.system_cpu_usage for entry in entries] == [1, 2]


def test_streamed_stats_stop_on_cancel(api: FakeAPIClient) -> None:
    frames = [{"id": "abc", "cpu_stats": {"system_cpu_usage": value}} for value in (1, 2, 3)]
    api.responses["get"] = FakeResponse(lines=frames)
    cancel = threading.Event()
    stream = make_runtime(api).container_stats("abc", cancel=cancel)

    first = next(stream)
    cancel.set()

    assert first.cpu_stats.system_cpu_usage == 1
    assert list(stream) == []


def test_read_stream_closes_source() -> None:
    source = FakeStream([{"a": 1}, {"a": 2}])
    assert list(read_stream(source, lambda item: item["a"], None)) == [1, 2]
    assert source.closed


def test_docker_kind_has_no_pods(api: FakeAPIClient) -> None:
    runtime = make_runtime(api)
    assert runtime.list_pods() == []
    assert not runtime.supports(Feature.PODS)
    assert runtime.supports(Feature.STATS_STREAM)
    with pytest.raises(NotSupportedError):
        list(runtime.pod_stats("p1"))


def test_podman_pods_and_pod_stats(api: FakeAPIClient) -> None:
    runtime = make_runtime(api, RuntimeKind.PODMAN)
    api.responses["get"] = FakeResponse([{"Id": "p1", "Name": "backend", "Containers": [{"Id": "c1"}]}])
    pods = runtime.list_pods()
    assert pods[0].containers == ["c1"]
    assert runtime.supports(Feature.PODS)

    api.responses["get"] = FakeResponse([{"Pod": "p1", "Name": "backend", "CPU": "1.5%", "PIDS": "2"}])
    entries = list(runtime.pod_stats("p1", stream=False))
    assert api.calls[-1][2]["params"] == {"namesOrIDs": "p1"}
    assert entries[0].cpu == 1.5
    assert entries[0].pids == 2


def test_events_are_converted(api: FakeAPIClient) -> None:
    source = FakeStream([{"Type": "container", "Action": "die", "Actor": {"ID": "abc"}}])
    api.responses["events"] = source
    events = list(make_runtime(api).events())
    assert api.calls[0] == ("events", (), {"decode": True})
    assert events[0].action == "die"
    assert source.closed


def test_logs_command_uses_engine_binary(api: FakeAPIClient) -> None:
    runtime = make_runtime(api, RuntimeKind.PODMAN)
    assert runtime.container_logs_command("abc", tail=100) == [
        "podman",
        "logs",
        "--timestamps",
        "--follow",
        "--tail",
        "100",
        "abc",
    ]


def test_close_is_idempotent(api: FakeAPIClient) -> None:
    runtime = make_runtime(api)
    with runtime:
        pass
    runtime.close()
    assert api.closed
