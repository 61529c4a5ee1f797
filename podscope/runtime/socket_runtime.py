"""Адаптер REST API движка поверх ``docker.APIClient``.

Docker и Podman обслуживают Docker-совместимый API на своём сокете, поэтому
контейнеры, образы, тома и сети идут через обычные методы APIClient. Для
Podman поды, их статистика и расширенный список контейнеров (Pod, PodName,
IsInfra) запрашиваются у libpod-эндпоинтов той же HTTP-сессии.
"""

from __future__ import annotations

import json
import logging
import threading
from typing import Any, Callable, Dict, Iterator, List, Optional, TypeVar

import docker
import requests
from docker.errors import APIError, DockerException, NotFound
from docker.types import CancellableStream

from podscope.runtime import converters
from podscope.runtime.base import ContainerRuntime
from podscope.runtime.exceptions import (
    ConnectivityError,
    NotSupportedError,
    RuntimeAPIError,
    classify_engine_error,
)
from podscope.runtime.models import (
    ContainerDetails,
    ContainerStatsEntry,
    ContainerSummary,
    Event,
    ImageDetails,
    ImageHistoryEntry,
    ImageSummary,
    NetworkSummary,
    PodStatsEntry,
    PodSummary,
    RuntimeKind,
    TopResponse,
    VolumeSummary,
)

LOGGER = logging.getLogger(__name__)

LIBPOD_API_VERSION = "v4.0.0"
POD_STATS_INTERVAL_SEC = 1.0

T = TypeVar("T")


def translate_docker_error(exc: Exception, *, host: str, operation: str, target: str = "") -> RuntimeAPIError:
    """Оборачивает исключение docker-py или requests с контекстом операции."""

    context = {"operation": operation, "host": host}
    if target:
        context["target"] = target
    if isinstance(exc, NotFound):
        return RuntimeAPIError(f"{operation}: {target or 'object'} not found", context=context)
    if isinstance(exc, APIError):
        return classify_engine_error(str(exc.explanation or exc), context=context)
    if isinstance(exc, (requests.exceptions.ConnectionError, requests.exceptions.Timeout, OSError)):
        return ConnectivityError(f"{operation} failed: {exc}", host=host, context=context)
    return RuntimeAPIError(f"{operation} failed: {exc}", context=context)


def open_json_stream(api: Any, url: str, params: Dict[str, Any]) -> CancellableStream:
    """Открывает потоковый JSON-ответ, который можно закрыть из другого потока."""

    response = api.get(url, params=params, stream=True, timeout=None)
    response.raise_for_status()
    lines = (json.loads(line) for line in response.iter_lines() if line)
    return CancellableStream(lines, response)


def read_stream(
    stream: CancellableStream,
    convert: Callable[[Dict[str, Any]], T],
    cancel: Optional[threading.Event],
) -> Iterator[T]:
    """Читает поток до EOF; выставленный ``cancel`` закрывает его и завершает чтение."""

    done = threading.Event()

    def _watch() -> None:
        while not done.is_set():
            if cancel is not None and cancel.wait(0.2):
                stream.close()
                return

    if cancel is not None:
        threading.Thread(target=_watch, name="stream-cancel", daemon=True).start()
    try:
        for item in stream:
            if cancel is not None and cancel.is_set():
                break
            yield convert(converters.as_dict(item))
    except (ValueError, requests.exceptions.RequestException, OSError):
        if cancel is None or not cancel.is_set():
            raise
    finally:
        done.set()
        stream.close()


class SocketRuntime(ContainerRuntime):
    """Движок за Unix/TCP сокетом."""

    def __init__(
        self,
        host: str,
        kind: RuntimeKind = RuntimeKind.DOCKER,
        *,
        timeout: int = 5,
        api_client: Any | None = None,
    ) -> None:
        self.host = host
        self.kind = kind
        self._api = api_client or self._create_client(timeout)
        self._closed = False

    def _create_client(self, timeout: int) -> Any:
        try:
            client = docker.APIClient(base_url=self.host, version="auto", timeout=timeout)
            client.ping()
            return client
        except (DockerException, requests.exceptions.RequestException) as exc:
            LOGGER.error("Socket client init error for %s: %s", self.host, exc)
            raise ConnectivityError(f"cannot connect to {self.host}: {exc}", host=self.host) from exc

    @property
    def mode(self) -> str:
        return "socket"

    def get_raw_client(self) -> Any:
        """Возвращает внутренний APIClient."""

        return self._api

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            self._api.close()
        except (DockerException, requests.exceptions.RequestException, OSError) as exc:  # pragma: no cover
            LOGGER.warning("Closing socket client for %s failed: %s", self.host, exc)

    # ------------------------------------------------------------------ helpers
    def _call(self, operation: str, func: Callable[..., T], *args: Any, target: str = "", **kwargs: Any) -> T:
        try:
            return func(*args, **kwargs)
        except (DockerException, requests.exceptions.RequestException, OSError) as exc:
            raise translate_docker_error(exc, host=self.host, operation=operation, target=target) from exc

    def _libpod_url(self, path: str) -> str:
        return f"{self._api.base_url}/{LIBPOD_API_VERSION}/libpod{path}"

    def _compat_url(self, path: str) -> str:
        return f"{self._api.base_url}/v{self._api.api_version}{path}"

    def _get_json(self, operation: str, url: str, params: Optional[Dict[str, Any]] = None) -> Any:
        def _request() -> Any:
            response = self._api.get(url, params=params)
            response.raise_for_status()
            return response.json()

        return self._call(operation, _request)

    def _stream(
        self,
        operation: str,
        url: str,
        params: Dict[str, Any],
        convert: Callable[[Dict[str, Any]], T],
        cancel: Optional[threading.Event],
    ) -> Iterator[T]:
        raw_stream = self._call(operation, open_json_stream, self._api, url, params)
        try:
            yield from read_stream(raw_stream, convert, cancel)
        except (ValueError, requests.exceptions.RequestException, OSError) as exc:
            raise translate_docker_error(exc, host=self.host, operation=operation) from exc

    # --------------------------------------------------------------- containers
    def list_containers(self, *, all_containers: bool = True) -> List[ContainerSummary]:
        if self.kind is RuntimeKind.PODMAN:
            rows = self._get_json(
                "list containers",
                self._libpod_url("/containers/json"),
                params={"all": "true" if all_containers else "false"},
            )
        else:
            rows = self._call("list containers", self._api.containers, all=all_containers)
        return [converters.container_summary_from_api(converters.as_dict(row)) for row in rows or []]

    def inspect_container(self, container_id: str) -> ContainerDetails:
        data = self._call("inspect container", self._api.inspect_container, container_id, target=container_id)
        return converters.container_details_from_api(converters.as_dict(data))

    def start_container(self, container_id: str) -> None:
        self._call("start container", self._api.start, container_id, target=container_id)

    def stop_container(self, container_id: str, timeout: Optional[int] = None) -> None:
        kwargs = {"timeout": timeout} if timeout is not None else {}
        self._call("stop container", self._api.stop, container_id, target=container_id, **kwargs)

    def pause_container(self, container_id: str) -> None:
        self._call("pause container", self._api.pause, container_id, target=container_id)

    def unpause_container(self, container_id: str) -> None:
        self._call("unpause container", self._api.unpause, container_id, target=container_id)

    def restart_container(self, container_id: str, timeout: Optional[int] = None) -> None:
        kwargs = {"timeout": timeout} if timeout is not None else {}
        self._call("restart container", self._api.restart, container_id, target=container_id, **kwargs)

    def remove_container(self, container_id: str, *, force: bool = False, remove_volumes: bool = False) -> None:
        self._call(
            "remove container",
            self._api.remove_container,
            container_id,
            v=remove_volumes,
            force=force,
            target=container_id,
        )

    def container_top(self, container_id: str) -> TopResponse:
        data = self._call("container top", self._api.top, container_id, target=container_id)
        return converters.top_from_api(converters.as_dict(data))

    def prune_containers(self) -> None:
        self._call("prune containers", self._api.prune_containers)

    def container_stats(
        self,
        container_id: str,
        *,
        stream: bool = True,
        cancel: Optional[threading.Event] = None,
    ) -> Iterator[ContainerStatsEntry]:
        if not stream:
            data = self._call("container stats", self._api.stats, container_id, stream=False, target=container_id)
            yield converters.stats_entry_from_api(converters.as_dict(data))
            return
        yield from self._stream(
            "container stats",
            self._compat_url(f"/containers/{container_id}/stats"),
            {"stream": True},
            converters.stats_entry_from_api,
            cancel,
        )

    def container_logs_command(
        self, container_id: str, *, follow: bool = True, tail: Optional[int] = None
    ) -> List[str]:
        argv = [self.kind.value, "logs", "--timestamps"]
        if follow:
            argv.append("--follow")
        if tail is not None:
            argv.extend(["--tail", str(tail)])
        argv.append(container_id)
        return argv

    # ------------------------------------------------------------------- images
    def list_images(self) -> List[ImageSummary]:
        rows = self._call("list images", self._api.images)
        return [converters.image_summary_from_api(converters.as_dict(row)) for row in rows or []]

    def inspect_image(self, image_id: str) -> ImageDetails:
        data = self._call("inspect image", self._api.inspect_image, image_id, target=image_id)
        return converters.image_details_from_api(converters.as_dict(data))

    def image_history(self, image_id: str) -> List[ImageHistoryEntry]:
        rows = self._call("image history", self._api.history, image_id, target=image_id)
        return converters.image_history_from_api(rows)

    def remove_image(self, image_id: str, *, force: bool = False) -> None:
        self._call("remove image", self._api.remove_image, image_id, force=force, target=image_id)

    def prune_images(self) -> None:
        self._call("prune images", self._api.prune_images)

    # --------------------------------------------------------- volumes/networks
    def list_volumes(self) -> List[VolumeSummary]:
        data = converters.as_dict(self._call("list volumes", self._api.volumes))
        return [converters.volume_summary_from_api(converters.as_dict(row)) for row in data.get("Volumes") or []]

    def create_volume(self, name: str, options: Optional[Dict[str, str]] = None) -> None:
        self._call("create volume", self._api.create_volume, name=name, driver_opts=options or None, target=name)

    def remove_volume(self, name: str, *, force: bool = False) -> None:
        self._call("remove volume", self._api.remove_volume, name, force=force, target=name)

    def prune_volumes(self) -> None:
        self._call("prune volumes", self._api.prune_volumes)

    def list_networks(self) -> List[NetworkSummary]:
        rows = self._call("list networks", self._api.networks)
        return [converters.network_summary_from_api(converters.as_dict(row)) for row in rows or []]

    def remove_network(self, name: str) -> None:
        self._call("remove network", self._api.remove_network, name, target=name)

    def prune_networks(self) -> None:
        self._call("prune networks", self._api.prune_networks)

    # -------------------------------------------------------------- pods/events
    def list_pods(self) -> List[PodSummary]:
        if self.kind is not RuntimeKind.PODMAN:
            return []
        rows = self._get_json("list pods", self._libpod_url("/pods/json"))
        return [converters.pod_summary_from_libpod(converters.as_dict(row)) for row in rows or []]

    def pod_stats(
        self,
        pod_id: str,
        *,
        stream: bool = True,
        cancel: Optional[threading.Event] = None,
    ) -> Iterator[PodStatsEntry]:
        if self.kind is not RuntimeKind.PODMAN:
            raise NotSupportedError("pod stats", self.kind.value)
        cancel = cancel or threading.Event()
        while not cancel.is_set():
            reports = self._get_json(
                "pod stats", self._libpod_url("/pods/stats"), params={"namesOrIDs": pod_id}
            )
            yield converters.aggregate_pod_stats(reports)
            if not stream or cancel.wait(POD_STATS_INTERVAL_SEC):
                return

    def events(self, *, cancel: Optional[threading.Event] = None) -> Iterator[Event]:
        raw_stream = self._call("events", self._api.events, decode=True)
        try:
            yield from read_stream(raw_stream, converters.event_from_api, cancel)
        except (ValueError, requests.exceptions.RequestException, OSError) as exc:
            raise translate_docker_error(exc, host=self.host, operation="events") from exc
