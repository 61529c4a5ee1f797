"""Адаптер высокоуровневого docker SDK (``docker.DockerClient``).

Запасной путь для Docker Engine: объекты Container, Image и Volume из SDK
переводятся в общие модели через их ``attrs``.
"""

from __future__ import annotations

import logging
import threading
from typing import Any, Callable, Dict, Iterator, List, Optional, TypeVar

import docker
import requests
from docker.errors import DockerException

from podscope.runtime import converters
from podscope.runtime.base import ContainerRuntime
from podscope.runtime.exceptions import ConnectivityError, NotSupportedError
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
from podscope.runtime.socket_runtime import open_json_stream, read_stream, translate_docker_error

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")


class SdkRuntime(ContainerRuntime):
    """Docker Engine через ``docker.DockerClient``."""

    kind = RuntimeKind.DOCKER

    def __init__(self, host: str, *, timeout: int = 5, raw_client: Any | None = None) -> None:
        self.host = host
        self._client = raw_client or self._create_client(timeout)

    def _create_client(self, timeout: int) -> Any:
        try:
            client = docker.DockerClient(base_url=self.host, timeout=timeout)
            client.ping()
            return client
        except (DockerException, requests.exceptions.RequestException) as exc:
            LOGGER.error("Docker client init error via %s: %s", self.host, exc)
            raise ConnectivityError(f"cannot connect to {self.host}: {exc}", host=self.host) from exc

    @property
    def mode(self) -> str:
        return "sdk"

    def get_raw_client(self) -> Any:
        """Возвращает внутренний docker client."""

        return self._client

    def close(self) -> None:
        try:
            self._client.close()
        except (DockerException, requests.exceptions.RequestException, OSError) as exc:  # pragma: no cover
            LOGGER.warning("Closing docker client for %s failed: %s", self.host, exc)

    # ------------------------------------------------------------------ helpers
    def _call(self, operation: str, func: Callable[..., T], *args: Any, target: str = "", **kwargs: Any) -> T:
        try:
            return func(*args, **kwargs)
        except (DockerException, requests.exceptions.RequestException, OSError) as exc:
            raise translate_docker_error(exc, host=self.host, operation=operation, target=target) from exc

    def _container(self, container_id: str) -> Any:
        return self._call("get container", self._client.containers.get, container_id, target=container_id)

    # --------------------------------------------------------------- containers
    def list_containers(self, *, all_containers: bool = True) -> List[ContainerSummary]:
        items = self._call("list containers", self._client.containers.list, all=all_containers, sparse=True)
        return [converters.container_summary_from_api(getattr(item, "attrs", {}) or {}) for item in items]

    def inspect_container(self, container_id: str) -> ContainerDetails:
        return converters.container_details_from_api(getattr(self._container(container_id), "attrs", {}) or {})

    def start_container(self, container_id: str) -> None:
        """Запускает контейнер; приостановленный контейнер снимается с паузы."""

        container = self._container(container_id)
        if getattr(container, "status", "") == "paused":
            self._call("unpause container", container.unpause, target=container_id)
            return
        self._call("start container", container.start, target=container_id)

    def stop_container(self, container_id: str, timeout: Optional[int] = None) -> None:
        kwargs = {"timeout": timeout} if timeout is not None else {}
        self._call("stop container", self._container(container_id).stop, target=container_id, **kwargs)

    def pause_container(self, container_id: str) -> None:
        self._call("pause container", self._container(container_id).pause, target=container_id)

    def unpause_container(self, container_id: str) -> None:
        self._call("unpause container", self._container(container_id).unpause, target=container_id)

    def restart_container(self, container_id: str, timeout: Optional[int] = None) -> None:
        kwargs = {"timeout": timeout} if timeout is not None else {}
        self._call("restart container", self._container(container_id).restart, target=container_id, **kwargs)

    def remove_container(self, container_id: str, *, force: bool = False, remove_volumes: bool = False) -> None:
        self._call(
            "remove container",
            self._container(container_id).remove,
            v=remove_volumes,
            force=force,
            target=container_id,
        )

    def container_top(self, container_id: str) -> TopResponse:
        data = self._call("container top", self._container(container_id).top, target=container_id)
        return converters.top_from_api(converters.as_dict(data))

    def prune_containers(self) -> None:
        self._call("prune containers", self._client.containers.prune)

    def container_stats(
        self,
        container_id: str,
        *,
        stream: bool = True,
        cancel: Optional[threading.Event] = None,
    ) -> Iterator[ContainerStatsEntry]:
        if not stream:
            data = self._call(
                "container stats", self._container(container_id).stats, stream=False, target=container_id
            )
            yield converters.stats_entry_from_api(converters.as_dict(data))
            return
        api = self._client.api
        url = f"{api.base_url}/v{api.api_version}/containers/{container_id}/stats"
        raw_stream = self._call("container stats", open_json_stream, api, url, {"stream": True})
        try:
            yield from read_stream(raw_stream, converters.stats_entry_from_api, cancel)
        except (ValueError, requests.exceptions.RequestException, OSError) as exc:
            raise translate_docker_error(exc, host=self.host, operation="container stats") from exc

    def container_logs_command(
        self, container_id: str, *, follow: bool = True, tail: Optional[int] = None
    ) -> List[str]:
        argv = ["docker", "logs", "--timestamps"]
        if follow:
            argv.append("--follow")
        if tail is not None:
            argv.extend(["--tail", str(tail)])
        argv.append(container_id)
        return argv

    # ------------------------------------------------------------------- images
    def list_images(self) -> List[ImageSummary]:
        items = self._call("list images", self._client.images.list)
        return [converters.image_summary_from_api(getattr(item, "attrs", {}) or {}) for item in items]

    def inspect_image(self, image_id: str) -> ImageDetails:
        image = self._call("inspect image", self._client.images.get, image_id, target=image_id)
        return converters.image_details_from_api(getattr(image, "attrs", {}) or {})

    def image_history(self, image_id: str) -> List[ImageHistoryEntry]:
        image = self._call("image history", self._client.images.get, image_id, target=image_id)
        return converters.image_history_from_api(self._call("image history", image.history, target=image_id))

    def remove_image(self, image_id: str, *, force: bool = False) -> None:
        self._call("remove image", self._client.images.remove, image_id, force=force, target=image_id)

    def prune_images(self) -> None:
        self._call("prune images", self._client.images.prune)

    # --------------------------------------------------------- volumes/networks
    def list_volumes(self) -> List[VolumeSummary]:
        items = self._call("list volumes", self._client.volumes.list)
        usage = self._load_usage_data()
        result = []
        for item in items:
            summary = converters.volume_summary_from_api(getattr(item, "attrs", {}) or {})
            if summary.usage_data is None and summary.name in usage:
                summary.usage_data = usage[summary.name]
            result.append(summary)
        return result

    def _load_usage_data(self) -> Dict[str, Any]:
        """Размеры томов из ``docker system df``; недоступность не критична."""

        try:
            df_data = self._client.df()
        except (DockerException, requests.exceptions.RequestException) as exc:  # pragma: no cover
            LOGGER.debug("Volume usage unavailable on %s: %s", self.host, exc)
            return {}
        usage = {}
        for item in converters.as_dict(df_data).get("Volumes") or []:
            summary = converters.volume_summary_from_api(converters.as_dict(item))
            if summary.name and summary.usage_data is not None:
                usage[summary.name] = summary.usage_data
        return usage

    def create_volume(self, name: str, options: Optional[Dict[str, str]] = None) -> None:
        self._call("create volume", self._client.volumes.create, name=name, driver_opts=options or None, target=name)

    def remove_volume(self, name: str, *, force: bool = False) -> None:
        volume = self._call("remove volume", self._client.volumes.get, name, target=name)
        self._call("remove volume", volume.remove, force=force, target=name)

    def prune_volumes(self) -> None:
        self._call("prune volumes", self._client.volumes.prune)

    def list_networks(self) -> List[NetworkSummary]:
        items = self._call("list networks", self._client.networks.list)
        return [converters.network_summary_from_api(getattr(item, "attrs", {}) or {}) for item in items]

    def remove_network(self, name: str) -> None:
        network = self._call("remove network", self._client.networks.get, name, target=name)
        self._call("remove network", network.remove, target=name)

    def prune_networks(self) -> None:
        self._call("prune networks", self._client.networks.prune)

    # -------------------------------------------------------------- pods/events
    def list_pods(self) -> List[PodSummary]:
        return []

    def pod_stats(
        self,
        pod_id: str,
        *,
        stream: bool = True,
        cancel: Optional[threading.Event] = None,
    ) -> Iterator[PodStatsEntry]:
        raise NotSupportedError("pod stats", "docker")

    def events(self, *, cancel: Optional[threading.Event] = None) -> Iterator[Event]:
        raw_stream = self._call("events", self._client.events, decode=True)
        try:
            yield from read_stream(raw_stream, converters.event_from_api, cancel)
        except (ValueError, requests.exceptions.RequestException, OSError) as exc:
            raise translate_docker_error(exc, host=self.host, operation="events") from exc
