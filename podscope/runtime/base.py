"""Общий контракт всех адаптеров контейнерных движков."""

from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from enum import Enum
from typing import Dict, Iterator, List, Optional

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


class Feature(str, Enum):
    """Необязательные возможности, поддержка которых зависит от движка."""

    CONTAINER_EXEC = "container_exec"
    CONTAINER_ATTACH = "container_attach"
    CONTAINER_TOP = "container_top"
    EVENTS_STREAM = "events_stream"
    STATS = "stats"
    STATS_STREAM = "stats_stream"
    IMAGE_HISTORY = "image_history"
    IMAGE_PRUNE = "image_prune"
    IMAGE_REMOVE = "image_remove"
    VOLUME_PRUNE = "volume_prune"
    VOLUME_CREATE = "volume_create"
    NETWORK_PRUNE = "network_prune"
    CONTAINER_PRUNE = "container_prune"
    SERVICES = "services"
    PODS = "pods"
    BUILD_PLATFORM = "build_platform"
    RUN_PLATFORM = "run_platform"
    SSH_AGENT_FORWARD = "ssh_agent_forward"


class ContainerRuntime(ABC):
    """Единый интерфейс движка.

    Реализация выбирается один раз при старте и дальше не меняется.
    Потоковые методы возвращают генераторы и принимают ``cancel``: после
    установки события генератор прекращает чтение и освобождает поток
    или подпроцесс.
    """

    kind: RuntimeKind = RuntimeKind.DOCKER

    @property
    @abstractmethod
    def mode(self) -> str:
        """Короткое имя режима для строки состояния."""

    def supports(self, feature: Feature) -> bool:
        """Полнофункциональные движки поддерживают всё, кроме подов у Docker."""

        if feature is Feature.PODS:
            return self.kind is RuntimeKind.PODMAN
        return True

    @abstractmethod
    def close(self) -> None:
        """Освобождает соединения, процессы и временные файлы."""

    # ------------------------------------------------------------- containers
    @abstractmethod
    def list_containers(self, *, all_containers: bool = True) -> List[ContainerSummary]: ...

    @abstractmethod
    def inspect_container(self, container_id: str) -> ContainerDetails: ...

    @abstractmethod
    def start_container(self, container_id: str) -> None: ...

    @abstractmethod
    def stop_container(self, container_id: str, timeout: Optional[int] = None) -> None: ...

    @abstractmethod
    def pause_container(self, container_id: str) -> None: ...

    @abstractmethod
    def unpause_container(self, container_id: str) -> None: ...

    @abstractmethod
    def restart_container(self, container_id: str, timeout: Optional[int] = None) -> None: ...

    @abstractmethod
    def remove_container(
        self, container_id: str, *, force: bool = False, remove_volumes: bool = False
    ) -> None: ...

    @abstractmethod
    def container_top(self, container_id: str) -> TopResponse: ...

    @abstractmethod
    def prune_containers(self) -> None: ...

    @abstractmethod
    def container_stats(
        self,
        container_id: str,
        *,
        stream: bool = True,
        cancel: Optional[threading.Event] = None,
    ) -> Iterator[ContainerStatsEntry]: ...

    @abstractmethod
    def container_logs_command(
        self, container_id: str, *, follow: bool = True, tail: Optional[int] = None
    ) -> List[str]:
        """Возвращает argv для просмотра логов во внешнем терминале."""

    # ----------------------------------------------------------------- images
    @abstractmethod
    def list_images(self) -> List[ImageSummary]: ...

    @abstractmethod
    def inspect_image(self, image_id: str) -> ImageDetails: ...

    @abstractmethod
    def image_history(self, image_id: str) -> List[ImageHistoryEntry]: ...

    @abstractmethod
    def remove_image(self, image_id: str, *, force: bool = False) -> None: ...

    @abstractmethod
    def prune_images(self) -> None: ...

    # ------------------------------------------------------- volumes/networks
    @abstractmethod
    def list_volumes(self) -> List[VolumeSummary]: ...

    @abstractmethod
    def create_volume(self, name: str, options: Optional[Dict[str, str]] = None) -> None: ...

    @abstractmethod
    def remove_volume(self, name: str, *, force: bool = False) -> None: ...

    @abstractmethod
    def prune_volumes(self) -> None: ...

    @abstractmethod
    def list_networks(self) -> List[NetworkSummary]: ...

    @abstractmethod
    def remove_network(self, name: str) -> None: ...

    @abstractmethod
    def prune_networks(self) -> None: ...

    # ------------------------------------------------------------ pods/events
    @abstractmethod
    def list_pods(self) -> List[PodSummary]: ...

    @abstractmethod
    def pod_stats(
        self,
        pod_id: str,
        *,
        stream: bool = True,
        cancel: Optional[threading.Event] = None,
    ) -> Iterator[PodStatsEntry]: ...

    @abstractmethod
    def events(self, *, cancel: Optional[threading.Event] = None) -> Iterator[Event]: ...

    def __enter__(self) -> "ContainerRuntime":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()
