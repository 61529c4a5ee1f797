"""Менеджер живых данных дашборда поверх выбранного адаптера движка.

Держит актуальные списки контейнеров, подов, сервисов, образов, томов и
сетей и выполняет над ними операции. Каждый вид данных обновляется под
своей блокировкой обновления: она держится от запроса к движку до
публикации результата, поэтому перекрывающиеся обновления не затирают
свежий список устаревшим. Снимки читаются под короткими блокировками.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, Dict, Iterable, List, Optional, Union

from podscope.discovery.tunnel import SSHTunnel
from podscope.orchestration.compose import ComposeProject
from podscope.orchestration.entities import Container, ContainerListItem, Pod, Service
from podscope.orchestration.hierarchy import (
    assign_services,
    build_container_list_items,
    sort_services,
    standalone_containers,
)
from podscope.orchestration.stats import StatsMonitor
from podscope.runtime.base import ContainerRuntime, Feature
from podscope.runtime.exceptions import NotSupportedError, RuntimeAPIError
from podscope.runtime.models import (
    ContainerDetails,
    ImageDetails,
    ImageHistoryEntry,
    ImageSummary,
    NetworkSummary,
    PodSummary,
    TopResponse,
    VolumeSummary,
)
from podscope.settings.registry import SettingsRegistry

LOGGER = logging.getLogger(__name__)

MAX_DETAIL_WORKERS = 8
DEFAULT_LOG_TAIL = 300


class RuntimeManager:
    """Предоставляет высокоуровневый API для работы с данными движка."""

    def __init__(
        self,
        runtime: ContainerRuntime,
        settings: SettingsRegistry,
        *,
        compose: Optional[ComposeProject] = None,
        tunnel: Optional[SSHTunnel] = None,
        monitor: Optional[StatsMonitor] = None,
    ) -> None:
        self._runtime = runtime
        self._settings = settings
        self._compose = compose
        self._tunnel = tunnel
        self._monitor = monitor or StatsMonitor(runtime, settings)

        self._containers_lock = threading.Lock()
        self._services_lock = threading.Lock()
        self._pods_lock = threading.Lock()
        self._images_lock = threading.Lock()
        self._volumes_lock = threading.Lock()
        self._networks_lock = threading.Lock()

        self._containers_refresh_lock = threading.Lock()
        self._images_refresh_lock = threading.Lock()
        self._volumes_refresh_lock = threading.Lock()
        self._networks_refresh_lock = threading.Lock()

        self._containers: List[Container] = []
        self._container_items: List[ContainerListItem] = []
        self._pods: List[Pod] = []
        self._services: List[Service] = []
        self._service_names: Optional[List[str]] = None
        self._images: List[ImageSummary] = []
        self._volumes: List[VolumeSummary] = []
        self._networks: List[NetworkSummary] = []

    @property
    def runtime(self) -> ContainerRuntime:
        return self._runtime

    @property
    def stats_monitor(self) -> StatsMonitor:
        return self._monitor

    # ------------------------------------------------------------------ helpers
    def _find_container(self, container_id: str) -> Optional[Container]:
        with self._containers_lock:
            return next((item for item in self._containers if item.id == container_id), None)

    def _perform(self, description: str, target: str, func: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
        """Выполняет операцию движка, логируя неудачу перед пробросом."""

        try:
            return func(*args, **kwargs)
        except RuntimeAPIError as exc:
            LOGGER.error("Cannot %s %s: %s", description, target, exc.message)
            raise

    def _load_pods(self) -> List[PodSummary]:
        if not self._runtime.supports(Feature.PODS):
            return []
        try:
            return self._runtime.list_pods()
        except NotSupportedError:
            return []
        except RuntimeAPIError as exc:
            LOGGER.warning("Pod listing failed, continuing without pods: %s", exc.message)
            return []

    def _load_service_names(self) -> List[str]:
        # вызывается только под _containers_refresh_lock
        if self._service_names is not None:
            return self._service_names
        if self._compose is None:
            return []
        try:
            self._service_names = self._compose.services()
        except RuntimeAPIError as exc:
            LOGGER.warning("Compose services unavailable: %s", exc.message)
            return []
        return self._service_names

    # ---------------------------------------------------------------- refreshes
    def refresh_containers_and_services(self) -> List[ContainerListItem]:
        """Перечитывает контейнеры, поды и сервисы; возвращает строки списка.

        Движок всегда опрашивается со всеми контейнерами, иначе сервисы не
        найдут остановленные контейнеры. Настройка ``show_all_containers``
        влияет только на отображаемые строки: при ``False`` в списке остаются
        поды и контейнеры, не привязанные к сервисам compose.
        """

        with self._containers_refresh_lock:
            summaries = self._perform("list", "containers", self._runtime.list_containers, all_containers=True)

            with self._containers_lock:
                existing = {item.id: item for item in self._containers}
                containers: List[Container] = []
                for summary in summaries:
                    container = existing.get(summary.id)
                    if container is None:
                        container = Container(summary)
                    else:
                        container.update_summary(summary)
                    containers.append(container)
                self._containers = containers

            services = sort_services(assign_services(self._load_service_names(), containers))
            with self._services_lock:
                self._services = services

            pod_summaries = self._load_pods()
            show_all = bool(self._settings.get_value("runtime", "show_all_containers", default=True))
            with self._pods_lock:
                items, pods = build_container_list_items(
                    containers, pod_summaries, {pod.id: pod for pod in self._pods}
                )
                if not show_all:
                    shown = {container.id for container in standalone_containers(containers, services)}
                    items = [item for item in items if item.is_pod or item.container.id in shown]
                self._pods = pods
                self._container_items = items

        LOGGER.debug(
            "Refreshed %d containers, %d pods, %d services", len(containers), len(pods), len(services)
        )
        return list(items)

    def refresh_images(self) -> List[ImageSummary]:
        with self._images_refresh_lock:
            images = self._perform("list", "images", self._runtime.list_images)
            with self._images_lock:
                self._images = images
        return list(images)

    def refresh_volumes(self) -> List[VolumeSummary]:
        with self._volumes_refresh_lock:
            volumes = self._perform("list", "volumes", self._runtime.list_volumes)
            with self._volumes_lock:
                self._volumes = volumes
        return list(volumes)

    def refresh_networks(self) -> List[NetworkSummary]:
        with self._networks_refresh_lock:
            networks = self._perform("list", "networks", self._runtime.list_networks)
            with self._networks_lock:
                self._networks = networks
        return list(networks)

    # ---------------------------------------------------------------- snapshots
    def containers(self) -> List[Container]:
        with self._containers_lock:
            return list(self._containers)

    def container_items(self) -> List[ContainerListItem]:
        with self._pods_lock:
            return list(self._container_items)

    def pods(self) -> List[Pod]:
        with self._pods_lock:
            return list(self._pods)

    def services(self) -> List[Service]:
        with self._services_lock:
            return list(self._services)

    def standalone_containers(self) -> List[Container]:
        """Контейнеры, не привязанные ни к одному сервису."""

        return standalone_containers(self.containers(), self.services())

    def images(self) -> List[ImageSummary]:
        with self._images_lock:
            return list(self._images)

    def volumes(self) -> List[VolumeSummary]:
        with self._volumes_lock:
            return list(self._volumes)

    def networks(self) -> List[NetworkSummary]:
        with self._networks_lock:
            return list(self._networks)

    # --------------------------------------------------------------- containers
    def start_container(self, container_id: str) -> None:
        self._perform("start container", container_id, self._runtime.start_container, container_id)

    def stop_container(self, container_id: str, timeout: Optional[int] = None) -> None:
        self._perform("stop container", container_id, self._runtime.stop_container, container_id, timeout)

    def pause_container(self, container_id: str) -> None:
        self._perform("pause container", container_id, self._runtime.pause_container, container_id)

    def unpause_container(self, container_id: str) -> None:
        self._perform("unpause container", container_id, self._runtime.unpause_container, container_id)

    def restart_container(self, container_id: str, timeout: Optional[int] = None) -> None:
        self._perform("restart container", container_id, self._runtime.restart_container, container_id, timeout)

    def remove_container(self, container_id: str, *, force: bool = False, remove_volumes: bool = False) -> None:
        self._perform(
            "remove container",
            container_id,
            self._runtime.remove_container,
            container_id,
            force=force,
            remove_volumes=remove_volumes,
        )

    def inspect(self, container_id: str) -> ContainerDetails:
        """Возвращает подробности контейнера, запрашивая их только один раз."""

        container = self._find_container(container_id)
        if container is not None and container.details is not None:
            return container.details
        details = self._perform("inspect container", container_id, self._runtime.inspect_container, container_id)
        if container is not None:
            container.details = details
        return details

    def load_details(self, container_ids: Optional[Iterable[str]] = None) -> Dict[str, ContainerDetails]:
        """Параллельно загружает подробности; неудачные запросы пропускаются."""

        ids = list(container_ids) if container_ids is not None else [item.id for item in self.containers()]
        if not ids:
            return {}
        result: Dict[str, ContainerDetails] = {}
        with ThreadPoolExecutor(max_workers=min(MAX_DETAIL_WORKERS, len(ids))) as executor:
            futures = {container_id: executor.submit(self.inspect, container_id) for container_id in ids}
            for container_id, future in futures.items():
                try:
                    result[container_id] = future.result()
                except RuntimeAPIError:
                    continue
        return result

    def top(self, container_id: str) -> TopResponse:
        return self._perform("list processes of", container_id, self._runtime.container_top, container_id)

    def logs_command(self, container_id: str, *, tail: int = DEFAULT_LOG_TAIL) -> List[str]:
        return self._runtime.container_logs_command(container_id, follow=True, tail=tail)

    def monitor_stats(self) -> int:
        """Запускает сбор статистики для всех известных контейнеров и подов.

        Сущности, для которых сбор уже идёт, пропускаются; возвращает число
        запущенных задач.
        """

        started = 0
        entities: List[Union[Container, Pod]] = [*self.containers(), *self.pods()]
        for entity in entities:
            if self._monitor.ensure_monitoring(entity):
                started += 1
        if started:
            LOGGER.debug("Started stats monitoring for %d entities", started)
        return started

    def monitor_entity_stats(self, entity: Union[Container, Pod]) -> bool:
        """Запускает сбор статистики одной сущности, если он ещё не идёт."""

        return self._monitor.ensure_monitoring(entity)

    # --------------------------------------------------- images/volumes/networks
    def inspect_image(self, image_id: str) -> ImageDetails:
        return self._perform("inspect image", image_id, self._runtime.inspect_image, image_id)

    def image_history(self, image_id: str) -> List[ImageHistoryEntry]:
        return self._perform("read history of image", image_id, self._runtime.image_history, image_id)

    def remove_image(self, image_id: str, *, force: bool = False) -> None:
        self._perform("remove image", image_id, self._runtime.remove_image, image_id, force=force)

    def create_volume(self, name: str, options: Optional[Dict[str, str]] = None) -> None:
        self._perform("create volume", name, self._runtime.create_volume, name, options)

    def remove_volume(self, name: str, *, force: bool = False) -> None:
        self._perform("remove volume", name, self._runtime.remove_volume, name, force=force)

    def remove_network(self, name: str) -> None:
        self._perform("remove network", name, self._runtime.remove_network, name)

    # ------------------------------------------------------------------- prunes
    def prune_containers(self) -> List[ContainerListItem]:
        self._perform("prune", "containers", self._runtime.prune_containers)
        return self.refresh_containers_and_services()

    def prune_images(self) -> List[ImageSummary]:
        self._perform("prune", "images", self._runtime.prune_images)
        return self.refresh_images()

    def prune_volumes(self) -> List[VolumeSummary]:
        self._perform("prune", "volumes", self._runtime.prune_volumes)
        return self.refresh_volumes()

    def prune_networks(self) -> List[NetworkSummary]:
        self._perform("prune", "networks", self._runtime.prune_networks)
        return self.refresh_networks()

    # ------------------------------------------------------------------ compose
    def view_all_logs_command(self) -> List[str]:
        if self._compose is None:
            return []
        return self._compose.view_all_logs_command()

    def compose_config(self) -> str:
        if self._compose is None:
            return ""
        return self._perform("read", "compose config", self._compose.config)

    def close(self) -> None:
        """Останавливает сбор статистики, закрывает движок и туннель."""

        self._monitor.stop_all()
        try:
            self._runtime.close()
        finally:
            if self._tunnel is not None:
                self._tunnel.close()
        LOGGER.info("Runtime manager closed")
