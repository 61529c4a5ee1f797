"""Фоновый сбор статистики контейнеров и подов."""

from __future__ import annotations

import logging
import threading
from datetime import timedelta
from typing import Iterator, List, Optional, Union

from podscope.orchestration.entities import Container, DerivedStats, Pod, RecordedStats
from podscope.runtime.base import ContainerRuntime, Feature
from podscope.runtime.exceptions import NotSupportedError, RuntimeAPIError
from podscope.runtime.models import ContainerStatsEntry, PodStatsEntry
from podscope.settings.registry import SettingsRegistry

LOGGER = logging.getLogger(__name__)

JOIN_TIMEOUT_SEC = 5.0


def derive_cpu_percent(entry: ContainerStatsEntry) -> float:
    """Доля CPU в процентах по разнице двух соседних замеров."""

    cpu_delta = entry.cpu_stats.cpu_usage.total_usage - entry.pre_cpu_stats.cpu_usage.total_usage
    system_delta = entry.cpu_stats.system_cpu_usage - entry.pre_cpu_stats.system_cpu_usage
    if cpu_delta > 0 and system_delta > 0:
        return cpu_delta / system_delta * 100.0
    return 0.0


def derive_memory_percent(entry: ContainerStatsEntry) -> float:
    limit = entry.memory_stats.limit
    if limit > 0:
        return entry.memory_stats.usage / limit * 100.0
    return 0.0


def derive_stats(entry: Union[ContainerStatsEntry, PodStatsEntry]) -> DerivedStats:
    if isinstance(entry, PodStatsEntry):
        return DerivedStats(cpu_percent=entry.cpu, memory_percent=entry.memory)
    return DerivedStats(cpu_percent=derive_cpu_percent(entry), memory_percent=derive_memory_percent(entry))


def chain_samples(entry: ContainerStatsEntry, previous: Optional[ContainerStatsEntry]) -> ContainerStatsEntry:
    """Подставляет предыдущий замер, если движок не прислал свой pre_cpu_stats."""

    if previous is None:
        return entry
    pre_system = entry.pre_cpu_stats.system_cpu_usage
    if pre_system == 0 or pre_system == entry.cpu_stats.system_cpu_usage:
        entry.pre_cpu_stats = previous.cpu_stats
    return entry


class StatsMonitor:
    """Запускает по одному потоку сбора на контейнер или под.

    Поток пишет замеры в историю сущности и завершается по концу потока
    данных, ошибке или ``stop_all``.
    """

    def __init__(self, runtime: ContainerRuntime, settings: SettingsRegistry) -> None:
        self._runtime = runtime
        self._settings = settings
        self._cancel = threading.Event()
        self._threads: List[threading.Thread] = []
        self._lock = threading.Lock()

    @property
    def max_duration(self) -> timedelta:
        return timedelta(seconds=int(self._settings.get_value("stats", "max_duration_sec", default=120)))

    @property
    def poll_interval(self) -> float:
        return int(self._settings.get_value("stats", "poll_interval_ms", default=1000)) / 1000.0

    def ensure_monitoring(self, entity: Union[Container, Pod]) -> bool:
        """Запускает сбор, если он ещё не идёт; возвращает True при запуске."""

        if not self._settings.get_value("stats", "enabled", default=True):
            return False
        if not entity.try_begin_monitoring():
            return False
        target = self._run_pod if isinstance(entity, Pod) else self._run_container
        with self._lock:
            cancel = self._cancel
            thread = threading.Thread(
                target=target, args=(entity, cancel), name=f"stats-{entity.id[:12]}", daemon=True
            )
            self._threads = [item for item in self._threads if item.is_alive()]
            self._threads.append(thread)
        thread.start()
        return True

    def stop_all(self) -> None:
        """Останавливает все потоки сбора и ждёт их завершения.

        Событие отмены выдаётся потоку при регистрации, поэтому поток,
        зарегистрированный до вызова, получает уже отменённое событие.
        """

        with self._lock:
            cancel, self._cancel = self._cancel, threading.Event()
            threads, self._threads = self._threads, []
        cancel.set()
        for thread in threads:
            thread.join(JOIN_TIMEOUT_SEC)

    # ------------------------------------------------------------------ workers
    def _record(self, entity: Union[Container, Pod], entry: Union[ContainerStatsEntry, PodStatsEntry]) -> None:
        entity.append_stats(RecordedStats(raw=entry, derived=derive_stats(entry)), self.max_duration)

    def _consume(self, entity: Union[Container, Pod], stream: Iterator, cancel: threading.Event) -> None:
        try:
            for entry in stream:
                if cancel.is_set():
                    break
                self._record(entity, entry)
        finally:
            close = getattr(stream, "close", None)
            if close is not None:
                close()

    def _run_container(self, container: Container, cancel: threading.Event) -> None:
        try:
            if self._runtime.supports(Feature.STATS_STREAM):
                self._consume(container, self._runtime.container_stats(container.id, stream=True, cancel=cancel), cancel)
            else:
                self._poll_container(container, cancel)
        except NotSupportedError as exc:
            LOGGER.info("Stats for container %s unavailable: %s", container.id, exc.message)
        except RuntimeAPIError as exc:
            LOGGER.warning("Stats for container %s stopped: %s", container.id, exc.message)
        finally:
            container.end_monitoring()
            LOGGER.debug("Stats monitor for container %s finished", container.id)

    def _poll_container(self, container: Container, cancel: threading.Event) -> None:
        previous: Optional[ContainerStatsEntry] = None
        while not cancel.is_set():
            entry = next(iter(self._runtime.container_stats(container.id, stream=False)), None)
            if entry is None:
                return
            entry = chain_samples(entry, previous)
            self._record(container, entry)
            previous = entry
            if cancel.wait(self.poll_interval):
                return

    def _run_pod(self, pod: Pod, cancel: threading.Event) -> None:
        try:
            self._consume(pod, self._runtime.pod_stats(pod.id, stream=True, cancel=cancel), cancel)
        except NotSupportedError as exc:
            LOGGER.info("Stats for pod %s unavailable: %s", pod.id, exc.message)
        except RuntimeAPIError as exc:
            LOGGER.warning("Stats for pod %s stopped: %s", pod.id, exc.message)
        finally:
            pod.end_monitoring()
            LOGGER.debug("Stats monitor for pod %s finished", pod.id)
