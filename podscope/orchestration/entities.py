"""Живые объекты дашборда: контейнеры, поды, сервисы compose."""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import List, Optional, Union

from podscope.runtime.models import ContainerDetails, ContainerStatsEntry, ContainerSummary, PodStatsEntry, PodSummary

SERVICE_LABELS = ("com.docker.compose.service", "io.podman.compose.service", "com.compose.service")
PROJECT_LABEL = "com.docker.compose.project"
CONTAINER_NUMBER_LABEL = "com.docker.compose.container"
ONE_OFF_LABEL = "com.docker.compose.oneoff"
NAME_LABEL = "name"


@dataclass(slots=True)
class DerivedStats:
    """Проценты, посчитанные из сырой статистики."""

    cpu_percent: float = 0.0
    memory_percent: float = 0.0


@dataclass(slots=True)
class RecordedStats:
    raw: Union[ContainerStatsEntry, PodStatsEntry]
    derived: DerivedStats
    recorded_at: datetime = field(default_factory=datetime.now)


def container_name(summary: ContainerSummary) -> str:
    """Имя для отображения: метка ``name``, первое имя без "/", иначе id."""

    label = summary.labels.get(NAME_LABEL, "")
    if label:
        return label
    if summary.names:
        return summary.names[0].lstrip("/")
    return summary.id


class _StatsHolder:
    """История статистики и флаг мониторинга под общей блокировкой."""

    def __init__(self) -> None:
        self.stats_lock = threading.Lock()
        self.monitoring_stats = False
        self.stats: List[RecordedStats] = []

    def try_begin_monitoring(self) -> bool:
        """Ставит флаг мониторинга; False, если он уже стоял."""

        with self.stats_lock:
            if self.monitoring_stats:
                return False
            self.monitoring_stats = True
            return True

    def end_monitoring(self) -> None:
        with self.stats_lock:
            self.monitoring_stats = False

    def append_stats(self, record: RecordedStats, max_duration: timedelta) -> None:
        """Добавляет запись и отбрасывает записи старше ``max_duration``."""

        with self.stats_lock:
            self.stats.append(record)
            cutoff = record.recorded_at - max_duration
            self.stats = [item for item in self.stats if item.recorded_at >= cutoff]

    def last_stats(self) -> Optional[RecordedStats]:
        with self.stats_lock:
            return self.stats[-1] if self.stats else None

    def stats_snapshot(self) -> List[RecordedStats]:
        with self.stats_lock:
            return list(self.stats)


class Container(_StatsHolder):
    """Контейнер вместе с разобранными метками compose."""

    def __init__(self, summary: ContainerSummary) -> None:
        super().__init__()
        self.details: Optional[ContainerDetails] = None
        self.update_summary(summary)

    def update_summary(self, summary: ContainerSummary) -> None:
        """Обновляет снимок из листинга, сохраняя историю статистики."""

        self.summary = summary
        self.id = summary.id
        self.name = container_name(summary)
        labels = summary.labels
        self.service_name = next((labels[key] for key in SERVICE_LABELS if labels.get(key)), "")
        self.project_name = labels.get(PROJECT_LABEL, "")
        self.container_number = labels.get(CONTAINER_NUMBER_LABEL, "")
        self.one_off = labels.get(ONE_OFF_LABEL) == "True"

    @property
    def state(self) -> str:
        return self.summary.state

    def __repr__(self) -> str:
        return f"Container(id={self.id!r}, name={self.name!r})"


class Pod(_StatsHolder):
    def __init__(self, summary: PodSummary) -> None:
        super().__init__()
        self.summary = summary
        self.id = summary.id
        self.name = summary.name or summary.id
        self.containers: List[Container] = []

    def __repr__(self) -> str:
        return f"Pod(id={self.id!r}, name={self.name!r})"


@dataclass(slots=True)
class Service:
    """Сервис compose-проекта и привязанный к нему контейнер."""

    id: str
    name: str
    container: Optional[Container] = None


@dataclass(slots=True)
class ContainerListItem:
    """Строка плоского списка: под или контейнер с отступом."""

    is_pod: bool
    pod: Optional[Pod] = None
    container: Optional[Container] = None
    indent: int = 0
