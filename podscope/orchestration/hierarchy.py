"""Плоский список подов и контейнеров, привязка сервисов compose."""

from __future__ import annotations

from typing import Dict, List, Optional, Set, Tuple

from podscope.orchestration.entities import Container, ContainerListItem, Pod, Service
from podscope.runtime.models import PodSummary

MEMBER_INDENT = 2


def build_container_list_items(
    containers: List[Container],
    pod_summaries: List[PodSummary],
    existing_pods: Optional[Dict[str, Pod]] = None,
) -> Tuple[List[ContainerListItem], List[Pod]]:
    """Строит строки списка: поды с участниками, затем контейнеры вне подов.

    Инфраструктурные контейнеры подов пропускаются. Под, на который
    ссылается контейнер, но которого нет в списке подов, создаётся из
    данных контейнера. Объекты Pod из ``existing_pods`` переиспользуются,
    чтобы не терять историю статистики.
    """

    existing_pods = existing_pods or {}
    visible = [container for container in containers if not container.summary.is_infra]

    summaries: Dict[str, PodSummary] = {summary.id: summary for summary in pod_summaries}
    for container in visible:
        pod_id = container.summary.pod
        if pod_id and pod_id not in summaries:
            summaries[pod_id] = PodSummary(id=pod_id, name=container.summary.pod_name or pod_id)

    pods: List[Pod] = []
    for summary in summaries.values():
        pod = existing_pods.get(summary.id)
        if pod is None:
            pod = Pod(summary)
        else:
            pod.summary = summary
            pod.name = summary.name or summary.id
        pod.containers = [container for container in visible if container.summary.pod == summary.id]
        pods.append(pod)
    pods.sort(key=lambda pod: pod.name)

    items: List[ContainerListItem] = []
    for pod in pods:
        items.append(ContainerListItem(is_pod=True, pod=pod))
        items.extend(
            ContainerListItem(is_pod=False, pod=pod, container=member, indent=MEMBER_INDENT)
            for member in pod.containers
        )
    items.extend(
        ContainerListItem(is_pod=False, container=container)
        for container in visible
        if not container.summary.pod
    )
    return items, pods


def assign_services(service_names: List[str], containers: List[Container]) -> List[Service]:
    """Каждому сервису достаётся первый подходящий контейнер не из разовых запусков."""

    taken: Set[str] = set()
    services: List[Service] = []
    for name in service_names:
        match = next(
            (
                container
                for container in containers
                if container.service_name == name and not container.one_off and container.id not in taken
            ),
            None,
        )
        if match is not None:
            taken.add(match.id)
        services.append(Service(id=name, name=name, container=match))
    return services


def sort_services(services: List[Service]) -> List[Service]:
    """Сначала сервисы с контейнером, внутри групп по имени."""

    return sorted(services, key=lambda service: (service.container is None, service.name))


def standalone_containers(containers: List[Container], services: List[Service]) -> List[Container]:
    attached = {service.container.id for service in services if service.container is not None}
    return [container for container in containers if container.id not in attached]
