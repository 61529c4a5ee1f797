"""Независимые от движка структуры данных.

Адаптеры переводят ответы Docker, Podman и Apple container в эти типы,
поэтому слой оркестрации никогда не видит нативные форматы движков.
Производные проценты CPU и памяти здесь не хранятся: они вычисляются по
соседним записям статистики.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional


class RuntimeKind(str, Enum):
    """Семейство контейнерного движка."""

    DOCKER = "docker"
    PODMAN = "podman"
    APPLE = "apple"


# ------------------------------------------------------------------ containers
@dataclass(slots=True)
class PortMapping:
    ip: str = ""
    private_port: int = 0
    public_port: int = 0
    type: str = "tcp"


@dataclass(slots=True)
class ContainerSummary:
    """Строка списка контейнеров, обновляется на каждом цикле."""

    id: str
    names: List[str] = field(default_factory=list)
    image: str = ""
    image_id: str = ""
    command: str = ""
    created: int = 0
    state: str = ""
    status: str = ""
    ports: List[PortMapping] = field(default_factory=list)
    labels: Dict[str, str] = field(default_factory=dict)
    size_rw: int = 0
    size_root_fs: int = 0
    pod: str = ""  # пусто для контейнеров вне пода
    pod_name: str = ""
    is_infra: bool = False
    address: str = ""  # адрес контейнера, если движок его сообщает


@dataclass(slots=True)
class HealthLog:
    start: str = ""
    end: str = ""
    exit_code: int = 0
    output: str = ""


@dataclass(slots=True)
class HealthState:
    status: str = ""
    failing_streak: int = 0
    log: List[HealthLog] = field(default_factory=list)


@dataclass(slots=True)
class ContainerState:
    status: str = ""
    running: bool = False
    paused: bool = False
    restarting: bool = False
    oom_killed: bool = False
    dead: bool = False
    pid: int = 0
    exit_code: int = 0
    error: str = ""
    started_at: str = ""
    finished_at: str = ""
    health: Optional[HealthState] = None


@dataclass(slots=True)
class ContainerConfig:
    hostname: str = ""
    domainname: str = ""
    user: str = ""
    tty: bool = False
    open_stdin: bool = False
    env: List[str] = field(default_factory=list)
    cmd: List[str] = field(default_factory=list)
    image: str = ""
    working_dir: str = ""
    entrypoint: List[str] = field(default_factory=list)
    labels: Dict[str, str] = field(default_factory=dict)
    exposed_ports: List[str] = field(default_factory=list)
    stop_signal: str = ""


@dataclass(slots=True)
class PortBinding:
    host_ip: str = ""
    host_port: str = ""


@dataclass(slots=True)
class EndpointSettings:
    network_id: str = ""
    endpoint_id: str = ""
    gateway: str = ""
    ip_address: str = ""
    ip_prefix_len: int = 0
    ipv6_gateway: str = ""
    global_ipv6_address: str = ""
    mac_address: str = ""
    aliases: List[str] = field(default_factory=list)


@dataclass(slots=True)
class NetworkSettings:
    sandbox_id: str = ""
    sandbox_key: str = ""
    ports: Dict[str, List[PortBinding]] = field(default_factory=dict)
    networks: Dict[str, EndpointSettings] = field(default_factory=dict)


@dataclass(slots=True)
class Mount:
    type: str = ""
    name: str = ""
    source: str = ""
    destination: str = ""
    driver: str = ""
    mode: str = ""
    rw: bool = True
    propagation: str = ""


@dataclass(slots=True)
class ContainerDetails:
    """Полный результат inspect, заменяется целиком при обновлении."""

    id: str
    name: str = ""
    created: str = ""
    path: str = ""
    args: List[str] = field(default_factory=list)
    state: ContainerState = field(default_factory=ContainerState)
    image: str = ""
    image_id: str = ""
    restart_count: int = 0
    driver: str = ""
    platform: str = ""
    config: ContainerConfig = field(default_factory=ContainerConfig)
    network_settings: NetworkSettings = field(default_factory=NetworkSettings)
    mounts: List[Mount] = field(default_factory=list)


@dataclass(slots=True)
class TopResponse:
    titles: List[str] = field(default_factory=list)
    processes: List[List[str]] = field(default_factory=list)


# ----------------------------------------------------------------------- stats
@dataclass(slots=True)
class CPUUsage:
    total_usage: int = 0
    percpu_usage: List[int] = field(default_factory=list)
    usage_in_kernelmode: int = 0
    usage_in_usermode: int = 0


@dataclass(slots=True)
class CPUStats:
    cpu_usage: CPUUsage = field(default_factory=CPUUsage)
    system_cpu_usage: int = 0
    online_cpus: int = 0


@dataclass(slots=True)
class MemoryStats:
    usage: int = 0
    max_usage: int = 0
    limit: int = 0


@dataclass(slots=True)
class PidsStats:
    current: int = 0
    limit: int = 0


@dataclass(slots=True)
class NetworkStats:
    rx_bytes: int = 0
    rx_packets: int = 0
    rx_errors: int = 0
    rx_dropped: int = 0
    tx_bytes: int = 0
    tx_packets: int = 0
    tx_errors: int = 0
    tx_dropped: int = 0


@dataclass(slots=True)
class BlkioStatEntry:
    major: int = 0
    minor: int = 0
    op: str = ""
    value: int = 0


@dataclass(slots=True)
class BlkioStats:
    io_service_bytes_recursive: List[BlkioStatEntry] = field(default_factory=list)


@dataclass(slots=True)
class ContainerStatsEntry:
    """Сырые счётчики одного замера статистики."""

    id: str = ""
    name: str = ""
    read: str = ""
    pre_read: str = ""
    cpu_stats: CPUStats = field(default_factory=CPUStats)
    pre_cpu_stats: CPUStats = field(default_factory=CPUStats)
    memory_stats: MemoryStats = field(default_factory=MemoryStats)
    pids_stats: PidsStats = field(default_factory=PidsStats)
    networks: Dict[str, NetworkStats] = field(default_factory=dict)
    blkio_stats: BlkioStats = field(default_factory=BlkioStats)


# ---------------------------------------------------------------------- images
@dataclass(slots=True)
class ImageSummary:
    id: str
    parent_id: str = ""
    repo_tags: List[str] = field(default_factory=list)
    repo_digests: List[str] = field(default_factory=list)
    created: int = 0
    size: int = 0
    shared_size: int = 0
    labels: Dict[str, str] = field(default_factory=dict)
    containers: int = 0


@dataclass(slots=True)
class RootFS:
    type: str = ""
    layers: List[str] = field(default_factory=list)


@dataclass(slots=True)
class ImageDetails:
    id: str
    repo_tags: List[str] = field(default_factory=list)
    repo_digests: List[str] = field(default_factory=list)
    parent: str = ""
    comment: str = ""
    created: str = ""
    author: str = ""
    config: Optional[ContainerConfig] = None
    architecture: str = ""
    os: str = ""
    size: int = 0
    root_fs: RootFS = field(default_factory=RootFS)


@dataclass(slots=True)
class ImageHistoryEntry:
    id: str = ""
    created: int = 0
    created_by: str = ""
    tags: List[str] = field(default_factory=list)
    size: int = 0
    comment: str = ""


# ------------------------------------------------------------ volumes/networks
@dataclass(slots=True)
class VolumeUsageData:
    size: int = -1
    ref_count: int = -1


@dataclass(slots=True)
class VolumeSummary:
    name: str
    driver: str = "local"
    mountpoint: str = ""
    created_at: str = ""
    labels: Dict[str, str] = field(default_factory=dict)
    scope: str = "local"
    options: Dict[str, str] = field(default_factory=dict)
    usage_data: Optional[VolumeUsageData] = None


@dataclass(slots=True)
class IPAMConfig:
    subnet: str = ""
    ip_range: str = ""
    gateway: str = ""


@dataclass(slots=True)
class IPAM:
    driver: str = ""
    options: Dict[str, str] = field(default_factory=dict)
    config: List[IPAMConfig] = field(default_factory=list)


@dataclass(slots=True)
class EndpointResource:
    name: str = ""
    endpoint_id: str = ""
    mac_address: str = ""
    ipv4_address: str = ""
    ipv6_address: str = ""


@dataclass(slots=True)
class NetworkSummary:
    name: str
    id: str = ""
    created: str = ""
    scope: str = ""
    driver: str = ""
    enable_ipv6: bool = False
    internal: bool = False
    attachable: bool = False
    ipam: IPAM = field(default_factory=IPAM)
    containers: Dict[str, EndpointResource] = field(default_factory=dict)
    options: Dict[str, str] = field(default_factory=dict)
    labels: Dict[str, str] = field(default_factory=dict)


# ------------------------------------------------------------------------ pods
@dataclass(slots=True)
class PodSummary:
    id: str
    name: str = ""
    status: str = ""
    created: str = ""
    infra_id: str = ""
    labels: Dict[str, str] = field(default_factory=dict)
    containers: List[str] = field(default_factory=list)  # идентификаторы участников


@dataclass(slots=True)
class PodStatsEntry:
    """Статистика пода, просуммированная по контейнерам-участникам."""

    pod_id: str = ""
    pod_name: str = ""
    cpu: float = 0.0
    memory: float = 0.0
    mem_usage: int = 0
    mem_limit: int = 0
    net_input: int = 0
    net_output: int = 0
    block_input: int = 0
    block_output: int = 0
    pids: int = 0


# ---------------------------------------------------------------------- events
@dataclass(slots=True)
class EventActor:
    id: str = ""
    attributes: Dict[str, str] = field(default_factory=dict)


@dataclass(slots=True)
class Event:
    type: str = ""
    action: str = ""
    actor: EventActor = field(default_factory=EventActor)
    time: int = 0

