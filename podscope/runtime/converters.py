"""Перевод ответов Docker-совместимого и libpod API в общие модели.

Неизвестные поля игнорируются, отсутствующие заменяются значениями по
умолчанию: движки разных версий отдают разный набор ключей.
"""

from __future__ import annotations

import json
from typing import Any, Dict, List, Optional

from podscope.runtime.models import (
    IPAM,
    BlkioStatEntry,
    BlkioStats,
    ContainerConfig,
    ContainerDetails,
    ContainerState,
    ContainerStatsEntry,
    ContainerSummary,
    CPUStats,
    CPUUsage,
    EndpointResource,
    EndpointSettings,
    Event,
    EventActor,
    HealthLog,
    HealthState,
    ImageDetails,
    ImageHistoryEntry,
    ImageSummary,
    IPAMConfig,
    MemoryStats,
    Mount,
    NetworkSettings,
    NetworkStats,
    NetworkSummary,
    PidsStats,
    PodStatsEntry,
    PodSummary,
    PortBinding,
    PortMapping,
    RootFS,
    TopResponse,
    VolumeSummary,
    VolumeUsageData,
)
from podscope.utils.helpers import parse_io_bytes, parse_percentage, parse_uint


# ------------------------------------------------------------------ helpers
def as_dict(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


def as_list(value: Any) -> List[Any]:
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return list(value)
    return [value]


def as_str_list(value: Any) -> List[str]:
    """Docker отдаёт Cmd/Entrypoint то строкой, то списком, то null."""

    return [str(item) for item in as_list(value)]


def as_labels(value: Any) -> Dict[str, str]:
    return {str(key): str(item) for key, item in as_dict(value).items() if item is not None}


def safe_int(value: Any, default: int = 0) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def command_to_string(command: Any) -> str:
    """Список аргументов кодируется в JSON, как это делает Docker CLI."""

    if isinstance(command, str):
        return command
    items = as_str_list(command)
    if not items:
        return ""
    return json.dumps(items)


# --------------------------------------------------------------- containers
def _port_mappings(raw_ports: Any) -> List[PortMapping]:
    mappings = []
    for port in as_list(raw_ports):
        data = as_dict(port)
        if "PrivatePort" in data or "IP" in data:
            mappings.append(
                PortMapping(
                    ip=data.get("IP") or "",
                    private_port=safe_int(data.get("PrivatePort")),
                    public_port=safe_int(data.get("PublicPort")),
                    type=data.get("Type") or "tcp",
                )
            )
        elif "container_port" in data:
            # libpod: один объект описывает диапазон портов
            span = max(safe_int(data.get("range"), 1), 1)
            for offset in range(span):
                host_port = safe_int(data.get("host_port"))
                mappings.append(
                    PortMapping(
                        ip=data.get("host_ip") or "",
                        private_port=safe_int(data.get("container_port")) + offset,
                        public_port=host_port + offset if host_port else 0,
                        type=data.get("protocol") or "tcp",
                    )
                )
    return mappings


def container_summary_from_api(data: Dict[str, Any]) -> ContainerSummary:
    """Строка из ``GET /containers/json`` или ``/libpod/containers/json``."""

    return ContainerSummary(
        id=data.get("Id") or data.get("ID") or "",
        names=as_str_list(data.get("Names")),
        image=data.get("Image") or "",
        image_id=data.get("ImageID") or "",
        command=command_to_string(data.get("Command")),
        created=safe_int(data.get("Created")),
        state=data.get("State") or "",
        status=data.get("Status") or "",
        ports=_port_mappings(data.get("Ports")),
        labels=as_labels(data.get("Labels")),
        size_rw=safe_int(data.get("SizeRw")),
        size_root_fs=safe_int(data.get("SizeRootFs")),
        pod=data.get("Pod") or "",
        pod_name=data.get("PodName") or "",
        is_infra=bool(data.get("IsInfra", False)),
    )


def _health(data: Dict[str, Any]) -> Optional[HealthState]:
    if not data:
        return None
    return HealthState(
        status=data.get("Status") or "",
        failing_streak=safe_int(data.get("FailingStreak")),
        log=[
            HealthLog(
                start=str(as_dict(entry).get("Start") or ""),
                end=str(as_dict(entry).get("End") or ""),
                exit_code=safe_int(as_dict(entry).get("ExitCode")),
                output=as_dict(entry).get("Output") or "",
            )
            for entry in as_list(data.get("Log"))
        ],
    )


def container_state_from_api(data: Dict[str, Any]) -> ContainerState:
    return ContainerState(
        status=data.get("Status") or "",
        running=bool(data.get("Running")),
        paused=bool(data.get("Paused")),
        restarting=bool(data.get("Restarting")),
        oom_killed=bool(data.get("OOMKilled")),
        dead=bool(data.get("Dead")),
        pid=safe_int(data.get("Pid")),
        exit_code=safe_int(data.get("ExitCode")),
        error=data.get("Error") or "",
        started_at=str(data.get("StartedAt") or ""),
        finished_at=str(data.get("FinishedAt") or ""),
        health=_health(as_dict(data.get("Health"))),
    )


def container_config_from_api(data: Dict[str, Any]) -> ContainerConfig:
    return ContainerConfig(
        hostname=data.get("Hostname") or "",
        domainname=data.get("Domainname") or "",
        user=data.get("User") or "",
        tty=bool(data.get("Tty")),
        open_stdin=bool(data.get("OpenStdin")),
        env=as_str_list(data.get("Env")),
        cmd=as_str_list(data.get("Cmd")),
        image=data.get("Image") or "",
        working_dir=data.get("WorkingDir") or "",
        entrypoint=as_str_list(data.get("Entrypoint")),
        labels=as_labels(data.get("Labels")),
        exposed_ports=sorted(as_dict(data.get("ExposedPorts")).keys()),
        stop_signal=data.get("StopSignal") or "",
    )


def _network_settings(data: Dict[str, Any]) -> NetworkSettings:
    ports: Dict[str, List[PortBinding]] = {}
    for container_port, bindings in as_dict(data.get("Ports")).items():
        ports[container_port] = [
            PortBinding(
                host_ip=as_dict(binding).get("HostIp") or "",
                host_port=str(as_dict(binding).get("HostPort") or ""),
            )
            for binding in as_list(bindings)
        ]
    networks = {
        name: EndpointSettings(
            network_id=endpoint.get("NetworkID") or "",
            endpoint_id=endpoint.get("EndpointID") or "",
            gateway=endpoint.get("Gateway") or "",
            ip_address=endpoint.get("IPAddress") or "",
            ip_prefix_len=safe_int(endpoint.get("IPPrefixLen")),
            ipv6_gateway=endpoint.get("IPv6Gateway") or "",
            global_ipv6_address=endpoint.get("GlobalIPv6Address") or "",
            mac_address=endpoint.get("MacAddress") or "",
            aliases=as_str_list(endpoint.get("Aliases")),
        )
        for name, endpoint in ((key, as_dict(value)) for key, value in as_dict(data.get("Networks")).items())
    }
    return NetworkSettings(
        sandbox_id=data.get("SandboxID") or "",
        sandbox_key=data.get("SandboxKey") or "",
        ports=ports,
        networks=networks,
    )


def _mount(data: Dict[str, Any]) -> Mount:
    return Mount(
        type=data.get("Type") or "",
        name=data.get("Name") or "",
        source=data.get("Source") or "",
        destination=data.get("Destination") or "",
        driver=data.get("Driver") or "",
        mode=data.get("Mode") or "",
        rw=bool(data.get("RW", True)),
        propagation=data.get("Propagation") or "",
    )


def container_details_from_api(data: Dict[str, Any]) -> ContainerDetails:
    """Результат ``GET /containers/{id}/json``."""

    return ContainerDetails(
        id=data.get("Id") or "",
        name=(data.get("Name") or "").lstrip("/"),
        created=str(data.get("Created") or ""),
        path=data.get("Path") or "",
        args=as_str_list(data.get("Args")),
        state=container_state_from_api(as_dict(data.get("State"))),
        image=as_dict(data.get("Config")).get("Image") or data.get("ImageName") or "",
        image_id=data.get("Image") or "",
        restart_count=safe_int(data.get("RestartCount")),
        driver=data.get("Driver") or "",
        platform=data.get("Platform") or "",
        config=container_config_from_api(as_dict(data.get("Config"))),
        network_settings=_network_settings(as_dict(data.get("NetworkSettings"))),
        mounts=[_mount(as_dict(item)) for item in as_list(data.get("Mounts"))],
    )


def top_from_api(data: Dict[str, Any]) -> TopResponse:
    return TopResponse(
        titles=as_str_list(data.get("Titles")),
        processes=[as_str_list(row) for row in as_list(data.get("Processes"))],
    )


# -------------------------------------------------------------------- stats
def _cpu_stats(data: Dict[str, Any]) -> CPUStats:
    usage = as_dict(data.get("cpu_usage"))
    return CPUStats(
        cpu_usage=CPUUsage(
            total_usage=safe_int(usage.get("total_usage")),
            percpu_usage=[safe_int(item) for item in as_list(usage.get("percpu_usage"))],
            usage_in_kernelmode=safe_int(usage.get("usage_in_kernelmode")),
            usage_in_usermode=safe_int(usage.get("usage_in_usermode")),
        ),
        system_cpu_usage=safe_int(data.get("system_cpu_usage")),
        online_cpus=safe_int(data.get("online_cpus")),
    )


def stats_entry_from_api(data: Dict[str, Any]) -> ContainerStatsEntry:
    """Один кадр ``GET /containers/{id}/stats``."""

    memory = as_dict(data.get("memory_stats"))
    pids = as_dict(data.get("pids_stats"))
    networks = {
        name: NetworkStats(
            rx_bytes=safe_int(values.get("rx_bytes")),
            rx_packets=safe_int(values.get("rx_packets")),
            rx_errors=safe_int(values.get("rx_errors")),
            rx_dropped=safe_int(values.get("rx_dropped")),
            tx_bytes=safe_int(values.get("tx_bytes")),
            tx_packets=safe_int(values.get("tx_packets")),
            tx_errors=safe_int(values.get("tx_errors")),
            tx_dropped=safe_int(values.get("tx_dropped")),
        )
        for name, values in ((key, as_dict(value)) for key, value in as_dict(data.get("networks")).items())
    }
    blkio = [
        BlkioStatEntry(
            major=safe_int(as_dict(item).get("major")),
            minor=safe_int(as_dict(item).get("minor")),
            op=as_dict(item).get("op") or "",
            value=safe_int(as_dict(item).get("value")),
        )
        for item in as_list(as_dict(data.get("blkio_stats")).get("io_service_bytes_recursive"))
    ]
    return ContainerStatsEntry(
        id=data.get("id") or "",
        name=(data.get("name") or "").lstrip("/"),
        read=str(data.get("read") or ""),
        pre_read=str(data.get("preread") or ""),
        cpu_stats=_cpu_stats(as_dict(data.get("cpu_stats"))),
        pre_cpu_stats=_cpu_stats(as_dict(data.get("precpu_stats"))),
        memory_stats=MemoryStats(
            usage=safe_int(memory.get("usage")),
            max_usage=safe_int(memory.get("max_usage")),
            limit=safe_int(memory.get("limit")),
        ),
        pids_stats=PidsStats(current=safe_int(pids.get("current")), limit=safe_int(pids.get("limit"))),
        networks=networks,
        blkio_stats=BlkioStats(io_service_bytes_recursive=blkio),
    )


# ------------------------------------------------------------------- images
def image_summary_from_api(data: Dict[str, Any]) -> ImageSummary:
    return ImageSummary(
        id=data.get("Id") or "",
        parent_id=data.get("ParentId") or "",
        repo_tags=as_str_list(data.get("RepoTags")),
        repo_digests=as_str_list(data.get("RepoDigests")),
        created=safe_int(data.get("Created")),
        size=safe_int(data.get("Size")),
        shared_size=safe_int(data.get("SharedSize")),
        labels=as_labels(data.get("Labels")),
        containers=safe_int(data.get("Containers")),
    )


def image_details_from_api(data: Dict[str, Any]) -> ImageDetails:
    config = as_dict(data.get("Config"))
    root_fs = as_dict(data.get("RootFS"))
    return ImageDetails(
        id=data.get("Id") or "",
        repo_tags=as_str_list(data.get("RepoTags")),
        repo_digests=as_str_list(data.get("RepoDigests")),
        parent=data.get("Parent") or "",
        comment=data.get("Comment") or "",
        created=str(data.get("Created") or ""),
        author=data.get("Author") or "",
        config=container_config_from_api(config) if config else None,
        architecture=data.get("Architecture") or "",
        os=data.get("Os") or "",
        size=safe_int(data.get("Size")),
        root_fs=RootFS(type=root_fs.get("Type") or "", layers=as_str_list(root_fs.get("Layers"))),
    )


def image_history_from_api(rows: Any) -> List[ImageHistoryEntry]:
    return [
        ImageHistoryEntry(
            id=row.get("Id") or "",
            created=safe_int(row.get("Created")),
            created_by=row.get("CreatedBy") or "",
            tags=as_str_list(row.get("Tags")),
            size=safe_int(row.get("Size")),
            comment=row.get("Comment") or "",
        )
        for row in (as_dict(item) for item in as_list(rows))
    ]


# --------------------------------------------------------- volumes/networks
def volume_summary_from_api(data: Dict[str, Any]) -> VolumeSummary:
    usage = as_dict(data.get("UsageData"))
    return VolumeSummary(
        name=data.get("Name") or "",
        driver=data.get("Driver") or "local",
        mountpoint=data.get("Mountpoint") or "",
        created_at=str(data.get("CreatedAt") or ""),
        labels=as_labels(data.get("Labels")),
        scope=data.get("Scope") or "local",
        options=as_labels(data.get("Options")),
        usage_data=(
            VolumeUsageData(size=safe_int(usage.get("Size"), -1), ref_count=safe_int(usage.get("RefCount"), -1))
            if usage
            else None
        ),
    )


def network_summary_from_api(data: Dict[str, Any]) -> NetworkSummary:
    ipam = as_dict(data.get("IPAM"))
    return NetworkSummary(
        name=data.get("Name") or "",
        id=data.get("Id") or "",
        created=str(data.get("Created") or ""),
        scope=data.get("Scope") or "",
        driver=data.get("Driver") or "",
        enable_ipv6=bool(data.get("EnableIPv6")),
        internal=bool(data.get("Internal")),
        attachable=bool(data.get("Attachable")),
        ipam=IPAM(
            driver=ipam.get("Driver") or "",
            options=as_labels(ipam.get("Options")),
            config=[
                IPAMConfig(
                    subnet=as_dict(item).get("Subnet") or "",
                    ip_range=as_dict(item).get("IPRange") or "",
                    gateway=as_dict(item).get("Gateway") or "",
                )
                for item in as_list(ipam.get("Config"))
            ],
        ),
        containers={
            container_id: EndpointResource(
                name=endpoint.get("Name") or "",
                endpoint_id=endpoint.get("EndpointID") or "",
                mac_address=endpoint.get("MacAddress") or "",
                ipv4_address=endpoint.get("IPv4Address") or "",
                ipv6_address=endpoint.get("IPv6Address") or "",
            )
            for container_id, endpoint in (
                (key, as_dict(value)) for key, value in as_dict(data.get("Containers")).items()
            )
        },
        options=as_labels(data.get("Options")),
        labels=as_labels(data.get("Labels")),
    )


# --------------------------------------------------------------------- pods
def pod_summary_from_libpod(data: Dict[str, Any]) -> PodSummary:
    """Строка из ``GET /libpod/pods/json``."""

    return PodSummary(
        id=data.get("Id") or "",
        name=data.get("Name") or "",
        status=data.get("Status") or "",
        created=str(data.get("Created") or ""),
        infra_id=data.get("InfraId") or "",
        labels=as_labels(data.get("Labels")),
        containers=[
            as_dict(member).get("Id") or ""
            for member in as_list(data.get("Containers"))
            if as_dict(member).get("Id")
        ],
    )


def aggregate_pod_stats(reports: Any) -> PodStatsEntry:
    """Суммирует отчёты ``/libpod/pods/stats`` по всем контейнерам пода."""

    entry = PodStatsEntry()
    for report in (as_dict(item) for item in as_list(reports)):
        entry.cpu += parse_percentage(report.get("CPU") or "")
        entry.memory += parse_percentage(report.get("Mem") or "")
        usage, limit = parse_io_bytes(report.get("MemUsageBytes") or report.get("MemUsage") or "")
        entry.mem_usage += usage
        entry.mem_limit += limit
        net_in, net_out = parse_io_bytes(report.get("NetIO") or "")
        entry.net_input += net_in
        entry.net_output += net_out
        block_in, block_out = parse_io_bytes(report.get("BlockIO") or "")
        entry.block_input += block_in
        entry.block_output += block_out
        entry.pids += parse_uint(str(report.get("PIDS") or ""))
        if not entry.pod_id:
            entry.pod_id = report.get("Pod") or ""
            entry.pod_name = report.get("Name") or ""
    return entry


# ------------------------------------------------------------------- events
def event_from_api(data: Dict[str, Any]) -> Event:
    actor = as_dict(data.get("Actor"))
    return Event(
        type=data.get("Type") or data.get("type") or "",
        action=data.get("Action") or data.get("status") or "",
        actor=EventActor(
            id=actor.get("ID") or data.get("id") or "",
            attributes=as_labels(actor.get("Attributes")),
        ),
        time=safe_int(data.get("time")),
    )

