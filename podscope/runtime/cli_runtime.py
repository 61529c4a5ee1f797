"""Адаптер Apple ``container`` CLI.

Машинного API у этого инструмента нет: каждая операция запускает CLI и
разбирает JSON-вывод. Формат вывода не закреплён, поэтому разбор терпим к
отсутствующим полям, а записи без идентификатора отбрасываются с записью в
лог. Необязательные операции проверяются по набору возможностей, который
определяется один раз при создании адаптера.
"""

from __future__ import annotations

import json
import logging
import threading
import time
from typing import Any, Callable, Dict, Iterator, List, Optional, Sequence

import psutil

from podscope.runtime.base import ContainerRuntime, Feature
from podscope.runtime.capabilities import FeatureDetector, FeatureSet
from podscope.runtime.converters import as_dict, as_labels, as_list, as_str_list, safe_int
from podscope.runtime.exceptions import (
    MUST_STOP_CONTAINER_TEXT,
    ComplexError,
    ErrorCode,
    NotSupportedError,
    ParseError,
    RuntimeAPIError,
)
from podscope.runtime.models import (
    BlkioStatEntry,
    BlkioStats,
    ContainerConfig,
    ContainerDetails,
    ContainerState,
    ContainerStatsEntry,
    ContainerSummary,
    CPUStats,
    CPUUsage,
    EndpointSettings,
    Event,
    EventActor,
    ImageDetails,
    ImageHistoryEntry,
    ImageSummary,
    MemoryStats,
    Mount,
    NetworkSettings,
    NetworkStats,
    NetworkSummary,
    PidsStats,
    PodStatsEntry,
    PodSummary,
    RuntimeKind,
    TopResponse,
    VolumeSummary,
)
from podscope.utils import os_command

LOGGER = logging.getLogger(__name__)

CommandRunner = Callable[[Sequence[str]], str]
LineStreamer = Callable[[Sequence[str], threading.Event], Iterator[str]]

STATE_MAP = {"stopped": "exited", "running": "running"}
STATS_POLL_INTERVAL_SEC = 1.0


def parse_json_records(output: str, *, source: str) -> List[Dict[str, Any]]:
    """Возвращает список объектов из JSON-массива, объекта или JSON-lines.

    Пустой вывод даёт пустой список. Невалидный вывод целиком приводит к
    ParseError, а отдельные битые записи пропускаются.
    """

    text = output.strip()
    if not text:
        return []
    try:
        payload = json.loads(text)
    except json.JSONDecodeError as exc:
        lines = [line for line in text.splitlines() if line.strip()]
        if len(lines) < 2:
            raise ParseError(f"failed to parse {source} JSON: {exc}", source=source) from exc
        payload = []
        for line in lines:
            try:
                payload.append(json.loads(line))
            except json.JSONDecodeError:
                LOGGER.warning("Skipping malformed %s record: %.200s", source, line)
        if not payload:
            raise ParseError(f"failed to parse {source} JSON: {exc}", source=source) from exc

    records: List[Dict[str, Any]] = []
    for item in payload if isinstance(payload, list) else [payload]:
        if isinstance(item, dict):
            records.append(item)
        else:
            LOGGER.warning("Skipping non-object %s record: %r", source, item)
    return records


def container_from_cli(data: Dict[str, Any]) -> Optional[ContainerSummary]:
    """Одна запись ``container ls``; без configuration.id запись отбрасывается."""

    config = data.get("configuration")
    if not isinstance(config, dict):
        LOGGER.warning("Container record missing configuration field")
        return None
    container_id = config.get("id")
    if not isinstance(container_id, str) or not container_id:
        LOGGER.warning("Container record missing id field")
        return None

    status = data.get("status") if isinstance(data.get("status"), str) else ""
    address = data.get("addr") if isinstance(data.get("addr"), str) else ""
    if not address:
        address = as_dict(data.get("network")).get("addr") or ""
    if not address and isinstance(data.get("ip"), str):
        address = data["ip"]
    return ContainerSummary(
        id=container_id,
        names=[container_id],
        image=as_dict(config.get("image")).get("reference") or "",
        state=STATE_MAP.get(status, status),
        status=status,
        labels=as_labels(config.get("labels")),
        address=address,
    )


def _mount_type(raw_type: Any) -> str:
    if isinstance(raw_type, str):
        return raw_type
    for name in ("virtiofs", "tmpfs", "block", "volume"):
        if name in as_dict(raw_type):
            return name
    return "unknown"


def container_details_from_cli(data: Dict[str, Any]) -> Optional[ContainerDetails]:
    summary = container_from_cli(data)
    if summary is None:
        return None
    config = as_dict(data.get("configuration"))
    process = as_dict(config.get("initProcess"))
    user = process.get("user")
    networks = {}
    for index, attachment in enumerate(as_dict(item) for item in as_list(data.get("networks"))):
        name = attachment.get("network") or f"network{index}"
        networks[name] = EndpointSettings(
            gateway=attachment.get("gateway") or "",
            ip_address=(attachment.get("address") or "").split("/")[0],
        )
    return ContainerDetails(
        id=summary.id,
        name=summary.id,
        path=process.get("executable") or "",
        args=as_str_list(process.get("arguments")),
        state=ContainerState(status=summary.state, running=summary.state == "running"),
        image=summary.image,
        platform=as_dict(config.get("platform")).get("os") or "",
        config=ContainerConfig(
            hostname=config.get("hostname") or "",
            user=user if isinstance(user, str) else "",
            env=as_str_list(process.get("environment")),
            cmd=as_str_list(process.get("arguments")),
            image=summary.image,
            working_dir=process.get("workingDirectory") or "",
            labels=summary.labels,
        ),
        network_settings=NetworkSettings(networks=networks),
        mounts=[
            Mount(
                type=_mount_type(mount.get("type")),
                source=mount.get("source") or "",
                destination=mount.get("destination") or "",
                mode=",".join(as_str_list(mount.get("options"))),
            )
            for mount in (as_dict(item) for item in as_list(config.get("mounts")))
        ],
    )


def image_from_cli(data: Dict[str, Any]) -> Optional[ImageSummary]:
    reference = data.get("reference")
    if not isinstance(reference, str) or not reference:
        LOGGER.warning("Image record missing reference field")
        return None
    descriptor = as_dict(data.get("descriptor"))
    digest = descriptor.get("digest") or ""
    return ImageSummary(
        id=digest or reference,
        repo_tags=[reference],
        repo_digests=[digest] if digest else [],
        size=safe_int(descriptor.get("size")),
    )


def volume_from_cli(data: Dict[str, Any]) -> Optional[VolumeSummary]:
    name = data.get("name") or data.get("id")
    if not isinstance(name, str) or not name:
        LOGGER.warning("Volume record missing name/id field")
        return None
    return VolumeSummary(
        name=name,
        driver=data.get("driver") or "local",
        mountpoint=data.get("mountpoint") or "",
        labels=as_labels(data.get("labels")),
        options=as_labels(data.get("options")),
    )


def network_from_cli(data: Dict[str, Any]) -> Optional[NetworkSummary]:
    network_id = data.get("id")
    if not isinstance(network_id, str) or not network_id:
        LOGGER.warning("Network record missing id field")
        return None
    return NetworkSummary(
        name=network_id,
        id=network_id,
        driver=as_dict(data.get("config")).get("mode") or "",
    )


def stats_from_cli(data: Dict[str, Any], *, system_usage_ns: int, online_cpus: int) -> ContainerStatsEntry:
    """Счётчики ``container stats``: процессорное время переводится в нс."""

    return ContainerStatsEntry(
        id=data.get("id") or "",
        name=data.get("id") or "",
        cpu_stats=CPUStats(
            cpu_usage=CPUUsage(total_usage=safe_int(data.get("cpuUsageUsec")) * 1000),
            system_cpu_usage=system_usage_ns,
            online_cpus=online_cpus,
        ),
        memory_stats=MemoryStats(
            usage=safe_int(data.get("memoryUsageBytes")),
            limit=safe_int(data.get("memoryLimitBytes")),
        ),
        pids_stats=PidsStats(current=safe_int(data.get("numProcesses"))),
        networks={
            "default": NetworkStats(
                rx_bytes=safe_int(data.get("networkRxBytes")),
                tx_bytes=safe_int(data.get("networkTxBytes")),
            )
        },
        blkio_stats=BlkioStats(
            io_service_bytes_recursive=[
                BlkioStatEntry(op="Read", value=safe_int(data.get("blockReadBytes"))),
                BlkioStatEntry(op="Write", value=safe_int(data.get("blockWriteBytes"))),
            ]
        ),
    )


def event_from_cli(data: Dict[str, Any]) -> Event:
    actor = as_dict(data.get("actor"))
    return Event(
        type=data.get("type") or "container",
        action=data.get("action") or data.get("status") or "",
        actor=EventActor(id=actor.get("id") or data.get("id") or "", attributes=as_labels(actor.get("attributes"))),
        time=safe_int(data.get("time")),
    )


class CliRuntime(ContainerRuntime):
    """Движок, управляемый только через свой CLI."""

    kind = RuntimeKind.APPLE

    def __init__(
        self,
        *,
        binary: str = "container",
        runner: Optional[CommandRunner] = None,
        streamer: Optional[LineStreamer] = None,
        features: Optional[FeatureSet] = None,
    ) -> None:
        self.binary = binary
        self._runner: CommandRunner = runner or os_command.run_executable_with_output
        self._streamer: LineStreamer = streamer or os_command.stream_lines
        self._features = features or FeatureDetector(self._runner, tool=binary).detect()

    @property
    def mode(self) -> str:
        return "cli"

    @property
    def features(self) -> FeatureSet:
        return self._features

    def supports(self, feature: Feature) -> bool:
        return self._features.supports(feature)

    def close(self) -> None:
        """У CLI-адаптера нет долгоживущих ресурсов."""

    # ------------------------------------------------------------------ helpers
    def _run(self, *args: str) -> str:
        argv = [self.binary, *args]
        try:
            return self._runner(argv)
        except RuntimeAPIError as exc:
            if MUST_STOP_CONTAINER_TEXT in exc.message:
                raise ComplexError(exc.message, ErrorCode.MUST_STOP_CONTAINER, context=exc.context) from exc
            raise

    def _require(self, feature: Feature, operation: str) -> None:
        if not self.supports(feature):
            raise NotSupportedError(operation, self.mode)

    def _list(self, source: str, convert: Callable[[Dict[str, Any]], Any], *args: str) -> List[Any]:
        records = parse_json_records(self._run(*args), source=source)
        result = [item for item in (convert(record) for record in records) if item is not None]
        LOGGER.debug("Parsed %d of %d %s records", len(result), len(records), source)
        return result

    # --------------------------------------------------------------- containers
    def list_containers(self, *, all_containers: bool = True) -> List[ContainerSummary]:
        args = ["ls", "--format", "json"]
        if all_containers:
            args.insert(1, "--all")
        return self._list("container", container_from_cli, *args)

    def inspect_container(self, container_id: str) -> ContainerDetails:
        records = parse_json_records(self._run("inspect", container_id), source="container inspect")
        for record in records:
            details = container_details_from_cli(record)
            if details is not None:
                return details
        raise RuntimeAPIError(f"container {container_id} not found", context={"target": container_id})

    def start_container(self, container_id: str) -> None:
        self._run("start", container_id)

    def stop_container(self, container_id: str, timeout: Optional[int] = None) -> None:
        args = ["stop"]
        if timeout is not None:
            args.extend(["--time", str(timeout)])
        self._run(*args, container_id)

    def pause_container(self, container_id: str) -> None:
        raise NotSupportedError("pause container", self.mode)

    def unpause_container(self, container_id: str) -> None:
        raise NotSupportedError("unpause container", self.mode)

    def restart_container(self, container_id: str, timeout: Optional[int] = None) -> None:
        self.stop_container(container_id, timeout)
        self.start_container(container_id)

    def remove_container(self, container_id: str, *, force: bool = False, remove_volumes: bool = False) -> None:
        args = ["rm"]
        if force:
            args.append("--force")
        self._run(*args, container_id)

    def container_top(self, container_id: str) -> TopResponse:
        self._require(Feature.CONTAINER_TOP, "container top")
        lines = [line for line in self._run("top", container_id).splitlines() if line.strip()]
        if not lines:
            return TopResponse()
        titles = lines[0].split()
        return TopResponse(
            titles=titles,
            processes=[line.split(None, max(len(titles) - 1, 0)) for line in lines[1:]],
        )

    def prune_containers(self) -> None:
        self._require(Feature.CONTAINER_PRUNE, "prune containers")
        self._run("prune")

    def _sample_stats(self, container_id: str) -> ContainerStatsEntry:
        records = parse_json_records(
            self._run("stats", "--no-stream", "--format", "json", container_id), source="stats"
        )
        online_cpus = psutil.cpu_count() or 1
        system_usage_ns = int(time.monotonic() * 1e9) * online_cpus
        for record in records:
            if record.get("id") in (None, container_id) or len(records) == 1:
                return stats_from_cli(record, system_usage_ns=system_usage_ns, online_cpus=online_cpus)
        raise RuntimeAPIError(f"no stats reported for {container_id}", context={"target": container_id})

    def container_stats(
        self,
        container_id: str,
        *,
        stream: bool = True,
        cancel: Optional[threading.Event] = None,
    ) -> Iterator[ContainerStatsEntry]:
        self._require(Feature.STATS, "container stats")
        cancel = cancel or threading.Event()
        previous: Optional[ContainerStatsEntry] = None
        while not cancel.is_set():
            entry = self._sample_stats(container_id)
            entry.pre_cpu_stats = previous.cpu_stats if previous is not None else entry.cpu_stats
            previous = entry
            yield entry
            if not stream or cancel.wait(STATS_POLL_INTERVAL_SEC):
                return

    def container_logs_command(
        self, container_id: str, *, follow: bool = True, tail: Optional[int] = None
    ) -> List[str]:
        argv = [self.binary, "logs"]
        if follow:
            argv.append("--follow")
        if tail is not None:
            argv.extend(["-n", str(tail)])
        argv.append(container_id)
        return argv

    # ------------------------------------------------------------------- images
    def list_images(self) -> List[ImageSummary]:
        return self._list("image", image_from_cli, "images", "list", "--format", "json")

    def inspect_image(self, image_id: str) -> ImageDetails:
        records = parse_json_records(self._run("images", "inspect", image_id), source="image inspect")
        for record in records:
            reference = record.get("name") or record.get("reference") or image_id
            index = as_dict(record.get("index"))
            variants = [as_dict(item) for item in as_list(record.get("variants"))]
            platform = as_dict(variants[0].get("platform")) if variants else {}
            return ImageDetails(
                id=index.get("digest") or image_id,
                repo_tags=[reference],
                architecture=platform.get("architecture") or "",
                os=platform.get("os") or "",
                size=safe_int(index.get("size")) or sum(safe_int(v.get("size")) for v in variants),
            )
        raise RuntimeAPIError(f"image {image_id} not found", context={"target": image_id})

    def image_history(self, image_id: str) -> List[ImageHistoryEntry]:
        self._require(Feature.IMAGE_HISTORY, "image history")
        records = parse_json_records(self._run("images", "history", "--format", "json", image_id), source="history")
        return [
            ImageHistoryEntry(
                id=record.get("id") or "",
                created=safe_int(record.get("created")),
                created_by=record.get("createdBy") or record.get("created_by") or "",
                tags=as_str_list(record.get("tags")),
                size=safe_int(record.get("size")),
                comment=record.get("comment") or "",
            )
            for record in records
        ]

    def remove_image(self, image_id: str, *, force: bool = False) -> None:
        self._require(Feature.IMAGE_REMOVE, "remove image")
        args = ["images", "rm"]
        if force:
            args.append("--force")
        self._run(*args, image_id)

    def prune_images(self) -> None:
        self._require(Feature.IMAGE_PRUNE, "prune images")
        self._run("images", "prune")

    # --------------------------------------------------------- volumes/networks
    def list_volumes(self) -> List[VolumeSummary]:
        return self._list("volume", volume_from_cli, "volume", "list", "--format", "json")

    def create_volume(self, name: str, options: Optional[Dict[str, str]] = None) -> None:
        if not name:
            raise RuntimeAPIError("volume name required")
        self._require(Feature.VOLUME_CREATE, "create volume")
        args = ["volume", "create", "--name", name]
        for key, value in (options or {}).items():
            if not key:
                continue
            args.extend(["--opt", f"{key}={value}" if value else key])
        self._run(*args)

    def remove_volume(self, name: str, *, force: bool = False) -> None:
        args = ["volume", "rm"]
        if force:
            args.append("--force")
        self._run(*args, name)

    def prune_volumes(self) -> None:
        self._require(Feature.VOLUME_PRUNE, "prune volumes")
        self._run("volume", "prune", "--force")

    def list_networks(self) -> List[NetworkSummary]:
        return self._list("network", network_from_cli, "network", "list", "--format", "json")

    def remove_network(self, name: str) -> None:
        self._run("network", "rm", name)

    def prune_networks(self) -> None:
        self._require(Feature.NETWORK_PRUNE, "prune networks")
        self._run("network", "prune")

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
        raise NotSupportedError("pod stats", self.mode)

    def events(self, *, cancel: Optional[threading.Event] = None) -> Iterator[Event]:
        self._require(Feature.EVENTS_STREAM, "events")
        cancel = cancel or threading.Event()
        for line in self._streamer([self.binary, "events", "--format", "json"], cancel):
            try:
                record = json.loads(line)
            except json.JSONDecodeError:
                LOGGER.warning("Skipping malformed event line: %.200s", line)
                continue
            if isinstance(record, dict):
                yield event_from_cli(record)
