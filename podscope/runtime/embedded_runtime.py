"""Встроенный режим Podman без внешнего сокета.

Процесс сам поднимает приватный ``podman system service`` на временном
Unix-сокете, которым владеет только он, и дальше работает с ним как
обычный сокетный адаптер. Режим доступен только на Linux, где podman
работает без виртуальной машины.
"""

from __future__ import annotations

import logging
import shutil
import sys
import tempfile
import threading
import time
from pathlib import Path
from typing import Any, Callable, Dict, Iterator, List, Optional

from podscope.runtime.base import ContainerRuntime, Feature
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
from podscope.runtime.socket_runtime import SocketRuntime
from podscope.utils import os_command
from podscope.utils.helpers import socket_accepts

LOGGER = logging.getLogger(__name__)

SERVICE_START_TIMEOUT_SEC = 10.0
SERVICE_POLL_INTERVAL_SEC = 0.1


class EmbeddedRuntime(ContainerRuntime):
    """Podman, запущенный внутри процесса дашборда."""

    kind = RuntimeKind.PODMAN

    def __init__(
        self,
        *,
        podman_binary: str = "podman",
        start_timeout: float = SERVICE_START_TIMEOUT_SEC,
        socket_factory: Optional[Callable[[str], SocketRuntime]] = None,
    ) -> None:
        if not sys.platform.startswith("linux"):
            raise NotSupportedError("embedded engine", sys.platform)
        binary = shutil.which(podman_binary)
        if binary is None:
            raise ConnectivityError(f"{podman_binary} binary not found in PATH", command=podman_binary)

        self._tmp_dir = Path(tempfile.mkdtemp(prefix="podscope-libpod-"))
        self._socket_path = self._tmp_dir / "podman.sock"
        self._service = os_command.spawn_background(
            [binary, "system", "service", "--time=0", f"unix://{self._socket_path}"]
        )
        LOGGER.info("Started private podman service (pid %s) at %s", self._service.pid, self._socket_path)
        try:
            self._wait_for_socket(start_timeout)
            factory = socket_factory or (lambda host: SocketRuntime(host, RuntimeKind.PODMAN))
            self._inner = factory(f"unix://{self._socket_path}")
        except Exception:
            self._stop_service()
            raise
        self._lock = threading.Lock()
        self._closed = False

    def _wait_for_socket(self, timeout: float) -> None:
        deadline = time.monotonic() + timeout
        while time.monotonic() < deadline:
            if self._service.poll() is not None:
                raise ConnectivityError(
                    f"podman service exited with code {self._service.returncode}: {self._service.stderr_tail()}",
                    command="podman system service",
                )
            if self._socket_path.exists() and socket_accepts(str(self._socket_path)):
                return
            time.sleep(SERVICE_POLL_INTERVAL_SEC)
        raise ConnectivityError(
            f"podman service did not answer within {timeout} seconds",
            command="podman system service",
            host=f"unix://{self._socket_path}",
        )

    def _stop_service(self) -> None:
        os_command.kill_process_tree(self._service.pid)
        shutil.rmtree(self._tmp_dir, ignore_errors=True)

    @property
    def mode(self) -> str:
        return "libpod"

    @property
    def socket_path(self) -> Path:
        return self._socket_path

    def supports(self, feature: Feature) -> bool:
        return self._inner.supports(feature)

    def close(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
        self._inner.close()
        self._stop_service()
        LOGGER.info("Stopped private podman service at %s", self._socket_path)

    # ------------------------------------------------------------- delegation
    def list_containers(self, *, all_containers: bool = True) -> List[ContainerSummary]:
        return self._inner.list_containers(all_containers=all_containers)

    def inspect_container(self, container_id: str) -> ContainerDetails:
        return self._inner.inspect_container(container_id)

    def start_container(self, container_id: str) -> None:
        self._inner.start_container(container_id)

    def stop_container(self, container_id: str, timeout: Optional[int] = None) -> None:
        self._inner.stop_container(container_id, timeout)

    def pause_container(self, container_id: str) -> None:
        self._inner.pause_container(container_id)

    def unpause_container(self, container_id: str) -> None:
        self._inner.unpause_container(container_id)

    def restart_container(self, container_id: str, timeout: Optional[int] = None) -> None:
        self._inner.restart_container(container_id, timeout)

    def remove_container(self, container_id: str, *, force: bool = False, remove_volumes: bool = False) -> None:
        self._inner.remove_container(container_id, force=force, remove_volumes=remove_volumes)

    def container_top(self, container_id: str) -> TopResponse:
        return self._inner.container_top(container_id)

    def prune_containers(self) -> None:
        self._inner.prune_containers()

    def container_stats(
        self, container_id: str, *, stream: bool = True, cancel: Optional[threading.Event] = None
    ) -> Iterator[ContainerStatsEntry]:
        return self._inner.container_stats(container_id, stream=stream, cancel=cancel)

    def container_logs_command(
        self, container_id: str, *, follow: bool = True, tail: Optional[int] = None
    ) -> List[str]:
        argv = self._inner.container_logs_command(container_id, follow=follow, tail=tail)
        return [argv[0], "--url", f"unix://{self._socket_path}", *argv[1:]]

    def list_images(self) -> List[ImageSummary]:
        return self._inner.list_images()

    def inspect_image(self, image_id: str) -> ImageDetails:
        return self._inner.inspect_image(image_id)

    def image_history(self, image_id: str) -> List[ImageHistoryEntry]:
        return self._inner.image_history(image_id)

    def remove_image(self, image_id: str, *, force: bool = False) -> None:
        self._inner.remove_image(image_id, force=force)

    def prune_images(self) -> None:
        self._inner.prune_images()

    def list_volumes(self) -> List[VolumeSummary]:
        return self._inner.list_volumes()

    def create_volume(self, name: str, options: Optional[Dict[str, str]] = None) -> None:
        self._inner.create_volume(name, options)

    def remove_volume(self, name: str, *, force: bool = False) -> None:
        self._inner.remove_volume(name, force=force)

    def prune_volumes(self) -> None:
        self._inner.prune_volumes()

    def list_networks(self) -> List[NetworkSummary]:
        return self._inner.list_networks()

    def remove_network(self, name: str) -> None:
        self._inner.remove_network(name)

    def prune_networks(self) -> None:
        self._inner.prune_networks()

    def list_pods(self) -> List[PodSummary]:
        return self._inner.list_pods()

    def pod_stats(
        self, pod_id: str, *, stream: bool = True, cancel: Optional[threading.Event] = None
    ) -> Iterator[PodStatsEntry]:
        return self._inner.pod_stats(pod_id, stream=stream, cancel=cancel)

    def events(self, *, cancel: Optional[threading.Event] = None) -> Iterator[Event]:
        return self._inner.events(cancel=cancel)

    def get_raw_client(self) -> Any:
        return self._inner.get_raw_client()
