"""SSH-туннель до удалённого сокета движка.

Удалённый Unix-сокет пробрасывается на локальный через ``ssh -L``, после
чего адаптеры работают с ним как с обычным локальным сокетом.
"""

from __future__ import annotations

import logging
import os
import shutil
import tempfile
import time
from pathlib import Path
from typing import Callable, List, MutableMapping, Optional, Tuple
from urllib.parse import urlsplit

from podscope.discovery.detector import DiscoveredHost
from podscope.runtime.exceptions import ConnectivityError
from podscope.runtime.models import RuntimeKind
from podscope.utils import os_command
from podscope.utils.helpers import socket_accepts

LOGGER = logging.getLogger(__name__)

DEFAULT_REMOTE_SOCKETS = {
    RuntimeKind.PODMAN: "/run/user/1000/podman/podman.sock",
    RuntimeKind.DOCKER: "/var/run/docker.sock",
}
DIAL_INTERVAL_SEC = 1.0
DEFAULT_TUNNEL_TIMEOUT_SEC = 8.0


class SSHTunnel:
    """Фоновый процесс ``ssh -N -L`` и его локальный сокет."""

    def __init__(
        self,
        url: str,
        kind: RuntimeKind,
        *,
        timeout: float = DEFAULT_TUNNEL_TIMEOUT_SEC,
        spawner: Callable[[List[str]], os_command.BackgroundProcess] = os_command.spawn_background,
        dialer: Callable[[str], bool] = socket_accepts,
    ) -> None:
        self.url = url
        self.kind = kind
        self.timeout = timeout
        self._spawner = spawner
        self._dialer = dialer
        self._process: Optional[os_command.BackgroundProcess] = None
        self._tmp_dir: Optional[Path] = None

    @property
    def local_socket(self) -> Path:
        if self._tmp_dir is None:
            raise ConnectivityError("ssh tunnel is not open", host=self.url)
        return self._tmp_dir / "dockerhost.sock"

    @property
    def local_host(self) -> str:
        return f"unix://{self.local_socket}"

    def build_command(self, local_socket: Path) -> List[str]:
        """Собирает argv для ssh; путь в URL задаёт удалённый сокет."""

        parts = urlsplit(self.url)
        remote_socket = parts.path if parts.path not in ("", "/") else DEFAULT_REMOTE_SOCKETS[self.kind]
        target = parts.hostname or ""
        if parts.username:
            target = f"{parts.username}@{target}"
        argv = ["ssh", "-L", f"{local_socket}:{remote_socket}", target, "-N"]
        if parts.port:
            argv[3:3] = ["-p", str(parts.port)]
        return argv

    def open(self) -> str:
        """Запускает ssh и ждёт, пока локальный сокет начнёт принимать соединения."""

        self._tmp_dir = Path(tempfile.mkdtemp(prefix="podscope-ssh-"))
        argv = self.build_command(self.local_socket)
        LOGGER.info("Opening ssh tunnel to %s", self.url)
        self._process = self._spawner(argv)

        deadline = time.monotonic() + self.timeout
        while True:
            if self._dialer(str(self.local_socket)):
                LOGGER.info("SSH tunnel ready at %s", self.local_socket)
                return self.local_host
            if self._process.poll() is not None:
                self.close()
                message = f"ssh exited with code {self._process.returncode}"
                tail = self._process.stderr_tail()
                if tail:
                    message = f"{message}: {tail}"
                raise ConnectivityError(message, command=" ".join(argv), host=self.url)
            if time.monotonic() >= deadline:
                self.close()
                raise ConnectivityError(
                    f"ssh tunnel did not come up within {self.timeout} seconds",
                    command=" ".join(argv),
                    host=self.url,
                )
            time.sleep(DIAL_INTERVAL_SEC)

    def close(self) -> None:
        if self._process is not None:
            os_command.kill_process_tree(self._process.pid)
        if self._tmp_dir is not None:
            shutil.rmtree(self._tmp_dir, ignore_errors=True)
        LOGGER.debug("SSH tunnel to %s closed", self.url)


def establish_tunnel_if_needed(
    discovered: DiscoveredHost,
    env: Optional[MutableMapping[str, str]] = None,
    *,
    timeout: float = DEFAULT_TUNNEL_TIMEOUT_SEC,
    tunnel_factory: Optional[Callable[..., SSHTunnel]] = None,
) -> Tuple[DiscoveredHost, Optional[SSHTunnel]]:
    """Поднимает туннель для ssh:// и переписывает переменную окружения хоста.

    Для остальных адресов возвращает их без изменений.
    """

    if not discovered.is_ssh:
        return discovered, None

    env = os.environ if env is None else env
    factory = tunnel_factory or SSHTunnel
    tunnel = factory(discovered.host, discovered.kind, timeout=timeout)
    local_host = tunnel.open()
    variable = "CONTAINER_HOST" if discovered.source == "CONTAINER_HOST" else "DOCKER_HOST"
    env[variable] = local_host
    return DiscoveredHost(local_host, discovered.kind, discovered.source), tunnel
