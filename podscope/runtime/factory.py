"""Выбор адаптера движка по результату поиска хоста и настройкам."""

from __future__ import annotations

import logging
from typing import Callable, Dict, List, Optional, Tuple

from podscope.discovery.detector import DiscoveredHost
from podscope.runtime.base import ContainerRuntime
from podscope.runtime.cli_runtime import CliRuntime
from podscope.runtime.embedded_runtime import EmbeddedRuntime
from podscope.runtime.exceptions import RuntimeAPIError
from podscope.runtime.models import RuntimeKind
from podscope.runtime.sdk_runtime import SdkRuntime
from podscope.runtime.socket_runtime import SocketRuntime
from podscope.settings.registry import SettingsRegistry
from podscope.utils import os_command

LOGGER = logging.getLogger(__name__)

CLI_BINARY = "container"

Builder = Callable[[Optional[DiscoveredHost], int], ContainerRuntime]


def _require_host(discovered: Optional[DiscoveredHost], mode: str) -> DiscoveredHost:
    if discovered is None:
        raise RuntimeAPIError(f"{mode} runtime needs an engine host")
    return discovered


def _build_socket(discovered: Optional[DiscoveredHost], timeout: int) -> ContainerRuntime:
    host = _require_host(discovered, "socket")
    return SocketRuntime(host.host, host.kind, timeout=timeout)


def _build_sdk(discovered: Optional[DiscoveredHost], timeout: int) -> ContainerRuntime:
    host = _require_host(discovered, "sdk")
    if host.kind is not RuntimeKind.DOCKER:
        raise RuntimeAPIError(f"sdk runtime does not drive {host.kind.value}")
    return SdkRuntime(host.host, timeout=timeout)


def _build_embedded(discovered: Optional[DiscoveredHost], timeout: int) -> ContainerRuntime:
    return EmbeddedRuntime()


def _build_cli(discovered: Optional[DiscoveredHost], timeout: int) -> ContainerRuntime:
    return CliRuntime(binary=CLI_BINARY)


BUILDERS: Dict[str, Builder] = {
    "socket": _build_socket,
    "sdk": _build_sdk,
    "libpod": _build_embedded,
    "cli": _build_cli,
}


def candidate_modes(discovered: Optional[DiscoveredHost], preferred: str = "auto") -> List[str]:
    """Порядок попыток для заданного хоста и настройки ``runtime.preferred``."""

    if preferred != "auto":
        return [preferred]
    if discovered is None:
        if os_command.command_exists(CLI_BINARY):
            return ["cli", "libpod"]
        return ["libpod"]
    if discovered.kind is RuntimeKind.DOCKER:
        return ["sdk", "socket"]
    return ["socket", "libpod"]


def create_runtime(
    discovered: Optional[DiscoveredHost],
    settings: SettingsRegistry,
    *,
    builders: Optional[Dict[str, Builder]] = None,
) -> ContainerRuntime:
    """Создаёт первый адаптер, который удалось запустить.

    Ошибка каждой попытки логируется; если не удалась ни одна, поднимается
    RuntimeAPIError со списком всех попыток.
    """

    builders = BUILDERS if builders is None else builders
    preferred = str(settings.get_value("runtime", "preferred", default="auto"))
    timeout = int(settings.get_value("runtime", "connection_timeout_sec", default=5))

    attempts: List[Tuple[str, str]] = []
    for mode in candidate_modes(discovered, preferred):
        builder = builders.get(mode)
        if builder is None:
            attempts.append((mode, "unknown runtime mode"))
            continue
        try:
            runtime = builder(discovered, timeout)
        except RuntimeAPIError as exc:
            LOGGER.warning("Runtime %s unavailable: %s", mode, exc.message)
            attempts.append((mode, exc.message))
            continue
        LOGGER.info("Using %s runtime (%s)", runtime.mode, runtime.kind.value)
        return runtime

    summary = "; ".join(f"{mode}: {reason}" for mode, reason in attempts)
    raise RuntimeAPIError(
        f"no container runtime could be started ({summary})",
        context={"attempts": [mode for mode, _ in attempts]},
    )
