"""Точка входа podscope: поиск движка, выбор адаптера и снимок состояния."""

from __future__ import annotations

import logging
import os
import sys
from pathlib import Path
from typing import List, Optional

from podscope import __version__
from podscope.discovery.detector import detect_host
from podscope.discovery.tunnel import establish_tunnel_if_needed
from podscope.orchestration.compose import ComposeProject
from podscope.orchestration.entities import ContainerListItem
from podscope.orchestration.manager import RuntimeManager
from podscope.runtime.exceptions import DiscoveryError, RuntimeAPIError
from podscope.runtime.factory import create_runtime
from podscope.settings.exceptions import SettingsError
from podscope.settings.registry import SettingsRegistry
from podscope.utils.logger import configure_logging
from podscope.utils.paths import resolve_base_dir

LOGGER = logging.getLogger(__name__)


def initialize_workdir(base_dir: Path) -> bool:
    """Создаёт рабочую структуру (~/.podscope, logs)."""

    try:
        base_dir.mkdir(parents=True, exist_ok=True)
        (base_dir / "logs").mkdir(exist_ok=True)
        return True
    except OSError as exc:
        LOGGER.error("Cannot initialize work directory %s: %s", base_dir, exc)
        return False


def initialize_settings(config_path: Path) -> SettingsRegistry:
    """Получает singleton реестр настроек и загружает config.json."""

    registry = SettingsRegistry(config_path=config_path)
    registry.load_from_disk(config_path)
    return registry


def setup_logging_from_settings(base_dir: Path, settings: SettingsRegistry) -> None:
    """Настраивает логирование в соответствии с группой logging."""

    logging_settings = settings.get_group("logging")
    if not logging_settings.get("enabled"):
        logging.disable(logging.CRITICAL)
        return

    logging.disable(logging.NOTSET)
    configure_logging(
        log_dir=base_dir / "logs",
        level_name=logging_settings.get("level", "INFO"),
        max_bytes=logging_settings.get("max_file_size_mb", 10) * 1024 * 1024,
        backup_count=logging_settings.get("max_archived_files", 5),
    )


def build_manager(settings: SettingsRegistry, *, cwd: Optional[str] = None) -> RuntimeManager:
    """Находит движок, при необходимости поднимает туннель и собирает менеджер.

    Если ни один сокет не подошёл, выбор остаётся за CLI и встроенным режимами.
    Явно заданный хост или context, который не отвечает, завершает запуск.
    """

    timeout = int(settings.get_value("runtime", "connection_timeout_sec", default=5))
    try:
        discovered = detect_host(timeout=timeout)
    except DiscoveryError as exc:
        if exc.explicit:
            raise
        LOGGER.warning("Engine discovery failed: %s", exc.message)
        discovered = None

    tunnel = None
    if discovered is not None:
        tunnel_timeout = float(settings.get_value("runtime", "ssh_tunnel_timeout_sec", default=8))
        discovered, tunnel = establish_tunnel_if_needed(discovered, timeout=tunnel_timeout)

    try:
        runtime = create_runtime(discovered, settings)
    except RuntimeAPIError:
        if tunnel is not None:
            tunnel.close()
        raise
    compose = ComposeProject(settings, cwd=cwd or os.getcwd())
    return RuntimeManager(runtime, settings, compose=compose, tunnel=tunnel)


def format_items(items: List[ContainerListItem]) -> List[str]:
    """Текстовые строки иерархии для вывода в терминал."""

    lines = []
    for item in items:
        if item.is_pod and item.pod is not None:
            lines.append(f"{'':{item.indent}}[pod] {item.pod.name} ({item.pod.summary.status or 'unknown'})")
        elif item.container is not None:
            lines.append(f"{'':{item.indent}}{item.container.name} ({item.container.state or 'unknown'})")
    return lines


def main() -> int:
    """Основная точка входа: готовит окружение и печатает состояние движка."""

    base_dir = resolve_base_dir()
    if not initialize_workdir(base_dir):
        return 1
    try:
        settings = initialize_settings(base_dir / "config.json")
    except SettingsError as exc:
        print(f"podscope: {exc.message}", file=sys.stderr)
        return 1
    setup_logging_from_settings(base_dir, settings)
    LOGGER.info("Starting podscope %s", __version__)

    try:
        manager = build_manager(settings)
    except RuntimeAPIError as exc:
        print(f"podscope: {exc.message}", file=sys.stderr)
        return 1

    try:
        items = manager.refresh_containers_and_services()
        runtime = manager.runtime
        print(f"{runtime.kind.value} via {runtime.mode}")
        for line in format_items(items):
            print(line)
        for service in manager.services():
            attached = service.container.name if service.container else "-"
            print(f"[service] {service.name}: {attached}")
    except RuntimeAPIError as exc:
        print(f"podscope: {exc.message}", file=sys.stderr)
        return 1
    finally:
        manager.close()
    return 0


if __name__ == "__main__":
    sys.exit(main())
