"""Опрос compose-проекта в текущем каталоге через внешний compose-инструмент."""

from __future__ import annotations

import logging
import shlex
import threading
from typing import Callable, Dict, List, Optional

from podscope.runtime.exceptions import RuntimeAPIError
from podscope.settings.registry import SettingsRegistry
from podscope.utils import os_command
from podscope.utils.helpers import apply_template, split_lines

LOGGER = logging.getLogger(__name__)

COMPOSE_TOOLS = ("podman-compose", "podman compose", "docker-compose")

CommandRunner = Callable[..., str]


class ComposeProject:
    """Сервисы compose-проекта и команды для работы с ним.

    Инструмент определяется один раз: явная настройка ``compose.command``
    или первый из podman-compose, podman compose, docker-compose, который
    ответил на ``version``.
    """

    def __init__(
        self,
        settings: SettingsRegistry,
        *,
        cwd: Optional[str] = None,
        env: Optional[Dict[str, str]] = None,
        runner: Optional[CommandRunner] = None,
    ) -> None:
        self._settings = settings
        self._cwd = cwd
        self._env = env
        self._runner: CommandRunner = runner or os_command.run_command_with_output
        self._lock = threading.Lock()
        self._command: Optional[str] = None
        self._command_resolved = False
        self._in_project: Optional[bool] = None

    def _run(self, command: str) -> str:
        return self._runner(command, env=self._env, cwd=self._cwd)

    @property
    def command(self) -> Optional[str]:
        """Команда compose или None, если инструмента нет."""

        with self._lock:
            if not self._command_resolved:
                self._command = self._detect_command()
                self._command_resolved = True
            return self._command

    def _detect_command(self) -> Optional[str]:
        explicit = str(self._settings.get_value("compose", "command", default="") or "").strip()
        if explicit:
            return explicit
        for tool in COMPOSE_TOOLS:
            try:
                self._run(f"{tool} version")
            except RuntimeAPIError as exc:
                LOGGER.debug("Compose tool %s unavailable: %s", tool, exc.message)
                continue
            LOGGER.info("Using compose tool: %s", tool)
            return tool
        LOGGER.info("No compose tool found")
        return None

    def render(self, template_key: str) -> str:
        """Подставляет команду compose в шаблон из настроек."""

        template = str(self._settings.get_value("compose", template_key))
        return apply_template(template, {"DockerCompose": self.command or ""})

    @property
    def in_project(self) -> bool:
        """Является ли каталог compose-проектом; проверяется один раз."""

        if self._in_project is None:
            if self.command is None:
                self._in_project = False
            else:
                try:
                    self._run(self.render("check_compose_config"))
                    self._in_project = True
                except RuntimeAPIError as exc:
                    LOGGER.info("Not a compose project: %s", exc.message)
                    self._in_project = False
        return self._in_project

    def services(self) -> List[str]:
        if not self.in_project:
            return []
        return split_lines(self._run(self.render("list_services")))

    def service_container_ids(self, service: str) -> List[str]:
        if not self.in_project:
            return []
        return split_lines(self._run(f"{self.command} ps -q {shlex.quote(service)}"))

    def view_all_logs_command(self) -> List[str]:
        """argv для просмотра логов всех сервисов во внешнем терминале."""

        if not self.in_project:
            return []
        return os_command.split_command(self.render("view_all_logs"))

    def config(self) -> str:
        """Итоговая конфигурация проекта после подстановок."""

        if not self.in_project:
            return ""
        return self._run(self.render("compose_config"))
