"""Группы настроек с валидацией значений."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Dict, Tuple

from podscope.settings.exceptions import SettingsNotFoundError, SettingsValidationError
from podscope.settings.validators import (
    CompositeValidator,
    ContainsValidator,
    EnumValidator,
    RangeValidator,
    TypeValidator,
    Validator,
)

COMPOSE_FIELD = "{{ .DockerCompose }}"
RUNTIME_CHOICES = ("auto", "socket", "sdk", "libpod", "cli")


class SettingsGroup(ABC):
    """Абстрактная база для конкретных групп настроек."""

    group_name: str = ""

    def __init__(self) -> None:
        self._defaults: Dict[str, Any] = {}
        self._validators: Dict[str, Validator] = {}
        self._values: Dict[str, Any] = {}
        self._initialize_defaults()
        self._setup_validators()
        self.reset_to_defaults()

    @abstractmethod
    def _initialize_defaults(self) -> None:
        """Задаёт значения по умолчанию для группы."""

    @abstractmethod
    def _setup_validators(self) -> None:
        """Привязывает валидаторы к ключам группы."""

    def keys(self) -> Tuple[str, ...]:
        return tuple(self._defaults.keys())

    def get(self, key: str, default: Any = None) -> Any:
        if key not in self._defaults:
            raise SettingsNotFoundError(self.group_name, key)
        return self._values.get(key, default)

    def validate(self, key: str, value: Any) -> Tuple[bool, str]:
        validator = self._validators.get(key)
        if not validator:
            return True, ""
        return validator.validate(value)

    def set(self, key: str, value: Any) -> None:
        """Сохраняет значение, выбрасывая ошибку при невалидных данных."""

        if key not in self._defaults:
            raise SettingsNotFoundError(self.group_name, key)
        is_valid, error = self.validate(key, value)
        if not is_valid:
            raise SettingsValidationError(self.group_name, key, value, error)
        self._values[key] = value

    def to_dict(self) -> Dict[str, Any]:
        return dict(self._values)

    def from_dict(self, data: Dict[str, Any]) -> None:
        """Заполняет значениями из словаря, неизвестные ключи пропускаются."""

        for key, value in data.items():
            if key in self._defaults:
                self.set(key, value)

    def reset_to_defaults(self) -> None:
        self._values = dict(self._defaults)


class RuntimeSettings(SettingsGroup):
    """Выбор движка и таймауты подключения."""

    group_name = "runtime"

    def _initialize_defaults(self) -> None:
        self._defaults = {
            "preferred": "auto",
            "connection_timeout_sec": 5,
            "ssh_tunnel_timeout_sec": 8,
            "show_all_containers": True,
        }

    def _setup_validators(self) -> None:
        self._validators = {
            "preferred": EnumValidator(RUNTIME_CHOICES),
            "connection_timeout_sec": RangeValidator(1, 120),
            "ssh_tunnel_timeout_sec": RangeValidator(1, 120),
            "show_all_containers": TypeValidator(bool),
        }


class StatsSettings(SettingsGroup):
    """Параметры фонового мониторинга статистики."""

    group_name = "stats"

    def _initialize_defaults(self) -> None:
        self._defaults = {
            "enabled": True,
            "max_duration_sec": 120,
            "poll_interval_ms": 1000,
        }

    def _setup_validators(self) -> None:
        self._validators = {
            "enabled": TypeValidator(bool),
            "max_duration_sec": RangeValidator(1, 86400),
            "poll_interval_ms": RangeValidator(100, 60000),
        }


class ComposeSettings(SettingsGroup):
    """Команда compose и шаблоны её вызовов.

    Пустая ``command`` означает автоматический выбор между podman-compose,
    ``podman compose`` и docker-compose.
    """

    group_name = "compose"

    def _initialize_defaults(self) -> None:
        self._defaults = {
            "command": "",
            "check_compose_config": f"{COMPOSE_FIELD} config --quiet",
            "list_services": f"{COMPOSE_FIELD} config --services",
            "view_all_logs": f"{COMPOSE_FIELD} logs --tail=300 --follow",
            "compose_config": f"{COMPOSE_FIELD} config",
        }

    def _setup_validators(self) -> None:
        template = CompositeValidator([TypeValidator(str), ContainsValidator(COMPOSE_FIELD)])
        self._validators = {
            "command": TypeValidator(str),
            "check_compose_config": template,
            "list_services": template,
            "view_all_logs": template,
            "compose_config": template,
        }


class LoggingSettings(SettingsGroup):
    """Настройки логирования."""

    group_name = "logging"

    def _initialize_defaults(self) -> None:
        self._defaults = {
            "enabled": True,
            "level": "INFO",
            "max_file_size_mb": 10,
            "max_archived_files": 5,
        }

    def _setup_validators(self) -> None:
        self._validators = {
            "enabled": TypeValidator(bool),
            "level": EnumValidator(["DEBUG", "INFO", "WARNING", "ERROR"]),
            "max_file_size_mb": RangeValidator(1, 1000),
            "max_archived_files": RangeValidator(1, 50),
        }
