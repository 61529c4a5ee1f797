"""Ошибки конфигурации podscope.

Построены на общем ``RuntimeAPIError``: сообщение, контекст и отладочный лог
наследуются, здесь добавляются только адрес настройки и путь к файлу.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Optional

from podscope.runtime.exceptions import RuntimeAPIError


class SettingsError(RuntimeAPIError):
    """Конфигурация не читается, не пишется или содержит недопустимое значение."""


class SettingsNotFoundError(SettingsError):
    def __init__(self, group: str, key: Optional[str] = None) -> None:
        self.group = group
        self.key = key
        if key is None:
            message = f"unknown settings group {group!r}"
        else:
            message = f"unknown setting {group}.{key}"
        super().__init__(message, context={"group": group, "key": key})


class SettingsValidationError(SettingsError):
    """Значение отвергнуто валидатором группы."""

    def __init__(self, group: str, key: str, value: Any, reason: str) -> None:
        self.group = group
        self.key = key
        self.value = value
        self.reason = reason
        super().__init__(
            f"invalid value {value!r} for {group}.{key}: {reason}",
            context={"group": group, "key": key, "value": value},
        )

    @property
    def setting(self) -> str:
        return f"{self.group}.{self.key}"


class SettingsIOError(SettingsError):
    def __init__(self, path: Path, reason: str) -> None:
        self.path = path
        self.reason = reason
        super().__init__(f"cannot use config file {path}: {reason}", context={"path": str(path)})
