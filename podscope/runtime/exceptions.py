"""Исключения слоя доступа к контейнерным движкам."""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Dict, Optional

LOGGER = logging.getLogger(__name__)

MUST_STOP_CONTAINER_TEXT = "Stop the container before attempting removal or force remove"


class ErrorCode(str, Enum):
    """Коды семантических ошибок, на которые вызывающий код реагирует отдельно."""

    MUST_STOP_CONTAINER = "must_stop_container"


class RuntimeAPIError(Exception):
    """Базовое исключение для ошибок движка с поддержкой контекста."""

    def __init__(self, message: str, *, context: Optional[Dict[str, Any]] = None) -> None:
        """Сохраняет сообщение и контекст, логируя ошибку."""

        self.message = message
        self.context = context or {}
        super().__init__(message)
        LOGGER.debug("%s: %s | context=%s", type(self).__name__, message, self.context)


class ConnectivityError(RuntimeAPIError):
    """Сокет или процесс недоступен."""

    def __init__(
        self,
        message: str,
        *,
        command: Optional[str] = None,
        host: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.command = command
        self.host = host
        merged = dict(context or {})
        if command is not None:
            merged["command"] = command
        if host is not None:
            merged["host"] = host
        super().__init__(message, context=merged)


class NotSupportedError(RuntimeAPIError):
    """Операция есть в контракте, но не поддерживается текущим движком."""

    def __init__(self, operation: str, runtime: str) -> None:
        self.operation = operation
        self.runtime = runtime
        super().__init__(
            f"{operation} is not supported by the {runtime} runtime",
            context={"operation": operation, "runtime": runtime},
        )


class ParseError(RuntimeAPIError):
    """Вывод движка целиком не удалось разобрать."""

    def __init__(self, message: str, *, source: Optional[str] = None) -> None:
        self.source = source
        super().__init__(message, context={"source": source} if source else None)


class ComplexError(RuntimeAPIError):
    """Ошибка с дискриминируемым кодом."""

    def __init__(self, message: str, code: ErrorCode, *, context: Optional[Dict[str, Any]] = None) -> None:
        self.code = code
        merged = dict(context or {})
        merged["code"] = code.value
        super().__init__(message, context=merged)


class DiscoveryError(RuntimeAPIError):
    """Не удалось выбрать хост движка при старте.

    ``explicit`` выставляется, когда пользователь сам указал хост или context:
    такая ошибка фатальна, переход на другие адаптеры не допускается.
    """

    def __init__(
        self, message: str, *, explicit: bool = False, context: Optional[Dict[str, Any]] = None
    ) -> None:
        self.explicit = explicit
        merged = dict(context or {})
        if explicit:
            merged["explicit"] = True
        super().__init__(message, context=merged)


def classify_engine_error(
    message: str, *, context: Optional[Dict[str, Any]] = None
) -> RuntimeAPIError:
    """Превращает текст ошибки движка в исключение подходящего типа."""

    if MUST_STOP_CONTAINER_TEXT in message:
        return ComplexError(message, ErrorCode.MUST_STOP_CONTAINER, context=context)
    return RuntimeAPIError(message, context=context)
