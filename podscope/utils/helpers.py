"""Различные вспомогательные функции."""

from __future__ import annotations

import re
import socket
from typing import Any, List, Mapping, Tuple

_SOCKET_SCHEMES = ("unix://", "tcp://", "npipe://", "http://", "https://", "ssh://")
_TEMPLATE_FIELD = re.compile(r"\{\{\s*\.(\w+)\s*\}\}")
_BYTE_VALUE = re.compile(r"^([0-9]*\.?[0-9]+)\s*([A-Za-z]*)")
_BYTE_UNITS = {
    "": 1,
    "b": 1,
    "kb": 1024,
    "kib": 1024,
    "mb": 1024**2,
    "mib": 1024**2,
    "gb": 1024**3,
    "gib": 1024**3,
    "tb": 1024**4,
    "tib": 1024**4,
}


def normalize_socket_path(raw_value: str) -> str:
    """Возвращает адрес сокета с корректным префиксом unix://.

    Значение из одних пробелов считается заданным и возвращается как есть:
    решение о его валидности принимает проверка подключения.
    """

    value = raw_value.strip()
    if not value:
        return raw_value
    if value.lower().startswith(_SOCKET_SCHEMES):
        return value
    if value.startswith("/"):
        return f"unix://{value}"
    return value


def socket_path_from_host(host: str) -> str:
    """Отрезает схему unix:// и возвращает путь в файловой системе."""

    if host.startswith("unix://"):
        return host[len("unix://") :]
    return host


def split_lines(output: str) -> List[str]:
    """Делит вывод команды на непустые строки."""

    return [line.strip() for line in output.splitlines() if line.strip()]


def apply_template(template: str, values: Mapping[str, Any]) -> str:
    """Подставляет поля вида ``{{ .DockerCompose }}`` в шаблон команды."""

    def _replace(match: re.Match[str]) -> str:
        return str(values.get(match.group(1), ""))

    return _TEMPLATE_FIELD.sub(_replace, template)


def parse_percentage(raw_value: str) -> float:
    """Разбирает строку вида ``75.5%``; мусор даёт 0."""

    value = (raw_value or "").strip().rstrip("%").strip()
    try:
        return float(value)
    except ValueError:
        return 0.0


def parse_byte_value(raw_value: str) -> int:
    """Преобразует ``1.5kB``, ``10MiB`` или ``1000`` в количество байт."""

    value = (raw_value or "").strip().replace(",", "")
    if not value or value == "--":
        return 0
    match = _BYTE_VALUE.match(value)
    if not match:
        return 0
    number = float(match.group(1))
    multiplier = _BYTE_UNITS.get(match.group(2).lower(), 1)
    return int(number * multiplier)


def parse_io_bytes(raw_value: str) -> Tuple[int, int]:
    """Разбирает пару ``вход / выход``; без разделителя возвращает нули."""

    parts = (raw_value or "").split("/")
    if len(parts) != 2:
        return 0, 0
    return parse_byte_value(parts[0]), parse_byte_value(parts[1])


def parse_uint(raw_value: str) -> int:
    """Читает неотрицательное целое, всё прочее даёт 0."""

    match = re.match(r"^\s*(\d+)", raw_value or "")
    return int(match.group(1)) if match else 0


def format_bytes(value: Any) -> str:
    """Форматирует байты в удобочитаемый вид."""

    try:
        numeric = float(value)
    except (TypeError, ValueError):
        return "N/A"
    units = ["B", "KB", "MB", "GB", "TB"]
    index = 0
    while numeric >= 1024 and index < len(units) - 1:
        numeric /= 1024.0
        index += 1
    return f"{numeric:.1f} {units[index]}"


def socket_accepts(path: str, timeout: float = 0.5) -> bool:
    """Проверяет, что к Unix-сокету можно подключиться."""

    sock = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
    sock.settimeout(timeout)
    try:
        sock.connect(path)
        return True
    except OSError:
        return False
    finally:
        sock.close()
