"""Централизованное описание путей приложения."""

from __future__ import annotations

import os
from pathlib import Path


def resolve_base_dir() -> Path:
    """Возвращает базовую директорию с учётом переменной PODSCOPE_HOME."""

    home_dir = Path(os.environ.get("PODSCOPE_HOME", Path.home()))
    return home_dir / ".podscope"


# базовая директория настроек и логов
CONFIG_DIR = resolve_base_dir()
