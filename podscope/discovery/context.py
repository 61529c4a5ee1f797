"""Чтение активного Docker context из конфигурации docker CLI."""

from __future__ import annotations

import hashlib
import json
import logging
import os
from pathlib import Path
from typing import Mapping, Optional

from podscope.runtime.exceptions import DiscoveryError

LOGGER = logging.getLogger(__name__)

DEFAULT_CONTEXT = "default"


def docker_config_dir(env: Optional[Mapping[str, str]] = None, home: Optional[Path] = None) -> Path:
    """Каталог конфигурации docker CLI; DOCKER_CONFIG переопределяет ~/.docker."""

    env = os.environ if env is None else env
    override = env.get("DOCKER_CONFIG", "")
    if override.strip():
        return Path(override).expanduser()
    return (home or Path.home()) / ".docker"


def current_context_name(config_dir: Path) -> str:
    """Возвращает currentContext из config.json или пустую строку."""

    config_file = config_dir / "config.json"
    if not config_file.exists():
        return ""
    try:
        data = json.loads(config_file.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        LOGGER.warning("Cannot read docker config %s: %s", config_file, exc)
        return ""
    if not isinstance(data, dict):
        return ""
    return str(data.get("currentContext") or "")


def context_host(config_dir: Path, name: str) -> str:
    """Возвращает Endpoints.docker.Host контекста ``name``.

    Метаданные лежат в ``contexts/meta/<sha256(name)>/meta.json``.
    """

    digest = hashlib.sha256(name.encode("utf-8")).hexdigest()
    meta_file = config_dir / "contexts" / "meta" / digest / "meta.json"
    try:
        data = json.loads(meta_file.read_text(encoding="utf-8"))
    except FileNotFoundError as exc:
        raise DiscoveryError(f"context {name!r} not found", context={"path": str(meta_file)}) from exc
    except (OSError, json.JSONDecodeError) as exc:
        raise DiscoveryError(f"context {name!r} is unreadable: {exc}", context={"path": str(meta_file)}) from exc

    endpoints = data.get("Endpoints") if isinstance(data, dict) else None
    docker_endpoint = endpoints.get("docker") if isinstance(endpoints, dict) else None
    host = docker_endpoint.get("Host") if isinstance(docker_endpoint, dict) else None
    if not host:
        raise DiscoveryError(f"context {name!r} has no docker endpoint", context={"path": str(meta_file)})
    return str(host)


def is_default_context(name: str) -> bool:
    return not name.strip() or name.strip() == DEFAULT_CONTEXT
