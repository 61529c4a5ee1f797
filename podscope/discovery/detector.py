"""Выбор хоста движка: переменные окружения, Docker context, известные сокеты.

Результат вычисляется один раз на процесс и дальше не меняется.
"""

from __future__ import annotations

import logging
import os
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional

import docker
import requests
from docker.errors import DockerException

from podscope.discovery.candidates import SocketCandidate, default_candidates, existing_candidates
from podscope.discovery.context import context_host, current_context_name, docker_config_dir, is_default_context
from podscope.runtime.exceptions import ConnectivityError, DiscoveryError, RuntimeAPIError
from podscope.runtime.models import RuntimeKind
from podscope.utils.helpers import normalize_socket_path

LOGGER = logging.getLogger(__name__)

HOST_VARIABLES = (("CONTAINER_HOST", RuntimeKind.PODMAN), ("DOCKER_HOST", RuntimeKind.DOCKER))
CONTEXT_VARIABLE = "DOCKER_CONTEXT"
PODMAN_SOCKET_HINT = "systemctl --user enable --now podman.socket"

HostValidator = Callable[[str, float], RuntimeKind]


@dataclass(slots=True, frozen=True)
class DiscoveredHost:
    """Выбранный адрес движка и откуда он взялся."""

    host: str
    kind: RuntimeKind
    source: str

    @property
    def is_ssh(self) -> bool:
        return self.host.startswith("ssh://")


def infer_kind(version: Dict[str, Any]) -> RuntimeKind:
    """Определяет движок по ответу ``/version``."""

    platform = version.get("Platform") if isinstance(version, dict) else None
    names = [str(platform.get("Name") or "")] if isinstance(platform, dict) else []
    for component in (version.get("Components") or []) if isinstance(version, dict) else []:
        if isinstance(component, dict):
            names.append(str(component.get("Name") or ""))
    if any("podman" in name.lower() for name in names):
        return RuntimeKind.PODMAN
    return RuntimeKind.DOCKER


def validate_host(host: str, timeout: float) -> RuntimeKind:
    """Пингует движок по адресу ``host`` и возвращает его вид."""

    try:
        client = docker.APIClient(base_url=host, version="auto", timeout=timeout)
    except (DockerException, requests.exceptions.RequestException) as exc:
        raise ConnectivityError(f"ping failed: {exc}", host=host) from exc
    try:
        client.ping()
        version = client.version()
    except (DockerException, requests.exceptions.RequestException) as exc:
        raise ConnectivityError(f"ping failed: {exc}", host=host) from exc
    finally:
        client.close()
    return infer_kind(version)


def discover(
    env: Optional[Mapping[str, str]] = None,
    *,
    timeout: float = 5,
    validator: Optional[HostValidator] = None,
    candidates: Optional[List[SocketCandidate]] = None,
    config_dir: Optional[Path] = None,
) -> DiscoveredHost:
    """Выполняет поиск без кеширования.

    Порядок: CONTAINER_HOST, DOCKER_HOST, DOCKER_CONTEXT или currentContext,
    затем известные сокеты. SSH-адреса возвращаются без проверки: туннель
    поднимается позже.
    """

    env = os.environ if env is None else env
    validator = validator or validate_host

    for variable, ssh_kind in HOST_VARIABLES:
        if variable not in env:
            continue
        raw_value = env[variable]
        host = normalize_socket_path(raw_value)
        if host.startswith("ssh://"):
            LOGGER.info("Using %s=%s without validation", variable, host)
            return DiscoveredHost(host, ssh_kind, variable)
        try:
            kind = validator(host, timeout)
        except RuntimeAPIError as exc:
            raise DiscoveryError(
                f"{variable}={raw_value!r} is not usable: {exc.message}",
                explicit=True,
                context={"variable": variable},
            ) from exc
        LOGGER.info("Using %s engine from %s=%s", kind.value, variable, host)
        return DiscoveredHost(host, kind, variable)

    found = _discover_from_context(env, timeout, validator, config_dir)
    if found is not None:
        return found
    return _discover_from_candidates(env, timeout, validator, candidates)


def _discover_from_context(
    env: Mapping[str, str],
    timeout: float,
    validator: HostValidator,
    config_dir: Optional[Path],
) -> Optional[DiscoveredHost]:
    explicit = CONTEXT_VARIABLE in env
    config_dir = config_dir or docker_config_dir(env)
    name = env[CONTEXT_VARIABLE] if explicit else current_context_name(config_dir)
    if is_default_context(name):
        return None

    source = f"context:{name}"
    try:
        host = normalize_socket_path(context_host(config_dir, name))
        if host.startswith("ssh://"):
            return DiscoveredHost(host, RuntimeKind.DOCKER, source)
        kind = validator(host, timeout)
    except RuntimeAPIError as exc:
        if explicit:
            raise DiscoveryError(
                f"failed to use DOCKER_CONTEXT {name!r}: {exc.message}",
                explicit=True,
                context={"context": name},
            ) from exc
        LOGGER.warning("Current docker context %s is not usable: %s", name, exc.message)
        return None
    LOGGER.info("Using %s engine from docker context %s", kind.value, name)
    return DiscoveredHost(host, kind, source)


def _discover_from_candidates(
    env: Mapping[str, str],
    timeout: float,
    validator: HostValidator,
    candidates: Optional[List[SocketCandidate]],
) -> DiscoveredHost:
    existing = existing_candidates(candidates if candidates is not None else default_candidates(env))
    if not existing:
        raise DiscoveryError(
            f"no Docker or Podman socket found; start the engine or run `{PODMAN_SOCKET_HINT}`"
        )

    last_error = ""
    for candidate in existing:
        try:
            kind = validator(candidate.host, timeout)
        except RuntimeAPIError as exc:
            LOGGER.debug("Socket %s rejected: %s", candidate.path, exc.message)
            last_error = exc.message
            continue
        LOGGER.info("Using %s engine at %s", kind.value, candidate.path)
        return DiscoveredHost(candidate.host, kind, "socket")
    raise DiscoveryError(
        f"no usable Docker or Podman socket found: {last_error}",
        context={"candidates": [str(candidate.path) for candidate in existing]},
    )


# ------------------------------------------------------------------ cache
_CACHE_LOCK = threading.Lock()
_cached_host: Optional[DiscoveredHost] = None
_cached_error: Optional[DiscoveryError] = None


def detect_host(env: Optional[Mapping[str, str]] = None, *, timeout: float = 5) -> DiscoveredHost:
    """Возвращает хост движка, вычисляя его только при первом вызове."""

    global _cached_host, _cached_error
    with _CACHE_LOCK:
        if _cached_host is None and _cached_error is None:
            try:
                _cached_host = discover(env, timeout=timeout)
            except DiscoveryError as exc:
                _cached_error = exc
        if _cached_host is not None:
            return _cached_host
        raise _cached_error


def reset_host_cache() -> None:
    """Сбрасывает результат поиска (используется в тестах)."""

    global _cached_host, _cached_error
    with _CACHE_LOCK:
        _cached_host = None
        _cached_error = None
