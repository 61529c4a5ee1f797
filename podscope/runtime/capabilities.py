"""Определение возможностей CLI-движка по тексту справки.

Эвристика: формулировки справки могут меняться между версиями, поэтому
любая ошибка интроспекции означает «возможность отсутствует».
"""

from __future__ import annotations

import logging
from types import MappingProxyType
from typing import Callable, Dict, Iterable, Mapping, Sequence

from podscope.runtime.base import Feature
from podscope.runtime.exceptions import RuntimeAPIError

LOGGER = logging.getLogger(__name__)

HelpRunner = Callable[[Sequence[str]], str]


class FeatureSet:
    """Неизменяемый набор флагов возможностей."""

    __slots__ = ("_flags",)

    def __init__(self, flags: Mapping[Feature, bool]) -> None:
        self._flags: Mapping[Feature, bool] = MappingProxyType(dict(flags))

    def supports(self, feature: Feature) -> bool:
        return bool(self._flags.get(feature, False))

    def as_dict(self) -> Dict[str, bool]:
        return {feature.value: value for feature, value in self._flags.items()}

    def __repr__(self) -> str:
        enabled = sorted(feature.value for feature, value in self._flags.items() if value)
        return f"FeatureSet({', '.join(enabled)})"


def has_subcommand(help_text: str, name: str) -> bool:
    """Подкоманда считается найденной, если стоит отдельным словом в списке."""

    return f" {name} " in help_text or f"\n{name} " in help_text


def has_flag(help_text: str, flags: Iterable[str]) -> bool:
    return any(f" {flag} " in help_text for flag in flags)


class FeatureDetector:
    """Запускает ``<tool> [namespace] --help`` и сопоставляет подстроки."""

    def __init__(self, run_help: HelpRunner, *, tool: str = "container") -> None:
        self._run_help = run_help
        self._tool = tool

    def _help(self, *namespace: str) -> str:
        argv = [self._tool, *namespace, "--help"]
        try:
            return self._run_help(argv) or ""
        except (RuntimeAPIError, OSError, ValueError) as exc:
            LOGGER.debug("Help introspection failed for %s: %s", " ".join(argv), exc)
            return ""

    def detect(self) -> FeatureSet:
        root = self._help()
        images = self._help("images")
        volume = self._help("volume")
        network = self._help("network")
        container = self._help("container")
        build = self._help("build")
        run = self._help("run")
        exec_help = self._help("exec")

        platform_flags = ("--platform", "--os", "--arch")
        flags = {
            Feature.CONTAINER_EXEC: has_subcommand(root, "exec"),
            Feature.CONTAINER_ATTACH: has_subcommand(root, "attach"),
            Feature.CONTAINER_TOP: has_subcommand(root, "top"),
            Feature.EVENTS_STREAM: has_subcommand(root, "events"),
            Feature.STATS: has_subcommand(root, "stats"),
            Feature.STATS_STREAM: False,
            Feature.IMAGE_HISTORY: has_subcommand(images, "history"),
            Feature.IMAGE_PRUNE: has_subcommand(images, "prune"),
            Feature.IMAGE_REMOVE: " rm " in images or " remove " in images,
            Feature.VOLUME_PRUNE: " prune " in volume,
            Feature.VOLUME_CREATE: has_subcommand(volume, "create"),
            Feature.NETWORK_PRUNE: " prune " in network,
            Feature.CONTAINER_PRUNE: " prune " in container,
            Feature.SERVICES: False,
            Feature.PODS: False,
            Feature.BUILD_PLATFORM: has_flag(build, platform_flags),
            Feature.RUN_PLATFORM: has_flag(run, platform_flags),
            Feature.SSH_AGENT_FORWARD: has_flag(exec_help, ("--ssh",)) or has_flag(run, ("--ssh",)),
        }
        features = FeatureSet(flags)
        LOGGER.info("Detected %s capabilities: %s", self._tool, features)
        return features
