"""Тесты определения возможностей CLI по справке."""

from __future__ import annotations

from typing import Dict, Sequence

from podscope.runtime.base import Feature
from podscope.runtime.capabilities import FeatureDetector, FeatureSet, has_flag, has_subcommand
from podscope.runtime.exceptions import ConnectivityError

ROOT_HELP = """USAGE: container <subcommand>

SUBCOMMANDS:
  create  Create a container
  exec    Run a command
  logs    Fetch logs
  stats   Show usage
  events  Stream events
"""

HELP_TEXTS: Dict[str, str] = {
    "": ROOT_HELP,
    "images": "SUBCOMMANDS:\n  list   List images\n  rm     Remove images\n  prune  Remove unused\n",
    "volume": "SUBCOMMANDS:\n  create  Create a volume\n  list  List volumes\n",
    "network": "SUBCOMMANDS:\n  list  List networks\n  prune  Remove unused\n",
    "build": "OPTIONS:\n  --arch <arch>  Target architecture\n",
    "run": "OPTIONS:\n  --ssh  Forward agent\n",
}


class FakeHelpRunner:
    """Возвращает заготовленную справку; неизвестные разделы падают."""

    def __init__(self) -> None:
        self.calls = []

    def __call__(self, argv: Sequence[str]) -> str:
        self.calls.append(list(argv))
        namespace = " ".join(argv[1:-1])
        if namespace not in HELP_TEXTS:
            raise ConnectivityError("unknown subcommand", command=" ".join(argv))
        return HELP_TEXTS[namespace]


def test_has_subcommand_requires_word_boundary() -> None:
    assert has_subcommand("  exec  Run", "exec")
    assert has_subcommand("exec Run", "exec") is False
    assert has_subcommand("x\nexec Run", "exec")
    assert not has_subcommand("  executor  Run", "exec")


def test_has_flag() -> None:
    assert has_flag("  --os <os> ", ("--platform", "--os"))
    assert not has_flag("  --ostype ", ("--os",))


def test_detector_reads_help_output() -> None:
    runner = FakeHelpRunner()
    features = FeatureDetector(runner).detect()

    assert runner.calls[0] == ["container", "--help"]
    assert features.supports(Feature.CONTAINER_EXEC)
    assert features.supports(Feature.STATS)
    assert features.supports(Feature.EVENTS_STREAM)
    assert not features.supports(Feature.CONTAINER_TOP)
    assert not features.supports(Feature.CONTAINER_ATTACH)
    assert features.supports(Feature.IMAGE_REMOVE)
    assert features.supports(Feature.IMAGE_PRUNE)
    assert not features.supports(Feature.IMAGE_HISTORY)
    assert features.supports(Feature.VOLUME_CREATE)
    assert not features.supports(Feature.VOLUME_PRUNE)
    assert features.supports(Feature.NETWORK_PRUNE)
    assert features.supports(Feature.BUILD_PLATFORM)
    assert not features.supports(Feature.RUN_PLATFORM)
    assert features.supports(Feature.SSH_AGENT_FORWARD)


def test_help_failures_mean_absent() -> None:
    """Раздел container отсутствует в заготовках, поэтому prune недоступен."""

    features = FeatureDetector(FakeHelpRunner()).detect()
    assert not features.supports(Feature.CONTAINER_PRUNE)
    for feature in (Feature.STATS_STREAM, Feature.SERVICES, Feature.PODS):
        assert not features.supports(feature)


def test_feature_set_is_read_only_copy() -> None:
    flags = {Feature.STATS: True}
    features = FeatureSet(flags)
    flags[Feature.STATS] = False
    assert features.supports(Feature.STATS)
    assert features.as_dict() == {"stats": True}
    assert not features.supports(Feature.PODS)
    assert "stats" in repr(features)
