"""Тесты чтения Docker context."""

from __future__ import annotations

import hashlib
import json
from pathlib import Path

import pytest

from podscope.discovery.context import context_host, current_context_name, docker_config_dir, is_default_context
from podscope.runtime.exceptions import DiscoveryError


def write_context(config_dir: Path, name: str, meta: dict) -> None:
    digest = hashlib.sha256(name.encode("utf-8")).hexdigest()
    meta_dir = config_dir / "contexts" / "meta" / digest
    meta_dir.mkdir(parents=True)
    (meta_dir / "meta.json").write_text(json.dumps(meta), encoding="utf-8")


def test_config_dir_override(tmp_path: Path) -> None:
    assert docker_config_dir({"DOCKER_CONFIG": str(tmp_path)}) == tmp_path
    assert docker_config_dir({}, home=tmp_path) == tmp_path / ".docker"
    assert docker_config_dir({"DOCKER_CONFIG": "  "}, home=tmp_path) == tmp_path / ".docker"


def test_current_context_name(tmp_path: Path) -> None:
    assert current_context_name(tmp_path) == ""

    (tmp_path / "config.json").write_text(json.dumps({"currentContext": "colima"}), encoding="utf-8")
    assert current_context_name(tmp_path) == "colima"


def test_broken_config_is_ignored(tmp_path: Path) -> None:
    (tmp_path / "config.json").write_text("{not json", encoding="utf-8")
    assert current_context_name(tmp_path) == ""


def test_context_host_reads_docker_endpoint(tmp_path: Path) -> None:
    write_context(tmp_path, "remote", {"Name": "remote", "Endpoints": {"docker": {"Host": "ssh://me@box"}}})

    assert context_host(tmp_path, "remote") == "ssh://me@box"


def test_context_host_errors(tmp_path: Path) -> None:
    with pytest.raises(DiscoveryError, match="not found"):
        context_host(tmp_path, "ghost")

    write_context(tmp_path, "empty", {"Name": "empty", "Endpoints": {}})
    with pytest.raises(DiscoveryError, match="no docker endpoint"):
        context_host(tmp_path, "empty")


def test_is_default_context() -> None:
    assert is_default_context("")
    assert is_default_context("default")
    assert not is_default_context("colima")
