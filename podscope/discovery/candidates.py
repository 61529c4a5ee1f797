"""Известные расположения сокетов Docker и Podman."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import List, Mapping, Optional

from podscope.runtime.models import RuntimeKind


@dataclass(slots=True, frozen=True)
class SocketCandidate:
    """Путь к сокету и движок, который обычно за ним стоит."""

    path: Path
    kind: RuntimeKind

    @property
    def host(self) -> str:
        return f"unix://{self.path}"


def default_candidates(
    env: Optional[Mapping[str, str]] = None,
    home: Optional[Path] = None,
    uid: Optional[int] = None,
) -> List[SocketCandidate]:
    """Возвращает кандидатов в порядке приоритета."""

    env = os.environ if env is None else env
    home = home or Path.home()
    uid = os.getuid() if uid is None else uid
    docker, podman = RuntimeKind.DOCKER, RuntimeKind.PODMAN

    candidates = [SocketCandidate(Path("/var/run/docker.sock"), docker)]
    runtime_dir = env.get("XDG_RUNTIME_DIR", "")
    if runtime_dir:
        candidates.append(SocketCandidate(Path(runtime_dir) / "docker.sock", docker))
    candidates.extend(
        [
            SocketCandidate(home / ".docker" / "run" / "docker.sock", docker),
            SocketCandidate(Path(f"/run/user/{uid}/podman/podman.sock"), podman),
            SocketCandidate(Path("/run/podman/podman.sock"), podman),
            SocketCandidate(home / ".local" / "share" / "containers" / "podman" / "machine" / "podman.sock", podman),
            # desktop VM-обёртки над docker
            SocketCandidate(home / ".colima" / "default" / "docker.sock", docker),
            SocketCandidate(home / ".orbstack" / "run" / "docker.sock", docker),
            SocketCandidate(home / ".lima" / "default" / "sock" / "docker.sock", docker),
            SocketCandidate(home / ".rd" / "docker.sock", docker),
        ]
    )
    return candidates


def existing_candidates(candidates: List[SocketCandidate]) -> List[SocketCandidate]:
    """Оставляет только кандидатов, файл сокета которых существует."""

    return [candidate for candidate in candidates if candidate.path.exists()]
