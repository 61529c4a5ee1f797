"""Запуск внешних команд: синхронно, с выводом и в потоковом режиме."""

from __future__ import annotations

import logging
import shlex
import shutil
import subprocess
import threading
from collections import deque
from pathlib import Path
from typing import Deque, Dict, Iterator, List, Optional, Sequence

import psutil

from podscope.runtime.exceptions import ConnectivityError

LOGGER = logging.getLogger(__name__)

STDERR_TAIL_LINES = 50
DRAIN_JOIN_TIMEOUT_SEC = 1.0


def command_exists(name: str) -> bool:
    """Проверяет, что исполняемый файл доступен в PATH."""

    return shutil.which(name) is not None


def split_command(command: str) -> List[str]:
    """Разбивает строку команды на аргументы по правилам shell."""

    return shlex.split(command)


def run_executable_with_output(
    argv: Sequence[str],
    *,
    env: Optional[Dict[str, str]] = None,
    cwd: Optional[str] = None,
    timeout: Optional[float] = None,
) -> str:
    """Выполняет программу и возвращает stdout.

    Ненулевой код возврата, отсутствие программы и таймаут превращаются в
    ConnectivityError с текстом команды в контексте.
    """

    command_text = " ".join(argv)
    LOGGER.debug("Running command: %s", command_text)
    try:
        completed = subprocess.run(
            list(argv),
            cwd=cwd,
            env=env,
            check=False,
            capture_output=True,
            text=True,
            timeout=timeout,
        )
    except subprocess.TimeoutExpired as exc:
        raise ConnectivityError(
            f"Command timed out after {timeout} seconds", command=command_text
        ) from exc
    except OSError as exc:
        raise ConnectivityError(str(exc), command=command_text) from exc

    if completed.returncode != 0:
        details = (completed.stderr or completed.stdout or "").strip()
        message = details or f"exit status {completed.returncode}"
        raise ConnectivityError(
            message,
            command=command_text,
            context={"returncode": completed.returncode},
        )
    return completed.stdout or ""


def run_command_with_output(
    command: str,
    *,
    env: Optional[Dict[str, str]] = None,
    cwd: Optional[str] = None,
    timeout: Optional[float] = None,
) -> str:
    """Выполняет строку команды и возвращает её stdout."""

    return run_executable_with_output(split_command(command), env=env, cwd=cwd, timeout=timeout)


def run_command(
    command: str,
    *,
    env: Optional[Dict[str, str]] = None,
    cwd: Optional[str] = None,
    timeout: Optional[float] = None,
) -> None:
    """Выполняет строку команды, игнорируя вывод."""

    run_command_with_output(command, env=env, cwd=cwd, timeout=timeout)


class BackgroundProcess:
    """Долгоживущий дочерний процесс, stderr которого вычитывается в лог.

    Поток-читатель не даёт процессу заблокироваться на переполненном канале
    и хранит последние строки для сообщений об ошибках.
    """

    def __init__(self, process: subprocess.Popen, name: str, *, tail_lines: int = STDERR_TAIL_LINES) -> None:
        self.name = name
        self._process = process
        self._tail: Deque[str] = deque(maxlen=tail_lines)
        self._drainer = threading.Thread(target=self._drain, name=f"stderr-{name}", daemon=True)
        self._drainer.start()

    @property
    def pid(self) -> int:
        return self._process.pid

    @property
    def returncode(self) -> Optional[int]:
        return self._process.returncode

    def poll(self) -> Optional[int]:
        return self._process.poll()

    def _drain(self) -> None:
        stream = self._process.stderr
        if stream is None:
            return
        with stream:
            for raw in iter(stream.readline, b""):
                line = raw.decode("utf-8", "ignore").rstrip()
                if line:
                    self._tail.append(line)
                    LOGGER.debug("[%s] %s", self.name, line)

    def stderr_tail(self) -> str:
        """Последние строки stderr; для завершившегося процесса ждёт их дочитывания."""

        if self._process.poll() is not None:
            self._drainer.join(DRAIN_JOIN_TIMEOUT_SEC)
        return "\n".join(self._tail)


def spawn_background(
    argv: Sequence[str], *, env: Optional[Dict[str, str]] = None
) -> BackgroundProcess:
    """Запускает процесс в собственной сессии; stderr уходит в лог."""

    command_text = " ".join(argv)
    try:
        process = subprocess.Popen(  # noqa: P204
            list(argv),
            stdin=subprocess.DEVNULL,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.PIPE,
            env=env,
            start_new_session=True,
        )
    except OSError as exc:
        raise ConnectivityError(str(exc), command=command_text) from exc
    return BackgroundProcess(process, Path(argv[0]).name)


def kill_process_tree(pid: int) -> None:
    """Завершает процесс вместе со всеми потомками."""

    try:
        parent = psutil.Process(pid)
    except psutil.NoSuchProcess:
        return
    children = parent.children(recursive=True)
    for process in [*children, parent]:
        try:
            process.kill()
        except psutil.NoSuchProcess:
            continue
    psutil.wait_procs([*children, parent], timeout=3)


def stream_lines(
    argv: Sequence[str],
    cancel: threading.Event,
    *,
    env: Optional[Dict[str, str]] = None,
) -> Iterator[str]:
    """Построчно читает stdout долгоживущей команды до отмены или EOF.

    При установке ``cancel`` процесс убивается вместе с потомками, чтобы
    чтение немедленно завершилось.
    """

    command_text = " ".join(argv)
    try:
        process = subprocess.Popen(  # noqa: P204
            list(argv),
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.DEVNULL,
            text=True,
            env=env,
            start_new_session=True,
        )
    except OSError as exc:
        raise ConnectivityError(str(exc), command=command_text) from exc

    finished = threading.Event()

    def _watch_cancel() -> None:
        while not finished.is_set():
            if cancel.wait(0.2):
                kill_process_tree(process.pid)
                return

    threading.Thread(target=_watch_cancel, name="stream-cancel", daemon=True).start()
    try:
        assert process.stdout is not None
        with process.stdout:
            for line in process.stdout:
                if cancel.is_set():
                    break
                stripped = line.strip()
                if stripped:
                    yield stripped
    finally:
        finished.set()
        if process.poll() is None:
            kill_process_tree(process.pid)
        process.wait()
        LOGGER.debug("Stream command finished: %s", command_text)
