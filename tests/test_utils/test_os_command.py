"""Тесты запуска внешних команд."""

from __future__ import annotations

import os
import sys
import threading
import time

import pytest

from podscope.runtime.exceptions import ConnectivityError
from podscope.utils import os_command


def test_run_executable_returns_stdout() -> None:
    output = os_command.run_executable_with_output([sys.executable, "-c", "print('hello')"])
    assert output.strip() == "hello"


def test_run_executable_nonzero_exit_raises() -> None:
    with pytest.raises(ConnectivityError) as exc_info:
        os_command.run_executable_with_output(
            [sys.executable, "-c", "import sys; sys.stderr.write('boom'); sys.exit(3)"]
        )
    assert exc_info.value.message == "boom"
    assert exc_info.value.context["returncode"] == 3
    assert exc_info.value.command is not None


def test_run_executable_missing_binary_raises() -> None:
    with pytest.raises(ConnectivityError):
        os_command.run_executable_with_output(["podscope-definitely-missing-binary"])


def test_run_executable_timeout_raises() -> None:
    with pytest.raises(ConnectivityError) as exc_info:
        os_command.run_executable_with_output([sys.executable, "-c", "import time; time.sleep(5)"], timeout=0.2)
    assert "timed out" in exc_info.value.message


def test_run_command_with_output_splits_string() -> None:
    command = f"{sys.executable} -c \"print('a b')\""
    assert os_command.run_command_with_output(command).strip() == "a b"


def test_stream_lines_reads_until_eof() -> None:
    cancel = threading.Event()
    script = "print('one'); print(''); print('two')"
    assert list(os_command.stream_lines([sys.executable, "-c", script], cancel)) == ["one", "two"]


def test_stream_lines_stops_on_cancel() -> None:
    cancel = threading.Event()
    script = "import time\nprint('tick', flush=True)\ntime.sleep(30)"
    stream = os_command.stream_lines([sys.executable, "-c", script], cancel)
    assert next(stream) == "tick"
    cancel.set()
    assert list(stream) == []


def test_command_exists() -> None:
    assert not os_command.command_exists("podscope-definitely-missing-binary")


def test_background_process_drains_large_stderr(caplog: pytest.LogCaptureFixture) -> None:
    script = "import sys\nsys.stderr.write('x' * 200000 + '\\n')\nsys.stderr.write('listener failed\\n')"
    with caplog.at_level("DEBUG", logger="podscope.utils.os_command"):
        process = os_command.spawn_background([sys.executable, "-c", script])
        deadline = time.monotonic() + 10
        while process.poll() is None and time.monotonic() < deadline:
            time.sleep(0.05)

        assert process.poll() == 0
        assert process.stderr_tail().splitlines()[-1] == "listener failed"

    assert "listener failed" in caplog.text
    assert process.name == os.path.basename(sys.executable)


def test_spawn_background_missing_binary_raises() -> None:
    with pytest.raises(ConnectivityError):
        os_command.spawn_background(["podscope-definitely-missing-binary"])
