import io
import threading
import time
from pathlib import Path
from typing import Callable, Dict, List, Optional

import pytest

from schedpool.core.scheduler import Session
from schedpool.core.worker_pool import ShellJobRunner


class FakeProcess:
    """Stands in for subprocess.Popen; exits when told to or when signalled."""

    def __init__(self):
        self.returncode: Optional[int] = None
        self.signals: List[str] = []
        self._exited = threading.Event()

    def poll(self):
        return self.returncode

    def exit(self, code: int):
        if self.returncode is None:
            self.returncode = code
            self._exited.set()

    def wait(self, timeout=None):
        self._exited.wait(timeout)
        return self.returncode


class FakeRunner(ShellJobRunner):
    """
    Runner that spawns nothing.

    With hold=True every job blocks until release() / release_all() or a
    kill; otherwise it exits at once with exit_code(command).
    """

    def __init__(
        self,
        script_dir: Path,
        hold: bool = False,
        exit_code: Optional[Callable[[str], int]] = None,
        duration: float = 0.0,
    ):
        super().__init__(script_dir=script_dir)
        self.hold = hold
        self.exit_code = exit_code or (lambda command: 0)
        self.duration = duration
        self.started: List[str] = []
        self.processes: Dict[str, FakeProcess] = {}
        self.running = 0
        self.max_running = 0
        self._lock = threading.Lock()

    def run(self, command, timeout_spec, attach):
        process = FakeProcess()
        with self._lock:
            self.started.append(command)
            self.processes[command] = process
            self.running += 1
            self.max_running = max(self.max_running, self.running)
            hold = self.hold
        attach(process)
        if not hold:
            time.sleep(self.duration)
            process.exit(self.exit_code(command))
        code = process.wait()
        with self._lock:
            self.running -= 1
        return code

    def signal_process(self, process, force=False):
        process.signals.append("KILL" if force else "TERM")
        process.exit(-9 if force else -15)

    def wait_started(self, command: str, timeout: float = 5.0) -> FakeProcess:
        deadline = time.monotonic() + timeout
        while time.monotonic() < deadline:
            with self._lock:
                if command in self.processes:
                    return self.processes[command]
            time.sleep(0.005)
        raise AssertionError(f"{command!r} never started")

    def release(self, command: str, code: int = 0):
        self.wait_started(command).exit(code)

    def release_all(self, code: int = 0):
        with self._lock:
            self.hold = False
            processes = list(self.processes.values())
        for process in processes:
            process.exit(code)


@pytest.fixture
def command_file(tmp_path):
    def _write(lines, name="commands.txt"):
        path = tmp_path / name
        path.write_text("\n".join(lines) + "\n", encoding="utf-8")
        return path

    return _write


@pytest.fixture
def make_session(tmp_path):
    def _make(path, runner=None, **kwargs):
        kwargs.setdefault("parallel_workers", 2)
        kwargs.setdefault("creation_delay", 0)
        kwargs.setdefault("drain_grace", 2.0)
        kwargs.setdefault("stream", io.StringIO())
        return Session(path, runner=runner or FakeRunner(tmp_path), **kwargs)

    return _make
