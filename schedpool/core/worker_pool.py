#!/usr/bin/env python3
"""
Execution slots for the local job scheduler.

Each slot runs at most one job at a time. The job command is written to a
temporary bash script and run under the `timeout` utility so that the
deadline is enforced outside of this process.
"""

import os
import signal
import subprocess
import tempfile
import threading
import time
import uuid
from pathlib import Path
from typing import Callable, List, Optional

import psutil
from decologr import Logger as log, log_exception

from schedpool.core.job import Job, JobResult

SCRIPT_PREFIX = "_schedpool_exec_"


class ShellJobRunner:
    """
    Runs job commands as temporary bash scripts.

    The command text is written to a file rather than passed inline so
    multi-line commands and quoting survive untouched.
    """

    def __init__(
        self,
        script_dir: Optional[Path] = None,
        script_prefix: Optional[str] = None,
        shell: str = "bash",
        timeout_command: str = "timeout",
    ):
        """
        Initialize the runner.

        :param script_dir: Directory for temporary scripts (default: cwd)
        :param script_prefix: Filename prefix for temporary scripts
        :param shell: Shell used to execute the scripts
        :param timeout_command: Deadline wrapper utility
        """
        self.script_dir = Path(script_dir) if script_dir else Path.cwd()
        self.script_prefix = script_prefix or f"{SCRIPT_PREFIX}{uuid.uuid4().hex[:8]}_"
        self.shell = shell
        self.timeout_command = timeout_command

    def write_script(self, command: str) -> Path:
        """Write the command to a uniquely named script file."""
        fd, path = tempfile.mkstemp(
            prefix=self.script_prefix, suffix=".sh", dir=str(self.script_dir)
        )
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            fh.write(command)
        return Path(path)

    def build_command(self, script_path: Path, timeout_spec: str) -> List[str]:
        argv = [self.shell, str(script_path)]
        if timeout_spec:
            argv = [self.timeout_command, timeout_spec] + argv
        return argv

    def run(
        self,
        command: str,
        timeout_spec: str,
        attach: Callable[[subprocess.Popen], None],
    ) -> Optional[int]:
        """
        Execute a command and wait for it.

        :param command: Shell command text
        :param timeout_spec: Duration understood by the timeout utility
        :param attach: Called with the process handle right after spawn
        :return: Exit code, or None if the process could not be started
        """
        try:
            script_path = self.write_script(command)
        except OSError as ex:
            log_exception(ex, "Error writing job script")
            return None

        try:
            # Own session so terminal signals reach only the scheduler
            process = subprocess.Popen(
                self.build_command(script_path, timeout_spec),
                start_new_session=True,
            )
            attach(process)
            return process.wait()
        except OSError as ex:
            log_exception(ex, f"Error starting job script {script_path}")
            return None
        finally:
            try:
                script_path.unlink()
            except OSError as ex:
                log.warning(f"Could not remove job script {script_path}: {ex}")

    def signal_process(self, process: subprocess.Popen, force: bool = False):
        """Send SIGTERM, or SIGKILL if forced, to the job's process group."""
        os.killpg(process.pid, signal.SIGKILL if force else signal.SIGTERM)

    def sweep_scripts(self) -> int:
        """
        Remove leftover scripts created by this runner.

        :return: Number of files removed
        """
        removed = 0
        for path in self.script_dir.glob(f"{self.script_prefix}*.sh"):
            try:
                path.unlink()
                removed += 1
            except FileNotFoundError:
                continue
            except OSError as ex:
                log.warning(f"Could not remove job script {path}: {ex}")
        return removed


class ExecutionSlot:
    """Pool member that runs one job's process at a time."""

    def __init__(self, slot_id: str, runner: ShellJobRunner):
        self.slot_id = slot_id
        self.runner = runner
        self.current_job: Optional[Job] = None
        self.process: Optional[subprocess.Popen] = None
        self.thread: Optional[threading.Thread] = None
        self._lock = threading.Lock()
        self._cancelled = False

    @property
    def busy(self) -> bool:
        return self.current_job is not None

    def submit(
        self,
        job: Job,
        timeout_spec: str,
        on_done: Callable[["ExecutionSlot", JobResult], None],
    ):
        """
        Start a job on this slot without blocking.

        :param job: Pending job to run
        :param timeout_spec: Duration passed to the timeout utility
        :param on_done: Receives (slot, result) when the process exits
        """
        if self.busy:
            raise RuntimeError(f"Slot {self.slot_id} is already busy")
        job.mark_started()
        self.current_job = job
        with self._lock:
            self._cancelled = False
            self.process = None

        self.thread = threading.Thread(
            target=self._execute_job,
            args=(job, timeout_spec, on_done),
            daemon=True,
            name=self.slot_id,
        )
        self.thread.start()

    def release(self):
        """Release the current job."""
        self.current_job = None
        with self._lock:
            self.process = None

    def _attach(self, process: subprocess.Popen):
        with self._lock:
            self.process = process
            cancelled = self._cancelled
        if cancelled:
            try:
                self.runner.signal_process(process)
            except ProcessLookupError:
                pass

    def _execute_job(
        self,
        job: Job,
        timeout_spec: str,
        on_done: Callable[["ExecutionSlot", JobResult], None],
    ):
        t0 = time.monotonic()
        try:
            return_code = self.runner.run(job.command, timeout_spec, self._attach)
        except Exception as ex:
            log_exception(ex, f"Error executing job on {self.slot_id}")
            return_code = None
        duration_ms = (time.monotonic() - t0) * 1000.0
        on_done(self, JobResult.from_return_code(job, return_code, duration_ms))

    def kill(self, force: bool = False) -> bool:
        """
        Stop the running process.

        :param force: Send SIGKILL instead of SIGTERM
        :return: True if a live process was signalled
        """
        with self._lock:
            self._cancelled = True
            process = self.process
        if process is None or process.poll() is not None:
            return False
        try:
            self.runner.signal_process(process, force=force)
        except ProcessLookupError:
            return False
        log.debug(f"Sent {'SIGKILL' if force else 'SIGTERM'} to job on {self.slot_id}")
        return True

    def join(self, timeout: Optional[float] = None) -> bool:
        """
        Wait for the slot thread to finish.

        :return: True if the thread is no longer running
        """
        if self.thread is None:
            return True
        self.thread.join(timeout=timeout)
        return not self.thread.is_alive()


def create_slots(
    count: int, runner: ShellJobRunner, creation_delay: float = 0.1
) -> List[ExecutionSlot]:
    """
    Create the slot pool one slot at a time.

    :param count: Number of slots
    :param runner: Runner shared by all slots
    :param creation_delay: Pause between successive creations in seconds
    :return: List of idle slots
    """
    slots = []
    for i in range(count):
        if i and creation_delay > 0:
            time.sleep(creation_delay)
        slots.append(ExecutionSlot(f"slot_{i+1}_{uuid.uuid4().hex[:8]}", runner))
    return slots


def choose_number_of_workers() -> int:
    """
    Choose a worker count from the number of cores on this machine.

    Half of the logical cores (hyperthreads do not count), minus one for the
    scheduler itself, and never less than one.
    """
    cores = psutil.cpu_count(logical=True) or os.cpu_count() or 1
    return max(cores // 2 - 1, 1)


