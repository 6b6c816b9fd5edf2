#!/usr/bin/env python3
"""
Scheduler session for running a command file on a pool of execution slots.

The session owns the job list and the slot pool. Slots run their processes
on background threads and report back through a message queue; every
dispatch decision and status transition happens on the thread that calls
wait(), so the job list needs no lock.

Lifecycle:
- RUNNING: jobs flow pending -> started -> finished
- DRAINING: no new dispatch, running processes are killed
- TERMINATED: summary printed, exit code fixed
"""

import queue
import sys
import time
from dataclasses import dataclass
from enum import Enum, IntEnum
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, TextIO

from decologr import Logger as log

from schedpool.core.job import Job, JobOutcome, JobResult, JobStatus, load_jobs
from schedpool.core.progress import ProgressReporter
from schedpool.core.watchdog import RamWatchdog
from schedpool.core.worker_pool import (
    ExecutionSlot,
    ShellJobRunner,
    choose_number_of_workers,
    create_slots,
)

SUMMARY_COMMAND_WIDTH = 50


class SessionState(Enum):
    """Session lifecycle states"""

    RUNNING = "running"
    DRAINING = "draining"
    TERMINATED = "terminated"


class ExitCode(IntEnum):
    """Process exit codes"""

    OK = 0
    USAGE = 1
    OUT_OF_MEMORY = 17
    INTERRUPTED = 130


@dataclass
class SlotFinished:
    slot: ExecutionSlot
    result: JobResult


@dataclass
class StopRequested:
    exit_code: ExitCode


def truncate_command(command: str, width: int = SUMMARY_COMMAND_WIDTH) -> str:
    if len(command) > width:
        return f"{command[:width - 3]}..."
    return command


class Session:
    """
    Runs every line of a command file with bounded parallelism.

    - Creates the slot pool on start
    - Pulls the oldest pending job into each slot that frees up
    - Re-renders progress on a timer and on every completion
    - Drains on interrupt or when free memory drops below the floor
    """

    def __init__(
        self,
        command_file: Path,
        parallel_workers: int = 0,
        timeout: str = "1d",
        safety_free_ram: int = -1,
        runner: Optional[ShellJobRunner] = None,
        script_dir: Optional[Path] = None,
        stream: Optional[TextIO] = None,
        creation_delay: float = 0.1,
        watchdog_interval: float = 3.0,
        drain_grace: float = 5.0,
        ram_sampler: Optional[Callable[[], int]] = None,
        worker_chooser: Optional[Callable[[], int]] = None,
    ):
        """
        Initialize the session.

        :param command_file: Text file with one shell command per line
        :param parallel_workers: Number of slots, 0 to auto-detect
        :param timeout: Per-job deadline in `timeout` utility syntax (e.g. 30m, 1d)
        :param safety_free_ram: Free memory floor in bytes, <= 0 disables the watchdog
        :param runner: Process runner shared by the slots (default: ShellJobRunner)
        :param script_dir: Directory for temporary job scripts (default: cwd)
        :param stream: Console output stream (default: stdout)
        :param creation_delay: Pause between slot creations in seconds
        :param watchdog_interval: Seconds between free memory samples
        :param drain_grace: Seconds to wait for killed jobs before SIGKILL
        :param ram_sampler: Callable returning free memory in bytes
        :param worker_chooser: Callable returning the auto-detected worker count
        """
        if parallel_workers < 0:
            raise ValueError("parallel_workers must be >= 0")

        self.jobs: List[Job] = load_jobs(command_file)
        self.requested_workers = parallel_workers
        self.timeout = timeout
        self.runner = runner or ShellJobRunner(script_dir=script_dir)
        self.stream = stream or sys.stdout
        self.creation_delay = creation_delay
        self.drain_grace = drain_grace
        self.worker_chooser = worker_chooser or choose_number_of_workers

        self.watchdog = RamWatchdog(
            safety_free_ram, interval=watchdog_interval, sampler=ram_sampler
        )
        self.progress = ProgressReporter(len(self.jobs), stream=self.stream)

        self.slots: List[ExecutionSlot] = []
        self.state = SessionState.RUNNING
        self.exit_code: Optional[ExitCode] = None
        self.stop_requested: Optional[ExitCode] = None

        self._events: "queue.SimpleQueue[Any]" = queue.SimpleQueue()
        self._clean_exit_callbacks: List[Callable[[], None]] = []
        self._next_render: Optional[float] = None
        self._started = False

    def on_clean_exit(self, callback: Callable[[], None]):
        """Register a callback to run once the session terminates."""
        self._clean_exit_callbacks.append(callback)

    def start(self):
        """Create the slot pool and dispatch the first jobs."""
        if self._started:
            log.warning("Session already started")
            return
        self._started = True

        workers = self.requested_workers or self.worker_chooser()
        print(f"Using {workers} worker(s)", file=self.stream)
        log.info(f"Starting session with {len(self.jobs)} job(s) on {workers} worker(s)")

        self.slots = create_slots(workers, self.runner, self.creation_delay)
        self._render_progress()

        if not self.jobs:
            self._terminate(ExitCode.OK)
            return

        now = time.monotonic()
        self._next_render = now + self.progress.next_interval()
        self.watchdog.arm(now)

        for _ in range(min(workers, len(self.jobs))):
            self.schedule_next()

    def run(self) -> ExitCode:
        """Start the session and block until it terminates."""
        self.start()
        return self.wait()

    def wait(self) -> ExitCode:
        """
        Process completions and timers until the session terminates.

        :return: Exit code of the session
        """
        if not self._started:
            raise RuntimeError("Session not started")

        while self.state != SessionState.TERMINATED:
            try:
                event = self._events.get(timeout=self._seconds_until_timer())
            except queue.Empty:
                event = None

            if isinstance(event, SlotFinished):
                self._slot_finished(event.slot, event.result)
            elif isinstance(event, StopRequested):
                self.drain(event.exit_code)

            self._run_timers()

        return self.exit_code

    def schedule_next(self, slot: Optional[ExecutionSlot] = None) -> Optional[Job]:
        """
        Take the first pending job and give it to a slot.

        :param slot: Slot to use, if None any idle slot is used
        :return: The dispatched job, or None if nothing was dispatched
        """
        job = self._first_pending()
        if job is None:
            return None

        if self.state != SessionState.RUNNING or self.stop_requested is not None:
            return None

        target = slot
        if target is None:
            target = next((s for s in self.slots if not s.busy), None)

        if target is None or target.busy:
            # Should not happen, a later completion retries the dispatch
            log.warning("No available execution slot found")
            return None

        log.debug(f"Dispatching {job.command!r} to {target.slot_id}")
        target.submit(job, self.timeout, self._post_result)
        return job

    def emergency_stop(self, exit_code: ExitCode = ExitCode.INTERRUPTED):
        """
        Request a drain of the session.

        Safe to call from signal handlers and other threads; the drain itself
        runs on the thread that calls wait().
        """
        if self.state == SessionState.TERMINATED:
            return
        if self.stop_requested is None:
            self.stop_requested = ExitCode(exit_code)
        self._events.put(StopRequested(self.stop_requested))

    def drain(self, exit_code: ExitCode = ExitCode.INTERRUPTED):
        """
        Kill all running jobs, remove leftover scripts and terminate.

        :param exit_code: Exit code used unless a stop was already requested
        """
        if self.state == SessionState.TERMINATED:
            return
        if self.stop_requested is None:
            self.stop_requested = ExitCode(exit_code)

        self.state = SessionState.DRAINING
        self._next_render = None
        self.watchdog.disarm()
        log.info("Draining session, stopping all running jobs")

        killed = self.kill_all()

        # One grace period for the whole pool, not one per slot
        deadline = time.monotonic() + self.drain_grace
        stubborn = [
            slot
            for slot in self.slots
            if not slot.join(max(deadline - time.monotonic(), 0.0))
        ]
        for slot in stubborn:
            log.warning(f"Job on {slot.slot_id} did not stop in time, sending SIGKILL")
            slot.kill(force=True)
        deadline = time.monotonic() + self.drain_grace
        for slot in stubborn:
            if not slot.join(max(deadline - time.monotonic(), 0.0)):
                log.warning(f"Job on {slot.slot_id} still running after SIGKILL")

        removed = self.runner.sweep_scripts()
        log.info(f"Stopped {killed} running job(s), removed {removed} leftover script(s)")

        self._terminate(self.stop_requested)

    def kill_all(self, force: bool = False) -> int:
        """
        Signal every running job process.

        :param force: Send SIGKILL instead of SIGTERM
        :return: Number of processes signalled
        """
        killed = 0
        for slot in self.slots:
            if slot.busy and slot.kill(force=force):
                killed += 1
        return killed

    def outcome_counts(self) -> Dict[str, int]:
        counts = {outcome.value: 0 for outcome in JobOutcome}
        for job in self.jobs:
            counts[job.outcome.value] += 1
        return counts

    def summary(self) -> List[str]:
        """
        Build the final per-job result lines.

        :return: One line per job in input order
        """
        lines = []
        for job in self.jobs:
            outcome = job.outcome
            if outcome == JobOutcome.ABORTED:
                elapsed = "-"
            else:
                elapsed = f"{job.duration_ms / 1000.0:.1f}s"
            command = truncate_command(job.command)
            lines.append(
                f"{command:<{SUMMARY_COMMAND_WIDTH}} → {outcome.value:<8} {elapsed}"
            )
        return lines

    def get_worker_status(self) -> Dict[str, Any]:
        """
        Get status of all slots and jobs.

        :return: Dictionary with slot and job status information
        """
        jobs_by_status = {status.value: 0 for status in JobStatus}
        for job in self.jobs:
            jobs_by_status[job.status.value] += 1

        return {
            "state": self.state.value,
            "total_workers": len(self.slots),
            "busy_workers": sum(1 for slot in self.slots if slot.busy),
            "workers": [
                {
                    "slot_id": slot.slot_id,
                    "busy": slot.busy,
                    "current_job": slot.current_job.command if slot.current_job else None,
                }
                for slot in self.slots
            ],
            "jobs": jobs_by_status,
        }

    def _first_pending(self) -> Optional[Job]:
        return next((j for j in self.jobs if j.status == JobStatus.PENDING), None)

    def _post_result(self, slot: ExecutionSlot, result: JobResult):
        # Runs on the slot thread
        self._events.put(SlotFinished(slot, result))

    def _slot_finished(self, slot: ExecutionSlot, result: JobResult):
        if self.state != SessionState.RUNNING:
            return
        if slot.current_job is not result.job:
            log.warning(f"Ignoring unexpected completion from {slot.slot_id}")
            return

        job = result.job
        job.finish(result)
        slot.release()
        log.debug(
            f"Job {job.command!r} finished: {job.outcome.value} "
            f"(return code {job.return_code}, {job.duration_ms:.0f} ms)"
        )
        self._render_progress()

        if self._first_pending() is not None:
            self.schedule_next(slot)
        elif not any(s.busy for s in self.slots):
            # A stop requested before the last completion still counts
            self._terminate(self.stop_requested or ExitCode.OK)

    def _seconds_until_timer(self) -> float:
        now = time.monotonic()
        delays = [1.0]
        if self._next_render is not None:
            delays.append(max(self._next_render - now, 0.0))
        watchdog_delay = self.watchdog.seconds_until_check(now)
        if watchdog_delay is not None:
            delays.append(watchdog_delay)
        return min(delays)

    def _run_timers(self):
        if self.state != SessionState.RUNNING:
            return
        now = time.monotonic()
        if self._next_render is not None and now >= self._next_render:
            self._render_progress()
            self._next_render = now + self.progress.next_interval()
        if self.watchdog.check(now):
            self.drain(ExitCode.OUT_OF_MEMORY)

    def _render_progress(self):
        finished = sum(1 for j in self.jobs if j.status == JobStatus.FINISHED)
        self.progress.render(finished)

    def _terminate(self, exit_code: ExitCode):
        self.state = SessionState.TERMINATED
        self.exit_code = ExitCode(exit_code)
        self._next_render = None
        self.watchdog.disarm()

        self._render_progress()
        self.progress.close()
        self._print_summary()
        log.info(f"Session terminated with exit code {int(self.exit_code)}")

        callbacks, self._clean_exit_callbacks = self._clean_exit_callbacks, []
        for callback in callbacks:
            callback()

    def _print_summary(self):
        if self.exit_code == ExitCode.OK:
            header = "All jobs finished, here is the result:"
        elif self.exit_code == ExitCode.OUT_OF_MEMORY:
            header = "Free memory dropped below the safety floor, here is the result:"
        else:
            header = "Run interrupted, here is the result:"

        print(header, file=self.stream)
        for line in self.summary():
            print(line, file=self.stream)

        counts = self.outcome_counts()
        print(
            ", ".join(f"{name}: {count}" for name, count in counts.items()),
            file=self.stream,
        )
