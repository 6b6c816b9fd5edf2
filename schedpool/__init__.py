"""
SchedPool - local job scheduler for files of shell commands.

Runs each line of a command file as an independent job on a bounded pool of
workers, with a per-job timeout, live progress, cancellation and an optional
free memory safety floor.
"""

from schedpool.core.job import Job, JobOutcome, JobResult, JobStatus
from schedpool.core.scheduler import ExitCode, Session, SessionState
from schedpool.core.service import SchedulerService
from schedpool.core.watchdog import RamWatchdog
from schedpool.core.worker_pool import ExecutionSlot, ShellJobRunner

__all__ = [
    "Session",
    "SessionState",
    "ExitCode",
    "SchedulerService",
    "ExecutionSlot",
    "ShellJobRunner",
    "RamWatchdog",
    "Job",
    "JobStatus",
    "JobOutcome",
    "JobResult",
]
