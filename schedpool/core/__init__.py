"""Core scheduler components."""

from schedpool.core.job import Job, JobOutcome, JobResult, JobStatus
from schedpool.core.progress import ProgressReporter
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
    "ProgressReporter",
    "Job",
    "JobStatus",
    "JobOutcome",
    "JobResult",
]
