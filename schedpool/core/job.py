#!/usr/bin/env python3
"""
Job model for the local job scheduler.

A job is one line of the command file plus the outcome of running it.
"""

import re
from enum import Enum
from pathlib import Path
from typing import List, Optional

TIMEOUT_EXIT_CODE = 124


class JobStatus(Enum):
    """Job lifecycle states, forward only"""

    PENDING = "pending"
    STARTED = "started"
    FINISHED = "finished"


class JobOutcome(Enum):
    """Outcome reported in the final summary"""

    SUCCESS = "success"
    ERROR = "error"
    TIMEOUT = "timeout"
    ABORTED = "aborted"


class Job:
    """Represents a single command from the command file."""

    def __init__(self, command: str):
        self.command = command
        self.status = JobStatus.PENDING
        self.timed_out = False
        self.succeeded = False
        self.duration_ms: float = -1
        self.return_code: Optional[int] = None

    def mark_started(self):
        """Move the job from pending to started."""
        if self.status != JobStatus.PENDING:
            raise ValueError(f"Cannot start job in state {self.status.value}")
        self.status = JobStatus.STARTED

    def finish(self, result: "JobResult"):
        """Record the result of the job and mark it finished."""
        if self.status == JobStatus.FINISHED:
            raise ValueError("Job already finished")
        self.timed_out = result.timed_out
        self.succeeded = result.succeeded
        self.duration_ms = result.duration_ms
        self.return_code = result.return_code
        self.status = JobStatus.FINISHED

    @property
    def outcome(self) -> JobOutcome:
        if self.status != JobStatus.FINISHED:
            return JobOutcome.ABORTED
        if self.timed_out:
            return JobOutcome.TIMEOUT
        if self.succeeded:
            return JobOutcome.SUCCESS
        return JobOutcome.ERROR

    def __repr__(self):
        return f"Job({self.command!r}, status={self.status.value})"


class JobResult:
    """Completion message sent by an execution slot."""

    def __init__(
        self,
        job: Job,
        return_code: Optional[int],
        duration_ms: float,
        timed_out: bool,
        succeeded: bool,
    ):
        self.job = job
        self.return_code = return_code
        self.duration_ms = duration_ms
        self.timed_out = timed_out
        self.succeeded = succeeded

    @classmethod
    def from_return_code(
        cls, job: Job, return_code: Optional[int], duration_ms: float
    ) -> "JobResult":
        """
        Classify a wrapper exit code.

        :param job: Job that was executed
        :param return_code: Exit code, or None if the process never ran
        :param duration_ms: Wall-clock execution time in milliseconds
        :return: JobResult
        """
        timed_out = return_code == TIMEOUT_EXIT_CODE
        succeeded = return_code == 0
        return cls(job, return_code, duration_ms, timed_out, succeeded)


def load_jobs(command_file: Path) -> List[Job]:
    """
    Read a command file, one job per non-blank line.

    :param command_file: Path to a UTF-8 text file
    :return: Jobs in file order
    """
    text = Path(command_file).read_text(encoding="utf-8")
    return [Job(line) for line in re.split(r"\r?\n", text) if line.strip()]
