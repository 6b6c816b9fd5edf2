#!/usr/bin/env python3
"""Console progress line for a running session."""

import random
import shutil
import sys
import time
from typing import Optional, TextIO


class ProgressReporter:
    """Renders completed/total, elapsed time and percent on one line."""

    def __init__(
        self,
        total: int,
        stream: Optional[TextIO] = None,
        width: Optional[int] = None,
    ):
        self.total = total
        self.stream = stream or sys.stdout
        self.width = width or shutil.get_terminal_size().columns
        self.completed = 0
        self.started_at = time.monotonic()

    @staticmethod
    def next_interval() -> float:
        # Jitter keeps the elapsed digits moving between frames
        return 1.0 + random.uniform(0.0, 0.5)

    def format_line(self, completed: int, elapsed: float) -> str:
        percent = 100.0 * completed / self.total if self.total else 100.0
        head = f"{completed}/{self.total} | {elapsed:.1f}s "
        tail = f" {percent:.2f}%"
        bar_width = max(self.width - len(head) - len(tail) - 3, 0)
        filled = int(bar_width * completed / self.total) if self.total else bar_width
        return f"{head}[{'=' * filled}{' ' * (bar_width - filled)}]{tail}"

    def render(self, completed: int):
        """Redraw the progress line."""
        self.completed = max(self.completed, min(completed, self.total))
        elapsed = time.monotonic() - self.started_at
        self.stream.write("\r" + self.format_line(self.completed, elapsed))
        self.stream.flush()

    def close(self):
        self.stream.write("\n")
        self.stream.flush()
