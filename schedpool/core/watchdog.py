#!/usr/bin/env python3
"""
Free memory watchdog.

Samples available system memory on a fixed interval and reports a breach
when it drops below the configured floor.
"""

import time
from typing import Callable, Optional

import psutil
from decologr import Logger as log


def available_memory() -> int:
    """Return available system memory in bytes."""
    return psutil.virtual_memory().available


class RamWatchdog:
    """Periodic free memory check that can force the session to drain."""

    def __init__(
        self,
        floor_bytes: int,
        interval: float = 3.0,
        sampler: Optional[Callable[[], int]] = None,
    ):
        """
        Initialize the watchdog.

        :param floor_bytes: Minimum free memory in bytes, <= 0 disables the watchdog
        :param interval: Seconds between samples
        :param sampler: Callable returning free memory in bytes (default: psutil)
        """
        self.floor_bytes = floor_bytes
        self.interval = interval
        self.sampler = sampler or available_memory
        self.armed = False
        self.last_sample: Optional[int] = None
        self._next_check = 0.0

    @property
    def enabled(self) -> bool:
        return self.floor_bytes > 0

    def arm(self, now: Optional[float] = None):
        if not self.enabled:
            return
        now = time.monotonic() if now is None else now
        self.armed = True
        self._next_check = now + self.interval
        log.info(f"RAM watchdog armed, floor is {self.floor_bytes} bytes")

    def disarm(self):
        self.armed = False

    def seconds_until_check(self, now: float) -> Optional[float]:
        if not self.armed:
            return None
        return max(self._next_check - now, 0.0)

    def check(self, now: Optional[float] = None) -> bool:
        """
        Sample free memory if the interval has elapsed.

        :param now: Current monotonic time
        :return: True if free memory is below the floor
        """
        if not self.armed:
            return False
        now = time.monotonic() if now is None else now
        if now < self._next_check:
            return False
        self._next_check = now + self.interval

        self.last_sample = self.sampler()
        if self.last_sample < self.floor_bytes:
            log.warning(
                f"Free memory {self.last_sample} bytes is below the safety floor "
                f"of {self.floor_bytes} bytes"
            )
            self.disarm()
            return True
        return False
