#!/usr/bin/env python3
"""
Runs a scheduler session in the foreground and forwards interrupt signals.

The first SIGINT/SIGTERM drains the session: running jobs are killed and
the summary is printed. A second signal while draining kills every job
with SIGKILL and exits immediately.
"""

import signal
import sys
from typing import Dict

from decologr import Logger as log

from schedpool.core.scheduler import ExitCode, Session, SessionState

HANDLED_SIGNALS = (signal.SIGINT, signal.SIGTERM)


class SchedulerService:
    """
    Foreground service wrapping a Session.

    Usage:
        session = Session("commands.txt", parallel_workers=4)
        exit_code = SchedulerService(session).start()
    """

    def __init__(self, session: Session):
        """
        Initialize the scheduler service.

        :param session: Session to run
        """
        self.session = session
        self._previous_handlers: Dict[int, object] = {}

    def start(self) -> ExitCode:
        """
        Run the session until it terminates.

        :return: Exit code of the session
        """
        self._install_signal_handlers()
        self.session.on_clean_exit(self._restore_signal_handlers)
        try:
            return self.session.run()
        finally:
            self._restore_signal_handlers()

    def _install_signal_handlers(self):
        # Signals can only be registered in main thread
        try:
            for signum in HANDLED_SIGNALS:
                self._previous_handlers[signum] = signal.signal(
                    signum, self._signal_handler
                )
        except ValueError:
            log.debug("Signal handlers not registered (not in main thread)")

    def _restore_signal_handlers(self):
        while self._previous_handlers:
            signum, handler = self._previous_handlers.popitem()
            signal.signal(signum, handler)

    def _signal_handler(self, signum, frame):
        """Handle interrupt signals."""
        session = self.session
        if session.state == SessionState.TERMINATED:
            log.debug(f"Received signal {signum} after the session terminated, ignoring")
            return
        if session.stop_requested is None and session.state == SessionState.RUNNING:
            log.info(f"Received signal {signum}, draining session...")
            print(
                "\n\nKilling all running workers before exit, please be patient",
                file=session.stream,
            )
            session.emergency_stop(ExitCode.INTERRUPTED)
            return

        log.warning(f"Received signal {signum} while draining, exiting immediately")
        session.kill_all(force=True)
        sys.exit(int(ExitCode.INTERRUPTED))
