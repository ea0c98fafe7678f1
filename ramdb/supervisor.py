"""Observer side of a ramdb session.

The observer (the process the operator started) spawns the worker in its own
session so the worker keeps its own signal disposition and can finish
tearing down the RAM disk after the observer is gone. The observer only
waits, forwarding an interrupt to the worker before exiting immediately.
"""

from __future__ import annotations

import logging
import os
import signal
import subprocess
import sys
from typing import List, Optional

from .config import Session
from .logging_config import get_logger
from .worker import INTERRUPTED_EXIT_CODE

OBSERVER_SIGNALS = (signal.SIGTERM, signal.SIGHUP)


class SessionSupervisor:
    def __init__(
        self,
        session: Session,
        *,
        python: Optional[str] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.session = session
        self.python = python or sys.executable
        self.logger = logger or get_logger(__name__)
        self.worker: Optional[subprocess.Popen] = None

    def worker_command(self) -> List[str]:
        return [self.python, "-m", "ramdb.worker", *self.session.to_args()]

    def spawn_worker(self) -> subprocess.Popen:
        cmd = self.worker_command()
        self.logger.debug("Spawning worker: %s", " ".join(cmd))
        self.worker = subprocess.Popen(cmd, start_new_session=True)
        self.logger.debug("Worker pid %s", self.worker.pid)
        return self.worker

    def forward_interrupt(self) -> None:
        if self.worker is None or self.worker.poll() is not None:
            return
        try:
            os.kill(self.worker.pid, signal.SIGINT)
        except ProcessLookupError:
            pass

    def run(self) -> int:
        """Spawn the worker and wait for it to exit or for an interrupt."""
        worker = self.spawn_worker()

        def _handle_term(signum, _frame):
            raise KeyboardInterrupt

        # The worker is in its own session, so a closed terminal only reaches us
        previous = {sig: signal.signal(sig, _handle_term) for sig in OBSERVER_SIGNALS}
        try:
            return worker.wait()
        except KeyboardInterrupt:
            self.logger.info("Interrupted; worker %s will clean up on its own", worker.pid)
            self.forward_interrupt()
            return INTERRUPTED_EXIT_CODE
        finally:
            for sig, handler in previous.items():
                signal.signal(sig, handler)
