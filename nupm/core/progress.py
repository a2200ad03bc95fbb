"""
Progress reporting and cancellation for long-running operations.
"""

import logging
import threading
from typing import Optional

from .errors import Cancelled

logger = logging.getLogger(__name__)


class CancellationToken:
    """Thread-safe cancellation flag shared between a caller and an operation."""

    def __init__(self):
        self._event = threading.Event()

    def cancel(self):
        logger.debug("Cancellation requested")
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Sleep up to timeout seconds; True as soon as cancellation is requested."""
        return self._event.wait(timeout)

    def raise_if_cancelled(self, operation: str = "", package: str = ""):
        if self._event.is_set():
            raise Cancelled(operation, package)


class ProgressReporter:
    """Receiver for operation progress.

    The base class ignores everything; front ends override what they show.
    """

    def start(self, activity: str):
        pass

    def progress(self, percent: int, message: str = ""):
        pass

    def complete(self, success: bool):
        pass

    def package_installed(self, package) -> bool:
        """Called for every package the installer placed.

        Returns:
            False to cancel the rest of the operation
        """
        return True

    def message(self, text: str):
        pass


class ProgressTracker:
    """Turns step counts into percentages that never go backwards."""

    def __init__(self, reporter: Optional[ProgressReporter], total_steps: int):
        self.reporter = reporter or ProgressReporter()
        self.total_steps = max(1, total_steps)
        self.percent = 0
        self.started = False

    def start(self, activity: str):
        self.started = True
        self.reporter.start(activity)
        self.report(0)

    def report(self, percent: int, message: str = ""):
        percent = max(self.percent, min(100, int(percent)))
        self.percent = percent
        self.reporter.progress(percent, message)

    def step(self, done: int, message: str = ""):
        """Report that `done` of total_steps are finished."""
        self.report(done * 100 // self.total_steps, message)

    def complete(self, success: bool):
        if success:
            self.report(100)
        self.reporter.complete(success)
