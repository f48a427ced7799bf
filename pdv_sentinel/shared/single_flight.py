"""Process-wide single-flight guard for detection and sync runs."""

import threading
from collections.abc import Iterator
from contextlib import contextmanager

import structlog

from .exceptions import RunConflictError

logger = structlog.get_logger()


class SingleFlight:
    """Admits at most one in-flight run of a given kind.

    Acquisition is a non-blocking compare-and-set on a lock; a second caller
    is rejected immediately with ``RunConflictError`` instead of queueing.
    """

    def __init__(self, run_kind: str) -> None:
        self.run_kind = run_kind
        self._lock = threading.Lock()

    @property
    def running(self) -> bool:
        return self._lock.locked()

    @contextmanager
    def claim(self) -> Iterator[None]:
        if not self._lock.acquire(blocking=False):
            logger.warning("run_rejected_in_progress", run_kind=self.run_kind)
            raise RunConflictError(self.run_kind)
        try:
            yield
        finally:
            self._lock.release()
