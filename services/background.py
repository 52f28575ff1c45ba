"""
Fire-and-forget execution of side effects (email, audit).

Tasks run on a small thread pool with a bounded backlog. When the backlog is
full new tasks are dropped with a warning; failures are logged and never
reach the caller; nothing is retried.
"""
from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor

logger = logging.getLogger(__name__)


class TaskDispatcher:
    def __init__(self, max_workers: int = 4, max_pending: int = 1000, synchronous: bool = False):
        self.synchronous = synchronous
        self._slots = threading.BoundedSemaphore(max_pending)
        self._executor = None
        if not synchronous:
            self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="side-effect")

    def submit(self, fn, *args, **kwargs) -> bool:
        """Schedule fn(*args, **kwargs); returns False when the task was dropped."""
        name = getattr(fn, "__qualname__", repr(fn))
        if self.synchronous:
            self._run(name, fn, args, kwargs)
            return True

        if not self._slots.acquire(blocking=False):
            logger.warning("Background backlog full, dropping task %s", name)
            return False
        try:
            self._executor.submit(self._run_and_release, name, fn, args, kwargs)
        except RuntimeError:
            # executor already shut down
            self._slots.release()
            logger.warning("Background dispatcher is shut down, dropping task %s", name)
            return False
        return True

    def _run_and_release(self, name, fn, args, kwargs):
        try:
            self._run(name, fn, args, kwargs)
        finally:
            self._slots.release()

    @staticmethod
    def _run(name, fn, args, kwargs):
        try:
            fn(*args, **kwargs)
        except Exception:
            logger.exception("Background task %s failed", name)

    def shutdown(self, wait: bool = True):
        if self._executor is not None:
            self._executor.shutdown(wait=wait)
