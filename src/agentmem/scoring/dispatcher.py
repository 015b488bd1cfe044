"""
Bounded background job dispatcher.

Jobs run on a small thread pool, once each. A job's exception is logged and
never propagates to the code that submitted it.
"""

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Callable, Optional

from agentmem.config import settings

logger = logging.getLogger(__name__)


class BackgroundDispatcher:
    """Runs fire-and-forget jobs on a bounded thread pool."""

    def __init__(self, max_workers: Optional[int] = None, name: str = "agentmem-bg"):
        self.max_workers = max_workers or settings.scoring_max_workers
        self._executor = ThreadPoolExecutor(
            max_workers=self.max_workers, thread_name_prefix=name
        )
        self._lock = threading.Lock()
        self._jobs_submitted = 0
        self._jobs_succeeded = 0
        self._jobs_failed = 0

    def submit(self, job_name: str, fn: Callable[..., Any], *args: Any) -> Future:
        """
        Queue a job.

        Args:
            job_name: Label used in log messages
            fn: Callable to run
            *args: Positional arguments for fn

        Returns:
            Future resolving to True if the job succeeded, False otherwise

        Raises:
            RuntimeError: If the dispatcher has been shut down
        """
        with self._lock:
            self._jobs_submitted += 1
        return self._executor.submit(self._run, job_name, fn, *args)

    def _run(self, job_name: str, fn: Callable[..., Any], *args: Any) -> bool:
        try:
            fn(*args)
        except Exception as e:
            with self._lock:
                self._jobs_failed += 1
            logger.error(f"Background job {job_name} failed: {e}", exc_info=True)
            return False

        with self._lock:
            self._jobs_succeeded += 1
        logger.debug(f"Background job {job_name} finished")
        return True

    def shutdown(self, wait: bool = True) -> None:
        """Stop accepting jobs and optionally wait for queued ones."""
        self._executor.shutdown(wait=wait)

    def stats(self) -> dict[str, int]:
        """Get job counters."""
        with self._lock:
            return {
                "max_workers": self.max_workers,
                "submitted": self._jobs_submitted,
                "succeeded": self._jobs_succeeded,
                "failed": self._jobs_failed,
            }


# Global dispatcher instance (created on first use)
_dispatcher: Optional[BackgroundDispatcher] = None
_dispatcher_lock = threading.Lock()


def get_dispatcher() -> BackgroundDispatcher:
    """Get the global background dispatcher, creating it if needed."""
    global _dispatcher

    with _dispatcher_lock:
        if _dispatcher is None:
            _dispatcher = BackgroundDispatcher()
        return _dispatcher


def shutdown_dispatcher(wait: bool = True) -> None:
    """Shut down the global dispatcher, if it was started."""
    global _dispatcher

    with _dispatcher_lock:
        if _dispatcher is None:
            return
        _dispatcher.shutdown(wait=wait)
        _dispatcher = None
