"""
vox.tasks - Cancellable background jobs with a single deadline.

A CancellableJob runs its work on a daemon thread and resolves its waiter
exactly once: with the work's result, the work's exception, a cancellation
or a timeout, whichever happens first. Late outcomes are discarded.
"""

from __future__ import annotations

import threading
from collections.abc import Callable
from concurrent import futures
from typing import Generic, TypeVar

from vox.logging import get_logger

log = get_logger("tasks")

T = TypeVar("T")


class JobCancelledError(Exception):
    """Job was cancelled before producing a result."""

    pass


class JobTimeoutError(Exception):
    """Job exceeded its deadline and was cancelled."""

    def __init__(self, timeout: float):
        self.timeout = timeout
        super().__init__(f"Job timed out after {timeout:.1f}s")


class CancellableJob(Generic[T]):
    """Background job that resolves exactly once.

    The work callable receives a ``threading.Event`` that is set on
    cancellation; long-running work should check it and stop early.
    ``on_cancel`` is invoked once when the job is cancelled or times out,
    to interrupt work that cannot poll the event (e.g. kill a process).

    Resolving the waiter does not stop the worker thread. After a timeout
    the waiter gives the worker ``stop_grace`` seconds to exit; callers that
    must not overlap with the work use ``join`` to wait for it completely.
    """

    def __init__(
        self,
        work: Callable[[threading.Event], T],
        timeout: float | None = None,
        on_cancel: Callable[[], None] | None = None,
        name: str = "vox-job",
        stop_grace: float = 5.0,
    ) -> None:
        self.timeout = timeout
        self.stop_grace = stop_grace
        self.name = name
        self.cancel_event = threading.Event()
        self._work = work
        self._on_cancel = on_cancel
        self._future: futures.Future[T] = futures.Future()
        self._lock = threading.Lock()
        self._thread: threading.Thread | None = None

    @property
    def done(self) -> bool:
        return self._future.done()

    @property
    def running(self) -> bool:
        """Whether the worker thread is still executing the work."""
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> CancellableJob[T]:
        self._thread = threading.Thread(target=self._run, name=self.name, daemon=True)
        self._thread.start()
        return self

    def _run(self) -> None:
        try:
            result = self._work(self.cancel_event)
        except BaseException as e:
            if not self._resolve(error=e):
                log.debug("%s: discarding late failure: %s", self.name, e)
            return
        if not self._resolve(result=result):
            log.debug("%s: discarding late result", self.name)

    def _resolve(self, result: T | None = None, error: BaseException | None = None) -> bool:
        with self._lock:
            if self._future.done():
                return False
            if error is not None:
                self._future.set_exception(error)
            else:
                self._future.set_result(result)
            return True

    def cancel(self, error: BaseException | None = None) -> bool:
        """Cancel the job. Returns False if it had already resolved."""
        resolved = self._resolve(error=error or JobCancelledError(f"{self.name} cancelled"))
        if resolved:
            self.cancel_event.set()
            if self._on_cancel is not None:
                try:
                    self._on_cancel()
                except Exception:
                    log.exception("%s: cancel hook failed", self.name)
        return resolved

    def wait(self) -> T:
        """Block until the job resolves or its deadline passes.

        Raises:
            JobTimeoutError: If the deadline passed; the job is cancelled
            JobCancelledError: If the job was cancelled
            Exception: Whatever the work raised
        """
        done, _ = futures.wait([self._future], timeout=self.timeout)
        if not done and self.cancel(JobTimeoutError(self.timeout or 0.0)):
            if not self.join(self.stop_grace):
                log.warning(
                    "%s still running %.1fs after cancellation", self.name, self.stop_grace
                )
        return self._future.result()

    def join(self, timeout: float | None = None) -> bool:
        """Wait for the worker thread to exit. Returns True once it has."""
        if self._thread is not None:
            self._thread.join(timeout)
        return not self.running

    def run(self) -> T:
        return self.start().wait()
