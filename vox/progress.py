"""
vox.progress - Monotonic progress reporting.

ProgressReporter is shared by every worker of one operation (poller,
estimator, stderr reader). It serializes reports under a lock and clamps
them so neither the fraction nor the phase ever moves backwards.
"""

from __future__ import annotations

import threading
import time
from collections.abc import Callable

from vox.logging import get_logger
from vox.models import ProcessingPhase, ProgressReport

log = get_logger("progress")

ProgressCallback = Callable[[ProgressReport], None]


class ProgressReporter:
    """Thread-safe, non-regressing progress sink for one operation."""

    def __init__(
        self,
        callback: ProgressCallback | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._callback = callback
        self._clock = clock
        self._lock = threading.Lock()
        self._start = clock()
        self._fraction = 0.0
        self._phase = ProcessingPhase.INITIALIZING
        self._last: ProgressReport | None = None

    @property
    def fraction(self) -> float:
        with self._lock:
            return self._fraction

    @property
    def phase(self) -> ProcessingPhase:
        with self._lock:
            return self._phase

    @property
    def last_report(self) -> ProgressReport | None:
        with self._lock:
            return self._last

    def report(
        self,
        fraction: float,
        phase: ProcessingPhase | None = None,
        message: str = "",
    ) -> ProgressReport:
        """Record progress, clamped to [0, 1] and to the previous report.

        Args:
            fraction: Overall completion fraction of the operation
            phase: Current phase; defaults to the previous phase
            message: Human-readable status line

        Returns:
            The report actually delivered
        """
        with self._lock:
            fraction = min(max(fraction, 0.0), 1.0)
            self._fraction = max(self._fraction, fraction)
            if phase is not None and phase.rank > self._phase.rank:
                self._phase = phase
            elapsed = max(self._clock() - self._start, 0.0)
            speed = self._fraction / elapsed if elapsed > 0 and self._fraction > 0 else None
            report = ProgressReport(
                fraction=self._fraction,
                phase=self._phase,
                message=message,
                start_time=self._start,
                elapsed=elapsed,
                speed=speed,
            )
            self._last = report
            if self._callback is not None:
                try:
                    self._callback(report)
                except Exception:
                    log.exception("Progress callback failed")
        return report

    def advance(self, phase: ProcessingPhase, fraction: float, message: str = "") -> ProgressReport:
        """Shorthand for entering a phase at a fixed fraction."""
        return self.report(fraction, phase, message or phase.value.capitalize())


def as_reporter(progress: ProgressReporter | ProgressCallback | None) -> ProgressReporter:
    """Wrap a bare callback (or nothing) in a fresh reporter."""
    if isinstance(progress, ProgressReporter):
        return progress
    return ProgressReporter(progress)


class PhaseWindow:
    """Maps a sub-task's own [0, 1] progress into a slice of a reporter."""

    def __init__(
        self,
        reporter: ProgressReporter,
        start: float,
        end: float,
        phase: ProcessingPhase,
    ) -> None:
        self.reporter = reporter
        self.start = start
        self.end = end
        self.phase = phase

    def update(self, raw: float, message: str = "") -> ProgressReport:
        raw = min(max(raw, 0.0), 1.0)
        return self.reporter.report(self.start + raw * (self.end - self.start), self.phase, message)
