"""
vox.transcribe.attempt - One recognition attempt as a state machine.

    IDLE -> REQUESTING -> STREAMING* -> FINAL | FAILED | TIMED_OUT

The attempt runs its engine on a CancellableJob with a deadline. Partial
results move it to STREAMING; the first terminal outcome wins and anything
the engine reports afterwards is ignored.
"""

from __future__ import annotations

import threading
from enum import Enum

from vox.exceptions import TranscriptionError, TranscriptionTimeoutError
from vox.logging import get_logger
from vox.models import AudioFile, TranscriptionResult, TranscriptionSegment
from vox.tasks import CancellableJob, JobCancelledError, JobTimeoutError
from vox.transcribe.engine import PartialCallback, TranscriptionEngine

log = get_logger("transcribe")


class AttemptState(str, Enum):
    IDLE = "idle"
    REQUESTING = "requesting"
    STREAMING = "streaming"
    FINAL = "final"
    FAILED = "failed"
    TIMED_OUT = "timed_out"

    @property
    def terminal(self) -> bool:
        return self in (AttemptState.FINAL, AttemptState.FAILED, AttemptState.TIMED_OUT)


class RecognitionAttempt:
    """Runs one (engine, locale) candidate to a single terminal state."""

    def __init__(
        self,
        engine: TranscriptionEngine,
        audio_file: AudioFile,
        locale: str,
        timeout: float = 300.0,
        on_partial: PartialCallback | None = None,
        stop_grace: float = 5.0,
    ) -> None:
        self.engine = engine
        self.audio_file = audio_file
        self.locale = locale
        self.timeout = timeout
        self.stop_grace = stop_grace
        self.partial_count = 0
        self.overran = False
        self._on_partial = on_partial
        self._state = AttemptState.IDLE
        self._lock = threading.Lock()

    @property
    def state(self) -> AttemptState:
        with self._lock:
            return self._state

    def _transition(self, target: AttemptState) -> bool:
        with self._lock:
            if self._state.terminal:
                return False
            self._state = target
            return True

    def _partial(self, segment: TranscriptionSegment) -> None:
        with self._lock:
            if self._state not in (AttemptState.REQUESTING, AttemptState.STREAMING):
                return
            self._state = AttemptState.STREAMING
            self.partial_count += 1
        if self._on_partial is not None:
            self._on_partial(segment)

    def _work(self, cancel: threading.Event) -> TranscriptionResult:
        return self.engine.transcribe(self.audio_file, self.locale, self._partial, cancel)

    def run(self) -> TranscriptionResult:
        """Run the attempt.

        Returns:
            The engine's final result

        Raises:
            TranscriptionTimeoutError: If the deadline passed; the engine job is
                cancelled and has stopped before this is raised
            TranscriptionError: If the engine failed or was cancelled
        """
        with self._lock:
            if self._state is not AttemptState.IDLE:
                raise RuntimeError("RecognitionAttempt can only run once")
            self._state = AttemptState.REQUESTING

        log.debug("Attempting %s with locale %s", self.engine.name, self.locale)
        job: CancellableJob[TranscriptionResult] = CancellableJob(
            self._work,
            timeout=self.timeout,
            name=f"vox-{self.engine.name}-{self.locale}",
            stop_grace=self.stop_grace,
        )
        try:
            result = job.run()
        except JobTimeoutError as e:
            self._transition(AttemptState.TIMED_OUT)
            if job.running:
                # Engine ignored cancellation; the next attempt must not overlap it.
                log.warning("%s did not stop after its deadline, waiting for it", self.engine.name)
                self.overran = True
                job.join()
            raise TranscriptionTimeoutError(self.timeout) from e
        except JobCancelledError as e:
            self._transition(AttemptState.FAILED)
            raise TranscriptionError(f"{self.engine.name} attempt was cancelled") from e
        except TranscriptionError:
            self._transition(AttemptState.FAILED)
            raise
        except Exception as e:
            self._transition(AttemptState.FAILED)
            raise TranscriptionError(f"{self.engine.name} failed: {e}") from e

        self._transition(AttemptState.FINAL)
        return result
