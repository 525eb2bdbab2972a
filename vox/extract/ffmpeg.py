"""
vox.extract.ffmpeg - FFmpeg fallback extractor.

Transcodes the input's audio to AAC in an MP4 container with an external
ffmpeg process. Progress combines the ``time=`` position parsed from
stderr with a wall-clock estimate, so long inputs that report progress
rarely (or never) still move the bar.
"""

from __future__ import annotations

import threading
import time
from collections.abc import Callable
from pathlib import Path

from vox.exceptions import (
    DependencyError,
    ExportFailedError,
    ExtractionError,
    ExtractionTimeoutError,
    ProcessExitError,
)
from vox.extract.base import ExtractorBackend
from vox.extract.parsing import parse_audio_format, parse_duration, parse_progress
from vox.extract.process import ProcessRunner
from vox.logging import get_logger
from vox.models import AudioFormat
from vox.progress import PhaseWindow
from vox.validation import find_ffmpeg

log = get_logger("extract")

PROBE_TIMEOUT_SECONDS = 120.0
MIN_ESTIMATE_DURATION = 60.0


class ExtractionProgress:
    """Merges parsed and wall-clock progress; never moves backwards."""

    def __init__(self, window: PhaseWindow, clock: Callable[[], float] = time.monotonic) -> None:
        self.window = window
        self.duration: float | None = None
        self._clock = clock
        self._started = clock()
        self._best = 0.0
        self._lock = threading.Lock()

    @property
    def value(self) -> float:
        with self._lock:
            return self._best

    def feed(self, line: str) -> None:
        """Consume one stderr line."""
        if self.duration is None:
            self.duration = parse_duration(line)
            if self.duration is not None:
                log.debug("Input duration: %.2fs", self.duration)
                return
        parsed = parse_progress(line, self.duration)
        if parsed is not None:
            self._update(parsed)

    def estimate(self) -> float:
        """Wall-clock estimate, assuming at least a minute of media."""
        elapsed = self._clock() - self._started
        return min(elapsed / max(self.duration or 0.0, MIN_ESTIMATE_DURATION), 1.0)

    def tick(self) -> None:
        self._update(self.estimate())

    def _update(self, raw: float) -> None:
        with self._lock:
            if raw <= self._best:
                return
            self._best = raw
        self.window.update(raw, "Extracting audio with FFmpeg")


class FFmpegExtractor(ExtractorBackend):
    name = "ffmpeg"

    def __init__(
        self,
        ffmpeg_path: str | None = None,
        runner: ProcessRunner | None = None,
        timeout: float = 300.0,
        estimator_interval: float = 0.5,
    ) -> None:
        self.ffmpeg_path = ffmpeg_path
        self.runner = runner or ProcessRunner()
        self.timeout = timeout
        self.estimator_interval = estimator_interval

    def available(self) -> bool:
        try:
            find_ffmpeg(self.ffmpeg_path)
        except DependencyError:
            return False
        return True

    def build_command(self, ffmpeg: str, input_path: Path, output_path: Path) -> list[str]:
        return [
            ffmpeg,
            "-i",
            str(input_path),
            "-vn",
            "-acodec",
            "aac",
            "-f",
            "mp4",
            "-movflags",
            "+faststart",
            "-y",
            str(output_path),
        ]

    def extract(self, input_path: Path, output_path: Path, window: PhaseWindow) -> AudioFormat:
        """Transcode with FFmpeg and probe the result.

        Raises:
            DependencyError: If FFmpeg is not installed
            ExtractionTimeoutError: If FFmpeg exceeds the timeout
            ProcessExitError: If FFmpeg exits nonzero
            ExtractionError: If FFmpeg cannot be started
        """
        ffmpeg = find_ffmpeg(self.ffmpeg_path)
        tracker = ExtractionProgress(window)
        stop = threading.Event()

        def estimate() -> None:
            while not stop.wait(self.estimator_interval):
                tracker.tick()

        estimator = threading.Thread(target=estimate, name="vox-ffmpeg-estimator", daemon=True)
        estimator.start()
        try:
            result = self.runner.run(
                self.build_command(ffmpeg, input_path, output_path),
                on_line=tracker.feed,
                timeout=self.timeout,
            )
        except OSError as e:
            raise ExtractionError(f"Could not start FFmpeg: {e}") from e
        finally:
            stop.set()
            estimator.join(timeout=self.estimator_interval * 2)

        if result.timed_out:
            raise ExtractionTimeoutError(self.timeout)
        if result.cancelled:
            raise ExportFailedError("FFmpeg extraction was cancelled")
        if result.returncode != 0:
            raise ProcessExitError(result.returncode, result.stderr)

        log.info("FFmpeg extraction finished in %.1fs", result.duration)
        return self.probe(output_path, ffmpeg)

    def probe(self, path: Path, ffmpeg: str | None = None) -> AudioFormat:
        """Describe an audio file by decoding it to the null muxer."""
        ffmpeg = ffmpeg or find_ffmpeg(self.ffmpeg_path)
        try:
            result = self.runner.run(
                [ffmpeg, "-i", str(path), "-f", "null", "-"],
                timeout=PROBE_TIMEOUT_SECONDS,
            )
        except OSError as e:
            raise ExtractionError(f"Could not start FFmpeg: {e}") from e
        if result.returncode != 0 and "Audio:" not in result.stderr:
            raise ProcessExitError(result.returncode, result.stderr)
        file_size = path.stat().st_size if path.exists() else None
        return parse_audio_format(result.stderr, file_size=file_size)
