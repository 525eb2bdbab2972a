"""
Test configuration and shared fixtures.
"""

from __future__ import annotations

import threading
import time
from pathlib import Path

import pytest

from vox.exceptions import TranscriptionError
from vox.models import (
    AudioFile,
    AudioFormat,
    Engine,
    ProgressReport,
    TranscriptionResult,
    TranscriptionSegment,
)
from vox.extract.base import ExtractorBackend
from vox.transcribe.engine import TranscriptionEngine


def make_segment(
    text: str,
    start: float,
    end: float,
    confidence: float = 0.9,
) -> TranscriptionSegment:
    return TranscriptionSegment(text=text, start_time=start, end_time=end, confidence=confidence)


def make_result(
    confidences: list[float],
    language: str = "en-US",
    engine: Engine = Engine.FASTER_WHISPER,
) -> TranscriptionResult:
    segments = [
        make_segment(f"Segment {i}.", i * 2.0, i * 2.0 + 1.5, c) for i, c in enumerate(confidences)
    ]
    return TranscriptionResult.from_segments(
        segments,
        language=language,
        engine=engine,
        duration=len(confidences) * 2.0,
    )


class FakeEngine(TranscriptionEngine):
    """Scripted engine: returns (or raises) one outcome per locale."""

    def __init__(
        self,
        outcomes: dict[str, TranscriptionResult | Exception] | None = None,
        locales: list[str] | None = None,
        kind: Engine = Engine.FASTER_WHISPER,
        is_available: bool = True,
        delay: float = 0.0,
        partials: int = 0,
        ignore_cancel: bool = False,
    ) -> None:
        self.kind = kind
        self.outcomes = outcomes or {}
        self.locales = locales if locales is not None else ["en", "de", "fr"]
        self.is_available = is_available
        self.delay = delay
        self.partials = partials
        self.ignore_cancel = ignore_cancel
        self.calls: list[str] = []
        self.cancelled = threading.Event()
        self.running = threading.Event()

    def available(self) -> bool:
        return self.is_available

    def supported_locales(self) -> list[str]:
        return self.locales

    def transcribe(self, audio_file, locale, on_partial=None, cancel_event=None):
        self.calls.append(locale)
        self.running.set()
        try:
            return self._outcome(locale, on_partial, cancel_event)
        finally:
            self.running.clear()

    def _outcome(self, locale, on_partial, cancel_event):
        for i in range(self.partials):
            if on_partial is not None:
                on_partial(make_segment(f"partial {i}", i, i + 1))
        if self.delay and self.ignore_cancel:
            time.sleep(self.delay)
        elif self.delay:
            if cancel_event is not None and cancel_event.wait(self.delay):
                self.cancelled.set()
                raise TranscriptionError("cancelled")
        outcome = self.outcomes.get(locale)
        if outcome is None:
            raise TranscriptionError(f"no scripted outcome for {locale}")
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


class StubBackend(ExtractorBackend):
    """Extractor that writes a fixed payload, or raises."""

    name = "stub"

    def __init__(self, audio_format: AudioFormat, error: Exception | None = None) -> None:
        self.audio_format = audio_format
        self.error = error

    def available(self) -> bool:
        return True

    def extract(self, input_path, output_path, window):
        if self.error is not None:
            raise self.error
        output_path.write_bytes(b"\x00" * 1024)
        window.update(1.0)
        return self.audio_format


class ProgressRecorder:
    def __init__(self) -> None:
        self.reports: list[ProgressReport] = []
        self._lock = threading.Lock()

    def __call__(self, report: ProgressReport) -> None:
        with self._lock:
            self.reports.append(report)

    @property
    def fractions(self) -> list[float]:
        return [r.fraction for r in self.reports]

    @property
    def phases(self) -> list[str]:
        return [r.phase.value for r in self.reports]


@pytest.fixture
def sample_format() -> AudioFormat:
    return AudioFormat(
        codec="aac",
        sample_rate=44100,
        channels=2,
        bit_rate=128_000,
        duration=12.5,
        file_size=200_000,
    )


@pytest.fixture
def audio_file(tmp_path: Path, sample_format: AudioFormat) -> AudioFile:
    path = tmp_path / "vox_audio_test.m4a"
    path.write_bytes(b"\x00" * 2048)
    return AudioFile(path=path, format=sample_format, temporary_path=path)


@pytest.fixture
def sample_result(sample_format: AudioFormat) -> TranscriptionResult:
    segments = [
        make_segment("Hello there.", 0.0, 1.5, 0.92),
        make_segment("This is a test", 1.8, 3.2, 0.85),
        make_segment("of the transcript.", 3.3, 5.0, 0.88),
        make_segment("New paragraph after a pause.", 8.0, 10.0, 0.9),
    ]
    return TranscriptionResult.from_segments(
        segments,
        language="en-US",
        engine=Engine.FASTER_WHISPER,
        duration=12.5,
        processing_time=1.25,
        audio_format=sample_format,
    )


@pytest.fixture
def progress_recorder() -> ProgressRecorder:
    return ProgressRecorder()


@pytest.fixture
def video_file(tmp_path: Path) -> Path:
    path = tmp_path / "interview.mp4"
    path.write_bytes(b"\x00\x00\x00\x18ftypmp42" + b"\x00" * 1024)
    return path
