"""Tests for vox.models module."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from vox.models import (
    AudioFormat,
    AudioQuality,
    Engine,
    ProcessingPhase,
    ProgressReport,
    TranscriptionResult,
    TranscriptionSegment,
    ValidationStatus,
)

from conftest import make_segment


class TestAudioFormat:
    def test_channels_bounded(self) -> None:
        with pytest.raises(ValidationError):
            AudioFormat(codec="aac", sample_rate=44100, channels=6)

    def test_sample_rate_positive(self) -> None:
        with pytest.raises(ValidationError):
            AudioFormat(codec="aac", sample_rate=0, channels=1)

    def test_quality_without_bitrate(self) -> None:
        fmt = AudioFormat(codec="aac", sample_rate=44100, channels=2)
        assert fmt.quality is AudioQuality.MEDIUM

    def test_quality_high(self, sample_format: AudioFormat) -> None:
        assert sample_format.quality is AudioQuality.MEDIUM
        fmt = AudioFormat(codec="aac", sample_rate=48000, channels=1, bit_rate=192_000)
        assert fmt.quality is AudioQuality.HIGH

    def test_description(self, sample_format: AudioFormat) -> None:
        assert sample_format.description == "AAC, 44.1 kHz, stereo, 128 kb/s"

    def test_frozen(self, sample_format: AudioFormat) -> None:
        with pytest.raises(ValidationError):
            sample_format.codec = "mp3"


class TestTranscriptionSegment:
    def test_start_after_end_rejected(self) -> None:
        with pytest.raises(ValidationError):
            make_segment("x", 2.0, 1.0)

    def test_confidence_bounded(self) -> None:
        with pytest.raises(ValidationError):
            make_segment("x", 0.0, 1.0, confidence=1.2)

    def test_duration(self) -> None:
        assert make_segment("x", 1.0, 3.5).duration == 2.5


class TestTranscriptionResult:
    def test_from_segments_sorts_and_joins(self) -> None:
        result = TranscriptionResult.from_segments(
            [make_segment("world", 2.0, 3.0, 0.6), make_segment(" Hello ", 0.0, 1.0, 1.0)],
            language="en-US",
            engine=Engine.FASTER_WHISPER,
            duration=3.0,
        )
        assert result.text == "Hello world"
        assert result.segments[0].start_time == 0.0
        assert result.confidence == pytest.approx(0.8)
        assert result.word_count == 2

    def test_from_segments_empty(self) -> None:
        result = TranscriptionResult.from_segments(
            [], language="en", engine=Engine.MLX_WHISPER, duration=0.0
        )
        assert result.text == ""
        assert result.confidence == 0.0

    def test_direct_construction_sorts(self) -> None:
        result = TranscriptionResult(
            text="b a",
            language="en",
            confidence=0.5,
            duration=4.0,
            segments=[make_segment("b", 3.0, 4.0), make_segment("a", 0.0, 1.0)],
            engine=Engine.OPENAI_WHISPER,
        )
        assert [s.text for s in result.segments] == ["a", "b"]


class TestProcessingPhase:
    def test_rank_follows_declaration(self) -> None:
        ranks = [phase.rank for phase in ProcessingPhase]
        assert ranks == sorted(ranks)
        assert ProcessingPhase.COMPLETE.rank > ProcessingPhase.EXTRACTING.rank


class TestProgressReport:
    def test_eta(self) -> None:
        report = ProgressReport(
            fraction=0.25, phase=ProcessingPhase.EXTRACTING, start_time=0.0, elapsed=10.0, speed=0.025
        )
        assert report.percent == 25
        assert report.eta == pytest.approx(30.0)

    def test_eta_unknown_without_speed(self) -> None:
        report = ProgressReport(fraction=0.0, phase=ProcessingPhase.INITIALIZING, start_time=0.0)
        assert report.eta is None


class TestValidationStatus:
    def test_worst(self) -> None:
        assert ValidationStatus.worst() is ValidationStatus.PASSED
        assert (
            ValidationStatus.worst(ValidationStatus.PASSED, ValidationStatus.WARNING)
            is ValidationStatus.WARNING
        )
        assert (
            ValidationStatus.worst(ValidationStatus.WARNING, ValidationStatus.FAILED)
            is ValidationStatus.FAILED
        )


def test_segment_word_timings_default_empty() -> None:
    segment = TranscriptionSegment(text="hi", start_time=0.0, end_time=0.5, confidence=0.9)
    assert segment.words == []
