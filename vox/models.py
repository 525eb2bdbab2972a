"""
vox.models - Immutable data model shared across pipeline stages.

Audio formats, transcription results, progress reports and output
validation reports. All models are frozen pydantic models; derived
values are computed once at construction.
"""

from __future__ import annotations

from enum import Enum
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class AudioQuality(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    LOSSLESS = "lossless"


class AudioFormat(BaseModel):
    """Properties of an extracted audio file."""

    model_config = ConfigDict(frozen=True)

    codec: str
    sample_rate: int = Field(gt=0)
    channels: int = Field(ge=1, le=2)
    bit_rate: int | None = Field(default=None, ge=0)
    duration: float = Field(default=0.0, ge=0.0)
    file_size: int | None = Field(default=None, ge=0)
    is_valid: bool = True
    validation_error: str | None = None

    @property
    def quality(self) -> AudioQuality:
        """Rough quality class from sample rate and per-channel bitrate."""
        if self.bit_rate is None:
            return AudioQuality.MEDIUM
        per_channel = self.bit_rate / self.channels
        if self.sample_rate >= 96000 and per_channel >= 256_000:
            return AudioQuality.LOSSLESS
        if self.sample_rate >= 44100 and per_channel >= 128_000:
            return AudioQuality.HIGH
        if self.sample_rate >= 22050 and per_channel >= 64_000:
            return AudioQuality.MEDIUM
        return AudioQuality.LOW

    @property
    def description(self) -> str:
        layout = "mono" if self.channels == 1 else "stereo"
        parts = [self.codec.upper(), f"{self.sample_rate / 1000:g} kHz", layout]
        if self.bit_rate:
            parts.append(f"{self.bit_rate // 1000} kb/s")
        return ", ".join(parts)


class AudioFile(BaseModel):
    """Extracted audio ready for transcription.

    When ``temporary_path`` is set the pipeline owns that file and deletes
    it once transcription is finished, whatever the outcome.
    """

    model_config = ConfigDict(frozen=True)

    path: Path
    format: AudioFormat
    temporary_path: Path | None = None


class WordTiming(BaseModel):
    model_config = ConfigDict(frozen=True)

    word: str
    start_time: float = Field(ge=0.0)
    end_time: float = Field(ge=0.0)
    confidence: float = Field(default=1.0, ge=0.0, le=1.0)


class SegmentType(str, Enum):
    SPEECH = "speech"
    SILENCE = "silence"
    SENTENCE_BOUNDARY = "sentence_boundary"
    PARAGRAPH_BOUNDARY = "paragraph_boundary"
    SPEAKER_CHANGE = "speaker_change"
    BACKGROUND_NOISE = "background_noise"


class TranscriptionSegment(BaseModel):
    """A timed span of recognized text."""

    model_config = ConfigDict(frozen=True)

    text: str
    start_time: float = Field(ge=0.0)
    end_time: float = Field(ge=0.0)
    confidence: float = Field(ge=0.0, le=1.0)
    speaker_id: str | None = None
    words: list[WordTiming] = Field(default_factory=list)
    segment_type: SegmentType = SegmentType.SPEECH
    pause_duration: float | None = Field(default=None, ge=0.0)

    @model_validator(mode="after")
    def check_times(self) -> TranscriptionSegment:
        if self.start_time > self.end_time:
            raise ValueError("start_time must not exceed end_time")
        return self

    @property
    def duration(self) -> float:
        return self.end_time - self.start_time


class Engine(str, Enum):
    FASTER_WHISPER = "faster-whisper"
    MLX_WHISPER = "mlx-whisper"
    OPENAI_WHISPER = "openai-whisper"


class TranscriptionResult(BaseModel):
    """Complete transcription of one audio file.

    Segments are always sorted by start time. Use ``from_segments`` to
    derive the full text and the mean confidence from the segments.
    """

    model_config = ConfigDict(frozen=True)

    text: str
    language: str
    confidence: float = Field(ge=0.0, le=1.0)
    duration: float = Field(ge=0.0)
    segments: list[TranscriptionSegment] = Field(default_factory=list)
    engine: Engine
    processing_time: float = Field(default=0.0, ge=0.0)
    audio_format: AudioFormat | None = None
    warnings: list[str] = Field(default_factory=list)

    @field_validator("segments")
    @classmethod
    def sort_segments(cls, v: list[TranscriptionSegment]) -> list[TranscriptionSegment]:
        return sorted(v, key=lambda s: s.start_time)

    @classmethod
    def from_segments(
        cls,
        segments: list[TranscriptionSegment],
        *,
        language: str,
        engine: Engine,
        duration: float,
        processing_time: float = 0.0,
        audio_format: AudioFormat | None = None,
    ) -> TranscriptionResult:
        ordered = sorted(segments, key=lambda s: s.start_time)
        text = " ".join(s.text.strip() for s in ordered if s.text.strip())
        confidence = sum(s.confidence for s in ordered) / len(ordered) if ordered else 0.0
        return cls(
            text=text,
            language=language,
            confidence=confidence,
            duration=duration,
            segments=ordered,
            engine=engine,
            processing_time=processing_time,
            audio_format=audio_format,
        )

    @property
    def word_count(self) -> int:
        return len(self.text.split())


class ProcessingPhase(str, Enum):
    """Pipeline phases in the order they occur."""

    INITIALIZING = "initializing"
    ANALYZING = "analyzing"
    EXTRACTING = "extracting"
    CONVERTING = "converting"
    VALIDATING = "validating"
    FINALIZING = "finalizing"
    COMPLETE = "complete"

    @property
    def rank(self) -> int:
        return list(ProcessingPhase).index(self)


class ProgressReport(BaseModel):
    model_config = ConfigDict(frozen=True)

    fraction: float = Field(ge=0.0, le=1.0)
    phase: ProcessingPhase
    message: str = ""
    start_time: float
    elapsed: float = Field(default=0.0, ge=0.0)
    speed: float | None = None

    @property
    def percent(self) -> int:
        return int(self.fraction * 100)

    @property
    def eta(self) -> float | None:
        """Seconds remaining, when a positive speed is known."""
        if not self.speed or self.speed <= 0:
            return None
        return (1.0 - self.fraction) / self.speed


class ValidationStatus(str, Enum):
    PASSED = "passed"
    WARNING = "warning"
    FAILED = "failed"

    @classmethod
    def worst(cls, *statuses: ValidationStatus) -> ValidationStatus:
        if cls.FAILED in statuses:
            return cls.FAILED
        if cls.WARNING in statuses:
            return cls.WARNING
        return cls.PASSED


class FormatValidation(BaseModel):
    model_config = ConfigDict(frozen=True)

    status: ValidationStatus
    format: str
    issues: list[str] = Field(default_factory=list)


class IntegrityValidation(BaseModel):
    model_config = ConfigDict(frozen=True)

    status: ValidationStatus
    size: int
    sha256: str
    content_matches: bool
    issues: list[str] = Field(default_factory=list)


class EncodingValidation(BaseModel):
    model_config = ConfigDict(frozen=True)

    status: ValidationStatus
    encoding: str = "utf-8"
    issues: list[str] = Field(default_factory=list)


class ValidationReport(BaseModel):
    """Post-write checks of an output artifact."""

    model_config = ConfigDict(frozen=True)

    path: Path
    format_check: FormatValidation
    integrity: IntegrityValidation
    encoding: EncodingValidation
    validation_time: float = 0.0

    @property
    def status(self) -> ValidationStatus:
        return ValidationStatus.worst(
            self.format_check.status, self.integrity.status, self.encoding.status
        )

    @property
    def issues(self) -> list[str]:
        return [*self.format_check.issues, *self.integrity.issues, *self.encoding.issues]


class SuccessConfirmation(BaseModel):
    model_config = ConfigDict(frozen=True)

    path: Path
    size: int
    format: str
    report: ValidationReport
    processing_time: float
    message: str
