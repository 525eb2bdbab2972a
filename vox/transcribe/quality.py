"""
vox.transcribe.quality - Transcription quality assessment.

Grades a TranscriptionResult against configurable confidence thresholds,
flags low-confidence segments, and produces the warnings and
recommendations shown to the user.
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from vox.config import QualitySettings
from vox.models import TranscriptionResult, TranscriptionSegment

MANUAL_REVIEW_SEGMENT_COUNT = 5
PREPROCESSING_LOW_SHARE = 0.4


class QualityLevel(str, Enum):
    EXCELLENT = "excellent"
    GOOD = "good"
    ACCEPTABLE = "acceptable"
    POOR = "poor"
    UNACCEPTABLE = "unacceptable"

    @classmethod
    def from_confidence(cls, confidence: float) -> QualityLevel:
        if confidence >= 0.8:
            return cls.EXCELLENT
        if confidence >= 0.6:
            return cls.GOOD
        if confidence >= 0.4:
            return cls.ACCEPTABLE
        if confidence >= 0.2:
            return cls.POOR
        return cls.UNACCEPTABLE

    @property
    def description(self) -> str:
        return {
            QualityLevel.EXCELLENT: "Excellent transcription quality",
            QualityLevel.GOOD: "Good transcription quality",
            QualityLevel.ACCEPTABLE: "Acceptable transcription quality",
            QualityLevel.POOR: "Poor transcription quality - review recommended",
            QualityLevel.UNACCEPTABLE: "Unacceptable transcription quality - fallback recommended",
        }[self]


class Priority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class Recommendation(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: str
    message: str
    priority: Priority


class LowConfidenceSegment(BaseModel):
    model_config = ConfigDict(frozen=True)

    index: int
    segment: TranscriptionSegment
    reason: str
    suggested_action: str


class QualityAssessment(BaseModel):
    model_config = ConfigDict(frozen=True)

    overall_confidence: float
    quality_level: QualityLevel
    low_confidence_segments: list[LowConfidenceSegment] = Field(default_factory=list)
    low_confidence_share: float = 0.0
    meets_quality_bar: bool
    fallback_recommended: bool
    warnings: list[str] = Field(default_factory=list)
    recommendations: list[Recommendation] = Field(default_factory=list)


class ConfidenceManager:
    """Applies the quality bar to transcription results."""

    def __init__(self, settings: QualitySettings | None = None) -> None:
        self.settings = settings or QualitySettings()

    def low_confidence_share(self, segments: list[TranscriptionSegment]) -> float:
        if not segments:
            return 0.0
        low = sum(1 for s in segments if s.confidence < self.settings.segment_threshold)
        return low / len(segments)

    def meets_quality_bar(self, result: TranscriptionResult) -> bool:
        """Overall confidence and low-confidence share both within limits."""
        return (
            result.confidence >= self.settings.min_acceptable_confidence
            and self.low_confidence_share(result.segments) <= self.settings.max_low_confidence_share
        )

    def assess(self, result: TranscriptionResult) -> QualityAssessment:
        level = QualityLevel.from_confidence(result.confidence)
        low_segments = [
            LowConfidenceSegment(
                index=i,
                segment=segment,
                reason=_issue_reason(segment),
                suggested_action=_suggested_action(segment),
            )
            for i, segment in enumerate(result.segments)
            if segment.confidence < self.settings.segment_threshold
        ]
        share = len(low_segments) / len(result.segments) if result.segments else 0.0
        fallback = (
            result.confidence < self.settings.fallback_threshold
            or share > self.settings.max_low_confidence_share
        )
        return QualityAssessment(
            overall_confidence=result.confidence,
            quality_level=level,
            low_confidence_segments=low_segments,
            low_confidence_share=share,
            meets_quality_bar=self.meets_quality_bar(result),
            fallback_recommended=fallback,
            warnings=self._warnings(result, level, low_segments, share, fallback),
            recommendations=self._recommendations(result, level, share),
        )

    def _warnings(
        self,
        result: TranscriptionResult,
        level: QualityLevel,
        low_segments: list[LowConfidenceSegment],
        share: float,
        fallback: bool,
    ) -> list[str]:
        warnings = []
        if level in (QualityLevel.POOR, QualityLevel.UNACCEPTABLE):
            warnings.append(f"Transcription quality is {level.value} - results may be unreliable")
        elif result.confidence < self.settings.warning_threshold:
            warnings.append(f"Overall confidence is low ({result.confidence:.0%})")
        if share > self.settings.max_low_confidence_share:
            warnings.append(f"{share * 100:.1f}% of segments have low confidence")
        if fallback:
            warnings.append("Consider using cloud transcription fallback for better accuracy")
        if len(low_segments) > MANUAL_REVIEW_SEGMENT_COUNT:
            warnings.append(f"Multiple segments ({len(low_segments)}) require manual review")
        return warnings

    def _recommendations(
        self,
        result: TranscriptionResult,
        level: QualityLevel,
        share: float,
    ) -> list[Recommendation]:
        recommendations = []
        if result.confidence < 0.5:
            recommendations.append(
                Recommendation(
                    kind="audio_quality",
                    message="Consider using higher quality audio files for better transcription accuracy",
                    priority=Priority.MEDIUM,
                )
            )
        if result.confidence < 0.4 and result.language != "en-US":
            recommendations.append(
                Recommendation(
                    kind="language",
                    message="Try a different --language setting",
                    priority=Priority.HIGH,
                )
            )
        if level in (QualityLevel.POOR, QualityLevel.UNACCEPTABLE):
            recommendations.append(
                Recommendation(
                    kind="fallback",
                    message="Use cloud transcription (--force-cloud) for better accuracy",
                    priority=Priority.HIGH,
                )
            )
        if share > PREPROCESSING_LOW_SHARE:
            recommendations.append(
                Recommendation(
                    kind="preprocessing",
                    message="Consider noise reduction or audio enhancement preprocessing",
                    priority=Priority.MEDIUM,
                )
            )
        return recommendations


def format_quality_report(assessment: QualityAssessment) -> str:
    """Plain-text summary of an assessment for the terminal."""
    lines = [
        "Quality assessment:",
        f"  {assessment.quality_level.description}",
        f"  - Overall confidence: {assessment.overall_confidence * 100:.1f}%",
    ]
    if assessment.low_confidence_segments:
        lines.append(
            f"  - Low confidence segments: {len(assessment.low_confidence_segments)} "
            f"({assessment.low_confidence_share * 100:.1f}%)"
        )
    if assessment.fallback_recommended:
        lines.append("  - Fallback recommended")
    if assessment.warnings:
        lines.append("Warnings:")
        lines.extend(f"  - {w}" for w in assessment.warnings)
    if assessment.recommendations:
        lines.append("Recommendations:")
        lines.extend(f"  [{r.priority.value}] {r.message}" for r in assessment.recommendations)
    return "\n".join(lines)


def _issue_reason(segment: TranscriptionSegment) -> str:
    if segment.confidence < 0.2:
        return "Very low confidence score"
    if segment.duration < 0.5:
        return "Very short segment"
    if segment.duration > 30.0:
        return "Very long segment"
    if not segment.text.strip():
        return "Empty or whitespace-only text"
    return "Below confidence threshold"


def _suggested_action(segment: TranscriptionSegment) -> str:
    if segment.confidence < 0.1:
        return "Manual review required"
    if segment.duration < 0.5:
        return "May need audio enhancement"
    if len(segment.text) < 3:
        return "Verify transcription accuracy"
    return "Review and potentially re-transcribe"
