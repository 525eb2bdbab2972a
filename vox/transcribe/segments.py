"""
vox.transcribe.segments - Segment classification and speaker heuristics.

Engines return bare timed text. This module fills in the pause before each
segment, a coarse segment type, and naive speaker ids based on long pauses.
"""

from __future__ import annotations

from vox.models import SegmentType, TranscriptionSegment

SPEAKER_CHANGE_PAUSE = 2.0
PARAGRAPH_PAUSE = 1.5
NEW_SPEAKER_PAUSE = 3.0
SENTENCE_ENDINGS = (".", "!", "?")


def classify_segment(text: str, pause: float, previous_text: str | None) -> SegmentType:
    text = text.strip()
    if not text:
        return SegmentType.SILENCE
    if pause > SPEAKER_CHANGE_PAUSE:
        return SegmentType.SPEAKER_CHANGE
    if pause > PARAGRAPH_PAUSE and previous_text and previous_text.strip().endswith(SENTENCE_ENDINGS):
        return SegmentType.PARAGRAPH_BOUNDARY
    if text.endswith(SENTENCE_ENDINGS):
        return SegmentType.SENTENCE_BOUNDARY
    return SegmentType.SPEECH


def annotate_segments(
    segments: list[TranscriptionSegment],
    detect_speakers: bool = True,
) -> list[TranscriptionSegment]:
    """Return sorted copies with pause, type and (optionally) speaker filled in."""
    ordered = sorted(segments, key=lambda s: s.start_time)
    annotated: list[TranscriptionSegment] = []
    speaker = 1
    previous: TranscriptionSegment | None = None

    for segment in ordered:
        pause = max(segment.start_time - previous.end_time, 0.0) if previous else 0.0
        if previous is not None and pause > NEW_SPEAKER_PAUSE:
            speaker += 1
        update = {
            "pause_duration": pause,
            "segment_type": classify_segment(
                segment.text, pause, previous.text if previous else None
            ),
        }
        if detect_speakers and segment.speaker_id is None:
            update["speaker_id"] = f"Speaker{speaker}"
        annotated.append(segment.model_copy(update=update))
        previous = segment

    return annotated
