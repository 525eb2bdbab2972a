"""
vox.output.formatters - Render a TranscriptionResult as txt, srt or json.

Formatters only produce strings; persisting them is the writer's job.
"""

from __future__ import annotations

import json
from datetime import datetime, timezone

from vox import __version__
from vox.models import SegmentType, TranscriptionResult, TranscriptionSegment
from vox.utils import format_duration, format_srt_timestamp

OUTPUT_FORMATS = ("txt", "srt", "json")
JSON_FORMAT_ID = "vox-json"
PARAGRAPH_BREAK_SECONDS = 2.0


def format_result(result: TranscriptionResult, fmt: str, include_timestamps: bool = False) -> str:
    """Render ``result`` in one of OUTPUT_FORMATS."""
    if fmt == "txt":
        return format_text(result, include_timestamps=include_timestamps)
    if fmt == "srt":
        return format_srt(result)
    if fmt == "json":
        return format_json(result)
    raise ValueError(f"Unknown output format: {fmt}")


def _starts_paragraph(segment: TranscriptionSegment, previous: TranscriptionSegment | None) -> bool:
    if previous is None:
        return True
    if segment.segment_type in (SegmentType.PARAGRAPH_BOUNDARY, SegmentType.SPEAKER_CHANGE):
        return True
    return segment.start_time - previous.end_time > PARAGRAPH_BREAK_SECONDS


def format_text(result: TranscriptionResult, include_timestamps: bool = False) -> str:
    """Plain text, split into paragraphs at long pauses and speaker changes."""
    if not result.segments:
        return result.text.strip() + "\n" if result.text.strip() else ""

    paragraphs: list[str] = []
    current: list[str] = []
    previous = None
    for segment in result.segments:
        text = segment.text.strip()
        if not text:
            previous = segment
            continue
        if _starts_paragraph(segment, previous) and current:
            paragraphs.append(" ".join(current))
            current = []
        if not current and include_timestamps:
            text = f"[{format_duration(segment.start_time)}] {text}"
        current.append(text)
        previous = segment
    if current:
        paragraphs.append(" ".join(current))
    return "\n\n".join(paragraphs) + "\n"


def format_srt(result: TranscriptionResult) -> str:
    """SubRip subtitles, one cue per non-empty segment."""
    blocks = []
    index = 1
    for segment in result.segments:
        text = segment.text.strip()
        if not text:
            continue
        end = max(segment.end_time, segment.start_time + 0.001)
        blocks.append(
            f"{index}\n"
            f"{format_srt_timestamp(segment.start_time)} --> {format_srt_timestamp(end)}\n"
            f"{text}\n"
        )
        index += 1
    return "\n".join(blocks)


def format_json(result: TranscriptionResult) -> str:
    """Full result as pretty-printed JSON."""
    data = result.model_dump(mode="json")
    data["word_count"] = result.word_count
    data["format"] = JSON_FORMAT_ID
    data["version"] = __version__
    data["generated_at"] = datetime.now(timezone.utc).isoformat(timespec="seconds")
    return json.dumps(data, indent=2, ensure_ascii=False) + "\n"
