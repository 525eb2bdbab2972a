"""
vox.extract.parsing - Parsers for FFmpeg diagnostic output.

FFmpeg reports everything on stderr: the input's ``Duration:`` header, the
stream description (``Audio: aac (LC) ..., 44100 Hz, stereo, fltp,
128 kb/s``) and a status line with ``time=HH:MM:SS.cc`` that is rewritten
in place while encoding.
"""

from __future__ import annotations

import re

from vox.extract.policy import build_format
from vox.logging import get_logger
from vox.models import AudioFormat

log = get_logger("extract")

DURATION_RE = re.compile(r"Duration:\s*(\d{2}):(\d{2}):(\d{2})\.(\d{2})")
TIME_RE = re.compile(r"time=\s*(\d{2}):(\d{2}):(\d{2})\.(\d{2})")
AUDIO_LINE_RE = re.compile(r"Audio:\s*(\w+)(.*)")
SAMPLE_RATE_RE = re.compile(r"(\d+)\s*Hz")
LAYOUT_RE = re.compile(r"Hz,\s*([^,(]+)")
BITRATE_RE = re.compile(r"(\d+)\s*kb/s")
CHANNELS_RE = re.compile(r"(\d+)\s*channels")

DEFAULT_CODEC = "aac"
DEFAULT_SAMPLE_RATE = 44100
DEFAULT_CHANNELS = 2

LAYOUT_CHANNELS = {
    "mono": 1,
    "stereo": 2,
    "2.1": 3,
    "quad": 4,
    "5.0": 5,
    "5.1": 6,
    "6.1": 7,
    "7.1": 8,
}


def _clock_seconds(match: re.Match[str]) -> float:
    hours, minutes, seconds, centis = (int(g) for g in match.groups())
    return hours * 3600 + minutes * 60 + seconds + centis / 100


def parse_duration(text: str) -> float | None:
    """Return the input duration in seconds from a ``Duration:`` header."""
    match = DURATION_RE.search(text)
    if not match:
        return None
    return _clock_seconds(match)


def parse_time(text: str) -> float | None:
    """Return the most recent ``time=`` position in seconds."""
    matches = list(TIME_RE.finditer(text))
    if not matches:
        return None
    return _clock_seconds(matches[-1])


def parse_progress(text: str, duration: float | None) -> float | None:
    """Return encoding progress in [0, 1], or None if not determinable."""
    if not duration or duration <= 0:
        return None
    position = parse_time(text)
    if position is None:
        return None
    return min(position / duration, 1.0)


def parse_channels(layout: str) -> int:
    layout = layout.strip().lower()
    if layout in LAYOUT_CHANNELS:
        return LAYOUT_CHANNELS[layout]
    match = CHANNELS_RE.search(layout)
    if match:
        return int(match.group(1))
    for name, count in LAYOUT_CHANNELS.items():
        if layout.startswith(name):
            return count
    return DEFAULT_CHANNELS


def parse_audio_format(output: str, file_size: int | None = None) -> AudioFormat:
    """Build an AudioFormat from FFmpeg's description of the first audio stream.

    Missing fields fall back to AAC, 44.1 kHz, stereo; an unknown bitrate
    stays unknown.

    Args:
        output: Full stderr text of an ``ffmpeg -i <file>`` run
        file_size: Size of the probed file in bytes, if known

    Returns:
        AudioFormat with the readiness verdict filled in

    Raises:
        FormatIncompatibleError: If the stream has more than two channels
    """
    codec = DEFAULT_CODEC
    sample_rate = DEFAULT_SAMPLE_RATE
    channels = DEFAULT_CHANNELS
    bit_rate = None

    match = AUDIO_LINE_RE.search(output)
    if match:
        codec = match.group(1).lower()
        details = match.group(2)
        rate = SAMPLE_RATE_RE.search(details)
        if rate:
            sample_rate = int(rate.group(1))
        layout = LAYOUT_RE.search(details)
        if layout:
            channels = parse_channels(layout.group(1))
        bitrate = BITRATE_RE.search(details)
        if bitrate:
            bit_rate = int(bitrate.group(1)) * 1000
    else:
        log.debug("No audio stream description in FFmpeg output, using defaults")

    return build_format(
        codec=codec,
        sample_rate=sample_rate,
        channels=channels,
        bit_rate=bit_rate,
        duration=parse_duration(output) or 0.0,
        file_size=file_size,
    )
