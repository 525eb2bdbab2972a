"""
vox.extract.policy - Transcription-readiness policy for extracted audio.

Decides whether an AudioFormat is acceptable input for speech recognition.
"""

from __future__ import annotations

from vox.exceptions import FormatIncompatibleError
from vox.models import AudioFormat

SUPPORTED_CODECS = frozenset({"aac", "m4a", "mp4", "wav", "flac", "mp3", "opus", "vorbis"})

# Opus and Vorbis decode fine but speech engines reject them.
TRANSCRIPTION_CODECS = frozenset({"aac", "m4a", "mp4", "wav", "flac", "mp3"})

SUPPORTED_SAMPLE_RATES = frozenset(
    {8000, 11025, 16000, 22050, 32000, 44100, 48000, 88200, 96000, 176400, 192000}
)

SUPPORTED_CHANNELS = frozenset({1, 2})

MIN_BIT_RATE = 1_000
MAX_BIT_RATE = 2_000_000


def normalize_codec(codec: str) -> str:
    """Map decoder names onto the policy's codec vocabulary."""
    codec = codec.lower().strip()
    if codec.startswith("pcm_"):
        return "wav"
    return {"mp4a": "aac", "libmp3lame": "mp3", "libopus": "opus", "libvorbis": "vorbis"}.get(
        codec, codec
    )


def validation_error(
    codec: str,
    sample_rate: int,
    channels: int,
    bit_rate: int | None = None,
) -> str | None:
    """Return why the parameters are unacceptable, or None if they pass."""
    codec = normalize_codec(codec)
    if codec not in SUPPORTED_CODECS:
        return f"Unsupported codec: {codec}"
    if sample_rate not in SUPPORTED_SAMPLE_RATES:
        return f"Unsupported sample rate: {sample_rate} Hz"
    if channels not in SUPPORTED_CHANNELS:
        return f"Unsupported channel count: {channels}"
    if bit_rate is not None and not MIN_BIT_RATE <= bit_rate <= MAX_BIT_RATE:
        return f"Bitrate out of range: {bit_rate} bps"
    return None


def is_transcription_ready(fmt: AudioFormat) -> bool:
    """Valid and encoded with a codec speech recognition accepts."""
    return fmt.is_valid and normalize_codec(fmt.codec) in TRANSCRIPTION_CODECS


def check_ready(fmt: AudioFormat) -> AudioFormat:
    """Return ``fmt`` unchanged if it is transcription-ready.

    Raises:
        FormatIncompatibleError: With the reason the format was rejected
    """
    if not fmt.is_valid:
        raise FormatIncompatibleError(
            f"Extracted audio is invalid: {fmt.validation_error or 'unknown reason'}"
        )
    if not is_transcription_ready(fmt):
        raise FormatIncompatibleError(f"Codec {fmt.codec} is not supported for transcription")
    return fmt


def build_format(
    codec: str,
    sample_rate: int,
    channels: int,
    bit_rate: int | None = None,
    duration: float = 0.0,
    file_size: int | None = None,
) -> AudioFormat:
    """Construct an AudioFormat with the policy's verdict filled in.

    Raises:
        FormatIncompatibleError: If the channel count cannot be represented
    """
    if channels not in SUPPORTED_CHANNELS:
        raise FormatIncompatibleError(f"Unsupported channel count: {channels}")
    error = validation_error(codec, sample_rate, channels, bit_rate)
    return AudioFormat(
        codec=normalize_codec(codec),
        sample_rate=sample_rate,
        channels=channels,
        bit_rate=bit_rate,
        duration=max(duration, 0.0),
        file_size=file_size,
        is_valid=error is None,
        validation_error=error,
    )
