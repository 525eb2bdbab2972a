"""
vox.exceptions - Custom exception classes.

All Vox-specific exceptions inherit from VoxError. Every error may carry a
``hint``: a one-line remediation the CLI prints beneath the message.
"""

from __future__ import annotations


class VoxError(Exception):
    """Base exception for all Vox errors."""

    def __init__(self, message: str, hint: str | None = None):
        self.message = message
        self.hint = hint
        super().__init__(message)


class ConfigError(VoxError):
    """Configuration loading or validation error."""

    pass


class InputError(VoxError):
    """Input file missing, unreadable or not a regular file."""

    pass


class DependencyError(VoxError):
    """Required dependency missing or misconfigured."""

    def __init__(self, dependency: str, message: str, install_hint: str | None = None):
        self.dependency = dependency
        self.install_hint = install_hint
        super().__init__(f"{dependency}: {message}", hint=install_hint)


# Extraction


class ExtractionError(VoxError):
    """Audio extraction error."""

    pass


class NoAudioTrackError(ExtractionError):
    """Input container has no audio stream."""

    def __init__(self, path: str):
        self.path = path
        super().__init__(
            f"No audio track found in {path}",
            hint="Check that the file contains an audio stream (ffprobe <file>)",
        )


class ExportFailedError(ExtractionError):
    """In-process export failed or was cancelled."""

    pass


class ExtractionTimeoutError(ExtractionError):
    """Extraction exceeded its deadline and was cancelled."""

    def __init__(self, timeout: float):
        self.timeout = timeout
        super().__init__(f"Audio extraction timed out after {timeout:.1f}s")


class ProcessExitError(ExtractionError):
    """External transcoder exited with a nonzero status."""

    def __init__(self, exit_code: int, stderr: str):
        self.exit_code = exit_code
        self.stderr = stderr
        tail = stderr.strip().splitlines()[-1] if stderr.strip() else "no diagnostic output"
        super().__init__(f"FFmpeg exited with code {exit_code}: {tail}")


class FormatIncompatibleError(ExtractionError):
    """Extracted audio does not satisfy the transcription-readiness policy."""

    pass


# Transcription


class TranscriptionError(VoxError):
    """Transcription error."""

    pass


class EngineUnavailableError(TranscriptionError):
    """Transcription engine is not installed or not usable here."""

    pass


class RecognitionPermissionError(TranscriptionError):
    """Recognition engine refused the request for lack of authorization."""

    pass


class TranscriptionTimeoutError(TranscriptionError):
    """Recognition attempt exceeded its deadline."""

    def __init__(self, timeout: float):
        self.timeout = timeout
        super().__init__(f"Transcription attempt timed out after {timeout:.1f}s")


class NoResultError(TranscriptionError):
    """No engine produced a transcription result."""

    pass


class NoSupportedLanguagesError(NoResultError):
    """None of the candidate languages is supported by any engine."""

    def __init__(self) -> None:
        super().__init__(
            "No supported languages available for transcription",
            hint="Pass --language with a language your Whisper model supports, or use --force-cloud",
        )


class RemoteServiceError(TranscriptionError):
    """Cloud transcription service error."""

    pass


class AuthenticationError(RemoteServiceError):
    """Cloud service rejected the API key."""

    pass


class ApiKeyMissingError(AuthenticationError):
    """No API key configured for the cloud service."""

    def __init__(self) -> None:
        super().__init__(
            "No OpenAI API key configured",
            hint="Set OPENAI_API_KEY environment variable or use --api-key",
        )


class RateLimitError(RemoteServiceError):
    """Cloud service rate limit exceeded."""

    def __init__(self, message: str, retry_after: float | None = None):
        self.retry_after = retry_after
        super().__init__(message, hint="Wait a moment and try again")


class PayloadTooLargeError(RemoteServiceError):
    """Audio file exceeds the cloud service's upload ceiling."""

    def __init__(self, size: int, limit: int):
        self.size = size
        self.limit = limit
        super().__init__(
            f"Audio file is {size} bytes, above the {limit} byte upload limit",
            hint="Trim the input or transcribe it locally without --force-cloud",
        )


class TransientNetworkError(RemoteServiceError):
    """Retryable network or server failure."""

    pass


# Output


class OutputError(VoxError):
    """Output persistence error."""

    pass


class InvalidOutputPathError(OutputError):
    """Output path is empty, malformed or its directory is missing."""

    pass


class PathCreationError(OutputError):
    """Output directory could not be created."""

    pass


class OutputPermissionError(OutputError):
    """Output location is not writable."""

    pass


class InsufficientDiskSpaceError(OutputError):
    """Not enough free space for a safe write."""

    def __init__(self, required: int, available: int):
        self.required = required
        self.available = available
        super().__init__(
            f"Insufficient disk space: {required} bytes required, {available} available",
            hint="Free up disk space or choose another output directory",
        )


class BackupFailedError(OutputError):
    """Existing destination could not be backed up."""

    pass


class AtomicWriteError(OutputError):
    """Temporary write or atomic replace failed; destination was restored."""

    pass
