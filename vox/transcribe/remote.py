"""
vox.transcribe.remote - Cloud Whisper API client with retries and rate limiting.

Uploads audio to the OpenAI transcription endpoint with requests. Calls
to one endpoint are serialized through a shared minimum-interval rate
limiter; transient failures are retried with linear backoff and 429
responses honour ``Retry-After``. Authentication and payload-size errors
fail immediately.
"""

from __future__ import annotations

import threading
import time
from collections.abc import Callable
from pathlib import Path
from typing import Any

import requests

from vox.config import RemoteSettings, VoxConfig, resolve_api_key
from vox.exceptions import (
    ApiKeyMissingError,
    AuthenticationError,
    PayloadTooLargeError,
    RateLimitError,
    RemoteServiceError,
    TranscriptionError,
    TransientNetworkError,
)
from vox.logging import get_logger
from vox.models import AudioFile, Engine, TranscriptionResult, TranscriptionSegment, WordTiming
from vox.transcribe.engine import PartialCallback, TranscriptionEngine
from vox.transcribe.languages import language_code

log = get_logger("remote")

CONTENT_TYPES = {
    ".mp3": "audio/mpeg",
    ".wav": "audio/wav",
    ".m4a": "audio/mp4",
    ".mp4": "audio/mp4",
    ".aac": "audio/mp4",
    ".flac": "audio/flac",
    ".ogg": "audio/ogg",
    ".webm": "audio/webm",
}


class RateLimiter:
    """Enforces a minimum interval between calls, across threads.

    Limiters obtained through ``for_endpoint`` are shared by every client
    in the process that talks to the same endpoint.
    """

    _shared: dict[str, RateLimiter] = {}
    _shared_lock = threading.Lock()

    def __init__(
        self,
        min_interval: float = 1.0,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.min_interval = min_interval
        self._clock = clock
        self._sleep = sleep
        self._lock = threading.Lock()
        self._last: float | None = None

    @classmethod
    def for_endpoint(cls, endpoint: str, min_interval: float = 1.0) -> RateLimiter:
        with cls._shared_lock:
            limiter = cls._shared.get(endpoint)
            if limiter is None:
                limiter = cls(min_interval)
                cls._shared[endpoint] = limiter
            return limiter

    def acquire(self) -> float:
        """Block until a call is allowed. Returns the time waited."""
        with self._lock:
            waited = 0.0
            if self._last is not None:
                remaining = self._last + self.min_interval - self._clock()
                if remaining > 0:
                    self._sleep(remaining)
                    waited = remaining
            self._last = self._clock()
            return waited


class WhisperAPIClient:
    """Client for the OpenAI audio transcription endpoint."""

    def __init__(
        self,
        api_key: str,
        settings: RemoteSettings | None = None,
        session: requests.Session | None = None,
        rate_limiter: RateLimiter | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if not api_key:
            raise ApiKeyMissingError()
        self.api_key = api_key
        self.settings = settings or RemoteSettings()
        self.session = session or requests.Session()
        self.rate_limiter = rate_limiter or RateLimiter.for_endpoint(
            self.settings.endpoint, self.settings.min_request_interval
        )
        self._sleep = sleep

    def check_payload(self, audio_path: Path) -> int:
        """Return the upload size, rejecting files above the ceiling."""
        size = audio_path.stat().st_size
        if size > self.settings.max_payload_bytes:
            raise PayloadTooLargeError(size, self.settings.max_payload_bytes)
        return size

    def transcribe(
        self,
        audio_path: Path,
        language: str | None = None,
        cancel_event: threading.Event | None = None,
    ) -> dict[str, Any]:
        """Upload audio and return the decoded JSON response.

        Args:
            audio_path: Audio file to upload
            language: ISO-639-1 code, or None to let the service detect it
            cancel_event: Checked before every attempt

        Returns:
            Response payload with a ``text`` string and, when present,
            numeric ``duration`` and a list of timed ``words``

        Raises:
            PayloadTooLargeError: If the file exceeds the upload limit
            AuthenticationError: On 401/403
            RateLimitError: If still rate limited after the retry budget
            TransientNetworkError: If network/server errors outlast the retry budget
            RemoteServiceError: On other client errors
        """
        self.check_payload(audio_path)
        max_retries = self.settings.max_retries
        last_error: RemoteServiceError | None = None

        for attempt in range(1, max_retries + 1):
            if cancel_event is not None and cancel_event.is_set():
                raise TranscriptionError("Cloud transcription cancelled")
            if attempt > 1:
                log.info("Retry %d/%d", attempt, max_retries)

            self.rate_limiter.acquire()
            try:
                response = self._post(audio_path, language)
            except (requests.Timeout, requests.ConnectionError) as e:
                last_error = TransientNetworkError(f"Network error: {e}")
                log.warning("Cloud transcription request failed: %s", e)
            except requests.RequestException as e:
                raise RemoteServiceError(f"Cloud transcription request failed: {e}") from e
            else:
                status = response.status_code
                if status in (401, 403):
                    raise AuthenticationError(
                        f"Authentication failed ({status}): {_error_message(response)}",
                        hint="Check OPENAI_API_KEY or pass a valid --api-key",
                    )
                if status == 413:
                    raise PayloadTooLargeError(audio_path.stat().st_size, self.settings.max_payload_bytes)
                if status == 429:
                    retry_after = _retry_after(response, self.settings.rate_limit_delay)
                    last_error = RateLimitError(
                        f"Rate limit exceeded: {_error_message(response)}", retry_after=retry_after
                    )
                    log.warning("Rate limited, waiting %.1fs", retry_after)
                    if attempt < max_retries:
                        self._sleep(retry_after)
                    continue
                if status >= 500:
                    last_error = TransientNetworkError(
                        f"Server error {status}: {_error_message(response)}"
                    )
                    log.warning("Cloud transcription server error %d", status)
                elif status >= 400:
                    raise RemoteServiceError(f"API error {status}: {_error_message(response)}")
                else:
                    try:
                        payload = response.json()
                    except ValueError:
                        payload = None
                    if _well_formed(payload):
                        return payload
                    last_error = TransientNetworkError("Malformed response from transcription service")
                    log.warning("Malformed response from transcription service")

            if attempt < max_retries:
                self._sleep(attempt * self.settings.retry_delay)

        if last_error is None:
            raise RemoteServiceError(f"No request attempted (max_retries={max_retries})")
        raise last_error

    def _post(self, audio_path: Path, language: str | None) -> requests.Response:
        data = [("model", self.settings.model)]
        if self.settings.include_timestamps:
            data.append(("response_format", "verbose_json"))
            data.append(("timestamp_granularities[]", "word"))
        else:
            data.append(("response_format", "json"))
        if language:
            data.append(("language", language))

        content_type = CONTENT_TYPES.get(audio_path.suffix.lower(), "application/octet-stream")
        with open(audio_path, "rb") as f:
            return self.session.post(
                self.settings.endpoint,
                headers={"Authorization": f"Bearer {self.api_key}"},
                data=data,
                files={"file": (audio_path.name, f, content_type)},
                timeout=self.settings.request_timeout,
            )


def parse_response(
    payload: dict[str, Any],
    duration: float,
    language: str | None = None,
    processing_time: float = 0.0,
    audio_format: Any = None,
) -> TranscriptionResult:
    """Convert a transcription response into a TranscriptionResult.

    Word timings become one segment each (confidence 1.0, as the service
    reports none). Without words the whole text is one segment spanning
    the audio.

    Raises:
        RemoteServiceError: If the payload is not a transcription response
    """
    if not _well_formed(payload):
        raise RemoteServiceError("Malformed response from transcription service")
    words = payload.get("words") or []
    duration = float(payload.get("duration") or duration or 0.0)
    if words:
        segments = [
            TranscriptionSegment(
                text=str(w.get("word", "")).strip(),
                start_time=max(float(w.get("start", 0.0)), 0.0),
                end_time=max(float(w.get("end", 0.0)), float(w.get("start", 0.0)), 0.0),
                confidence=1.0,
                words=[
                    WordTiming(
                        word=str(w.get("word", "")).strip(),
                        start_time=max(float(w.get("start", 0.0)), 0.0),
                        end_time=max(float(w.get("end", 0.0)), float(w.get("start", 0.0)), 0.0),
                    )
                ],
            )
            for w in words
        ]
    else:
        segments = [
            TranscriptionSegment(
                text=payload.get("text", "").strip(),
                start_time=0.0,
                end_time=max(duration, 0.0),
                confidence=1.0,
            )
        ]
    return TranscriptionResult.from_segments(
        segments,
        language=language or payload.get("language") or "unknown",
        engine=Engine.OPENAI_WHISPER,
        duration=duration,
        processing_time=processing_time,
        audio_format=audio_format,
    )


class RemoteWhisperEngine(TranscriptionEngine):
    """Cloud Whisper behind the common engine contract. Accepts any locale."""

    kind = Engine.OPENAI_WHISPER

    def __init__(self, client: WhisperAPIClient) -> None:
        self.client = client

    def available(self) -> bool:
        return True

    def supported_locales(self) -> list[str]:
        return []

    def resolve_locale(self, locale: str) -> str | None:
        return locale

    def transcribe(
        self,
        audio_file: AudioFile,
        locale: str | None,
        on_partial: PartialCallback | None = None,
        cancel_event: threading.Event | None = None,
    ) -> TranscriptionResult:
        started = time.monotonic()
        payload = self.client.transcribe(
            audio_file.path,
            language=language_code(locale) if locale else None,
            cancel_event=cancel_event,
        )
        result = parse_response(
            payload,
            duration=audio_file.format.duration,
            language=locale,
            processing_time=time.monotonic() - started,
            audio_format=audio_file.format,
        )
        if on_partial is not None:
            for segment in result.segments:
                on_partial(segment)
        return result


def create_remote_engine(
    config: VoxConfig,
    api_key: str | None = None,
    session: requests.Session | None = None,
) -> RemoteWhisperEngine:
    """Build the cloud engine from configuration.

    Raises:
        ApiKeyMissingError: If no key is configured or exported
    """
    key = api_key or resolve_api_key(config)
    if not key:
        raise ApiKeyMissingError()
    return RemoteWhisperEngine(WhisperAPIClient(key, config.remote, session=session))


def _retry_after(response: requests.Response, default: float) -> float:
    value = response.headers.get("Retry-After")
    if value is None:
        return default
    try:
        return max(float(value), 0.0)
    except ValueError:
        return default


def _error_message(response: requests.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return (response.text or "").strip()[:200] or response.reason or "unknown error"
    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
        if isinstance(error, str):
            return error
    return str(body)[:200]


def _well_formed(payload: Any) -> bool:
    """Whether a decoded response has the shape parse_response expects."""
    if not isinstance(payload, dict) or not isinstance(payload.get("text"), str):
        return False
    if payload.get("duration") is not None and not _is_number(payload["duration"]):
        return False
    words = payload.get("words")
    if words is None:
        return True
    if not isinstance(words, list):
        return False
    return all(
        isinstance(w, dict)
        and isinstance(w.get("word"), str)
        and _is_number(w.get("start"))
        and _is_number(w.get("end"))
        for w in words
    )


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)
