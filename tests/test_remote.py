"""Tests for vox.transcribe.remote module."""

from __future__ import annotations

import threading
from pathlib import Path

import pytest
import requests

from vox.config import RemoteSettings, VoxConfig
from vox.exceptions import (
    ApiKeyMissingError,
    AuthenticationError,
    PayloadTooLargeError,
    RateLimitError,
    RemoteServiceError,
    TranscriptionError,
    TransientNetworkError,
)
from vox.models import Engine
from vox.transcribe.remote import (
    RateLimiter,
    RemoteWhisperEngine,
    WhisperAPIClient,
    create_remote_engine,
    parse_response,
)

VERBOSE_RESPONSE = {
    "text": "Hello world.",
    "language": "english",
    "duration": 2.0,
    "words": [
        {"word": "Hello", "start": 0.0, "end": 0.6},
        {"word": "world.", "start": 0.7, "end": 1.4},
    ],
}


class FakeResponse:
    def __init__(self, status_code: int = 200, body=None, headers=None, text: str = "") -> None:
        self.status_code = status_code
        self._body = body
        self.headers = headers or {}
        self.text = text
        self.reason = "Reason"

    def json(self):
        if self._body is None:
            raise ValueError("No JSON")
        return self._body


class FakeSession:
    """Returns (or raises) queued outcomes and records each request."""

    def __init__(self, outcomes: list) -> None:
        self.outcomes = list(outcomes)
        self.requests: list[dict] = []

    def post(self, url, headers=None, data=None, files=None, timeout=None):
        name, handle, content_type = files["file"]
        self.requests.append(
            {
                "url": url,
                "headers": headers,
                "data": data,
                "filename": name,
                "content_type": content_type,
                "body": handle.read(),
                "timeout": timeout,
            }
        )
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


class NoWaitLimiter(RateLimiter):
    def __init__(self) -> None:
        super().__init__(0.0)
        self.acquired = 0

    def acquire(self) -> float:
        self.acquired += 1
        return 0.0


@pytest.fixture
def audio_path(tmp_path: Path) -> Path:
    path = tmp_path / "clip.m4a"
    path.write_bytes(b"\x00" * 512)
    return path


@pytest.fixture
def sleeps() -> list[float]:
    return []


def make_client(outcomes, sleeps, **settings) -> tuple[WhisperAPIClient, FakeSession]:
    session = FakeSession(outcomes)
    client = WhisperAPIClient(
        "sk-test",
        RemoteSettings(**settings),
        session=session,
        rate_limiter=NoWaitLimiter(),
        sleep=sleeps.append,
    )
    return client, session


class TestRateLimiter:
    def test_enforces_interval(self) -> None:
        now = [10.0]
        slept: list[float] = []

        def sleep(seconds: float) -> None:
            slept.append(seconds)
            now[0] += seconds

        limiter = RateLimiter(1.0, clock=lambda: now[0], sleep=sleep)
        assert limiter.acquire() == 0.0
        now[0] += 0.25
        assert limiter.acquire() == pytest.approx(0.75)
        now[0] += 2.0
        assert limiter.acquire() == 0.0
        assert slept == [pytest.approx(0.75)]

    def test_shared_per_endpoint(self) -> None:
        a = RateLimiter.for_endpoint("https://example.test/a")
        assert RateLimiter.for_endpoint("https://example.test/a") is a
        assert RateLimiter.for_endpoint("https://example.test/b") is not a


class TestWhisperAPIClient:
    def test_missing_key(self) -> None:
        with pytest.raises(ApiKeyMissingError) as exc_info:
            WhisperAPIClient("")
        assert "OPENAI_API_KEY" in exc_info.value.hint

    def test_success_request_shape(self, audio_path, sleeps) -> None:
        client, session = make_client([FakeResponse(body=VERBOSE_RESPONSE)], sleeps)

        payload = client.transcribe(audio_path, language="en")

        assert payload["text"] == "Hello world."
        request = session.requests[0]
        assert request["headers"] == {"Authorization": "Bearer sk-test"}
        assert ("model", "whisper-1") in request["data"]
        assert ("response_format", "verbose_json") in request["data"]
        assert ("timestamp_granularities[]", "word") in request["data"]
        assert ("language", "en") in request["data"]
        assert request["content_type"] == "audio/mp4"
        assert request["body"] == b"\x00" * 512
        assert sleeps == []

    def test_plain_json_without_timestamps(self, audio_path, sleeps) -> None:
        client, session = make_client([FakeResponse(body={"text": "hi"})], sleeps, include_timestamps=False)
        client.transcribe(audio_path)
        data = session.requests[0]["data"]
        assert ("response_format", "json") in data
        assert not any(key == "language" for key, _ in data)

    def test_payload_too_large_rejected_before_upload(self, audio_path, sleeps) -> None:
        client, session = make_client([], sleeps, max_payload_bytes=100)
        with pytest.raises(PayloadTooLargeError) as exc_info:
            client.transcribe(audio_path)
        assert exc_info.value.size == 512
        assert session.requests == []

    @pytest.mark.parametrize("status", [401, 403])
    def test_auth_failure_not_retried(self, audio_path, sleeps, status) -> None:
        body = {"error": {"message": "Incorrect API key provided"}}
        client, session = make_client([FakeResponse(status, body)], sleeps)
        with pytest.raises(AuthenticationError, match="Incorrect API key"):
            client.transcribe(audio_path)
        assert len(session.requests) == 1

    def test_server_413_not_retried(self, audio_path, sleeps) -> None:
        client, session = make_client([FakeResponse(413, text="too big")], sleeps)
        with pytest.raises(PayloadTooLargeError):
            client.transcribe(audio_path)
        assert len(session.requests) == 1

    def test_client_error_not_retried(self, audio_path, sleeps) -> None:
        client, session = make_client([FakeResponse(400, {"error": "bad model"})], sleeps)
        with pytest.raises(RemoteServiceError, match="bad model"):
            client.transcribe(audio_path)
        assert len(session.requests) == 1

    def test_server_error_retried_with_backoff(self, audio_path, sleeps) -> None:
        client, session = make_client(
            [FakeResponse(502, text="bad gateway"), FakeResponse(500), FakeResponse(body={"text": "ok"})],
            sleeps,
            retry_delay=0.5,
        )
        assert client.transcribe(audio_path)["text"] == "ok"
        assert len(session.requests) == 3
        assert sleeps == [0.5, 1.0]
        assert client.rate_limiter.acquired == 3

    def test_network_errors_exhaust_budget(self, audio_path, sleeps) -> None:
        client, session = make_client(
            [requests.ConnectionError("refused"), requests.Timeout("slow"), requests.ConnectionError("refused")],
            sleeps,
        )
        with pytest.raises(TransientNetworkError, match="refused"):
            client.transcribe(audio_path)
        assert len(session.requests) == 3
        assert sleeps == [1.0, 2.0]

    def test_rate_limit_honours_retry_after(self, audio_path, sleeps) -> None:
        client, _ = make_client(
            [FakeResponse(429, headers={"Retry-After": "7"}), FakeResponse(body={"text": "ok"})],
            sleeps,
        )
        assert client.transcribe(audio_path)["text"] == "ok"
        assert sleeps == [7.0]

    def test_rate_limit_exhausted(self, audio_path, sleeps) -> None:
        client, _ = make_client([FakeResponse(429)] * 2, sleeps, max_retries=2, rate_limit_delay=3.0)
        with pytest.raises(RateLimitError) as exc_info:
            client.transcribe(audio_path)
        assert exc_info.value.retry_after == 3.0
        assert sleeps == [3.0]

    def test_malformed_response_retried(self, audio_path, sleeps) -> None:
        client, session = make_client(
            [FakeResponse(200, text="<html>"), FakeResponse(body={"no_text": True}), FakeResponse(body={"text": "ok"})],
            sleeps,
        )
        assert client.transcribe(audio_path)["text"] == "ok"
        assert len(session.requests) == 3

    def test_malformed_words_retried(self, audio_path, sleeps) -> None:
        client, session = make_client(
            [
                FakeResponse(body={"text": "hi", "words": [{"word": "hi", "start": None, "end": 1.0}]}),
                FakeResponse(body={"text": "hi", "words": "hi"}),
                FakeResponse(body=VERBOSE_RESPONSE),
            ],
            sleeps,
        )
        assert client.transcribe(audio_path) == VERBOSE_RESPONSE
        assert len(session.requests) == 3

    def test_malformed_payloads_exhaust_budget(self, audio_path, sleeps) -> None:
        bad = {"text": "hi", "duration": "long", "words": []}
        client, session = make_client([FakeResponse(body=bad) for _ in range(3)], sleeps)
        with pytest.raises(TransientNetworkError, match="Malformed"):
            client.transcribe(audio_path)
        assert len(session.requests) == 3

    def test_no_attempts_raises_service_error(self, audio_path, sleeps) -> None:
        client, session = make_client([], sleeps)
        client.settings = client.settings.model_copy(update={"max_retries": 0})
        with pytest.raises(RemoteServiceError, match="No request attempted"):
            client.transcribe(audio_path)
        assert session.requests == []

    def test_cancelled_before_request(self, audio_path, sleeps) -> None:
        client, session = make_client([], sleeps)
        cancel = threading.Event()
        cancel.set()
        with pytest.raises(TranscriptionError, match="cancelled"):
            client.transcribe(audio_path, cancel_event=cancel)
        assert session.requests == []


class TestParseResponse:
    def test_word_segments(self) -> None:
        result = parse_response(VERBOSE_RESPONSE, duration=5.0, language="en-US")
        assert [s.text for s in result.segments] == ["Hello", "world."]
        assert result.confidence == 1.0
        assert result.duration == 2.0
        assert result.language == "en-US"
        assert result.engine is Engine.OPENAI_WHISPER

    def test_text_only(self) -> None:
        result = parse_response({"text": " Just text. "}, duration=4.0)
        assert len(result.segments) == 1
        assert result.segments[0].end_time == 4.0
        assert result.text == "Just text."
        assert result.language == "unknown"

    def test_payload_language_used_without_request(self) -> None:
        assert parse_response({"text": "hi", "language": "de"}, duration=1.0).language == "de"

    @pytest.mark.parametrize(
        "payload",
        [
            {"text": "hi", "words": [{"word": "hi", "start": None, "end": 1.0}]},
            {"text": "hi", "words": {"word": "hi"}},
            {"text": "hi", "words": ["hi"]},
            {"text": None},
        ],
    )
    def test_malformed_payload_raises_service_error(self, payload) -> None:
        with pytest.raises(RemoteServiceError, match="Malformed"):
            parse_response(payload, duration=1.0)


class TestRemoteWhisperEngine:
    def test_transcribe(self, audio_file, sleeps) -> None:
        client, session = make_client([FakeResponse(body=VERBOSE_RESPONSE)], sleeps)
        partials = []

        result = RemoteWhisperEngine(client).transcribe(audio_file, "en-GB", on_partial=partials.append)

        assert ("language", "en") in session.requests[0]["data"]
        assert result.language == "en-GB"
        assert result.audio_format == audio_file.format
        assert len(partials) == 2

    def test_malformed_words_raise_vox_error(self, audio_file, sleeps) -> None:
        bad = {"text": "hi", "words": [{"word": "hi", "start": None, "end": 1.0}]}
        client, session = make_client([FakeResponse(body=bad) for _ in range(3)], sleeps)

        with pytest.raises(TransientNetworkError):
            RemoteWhisperEngine(client).transcribe(audio_file, "en-US")
        assert len(session.requests) == 3

    def test_accepts_any_locale(self, sleeps) -> None:
        client, _ = make_client([], sleeps)
        engine = RemoteWhisperEngine(client)
        assert engine.available()
        assert engine.resolve_locale("sw-KE") == "sw-KE"


class TestCreateRemoteEngine:
    def test_requires_key(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("OPENAI_API_KEY", raising=False)
        monkeypatch.delenv("VOX_OPENAI_API_KEY", raising=False)
        with pytest.raises(ApiKeyMissingError):
            create_remote_engine(VoxConfig())

    def test_env_key(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("OPENAI_API_KEY", "sk-env")
        engine = create_remote_engine(VoxConfig())
        assert engine.client.api_key == "sk-env"
