"""Tests for vox.transcribe.arbiter module."""

from __future__ import annotations

import pytest

from vox.config import RemoteSettings, TranscriptionSettings, VoxConfig
from vox.exceptions import (
    EngineUnavailableError,
    NoSupportedLanguagesError,
    RemoteServiceError,
    TranscriptionError,
    TranscriptionTimeoutError,
)
from vox.models import Engine
from vox.transcribe.arbiter import TranscriptionArbiter
from vox.transcribe.remote import RemoteWhisperEngine

from conftest import FakeEngine, make_result

GOOD = [0.9, 0.85, 0.95]
POOR = [0.2, 0.25, 0.3]


def make_arbiter(engines, remote=None, **kwargs) -> TranscriptionArbiter:
    kwargs.setdefault("system_languages", [])
    return TranscriptionArbiter(engines, remote=remote, **kwargs)


class TestCandidateOrder:
    def test_first_passing_result_accepted(self, audio_file) -> None:
        first = FakeEngine({"de": make_result(GOOD, language="de")})
        second = FakeEngine({"de": make_result(GOOD, language="de")}, kind=Engine.MLX_WHISPER)

        result = make_arbiter([first, second]).transcribe(audio_file, "de-DE")

        assert result.language == "de"
        assert first.calls == ["de"]
        assert second.calls == []

    def test_next_engine_tried_when_below_bar(self, audio_file) -> None:
        first = FakeEngine({"de": make_result(POOR)})
        second = FakeEngine({"de": make_result(GOOD, engine=Engine.MLX_WHISPER)}, kind=Engine.MLX_WHISPER)

        result = make_arbiter([first, second]).transcribe(audio_file, "de")

        assert result.engine is Engine.MLX_WHISPER
        assert result.confidence == pytest.approx(0.9)
        assert first.calls == ["de"] and second.calls == ["de"]

    def test_engines_tried_within_language_first(self, audio_file) -> None:
        first = FakeEngine({"de": TranscriptionError("no"), "en": make_result(GOOD)})
        second = FakeEngine({"de": make_result(GOOD)}, kind=Engine.MLX_WHISPER)

        make_arbiter([first, second], fallback_locale="en-US").transcribe(audio_file, "de")

        assert second.calls == ["de"]
        assert first.calls == ["de"]

    def test_duplicate_resolved_locale_tried_once(self, audio_file) -> None:
        engine = FakeEngine({"en": make_result(POOR)}, locales=["en"])

        make_arbiter([engine], system_languages=["en-GB"], fallback_locale="en-US").transcribe(
            audio_file, "en-US"
        )

        assert engine.calls == ["en"]

    def test_same_kind_engines_both_tried(self, audio_file) -> None:
        first = FakeEngine({"en": make_result(POOR)})
        second = FakeEngine({"en": make_result(GOOD)})

        result = make_arbiter([first, second], fallback_locale="en").transcribe(audio_file)

        assert second.calls == ["en"]
        assert result.confidence == pytest.approx(0.9)


class TestQualityFallback:
    def test_best_below_bar_returned_with_warnings(self, audio_file) -> None:
        worse = FakeEngine({"en": make_result([0.1, 0.1])})
        better = FakeEngine({"en": make_result(POOR, engine=Engine.MLX_WHISPER)}, kind=Engine.MLX_WHISPER)
        remote = FakeEngine({"en": make_result(GOOD)}, kind=Engine.OPENAI_WHISPER)

        result = make_arbiter([worse, better], remote=remote, fallback_locale="en").transcribe(audio_file)

        assert result.engine is Engine.MLX_WHISPER
        assert result.warnings
        assert remote.calls == []

    def test_failure_then_success(self, audio_file) -> None:
        engine = FakeEngine(
            {"fr": TranscriptionError("model crashed"), "en": make_result(GOOD)}
        )

        result = make_arbiter([engine], fallback_locale="en").transcribe(audio_file, "fr")

        assert engine.calls == ["fr", "en"]
        assert result.warnings == []

    def test_timed_out_attempt_moves_on(self, audio_file) -> None:
        slow = FakeEngine({"en": make_result(GOOD)}, delay=5.0)
        fast = FakeEngine({"en": make_result(GOOD, engine=Engine.MLX_WHISPER)}, kind=Engine.MLX_WHISPER)

        result = make_arbiter([slow, fast], attempt_timeout=0.1, fallback_locale="en").transcribe(
            audio_file
        )

        assert result.engine is Engine.MLX_WHISPER
        assert fast.calls == ["en"]
        assert slow.cancelled.wait(1.0)

    def test_next_attempt_waits_for_engine_ignoring_cancel(self, audio_file) -> None:
        stubborn = FakeEngine({"en": make_result(GOOD)}, delay=0.5, ignore_cancel=True)
        overlap = []

        class Follower(FakeEngine):
            def transcribe(self, *args, **kwargs):
                overlap.append(stubborn.running.is_set())
                return super().transcribe(*args, **kwargs)

        follower = Follower(
            {"en": make_result(GOOD, engine=Engine.MLX_WHISPER)}, kind=Engine.MLX_WHISPER
        )
        arbiter = make_arbiter(
            [stubborn, follower], attempt_timeout=0.1, stop_grace=0.05, fallback_locale="en"
        )

        result = arbiter.transcribe(audio_file)

        assert overlap == [False]
        assert result.engine is Engine.MLX_WHISPER

    def test_engine_ignoring_cancel_not_reused(self, audio_file) -> None:
        stubborn = FakeEngine(
            {"de": make_result(GOOD), "en": make_result(GOOD)}, delay=0.3, ignore_cancel=True
        )
        arbiter = make_arbiter([stubborn], attempt_timeout=0.05, stop_grace=0.01, fallback_locale="en")

        with pytest.raises(TranscriptionTimeoutError):
            arbiter.transcribe(audio_file, "de")

        assert stubborn.calls == ["de"]


class TestRemoteFallback:
    def test_remote_used_when_all_local_fail(self, audio_file) -> None:
        local = FakeEngine({"en": TranscriptionError("broken")})
        remote = FakeEngine({"en": make_result(GOOD, engine=Engine.OPENAI_WHISPER)}, kind=Engine.OPENAI_WHISPER)

        result = make_arbiter([local], remote=remote, fallback_locale="en").transcribe(audio_file, "en")

        assert result.engine is Engine.OPENAI_WHISPER
        assert remote.calls == ["en"]

    def test_remote_fallback_disabled(self, audio_file) -> None:
        local = FakeEngine({"en": TranscriptionError("broken")})
        remote = FakeEngine({"en": make_result(GOOD)}, kind=Engine.OPENAI_WHISPER)

        arbiter = make_arbiter([local], remote=remote, remote_fallback=False, fallback_locale="en")
        with pytest.raises(TranscriptionError, match="broken"):
            arbiter.transcribe(audio_file, "en")
        assert remote.calls == []

    def test_remote_error_propagates(self, audio_file) -> None:
        local = FakeEngine({"en": TranscriptionError("broken")})
        remote = FakeEngine({"en": RemoteServiceError("API error 400")}, kind=Engine.OPENAI_WHISPER)

        with pytest.raises(RemoteServiceError):
            make_arbiter([local], remote=remote, fallback_locale="en").transcribe(audio_file, "en")

    def test_force_cloud_skips_local(self, audio_file) -> None:
        local = FakeEngine({"en": make_result(GOOD)})
        remote = FakeEngine({"en": make_result(GOOD, engine=Engine.OPENAI_WHISPER)}, kind=Engine.OPENAI_WHISPER)

        result = make_arbiter([local], remote=remote, force_cloud=True).transcribe(audio_file, "en")

        assert result.engine is Engine.OPENAI_WHISPER
        assert local.calls == []

    def test_force_cloud_without_remote(self, audio_file) -> None:
        with pytest.raises(EngineUnavailableError) as exc_info:
            make_arbiter([FakeEngine()], force_cloud=True).transcribe(audio_file, "en")
        assert "OPENAI_API_KEY" in exc_info.value.hint


class TestNothingToTry:
    def test_all_engines_unavailable(self, audio_file) -> None:
        engines = [FakeEngine(is_available=False), FakeEngine(is_available=False, kind=Engine.MLX_WHISPER)]
        with pytest.raises(EngineUnavailableError, match="faster-whisper, mlx-whisper"):
            make_arbiter(engines).transcribe(audio_file, "en")

    def test_unavailable_engine_skipped(self, audio_file) -> None:
        missing = FakeEngine(is_available=False)
        working = FakeEngine({"en": make_result(GOOD)}, kind=Engine.MLX_WHISPER)

        make_arbiter([missing, working], fallback_locale="en").transcribe(audio_file)

        assert missing.calls == []
        assert working.calls == ["en"]

    def test_no_supported_language(self, audio_file) -> None:
        engine = FakeEngine(locales=["ja"])
        with pytest.raises(NoSupportedLanguagesError):
            make_arbiter([engine], fallback_locale="en-US").transcribe(audio_file, "de")
        assert engine.calls == []

    def test_last_error_raised(self, audio_file) -> None:
        engine = FakeEngine({"de": TranscriptionError("first"), "en": TranscriptionError("second")})
        with pytest.raises(TranscriptionError, match="second"):
            make_arbiter([engine], fallback_locale="en").transcribe(audio_file, "de")


class TestProgress:
    def test_monotonic_and_complete(self, audio_file, progress_recorder) -> None:
        first = FakeEngine({"en": make_result(POOR)}, partials=3)
        second = FakeEngine({"en": make_result(GOOD)}, kind=Engine.MLX_WHISPER, partials=1)

        make_arbiter([first, second], fallback_locale="en").transcribe(
            audio_file, progress=progress_recorder
        )

        fractions = progress_recorder.fractions
        assert fractions == sorted(fractions)
        assert progress_recorder.phases[-1] == "complete"
        assert fractions[-1] == 1.0


class TestFromConfig:
    def test_no_key_means_no_remote(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("OPENAI_API_KEY", raising=False)
        monkeypatch.delenv("VOX_OPENAI_API_KEY", raising=False)
        arbiter = TranscriptionArbiter.from_config(VoxConfig())
        assert arbiter.remote is None
        assert [e.kind for e in arbiter.engines] == [Engine.FASTER_WHISPER]

    def test_key_enables_remote(self) -> None:
        config = VoxConfig(
            transcription=TranscriptionSettings(backends=["faster", "mlx"], attempt_timeout=60),
            remote=RemoteSettings(max_retries=5),
        )
        arbiter = TranscriptionArbiter.from_config(config, api_key="sk-test")
        assert isinstance(arbiter.remote, RemoteWhisperEngine)
        assert arbiter.remote.client.settings.max_retries == 5
        assert arbiter.attempt_timeout == 60
        assert len(arbiter.engines) == 2
