"""
vox.transcribe.arbiter - Multi-engine transcription with a quality gate.

Walks (language, engine) candidates in order, accepts the first result
that meets the quality bar and otherwise keeps the most confident one.
When no local candidate produced anything, or local engines are disabled,
the cloud engine is used instead.
"""

from __future__ import annotations

from vox.config import VoxConfig, resolve_api_key
from vox.exceptions import (
    EngineUnavailableError,
    NoSupportedLanguagesError,
    TranscriptionError,
    VoxError,
)
from vox.logging import get_logger
from vox.models import AudioFile, ProcessingPhase, TranscriptionResult
from vox.progress import ProgressCallback, ProgressReporter, as_reporter
from vox.transcribe.attempt import RecognitionAttempt
from vox.transcribe.engine import TranscriptionEngine, create_local_engines
from vox.transcribe.languages import candidate_languages
from vox.transcribe.quality import ConfidenceManager
from vox.transcribe.remote import create_remote_engine

log = get_logger("transcribe")

PARTIAL_PROGRESS = 0.5


class TranscriptionArbiter:
    """Chooses an engine and language, and arbitrates result quality."""

    def __init__(
        self,
        engines: list[TranscriptionEngine],
        quality: ConfidenceManager | None = None,
        remote: TranscriptionEngine | None = None,
        attempt_timeout: float = 300.0,
        stop_grace: float = 5.0,
        force_cloud: bool = False,
        remote_fallback: bool = True,
        fallback_locale: str = "en-US",
        system_languages: list[str] | None = None,
    ) -> None:
        self.engines = engines
        self.quality = quality or ConfidenceManager()
        self.remote = remote
        self.attempt_timeout = attempt_timeout
        self.stop_grace = stop_grace
        self.force_cloud = force_cloud
        self.remote_fallback = remote_fallback
        self.fallback_locale = fallback_locale
        self.system_languages = system_languages

    @classmethod
    def from_config(cls, config: VoxConfig, api_key: str | None = None) -> TranscriptionArbiter:
        settings = config.transcription
        remote = None
        if settings.force_cloud or api_key or resolve_api_key(config):
            remote = create_remote_engine(config, api_key=api_key)
        return cls(
            engines=create_local_engines(settings.backends, settings.model),
            quality=ConfidenceManager(settings.quality),
            remote=remote,
            attempt_timeout=settings.attempt_timeout,
            force_cloud=settings.force_cloud,
            remote_fallback=settings.remote_fallback,
            fallback_locale=settings.fallback_locale,
        )

    def transcribe(
        self,
        audio_file: AudioFile,
        language: str | None = None,
        progress: ProgressReporter | ProgressCallback | None = None,
    ) -> TranscriptionResult:
        """Transcribe extracted audio.

        Args:
            audio_file: Output of the extraction stage
            language: User's preferred language, tried first
            progress: Reporter or callback receiving ProgressReports

        Returns:
            The first result meeting the quality bar, else the most
            confident one with quality warnings attached

        Raises:
            TranscriptionError: The last attempt's error, or
                NoSupportedLanguagesError when nothing could be attempted
        """
        reporter = as_reporter(progress)
        reporter.advance(ProcessingPhase.INITIALIZING, 0.0, "Preparing transcription")

        if self.force_cloud or not self.engines:
            log.info("Local engines %s, using cloud transcription", "bypassed" if self.force_cloud else "disabled")
            return self._finish(self._transcribe_remote(audio_file, language, reporter), reporter)

        languages = candidate_languages(language, self.system_languages, self.fallback_locale)
        reporter.advance(ProcessingPhase.ANALYZING, 0.05, f"Candidate languages: {', '.join(languages)}")

        best: TranscriptionResult | None = None
        last_error: VoxError | None = None
        unavailable: list[TranscriptionEngine] = []
        tried: set[tuple[TranscriptionEngine, str]] = set()
        stalled: set[TranscriptionEngine] = set()

        for locale in languages:
            for engine in self.engines:
                if not engine.available():
                    if engine not in unavailable:
                        log.info("%s is not available, skipping", engine.name)
                        unavailable.append(engine)
                    continue
                if engine in stalled:
                    continue
                resolved = engine.resolve_locale(locale)
                if resolved is None:
                    log.debug("%s does not support %s", engine.name, locale)
                    continue
                if (engine, resolved) in tried:
                    continue
                tried.add((engine, resolved))

                result = self._attempt(engine, audio_file, resolved, reporter, stalled)
                if isinstance(result, VoxError):
                    last_error = result
                    continue
                if self.quality.meets_quality_bar(result):
                    log.info(
                        "Accepted %s result for %s (confidence %.2f)",
                        engine.name,
                        resolved,
                        result.confidence,
                    )
                    return self._finish(result, reporter)
                log.info(
                    "%s result for %s below quality bar (confidence %.2f)",
                    engine.name,
                    resolved,
                    result.confidence,
                )
                if best is None or result.confidence > best.confidence:
                    best = result

        if best is not None:
            return self._finish(best, reporter)

        if self.remote is not None and self.remote_fallback:
            log.warning("No local transcription succeeded, falling back to cloud")
            try:
                return self._finish(self._transcribe_remote(audio_file, language, reporter), reporter)
            except VoxError as e:
                if last_error is not None:
                    raise e from last_error
                raise

        if last_error is not None:
            raise last_error
        if not tried and len(unavailable) == len(self.engines):
            names = ", ".join(e.name for e in unavailable)
            raise EngineUnavailableError(
                f"No transcription engine is available ({names})",
                hint="Install faster-whisper (pip install faster-whisper) or use --force-cloud",
            )
        raise NoSupportedLanguagesError()

    def _attempt(
        self,
        engine: TranscriptionEngine,
        audio_file: AudioFile,
        locale: str,
        reporter: ProgressReporter,
        stalled: set[TranscriptionEngine],
    ) -> TranscriptionResult | VoxError:
        reporter.advance(ProcessingPhase.EXTRACTING, 0.10, f"Transcribing with {engine.name} ({locale})")
        attempt = RecognitionAttempt(
            engine,
            audio_file,
            locale,
            timeout=self.attempt_timeout,
            stop_grace=self.stop_grace,
            on_partial=lambda _segment: reporter.report(
                PARTIAL_PROGRESS, ProcessingPhase.EXTRACTING, "Recognizing speech"
            ),
        )
        try:
            return attempt.run()
        except TranscriptionError as e:
            log.warning("%s (%s) failed: %s", engine.name, locale, e)
            if attempt.overran:
                log.warning("%s ignores cancellation, not using it again", engine.name)
                stalled.add(engine)
            return e

    def _transcribe_remote(
        self,
        audio_file: AudioFile,
        language: str | None,
        reporter: ProgressReporter,
    ) -> TranscriptionResult:
        if self.remote is None:
            raise EngineUnavailableError(
                "Cloud transcription is not configured",
                hint="Set OPENAI_API_KEY environment variable or use --api-key",
            )
        reporter.advance(ProcessingPhase.EXTRACTING, 0.10, "Uploading audio to cloud transcription")
        return self.remote.transcribe(audio_file, language)

    def _finish(self, result: TranscriptionResult, reporter: ProgressReporter) -> TranscriptionResult:
        reporter.advance(ProcessingPhase.VALIDATING, 0.90, "Assessing transcription quality")
        assessment = self.quality.assess(result)
        if assessment.warnings:
            for warning in assessment.warnings:
                log.warning(warning)
            result = result.model_copy(update={"warnings": assessment.warnings})
        reporter.advance(ProcessingPhase.COMPLETE, 1.0, "Transcription complete")
        return result
