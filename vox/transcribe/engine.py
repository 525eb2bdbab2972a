"""
vox.transcribe.engine - Transcription engine contract and on-device Whisper.

Every engine implements TranscriptionEngine. LocalWhisperEngine runs
faster-whisper (default) or mlx-whisper (Apple Silicon); both are
imported lazily so a missing backend only makes that engine unavailable.
faster-whisper yields segments as it decodes, which are forwarded as
partial results.
"""

from __future__ import annotations

import math
import threading
import time
from abc import ABC, abstractmethod
from collections.abc import Callable
from typing import Any

from vox.exceptions import EngineUnavailableError, TranscriptionError
from vox.logging import get_logger
from vox.models import AudioFile, Engine, TranscriptionResult, TranscriptionSegment, WordTiming
from vox.transcribe.languages import language_code, normalize_locale
from vox.transcribe.segments import annotate_segments
from vox.validation import backend_available

log = get_logger("transcribe")

PartialCallback = Callable[[TranscriptionSegment], None]

BACKEND_ENGINES = {
    "faster": Engine.FASTER_WHISPER,
    "mlx": Engine.MLX_WHISPER,
}

INSTALL_HINTS = {
    "faster": "Install with: pip install faster-whisper",
    "mlx": "Install with: pip install mlx-whisper",
}


class TranscriptionEngine(ABC):
    kind: Engine

    @property
    def name(self) -> str:
        return self.kind.value

    @abstractmethod
    def available(self) -> bool:
        """Whether the engine can run in the current environment."""

    @abstractmethod
    def supported_locales(self) -> list[str]:
        """Locales (or bare language codes) the engine accepts."""

    def resolve_locale(self, locale: str) -> str | None:
        """Engine-supported form of ``locale``, or None if unsupported."""
        return normalize_locale(locale, self.supported_locales())

    @abstractmethod
    def transcribe(
        self,
        audio_file: AudioFile,
        locale: str,
        on_partial: PartialCallback | None = None,
        cancel_event: threading.Event | None = None,
    ) -> TranscriptionResult:
        """Transcribe ``audio_file`` in ``locale``.

        Partial segments may be passed to ``on_partial`` while decoding;
        only the returned result is final. Implementations should stop
        early once ``cancel_event`` is set.
        """


class LocalWhisperEngine(TranscriptionEngine):
    """On-device Whisper via faster-whisper or mlx-whisper."""

    def __init__(
        self,
        backend: str = "faster",
        model: str = "base",
        device: str = "auto",
        compute_type: str = "default",
    ) -> None:
        if backend not in BACKEND_ENGINES:
            raise ValueError(f"Unknown backend: {backend}")
        self.backend = backend
        self.model = model
        self.device = device
        self.compute_type = compute_type
        self.kind = BACKEND_ENGINES[backend]
        self._model_instance: Any = None
        self._load_lock = threading.Lock()

    def available(self) -> bool:
        return backend_available(self.backend)

    def supported_locales(self) -> list[str]:
        if self.model.endswith(".en"):
            return ["en"]
        if self.backend == "faster":
            from faster_whisper.tokenizer import _LANGUAGE_CODES

            return list(_LANGUAGE_CODES)
        from mlx_whisper.tokenizer import LANGUAGES

        return list(LANGUAGES)

    def transcribe(
        self,
        audio_file: AudioFile,
        locale: str,
        on_partial: PartialCallback | None = None,
        cancel_event: threading.Event | None = None,
    ) -> TranscriptionResult:
        """Transcribe with the configured backend.

        Raises:
            EngineUnavailableError: If the backend is not installed
            TranscriptionError: If decoding fails or is cancelled
        """
        started = time.monotonic()
        try:
            if self.backend == "faster":
                segments, duration = self._transcribe_faster(audio_file, locale, on_partial, cancel_event)
            else:
                segments, duration = self._transcribe_mlx(audio_file, locale)
        except TranscriptionError:
            raise
        except Exception as e:
            raise TranscriptionError(f"{self.name} transcription failed: {e}") from e

        return TranscriptionResult.from_segments(
            annotate_segments(segments),
            language=locale,
            engine=self.kind,
            duration=duration or audio_file.format.duration,
            processing_time=time.monotonic() - started,
            audio_format=audio_file.format,
        )

    def _load_faster(self) -> Any:
        try:
            from faster_whisper import WhisperModel
        except ImportError as e:
            raise EngineUnavailableError(
                "faster-whisper not installed", hint=INSTALL_HINTS["faster"]
            ) from e
        with self._load_lock:
            if self._model_instance is None:
                log.info("Loading faster-whisper model %s", self.model)
                self._model_instance = WhisperModel(
                    self.model, device=self.device, compute_type=self.compute_type
                )
        return self._model_instance

    def _transcribe_faster(
        self,
        audio_file: AudioFile,
        locale: str,
        on_partial: PartialCallback | None,
        cancel_event: threading.Event | None,
    ) -> tuple[list[TranscriptionSegment], float]:
        model = self._load_faster()
        raw_segments, info = model.transcribe(
            str(audio_file.path),
            language=language_code(locale),
            word_timestamps=True,
        )
        segments = []
        for raw in raw_segments:
            if cancel_event is not None and cancel_event.is_set():
                raise TranscriptionError("Transcription cancelled")
            segment = _segment_from_whisper(
                {
                    "start": raw.start,
                    "end": raw.end,
                    "text": raw.text,
                    "avg_logprob": raw.avg_logprob,
                    "words": [
                        {"word": w.word, "start": w.start, "end": w.end, "probability": w.probability}
                        for w in (raw.words or [])
                    ],
                }
            )
            segments.append(segment)
            if on_partial is not None:
                on_partial(segment)
        return segments, float(getattr(info, "duration", 0.0) or 0.0)

    def _transcribe_mlx(
        self,
        audio_file: AudioFile,
        locale: str,
    ) -> tuple[list[TranscriptionSegment], float]:
        try:
            import mlx_whisper
        except ImportError as e:
            raise EngineUnavailableError("mlx-whisper not installed", hint=INSTALL_HINTS["mlx"]) from e

        result = mlx_whisper.transcribe(
            str(audio_file.path),
            path_or_hf_repo=f"mlx-community/whisper-{self.model}-mlx",
            language=language_code(locale),
            word_timestamps=True,
        )
        segments = [_segment_from_whisper(seg) for seg in result.get("segments", [])]
        duration = segments[-1].end_time if segments else 0.0
        return segments, duration


def logprob_to_confidence(avg_logprob: float | None) -> float:
    """Convert Whisper's mean token log-probability to [0, 1]."""
    if avg_logprob is None:
        return 0.0
    return min(max(math.exp(avg_logprob), 0.0), 1.0)


def _segment_from_whisper(seg: dict[str, Any]) -> TranscriptionSegment:
    words = [
        WordTiming(
            word=w.get("word", w.get("text", "")).strip(),
            start_time=max(float(w.get("start", 0.0)), 0.0),
            end_time=max(float(w.get("end", 0.0)), float(w.get("start", 0.0)), 0.0),
            confidence=min(max(float(w.get("probability", 1.0)), 0.0), 1.0),
        )
        for w in seg.get("words", []) or []
    ]
    start = max(float(seg.get("start", 0.0)), 0.0)
    end = max(float(seg.get("end", start)), start)
    return TranscriptionSegment(
        text=seg.get("text", "").strip(),
        start_time=start,
        end_time=end,
        confidence=logprob_to_confidence(seg.get("avg_logprob")),
        words=words,
    )


def create_local_engines(backends: list[str], model: str) -> list[TranscriptionEngine]:
    """Build one LocalWhisperEngine per configured backend, in order."""
    return [LocalWhisperEngine(backend=b, model=model) for b in backends]
