"""
vox.extract.audio - Extraction orchestrator.

Runs the preferred in-process extractor, validates what it produced
against the transcription-readiness policy, and falls back to FFmpeg on
any failure. Progress for the whole operation is reported through one
monotonic reporter, across both attempts.
"""

from __future__ import annotations

from pathlib import Path

from vox.config import ExtractionSettings
from vox.exceptions import ExportFailedError
from vox.extract.base import ExtractorBackend
from vox.extract.ffmpeg import FFmpegExtractor
from vox.extract.native import NativeExtractor
from vox.extract.policy import check_ready
from vox.logging import get_logger
from vox.models import AudioFile, AudioFormat, ProcessingPhase
from vox.progress import PhaseWindow, ProgressCallback, ProgressReporter, as_reporter
from vox.tempfiles import TempFileManager
from vox.validation import validate_input_file

log = get_logger("extract")

EXTRACT_START = 0.10
EXTRACT_END = 0.90


class AudioExtractor:
    """Produces a transcription-ready AudioFile from a video file."""

    def __init__(
        self,
        fallback: ExtractorBackend,
        temp_files: TempFileManager,
        primary: ExtractorBackend | None = None,
    ) -> None:
        self.primary = primary
        self.fallback = fallback
        self.temp_files = temp_files

    @classmethod
    def from_config(
        cls,
        settings: ExtractionSettings,
        temp_files: TempFileManager | None = None,
    ) -> AudioExtractor:
        primary = None
        if settings.prefer_native:
            primary = NativeExtractor(
                timeout=settings.timeout_seconds,
                poll_interval=settings.poll_interval,
            )
        fallback = FFmpegExtractor(
            ffmpeg_path=settings.ffmpeg_path,
            timeout=settings.timeout_seconds,
            estimator_interval=settings.estimator_interval,
        )
        return cls(
            fallback=fallback,
            temp_files=temp_files or TempFileManager(settings.temp_dir),
            primary=primary,
        )

    def extract(
        self,
        input_path: Path,
        progress: ProgressReporter | ProgressCallback | None = None,
    ) -> AudioFile:
        """Extract the audio track of ``input_path`` into a temporary M4A file.

        Args:
            input_path: Video (or audio) file to extract from
            progress: Reporter or callback receiving ProgressReports

        Returns:
            AudioFile whose temporary_path the caller must release

        Raises:
            InputError: If the input file is missing or empty
            DependencyError: If the fallback needs FFmpeg and it is missing
            ExtractionError: If the fallback fails; primary failures are only logged
        """
        reporter = as_reporter(progress)
        validate_input_file(input_path)
        reporter.advance(ProcessingPhase.INITIALIZING, 0.0, "Preparing extraction")

        output_path = self.temp_files.allocate(".m4a")
        try:
            reporter.advance(ProcessingPhase.ANALYZING, 0.05, f"Analyzing {input_path.name}")
            window = PhaseWindow(reporter, EXTRACT_START, EXTRACT_END, ProcessingPhase.EXTRACTING)
            audio_format = self._run(input_path, output_path, window)

            reporter.advance(ProcessingPhase.VALIDATING, 0.90, "Validating extracted audio")
            if not output_path.exists() or output_path.stat().st_size == 0:
                raise ExportFailedError(f"Extraction produced no audio data: {output_path}")

            reporter.advance(ProcessingPhase.FINALIZING, 0.95, "Finalizing")
            audio_file = AudioFile(
                path=output_path,
                format=audio_format,
                temporary_path=output_path,
            )
            reporter.advance(ProcessingPhase.COMPLETE, 1.0, f"Extracted {audio_format.description}")
            return audio_file
        except BaseException:
            self.temp_files.release(output_path)
            raise

    def _run(self, input_path: Path, output_path: Path, window: PhaseWindow) -> AudioFormat:
        if self.primary is not None:
            if self.primary.available():
                try:
                    audio_format = check_ready(self.primary.extract(input_path, output_path, window))
                    log.info("Extracted audio with %s: %s", self.primary.name, audio_format.description)
                    return audio_format
                except Exception as e:
                    log.warning(
                        "%s extraction failed, falling back to %s: %s",
                        self.primary.name,
                        self.fallback.name,
                        e,
                    )
            else:
                log.info("%s extractor unavailable, using %s", self.primary.name, self.fallback.name)

        audio_format = check_ready(self.fallback.extract(input_path, output_path, window))
        log.info("Extracted audio with %s: %s", self.fallback.name, audio_format.description)
        return audio_format
