"""
vox.pipeline - End-to-end run: extract, transcribe, format, write.

Owns the temporary audio file between stages and deletes it exactly once,
whether the run succeeds or fails.
"""

from __future__ import annotations

from pathlib import Path

from pydantic import BaseModel, ConfigDict

from vox.config import VoxConfig
from vox.extract.audio import AudioExtractor
from vox.logging import get_logger
from vox.models import SuccessConfirmation, TranscriptionResult
from vox.output.formatters import format_result
from vox.output.writer import OutputWriter
from vox.progress import ProgressCallback, ProgressReporter
from vox.transcribe.arbiter import TranscriptionArbiter
from vox.transcribe.quality import ConfidenceManager, QualityAssessment

log = get_logger("pipeline")


class PipelineOutcome(BaseModel):
    model_config = ConfigDict(frozen=True)

    result: TranscriptionResult
    assessment: QualityAssessment
    confirmation: SuccessConfirmation


def default_output_path(input_path: Path, fmt: str) -> Path:
    return input_path.with_suffix(f".{fmt}")


class Pipeline:
    """Wires extractor, arbiter and writer for one configuration."""

    def __init__(
        self,
        config: VoxConfig,
        extractor: AudioExtractor | None = None,
        arbiter: TranscriptionArbiter | None = None,
        writer: OutputWriter | None = None,
        api_key: str | None = None,
    ) -> None:
        self.config = config
        self.extractor = extractor or AudioExtractor.from_config(config.extraction)
        self.arbiter = arbiter or TranscriptionArbiter.from_config(config, api_key=api_key)
        self.writer = writer or OutputWriter(config.output)
        self.quality = ConfidenceManager(config.transcription.quality)

    def run(
        self,
        input_path: Path,
        output_path: Path | None = None,
        fmt: str | None = None,
        language: str | None = None,
        on_extract: ProgressCallback | None = None,
        on_transcribe: ProgressCallback | None = None,
    ) -> PipelineOutcome:
        """Process one input file.

        Args:
            input_path: Video file to transcribe
            output_path: Destination; defaults to the input path with the format's extension
            fmt: Output format; defaults to the configured one
            language: Preferred transcription language
            on_extract: Progress callback for extraction
            on_transcribe: Progress callback for transcription

        Returns:
            PipelineOutcome with the result, its quality assessment and the write confirmation
        """
        fmt = fmt or self.config.output.format
        output_path = output_path or default_output_path(input_path, fmt)
        language = language or self.config.transcription.language

        audio_file = self.extractor.extract(input_path, ProgressReporter(on_extract))
        try:
            result = self.arbiter.transcribe(audio_file, language, ProgressReporter(on_transcribe))
        finally:
            # The extractor allocated the file, so only its manager can release it.
            if audio_file.temporary_path is not None:
                self.extractor.temp_files.release(audio_file.temporary_path)

        content = format_result(result, fmt, include_timestamps=self.config.output.include_timestamps)
        confirmation = self.writer.write_result(content, output_path, fmt)
        log.info(confirmation.message)
        return PipelineOutcome(
            result=result,
            assessment=self.quality.assess(result),
            confirmation=confirmation,
        )
