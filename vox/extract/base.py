"""ExtractorBackend - abstract interface for audio extraction strategies."""

from __future__ import annotations

from abc import ABC, abstractmethod
from pathlib import Path

from vox.models import AudioFormat
from vox.progress import PhaseWindow


class ExtractorBackend(ABC):
    name: str = "extractor"

    @abstractmethod
    def available(self) -> bool:
        """Whether this backend can run in the current environment."""

    @abstractmethod
    def extract(self, input_path: Path, output_path: Path, window: PhaseWindow) -> AudioFormat:
        """Write the audio of ``input_path`` to ``output_path`` as AAC/M4A.

        Progress in [0, 1] of the export is reported through ``window``.
        Returns the format of the written file.
        """
