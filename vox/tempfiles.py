"""
vox.tempfiles - Ownership of temporary audio files.

Paths are allocated with an atomic create so concurrent runs never
collide, and released exactly once however many times release is called.
"""

from __future__ import annotations

import os
import tempfile
import threading
from pathlib import Path

from vox.logging import get_logger

log = get_logger("tempfiles")


class TempFileManager:
    """Allocates and cleans up temporary files for one process."""

    def __init__(self, directory: Path | None = None, prefix: str = "vox_audio_") -> None:
        self.directory = directory
        self.prefix = prefix
        self._owned: set[Path] = set()
        self._lock = threading.Lock()

    def allocate(self, suffix: str = ".m4a") -> Path:
        """Create an empty, uniquely named file and return its path."""
        if self.directory is not None:
            self.directory.mkdir(parents=True, exist_ok=True)
        fd, name = tempfile.mkstemp(suffix=suffix, prefix=self.prefix, dir=self.directory)
        os.close(fd)
        path = Path(name)
        with self._lock:
            self._owned.add(path)
        log.debug("Allocated temporary file %s", path)
        return path

    def release(self, path: Path) -> bool:
        """Delete an owned file. Returns True only on the first release."""
        with self._lock:
            if path not in self._owned:
                return False
            self._owned.discard(path)
        try:
            path.unlink(missing_ok=True)
            log.debug("Removed temporary file %s", path)
        except OSError as e:
            log.warning("Could not remove temporary file %s: %s", path, e)
        return True

    def release_all(self) -> int:
        with self._lock:
            owned = list(self._owned)
        return sum(1 for path in owned if self.release(path))

    @property
    def owned(self) -> list[Path]:
        with self._lock:
            return sorted(self._owned)
