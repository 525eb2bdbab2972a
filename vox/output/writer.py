"""
vox.output.writer - Atomic output writer with backup and restore.

The destination is either left untouched or fully replaced: content goes
to a sibling temporary file that is fsynced and then renamed over the
destination with os.replace. An existing destination is backed up first
and restored if the write fails.
"""

from __future__ import annotations

import os
import shutil
import time
from collections.abc import Callable
from pathlib import Path
from typing import Any

from vox.config import OutputSettings
from vox.exceptions import (
    AtomicWriteError,
    BackupFailedError,
    InsufficientDiskSpaceError,
    InvalidOutputPathError,
    OutputPermissionError,
    PathCreationError,
)
from vox.logging import get_logger
from vox.models import SuccessConfirmation, ValidationReport, ValidationStatus
from vox.output.validator import OutputValidator
from vox.utils import format_size, sibling_path
from vox.validation import check_disk_space

log = get_logger("output")

INVALID_FILENAME_CHARS = frozenset('<>:"|?*\x00')
TEMP_PATTERN = ".{name}.tmp.{token}"
BACKUP_PATTERN = "{name}.backup.{token}"


class OutputWriter:
    """Writes output files so readers never see partial content."""

    def __init__(
        self,
        settings: OutputSettings | None = None,
        validator: OutputValidator | None = None,
        disk_space: Callable[[Path, int], dict[str, Any]] = check_disk_space,
    ) -> None:
        self.settings = settings or OutputSettings()
        self.validator = validator or OutputValidator()
        self._disk_space = disk_space

    def write_result(self, content: str, destination: Path, fmt: str | None = None) -> SuccessConfirmation:
        """Validate the destination, write atomically, then validate the artifact.

        Args:
            content: Formatted transcript
            destination: Output file path
            fmt: Output format; inferred from the extension when None

        Returns:
            SuccessConfirmation carrying the validation report

        Raises:
            InvalidOutputPathError: Empty path, bad characters, missing directory
            PathCreationError: Directory could not be created
            InsufficientDiskSpaceError: Not enough free space for a safe write
            OutputPermissionError: Directory or existing file not writable
            BackupFailedError: Existing file could not be backed up
            AtomicWriteError: Write failed; the previous file was restored
        """
        started = time.monotonic()
        fmt = (fmt or destination.suffix.lstrip(".") or "txt").lower()
        data = content.encode("utf-8")

        self.validate_destination(destination, len(data))
        self.write_atomic(destination, data)
        log.info("Wrote %s (%s)", destination, format_size(len(data)))

        report = self.validator.validate(destination, fmt, expected=content)
        if report.status is not ValidationStatus.PASSED:
            for issue in report.issues:
                log.warning("Output validation: %s", issue)

        return SuccessConfirmation(
            path=destination,
            size=len(data),
            format=fmt,
            report=report,
            processing_time=time.monotonic() - started,
            message=confirmation_message(destination, len(data), report),
        )

    def validate_destination(self, destination: Path, size: int) -> None:
        """Check a destination before anything is written."""
        if not str(destination) or str(destination) == "." or not destination.name:
            raise InvalidOutputPathError("Empty output path provided")
        bad = sorted(set(destination.name) & INVALID_FILENAME_CHARS)
        if bad:
            raise InvalidOutputPathError(
                f"Output file name contains invalid characters {''.join(bad)!r}: {destination.name}"
            )
        if destination.is_dir():
            raise InvalidOutputPathError(f"Output path is a directory: {destination}")

        parent = destination.parent
        if not parent.exists():
            if not self.settings.create_directories:
                raise InvalidOutputPathError(f"Parent directory does not exist: {parent}")
            try:
                parent.mkdir(parents=True, exist_ok=True)
                log.info("Created directory %s", parent)
            except OSError as e:
                raise PathCreationError(f"Cannot create directory {parent}: {e}") from e
        elif not parent.is_dir():
            raise InvalidOutputPathError(f"Parent path is not a directory: {parent}")

        if self.settings.validate_space:
            required = int(size * self.settings.space_multiplier)
            try:
                space = self._disk_space(parent, required)
            except OSError as e:
                log.warning("Could not determine free disk space: %s", e)
            else:
                if not space["sufficient"]:
                    raise InsufficientDiskSpaceError(required, space["available_bytes"])

        if not os.access(parent, os.W_OK):
            raise OutputPermissionError(
                f"No write permission for directory: {parent}",
                hint="Choose a writable output location with --output",
            )
        if destination.exists() and not os.access(destination, os.W_OK):
            raise OutputPermissionError(f"No write permission for file: {destination}")

    def write_atomic(self, destination: Path, data: bytes) -> None:
        """Replace ``destination`` with ``data`` atomically."""
        backup = None
        if self.settings.enable_backup and destination.exists():
            backup = self._create_backup(destination)

        temp = sibling_path(destination, TEMP_PATTERN)
        try:
            self._write_temporary(temp, data)
            os.replace(temp, destination)
        except OSError as e:
            if backup is not None:
                self._restore(backup, destination)
                backup = None
            raise AtomicWriteError(f"Atomic write to {destination} failed: {e}") from e
        finally:
            if temp.exists():
                try:
                    temp.unlink()
                except OSError as e:
                    log.warning("Could not remove temporary file %s: %s", temp, e)

        if backup is not None:
            try:
                backup.unlink()
            except OSError as e:
                log.warning("Could not remove backup %s: %s", backup, e)

    def _write_temporary(self, temp: Path, data: bytes) -> None:
        with open(temp, "xb") as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())

    def _create_backup(self, destination: Path) -> Path:
        backup = sibling_path(destination, BACKUP_PATTERN)
        try:
            shutil.copy2(destination, backup)
        except OSError as e:
            raise BackupFailedError(f"Failed to back up {destination}: {e}") from e
        log.debug("Created backup %s", backup)
        return backup

    def _restore(self, backup: Path, destination: Path) -> None:
        try:
            os.replace(backup, destination)
            log.info("Restored %s from backup after write failure", destination)
        except OSError as e:
            log.error("Failed to restore %s from backup %s: %s", destination, backup, e)


def confirmation_message(path: Path, size: int, report: ValidationReport) -> str:
    if report.status is ValidationStatus.PASSED:
        return f"Transcript saved to {path} ({format_size(size)})"
    if report.status is ValidationStatus.WARNING:
        return f"Transcript saved to {path} ({format_size(size)}) with warnings: {'; '.join(report.issues)}"
    return f"Transcript written to {path} but validation failed: {'; '.join(report.issues)}"
