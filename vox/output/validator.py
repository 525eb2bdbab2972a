"""
vox.output.validator - Post-write validation of output artifacts.

Re-reads a written file and checks format compliance, integrity
against the content that was meant to be written, and text encoding.
"""

from __future__ import annotations

import hashlib
import json
import re
import time
import unicodedata
from pathlib import Path

from vox.logging import get_logger
from vox.models import (
    EncodingValidation,
    FormatValidation,
    IntegrityValidation,
    ValidationReport,
    ValidationStatus,
)

log = get_logger("output")

MAX_TEXT_LINE_LENGTH = 1000
MIN_EXPECTED_SIZE = 10
SRT_TIMING_RE = re.compile(r"^\d{2}:\d{2}:\d{2},\d{3} --> \d{2}:\d{2}:\d{2},\d{3}$")
JSON_EXPECTED_KEYS = ("text", "language", "confidence", "duration", "segments", "engine", "processing_time")
ALLOWED_CONTROL_CHARS = {"\n", "\r", "\t"}


class OutputValidator:
    def validate(self, path: Path, fmt: str, expected: str | None = None) -> ValidationReport:
        """Validate a written artifact.

        Args:
            path: File to check
            fmt: Output format (txt, srt, json); other formats skip format checks
            expected: Content that was written, for integrity comparison

        Returns:
            ValidationReport with per-check status and the aggregate status

        Raises:
            OSError: If the file cannot be read
        """
        started = time.monotonic()
        data = path.read_bytes()
        encoding = self.validate_encoding(data)
        text = data.decode("utf-8", errors="replace")
        report = ValidationReport(
            path=path,
            format_check=self.validate_format(text, fmt),
            integrity=self.validate_integrity(data, expected),
            encoding=encoding,
            validation_time=time.monotonic() - started,
        )
        log.debug("Validated %s: %s", path, report.status.value)
        return report

    def validate_format(self, content: str, fmt: str) -> FormatValidation:
        if fmt == "txt":
            issues, status = _check_text(content)
        elif fmt == "srt":
            issues, status = _check_srt(content)
        elif fmt == "json":
            issues, status = _check_json(content)
        else:
            issues, status = [], ValidationStatus.PASSED
        return FormatValidation(status=status, format=fmt, issues=issues)

    def validate_integrity(self, data: bytes, expected: str | None = None) -> IntegrityValidation:
        issues = []
        status = ValidationStatus.PASSED
        size = len(data)
        if size == 0:
            issues.append("File is empty")
            status = ValidationStatus.FAILED
        elif size < MIN_EXPECTED_SIZE:
            issues.append(f"File size is suspiciously small: {size} bytes")
            status = ValidationStatus.WARNING

        matches = True
        if expected is not None:
            matches = data == expected.encode("utf-8")
            if not matches:
                issues.append("Written content differs from the content that was produced")
                status = ValidationStatus.FAILED

        return IntegrityValidation(
            status=status,
            size=size,
            sha256=hashlib.sha256(data).hexdigest(),
            content_matches=matches,
            issues=issues,
        )

    def validate_encoding(self, data: bytes) -> EncodingValidation:
        try:
            content = data.decode("utf-8")
        except UnicodeDecodeError as e:
            return EncodingValidation(
                status=ValidationStatus.FAILED,
                issues=[f"Invalid UTF-8 at byte {e.start}"],
            )
        if any(
            unicodedata.category(ch) == "Cc" and ch not in ALLOWED_CONTROL_CHARS for ch in content
        ):
            return EncodingValidation(
                status=ValidationStatus.WARNING,
                issues=["Invalid control characters detected"],
            )
        return EncodingValidation(status=ValidationStatus.PASSED)


def _check_text(content: str) -> tuple[list[str], ValidationStatus]:
    if not content.strip():
        return ["Text content is empty"], ValidationStatus.FAILED
    long_lines = sum(1 for line in content.splitlines() if len(line) > MAX_TEXT_LINE_LENGTH)
    if long_lines:
        return [
            f"{long_lines} line(s) exceed {MAX_TEXT_LINE_LENGTH} characters"
        ], ValidationStatus.WARNING
    return [], ValidationStatus.PASSED


def _check_srt(content: str) -> tuple[list[str], ValidationStatus]:
    blocks = [b for b in re.split(r"\r?\n\s*\r?\n", content.strip()) if b.strip()]
    if not blocks:
        return ["SRT content is empty"], ValidationStatus.FAILED

    issues = []
    status = ValidationStatus.PASSED
    for position, block in enumerate(blocks, start=1):
        lines = block.strip().splitlines()
        if len(lines) < 3:
            issues.append(f"Block {position} is incomplete")
            status = ValidationStatus.FAILED
            continue
        if not lines[0].strip().isdigit():
            issues.append(f"Block {position} has an invalid sequence number: {lines[0]!r}")
            status = ValidationStatus.FAILED
        elif int(lines[0]) != position and status is ValidationStatus.PASSED:
            issues.append(f"Block {position} is numbered {lines[0]}")
            status = ValidationStatus.WARNING
        if not SRT_TIMING_RE.match(lines[1].strip()):
            issues.append(f"Block {position} has an invalid timestamp line: {lines[1]!r}")
            status = ValidationStatus.FAILED
    return issues, status


def _check_json(content: str) -> tuple[list[str], ValidationStatus]:
    if not content.strip():
        return ["JSON content is empty"], ValidationStatus.FAILED
    try:
        data = json.loads(content)
    except json.JSONDecodeError as e:
        return [f"Invalid JSON format: {e}"], ValidationStatus.FAILED
    if not isinstance(data, dict):
        return ["JSON root is not an object"], ValidationStatus.FAILED
    missing = [k for k in JSON_EXPECTED_KEYS if k not in data]
    if missing:
        return [f"Missing expected keys: {', '.join(missing)}"], ValidationStatus.WARNING
    return [], ValidationStatus.PASSED
