"""Tests for vox.utils module."""

from __future__ import annotations

from pathlib import Path

from vox.utils import format_duration, format_size, format_srt_timestamp, sibling_path


class TestFormatDuration:
    def test_seconds_only(self) -> None:
        assert format_duration(45.0) == "0:45"

    def test_minutes_and_seconds(self) -> None:
        assert format_duration(125.0) == "2:05"

    def test_hours_minutes_seconds(self) -> None:
        assert format_duration(3725.0) == "1:02:05"

    def test_zero(self) -> None:
        assert format_duration(0.0) == "0:00"

    def test_float_seconds(self) -> None:
        assert format_duration(90.7) == "1:30"


class TestFormatSize:
    def test_bytes(self) -> None:
        assert format_size(500) == "500.0 B"

    def test_kilobytes(self) -> None:
        assert format_size(1536) == "1.5 KB"

    def test_megabytes(self) -> None:
        assert format_size(1572864) == "1.5 MB"

    def test_gigabytes(self) -> None:
        assert format_size(1610612736) == "1.5 GB"


class TestFormatSrtTimestamp:
    def test_zero(self) -> None:
        assert format_srt_timestamp(0.0) == "00:00:00,000"

    def test_milliseconds(self) -> None:
        assert format_srt_timestamp(1.5) == "00:00:01,500"

    def test_hours(self) -> None:
        assert format_srt_timestamp(3723.042) == "01:02:03,042"

    def test_negative_clamped(self) -> None:
        assert format_srt_timestamp(-2.0) == "00:00:00,000"


class TestSiblingPath:
    def test_same_directory(self, tmp_path: Path) -> None:
        target = tmp_path / "out.txt"
        result = sibling_path(target, ".{name}.tmp.{token}")
        assert result.parent == tmp_path
        assert result.name.startswith(".out.txt.tmp.")

    def test_unique(self, tmp_path: Path) -> None:
        target = tmp_path / "out.txt"
        names = {sibling_path(target, "{name}.backup.{token}") for _ in range(50)}
        assert len(names) == 50
