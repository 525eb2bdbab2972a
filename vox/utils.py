"""
vox.utils - Shared utility functions.

Formatting helpers and collision-free sibling path generation.
"""

from __future__ import annotations

import secrets
from pathlib import Path


def format_duration(seconds: float) -> str:
    """Format seconds as HH:MM:SS or MM:SS.

    Args:
        seconds: Duration in seconds

    Returns:
        Formatted string (HH:MM:SS if >= 1 hour, otherwise MM:SS)
    """
    hours = int(seconds // 3600)
    minutes = int((seconds % 3600) // 60)
    secs = int(seconds % 60)
    if hours > 0:
        return f"{hours}:{minutes:02d}:{secs:02d}"
    return f"{minutes}:{secs:02d}"


def format_size(size: float) -> str:
    """Format a byte count in human-readable form."""
    for unit in ["B", "KB", "MB", "GB"]:
        if size < 1024:
            return f"{size:.1f} {unit}"
        size /= 1024
    return f"{size:.1f} TB"


def format_srt_timestamp(seconds: float) -> str:
    """Format seconds as an SRT timestamp (HH:MM:SS,mmm)."""
    total_ms = max(0, int(round(seconds * 1000)))
    hours, rem = divmod(total_ms, 3_600_000)
    minutes, rem = divmod(rem, 60_000)
    secs, millis = divmod(rem, 1000)
    return f"{hours:02d}:{minutes:02d}:{secs:02d},{millis:03d}"


def sibling_path(path: Path, pattern: str) -> Path:
    """Return a unique path next to ``path``.

    ``pattern`` is formatted with ``name`` (the file name) and ``token``
    (random hex), e.g. ``".{name}.tmp.{token}"``.
    """
    return path.with_name(pattern.format(name=path.name, token=secrets.token_hex(8)))
