"""
vox.validation - Dependency checks and input validation.

Validates the environment (FFmpeg, optional Python backends) and input
files before processing.
"""

from __future__ import annotations

import importlib.util
import shutil
import subprocess
from pathlib import Path
from typing import Any

from vox.exceptions import DependencyError, InputError

FFMPEG_INSTALL_HINT = "Install with: brew install ffmpeg (macOS) or apt install ffmpeg (Linux)"

COMMON_FFMPEG_PATHS = (
    "/opt/homebrew/bin/ffmpeg",
    "/usr/local/bin/ffmpeg",
    "/usr/bin/ffmpeg",
)

BACKEND_MODULES = {
    "av": "av",
    "faster": "faster_whisper",
    "mlx": "mlx_whisper",
}


def find_ffmpeg(configured: str | None = None) -> str:
    """Locate the ffmpeg executable.

    Args:
        configured: Explicit path from configuration, checked first

    Returns:
        Path to an ffmpeg executable

    Raises:
        DependencyError: If FFmpeg cannot be found
    """
    if configured:
        if Path(configured).is_file():
            return configured
        raise DependencyError("ffmpeg", f"Configured FFmpeg not found: {configured}", FFMPEG_INSTALL_HINT)

    found = shutil.which("ffmpeg")
    if found:
        return found

    for candidate in COMMON_FFMPEG_PATHS:
        if Path(candidate).is_file():
            return candidate

    raise DependencyError("ffmpeg", "FFmpeg not found in PATH", FFMPEG_INSTALL_HINT)


def check_ffmpeg(configured: str | None = None) -> dict[str, str]:
    """Check that FFmpeg is installed and get its version.

    Returns:
        Dict with 'ffmpeg_path' and 'ffmpeg_version'

    Raises:
        DependencyError: If FFmpeg not found
    """
    ffmpeg_path = find_ffmpeg(configured)
    result = {"ffmpeg_path": ffmpeg_path}

    try:
        proc = subprocess.run(
            [ffmpeg_path, "-version"],
            capture_output=True,
            text=True,
            timeout=5,
        )
        version_line = proc.stdout.split("\n")[0]
        result["ffmpeg_version"] = version_line.split()[2] if version_line else "unknown"
    except (subprocess.TimeoutExpired, IndexError, OSError):
        result["ffmpeg_version"] = "unknown"

    return result


def backend_available(name: str) -> bool:
    """Whether an optional backend module (av, faster, mlx) is importable."""
    module = BACKEND_MODULES.get(name, name)
    return importlib.util.find_spec(module) is not None


def check_disk_space(path: Path, required_bytes: int) -> dict[str, Any]:
    """Check if there's enough disk space at the given path.

    Args:
        path: Path to check (nearest existing ancestor is used)
        required_bytes: Required space in bytes

    Returns:
        Dict with 'available_bytes', 'required_bytes', 'sufficient'

    Raises:
        OSError: If free space cannot be determined
    """
    check_path = path
    while not check_path.exists() and check_path != check_path.parent:
        check_path = check_path.parent

    stat = shutil.disk_usage(check_path)
    return {
        "available_bytes": stat.free,
        "required_bytes": required_bytes,
        "sufficient": stat.free >= required_bytes,
    }


def validate_input_file(path: Path) -> dict[str, Any]:
    """Validate an input media file exists and is readable.

    Args:
        path: Path to video or audio file

    Returns:
        Dict with 'path' and 'size_bytes'

    Raises:
        InputError: If the file doesn't exist, isn't a file or is empty
    """
    if not path.exists():
        raise InputError(f"File not found: {path}", hint="Check the input path")

    if not path.is_file():
        raise InputError(f"Not a file: {path}")

    size = path.stat().st_size
    if size == 0:
        raise InputError(f"Input file is empty: {path}")

    return {"path": str(path), "size_bytes": size}
