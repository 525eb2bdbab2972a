"""
vox.extract - Audio extraction from video files.

Pipeline Stage 1: produce an AAC/M4A audio file suitable for speech
recognition. The in-process PyAV exporter is tried first; FFmpeg is the
fallback when it fails or produces audio that fails the readiness policy.
"""

from __future__ import annotations
