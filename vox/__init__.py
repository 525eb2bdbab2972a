"""
Vox - resilient audio extraction and transcription for video files.

Takes a video file and produces a validated transcript through a
three-stage pipeline: audio extraction (in-process, falling back to
FFmpeg) → transcription (on-device Whisper, falling back to the cloud
Whisper API) → atomic output write with backup and validation.
"""

__version__ = "0.1.0"
