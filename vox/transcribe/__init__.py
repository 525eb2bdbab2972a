"""
vox.transcribe - Speech-to-text with quality arbitration.

Pipeline Stage 2: try on-device Whisper engines over an ordered list of
candidate languages, accept the first result that meets the quality bar
(keeping the best one otherwise), and fall back to the cloud Whisper API
when no local candidate produced anything.
"""

from __future__ import annotations
