"""
vox.output - Formatting and safe persistence of transcripts.

Pipeline Stage 3: render the transcript, write it atomically next to an
optional backup of the previous file, and validate what landed on disk.
"""

from __future__ import annotations
