"""Task handlers: ``async (params, runtime) -> result_data``."""

from __future__ import annotations

from .characters import extract_characters
from .frames import generate_frames
from .images import generate_image
from .script import generate_script
from .video import generate_video

__all__ = [
    "extract_characters",
    "generate_frames",
    "generate_image",
    "generate_script",
    "generate_video",
]
