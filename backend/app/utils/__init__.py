"""
Shared utilities for the video pipeline.

Modules:
    media_utils: Extension checks, slugs, timestamp/size/duration formatting
"""

from app.utils.media_utils import (
    directory_size,
    format_bytes,
    format_duration,
    format_timestamp,
    generate_slug,
    get_extension,
    is_safe_filename,
    is_video_file,
    original_extension,
)

__all__ = [
    "directory_size",
    "format_bytes",
    "format_duration",
    "format_timestamp",
    "generate_slug",
    "get_extension",
    "is_safe_filename",
    "is_video_file",
    "original_extension",
]
