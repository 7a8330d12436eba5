"""
Media utilities for video file handling.

Provides common helpers used across the pipeline:
- Supported extension checks
- Slug generation for storage paths
- Human-readable formatting of timestamps, sizes and durations
"""

import logging
import re
import uuid
from pathlib import Path

logger = logging.getLogger(__name__)

# Supported upload extensions (without dot)
VIDEO_EXTENSIONS = frozenset({
    "mp4", "mov", "avi", "mkv", "webm", "flv", "mpeg", "mpg", "3gp", "m4v",
})

DEFAULT_EXTENSION = "mp4"
SLUG_MAX_LENGTH = 50

_KB = 1024
_MB = _KB * 1024
_GB = _MB * 1024


def get_extension(filename: str) -> str:
    """Get lowercase extension without dot, or "" if none."""
    return Path(filename).suffix.lower().lstrip(".")


def is_video_file(filename: str | Path) -> bool:
    """Check if file has a supported video extension.

    Args:
        filename: File name or path

    Returns:
        True if the extension is supported
    """
    return get_extension(str(filename)) in VIDEO_EXTENSIONS


def original_extension(filename: str) -> str:
    """Extension used for the stored original, falling back to mp4."""
    return get_extension(filename) or DEFAULT_EXTENSION


def generate_slug(title: str) -> str:
    """Generate a unique URL-safe slug from a title.

    Lowercases, keeps a-z and 0-9, maps space/dash/underscore to "-" and
    anything else to "_", collapses dashes, truncates to 50 characters and
    appends an 8-character random suffix.

    Args:
        title: Video title

    Returns:
        Slug like "my-first-video-1a2b3c4d"
    """
    chars = []
    for c in title.lower():
        if ("a" <= c <= "z") or ("0" <= c <= "9"):
            chars.append(c)
        elif c in " -_":
            chars.append("-")
        else:
            chars.append("_")

    slug = "-".join(part for part in "".join(chars).split("-") if part)
    slug = slug[:SLUG_MAX_LENGTH].rstrip("-") or "video"

    return f"{slug}-{uuid.uuid4().hex[:8]}"


def format_timestamp(seconds: float) -> str:
    """Format seconds as HH:MM:SS.mmm for ffmpeg -ss."""
    seconds = max(seconds, 0.0)
    hours = int(seconds // 3600)
    minutes = int((seconds % 3600) // 60)
    secs = seconds % 60
    return f"{hours:02d}:{minutes:02d}:{secs:06.3f}"


def format_bytes(size: int) -> str:
    """Format byte count: "512 bytes", "1.00 KB", "1.50 MB", "2.00 GB"."""
    if size >= _GB:
        return f"{size / _GB:.2f} GB"
    if size >= _MB:
        return f"{size / _MB:.2f} MB"
    if size >= _KB:
        return f"{size / _KB:.2f} KB"
    return f"{size} bytes"


def format_duration(seconds: float) -> str:
    """Format duration: "30.0s", "1m 30s", "1h 1m"."""
    whole = int(seconds)
    if whole >= 3600:
        return f"{whole // 3600}h {(whole % 3600) // 60}m"
    if whole >= 60:
        return f"{whole // 60}m {whole % 60}s"
    return f"{seconds:.1f}s"


def directory_size(path: Path) -> int:
    """Total size in bytes of all files under path (0 if missing)."""
    if not path.exists():
        return 0
    return sum(f.stat().st_size for f in path.rglob("*") if f.is_file())


_SAFE_FILENAME = re.compile(r"^[\w\-. ]+$")


def is_safe_filename(filename: str) -> bool:
    """Reject path separators and parent references in user-supplied names."""
    return bool(_SAFE_FILENAME.match(filename)) and filename not in (".", "..")
