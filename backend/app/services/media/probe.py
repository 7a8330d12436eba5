"""
ffprobe output parsing.

Turns the JSON printed by `ffprobe -print_format json -show_format
-show_streams` into a VideoMetadata instance.
"""

import json
import logging
from pathlib import Path
from typing import Any

from app.models.schemas import VideoMetadata
from app.services.errors import MetadataError

logger = logging.getLogger(__name__)

DEFAULT_FPS = 30.0

SUPPORTED_CODECS = frozenset({
    "h264", "avc", "h265", "hevc", "vp8", "vp9", "av1", "mpeg4",
})


def parse_frame_rate(value: str | None) -> float | None:
    """Parse an ffprobe rate like "30000/1001" or "25".

    Returns None for missing, malformed or zero-denominator values.
    """
    if not value:
        return None

    if "/" in value:
        num, _, den = value.partition("/")
        try:
            numerator = float(num)
            denominator = float(den)
        except ValueError:
            return None
        if denominator <= 0:
            return None
        return numerator / denominator

    try:
        return float(value)
    except ValueError:
        return None


def is_codec_supported(codec: str) -> bool:
    """Check whether a video codec is widely playable."""
    return codec.lower() in SUPPORTED_CODECS


def _to_int(value: Any) -> int | None:
    if value is None:
        return None
    try:
        return int(float(value))
    except (TypeError, ValueError):
        return None


def parse_probe_output(raw: str | dict, media_path: Path) -> VideoMetadata:
    """
    Build VideoMetadata from ffprobe JSON output.

    Args:
        raw: ffprobe stdout (JSON text) or already decoded dictionary
        media_path: Probed file, used for the size fallback

    Returns:
        Parsed metadata

    Raises:
        MetadataError: If no video stream, dimensions or duration are present
    """
    if isinstance(raw, str):
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            raise MetadataError(f"Invalid ffprobe output: {e}", e)
    else:
        data = raw

    streams = data.get("streams") or []
    fmt = data.get("format") or {}

    video_stream = next(
        (s for s in streams if s.get("codec_type") == "video"), None
    )
    if video_stream is None:
        raise MetadataError("No video stream found")

    audio_stream = next(
        (s for s in streams if s.get("codec_type") == "audio"), None
    )

    duration_raw = fmt.get("duration")
    if duration_raw is None:
        raise MetadataError("Duration not found")
    try:
        duration = float(duration_raw)
    except (TypeError, ValueError) as e:
        raise MetadataError(f"Invalid duration: {duration_raw!r}", e)

    width = _to_int(video_stream.get("width"))
    height = _to_int(video_stream.get("height"))
    if width is None:
        raise MetadataError("Width not found")
    if height is None:
        raise MetadataError("Height not found")

    fps = parse_frame_rate(video_stream.get("r_frame_rate"))
    if fps is None:
        fps = parse_frame_rate(video_stream.get("avg_frame_rate"))
    if fps is None:
        logger.debug(f"Frame rate unavailable for {media_path.name}, using {DEFAULT_FPS}")
        fps = DEFAULT_FPS

    file_size = _to_int(fmt.get("size"))
    if file_size is None:
        file_size = media_path.stat().st_size if media_path.exists() else 0

    return VideoMetadata(
        duration=duration,
        width=width,
        height=height,
        fps=fps,
        video_codec=video_stream.get("codec_name") or "unknown",
        audio_codec=audio_stream.get("codec_name") if audio_stream else None,
        bitrate=_to_int(fmt.get("bit_rate")),
        file_size=file_size,
        format=fmt.get("format_name") or "unknown",
    )
