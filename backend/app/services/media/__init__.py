"""
Media processing: probing, preview frames, quality selection, HLS.

Example:
    from app.services.media import FFmpegTool, HlsTranscoder

    tool = FFmpegTool.from_settings(settings)
    metadata = await tool.probe(source)
    result = await HlsTranscoder(tool).transcode(source, video_dir, metadata)
"""

from .ffmpeg import FFmpegTool, MediaTool
from .frames import FrameExtractor, poster_timestamp, thumbnail_timestamp
from .hls import (
    HlsTranscoder,
    build_master_playlist,
    calculate_transcode_progress,
)
from .probe import is_codec_supported, parse_frame_rate, parse_probe_output
from .quality import QUALITY_PRESETS, build_presets, get_preset, select_qualities

__all__ = [
    # Tools
    "MediaTool",
    "FFmpegTool",
    # Probe
    "parse_probe_output",
    "parse_frame_rate",
    "is_codec_supported",
    # Frames
    "FrameExtractor",
    "thumbnail_timestamp",
    "poster_timestamp",
    # Qualities
    "QUALITY_PRESETS",
    "select_qualities",
    "get_preset",
    "build_presets",
    # HLS
    "HlsTranscoder",
    "build_master_playlist",
    "calculate_transcode_progress",
]
