"""
ffmpeg/ffprobe invocation.

MediaTool is the narrow interface the pipeline depends on. FFmpegTool is
the production implementation; blocking subprocess calls run in a worker
thread so one upload's encode never stalls the event loop.
"""

import asyncio
import logging
import subprocess
from abc import ABC, abstractmethod
from pathlib import Path

from app.config import Settings
from app.models.schemas import QualityPreset, VideoMetadata
from app.services.errors import MediaToolError
from app.services.media.probe import parse_probe_output
from app.utils.media_utils import format_timestamp

logger = logging.getLogger(__name__)

STDERR_TAIL = 500


class MediaTool(ABC):
    """Operations the pipeline needs from external media tools."""

    @abstractmethod
    async def verify(self) -> dict[str, str]:
        """Check tools are runnable. Returns tool -> version line."""

    @abstractmethod
    async def probe(self, media_path: Path) -> VideoMetadata:
        """Extract technical metadata."""

    @abstractmethod
    async def validate(self, media_path: Path) -> None:
        """Decode the first frames to reject corrupt input."""

    @abstractmethod
    async def extract_frame(
        self,
        input_path: Path,
        output_path: Path,
        timestamp: float,
        width: int,
        height: int,
        quality: int,
        pad: bool,
    ) -> None:
        """Write a single scaled JPEG frame."""

    @abstractmethod
    async def transcode_hls(
        self,
        input_path: Path,
        output_dir: Path,
        preset: QualityPreset,
        segment_duration: int,
    ) -> None:
        """Encode one rendition into output_dir/index.m3u8 + segments."""


# ═══════════════════════════════════════════════════════════════════════════
# Command builders
# ═══════════════════════════════════════════════════════════════════════════


def scale_pad_filter(width: int, height: int) -> str:
    """Scale to fit WxH preserving aspect ratio, letterbox to exact size."""
    return (
        f"scale={width}:{height}:force_original_aspect_ratio=decrease,"
        f"pad={width}:{height}:(ow-iw)/2:(oh-ih)/2"
    )


def scale_fit_filter(width: int, height: int) -> str:
    """Scale down to fit within WxH, never up, without padding."""
    return (
        f"scale='min({width},iw)':'min({height},ih)'"
        f":force_original_aspect_ratio=decrease"
    )


def jpeg_qscale(quality: int) -> int:
    """Map a 0-100 quality to ffmpeg's mjpeg qscale (2 best, 31 worst)."""
    quality = min(max(quality, 0), 100)
    return min(max(round(31 - quality / 100 * 29), 2), 31)


def build_probe_command(ffprobe_path: str, media_path: Path) -> list[str]:
    return [
        ffprobe_path,
        "-v", "error",
        "-print_format", "json",
        "-show_format",
        "-show_streams",
        str(media_path),
    ]


def build_validate_command(ffmpeg_path: str, media_path: Path) -> list[str]:
    return [
        ffmpeg_path,
        "-v", "error",
        "-i", str(media_path),
        "-f", "null",
        "-frames:v", "10",
        "-",
    ]


def build_frame_command(
    ffmpeg_path: str,
    input_path: Path,
    output_path: Path,
    timestamp: float,
    width: int,
    height: int,
    quality: int,
    pad: bool,
) -> list[str]:
    video_filter = scale_pad_filter(width, height) if pad else scale_fit_filter(width, height)
    return [
        ffmpeg_path,
        "-ss", format_timestamp(timestamp),
        "-i", str(input_path),
        "-vframes", "1",
        "-vf", video_filter,
        "-q:v", str(jpeg_qscale(quality)),
        "-y",
        str(output_path),
    ]


def build_hls_command(
    ffmpeg_path: str,
    input_path: Path,
    output_dir: Path,
    preset: QualityPreset,
    segment_duration: int,
    threads: int,
) -> list[str]:
    return [
        ffmpeg_path,
        "-i", str(input_path),
        # Video
        "-c:v", "libx264",
        "-preset", "medium",
        "-profile:v", preset.profile,
        "-level", preset.level,
        "-vf", scale_pad_filter(preset.width, preset.height),
        "-b:v", f"{preset.video_bitrate}k",
        "-maxrate", f"{preset.max_bitrate}k",
        "-bufsize", f"{preset.buffer_size}k",
        # Audio
        "-c:a", "aac",
        "-b:a", f"{preset.audio_bitrate}k",
        "-ar", "44100",
        "-ac", "2",
        # HLS
        "-f", "hls",
        "-hls_time", str(segment_duration),
        "-hls_playlist_type", "vod",
        "-hls_segment_type", "mpegts",
        "-hls_segment_filename", str(output_dir / "segment_%03d.ts"),
        "-threads", str(threads),
        "-y",
        str(output_dir / "index.m3u8"),
    ]


# ═══════════════════════════════════════════════════════════════════════════
# Implementation
# ═══════════════════════════════════════════════════════════════════════════


class FFmpegTool(MediaTool):
    """
    MediaTool backed by the ffmpeg and ffprobe binaries.

    Example:
        tool = FFmpegTool.from_settings(settings)
        metadata = await tool.probe(Path("/data/temp/abc.tmp"))
    """

    def __init__(
        self,
        ffmpeg_path: str = "ffmpeg",
        ffprobe_path: str = "ffprobe",
        threads: int = 4,
        probe_timeout: int = 30,
        frame_timeout: int = 120,
        transcode_timeout: int = 3600,
    ):
        self.ffmpeg_path = ffmpeg_path
        self.ffprobe_path = ffprobe_path
        self.threads = threads
        self.probe_timeout = probe_timeout
        self.frame_timeout = frame_timeout
        self.transcode_timeout = transcode_timeout

    @classmethod
    def from_settings(cls, settings: Settings) -> "FFmpegTool":
        return cls(
            ffmpeg_path=settings.ffmpeg_path,
            ffprobe_path=settings.ffprobe_path,
            threads=settings.ffmpeg_threads,
            probe_timeout=settings.ffprobe_timeout,
            frame_timeout=settings.frame_timeout,
            transcode_timeout=settings.ffmpeg_timeout,
        )

    async def verify(self) -> dict[str, str]:
        versions = {}
        for binary in (self.ffmpeg_path, self.ffprobe_path):
            result = await asyncio.to_thread(
                self._run, [binary, "-version"], 10
            )
            versions[binary] = result.stdout.split("\n", 1)[0].strip()
        logger.info(f"Media tools available: {versions}")
        return versions

    async def probe(self, media_path: Path) -> VideoMetadata:
        cmd = build_probe_command(self.ffprobe_path, media_path)
        result = await asyncio.to_thread(self._run, cmd, self.probe_timeout)
        metadata = parse_probe_output(result.stdout, media_path)
        logger.info(
            f"Probed {media_path.name}: {metadata.resolution}, "
            f"{metadata.duration:.1f}s, {metadata.video_codec}/{metadata.audio_codec}"
        )
        return metadata

    async def validate(self, media_path: Path) -> None:
        cmd = build_validate_command(self.ffmpeg_path, media_path)
        result = await asyncio.to_thread(self._run, cmd, self.probe_timeout)
        if result.stderr.strip():
            logger.warning(
                f"Validation warnings for {media_path.name}: {result.stderr[:STDERR_TAIL]}"
            )

    async def extract_frame(
        self,
        input_path: Path,
        output_path: Path,
        timestamp: float,
        width: int,
        height: int,
        quality: int,
        pad: bool,
    ) -> None:
        output_path.parent.mkdir(parents=True, exist_ok=True)
        cmd = build_frame_command(
            self.ffmpeg_path, input_path, output_path,
            timestamp, width, height, quality, pad,
        )
        await asyncio.to_thread(self._run, cmd, self.frame_timeout)

    async def transcode_hls(
        self,
        input_path: Path,
        output_dir: Path,
        preset: QualityPreset,
        segment_duration: int,
    ) -> None:
        output_dir.mkdir(parents=True, exist_ok=True)
        cmd = build_hls_command(
            self.ffmpeg_path, input_path, output_dir,
            preset, segment_duration, self.threads,
        )
        logger.debug(f"ffmpeg {preset.name}: {' '.join(cmd)}")
        await asyncio.to_thread(self._run, cmd, self.transcode_timeout)

    def _run(self, cmd: list[str], timeout: int) -> subprocess.CompletedProcess:
        """
        Run a media tool command.

        Raises:
            MediaToolError: Binary missing, timeout, or non-zero exit code
        """
        tool = Path(cmd[0]).name
        try:
            result = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                timeout=timeout,
            )
        except FileNotFoundError as e:
            raise MediaToolError(tool, f"executable not found: {cmd[0]}") from e
        except subprocess.TimeoutExpired as e:
            raise MediaToolError(tool, f"timed out after {timeout}s") from e

        if result.returncode != 0:
            stderr_tail = result.stderr[-STDERR_TAIL:]
            logger.error(f"{tool} failed (code {result.returncode}): {stderr_tail}")
            raise MediaToolError(
                tool,
                f"exited with code {result.returncode}",
                returncode=result.returncode,
                stderr=stderr_tail,
            )

        return result
