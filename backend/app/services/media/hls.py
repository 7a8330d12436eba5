"""
HLS adaptive-bitrate transcoding.

Encodes every applicable quality preset into its own sub-playlist and
writes a master playlist that references the renditions that succeeded.

Output layout:
    {video_dir}/master.m3u8
    {video_dir}/{quality}/index.m3u8
    {video_dir}/{quality}/segment_NNN.ts
"""

import asyncio
import logging
import time
from pathlib import Path
from typing import Awaitable, Callable

from app.models.schemas import HlsResult, QualityPreset, QualityResult, VideoMetadata
from app.services.cleanup import cleanup_directory
from app.services.errors import HlsTranscodeError, MediaToolError
from app.services.media.ffmpeg import MediaTool
from app.services.media.quality import QUALITY_PRESETS, select_qualities
from app.utils.media_utils import directory_size

logger = logging.getLogger(__name__)

MASTER_PLAYLIST = "master.m3u8"
VARIANT_PLAYLIST = "index.m3u8"

# Signature: (progress_percent, message) -> None
TranscodeProgressCallback = Callable[[int, str], Awaitable[None]]

# Signature: (quality_result) -> None
QualityResultCallback = Callable[[QualityResult], Awaitable[None]]


def calculate_transcode_progress(
    completed: int,
    total: int,
    start_progress: int,
    end_progress: int,
) -> int:
    """
    Map completed renditions onto a progress range.

    Example:
        calculate_transcode_progress(2, 4, 50, 90)  # 70
    """
    if total == 0:
        return start_progress
    span = end_progress - start_progress
    return round(start_progress + completed * span / total)


def build_master_playlist(presets: list[QualityPreset]) -> str:
    """Render master playlist text for the given presets, in order."""
    lines = ["#EXTM3U", "#EXT-X-VERSION:3"]
    for preset in presets:
        lines.append(
            f"#EXT-X-STREAM-INF:BANDWIDTH={preset.bandwidth},"
            f"RESOLUTION={preset.resolution}"
        )
        lines.append(f"{preset.name}/{VARIANT_PLAYLIST}")
    return "\n".join(lines) + "\n"


def count_segments(quality_dir: Path) -> int:
    return sum(1 for _ in quality_dir.glob("*.ts"))


class HlsTranscoder:
    """
    Transcodes a source video into multi-quality HLS.

    Example:
        transcoder = HlsTranscoder(tool, segment_duration=6)
        result = await transcoder.transcode(source, video_dir, metadata)
        print(result.qualities)  # ["720p", "480p", "360p"]
    """

    def __init__(
        self,
        tool: MediaTool,
        segment_duration: int = 6,
        presets: tuple[QualityPreset, ...] = QUALITY_PRESETS,
        progress_start: int = 55,
        progress_end: int = 85,
    ):
        self.tool = tool
        self.segment_duration = segment_duration
        self.presets = presets
        self.progress_start = progress_start
        self.progress_end = progress_end

    async def transcode(
        self,
        input_path: Path,
        video_dir: Path,
        metadata: VideoMetadata,
        progress_callback: TranscodeProgressCallback | None = None,
        result_callback: QualityResultCallback | None = None,
    ) -> HlsResult:
        """
        Encode all applicable qualities and write the master playlist.

        A failing quality is logged and skipped. The stage fails only if
        no quality could be produced.

        Args:
            input_path: Source video
            video_dir: Destination directory for this video
            metadata: Source metadata (used for quality selection)
            progress_callback: Called with overall progress after each quality
            result_callback: Called with each quality's outcome, including
                failures, before the stage result is known

        Returns:
            HlsResult with per-quality outcomes

        Raises:
            HlsTranscodeError: Source too small, or every quality failed
        """
        selected = select_qualities(metadata.width, metadata.height, self.presets)
        if not selected:
            raise HlsTranscodeError(
                f"Source video resolution ({metadata.resolution}) "
                f"is too small for any quality preset"
            )

        video_dir.mkdir(parents=True, exist_ok=True)
        logger.info(
            f"Transcoding {input_path.name} to HLS: {[p.name for p in selected]}"
        )

        results: list[QualityResult] = []
        succeeded: list[QualityPreset] = []

        for index, preset in enumerate(selected):
            result = await self._transcode_quality(input_path, video_dir, preset)
            results.append(result)
            if result.success:
                succeeded.append(preset)

            if result_callback is not None:
                try:
                    await result_callback(result)
                except Exception as e:
                    logger.warning(f"Quality result callback error: {e}")

            progress = calculate_transcode_progress(
                index + 1, len(selected), self.progress_start, self.progress_end
            )
            await self._report(
                progress_callback,
                progress,
                f"Transcoded {preset.name} ({index + 1}/{len(selected)})",
            )

        if not succeeded:
            raise HlsTranscodeError("All quality transcoding attempts failed")

        master_path = video_dir / MASTER_PLAYLIST
        master_path.write_text(build_master_playlist(succeeded), encoding="utf-8")

        failed = [r.quality for r in results if not r.success]
        if failed:
            logger.warning(f"HLS partially complete, failed qualities: {failed}")
        logger.info(
            f"HLS transcoding complete: {len(succeeded)}/{len(selected)} qualities"
        )

        return HlsResult(master_playlist=master_path, results=results)

    async def _transcode_quality(
        self,
        input_path: Path,
        video_dir: Path,
        preset: QualityPreset,
    ) -> QualityResult:
        """Encode one preset. Never raises for tool failures."""
        quality_dir = video_dir / preset.name
        started = time.monotonic()

        try:
            await self.tool.transcode_hls(
                input_path, quality_dir, preset, self.segment_duration
            )

            playlist = quality_dir / VARIANT_PLAYLIST
            if not playlist.exists():
                raise FileNotFoundError(f"Playlist not created: {playlist}")

            segment_count = count_segments(quality_dir)
            bytes_written = await asyncio.to_thread(directory_size, quality_dir)

        except (MediaToolError, OSError) as e:
            elapsed = time.monotonic() - started
            logger.warning(f"Quality {preset.name} failed after {elapsed:.1f}s: {e}")
            try:
                await cleanup_directory(quality_dir)
            except OSError as cleanup_error:
                logger.warning(
                    f"Could not remove partial output {quality_dir}: {cleanup_error}"
                )
            return QualityResult(
                quality=preset.name,
                success=False,
                duration_secs=elapsed,
                error=str(e),
            )

        elapsed = time.monotonic() - started
        logger.info(
            f"Quality {preset.name} done in {elapsed:.1f}s "
            f"({segment_count} segments, {bytes_written} bytes)"
        )
        return QualityResult(
            quality=preset.name,
            success=True,
            duration_secs=elapsed,
            bytes_written=bytes_written,
            segment_count=segment_count,
        )

    async def _report(
        self,
        callback: TranscodeProgressCallback | None,
        progress: int,
        message: str,
    ) -> None:
        if callback is None:
            return
        try:
            await callback(progress, message)
        except Exception as e:
            # Never fail due to callback error
            logger.warning(f"Transcode progress callback error: {e}")
