"""
Thumbnail and poster extraction.
"""

import logging
from pathlib import Path

from app.config import Settings
from app.services.errors import MediaToolError, PosterError, ThumbnailError
from app.services.media.ffmpeg import MediaTool

logger = logging.getLogger(__name__)

THUMBNAIL_FILENAME = "thumbnail.jpg"
POSTER_FILENAME = "poster.jpg"


def _clamp_timestamp(duration: float, fraction: float, minimum: float) -> float:
    # Lower bound first, then keep one second before the end. Clips under
    # one second fall back to the first frame.
    timestamp = max(duration * fraction, minimum)
    timestamp = min(timestamp, duration - 1.0)
    return max(timestamp, 0.0)


def thumbnail_timestamp(duration: float) -> float:
    """10% into the video, at least 1s, at most 1s before the end."""
    return _clamp_timestamp(duration, 0.10, 1.0)


def poster_timestamp(duration: float) -> float:
    """25% into the video, at least 2s, at most 1s before the end."""
    return _clamp_timestamp(duration, 0.25, 2.0)


class FrameExtractor:
    """
    Generates preview images from a source video.

    Example:
        extractor = FrameExtractor(tool, settings)
        path = await extractor.generate_thumbnail(source, video_dir, 60.0)
    """

    def __init__(self, tool: MediaTool, settings: Settings):
        self.tool = tool
        self.settings = settings

    async def extract_frame(
        self,
        input_path: Path,
        output_path: Path,
        timestamp: float,
        width: int,
        height: int,
        quality: int,
        pad: bool = True,
    ) -> Path:
        """
        Extract one frame to output_path.

        Raises:
            MediaToolError: If the tool fails
            FileNotFoundError: If the tool succeeded but wrote nothing
        """
        output_path.parent.mkdir(parents=True, exist_ok=True)
        await self.tool.extract_frame(
            input_path, output_path, timestamp, width, height, quality, pad
        )
        if not output_path.exists():
            raise FileNotFoundError(f"Frame not created: {output_path}")
        return output_path

    async def generate_thumbnail(
        self,
        input_path: Path,
        video_dir: Path,
        duration: float,
    ) -> Path:
        """
        Generate a letterboxed thumbnail.

        Raises:
            ThumbnailError: If extraction fails
        """
        timestamp = thumbnail_timestamp(duration)
        output_path = video_dir / THUMBNAIL_FILENAME
        try:
            await self.extract_frame(
                input_path,
                output_path,
                timestamp,
                self.settings.thumbnail_width,
                self.settings.thumbnail_height,
                self.settings.thumbnail_quality,
                pad=True,
            )
        except (MediaToolError, OSError) as e:
            raise ThumbnailError(str(e), e)

        logger.info(f"Thumbnail generated at {timestamp:.2f}s: {output_path}")
        return output_path

    async def generate_poster(
        self,
        input_path: Path,
        video_dir: Path,
        duration: float,
    ) -> Path:
        """
        Generate an aspect-preserving poster, never upscaled.

        Raises:
            PosterError: If extraction fails
        """
        timestamp = poster_timestamp(duration)
        output_path = video_dir / POSTER_FILENAME
        try:
            await self.extract_frame(
                input_path,
                output_path,
                timestamp,
                self.settings.poster_width,
                self.settings.poster_height,
                self.settings.poster_quality,
                pad=False,
            )
        except (MediaToolError, OSError) as e:
            raise PosterError(str(e), e)

        logger.info(f"Poster generated at {timestamp:.2f}s: {output_path}")
        return output_path
