"""
Storage layout for videos and temporary uploads.

Layout:
    {videos_dir}/public/{slug}/...
    {videos_dir}/private/{slug}/...
    {temp_dir}/{upload_id}.tmp
"""

import asyncio
import logging
import shutil
from pathlib import Path

from app.config import Settings
from app.services.errors import StorageError

logger = logging.getLogger(__name__)

STORAGE_URL_PREFIX = "/storage/videos"


def visibility_dir(is_public: bool) -> str:
    return "public" if is_public else "private"


class StorageManager:
    """
    Resolves storage paths and relocates files.

    Example:
        storage = StorageManager(settings)
        storage.initialize()
        video_dir = storage.video_dir("my-video-1a2b3c4d", is_public=True)
    """

    def __init__(self, settings: Settings):
        self.videos_dir = settings.videos_dir
        self.temp_dir = settings.temp_dir
        self.inbox_dir = settings.inbox_dir
        self.max_file_size = settings.max_file_size

    def initialize(self) -> None:
        """Create the storage directory tree."""
        for path in (
            self.videos_dir / "public",
            self.videos_dir / "private",
            self.temp_dir,
            self.inbox_dir,
        ):
            self.ensure_dir_exists(path)
        logger.info(f"Storage initialized: videos={self.videos_dir}, temp={self.temp_dir}")

    def video_dir(self, slug: str, is_public: bool) -> Path:
        return self.visibility_root(is_public) / slug

    def visibility_root(self, is_public: bool) -> Path:
        return self.videos_dir / visibility_dir(is_public)

    def temp_path(self, upload_id: str) -> Path:
        return self.temp_dir / f"{upload_id}.tmp"

    @staticmethod
    def public_url(slug: str, is_public: bool, filename: str) -> str:
        """URL under which a stored file is served."""
        return f"{STORAGE_URL_PREFIX}/{visibility_dir(is_public)}/{slug}/{filename}"

    @staticmethod
    def ensure_dir_exists(path: Path) -> None:
        path.mkdir(parents=True, exist_ok=True)

    async def move_file(self, source: Path, destination: Path) -> Path:
        """
        Move a file, creating parent directories.

        Uses rename where possible and falls back to copy + delete
        across filesystems.

        Raises:
            StorageError: If the source is missing or the move fails
        """
        if not source.exists():
            raise StorageError(f"Source file not found: {source}")

        try:
            destination.parent.mkdir(parents=True, exist_ok=True)
            await asyncio.to_thread(shutil.move, str(source), str(destination))
        except OSError as e:
            raise StorageError(f"Failed to move {source} to {destination}: {e}", e)

        logger.info(f"Moved {source.name} -> {destination}")
        return destination
