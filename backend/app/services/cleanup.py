"""
Cleanup of temporary files and partial outputs.

CleanupManager is a guard: resources are registered up front, then the
owner either calls success() to keep them or awaits cleanup() to delete
them. A guard collected while still armed only reports the leak, since
no asynchronous deletion can run from a finalizer.

Example:
    cleanup = CleanupManager(f"upload:{upload_id}")
    cleanup.add_file(temp_path)
    cleanup.add_directory(video_dir)
    try:
        ...
    except ProcessingError:
        await cleanup.cleanup()
        raise
    cleanup.success()
"""

import asyncio
import logging
import shutil
import time
from pathlib import Path

from app.services.storage import visibility_dir

logger = logging.getLogger(__name__)


class CleanupManager:
    """Tracks files and directories to delete if an operation fails."""

    def __init__(self, operation_name: str):
        self.operation_name = operation_name
        self._files: list[Path] = []
        self._directories: list[Path] = []
        self._auto_cleanup = True

    def add_file(self, path: Path) -> None:
        logger.debug(f"CleanupManager[{self.operation_name}]: registered file {path}")
        self._files.append(Path(path))

    def add_files(self, paths: list[Path]) -> None:
        for path in paths:
            self.add_file(path)

    def add_directory(self, path: Path) -> None:
        logger.debug(f"CleanupManager[{self.operation_name}]: registered directory {path}")
        self._directories.append(Path(path))

    def disable_auto_cleanup(self) -> None:
        self._auto_cleanup = False

    def enable_auto_cleanup(self) -> None:
        self._auto_cleanup = True

    def success(self) -> None:
        """Disarm the guard. Registered resources are kept."""
        logger.debug(
            f"CleanupManager[{self.operation_name}]: operation successful, "
            f"keeping {self.resource_count} resources"
        )
        self._auto_cleanup = False

    @property
    def is_armed(self) -> bool:
        return self._auto_cleanup

    @property
    def has_resources(self) -> bool:
        return bool(self._files or self._directories)

    @property
    def resource_count(self) -> int:
        return len(self._files) + len(self._directories)

    async def cleanup(self) -> None:
        """
        Delete every registered file, then every registered directory.

        Already-absent paths count as deleted. Other failures are logged
        and do not stop the remaining deletions. Both lists are cleared.
        """
        logger.info(
            f"CleanupManager[{self.operation_name}]: starting cleanup "
            f"({len(self._files)} files, {len(self._directories)} directories)"
        )

        for path in self._files:
            try:
                await cleanup_file(path)
            except OSError as e:
                logger.error(
                    f"CleanupManager[{self.operation_name}]: failed to delete file {path}: {e}"
                )

        for path in self._directories:
            try:
                await cleanup_directory(path)
            except OSError as e:
                logger.error(
                    f"CleanupManager[{self.operation_name}]: failed to delete directory {path}: {e}"
                )

        self._files.clear()
        self._directories.clear()

        logger.info(f"CleanupManager[{self.operation_name}]: cleanup complete")

    def __del__(self):
        if self._auto_cleanup and self.has_resources:
            logger.error(
                f"CleanupManager[{self.operation_name}]: discarded while armed, "
                f"{self.resource_count} resources were never cleaned up"
            )
            for path in self._files:
                logger.error(f"CleanupManager[{self.operation_name}]: leaked file {path}")
            for path in self._directories:
                logger.error(f"CleanupManager[{self.operation_name}]: leaked directory {path}")


# ═══════════════════════════════════════════════════════════════════════════
# Standalone helpers
# ═══════════════════════════════════════════════════════════════════════════


def _remove_file(path: Path) -> bool:
    try:
        path.unlink()
    except FileNotFoundError:
        return False
    return True


def _remove_directory(path: Path) -> bool:
    try:
        shutil.rmtree(path)
    except FileNotFoundError:
        return False
    return True


async def cleanup_file(path: Path) -> None:
    """
    Delete a file. Missing files are not an error.

    Raises:
        OSError: If the file exists but cannot be removed
    """
    removed = await asyncio.to_thread(_remove_file, Path(path))
    if removed:
        logger.info(f"Cleanup: deleted file {path}")
    else:
        logger.debug(f"Cleanup: file already absent {path}")


async def cleanup_directory(path: Path) -> None:
    """
    Delete a directory tree. Missing directories are not an error.

    Raises:
        OSError: If the directory exists but cannot be removed
    """
    removed = await asyncio.to_thread(_remove_directory, Path(path))
    if removed:
        logger.info(f"Cleanup: deleted directory {path}")
    else:
        logger.debug(f"Cleanup: directory already absent {path}")


def temp_upload_path(temp_dir: Path, upload_id: str) -> Path:
    return temp_dir / f"{upload_id}.tmp"


async def cleanup_temp_upload(temp_dir: Path, upload_id: str) -> None:
    """Delete the temp file of an upload ({upload_id}.tmp)."""
    await cleanup_file(temp_upload_path(temp_dir, upload_id))


async def cleanup_partial_hls(video_dir: Path, qualities: list[str]) -> None:
    """Delete per-quality HLS output and the master playlist."""
    for quality in qualities:
        await cleanup_directory(video_dir / quality)
    await cleanup_file(video_dir / "master.m3u8")


async def cleanup_failed_video(videos_dir: Path, slug: str, is_public: bool) -> None:
    """Delete everything produced for a failed video under its public/private root."""
    video_slug_dir = videos_dir / visibility_dir(is_public) / slug
    if video_slug_dir.exists():
        logger.info(f"Cleanup: removing all files for failed video '{slug}'")
        await cleanup_directory(video_slug_dir)


async def cleanup_old_temp_files(temp_dir: Path, max_age_hours: int) -> int:
    """
    Delete files in temp_dir not modified within max_age_hours.

    Returns:
        Number of files deleted
    """
    if not temp_dir.exists():
        return 0

    cutoff = time.time() - max_age_hours * 3600
    deleted = 0

    for path in temp_dir.iterdir():
        if not path.is_file():
            continue
        try:
            if path.stat().st_mtime >= cutoff:
                continue
            await cleanup_file(path)
            deleted += 1
        except OSError as e:
            logger.warning(f"Cleanup: could not remove old temp file {path}: {e}")

    if deleted:
        logger.info(f"Cleanup: removed {deleted} temp files older than {max_age_hours}h")
    return deleted
