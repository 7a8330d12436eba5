"""
Progress tracker for uploads.

Holds live per-upload progress for pollers, estimates completion time,
evicts finished entries after a TTL and broadcasts every change to
WebSocket subscribers.
"""

import asyncio
import logging
from datetime import datetime, timedelta
from typing import Callable

from app.models.schemas import (
    ProgressMetadata,
    ProgressStatus,
    UploadProgress,
)

logger = logging.getLogger(__name__)

UPLOADING_STAGE = "Uploading file"
COMPLETE_STAGE = "Complete"

# Minimum observed time before an ETA is trusted
ETA_MIN_ELAPSED_SECONDS = 5.0


def estimate_completion(
    started_at: datetime,
    progress: int,
    now: datetime,
) -> datetime | None:
    """
    Estimate completion time from the average progress rate so far.

    Returns None until at least 5 seconds have elapsed or while progress
    is zero.
    """
    elapsed = (now - started_at).total_seconds()
    if elapsed < ETA_MIN_ELAPSED_SECONDS or progress <= 0:
        return None

    rate = progress / elapsed  # percent per second
    remaining = (100 - progress) / rate
    return now + timedelta(seconds=remaining)


class ProgressTracker:
    """
    Concurrency-safe store of UploadProgress keyed by upload id.

    Entries are only written by the job that owns them while
    non-terminal; the TTL sweep only removes terminal entries.

    Example:
        tracker = ProgressTracker(ttl_seconds=3600)
        await tracker.init(upload_id, slug, filename="clip.mp4")
        await tracker.update(upload_id, ProgressStatus.PROCESSING, 25, "Validating video")

        # Poll
        progress = tracker.get(upload_id)

        # Subscribe to updates
        queue = tracker.subscribe(upload_id)
    """

    def __init__(
        self,
        ttl_seconds: int = 3600,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: dict[str, UploadProgress] = {}
        self._subscribers: dict[str, list[asyncio.Queue]] = {}
        self._lock = asyncio.Lock()
        self._cleanup_task: asyncio.Task | None = None

    # ═══════════════════════════════════════════════════════════════════════
    # Mutations
    # ═══════════════════════════════════════════════════════════════════════

    async def init(
        self,
        upload_id: str,
        slug: str,
        filename: str | None = None,
        file_size: int | None = None,
    ) -> UploadProgress:
        """Create an entry in Uploading state at 0%."""
        entry = UploadProgress(
            upload_id=upload_id,
            slug=slug,
            status=ProgressStatus.UPLOADING,
            progress=0,
            stage=UPLOADING_STAGE,
            started_at=self._clock(),
            metadata=ProgressMetadata(filename=filename, file_size=file_size),
        )
        async with self._lock:
            self._entries[upload_id] = entry
            self._broadcast(entry)

        logger.debug(f"Progress initialized for {upload_id}")
        return entry.model_copy(deep=True)

    async def update(
        self,
        upload_id: str,
        status: ProgressStatus,
        progress: int,
        stage: str,
    ) -> None:
        """
        Overwrite status, progress and stage.

        While processing, an increase in progress refreshes the ETA.
        Terminal statuses set completed_at and clear the ETA.
        """
        progress = min(max(int(progress), 0), 100)

        async with self._lock:
            entry = self._entries.get(upload_id)
            if entry is None:
                logger.warning(f"Attempted to update unknown upload {upload_id}")
                return

            old_progress = entry.progress
            entry.status = status
            entry.progress = progress
            entry.stage = stage

            now = self._clock()
            if status == ProgressStatus.PROCESSING and progress > old_progress:
                entry.estimated_completion = estimate_completion(
                    entry.started_at, progress, now
                )

            if status.is_terminal:
                entry.completed_at = now
                entry.estimated_completion = None

            self._broadcast(entry)

        logger.debug(f"Progress {upload_id}: {progress}% - {stage}")

    async def set_error(self, upload_id: str, error: str) -> None:
        """Mark an upload failed."""
        async with self._lock:
            entry = self._entries.get(upload_id)
            if entry is None:
                logger.warning(f"Attempted to fail unknown upload {upload_id}")
                return

            entry.status = ProgressStatus.ERROR
            entry.error = error
            entry.completed_at = self._clock()
            entry.estimated_completion = None
            self._broadcast(entry)

        logger.info(f"Progress error set for {upload_id}: {error}")

    async def set_complete(self, upload_id: str) -> None:
        """Mark an upload complete at 100%."""
        async with self._lock:
            entry = self._entries.get(upload_id)
            if entry is None:
                logger.warning(f"Attempted to complete unknown upload {upload_id}")
                return

            entry.status = ProgressStatus.COMPLETE
            entry.progress = 100
            entry.stage = COMPLETE_STAGE
            entry.completed_at = self._clock()
            entry.estimated_completion = None
            self._broadcast(entry)

        logger.info(f"Progress marked complete for {upload_id}")

    async def update_metadata(
        self,
        upload_id: str,
        duration: float | None = None,
        resolution: str | None = None,
        qualities: list[str] | None = None,
    ) -> None:
        """Merge the given metadata fields. Status is untouched."""
        async with self._lock:
            entry = self._entries.get(upload_id)
            if entry is None:
                return

            if entry.metadata is None:
                entry.metadata = ProgressMetadata()
            if duration is not None:
                entry.metadata.duration = duration
            if resolution is not None:
                entry.metadata.resolution = resolution
            if qualities is not None:
                entry.metadata.qualities = list(qualities)
            self._broadcast(entry)

    async def remove(self, upload_id: str) -> None:
        async with self._lock:
            self._entries.pop(upload_id, None)
            self._subscribers.pop(upload_id, None)
        logger.debug(f"Progress entry removed for {upload_id}")

    async def cleanup_old_entries(self, ttl_seconds: int | None = None) -> int:
        """
        Remove terminal entries completed more than TTL seconds ago.

        Returns:
            Number of entries removed
        """
        ttl = self.ttl_seconds if ttl_seconds is None else ttl_seconds
        threshold = self._clock() - timedelta(seconds=ttl)

        async with self._lock:
            expired = [
                upload_id
                for upload_id, entry in self._entries.items()
                if entry.status.is_terminal
                and entry.completed_at is not None
                and entry.completed_at < threshold
            ]
            for upload_id in expired:
                del self._entries[upload_id]
                self._subscribers.pop(upload_id, None)

        if expired:
            logger.info(f"Cleaned up {len(expired)} old progress entries")
        return len(expired)

    # ═══════════════════════════════════════════════════════════════════════
    # Reads
    # ═══════════════════════════════════════════════════════════════════════

    def get(self, upload_id: str) -> UploadProgress | None:
        entry = self._entries.get(upload_id)
        return entry.model_copy(deep=True) if entry else None

    def get_all(self) -> list[UploadProgress]:
        return [entry.model_copy(deep=True) for entry in self._entries.values()]

    def active_count(self) -> int:
        return sum(1 for e in self._entries.values() if not e.status.is_terminal)

    def completed_count(self) -> int:
        return sum(1 for e in self._entries.values() if e.status == ProgressStatus.COMPLETE)

    def failed_count(self) -> int:
        return sum(1 for e in self._entries.values() if e.status == ProgressStatus.ERROR)

    # ═══════════════════════════════════════════════════════════════════════
    # TTL sweep
    # ═══════════════════════════════════════════════════════════════════════

    def start_cleanup_task(
        self,
        interval_seconds: float,
        ttl_seconds: int | None = None,
    ) -> asyncio.Task:
        """Start the periodic TTL sweep. Returns the running task."""
        if self._cleanup_task is not None and not self._cleanup_task.done():
            return self._cleanup_task

        async def sweep_loop():
            while True:
                await asyncio.sleep(interval_seconds)
                try:
                    await self.cleanup_old_entries(ttl_seconds)
                except Exception:
                    logger.exception("Progress cleanup sweep failed")

        self._cleanup_task = asyncio.create_task(sweep_loop())
        logger.info(
            f"Progress cleanup task started "
            f"(interval: {interval_seconds}s, TTL: {ttl_seconds or self.ttl_seconds}s)"
        )
        return self._cleanup_task

    async def stop_cleanup_task(self) -> None:
        task = self._cleanup_task
        self._cleanup_task = None
        if task is None:
            return

        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.info("Progress cleanup task stopped")

    # ═══════════════════════════════════════════════════════════════════════
    # Subscribers
    # ═══════════════════════════════════════════════════════════════════════

    def subscribe(self, upload_id: str) -> asyncio.Queue:
        """
        Subscribe to progress updates.

        Returns:
            Queue receiving a JSON-ready dict on every change
        """
        queue: asyncio.Queue = asyncio.Queue()
        self._subscribers.setdefault(upload_id, []).append(queue)
        logger.debug(f"Client subscribed to upload {upload_id}")
        return queue

    def unsubscribe(self, upload_id: str, queue: asyncio.Queue) -> None:
        subscribers = self._subscribers.get(upload_id)
        if subscribers and queue in subscribers:
            subscribers.remove(queue)
            logger.debug(f"Client unsubscribed from upload {upload_id}")

    def _broadcast(self, entry: UploadProgress) -> None:
        subscribers = self._subscribers.get(entry.upload_id)
        if not subscribers:
            return

        message = entry.model_dump(mode="json")
        for queue in subscribers:
            queue.put_nowait(message)
