"""
Processing metrics.

A single ProcessingMetrics aggregate guarded by one asyncio lock. Jobs
record stage timings, per-quality stats, error kinds and per-upload
summaries; the API reads snapshots.
"""

import asyncio
import logging
import time

from app.models.schemas import (
    MetricsSummary,
    ProcessingMetrics,
    QualityStats,
    StageStats,
    UploadRecord,
)
from app.utils.media_utils import format_bytes, format_duration

logger = logging.getLogger(__name__)

RECENT_UPLOADS_LIMIT = 100


class Timer:
    """
    Wall-clock timer for a named operation.

    Example:
        timer = Timer("validation")
        ...
        seconds = timer.stop()
    """

    def __init__(self, operation: str):
        self.operation = operation
        self._start = time.monotonic()
        self._stopped: float | None = None

    def elapsed(self) -> float:
        """Seconds since start, without stopping."""
        if self._stopped is not None:
            return self._stopped
        return time.monotonic() - self._start

    def stop(self) -> float:
        """Stop and return elapsed seconds."""
        if self._stopped is None:
            self._stopped = time.monotonic() - self._start
            logger.info(f"PERF | {self.operation} | {self._stopped:.2f}s")
        return self._stopped


class MetricsStore:
    """
    Concurrency-safe processing metrics.

    Example:
        store = MetricsStore()
        await store.record_stage_timing("validation", 1.2, success=True)
        summary = await store.summary()
    """

    def __init__(self, recent_limit: int = RECENT_UPLOADS_LIMIT):
        self.recent_limit = recent_limit
        self._metrics = ProcessingMetrics()
        self._lock = asyncio.Lock()

    async def record_stage_timing(
        self,
        stage: str,
        duration_secs: float,
        success: bool,
    ) -> None:
        async with self._lock:
            stats = self._metrics.stage_timings.setdefault(stage, StageStats())
            stats.record(duration_secs, success)
            logger.debug(
                f"Stage timing {stage}: {duration_secs:.2f}s "
                f"(avg {stats.avg_time_secs:.2f}s, success={success})"
            )

    async def record_quality_stats(
        self,
        quality: str,
        duration_secs: float,
        bytes_written: int,
        success: bool,
    ) -> None:
        async with self._lock:
            stats = self._metrics.quality_stats.setdefault(quality, QualityStats())
            stats.record(duration_secs, bytes_written, success)

    async def record_error(self, error_kind: str) -> None:
        async with self._lock:
            counts = self._metrics.error_counts
            counts[error_kind] = counts.get(error_kind, 0) + 1

    async def record_success(self, record: UploadRecord) -> None:
        async with self._lock:
            m = self._metrics
            m.total_uploads += 1
            m.successful_uploads += 1
            m.total_bytes_processed += record.file_size_bytes
            m.total_processing_time_secs += record.processing_time_secs
            self._append_recent(record)
            logger.info(
                f"Upload metrics updated: {m.total_uploads} total, "
                f"success rate {m.success_rate:.1f}%"
            )

    async def record_failure(self, record: UploadRecord) -> None:
        async with self._lock:
            m = self._metrics
            m.total_uploads += 1
            m.failed_uploads += 1
            self._append_recent(record)
            logger.info(
                f"Upload metrics updated (failure): {m.total_uploads} total, "
                f"failure rate {m.failure_rate:.1f}%"
            )

    async def record_cancellation(self, upload_id: str, slug: str) -> None:
        async with self._lock:
            self._metrics.total_uploads += 1
            self._metrics.cancelled_uploads += 1
            self._append_recent(UploadRecord(
                upload_id=upload_id,
                slug=slug,
                success=False,
                error="Cancelled by user",
            ))

    def _append_recent(self, record: UploadRecord) -> None:
        recent = self._metrics.recent_uploads
        recent.append(record)
        if len(recent) > self.recent_limit:
            del recent[: len(recent) - self.recent_limit]

    async def snapshot(self) -> ProcessingMetrics:
        """Deep copy of the current aggregate."""
        async with self._lock:
            return self._metrics.model_copy(deep=True)

    async def summary(self, active_uploads: int = 0) -> MetricsSummary:
        async with self._lock:
            m = self._metrics
            return MetricsSummary(
                total_uploads=m.total_uploads,
                successful_uploads=m.successful_uploads,
                failed_uploads=m.failed_uploads,
                cancelled_uploads=m.cancelled_uploads,
                success_rate=m.success_rate,
                failure_rate=m.failure_rate,
                total_bytes_processed=m.total_bytes_processed,
                total_bytes_human=format_bytes(m.total_bytes_processed),
                avg_processing_time_secs=m.avg_processing_time_secs,
                avg_processing_time_human=format_duration(m.avg_processing_time_secs),
                stage_count=len(m.stage_timings),
                quality_count=len(m.quality_stats),
                error_type_count=len(m.error_counts),
                active_uploads=active_uploads,
            )
