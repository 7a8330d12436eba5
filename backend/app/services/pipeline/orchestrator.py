"""
Pipeline orchestrator for uploaded videos.

Runs one upload through every stage, in order:
Validate -> ExtractMetadata -> GenerateThumbnail -> GeneratePoster ->
TranscodeHls -> MoveToStorage -> UpdateDatabase -> Complete.

Thumbnail and poster failures are tolerated. Any other failure, including
cancellation of the job, moves the upload to the Error state and removes
the temp upload plus, unless the original was already relocated,
everything written under the video's destination directory.
"""

import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Awaitable, Callable, TypeVar

from app.config import Settings
from app.models.schemas import (
    AuditEventType,
    HlsResult,
    ProcessingStage,
    QualityPreset,
    QualityResult,
    UploadRecord,
    VideoFinalization,
    VideoMetadata,
)
from app.services.audit import AuditLogger
from app.services.cleanup import CleanupManager, cleanup_file
from app.services.errors import (
    DatabaseError,
    HlsTranscodeError,
    MetadataError,
    PosterError,
    ProcessingError,
    ProcessingInterrupted,
    StorageError,
    ThumbnailError,
    ValidationError,
)
from app.services.media import (
    QUALITY_PRESETS,
    FrameExtractor,
    HlsTranscoder,
    MediaTool,
    is_codec_supported,
)
from app.services.media.frames import POSTER_FILENAME, THUMBNAIL_FILENAME
from app.services.media.hls import MASTER_PLAYLIST
from app.services.metrics import MetricsStore, Timer
from app.services.progress_tracker import ProgressTracker
from app.services.repository import VideoRepository
from app.services.storage import StorageManager
from app.utils.media_utils import original_extension

from .progress_manager import (
    TRANSCODE_PROGRESS_END,
    TRANSCODE_PROGRESS_START,
    ProgressManager,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class ProcessingContext:
    """
    Everything one background job needs.

    Owned by a single job and discarded when it ends. The shared stores
    are created at service start and passed in, never looked up globally.
    """

    upload_id: str
    slug: str
    temp_file_path: Path
    is_public: bool
    original_filename: str
    settings: Settings
    progress_tracker: ProgressTracker
    metrics_store: MetricsStore
    audit_logger: AuditLogger
    repository: VideoRepository
    media_tool: MediaTool
    presets: tuple[QualityPreset, ...] = QUALITY_PRESETS
    user_id: str | None = None


@dataclass
class _StageOutputs:
    metadata: VideoMetadata | None = None
    thumbnail_path: Path | None = None
    poster_path: Path | None = None
    hls: HlsResult | None = None
    final_path: Path | None = None


class VideoProcessor:
    """
    Processes a single upload.

    Example:
        processor = VideoProcessor(context)
        record = await processor.process()
    """

    def __init__(self, context: ProcessingContext):
        self.ctx = context
        self.storage = StorageManager(context.settings)
        self.video_dir = self.storage.video_dir(context.slug, context.is_public)
        self.progress = ProgressManager(
            context.upload_id, context.repository, context.progress_tracker
        )
        self.frames = FrameExtractor(context.media_tool, context.settings)
        self.transcoder = HlsTranscoder(
            context.media_tool,
            segment_duration=context.settings.hls_segment_duration,
            presets=context.presets,
            progress_start=TRANSCODE_PROGRESS_START,
            progress_end=TRANSCODE_PROGRESS_END,
        )
        self.cleanup = CleanupManager(f"process_video:{context.upload_id}")
        self.outputs = _StageOutputs()
        self.stage = ProcessingStage.STARTING

    # ═══════════════════════════════════════════════════════════════════════════
    # Full Pipeline
    # ═══════════════════════════════════════════════════════════════════════════

    async def process(self) -> UploadRecord:
        """
        Run every stage.

        Returns:
            UploadRecord summarizing the successful run

        Raises:
            ProcessingError: On any fatal stage failure, after the error
                state, metrics, audit trail and cleanup are written
            asyncio.CancelledError: Re-raised after the upload is failed
                as interrupted
        """
        ctx = self.ctx
        total_timer = Timer(f"process_video:{ctx.upload_id}")
        out = self.outputs

        logger.info(
            f"Processing upload {ctx.upload_id} ({ctx.slug}): {ctx.original_filename}"
        )
        await ctx.audit_logger.log(
            AuditEventType.PROCESSING_STARTED,
            ctx.upload_id,
            ctx.slug,
            user_id=ctx.user_id,
            details={"filename": ctx.original_filename},
        )

        self.cleanup.add_file(ctx.temp_file_path)
        self.cleanup.add_directory(self.video_dir)

        try:
            await self._start()

            await self._run_stage(
                ProcessingStage.VALIDATING,
                "validation",
                ValidationError,
                lambda: ctx.media_tool.validate(ctx.temp_file_path),
            )

            out.metadata = await self._run_stage(
                ProcessingStage.EXTRACTING_METADATA,
                "metadata_extraction",
                MetadataError,
                self._extract_metadata,
            )

            out.thumbnail_path = await self._run_optional_stage(
                ProcessingStage.GENERATING_THUMBNAIL,
                "thumbnail_generation",
                ThumbnailError,
                lambda: self.frames.generate_thumbnail(
                    ctx.temp_file_path, self.video_dir, out.metadata.duration
                ),
            )

            out.poster_path = await self._run_optional_stage(
                ProcessingStage.GENERATING_POSTER,
                "poster_generation",
                PosterError,
                lambda: self.frames.generate_poster(
                    ctx.temp_file_path, self.video_dir, out.metadata.duration
                ),
            )

            out.hls = await self._run_stage(
                ProcessingStage.TRANSCODING_HLS,
                "hls_transcoding",
                HlsTranscodeError,
                self._transcode_hls,
            )

            out.final_path = await self._run_stage(
                ProcessingStage.MOVING_FILE,
                "move_to_storage",
                StorageError,
                self._move_to_storage,
            )

            await self._run_stage(
                ProcessingStage.UPDATING_DATABASE,
                "update_database",
                DatabaseError,
                self._update_database,
            )

            self.cleanup.success()
            await self._remove_temp_file()

            try:
                await self.progress.complete()
            except DatabaseError as e:
                raise DatabaseError(f"Failed to mark complete: {e.message}", e)

        except ProcessingError as e:
            await self._handle_failure(e, total_timer)
            raise

        except asyncio.CancelledError:
            logger.warning(f"[{ctx.upload_id}] Cancelled during {self.stage.value}")
            await self._handle_failure(
                ProcessingInterrupted(self.stage, "job was cancelled"), total_timer
            )
            raise

        finally:
            if self.cleanup.is_armed and self.cleanup.has_resources:
                await self.cleanup.cleanup()

        return await self._record_success(total_timer)

    # ═══════════════════════════════════════════════════════════════════════════
    # Stage runners
    # ═══════════════════════════════════════════════════════════════════════════

    async def _start(self) -> None:
        try:
            await self.progress.enter_stage(ProcessingStage.STARTING)
        except ProcessingError as e:
            raise ProcessingError(ProcessingStage.STARTING, e.message, e)

    async def _run_stage(
        self,
        stage: ProcessingStage,
        metric_name: str,
        error_cls: type[ProcessingError],
        operation: Callable[[], Awaitable[T]],
    ) -> T:
        """
        Enter a stage, run it and record its timing.

        A failure of the operation is converted to error_cls so the failure
        policy is decided by the stage that failed. A DatabaseError from
        persisting the stage transition propagates unchanged.
        """
        self.stage = stage
        await self.progress.enter_stage(stage)

        timer = Timer(metric_name)
        try:
            result = await operation()
        except Exception as e:
            await self.ctx.metrics_store.record_stage_timing(
                metric_name, timer.stop(), success=False
            )
            if isinstance(e, error_cls):
                raise
            message = e.message if isinstance(e, ProcessingError) else str(e)
            raise error_cls(message, e) from e

        await self.ctx.metrics_store.record_stage_timing(
            metric_name, timer.stop(), success=True
        )
        return result

    async def _run_optional_stage(
        self,
        stage: ProcessingStage,
        metric_name: str,
        error_cls: type[ProcessingError],
        operation: Callable[[], Awaitable[T]],
    ) -> T | None:
        """Like _run_stage, but a failure is logged, metered and skipped."""
        try:
            return await self._run_stage(stage, metric_name, error_cls, operation)
        except ProcessingError as e:
            if e.fatal:
                raise
            logger.warning(f"[{self.ctx.upload_id}] {e.user_message} (non-fatal)")
            await self.ctx.metrics_store.record_error(e.error_kind)
            return None

    # ═══════════════════════════════════════════════════════════════════════════
    # Stages
    # ═══════════════════════════════════════════════════════════════════════════

    async def _extract_metadata(self) -> VideoMetadata:
        ctx = self.ctx
        metadata = await ctx.media_tool.probe(ctx.temp_file_path)

        if not is_codec_supported(metadata.video_codec):
            logger.warning(
                f"Video codec '{metadata.video_codec}' may not be widely supported"
            )

        await ctx.progress_tracker.update_metadata(
            ctx.upload_id,
            duration=metadata.duration,
            resolution=metadata.resolution,
        )
        return metadata

    async def _transcode_hls(self) -> HlsResult:
        ctx = self.ctx
        self.video_dir.mkdir(parents=True, exist_ok=True)

        async def record_quality(result: QualityResult) -> None:
            await ctx.metrics_store.record_quality_stats(
                result.quality,
                result.duration_secs,
                result.bytes_written,
                result.success,
            )

        hls = await self.transcoder.transcode(
            ctx.temp_file_path,
            self.video_dir,
            self.outputs.metadata,
            progress_callback=self.progress.report_transcode,
            result_callback=record_quality,
        )

        await ctx.progress_tracker.update_metadata(ctx.upload_id, qualities=hls.qualities)
        return hls

    async def _move_to_storage(self) -> Path:
        ext = original_extension(self.ctx.original_filename)
        destination = self.video_dir / f"original.{ext}"
        return await self.storage.move_file(self.ctx.temp_file_path, destination)

    async def _update_database(self) -> None:
        ctx = self.ctx
        metadata = self.outputs.metadata
        final_path = self.outputs.final_path

        def url(filename: str) -> str:
            return self.storage.public_url(ctx.slug, ctx.is_public, filename)

        thumbnail = self.outputs.thumbnail_path
        poster = self.outputs.poster_path

        finalization = VideoFinalization(
            duration=metadata.duration,
            file_size=final_path.stat().st_size,
            resolution=metadata.resolution,
            width=metadata.width,
            height=metadata.height,
            fps=metadata.fps,
            codec=metadata.video_codec,
            audio_codec=metadata.audio_codec,
            bitrate=metadata.bitrate,
            format=metadata.format,
            thumbnail_url=url(THUMBNAIL_FILENAME) if thumbnail and thumbnail.exists() else None,
            poster_url=url(POSTER_FILENAME) if poster and poster.exists() else None,
            filename=final_path.name,
            preview_url=url(MASTER_PLAYLIST),
        )
        await ctx.repository.finalize_video(ctx.upload_id, finalization)

    # ═══════════════════════════════════════════════════════════════════════════
    # Outcome handling
    # ═══════════════════════════════════════════════════════════════════════════

    async def _remove_temp_file(self) -> None:
        try:
            await cleanup_file(self.ctx.temp_file_path)
        except OSError as e:
            logger.warning(f"[{self.ctx.upload_id}] Could not remove temp file: {e}")

    async def _handle_failure(self, error: ProcessingError, total_timer: Timer) -> None:
        ctx = self.ctx
        message = error.user_message
        logger.error(f"[{ctx.upload_id}] {message}")

        await ctx.metrics_store.record_error(error.error_kind)
        await ctx.audit_logger.log(
            AuditEventType.PROCESSING_FAILED,
            ctx.upload_id,
            ctx.slug,
            user_id=ctx.user_id,
            details={"error": message, "stage": self.stage.value},
        )
        await self.progress.fail(message)

        if self.outputs.final_path is not None:
            # Media is already relocated; keep it and drop only the upload.
            self.cleanup.success()
            await self._remove_temp_file()
        else:
            await self.cleanup.cleanup()

        metadata = self.outputs.metadata
        await ctx.metrics_store.record_failure(UploadRecord(
            upload_id=ctx.upload_id,
            slug=ctx.slug,
            processing_time_secs=total_timer.stop(),
            duration_secs=metadata.duration if metadata else 0.0,
            resolution=metadata.resolution if metadata else "",
            success=False,
            error=message,
            user_id=ctx.user_id,
        ))

    async def _record_success(self, total_timer: Timer) -> UploadRecord:
        ctx = self.ctx
        metadata = self.outputs.metadata
        hls = self.outputs.hls
        processing_time = total_timer.stop()

        try:
            file_size = self.outputs.final_path.stat().st_size
        except OSError:
            file_size = 0

        record = UploadRecord(
            upload_id=ctx.upload_id,
            slug=ctx.slug,
            processing_time_secs=processing_time,
            file_size_bytes=file_size,
            duration_secs=metadata.duration,
            resolution=metadata.resolution,
            qualities=hls.qualities,
            success=True,
            user_id=ctx.user_id,
        )
        await ctx.metrics_store.record_success(record)

        await ctx.audit_logger.log(
            AuditEventType.PROCESSING_COMPLETED,
            ctx.upload_id,
            ctx.slug,
            user_id=ctx.user_id,
            details={
                "duration_secs": str(metadata.duration),
                "resolution": metadata.resolution,
                "qualities": ",".join(hls.qualities),
                "processing_time_secs": f"{processing_time:.3f}",
            },
        )

        logger.info(
            f"Video processing complete: {ctx.upload_id} ({ctx.slug}) "
            f"in {processing_time:.1f}s, qualities={hls.qualities}"
        )
        return record


# ═══════════════════════════════════════════════════════════════════════════
# Background scheduling
# ═══════════════════════════════════════════════════════════════════════════

# Strong references to running jobs so they are not garbage collected
_running_jobs: set[asyncio.Task] = set()


async def run_processing_job(context: ProcessingContext) -> UploadRecord | None:
    """
    Background job entry point.

    The caller already returned the upload id, so failures are only
    logged here; they are visible to clients through progress polling.
    """
    try:
        return await VideoProcessor(context).process()
    except ProcessingError as e:
        logger.error(f"Processing job {context.upload_id} failed: {e}")
    except asyncio.CancelledError:
        logger.warning(f"Processing job {context.upload_id} interrupted")
        raise
    except Exception:
        logger.exception(f"Unexpected error in processing job {context.upload_id}")
        await context.progress_tracker.set_error(
            context.upload_id, "Processing failed: internal error"
        )
    return None


def start_processing(context: ProcessingContext) -> asyncio.Task:
    """Schedule a processing job without waiting for it."""
    task = asyncio.create_task(
        run_processing_job(context),
        name=f"process_video:{context.upload_id}",
    )
    _running_jobs.add(task)
    task.add_done_callback(_running_jobs.discard)
    logger.info(f"Scheduled processing job {context.upload_id}")
    return task


def running_job_count() -> int:
    return len(_running_jobs)


async def cancel_running_jobs() -> int:
    """
    Cancel every running job and wait until each has written its error state.

    Called at shutdown, before the shared stores and the DB engine go away.

    Returns:
        Number of jobs cancelled
    """
    loop = asyncio.get_running_loop()
    jobs = [t for t in _running_jobs if not t.done() and t.get_loop() is loop]
    for task in jobs:
        task.cancel()
    if jobs:
        await asyncio.gather(*jobs, return_exceptions=True)
        logger.warning(f"Interrupted {len(jobs)} running processing jobs")
    return len(jobs)
