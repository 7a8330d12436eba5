"""
Progress reporting for pipeline stages.

Each stage transition is persisted to the video record and mirrored to
the in-memory ProgressTracker used by pollers.
"""

import logging

from app.models.schemas import ProcessingStage, ProgressStatus
from app.services.errors import DatabaseError
from app.services.progress_tracker import ProgressTracker
from app.services.repository import VideoRepository

logger = logging.getLogger(__name__)

# Non-error stages in execution order
STAGE_ORDER = [
    ProcessingStage.STARTING,
    ProcessingStage.VALIDATING,
    ProcessingStage.EXTRACTING_METADATA,
    ProcessingStage.GENERATING_THUMBNAIL,
    ProcessingStage.GENERATING_POSTER,
    ProcessingStage.TRANSCODING_HLS,
    ProcessingStage.MOVING_FILE,
    ProcessingStage.UPDATING_DATABASE,
    ProcessingStage.COMPLETE,
]

# Progress range covered while HLS qualities finish
TRANSCODE_PROGRESS_START = ProcessingStage.TRANSCODING_HLS.progress
TRANSCODE_PROGRESS_END = 85


class ProgressManager:
    """
    Reports stage transitions for one upload.

    Example:
        manager = ProgressManager(upload_id, repository, tracker)
        await manager.enter_stage(ProcessingStage.VALIDATING)
        ...
        await manager.complete()
    """

    def __init__(
        self,
        upload_id: str,
        repository: VideoRepository,
        tracker: ProgressTracker,
    ):
        self.upload_id = upload_id
        self.repository = repository
        self.tracker = tracker

    async def enter_stage(self, stage: ProcessingStage) -> None:
        """
        Persist the stage floor and update the tracker.

        Raises:
            DatabaseError: If the status cannot be persisted
        """
        logger.info(f"[{self.upload_id}] {stage.description} ({stage.progress}%)")
        await self.repository.update_processing_status(self.upload_id, stage)
        await self.tracker.update(
            self.upload_id,
            ProgressStatus.PROCESSING,
            stage.progress,
            stage.description,
        )

    async def report_transcode(self, progress: int, message: str) -> None:
        """Intermediate HLS progress. Tracker only, the DB keeps the floor."""
        await self.tracker.update(
            self.upload_id,
            ProgressStatus.PROCESSING,
            progress,
            f"{ProcessingStage.TRANSCODING_HLS.description}: {message}",
        )

    async def complete(self) -> None:
        """
        Persist Complete and mark the tracker entry done.

        Raises:
            DatabaseError: If the status cannot be persisted
        """
        await self.repository.update_processing_status(
            self.upload_id, ProcessingStage.COMPLETE
        )
        await self.tracker.set_complete(self.upload_id)

    async def fail(self, message: str) -> None:
        """
        Persist the Error state and fail the tracker entry.

        A failure to persist is logged; the tracker is updated regardless
        so pollers still see the error.
        """
        try:
            await self.repository.update_processing_status(
                self.upload_id, ProcessingStage.ERROR, message
            )
        except DatabaseError:
            logger.exception(f"[{self.upload_id}] Could not persist error state")

        await self.tracker.set_error(self.upload_id, message)
