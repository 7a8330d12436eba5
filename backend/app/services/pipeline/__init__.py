"""
Pipeline module for video processing.

This package contains the pipeline components:
- orchestrator: Runs one upload through every stage
- progress_manager: Stage transitions persisted and tracked

Example:
    from app.services.pipeline import ProcessingContext, start_processing

    context = ProcessingContext(upload_id=..., slug=..., ...)
    task = start_processing(context)
"""

from app.services.errors import ProcessingError

from .orchestrator import (
    ProcessingContext,
    VideoProcessor,
    run_processing_job,
    cancel_running_jobs,
    running_job_count,
    start_processing,
)
from .progress_manager import (
    STAGE_ORDER,
    TRANSCODE_PROGRESS_END,
    TRANSCODE_PROGRESS_START,
    ProgressManager,
)

__all__ = [
    # Main orchestrator
    "VideoProcessor",
    "ProcessingContext",
    "ProcessingError",
    "start_processing",
    "run_processing_job",
    "running_job_count",
    "cancel_running_jobs",
    # Progress
    "ProgressManager",
    "STAGE_ORDER",
    "TRANSCODE_PROGRESS_START",
    "TRANSCODE_PROGRESS_END",
]
