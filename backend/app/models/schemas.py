"""
Pydantic models for the video processing pipeline.
"""

from datetime import datetime
from enum import Enum
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, computed_field


class ProgressStatus(str, Enum):
    """Client-facing status of an upload."""
    UPLOADING = "uploading"
    PROCESSING = "processing"
    COMPLETE = "complete"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        return self in (ProgressStatus.COMPLETE, ProgressStatus.ERROR)


class ProcessingStage(str, Enum):
    """Pipeline stage, in execution order.

    Each stage carries a fixed progress floor and a human-readable
    description. Floors strictly increase across the non-error sequence.
    """
    STARTING = "starting"
    VALIDATING = "validating"
    EXTRACTING_METADATA = "extracting_metadata"
    GENERATING_THUMBNAIL = "generating_thumbnail"
    GENERATING_POSTER = "generating_poster"
    TRANSCODING_HLS = "transcoding_hls"
    MOVING_FILE = "moving_file"
    UPDATING_DATABASE = "updating_database"
    COMPLETE = "complete"
    ERROR = "error"

    @property
    def progress(self) -> int:
        """Progress floor (0-100) on entering this stage."""
        return _STAGE_PROGRESS[self]

    @property
    def description(self) -> str:
        return _STAGE_DESCRIPTIONS[self]

    @property
    def db_status(self) -> str:
        """Value persisted to videos.processing_status."""
        if self == ProcessingStage.COMPLETE:
            return ProgressStatus.COMPLETE.value
        if self == ProcessingStage.ERROR:
            return ProgressStatus.ERROR.value
        return ProgressStatus.PROCESSING.value


_STAGE_PROGRESS = {
    ProcessingStage.STARTING: 20,
    ProcessingStage.VALIDATING: 25,
    ProcessingStage.EXTRACTING_METADATA: 30,
    ProcessingStage.GENERATING_THUMBNAIL: 40,
    ProcessingStage.GENERATING_POSTER: 50,
    ProcessingStage.TRANSCODING_HLS: 55,  # 55-85 while qualities finish
    ProcessingStage.MOVING_FILE: 90,
    ProcessingStage.UPDATING_DATABASE: 95,
    ProcessingStage.COMPLETE: 100,
    ProcessingStage.ERROR: 0,
}

_STAGE_DESCRIPTIONS = {
    ProcessingStage.STARTING: "Starting processing",
    ProcessingStage.VALIDATING: "Validating video",
    ProcessingStage.EXTRACTING_METADATA: "Extracting metadata",
    ProcessingStage.GENERATING_THUMBNAIL: "Generating thumbnail",
    ProcessingStage.GENERATING_POSTER: "Generating poster",
    ProcessingStage.TRANSCODING_HLS: "Transcoding to HLS",
    ProcessingStage.MOVING_FILE: "Moving to storage",
    ProcessingStage.UPDATING_DATABASE: "Finalizing",
    ProcessingStage.COMPLETE: "Complete",
    ProcessingStage.ERROR: "Error",
}


# ═══════════════════════════════════════════════════════════════════════════
# Media
# ═══════════════════════════════════════════════════════════════════════════


class VideoMetadata(BaseModel):
    """Technical metadata extracted by ffprobe."""

    model_config = ConfigDict(frozen=True)

    duration: float  # seconds
    width: int
    height: int
    fps: float
    video_codec: str
    audio_codec: str | None = None
    bitrate: int | None = None  # bits per second
    file_size: int  # bytes
    format: str

    @computed_field
    @property
    def resolution(self) -> str:
        """Resolution as 'WxH'."""
        return f"{self.width}x{self.height}"


class QualityPreset(BaseModel):
    """HLS rendition target. Bitrates are in kbps."""

    model_config = ConfigDict(frozen=True)

    name: str
    width: int
    height: int
    video_bitrate: int
    max_bitrate: int
    buffer_size: int
    audio_bitrate: int
    profile: str
    level: str

    @computed_field
    @property
    def bandwidth(self) -> int:
        """Peak bandwidth in bits/s for EXT-X-STREAM-INF."""
        return (self.video_bitrate + self.audio_bitrate) * 1000

    @computed_field
    @property
    def resolution(self) -> str:
        return f"{self.width}x{self.height}"


class QualityResult(BaseModel):
    """Outcome of transcoding a single quality preset."""

    quality: str
    success: bool
    duration_secs: float = 0.0
    bytes_written: int = 0
    segment_count: int = 0
    error: str | None = None


class HlsResult(BaseModel):
    """Outcome of the HLS stage."""

    master_playlist: Path
    results: list[QualityResult]

    @computed_field
    @property
    def qualities(self) -> list[str]:
        """Names of successfully produced qualities, catalog order."""
        return [r.quality for r in self.results if r.success]


# ═══════════════════════════════════════════════════════════════════════════
# Progress
# ═══════════════════════════════════════════════════════════════════════════


class ProgressMetadata(BaseModel):
    """Optional details shown alongside upload progress."""

    filename: str | None = None
    file_size: int | None = None
    duration: float | None = None
    resolution: str | None = None
    qualities: list[str] | None = None


class UploadProgress(BaseModel):
    """Live progress of one upload, as seen by pollers."""

    upload_id: str
    slug: str
    status: ProgressStatus
    progress: int = Field(ge=0, le=100)
    stage: str
    started_at: datetime
    completed_at: datetime | None = None
    estimated_completion: datetime | None = None
    error: str | None = None
    metadata: ProgressMetadata | None = None


class ProcessingState(BaseModel):
    """Persisted processing state of a video record."""

    upload_id: str
    slug: str
    processing_status: str
    processing_progress: int
    processing_error: str | None = None
    created_at: datetime | None = None


# ═══════════════════════════════════════════════════════════════════════════
# Metrics & audit
# ═══════════════════════════════════════════════════════════════════════════


class StageStats(BaseModel):
    """Timing statistics for one pipeline stage."""

    count: int = 0
    total_time_secs: float = 0.0
    avg_time_secs: float = 0.0
    min_time_secs: float | None = None
    max_time_secs: float = 0.0
    failures: int = 0

    def record(self, duration_secs: float, success: bool) -> None:
        self.count += 1
        self.total_time_secs += duration_secs
        self.avg_time_secs = self.total_time_secs / self.count
        if self.min_time_secs is None or duration_secs < self.min_time_secs:
            self.min_time_secs = duration_secs
        self.max_time_secs = max(self.max_time_secs, duration_secs)
        if not success:
            self.failures += 1


class QualityStats(BaseModel):
    """Transcode statistics for one quality preset."""

    transcode_count: int = 0
    total_time_secs: float = 0.0
    avg_time_secs: float = 0.0
    total_bytes: int = 0
    avg_bytes: int = 0
    failures: int = 0

    def record(self, duration_secs: float, bytes_written: int, success: bool) -> None:
        self.transcode_count += 1
        self.total_time_secs += duration_secs
        self.avg_time_secs = self.total_time_secs / self.transcode_count
        self.total_bytes += bytes_written
        self.avg_bytes = self.total_bytes // self.transcode_count
        if not success:
            self.failures += 1


class UploadRecord(BaseModel):
    """Summary of one finished upload."""

    upload_id: str
    slug: str
    timestamp: datetime = Field(default_factory=datetime.now)
    processing_time_secs: float = 0.0
    file_size_bytes: int = 0
    duration_secs: float = 0.0
    resolution: str = ""
    qualities: list[str] = Field(default_factory=list)
    success: bool
    error: str | None = None
    user_id: str | None = None


class ProcessingMetrics(BaseModel):
    """Aggregate processing metrics."""

    total_uploads: int = 0
    successful_uploads: int = 0
    failed_uploads: int = 0
    cancelled_uploads: int = 0
    total_bytes_processed: int = 0
    total_processing_time_secs: float = 0.0
    stage_timings: dict[str, StageStats] = Field(default_factory=dict)
    quality_stats: dict[str, QualityStats] = Field(default_factory=dict)
    error_counts: dict[str, int] = Field(default_factory=dict)
    recent_uploads: list[UploadRecord] = Field(default_factory=list)

    @computed_field
    @property
    def success_rate(self) -> float:
        """Successful uploads as a percentage of all uploads."""
        if self.total_uploads == 0:
            return 0.0
        return self.successful_uploads / self.total_uploads * 100

    @computed_field
    @property
    def failure_rate(self) -> float:
        if self.total_uploads == 0:
            return 0.0
        return self.failed_uploads / self.total_uploads * 100

    @computed_field
    @property
    def avg_processing_time_secs(self) -> float:
        """Mean processing time of successful uploads."""
        if self.successful_uploads == 0:
            return 0.0
        return self.total_processing_time_secs / self.successful_uploads


class MetricsSummary(BaseModel):
    """Compact metrics view for API responses."""

    total_uploads: int
    successful_uploads: int
    failed_uploads: int
    cancelled_uploads: int
    success_rate: float
    failure_rate: float
    total_bytes_processed: int
    total_bytes_human: str
    avg_processing_time_secs: float
    avg_processing_time_human: str
    stage_count: int
    quality_count: int
    error_type_count: int
    active_uploads: int = 0


class AuditEventType(str, Enum):
    """Kinds of audit events."""
    UPLOAD_STARTED = "upload_started"
    UPLOAD_COMPLETED = "upload_completed"
    PROCESSING_STARTED = "processing_started"
    PROCESSING_COMPLETED = "processing_completed"
    PROCESSING_FAILED = "processing_failed"
    UPLOAD_CANCELLED = "upload_cancelled"
    FILE_DELETED = "file_deleted"
    ACCESS_DENIED = "access_denied"


class AuditLogEntry(BaseModel):
    """Single audit trail entry."""

    timestamp: datetime = Field(default_factory=datetime.now)
    event_type: AuditEventType
    upload_id: str
    slug: str
    user_id: str | None = None
    ip_address: str | None = None
    details: dict[str, str] = Field(default_factory=dict)


# ═══════════════════════════════════════════════════════════════════════════
# Persistence & API
# ═══════════════════════════════════════════════════════════════════════════


class VideoFinalization(BaseModel):
    """Fields written to the video record when processing finishes."""

    duration: float
    file_size: int
    resolution: str
    width: int
    height: int
    fps: float
    codec: str
    audio_codec: str | None = None
    bitrate: int | None = None
    format: str
    thumbnail_url: str | None = None
    poster_url: str | None = None
    filename: str
    preview_url: str


class ProcessRequest(BaseModel):
    """Request to process a file already placed in the inbox directory."""

    filename: str = Field(..., description="Name of the file in the inbox directory")
    title: str = Field(..., min_length=1, max_length=255)
    is_public: bool = False
    user_id: str | None = None


class ProcessResponse(BaseModel):
    """Returned immediately after a processing job is scheduled."""

    upload_id: str
    slug: str
    progress_url: str
