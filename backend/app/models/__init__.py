"""
Pydantic models for the video processing pipeline.

Exports:
    - Media models (VideoMetadata, QualityPreset, HlsResult)
    - Progress models (UploadProgress, ProcessingStage, ProgressStatus)
    - Metrics and audit models
"""

from app.models.schemas import (
    AuditEventType,
    AuditLogEntry,
    HlsResult,
    MetricsSummary,
    ProcessingMetrics,
    ProcessingStage,
    ProgressMetadata,
    ProgressStatus,
    QualityPreset,
    QualityResult,
    QualityStats,
    StageStats,
    UploadProgress,
    UploadRecord,
    VideoFinalization,
    VideoMetadata,
)

__all__ = [
    # Media
    "VideoMetadata",
    "QualityPreset",
    "QualityResult",
    "HlsResult",
    # Progress
    "ProcessingStage",
    "ProgressStatus",
    "ProgressMetadata",
    "UploadProgress",
    # Metrics & audit
    "ProcessingMetrics",
    "StageStats",
    "QualityStats",
    "UploadRecord",
    "MetricsSummary",
    "AuditEventType",
    "AuditLogEntry",
    # Persistence
    "VideoFinalization",
]
