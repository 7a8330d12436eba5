"""
Persistence of the video record fields the pipeline reads and writes.

Uses SQLAlchemy Core on the asyncio engine (aiosqlite by default, any
async driver via DATABASE_URL).
"""

import logging
from datetime import datetime, timezone

import sqlalchemy as sa
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from app.config import Settings
from app.models.schemas import ProcessingStage, ProcessingState, VideoFinalization
from app.services.errors import DatabaseError

logger = logging.getLogger(__name__)

metadata = sa.MetaData()

videos = sa.Table(
    "videos",
    metadata,
    sa.Column("id", sa.Integer, primary_key=True),
    sa.Column("upload_id", sa.String(64), unique=True, nullable=False),
    sa.Column("slug", sa.String(255), unique=True, nullable=False),
    sa.Column("title", sa.String(255), nullable=False),
    sa.Column("is_public", sa.Boolean, nullable=False, default=False),
    sa.Column("user_id", sa.String(64), nullable=True),
    sa.Column("status", sa.String(20), nullable=False, default="processing"),
    # Processing state
    sa.Column(
        "processing_status",
        sa.String(20),
        sa.CheckConstraint(
            "processing_status IN ('uploading', 'processing', 'complete', 'error')",
            name="ck_videos_processing_status",
        ),
        nullable=False,
        default="uploading",
    ),
    sa.Column("processing_progress", sa.Integer, nullable=False, default=0),
    sa.Column("processing_error", sa.Text, nullable=True),
    # Technical metadata (set on completion)
    sa.Column("duration", sa.Float, nullable=True),  # seconds
    sa.Column("file_size", sa.BigInteger, nullable=True),
    sa.Column("resolution", sa.String(20), nullable=True),
    sa.Column("width", sa.Integer, nullable=True),
    sa.Column("height", sa.Integer, nullable=True),
    sa.Column("fps", sa.Float, nullable=True),
    sa.Column("codec", sa.String(50), nullable=True),
    sa.Column("audio_codec", sa.String(50), nullable=True),
    sa.Column("bitrate", sa.BigInteger, nullable=True),
    sa.Column("format", sa.String(100), nullable=True),
    # Storage references
    sa.Column("thumbnail_url", sa.String(512), nullable=True),
    sa.Column("poster_url", sa.String(512), nullable=True),
    sa.Column("filename", sa.String(255), nullable=True),
    sa.Column("preview_url", sa.String(512), nullable=True),
    sa.Column("created_at", sa.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)),
    sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    sa.Index("ix_videos_processing_status", "processing_status"),
)

# Retry configuration for transient database errors (e.g. "database is locked")
DB_RETRY = retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=0.5, min=0.5, max=5),
    retry=retry_if_exception_type(OperationalError),
    reraise=True,
)


class VideoRepository:
    """
    Async access to the videos table.

    Example:
        repo = VideoRepository.from_settings(settings)
        await repo.init_schema()
        await repo.update_processing_status(upload_id, ProcessingStage.VALIDATING)
    """

    def __init__(self, engine: AsyncEngine):
        self.engine = engine

    @classmethod
    def from_settings(cls, settings: Settings) -> "VideoRepository":
        engine = create_async_engine(settings.database_url, echo=settings.database_echo)
        return cls(engine)

    async def init_schema(self) -> None:
        """Create tables if they do not exist."""
        async with self.engine.begin() as conn:
            await conn.run_sync(metadata.create_all)
        logger.info("Database schema ready")

    async def dispose(self) -> None:
        await self.engine.dispose()

    @DB_RETRY
    async def _execute(self, statement) -> int:
        async with self.engine.begin() as conn:
            result = await conn.execute(statement)
            return result.rowcount

    async def create_upload_record(
        self,
        upload_id: str,
        slug: str,
        title: str,
        is_public: bool,
        filename: str | None = None,
        user_id: str | None = None,
    ) -> None:
        """
        Insert the initial record for an upload.

        Raises:
            DatabaseError: If the insert fails
        """
        statement = videos.insert().values(
            upload_id=upload_id,
            slug=slug,
            title=title,
            is_public=is_public,
            filename=filename,
            user_id=user_id,
            status="processing",
            processing_status="uploading",
            processing_progress=0,
        )
        try:
            await self._execute(statement)
        except SQLAlchemyError as e:
            raise DatabaseError(f"Failed to create video record: {e}", e)

        logger.info(f"Created video record {upload_id} ({slug})")

    async def update_processing_status(
        self,
        upload_id: str,
        stage: ProcessingStage,
        error_message: str | None = None,
    ) -> None:
        """
        Persist processing status and progress floor for a stage.

        Raises:
            DatabaseError: If the update fails
        """
        statement = (
            videos.update()
            .where(videos.c.upload_id == upload_id)
            .values(
                processing_status=stage.db_status,
                processing_progress=stage.progress,
                processing_error=error_message,
                updated_at=datetime.now(timezone.utc),
            )
        )
        try:
            rowcount = await self._execute(statement)
        except SQLAlchemyError as e:
            raise DatabaseError(f"Failed to update processing status: {e}", e)

        if rowcount == 0:
            logger.warning(f"No video record for {upload_id} while setting {stage.value}")
        logger.debug(f"Processing status updated: {stage.description} ({stage.progress}%)")

    async def finalize_video(self, upload_id: str, finalization: VideoFinalization) -> None:
        """
        Write completion metadata and activate the video.

        Raises:
            DatabaseError: If the update fails or no record matches
        """
        statement = (
            videos.update()
            .where(videos.c.upload_id == upload_id)
            .values(
                **finalization.model_dump(),
                processing_status=ProcessingStage.UPDATING_DATABASE.db_status,
                processing_progress=ProcessingStage.UPDATING_DATABASE.progress,
                status="active",
                updated_at=datetime.now(timezone.utc),
            )
        )
        try:
            rowcount = await self._execute(statement)
        except SQLAlchemyError as e:
            raise DatabaseError(f"Failed to update video record: {e}", e)

        if rowcount == 0:
            raise DatabaseError(f"Video record not found: {upload_id}")

    async def get_processing_state(self, upload_id: str) -> ProcessingState | None:
        """
        Read the persisted processing state.

        Raises:
            DatabaseError: If the query fails
        """
        statement = sa.select(
            videos.c.upload_id,
            videos.c.slug,
            videos.c.processing_status,
            videos.c.processing_progress,
            videos.c.processing_error,
            videos.c.created_at,
        ).where(videos.c.upload_id == upload_id)

        try:
            async with self.engine.connect() as conn:
                row = (await conn.execute(statement)).mappings().first()
        except SQLAlchemyError as e:
            raise DatabaseError(f"Failed to read video record: {e}", e)

        if row is None:
            return None
        return ProcessingState(**row)

    async def get_video(self, upload_id: str) -> dict | None:
        """Full record as a dictionary."""
        statement = sa.select(videos).where(videos.c.upload_id == upload_id)
        try:
            async with self.engine.connect() as conn:
                row = (await conn.execute(statement)).mappings().first()
        except SQLAlchemyError as e:
            raise DatabaseError(f"Failed to read video record: {e}", e)
        return dict(row) if row else None
