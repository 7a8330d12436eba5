"""
FastAPI application for the video processing pipeline.

Provides HTTP API for starting uploads, polling progress, metrics and
audit, plus WebSocket progress streaming.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware

from app.api import routes, websocket
from app.config import Settings, get_settings, load_quality_presets
from app.logging_config import setup_logging
from app.services.audit import AuditLogger
from app.services.cleanup import cleanup_old_temp_files
from app.services.errors import MediaToolError
from app.services.media import FFmpegTool, MediaTool, build_presets
from app.services.metrics import MetricsStore
from app.services.pipeline import cancel_running_jobs
from app.services.progress_tracker import ProgressTracker
from app.services.repository import VideoRepository
from app.services.storage import StorageManager

# Configure logging before anything else
settings = get_settings()
setup_logging(settings)
logger = logging.getLogger(__name__)


def create_app(
    settings: Settings,
    media_tool: MediaTool | None = None,
    repository: VideoRepository | None = None,
) -> FastAPI:
    """
    Build the application.

    Args:
        settings: Application settings
        media_tool: Media tool override (defaults to FFmpegTool)
        repository: Repository override (defaults to settings.database_url)
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """
        Application lifespan handler.

        Prepares storage and schema, creates the shared stores and runs
        the progress TTL sweep while the app is up.
        """
        logger.info("Starting Video Pipeline API")
        logger.info(f"Log level: {settings.log_level}")
        logger.info(f"Videos directory: {settings.videos_dir}")
        logger.info(f"Temp directory: {settings.temp_dir}")

        storage = StorageManager(settings)
        storage.initialize()

        repo = repository or VideoRepository.from_settings(settings)
        await repo.init_schema()

        tool = media_tool or FFmpegTool.from_settings(settings)
        try:
            await tool.verify()
        except MediaToolError as e:
            logger.warning(f"Media tools unavailable, processing will fail: {e}")

        removed = await cleanup_old_temp_files(
            settings.temp_dir, settings.temp_file_max_age_hours
        )
        if removed:
            logger.info(f"Removed {removed} stale temp files")

        tracker = ProgressTracker(ttl_seconds=settings.progress_ttl_seconds)
        tracker.start_cleanup_task(settings.progress_cleanup_interval)

        app.state.settings = settings
        app.state.storage = storage
        app.state.repository = repo
        app.state.media_tool = tool
        app.state.quality_presets = build_presets(load_quality_presets(settings))
        app.state.progress_tracker = tracker
        app.state.metrics_store = MetricsStore()
        app.state.audit_logger = AuditLogger()

        yield

        logger.info("Shutting down Video Pipeline API")
        await cancel_running_jobs()
        await tracker.stop_cleanup_task()
        await repo.dispose()

    app = FastAPI(
        title="Video Pipeline API",
        description="API for video ingestion and HLS transcoding",
        version="0.1.0",
        lifespan=lifespan,
    )

    # CORS middleware for frontend
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # Configure for production
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(routes.router)
    app.include_router(websocket.router)

    @app.get("/health")
    async def health_check() -> dict:
        """
        Health check endpoint.

        Returns:
            Basic health status
        """
        return {"status": "ok"}

    @app.get("/health/tools")
    async def tools_health(request: Request) -> dict:
        """
        Check ffmpeg/ffprobe availability.

        Returns:
            Version line of each binary

        Raises:
            503: A binary is missing or broken
        """
        try:
            versions = await request.app.state.media_tool.verify()
        except MediaToolError as e:
            raise HTTPException(status_code=503, detail=str(e))
        return {"status": "ok", "tools": versions}

    return app


app = create_app(settings)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "app.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
    )
