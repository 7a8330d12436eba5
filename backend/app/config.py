"""
Application configuration and settings.
"""

import logging
from functools import lru_cache
from pathlib import Path

import yaml
from pydantic_settings import BaseSettings

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Paths
    data_root: Path = Path("/data")
    inbox_dir: Path = Path("/data/inbox")
    videos_dir: Path = Path("/data/videos")
    temp_dir: Path = Path("/data/temp")
    config_dir: Path = Path("/app/config")

    # Database
    database_url: str = "sqlite+aiosqlite:////data/videos.db"
    database_echo: bool = False

    # External tools
    ffmpeg_path: str = "ffmpeg"
    ffprobe_path: str = "ffprobe"
    ffmpeg_threads: int = 4
    ffmpeg_timeout: int = 3600  # Per-quality transcode timeout
    ffprobe_timeout: int = 30
    frame_timeout: int = 120

    # HLS
    hls_segment_duration: int = 6

    # Preview images
    thumbnail_width: int = 320
    thumbnail_height: int = 180
    thumbnail_quality: int = 85
    poster_width: int = 1920
    poster_height: int = 1080
    poster_quality: int = 85

    # Upload limits and housekeeping
    max_file_size: int = 2 * 1024 * 1024 * 1024  # 2 GiB
    temp_file_max_age_hours: int = 24

    # Progress tracking
    progress_ttl_seconds: int = 3600
    progress_cleanup_interval: int = 300

    # Logging
    log_level: str = "INFO"
    log_format: str = "structured"  # "simple" or "structured"

    # Per-module log levels (optional overrides)
    log_level_pipeline: str | None = None
    log_level_media: str | None = None
    log_level_progress: str | None = None
    log_level_metrics: str | None = None
    log_level_storage: str | None = None
    log_level_repository: str | None = None

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


def load_quality_presets(settings: Settings | None = None) -> list[dict] | None:
    """
    Load quality preset overrides from config/quality_presets.yaml.

    File format:
        presets:
          - name: 720p
            width: 1280
            height: 720
            video_bitrate: 2800
            ...

    Args:
        settings: Optional settings instance

    Returns:
        List of preset dictionaries, or None if no override file exists
    """
    if settings is None:
        settings = get_settings()

    presets_path = settings.config_dir / "quality_presets.yaml"
    if not presets_path.exists():
        return None

    with open(presets_path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}

    presets = data.get("presets")
    if not presets:
        logger.warning(f"No presets defined in {presets_path}, using built-in catalog")
        return None

    return presets
