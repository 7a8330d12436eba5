"""Shared fixtures for pipeline tests.

FakeMediaTool stands in for ffmpeg/ffprobe: it writes the files the real
tools would produce, so every stage downstream of the tool runs for real.
"""

from pathlib import Path

import pytest
from sqlalchemy.ext.asyncio import create_async_engine

from app.config import Settings
from app.models.schemas import QualityPreset, VideoMetadata
from app.services.audit import AuditLogger
from app.services.errors import MediaToolError
from app.services.media import MediaTool
from app.services.metrics import MetricsStore
from app.services.progress_tracker import ProgressTracker
from app.services.repository import VideoRepository


def make_metadata(
    width: int = 1280,
    height: int = 720,
    duration: float = 60.0,
    codec: str = "h264",
) -> VideoMetadata:
    return VideoMetadata(
        duration=duration,
        width=width,
        height=height,
        fps=30.0,
        video_codec=codec,
        audio_codec="aac",
        bitrate=2_500_000,
        file_size=1024,
        format="mov,mp4,m4a,3gp,3g2,mj2",
    )


class FakeMediaTool(MediaTool):
    """Media tool double with switchable failures."""

    def __init__(self, metadata: VideoMetadata | None = None):
        self.metadata = metadata or make_metadata()
        self.fail_verify = False
        self.fail_validate = False
        self.fail_probe = False
        self.fail_frames: set[str] = set()  # output filenames to fail
        self.fail_qualities: set[str] = set()
        self.segments_per_quality = 3
        self.frame_calls: list[dict] = []
        self.transcoded: list[str] = []

    async def verify(self) -> dict[str, str]:
        if self.fail_verify:
            raise MediaToolError("ffmpeg", "executable not found: ffmpeg")
        return {"ffmpeg": "ffmpeg version fake", "ffprobe": "ffprobe version fake"}

    async def probe(self, media_path: Path) -> VideoMetadata:
        if self.fail_probe:
            raise MediaToolError("ffprobe", "exited with code 1", returncode=1)
        return self.metadata

    async def validate(self, media_path: Path) -> None:
        if self.fail_validate:
            raise MediaToolError(
                "ffmpeg", "exited with code 1", returncode=1,
                stderr="moov atom not found",
            )

    async def extract_frame(
        self,
        input_path: Path,
        output_path: Path,
        timestamp: float,
        width: int,
        height: int,
        quality: int,
        pad: bool,
    ) -> None:
        self.frame_calls.append({
            "output": output_path.name,
            "timestamp": timestamp,
            "width": width,
            "height": height,
            "quality": quality,
            "pad": pad,
        })
        if output_path.name in self.fail_frames:
            raise MediaToolError("ffmpeg", "exited with code 1", returncode=1)
        output_path.write_bytes(b"\xff\xd8\xff\xe0fake-jpeg")

    async def transcode_hls(
        self,
        input_path: Path,
        output_dir: Path,
        preset: QualityPreset,
        segment_duration: int,
    ) -> None:
        output_dir.mkdir(parents=True, exist_ok=True)
        if preset.name in self.fail_qualities:
            # Leave partial output behind like an interrupted encode
            (output_dir / "segment_000.ts").write_bytes(b"partial")
            raise MediaToolError("ffmpeg", "exited with code 1", returncode=1)

        lines = ["#EXTM3U", "#EXT-X-VERSION:3", f"#EXT-X-TARGETDURATION:{segment_duration}"]
        for i in range(self.segments_per_quality):
            name = f"segment_{i:03d}.ts"
            (output_dir / name).write_bytes(b"\x47" * 188)
            lines += [f"#EXTINF:{segment_duration}.0,", name]
        lines.append("#EXT-X-ENDLIST")
        (output_dir / "index.m3u8").write_text("\n".join(lines) + "\n")
        self.transcoded.append(preset.name)


@pytest.fixture
def app_settings(tmp_path: Path) -> Settings:
    return Settings(
        data_root=tmp_path,
        inbox_dir=tmp_path / "inbox",
        videos_dir=tmp_path / "videos",
        temp_dir=tmp_path / "temp",
        config_dir=tmp_path / "config",
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'videos.db'}",
    )


@pytest.fixture
def media_tool() -> FakeMediaTool:
    return FakeMediaTool()


@pytest.fixture
async def repository(app_settings: Settings):
    repo = VideoRepository(create_async_engine(app_settings.database_url))
    await repo.init_schema()
    yield repo
    await repo.dispose()


@pytest.fixture
def tracker() -> ProgressTracker:
    return ProgressTracker(ttl_seconds=3600)


@pytest.fixture
def metrics_store() -> MetricsStore:
    return MetricsStore()


@pytest.fixture
def audit_logger() -> AuditLogger:
    return AuditLogger()
