"""Tests for storage layout and file relocation."""

from pathlib import Path

import pytest

from app.services.errors import StorageError
from app.services.storage import StorageManager


class TestStorageManager:
    def test_initialize_creates_tree(self, app_settings) -> None:
        StorageManager(app_settings).initialize()

        assert (app_settings.videos_dir / "public").is_dir()
        assert (app_settings.videos_dir / "private").is_dir()
        assert app_settings.temp_dir.is_dir()
        assert app_settings.inbox_dir.is_dir()

    def test_paths(self, app_settings) -> None:
        storage = StorageManager(app_settings)

        assert storage.video_dir("clip-1a2b3c4d", True) == (
            app_settings.videos_dir / "public" / "clip-1a2b3c4d"
        )
        assert storage.video_dir("clip-1a2b3c4d", False).parent.name == "private"
        assert storage.temp_path("abc") == app_settings.temp_dir / "abc.tmp"

    def test_public_url(self) -> None:
        assert StorageManager.public_url("clip", True, "master.m3u8") == (
            "/storage/videos/public/clip/master.m3u8"
        )
        assert StorageManager.public_url("clip", False, "poster.jpg") == (
            "/storage/videos/private/clip/poster.jpg"
        )

    @pytest.mark.asyncio
    async def test_move_file_creates_parents(self, app_settings, tmp_path: Path) -> None:
        source = tmp_path / "abc.tmp"
        source.write_bytes(b"video")
        destination = tmp_path / "videos" / "public" / "clip" / "original.mp4"

        result = await StorageManager(app_settings).move_file(source, destination)

        assert result == destination
        assert destination.read_bytes() == b"video"
        assert not source.exists()

    @pytest.mark.asyncio
    async def test_move_missing_source(self, app_settings, tmp_path: Path) -> None:
        with pytest.raises(StorageError, match="Source file not found") as exc_info:
            await StorageManager(app_settings).move_file(
                tmp_path / "missing.tmp", tmp_path / "out" / "original.mp4"
            )

        assert exc_info.value.error_kind == "file_move_error"
