"""Property-based tests for preview frame timestamps and extraction."""

from pathlib import Path

import pytest
from hypothesis import given, settings, strategies as st

from app.services.errors import PosterError, ThumbnailError
from app.services.media.frames import (
    POSTER_FILENAME,
    THUMBNAIL_FILENAME,
    FrameExtractor,
    poster_timestamp,
    thumbnail_timestamp,
)
from conftest import FakeMediaTool

durations = st.floats(min_value=0.0, max_value=86_400.0, allow_nan=False, allow_infinity=False)


class TestFrameTimestamps:
    """Timestamps stay inside the clip and respect their minimums."""

    @pytest.mark.parametrize(
        "duration,expected",
        [(100.0, 10.0), (60.0, 6.0), (10.0, 1.0), (5.0, 1.0), (1.5, 0.5), (0.5, 0.0), (0.0, 0.0)],
    )
    def test_thumbnail_examples(self, duration: float, expected: float) -> None:
        assert thumbnail_timestamp(duration) == pytest.approx(expected)

    @pytest.mark.parametrize(
        "duration,expected",
        [(100.0, 25.0), (60.0, 15.0), (10.0, 2.5), (5.0, 2.0), (4.0, 2.0), (2.5, 1.5), (0.8, 0.0)],
    )
    def test_poster_examples(self, duration: float, expected: float) -> None:
        assert poster_timestamp(duration) == pytest.approx(expected)

    @given(duration=durations)
    @settings(max_examples=200)
    def test_never_negative(self, duration: float) -> None:
        assert thumbnail_timestamp(duration) >= 0.0
        assert poster_timestamp(duration) >= 0.0

    @given(duration=st.floats(min_value=1.0, max_value=86_400.0))
    @settings(max_examples=200)
    def test_at_least_one_second_before_end(self, duration: float) -> None:
        assert thumbnail_timestamp(duration) <= duration - 1.0
        assert poster_timestamp(duration) <= duration - 1.0

    @given(duration=st.floats(min_value=10.0, max_value=86_400.0))
    @settings(max_examples=100)
    def test_thumbnail_uses_ten_percent_for_long_clips(self, duration: float) -> None:
        assert thumbnail_timestamp(duration) == pytest.approx(duration * 0.10)

    @given(duration=st.floats(min_value=8.0, max_value=86_400.0))
    @settings(max_examples=100)
    def test_poster_uses_quarter_for_long_clips(self, duration: float) -> None:
        assert poster_timestamp(duration) == pytest.approx(duration * 0.25)


class TestFrameExtractor:
    """Thumbnail and poster generation through the media tool."""

    @pytest.mark.asyncio
    async def test_thumbnail_is_padded(self, tmp_path: Path, app_settings) -> None:
        tool = FakeMediaTool()
        extractor = FrameExtractor(tool, app_settings)

        path = await extractor.generate_thumbnail(tmp_path / "src.tmp", tmp_path / "out", 60.0)

        assert path == tmp_path / "out" / THUMBNAIL_FILENAME
        assert path.exists()
        call = tool.frame_calls[0]
        assert call["pad"] is True
        assert (call["width"], call["height"], call["quality"]) == (320, 180, 85)
        assert call["timestamp"] == pytest.approx(6.0)

    @pytest.mark.asyncio
    async def test_poster_is_not_padded(self, tmp_path: Path, app_settings) -> None:
        tool = FakeMediaTool()
        extractor = FrameExtractor(tool, app_settings)

        path = await extractor.generate_poster(tmp_path / "src.tmp", tmp_path / "out", 60.0)

        assert path.name == POSTER_FILENAME
        call = tool.frame_calls[0]
        assert call["pad"] is False
        assert (call["width"], call["height"]) == (1920, 1080)
        assert call["timestamp"] == pytest.approx(15.0)

    @pytest.mark.asyncio
    async def test_tool_failure_becomes_thumbnail_error(self, tmp_path: Path, app_settings) -> None:
        tool = FakeMediaTool()
        tool.fail_frames.add(THUMBNAIL_FILENAME)

        with pytest.raises(ThumbnailError) as exc_info:
            await FrameExtractor(tool, app_settings).generate_thumbnail(
                tmp_path / "src.tmp", tmp_path / "out", 60.0
            )

        assert exc_info.value.fatal is False
        assert exc_info.value.user_message.startswith("Thumbnail generation failed: ")

    @pytest.mark.asyncio
    async def test_missing_output_becomes_poster_error(self, tmp_path: Path, app_settings) -> None:
        class SilentTool(FakeMediaTool):
            async def extract_frame(self, *args, **kwargs) -> None:
                return None

        with pytest.raises(PosterError, match="Frame not created"):
            await FrameExtractor(SilentTool(), app_settings).generate_poster(
                tmp_path / "src.tmp", tmp_path / "out", 60.0
            )
