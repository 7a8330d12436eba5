"""Tests for processing metrics aggregation."""

import asyncio

import pytest
from hypothesis import given, settings, strategies as st

from app.models.schemas import StageStats, UploadRecord
from app.services.metrics import MetricsStore, Timer


def record(upload_id: str, success: bool = True, seconds: float = 10.0, size: int = 0) -> UploadRecord:
    return UploadRecord(
        upload_id=upload_id,
        slug=f"slug-{upload_id}",
        processing_time_secs=seconds,
        file_size_bytes=size,
        success=success,
        error=None if success else "Validation failed: corrupt",
    )


class TestStageStats:
    @given(durations=st.lists(st.floats(min_value=0.0, max_value=1e4), min_size=1, max_size=50))
    @settings(max_examples=100)
    def test_min_avg_max_are_consistent(self, durations: list[float]) -> None:
        stats = StageStats()
        for d in durations:
            stats.record(d, success=True)

        assert stats.count == len(durations)
        assert stats.min_time_secs == min(durations)
        assert stats.max_time_secs == max(durations)
        assert stats.min_time_secs <= stats.avg_time_secs + 1e-6
        assert stats.avg_time_secs <= stats.max_time_secs + 1e-6


class TestMetricsStore:
    """Aggregate counters and derived rates."""

    @pytest.mark.asyncio
    async def test_empty_rates_are_zero(self) -> None:
        snapshot = await MetricsStore().snapshot()
        assert snapshot.success_rate == 0.0
        assert snapshot.failure_rate == 0.0
        assert snapshot.avg_processing_time_secs == 0.0

    @pytest.mark.asyncio
    async def test_success_failure_cancellation(self) -> None:
        store = MetricsStore()
        await store.record_success(record("a", seconds=10.0, size=1024))
        await store.record_success(record("b", seconds=20.0, size=2048))
        await store.record_failure(record("c", success=False))
        await store.record_cancellation("d", "slug-d")

        m = await store.snapshot()
        assert m.total_uploads == 4
        assert m.successful_uploads == 2
        assert m.failed_uploads == 1
        assert m.cancelled_uploads == 1
        assert m.total_bytes_processed == 3072
        assert m.success_rate == pytest.approx(50.0)
        assert m.failure_rate == pytest.approx(25.0)
        assert m.avg_processing_time_secs == pytest.approx(15.0)
        assert [r.upload_id for r in m.recent_uploads] == ["a", "b", "c", "d"]
        assert m.recent_uploads[-1].error == "Cancelled by user"

    @pytest.mark.asyncio
    async def test_stage_quality_and_error_counters(self) -> None:
        store = MetricsStore()
        await store.record_stage_timing("validation", 1.0, success=True)
        await store.record_stage_timing("validation", 3.0, success=False)
        await store.record_quality_stats("720p", 30.0, 1000, success=True)
        await store.record_quality_stats("720p", 10.0, 0, success=False)
        await store.record_error("validation_error")
        await store.record_error("validation_error")

        m = await store.snapshot()
        stage = m.stage_timings["validation"]
        assert stage.count == 2
        assert stage.failures == 1
        assert stage.min_time_secs == 1.0
        assert stage.max_time_secs == 3.0
        assert stage.avg_time_secs == 2.0
        quality = m.quality_stats["720p"]
        assert quality.transcode_count == 2
        assert quality.failures == 1
        assert quality.total_bytes == 1000
        assert quality.avg_bytes == 500
        assert m.error_counts == {"validation_error": 2}

    @pytest.mark.asyncio
    async def test_stage_timing_aggregate(self) -> None:
        store = MetricsStore()
        for seconds in (1.0, 2.0, 3.0):
            await store.record_stage_timing("hls_transcoding", seconds, success=True)

        stage = (await store.snapshot()).stage_timings["hls_transcoding"]

        assert stage.count == 3
        assert stage.avg_time_secs == pytest.approx(2.0)
        assert stage.min_time_secs == 1.0
        assert stage.max_time_secs == 3.0
        assert stage.failures == 0

    @pytest.mark.asyncio
    async def test_recent_uploads_are_bounded(self) -> None:
        store = MetricsStore(recent_limit=3)
        for i in range(5):
            await store.record_success(record(str(i)))

        m = await store.snapshot()
        assert [r.upload_id for r in m.recent_uploads] == ["2", "3", "4"]
        assert m.total_uploads == 5

    @pytest.mark.asyncio
    async def test_snapshot_is_a_copy(self) -> None:
        store = MetricsStore()
        snapshot = await store.snapshot()
        snapshot.total_uploads = 42

        assert (await store.snapshot()).total_uploads == 0

    @pytest.mark.asyncio
    async def test_summary(self) -> None:
        store = MetricsStore()
        await store.record_success(record("a", seconds=90.0, size=3 * 1024 * 1024))
        await store.record_stage_timing("validation", 1.0, success=True)

        summary = await store.summary(active_uploads=2)

        assert summary.total_uploads == 1
        assert summary.total_bytes_human == "3.00 MB"
        assert summary.avg_processing_time_human == "1m 30s"
        assert summary.stage_count == 1
        assert summary.active_uploads == 2

    @pytest.mark.asyncio
    async def test_concurrent_recording(self) -> None:
        store = MetricsStore()

        await asyncio.gather(*(store.record_success(record(str(i))) for i in range(50)))

        assert (await store.snapshot()).successful_uploads == 50


class TestTimer:
    def test_stop_is_idempotent(self) -> None:
        timer = Timer("op")
        first = timer.stop()
        assert timer.stop() == first
        assert timer.elapsed() == first
