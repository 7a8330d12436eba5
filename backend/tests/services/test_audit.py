"""Tests for the bounded audit trail."""

import pytest

from app.models.schemas import AuditEventType
from app.services.audit import AuditLogger


class TestAuditLogger:
    @pytest.mark.asyncio
    async def test_log_records_entry(self) -> None:
        audit = AuditLogger()

        entry = await audit.log(
            AuditEventType.UPLOAD_STARTED,
            "u1",
            "slug-1",
            user_id="user-7",
            details={"filename": "clip.mp4"},
            ip_address="10.0.0.1",
        )

        assert entry.event_type == AuditEventType.UPLOAD_STARTED
        assert entry.details == {"filename": "clip.mp4"}
        assert entry.ip_address == "10.0.0.1"
        assert len(audit) == 1

    @pytest.mark.asyncio
    async def test_bounded_oldest_evicted(self) -> None:
        audit = AuditLogger(max_entries=3)
        for i in range(5):
            await audit.log(AuditEventType.PROCESSING_STARTED, f"u{i}", f"s{i}")

        entries = await audit.recent_entries()

        assert len(audit) == 3
        assert [e.upload_id for e in entries] == ["u2", "u3", "u4"]

    @pytest.mark.asyncio
    async def test_recent_entries_limit(self) -> None:
        audit = AuditLogger()
        for i in range(5):
            await audit.log(AuditEventType.PROCESSING_STARTED, f"u{i}", f"s{i}")

        assert [e.upload_id for e in await audit.recent_entries(2)] == ["u3", "u4"]
        assert await audit.recent_entries(0) == []

    @pytest.mark.asyncio
    async def test_entries_for_upload(self) -> None:
        audit = AuditLogger()
        await audit.log(AuditEventType.PROCESSING_STARTED, "u1", "s1")
        await audit.log(AuditEventType.PROCESSING_STARTED, "u2", "s2")
        await audit.log(AuditEventType.PROCESSING_FAILED, "u1", "s1", details={"error": "x"})

        events = [e.event_type for e in await audit.entries_for_upload("u1")]

        assert events == [AuditEventType.PROCESSING_STARTED, AuditEventType.PROCESSING_FAILED]
