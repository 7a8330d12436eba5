"""
In-memory audit trail for upload and processing events.

Bounded: only the most recent entries are kept.
"""

import asyncio
import logging
from collections import deque

from app.models.schemas import AuditEventType, AuditLogEntry

logger = logging.getLogger(__name__)

MAX_AUDIT_ENTRIES = 1000


class AuditLogger:
    """
    Append-only bounded audit log.

    Example:
        audit = AuditLogger()
        await audit.log(
            AuditEventType.PROCESSING_STARTED,
            upload_id,
            slug,
            details={"filename": "clip.mp4"},
        )
        entries = await audit.entries_for_upload(upload_id)
    """

    def __init__(self, max_entries: int = MAX_AUDIT_ENTRIES):
        self.max_entries = max_entries
        self._entries: deque[AuditLogEntry] = deque(maxlen=max_entries)
        self._lock = asyncio.Lock()

    async def log(
        self,
        event_type: AuditEventType,
        upload_id: str,
        slug: str,
        user_id: str | None = None,
        details: dict[str, str] | None = None,
        ip_address: str | None = None,
    ) -> AuditLogEntry:
        entry = AuditLogEntry(
            event_type=event_type,
            upload_id=upload_id,
            slug=slug,
            user_id=user_id,
            ip_address=ip_address,
            details=details or {},
        )

        logger.info(
            f"AUDIT | {event_type.value} | upload={upload_id} slug={slug} "
            f"user={user_id or '-'}"
        )

        async with self._lock:
            self._entries.append(entry)

        return entry

    async def recent_entries(self, limit: int = 100) -> list[AuditLogEntry]:
        """Most recent entries, oldest first."""
        async with self._lock:
            if limit <= 0:
                return []
            return list(self._entries)[-limit:]

    async def entries_for_upload(self, upload_id: str) -> list[AuditLogEntry]:
        async with self._lock:
            return [e for e in self._entries if e.upload_id == upload_id]

    def __len__(self) -> int:
        return len(self._entries)
