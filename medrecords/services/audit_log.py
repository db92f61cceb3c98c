"""Append-only audit trail of patient mutations.

Audit writes are best-effort: a failed write is logged and swallowed so it
never undoes the mutation it describes.
"""

import json
import logging
from datetime import datetime, timezone
from typing import Any

import aiosqlite

from medrecords.database import DatabaseAdapter
from medrecords.models.audit import AuditAction, AuditLogEntry

logger = logging.getLogger(__name__)

RECENT_ACTIVITY_LIMIT = 10


def _row_to_entry(row) -> AuditLogEntry:
    try:
        details = json.loads(row["details"] or "{}")
    except json.JSONDecodeError:
        logger.debug("Failed to parse audit details for entry %s", row["id"])
        details = {}
    return AuditLogEntry(
        id=row["id"],
        action=row["action"],
        patient_id=row["patient_id"],
        timestamp=row["timestamp"],
        details=details,
    )


class AuditLog:
    def __init__(self, db: DatabaseAdapter) -> None:
        self.db = db

    async def record(
        self,
        action: AuditAction,
        patient_id: str,
        details: dict[str, Any],
    ) -> AuditLogEntry | None:
        """Append one entry. Returns None if the write failed."""
        timestamp = datetime.now(timezone.utc).isoformat()
        try:
            async with self.db.transaction():
                await self.db.execute(
                    "INSERT INTO audit_logs (action, patient_id, timestamp, details) VALUES (?, ?, ?, ?)",
                    (action.value, patient_id, timestamp, json.dumps(details)),
                )
                await self.db.commit()
        except aiosqlite.Error:
            logger.exception("Failed to write %s audit entry for %s", action.value, patient_id)
            return None
        return AuditLogEntry(action=action, patient_id=patient_id, timestamp=timestamp, details=details)

    async def recent(self, limit: int = RECENT_ACTIVITY_LIMIT) -> list[AuditLogEntry]:
        rows = await self.db.fetch_all(
            "SELECT * FROM audit_logs ORDER BY timestamp DESC, id DESC LIMIT ?",
            (limit,),
        )
        return [_row_to_entry(row) for row in rows]

