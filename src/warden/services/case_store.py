from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

import aiosqlite

from ..moderation.models import CaseStatus, VerificationCase
from ..refs import MessageRef
from .base import BaseService, dump_json, from_iso, load_json, to_iso, utcnow

# Columns update() may touch. Status and resolution go through update_status only.
_UPDATABLE = {"notes", "metadata", "detection_event_id", "detection_count"}


class CaseStore(BaseService[VerificationCase]):
    """Verification cases.

    A partial unique index allows at most one PENDING row per (server, user).
    Every write is conditional on the row still being in the expected state;
    a failed condition shows up as a None/False return, never as a blind overwrite.
    Cases are not cached: several flows write the same row.
    """

    async def _create_tables(self, db: aiosqlite.Connection) -> None:
        await db.execute(
            """
            CREATE TABLE IF NOT EXISTS verification_cases (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                server_id INTEGER NOT NULL,
                user_id INTEGER NOT NULL,
                detection_event_id INTEGER NULL,
                notification_channel_id INTEGER NULL,
                notification_message_id INTEGER NULL,
                thread_id INTEGER NULL,
                status TEXT NOT NULL,
                detection_count INTEGER NOT NULL DEFAULT 1,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL,
                resolved_at TEXT NULL,
                resolved_by INTEGER NULL,
                notes TEXT NOT NULL DEFAULT '',
                metadata_json TEXT NOT NULL DEFAULT '{}'
            )
            """
        )
        await db.execute(
            """
            CREATE UNIQUE INDEX IF NOT EXISTS uq_cases_one_pending
            ON verification_cases (server_id, user_id) WHERE status = 'PENDING'
            """
        )
        await db.execute(
            "CREATE INDEX IF NOT EXISTS idx_cases_server_user ON verification_cases (server_id, user_id, created_at)"
        )

    def _from_row(self, row: aiosqlite.Row) -> VerificationCase:
        notification = None
        if row["notification_message_id"] is not None:
            notification = MessageRef(int(row["notification_channel_id"]), int(row["notification_message_id"]))
        return VerificationCase(
            id=int(row["id"]),
            server_id=int(row["server_id"]),
            actor_id=int(row["user_id"]),
            status=CaseStatus(row["status"]),
            created_at=from_iso(row["created_at"]),
            updated_at=from_iso(row["updated_at"]),
            detection_event_id=row["detection_event_id"],
            notification=notification,
            thread_id=row["thread_id"],
            resolved_at=from_iso(row["resolved_at"]),
            resolved_by=row["resolved_by"],
            detection_count=int(row["detection_count"]),
            notes=str(row["notes"] or ""),
            metadata=load_json(row["metadata_json"], {}),
        )

    @property
    def _get_query(self) -> str:
        return "SELECT * FROM verification_cases WHERE id = ?"

    async def find_by_id(self, case_id: int) -> Optional[VerificationCase]:
        return await self._fetch_one(self._get_query, (int(case_id),))

    async def find_active_pending(self, server_id: int, actor_id: int) -> Optional[VerificationCase]:
        return await self._fetch_one(
            "SELECT * FROM verification_cases WHERE server_id = ? AND user_id = ? AND status = 'PENDING'",
            (int(server_id), int(actor_id)),
        )

    async def list_for_actor(self, server_id: int, actor_id: int, limit: int = 10) -> list[VerificationCase]:
        return await self._fetch_all(
            "SELECT * FROM verification_cases WHERE server_id = ? AND user_id = ? ORDER BY id DESC LIMIT ?",
            (int(server_id), int(actor_id), int(limit)),
        )

    async def list_pending(self, server_id: int, limit: int = 25) -> list[VerificationCase]:
        return await self._fetch_all(
            "SELECT * FROM verification_cases WHERE server_id = ? AND status = 'PENDING' ORDER BY id ASC LIMIT ?",
            (int(server_id), int(limit)),
        )

    async def create(
        self,
        server_id: int,
        actor_id: int,
        *,
        detection_event_id: Optional[int] = None,
        notes: str = "",
        metadata: Optional[dict[str, Any]] = None,
    ) -> Optional[VerificationCase]:
        """Insert a PENDING case. Returns None if the actor already has one."""
        now = to_iso(utcnow())
        async with aiosqlite.connect(self._path) as db:
            try:
                cur = await db.execute(
                    """
                    INSERT INTO verification_cases
                        (server_id, user_id, detection_event_id, status, created_at, updated_at, notes, metadata_json)
                    VALUES (?, ?, ?, 'PENDING', ?, ?, ?, ?)
                    """,
                    (int(server_id), int(actor_id), detection_event_id, now, now, notes, dump_json(metadata or {})),
                )
                await db.commit()
            except aiosqlite.IntegrityError:
                return None
            case_id = cur.lastrowid
        return await self.find_by_id(case_id)

    async def update_status(
        self,
        case_id: int,
        *,
        expected: CaseStatus,
        new: CaseStatus,
        moderator_id: Optional[int] = None,
        at: Optional[datetime] = None,
    ) -> Optional[VerificationCase]:
        """Move a case from `expected` to `new`.

        Terminal statuses stamp resolved_at/resolved_by; PENDING clears them.
        Returns None when the case is not in `expected` any more.
        Raises aiosqlite.IntegrityError if `new` is PENDING and the actor already has a pending case.
        """
        at_iso = to_iso(at or utcnow())
        if new.is_terminal:
            resolved_at, resolved_by = at_iso, moderator_id
        else:
            resolved_at, resolved_by = None, None
        changed = await self._execute(
            """
            UPDATE verification_cases
            SET status = ?, resolved_at = ?, resolved_by = ?, updated_at = ?
            WHERE id = ? AND status = ?
            """,
            (new.value, resolved_at, resolved_by, at_iso, int(case_id), expected.value),
        )
        if not changed:
            return None
        return await self.find_by_id(case_id)

    async def update(
        self,
        case_id: int,
        *,
        expected: CaseStatus = CaseStatus.PENDING,
        **fields: Any,
    ) -> Optional[VerificationCase]:
        """Partial update guarded by status. Returns None if the guard fails."""
        unknown = set(fields) - _UPDATABLE
        if unknown:
            raise ValueError(f"Cannot update case fields: {', '.join(sorted(unknown))}")
        if not fields:
            return await self.find_by_id(case_id)
        assignments = []
        params: list[Any] = []
        for key, value in fields.items():
            if key == "metadata":
                assignments.append("metadata_json = ?")
                params.append(dump_json(value))
            else:
                assignments.append(f"{key} = ?")
                params.append(value)
        assignments.append("updated_at = ?")
        params.extend([to_iso(utcnow()), int(case_id), expected.value])
        changed = await self._execute(
            f"UPDATE verification_cases SET {', '.join(assignments)} WHERE id = ? AND status = ?",
            params,
        )
        if not changed:
            return None
        return await self.find_by_id(case_id)

    async def record_detection(self, case_id: int) -> Optional[VerificationCase]:
        """Count one more signal against a pending case."""
        changed = await self._execute(
            """
            UPDATE verification_cases SET detection_count = detection_count + 1, updated_at = ?
            WHERE id = ? AND status = 'PENDING'
            """,
            (to_iso(utcnow()), int(case_id)),
        )
        if not changed:
            return None
        return await self.find_by_id(case_id)

    async def link_notification(self, case_id: int, ref: MessageRef) -> bool:
        """Attach the notification message. Never replaces one that is already linked."""
        changed = await self._execute(
            """
            UPDATE verification_cases
            SET notification_channel_id = ?, notification_message_id = ?, updated_at = ?
            WHERE id = ? AND notification_message_id IS NULL
            """,
            (ref.channel_id, ref.message_id, to_iso(utcnow()), int(case_id)),
        )
        return changed > 0

    async def link_thread(self, case_id: int, thread_id: int) -> bool:
        changed = await self._execute(
            "UPDATE verification_cases SET thread_id = ?, updated_at = ? WHERE id = ? AND thread_id IS NULL",
            (int(thread_id), to_iso(utcnow()), int(case_id)),
        )
        return changed > 0
