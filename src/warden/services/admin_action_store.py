from __future__ import annotations

from datetime import datetime
from typing import Optional

import aiosqlite

from ..moderation.models import AdminAction, AdminActionType, CaseStatus
from .base import BaseService, from_iso, to_iso, utcnow


class AdminActionStore(BaseService[AdminAction]):
    """Append-only moderator audit trail.

    (case_id, action_type, created_at) is unique, so replaying the same transition
    event cannot write a second entry.
    """

    async def _create_tables(self, db: aiosqlite.Connection) -> None:
        await db.execute(
            """
            CREATE TABLE IF NOT EXISTS admin_actions (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                server_id INTEGER NOT NULL,
                user_id INTEGER NOT NULL,
                moderator_id INTEGER NOT NULL,
                case_id INTEGER NOT NULL,
                action_type TEXT NOT NULL,
                created_at TEXT NOT NULL,
                previous_status TEXT NULL,
                new_status TEXT NULL,
                notes TEXT NULL,
                UNIQUE (case_id, action_type, created_at)
            )
            """
        )
        await db.execute("CREATE INDEX IF NOT EXISTS idx_admin_actions_user ON admin_actions (server_id, user_id)")

    def _from_row(self, row: aiosqlite.Row) -> AdminAction:
        return AdminAction(
            id=int(row["id"]),
            server_id=int(row["server_id"]),
            actor_id=int(row["user_id"]),
            moderator_id=int(row["moderator_id"]),
            case_id=int(row["case_id"]),
            action_type=AdminActionType(row["action_type"]),
            created_at=from_iso(row["created_at"]),
            previous_status=CaseStatus(row["previous_status"]) if row["previous_status"] else None,
            new_status=CaseStatus(row["new_status"]) if row["new_status"] else None,
            notes=row["notes"],
        )

    @property
    def _get_query(self) -> str:
        return "SELECT * FROM admin_actions WHERE id = ?"

    async def create(
        self,
        *,
        server_id: int,
        actor_id: int,
        moderator_id: int,
        case_id: int,
        action_type: AdminActionType,
        previous_status: Optional[CaseStatus] = None,
        new_status: Optional[CaseStatus] = None,
        notes: Optional[str] = None,
        at: Optional[datetime] = None,
    ) -> Optional[AdminAction]:
        """Append an entry. Returns None if this exact entry was already recorded."""
        created_at = at or utcnow()
        async with aiosqlite.connect(self._path) as db:
            try:
                cur = await db.execute(
                    """
                    INSERT INTO admin_actions
                        (server_id, user_id, moderator_id, case_id, action_type, created_at,
                         previous_status, new_status, notes)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        int(server_id),
                        int(actor_id),
                        int(moderator_id),
                        int(case_id),
                        action_type.value,
                        to_iso(created_at),
                        previous_status.value if previous_status else None,
                        new_status.value if new_status else None,
                        notes,
                    ),
                )
                await db.commit()
            except aiosqlite.IntegrityError:
                return None
            action_id = cur.lastrowid
        return AdminAction(
            id=int(action_id),
            server_id=int(server_id),
            actor_id=int(actor_id),
            moderator_id=int(moderator_id),
            case_id=int(case_id),
            action_type=action_type,
            created_at=created_at,
            previous_status=previous_status,
            new_status=new_status,
            notes=notes,
        )

    async def find_by_case(self, case_id: int) -> list[AdminAction]:
        return await self._fetch_all(
            "SELECT * FROM admin_actions WHERE case_id = ? ORDER BY id ASC",
            (int(case_id),),
        )
