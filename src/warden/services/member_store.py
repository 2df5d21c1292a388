from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional

import aiosqlite

from ..constants import REPUTATION_MAX, REPUTATION_MIN, SERVER_REPUTATION_START
from .base import BaseService, from_iso, to_iso, utcnow


class MemberVerification(str, Enum):
    UNVERIFIED = "UNVERIFIED"
    PENDING = "PENDING"
    VERIFIED = "VERIFIED"
    BANNED = "BANNED"


@dataclass(frozen=True)
class MemberRecord:
    server_id: int
    user_id: int
    joined_at: Optional[datetime]
    is_restricted: bool
    verification_status: MemberVerification
    last_status_change: Optional[datetime]
    last_verified_at: Optional[datetime]
    reputation_score: int


class MemberStore(BaseService[MemberRecord]):
    """Denormalized membership status. Case history is authoritative; this is kept in step by subscribers."""

    async def _create_tables(self, db: aiosqlite.Connection) -> None:
        await db.execute(
            f"""
            CREATE TABLE IF NOT EXISTS members (
                server_id INTEGER NOT NULL,
                user_id INTEGER NOT NULL,
                joined_at TEXT NULL,
                is_restricted INTEGER NOT NULL DEFAULT 0,
                verification_status TEXT NOT NULL DEFAULT 'UNVERIFIED',
                last_status_change TEXT NULL,
                last_verified_at TEXT NULL,
                reputation_score INTEGER NOT NULL DEFAULT {SERVER_REPUTATION_START},
                PRIMARY KEY (server_id, user_id)
            )
            """
        )

    def _from_row(self, row: aiosqlite.Row) -> MemberRecord:
        return MemberRecord(
            server_id=int(row["server_id"]),
            user_id=int(row["user_id"]),
            joined_at=from_iso(row["joined_at"]),
            is_restricted=bool(row["is_restricted"]),
            verification_status=MemberVerification(row["verification_status"]),
            last_status_change=from_iso(row["last_status_change"]),
            last_verified_at=from_iso(row["last_verified_at"]),
            reputation_score=int(row["reputation_score"]),
        )

    @property
    def _get_query(self) -> str:
        return "SELECT * FROM members WHERE server_id = ? AND user_id = ?"

    async def ensure(self, server_id: int, user_id: int, joined_at: Optional[datetime] = None) -> None:
        await self._execute(
            """
            INSERT INTO members (server_id, user_id, joined_at) VALUES (?, ?, ?)
            ON CONFLICT (server_id, user_id) DO UPDATE SET
                joined_at = COALESCE(excluded.joined_at, members.joined_at)
            """,
            (int(server_id), int(user_id), to_iso(joined_at)),
        )
        self.invalidate(server_id, user_id)

    async def set_status(
        self,
        server_id: int,
        user_id: int,
        status: MemberVerification,
        *,
        is_restricted: bool,
        at: Optional[datetime] = None,
    ) -> None:
        at = at or utcnow()
        verified_at = to_iso(at) if status is MemberVerification.VERIFIED else None
        await self._execute(
            """
            UPDATE members SET
                verification_status = ?,
                is_restricted = ?,
                last_status_change = ?,
                last_verified_at = COALESCE(?, last_verified_at)
            WHERE server_id = ? AND user_id = ?
            """,
            (status.value, int(is_restricted), to_iso(at), verified_at, int(server_id), int(user_id)),
        )
        self.invalidate(server_id, user_id)

    async def adjust_reputation(self, server_id: int, user_id: int, delta: int) -> None:
        await self._execute(
            "UPDATE members SET reputation_score = MAX(?, MIN(?, reputation_score + ?)) WHERE server_id = ? AND user_id = ?",
            (REPUTATION_MIN, REPUTATION_MAX, int(delta), int(server_id), int(user_id)),
        )
        self.invalidate(server_id, user_id)
