from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

import aiosqlite

from ..constants import GLOBAL_REPUTATION_START, REPUTATION_MAX, REPUTATION_MIN
from .base import BaseService, from_iso, to_iso, utcnow


@dataclass(frozen=True)
class UserRecord:
    user_id: int
    username: str
    account_created_at: Optional[datetime]
    global_reputation: int
    first_seen_at: datetime


class UserStore(BaseService[UserRecord]):
    """Cross-server view of an account. Reputation here follows the user between servers."""

    async def _create_tables(self, db: aiosqlite.Connection) -> None:
        await db.execute(
            f"""
            CREATE TABLE IF NOT EXISTS users (
                user_id INTEGER PRIMARY KEY,
                username TEXT NOT NULL DEFAULT '',
                account_created_at TEXT NULL,
                global_reputation INTEGER NOT NULL DEFAULT {GLOBAL_REPUTATION_START},
                first_seen_at TEXT NOT NULL
            )
            """
        )

    def _from_row(self, row: aiosqlite.Row) -> UserRecord:
        return UserRecord(
            user_id=int(row["user_id"]),
            username=str(row["username"]),
            account_created_at=from_iso(row["account_created_at"]),
            global_reputation=int(row["global_reputation"]),
            first_seen_at=from_iso(row["first_seen_at"]),
        )

    @property
    def _get_query(self) -> str:
        return "SELECT * FROM users WHERE user_id = ?"

    async def ensure(self, user_id: int, username: str = "", account_created_at: Optional[datetime] = None) -> None:
        # Username changes are picked up on every sighting; reputation is never reset.
        await self._execute(
            """
            INSERT INTO users (user_id, username, account_created_at, first_seen_at)
            VALUES (?, ?, ?, ?)
            ON CONFLICT (user_id) DO UPDATE SET
                username = CASE WHEN excluded.username != '' THEN excluded.username ELSE users.username END,
                account_created_at = COALESCE(users.account_created_at, excluded.account_created_at)
            """,
            (int(user_id), username, to_iso(account_created_at), to_iso(utcnow())),
        )
        self.invalidate(user_id)

    async def adjust_reputation(self, user_id: int, delta: int) -> None:
        await self._execute(
            "UPDATE users SET global_reputation = MAX(?, MIN(?, global_reputation + ?)) WHERE user_id = ?",
            (REPUTATION_MIN, REPUTATION_MAX, int(delta), int(user_id)),
        )
        self.invalidate(user_id)
