from __future__ import annotations

from datetime import datetime
from typing import Optional

import aiosqlite

from ..detection.models import DetectionEvent, Label, SignalType
from ..refs import MessageRef
from .base import BaseService, dump_json, from_iso, load_json, to_iso, utcnow


class DetectionStore(BaseService[DetectionEvent]):
    """Append-only log of suspicion signals, one row per trigger."""

    async def _create_tables(self, db: aiosqlite.Connection) -> None:
        await db.execute(
            """
            CREATE TABLE IF NOT EXISTS detection_events (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                server_id INTEGER NOT NULL,
                user_id INTEGER NOT NULL,
                signal_type TEXT NOT NULL,
                label TEXT NOT NULL,
                confidence REAL NOT NULL,
                reasons_json TEXT NOT NULL DEFAULT '[]',
                detected_at TEXT NOT NULL,
                channel_id INTEGER NULL,
                message_id INTEGER NULL,
                content TEXT NULL,
                case_id INTEGER NULL,
                metadata_json TEXT NOT NULL DEFAULT '{}'
            )
            """
        )
        await db.execute(
            "CREATE INDEX IF NOT EXISTS idx_detections_server_user ON detection_events (server_id, user_id, detected_at)"
        )

    def _from_row(self, row: aiosqlite.Row) -> DetectionEvent:
        source = None
        if row["channel_id"] is not None and row["message_id"] is not None:
            source = MessageRef(int(row["channel_id"]), int(row["message_id"]))
        return DetectionEvent(
            id=int(row["id"]),
            server_id=int(row["server_id"]),
            actor_id=int(row["user_id"]),
            signal_type=SignalType(row["signal_type"]),
            label=Label(row["label"]),
            confidence=float(row["confidence"]),
            reasons=tuple(load_json(row["reasons_json"], [])),
            detected_at=from_iso(row["detected_at"]),
            source=source,
            content=row["content"],
            case_id=row["case_id"],
            metadata=load_json(row["metadata_json"], {}),
        )

    @property
    def _get_query(self) -> str:
        return "SELECT * FROM detection_events WHERE id = ?"

    async def create(
        self,
        *,
        server_id: int,
        actor_id: int,
        signal_type: SignalType,
        label: Label,
        confidence: float,
        reasons: tuple[str, ...] | list[str],
        source: Optional[MessageRef] = None,
        content: Optional[str] = None,
        metadata: Optional[dict] = None,
        detected_at: Optional[datetime] = None,
    ) -> DetectionEvent:
        detected_at = detected_at or utcnow()
        async with aiosqlite.connect(self._path) as db:
            cur = await db.execute(
                """
                INSERT INTO detection_events
                    (server_id, user_id, signal_type, label, confidence, reasons_json, detected_at,
                     channel_id, message_id, content, metadata_json)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    int(server_id),
                    int(actor_id),
                    signal_type.value,
                    label.value,
                    float(confidence),
                    dump_json(list(reasons)),
                    to_iso(detected_at),
                    source.channel_id if source else None,
                    source.message_id if source else None,
                    content,
                    dump_json(metadata or {}),
                ),
            )
            await db.commit()
            event_id = cur.lastrowid
        return DetectionEvent(
            id=int(event_id),
            server_id=int(server_id),
            actor_id=int(actor_id),
            signal_type=signal_type,
            label=label,
            confidence=float(confidence),
            reasons=tuple(reasons),
            detected_at=detected_at,
            source=source,
            content=content,
            metadata=metadata or {},
        )

    async def find_by_id(self, event_id: int) -> Optional[DetectionEvent]:
        return await self._fetch_one(self._get_query, (int(event_id),))

    async def link_case(self, event_id: int, case_id: int) -> bool:
        """Point an event at the case it most recently affected."""
        changed = await self._execute(
            "UPDATE detection_events SET case_id = ? WHERE id = ?",
            (int(case_id), int(event_id)),
        )
        return changed > 0

    async def recent_for_actor(
        self,
        server_id: int,
        actor_id: int,
        *,
        since: Optional[datetime] = None,
        limit: int = 20,
    ) -> list[DetectionEvent]:
        if since is None:
            return await self._fetch_all(
                "SELECT * FROM detection_events WHERE server_id = ? AND user_id = ? ORDER BY id DESC LIMIT ?",
                (int(server_id), int(actor_id), int(limit)),
            )
        return await self._fetch_all(
            """
            SELECT * FROM detection_events
            WHERE server_id = ? AND user_id = ? AND detected_at >= ?
            ORDER BY id DESC LIMIT ?
            """,
            (int(server_id), int(actor_id), to_iso(since), int(limit)),
        )

    async def for_case(self, case_id: int) -> list[DetectionEvent]:
        return await self._fetch_all(
            "SELECT * FROM detection_events WHERE case_id = ? ORDER BY id ASC",
            (int(case_id),),
        )
