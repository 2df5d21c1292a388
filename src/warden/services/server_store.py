from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Any, Optional

import aiosqlite

from ..config import DetectionDefaults
from .base import BaseService, dump_json, load_json, to_iso, utcnow

# Settings a moderator may change with /warden config-set, and how to coerce them.
EDITABLE_SETTINGS: dict[str, type] = {
    "confidence_threshold": float,
    "message_threshold": int,
    "message_timeframe_seconds": int,
    "auto_restrict": bool,
    "use_ai_on_join": bool,
    "new_account_days": int,
    "new_member_days": int,
}


@dataclass(frozen=True)
class ServerConfig:
    server_id: int
    name: str
    restricted_role_id: Optional[int]
    admin_channel_id: Optional[int]
    verification_channel_id: Optional[int]
    admin_role_id: Optional[int]
    confidence_threshold: float
    message_threshold: int
    message_timeframe_seconds: int
    suspicious_keywords: tuple[str, ...]
    auto_restrict: bool
    use_ai_on_join: bool
    new_account_days: int
    new_member_days: int

    def settings_dict(self) -> dict[str, Any]:
        return {
            "confidence_threshold": self.confidence_threshold,
            "message_threshold": self.message_threshold,
            "message_timeframe_seconds": self.message_timeframe_seconds,
            "suspicious_keywords": list(self.suspicious_keywords),
            "auto_restrict": self.auto_restrict,
            "use_ai_on_join": self.use_ai_on_join,
            "new_account_days": self.new_account_days,
            "new_member_days": self.new_member_days,
        }


def coerce_setting(key: str, raw: str) -> Any:
    """Parse a moderator-supplied setting value. Raises ValueError for unknown keys or bad values."""
    if key == "suspicious_keywords":
        return tuple(part.strip().lower() for part in raw.split(",") if part.strip())
    kind = EDITABLE_SETTINGS.get(key)
    if kind is None:
        raise ValueError(f"Unknown setting: {key}")
    if kind is bool:
        lowered = raw.strip().lower()
        if lowered in {"1", "true", "yes", "y", "on"}:
            return True
        if lowered in {"0", "false", "no", "n", "off"}:
            return False
        raise ValueError(f"{key} expects true/false")
    value = kind(raw.strip())
    if key == "confidence_threshold" and not 0.0 <= value <= 1.0:
        raise ValueError("confidence_threshold must be between 0 and 1")
    if kind is int and value < 0:
        raise ValueError(f"{key} must not be negative")
    return value


class ServerStore(BaseService[ServerConfig]):
    """Per-server moderation configuration, created with defaults on first sight."""

    def __init__(self, sqlite_path: str, cache_ttl: int = 120, defaults: DetectionDefaults | None = None) -> None:
        super().__init__(sqlite_path, cache_ttl)
        self._defaults = defaults or DetectionDefaults()

    async def _create_tables(self, db: aiosqlite.Connection) -> None:
        await db.execute(
            """
            CREATE TABLE IF NOT EXISTS servers (
                server_id INTEGER PRIMARY KEY,
                name TEXT NOT NULL DEFAULT '',
                restricted_role_id INTEGER NULL,
                admin_channel_id INTEGER NULL,
                verification_channel_id INTEGER NULL,
                admin_role_id INTEGER NULL,
                settings_json TEXT NOT NULL DEFAULT '{}',
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            )
            """
        )

    def _from_row(self, row: aiosqlite.Row) -> ServerConfig:
        d = self._defaults
        s = load_json(row["settings_json"], {})
        return ServerConfig(
            server_id=int(row["server_id"]),
            name=str(row["name"] or ""),
            restricted_role_id=row["restricted_role_id"],
            admin_channel_id=row["admin_channel_id"],
            verification_channel_id=row["verification_channel_id"],
            admin_role_id=row["admin_role_id"],
            confidence_threshold=float(s.get("confidence_threshold", d.confidence_threshold)),
            message_threshold=int(s.get("message_threshold", d.message_threshold)),
            message_timeframe_seconds=int(s.get("message_timeframe_seconds", d.message_timeframe_seconds)),
            suspicious_keywords=tuple(s.get("suspicious_keywords", d.suspicious_keywords)),
            auto_restrict=bool(s.get("auto_restrict", d.auto_restrict)),
            use_ai_on_join=bool(s.get("use_ai_on_join", d.use_ai_on_join)),
            new_account_days=int(s.get("new_account_days", d.new_account_days)),
            new_member_days=int(s.get("new_member_days", d.new_member_days)),
        )

    @property
    def _get_query(self) -> str:
        return "SELECT * FROM servers WHERE server_id = ?"

    async def ensure(self, server_id: int, name: str = "") -> ServerConfig:
        cfg = await self.get(server_id)
        if cfg is not None:
            return cfg
        now = to_iso(utcnow())
        await self._execute(
            "INSERT OR IGNORE INTO servers (server_id, name, settings_json, created_at, updated_at) VALUES (?, ?, '{}', ?, ?)",
            (int(server_id), name, now, now),
        )
        cfg = await self.get(server_id)
        assert cfg is not None
        return cfg

    async def set_channels(
        self,
        server_id: int,
        *,
        restricted_role_id: Optional[int] = None,
        admin_channel_id: Optional[int] = None,
        verification_channel_id: Optional[int] = None,
        admin_role_id: Optional[int] = None,
    ) -> ServerConfig:
        """Set any of the role/channel ids. None leaves a value untouched."""
        cfg = await self.ensure(server_id)
        await self._execute(
            """
            UPDATE servers SET
                restricted_role_id = COALESCE(?, restricted_role_id),
                admin_channel_id = COALESCE(?, admin_channel_id),
                verification_channel_id = COALESCE(?, verification_channel_id),
                admin_role_id = COALESCE(?, admin_role_id),
                updated_at = ?
            WHERE server_id = ?
            """,
            (restricted_role_id, admin_channel_id, verification_channel_id, admin_role_id, to_iso(utcnow()), cfg.server_id),
        )
        self.invalidate(server_id)
        return await self.ensure(server_id)

    async def update_settings(self, server_id: int, **changes: Any) -> ServerConfig:
        cfg = await self.ensure(server_id)
        updated = replace(cfg, **changes)
        await self._execute(
            "UPDATE servers SET settings_json = ?, updated_at = ? WHERE server_id = ?",
            (dump_json(updated.settings_dict()), to_iso(utcnow()), int(server_id)),
        )
        self.invalidate(server_id)
        return await self.ensure(server_id)
