from __future__ import annotations

import os
from dataclasses import dataclass, field


def _get_int(name: str, default: int) -> int:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _get_float(name: str, default: float) -> float:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _get_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name, "").strip().lower()
    if not raw:
        return default
    return raw in {"1", "true", "yes", "y", "on"}


def _get_list(name: str, default: tuple[str, ...]) -> tuple[str, ...]:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    return tuple(part.strip().lower() for part in raw.split(",") if part.strip())


DEFAULT_KEYWORDS: tuple[str, ...] = ("free nitro", "discord nitro", "claim your prize")


@dataclass(frozen=True)
class DetectionDefaults:
    """Values a server starts with before a moderator changes its configuration."""

    confidence_threshold: float = 0.7
    message_threshold: int = 5
    message_timeframe_seconds: int = 10
    suspicious_keywords: tuple[str, ...] = DEFAULT_KEYWORDS
    auto_restrict: bool = True
    use_ai_on_join: bool = True
    new_account_days: int = 7
    new_member_days: int = 3


@dataclass(frozen=True)
class Settings:
    token: str
    dev_guild_id: int
    cache_default_ttl_seconds: int
    sqlite_path: str
    log_level: str
    # Message content intent must be enabled in the Discord Developer Portal,
    # otherwise message detection only sees empty content.
    message_content_intent: bool = True

    # Classifier. An empty key disables AI escalation entirely.
    openai_api_key: str = ""
    openai_model: str = "gpt-4o-mini"
    openai_base_url: str = ""
    classifier_timeout_seconds: float = 10.0

    detection_defaults: DetectionDefaults = field(default_factory=DetectionDefaults)

    @property
    def classifier_enabled(self) -> bool:
        return bool(self.openai_api_key)


def load_settings() -> Settings:
    token = os.getenv("DISCORD_TOKEN", "").strip()
    if not token:
        raise RuntimeError("DISCORD_TOKEN is required")
    defaults = DetectionDefaults(
        confidence_threshold=_get_float("DEFAULT_CONFIDENCE_THRESHOLD", 0.7),
        message_threshold=_get_int("DEFAULT_MESSAGE_THRESHOLD", 5),
        message_timeframe_seconds=_get_int("DEFAULT_MESSAGE_TIMEFRAME_SECONDS", 10),
        suspicious_keywords=_get_list("DEFAULT_SUSPICIOUS_KEYWORDS", DEFAULT_KEYWORDS),
        auto_restrict=_get_bool("DEFAULT_AUTO_RESTRICT", True),
        use_ai_on_join=_get_bool("DEFAULT_USE_AI_ON_JOIN", True),
        new_account_days=_get_int("DEFAULT_NEW_ACCOUNT_DAYS", 7),
        new_member_days=_get_int("DEFAULT_NEW_MEMBER_DAYS", 3),
    )
    return Settings(
        token=token,
        dev_guild_id=_get_int("DEV_GUILD_ID", 0),
        cache_default_ttl_seconds=_get_int("CACHE_DEFAULT_TTL_SECONDS", 120),
        sqlite_path=(os.getenv("SQLITE_PATH", "warden.sqlite3").strip() or "warden.sqlite3"),
        log_level=(os.getenv("LOG_LEVEL", "INFO").strip() or "INFO"),
        message_content_intent=_get_bool("MESSAGE_CONTENT_INTENT", True),
        openai_api_key=os.getenv("OPENAI_API_KEY", "").strip(),
        openai_model=(os.getenv("OPENAI_MODEL", "gpt-4o-mini").strip() or "gpt-4o-mini"),
        openai_base_url=os.getenv("OPENAI_BASE_URL", "").strip(),
        classifier_timeout_seconds=_get_float("CLASSIFIER_TIMEOUT_SECONDS", 10.0),
        detection_defaults=defaults,
    )
