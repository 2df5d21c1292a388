from __future__ import annotations

from typing import Final

# Discord limits
MAX_MESSAGE_LENGTH: Final[int] = 2000
MAX_FIELD_VALUE: Final[int] = 1024

# Colors (hex values)
COLORS = {
    "default": 0x5865F2,
    "success": 0x57F287,
    "warning": 0xF1C40F,
    "error": 0xED4245,
    "info": 0x3498DB,
    "muted": 0x4F545C,
}

# Reputation
GLOBAL_REPUTATION_START: Final[int] = 100
SERVER_REPUTATION_START: Final[int] = 50
REPUTATION_MIN: Final[int] = 0
REPUTATION_MAX: Final[int] = 100

# Detection
HIGH_CONFIDENCE: Final[float] = 0.8
MEDIUM_CONFIDENCE: Final[float] = 0.5
HISTORY_LOOKBACK_HOURS: Final[int] = 24

# Button custom ids are "warden:<action>:<case_id>"
CUSTOM_ID_PREFIX: Final[str] = "warden"

ERROR_MESSAGES = {
    "missing_permissions": "You don't have permission to use this command.",
    "no_guild": "This command can only be used in a server.",
    "unexpected": "Something went wrong while handling that request.",
    "not_configured": "Warden is not configured for this server yet. Use `/warden setup`.",
}
