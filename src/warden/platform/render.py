from __future__ import annotations

from datetime import datetime
from typing import Optional

import discord

from ..constants import COLORS, CUSTOM_ID_PREFIX, MAX_FIELD_VALUE
from ..detection.confidence import format_confidence
from ..moderation.models import CaseStatus
from .base import CaseNotice

# Button actions carried in custom ids.
VERIFY = "verify"
BAN = "ban"
THREAD = "thread"
HISTORY = "history"
REOPEN = "reopen"

_STATUS_COLORS = {
    CaseStatus.PENDING: COLORS["warning"],
    CaseStatus.VERIFIED: COLORS["success"],
    CaseStatus.BANNED: COLORS["error"],
}
_TITLES = {
    CaseStatus.PENDING: "Suspicious User Detected",
    CaseStatus.VERIFIED: "User Verified",
    CaseStatus.BANNED: "User Banned",
}


def button_id(action: str, case_id: int) -> str:
    return f"{CUSTOM_ID_PREFIX}:{action}:{case_id}"


def parse_button_id(custom_id: Optional[str]) -> Optional[tuple[str, int]]:
    if not custom_id:
        return None
    parts = custom_id.split(":")
    if len(parts) != 3 or parts[0] != CUSTOM_ID_PREFIX:
        return None
    try:
        return parts[1], int(parts[2])
    except ValueError:
        return None


def _when(value: Optional[datetime]) -> str:
    if value is None:
        return "Unknown"
    ts = int(value.timestamp())
    return f"<t:{ts}:R>"


def _clip(text: str, limit: int = MAX_FIELD_VALUE) -> str:
    return text if len(text) <= limit else text[: limit - 3] + "..."


def build_notice_embed(notice: CaseNotice) -> discord.Embed:
    embed = discord.Embed(
        title=_TITLES[notice.status],
        color=_STATUS_COLORS[notice.status],
    )
    embed.add_field(name="Username", value=_clip(notice.username), inline=True)
    embed.add_field(name="User ID", value=f"{notice.actor_id} (<@{notice.actor_id}>)", inline=True)
    embed.add_field(name="Account Created", value=_when(notice.account_created_at), inline=True)
    embed.add_field(name="Joined Server", value=_when(notice.joined_at), inline=True)
    embed.add_field(name="Detection Confidence", value=format_confidence(notice.confidence), inline=True)
    embed.add_field(name="Detections", value=str(notice.detection_count), inline=True)

    trigger = notice.trigger
    if notice.trigger_content:
        trigger += f"\n> {notice.trigger_content[:500]}"
    if notice.trigger_link:
        trigger += f"\n[Jump to message]({notice.trigger_link})"
    embed.add_field(name="Trigger", value=_clip(trigger), inline=False)

    if notice.reasons:
        embed.add_field(name="Reasons", value=_clip("\n".join(f"• {r}" for r in notice.reasons)), inline=False)
    if notice.thread_id:
        embed.add_field(name="Verification Thread", value=f"<#{notice.thread_id}>", inline=False)
    if notice.action_log:
        # Keep the newest lines when the log outgrows one field.
        lines = list(notice.action_log)
        while len("\n".join(lines)) > MAX_FIELD_VALUE and len(lines) > 1:
            lines.pop(0)
        embed.add_field(name="Action Log", value=_clip("\n".join(lines)), inline=False)

    embed.set_footer(text=f"Case #{notice.case_id} | {notice.status.value}")
    return embed


def build_notice_view(notice: CaseNotice) -> discord.ui.View:
    """Buttons for the notice. Clicks are routed by custom id, so the view never expires."""
    view = discord.ui.View(timeout=None)
    if notice.status is CaseStatus.PENDING:
        view.add_item(discord.ui.Button(label="Verify", style=discord.ButtonStyle.success, custom_id=button_id(VERIFY, notice.case_id)))
        view.add_item(discord.ui.Button(label="Ban", style=discord.ButtonStyle.danger, custom_id=button_id(BAN, notice.case_id)))
        if not notice.thread_id:
            view.add_item(
                discord.ui.Button(label="Create Thread", style=discord.ButtonStyle.primary, custom_id=button_id(THREAD, notice.case_id))
            )
    else:
        view.add_item(discord.ui.Button(label="Reopen", style=discord.ButtonStyle.primary, custom_id=button_id(REOPEN, notice.case_id)))
    view.add_item(discord.ui.Button(label="History", style=discord.ButtonStyle.secondary, custom_id=button_id(HISTORY, notice.case_id)))
    return view
