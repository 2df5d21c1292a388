from __future__ import annotations

import logging
from typing import Optional

import discord

from .constants import COLORS

log = logging.getLogger("warden.discord_safety")


def error_embed(message: str) -> discord.Embed:
    return discord.Embed(title="Error", description=message, color=COLORS["error"])


def success_embed(message: str) -> discord.Embed:
    return discord.Embed(title="Done", description=message, color=COLORS["success"])


async def safe_defer(interaction: discord.Interaction, *, ephemeral: bool = True, thinking: bool = True) -> bool:
    try:
        if interaction.response.is_done():
            return True
        await interaction.response.defer(ephemeral=ephemeral, thinking=thinking)
        return True
    except (discord.NotFound, discord.HTTPException):
        return interaction.response.is_done()


async def safe_send(
    interaction: discord.Interaction,
    content: Optional[str] = None,
    *,
    embed: Optional[discord.Embed] = None,
    file: Optional[discord.File] = None,
    ephemeral: bool = True,
) -> bool:
    kwargs = {"content": content, "embed": embed, "ephemeral": ephemeral}
    if file is not None:
        kwargs["file"] = file
    try:
        if not interaction.response.is_done():
            await interaction.response.send_message(**kwargs)
        else:
            await interaction.followup.send(**kwargs)
        return True
    except (discord.NotFound, discord.HTTPException) as e:
        log.warning("Interaction reply failed: %s", e)
        return False
