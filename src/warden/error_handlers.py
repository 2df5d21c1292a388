from __future__ import annotations

import logging

import discord
from discord import app_commands
from discord.ext import commands

from .constants import ERROR_MESSAGES
from .discord_safety import error_embed, safe_send
from .errors import ConfigurationError, WardenError

log = logging.getLogger("warden.error_handlers")


class ErrorHandler(commands.Cog):
    """Centralized error handling for slash commands."""

    def __init__(self, bot: commands.Bot) -> None:
        self.bot = bot
        self._previous = bot.tree.on_error
        bot.tree.on_error = self.on_app_command_error

    async def cog_unload(self) -> None:
        self.bot.tree.on_error = self._previous

    async def on_app_command_error(self, interaction: discord.Interaction, error: app_commands.AppCommandError) -> None:
        original = getattr(error, "original", error)

        if isinstance(original, ConfigurationError):
            await safe_send(interaction, embed=error_embed(f"{original}. {ERROR_MESSAGES['not_configured']}"))
            return

        if isinstance(original, WardenError):
            await safe_send(interaction, embed=error_embed(str(original)))
            return

        if isinstance(error, app_commands.MissingPermissions):
            await safe_send(interaction, embed=error_embed(ERROR_MESSAGES["missing_permissions"]))
            return

        if isinstance(error, app_commands.NoPrivateMessage):
            await safe_send(interaction, embed=error_embed(ERROR_MESSAGES["no_guild"]))
            return

        if isinstance(error, app_commands.CommandOnCooldown):
            await safe_send(interaction, embed=error_embed(f"This command is on cooldown. Try again in {error.retry_after:.1f}s"))
            return

        if isinstance(error, app_commands.BotMissingPermissions):
            await safe_send(interaction, embed=error_embed("The bot lacks required permissions to run this command."))
            return

        log.error("Unexpected error in app command %s", interaction.command and interaction.command.name, exc_info=original)
        await safe_send(interaction, embed=error_embed(ERROR_MESSAGES["unexpected"]))


async def setup_error_handlers(bot: commands.Bot) -> None:
    """Setup error handlers for the bot."""
    await bot.add_cog(ErrorHandler(bot))
