from __future__ import annotations

import asyncio
import logging
from typing import Optional

import discord
from discord.ext import commands

from .config import Settings
from .container import WardenCore, build_core
from .detection.classifier import Classifier, OpenAIClassifier
from .error_handlers import setup_error_handlers
from .platform.discord_client import DiscordPlatform

log = logging.getLogger("warden.bot")


class _CommandSyncManager:
    def __init__(self, bot: "WardenBot") -> None:
        self.bot = bot
        self._lock = asyncio.Lock()

    async def sync_startup(self) -> None:
        async with self._lock:
            if self.bot.settings.dev_guild_id:
                guild = discord.Object(id=self.bot.settings.dev_guild_id)
                self.bot.tree.copy_global_to(guild=guild)
                await self.bot.tree.sync(guild=guild)
                log.info("Commands synced to guild %d", self.bot.settings.dev_guild_id)
            else:
                await self.bot.tree.sync()
                log.info("Commands synced globally")
            for c in self.bot.tree.get_commands():
                log.info(" - /%s", c.name)


class WardenBot(commands.Bot):
    def __init__(self, settings: Settings) -> None:
        intents = discord.Intents.default()
        intents.members = True
        intents.message_content = bool(settings.message_content_intent)

        log.info("INTENTS: guilds=%s members=%s message_content=%s", intents.guilds, intents.members, intents.message_content)

        super().__init__(
            command_prefix=commands.when_mentioned,
            intents=intents,
            allowed_mentions=discord.AllowedMentions(everyone=False, roles=False, users=True),
            help_command=None,
        )

        self.settings = settings
        self.platform = DiscordPlatform(self)

        classifier: Optional[Classifier] = None
        if settings.classifier_enabled:
            classifier = OpenAIClassifier(
                api_key=settings.openai_api_key,
                model=settings.openai_model,
                base_url=settings.openai_base_url or None,
            )
        else:
            log.info("OPENAI_API_KEY not set; detection runs on heuristics only")

        self.core: WardenCore = build_core(
            sqlite_path=settings.sqlite_path,
            platform=self.platform,
            classifier=classifier,
            classifier_timeout_seconds=settings.classifier_timeout_seconds,
            cache_ttl=settings.cache_default_ttl_seconds,
            defaults=settings.detection_defaults,
        )
        self._sync_mgr = _CommandSyncManager(self)

    async def setup_hook(self) -> None:
        await self.core.init()
        await setup_error_handlers(self)

        # Cogs are loaded defensively so one bad cog cannot prevent command registration.
        async def _load_cog(import_path: str, class_name: str) -> None:
            try:
                mod = __import__(import_path, fromlist=[class_name])
                cls = getattr(mod, class_name)
                await self.add_cog(cls(self))
                log.info("Loaded cog: %s.%s", import_path, class_name)
            except Exception:
                log.exception("Failed to load cog: %s.%s", import_path, class_name)

        await _load_cog("warden.cogs.moderation", "ModerationCog")

        await self._sync_mgr.sync_startup()
        log.info("Command sync complete")

    async def on_ready(self) -> None:
        log.info("Logged in as %s (%s) in %d guilds", self.user, getattr(self.user, "id", "?"), len(self.guilds))

    async def on_guild_join(self, guild: discord.Guild) -> None:
        await self.core.server_store.ensure(guild.id, guild.name)
        log.info("Joined guild %s (%s)", guild.name, guild.id)
