from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional, TypeVar

import discord

from ..refs import MessageRef
from .base import CaseNotice, Content, MemberInfo
from .render import build_notice_embed, build_notice_view

log = logging.getLogger("warden.platform.discord")

R = TypeVar("R")


class DiscordPlatform:
    """discord.py implementation of the moderation platform contract.

    Retries are bounded and only used for HTTPException/Timeouts. NotFound and
    Forbidden are not retried and come back as None/False.
    """

    def __init__(self, bot: discord.Client, *, tries: int = 3, backoff_seconds: float = 0.5) -> None:
        self.bot = bot
        self.tries = max(1, tries)
        self.backoff = backoff_seconds

    async def _retry(self, coro_fn: Callable[[], Awaitable[R]], *, tries: Optional[int] = None) -> R:
        last: Optional[BaseException] = None
        for t in range(tries or self.tries):
            try:
                return await coro_fn()
            except (discord.NotFound, discord.Forbidden):
                raise
            except (discord.HTTPException, asyncio.TimeoutError) as e:
                last = e
                await asyncio.sleep(self.backoff * (2**t))
        raise last  # type: ignore[misc]

    async def _get_member(self, guild: discord.Guild, actor_id: int) -> Optional[discord.Member]:
        member = guild.get_member(actor_id)
        if member is not None:
            return member
        try:
            return await self._retry(lambda: guild.fetch_member(actor_id))
        except discord.NotFound:
            return None

    async def _get_channel(self, channel_id: int) -> Optional[Any]:
        channel = self.bot.get_channel(channel_id)
        if channel is not None:
            return channel
        try:
            return await self._retry(lambda: self.bot.fetch_channel(channel_id))
        except (discord.NotFound, discord.Forbidden):
            return None

    @staticmethod
    def _render(content: Content) -> dict[str, Any]:
        if isinstance(content, CaseNotice):
            kwargs: dict[str, Any] = {
                "content": f"<@&{content.mention_role_id}>" if content.mention_role_id else None,
                "embed": build_notice_embed(content),
                "view": build_notice_view(content),
                "allowed_mentions": discord.AllowedMentions(everyone=False, users=False, roles=True),
            }
            return kwargs
        return {"content": content, "allowed_mentions": discord.AllowedMentions(everyone=False, roles=False, users=True)}

    async def fetch_member(self, server_id: int, actor_id: int) -> Optional[MemberInfo]:
        guild = self.bot.get_guild(server_id)
        if guild is None:
            log.warning("Guild %s is not available", server_id)
            return None
        try:
            member = await self._get_member(guild, actor_id)
        except discord.HTTPException as e:
            log.warning("Could not fetch member %s in %s: %s", actor_id, server_id, e)
            return None
        if member is None:
            log.info("Member %s not found in %s", actor_id, server_id)
            return None
        return MemberInfo(
            user_id=member.id,
            username=str(member.name),
            display_name=member.display_name,
            account_created_at=member.created_at,
            joined_at=member.joined_at,
            is_bot=member.bot,
            avatar_url=member.display_avatar.url,
        )

    async def send_message(self, channel_id: int, content: Content) -> Optional[MessageRef]:
        channel = await self._get_channel(channel_id)
        if not isinstance(channel, (discord.TextChannel, discord.Thread)):
            log.warning("Channel %s is missing or not a text channel", channel_id)
            return None
        kwargs = self._render(content)
        try:
            msg = await self._retry(lambda: channel.send(**kwargs))
        except discord.HTTPException as e:
            log.warning("Could not send to channel %s: %s", channel_id, e)
            return None
        return MessageRef(channel_id=channel.id, message_id=msg.id)

    async def edit_message(self, ref: MessageRef, content: Content) -> bool:
        channel = await self._get_channel(ref.channel_id)
        if not isinstance(channel, (discord.TextChannel, discord.Thread)):
            return False
        kwargs = self._render(content)
        if isinstance(content, CaseNotice):
            # Edits never re-ping.
            kwargs.pop("content", None)
        message = channel.get_partial_message(ref.message_id)
        try:
            await self._retry(lambda: message.edit(**kwargs))
        except discord.HTTPException as e:
            log.warning("Could not edit message %s in %s: %s", ref.message_id, ref.channel_id, e)
            return False
        return True

    async def _set_role(self, server_id: int, actor_id: int, role_id: int, reason: str, *, add: bool) -> bool:
        guild = self.bot.get_guild(server_id)
        if guild is None:
            return False
        role = guild.get_role(role_id)
        if role is None:
            log.warning("Restricted role %s no longer exists in %s", role_id, server_id)
            return False
        try:
            member = await self._get_member(guild, actor_id)
            if member is None:
                log.info("Member %s left %s; skipping role change", actor_id, server_id)
                return False
            if add:
                await self._retry(lambda: member.add_roles(role, reason=reason))
            else:
                await self._retry(lambda: member.remove_roles(role, reason=reason))
        except discord.HTTPException as e:
            log.warning("Role change for %s in %s failed: %s", actor_id, server_id, e)
            return False
        return True

    async def add_restricted_role(self, server_id: int, actor_id: int, role_id: int, reason: str) -> bool:
        return await self._set_role(server_id, actor_id, role_id, reason, add=True)

    async def remove_restricted_role(self, server_id: int, actor_id: int, role_id: int, reason: str) -> bool:
        return await self._set_role(server_id, actor_id, role_id, reason, add=False)

    async def ban_member(self, server_id: int, actor_id: int, reason: str) -> bool:
        guild = self.bot.get_guild(server_id)
        if guild is None:
            return False
        try:
            await self._retry(lambda: guild.ban(discord.Object(id=actor_id), reason=reason, delete_message_seconds=0))
        except discord.HTTPException as e:
            log.warning("Ban of %s in %s failed: %s", actor_id, server_id, e)
            return False
        return True

    async def create_thread(
        self,
        server_id: int,
        channel_id: int,
        name: str,
        intro: str,
        *,
        invite_ids: tuple[int, ...] = (),
    ) -> Optional[int]:
        channel = await self._get_channel(channel_id)
        if not isinstance(channel, discord.TextChannel):
            log.warning("Channel %s cannot host verification threads", channel_id)
            return None
        try:
            thread = await self._retry(
                lambda: channel.create_thread(name=name[:100], type=discord.ChannelType.private_thread, invitable=False)
            )
            for uid in invite_ids:
                try:
                    await self._retry(lambda: thread.add_user(discord.Object(id=uid)))
                except discord.HTTPException as e:
                    log.info("Could not add %s to thread %s: %s", uid, thread.id, e)
            await self._retry(lambda: thread.send(intro))
        except discord.HTTPException as e:
            log.warning("Thread creation in %s failed: %s", channel_id, e)
            return None
        return thread.id

    async def close_thread(self, thread_id: int, message: str) -> bool:
        thread = await self._get_channel(thread_id)
        if not isinstance(thread, discord.Thread):
            return False
        try:
            await self._retry(lambda: thread.send(message))
            await self._retry(lambda: thread.edit(archived=True, locked=True))
        except discord.HTTPException as e:
            log.warning("Could not close thread %s: %s", thread_id, e)
            return False
        return True

    async def reopen_thread(self, thread_id: int, message: str) -> bool:
        thread = await self._get_channel(thread_id)
        if not isinstance(thread, discord.Thread):
            return False
        try:
            await self._retry(lambda: thread.edit(archived=False, locked=False))
            await self._retry(lambda: thread.send(message))
        except discord.HTTPException as e:
            log.warning("Could not reopen thread %s: %s", thread_id, e)
            return False
        return True
