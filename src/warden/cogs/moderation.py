from __future__ import annotations

import io
import logging
from typing import Optional

import discord
from discord import app_commands
from discord.ext import commands

from ..constants import ERROR_MESSAGES
from ..container import WardenCore
from ..detection.models import ProfileData, SignalType
from ..discord_safety import error_embed, safe_defer, safe_send, success_embed
from ..errors import WardenError
from ..moderation.models import VerificationCase
from ..platform import render
from ..refs import MessageRef
from ..services.server_store import EDITABLE_SETTINGS, ServerConfig, coerce_setting

log = logging.getLogger("warden.cog.moderation")


def _profile(member: discord.Member, recent: tuple[str, ...] = ()) -> ProfileData:
    return ProfileData(
        user_id=member.id,
        username=str(member.name),
        account_created_at=member.created_at,
        joined_at=member.joined_at,
        is_bot=member.bot,
        recent_messages=recent,
    )


def _is_moderator(user: discord.abc.User) -> bool:
    perms = getattr(user, "guild_permissions", None)
    return bool(perms and (perms.moderate_members or perms.manage_guild))


class ModerationCog(commands.Cog):
    """Suspicious-member detection and the moderator surface for verification cases."""

    warden = app_commands.Group(name="warden", description="Suspicious member verification", guild_only=True)

    def __init__(self, bot: commands.Bot) -> None:
        self.bot = bot
        self.core: WardenCore = getattr(bot, "core")

    # -------------------- Triggers --------------------

    @commands.Cog.listener()
    async def on_message(self, message: discord.Message) -> None:
        if message.guild is None or message.author.bot:
            return
        if not isinstance(message.author, discord.Member) or _is_moderator(message.author):
            return

        source = MessageRef(message.channel.id, message.id)
        profile = _profile(message.author)
        try:
            result = await self.core.orchestrator.detect_message(
                message.guild.id, message.author.id, message.content, profile, source=source
            )
            if result.is_suspicious:
                await self.core.security.handle_suspicion(
                    message.guild.id, message.author.id, result, source=source, profile=profile
                )
        except Exception:
            # One bad message must not take the listener down.
            log.exception("Message detection failed for %s in %s", message.author.id, message.guild.id)

    @commands.Cog.listener()
    async def on_member_join(self, member: discord.Member) -> None:
        if member.bot:
            return
        profile = _profile(member)
        try:
            await self.core.server_store.ensure(member.guild.id, member.guild.name)
            result = await self.core.orchestrator.detect_new_join(member.guild.id, member.id, profile)
            if result.is_suspicious:
                await self.core.security.handle_suspicion(member.guild.id, member.id, result, profile=profile)
        except Exception:
            log.exception("Join detection failed for %s in %s", member.id, member.guild.id)

    # -------------------- Notification buttons --------------------

    @commands.Cog.listener()
    async def on_interaction(self, interaction: discord.Interaction) -> None:
        if interaction.type is not discord.InteractionType.component:
            return
        parsed = render.parse_button_id((interaction.data or {}).get("custom_id"))
        if parsed is None:
            return
        action, case_id = parsed

        if interaction.guild is None or not _is_moderator(interaction.user):
            await safe_send(interaction, embed=error_embed(ERROR_MESSAGES["missing_permissions"]))
            return

        await safe_defer(interaction)
        try:
            await self._run_button(interaction, action, case_id)
        except WardenError as e:
            await safe_send(interaction, embed=error_embed(str(e)))
        except Exception:
            log.exception("Button %s failed for case #%s", action, case_id)
            await safe_send(interaction, embed=error_embed(ERROR_MESSAGES["unexpected"]))

    async def _run_button(self, interaction: discord.Interaction, action: str, case_id: int) -> None:
        moderator_id = interaction.user.id
        if action == render.VERIFY:
            case = await self.core.actuator.verify(case_id, moderator_id)
            await safe_send(interaction, embed=success_embed(f"<@{case.actor_id}> verified (case #{case.id})."))
        elif action == render.BAN:
            if not interaction.user.guild_permissions.ban_members:
                await safe_send(interaction, embed=error_embed(ERROR_MESSAGES["missing_permissions"]))
                return
            case = await self.core.actuator.ban(case_id, moderator_id)
            await safe_send(interaction, embed=success_embed(f"<@{case.actor_id}> banned (case #{case.id})."))
        elif action == render.THREAD:
            thread_id = await self.core.actuator.create_thread(case_id, moderator_id)
            await safe_send(interaction, embed=success_embed(f"Verification thread: <#{thread_id}>"))
        elif action == render.REOPEN:
            case = await self.core.actuator.reopen(case_id, moderator_id)
            await safe_send(interaction, embed=success_embed(f"Case #{case.id} reopened."))
        elif action == render.HISTORY:
            case = await self.core.case_store.find_by_id(case_id)
            if case is None:
                await safe_send(interaction, embed=error_embed(f"Case #{case_id} does not exist"))
                return
            await self._send_history(interaction, case.server_id, case.actor_id)

    async def _send_history(self, interaction: discord.Interaction, server_id: int, actor_id: int) -> None:
        history = await self.core.history.render(server_id, actor_id)
        if history.as_file:
            file = discord.File(io.BytesIO(history.text.encode("utf-8")), filename=history.filename)
            await safe_send(interaction, "History is too long for a message; see the attached file.", file=file)
        else:
            await safe_send(interaction, history.text)

    # -------------------- Slash commands --------------------

    async def _pending_case(self, guild_id: int, member: discord.abc.User) -> VerificationCase:
        case = await self.core.case_store.find_active_pending(guild_id, member.id)
        if case is None:
            raise WardenError(f"{member.mention} has no pending verification case")
        return case

    async def _flag(self, interaction: discord.Interaction, member: discord.Member, signal: SignalType, reason: Optional[str]) -> None:
        assert interaction.guild is not None
        await safe_defer(interaction)
        result = await self.core.orchestrator.record_manual(
            interaction.guild.id, member.id, signal_type=signal, reporter_id=interaction.user.id, reason=reason
        )
        outcome = await self.core.security.handle_suspicion(
            interaction.guild.id, member.id, result, profile=_profile(member)
        )
        if outcome is None:
            await safe_send(interaction, embed=error_embed("Could not open a case for that member."))
        elif outcome.opened:
            await safe_send(interaction, embed=success_embed(f"Opened case #{outcome.case.id} for {member.mention}."))
        else:
            await safe_send(interaction, embed=success_embed(f"Added to the pending case #{outcome.case.id} for {member.mention}."))

    @warden.command(name="flag", description="Flag a member as suspicious and open a verification case")
    @app_commands.describe(member="Member to flag", reason="Why they look suspicious")
    @app_commands.checks.has_permissions(moderate_members=True)
    async def flag(self, interaction: discord.Interaction, member: discord.Member, reason: Optional[str] = None) -> None:
        await self._flag(interaction, member, SignalType.MANUAL, reason)

    @warden.command(name="report", description="Report a suspicious member to the moderators")
    @app_commands.describe(member="Member to report", reason="What happened")
    @app_commands.checks.cooldown(1, 60.0)
    async def report(self, interaction: discord.Interaction, member: discord.Member, reason: str) -> None:
        if member.bot or member.id == interaction.user.id:
            await safe_send(interaction, embed=error_embed("You can't report that member."))
            return
        await self._flag(interaction, member, SignalType.REPORT, reason)

    @warden.command(name="verify", description="Verify a member's pending case and lift the restriction")
    @app_commands.checks.has_permissions(moderate_members=True)
    async def verify(self, interaction: discord.Interaction, member: discord.Member, notes: Optional[str] = None) -> None:
        assert interaction.guild is not None
        await safe_defer(interaction)
        case = await self._pending_case(interaction.guild.id, member)
        await self.core.actuator.verify(case.id, interaction.user.id, notes=notes)
        await safe_send(interaction, embed=success_embed(f"{member.mention} verified (case #{case.id})."))

    @warden.command(name="ban", description="Ban a member with a pending case")
    @app_commands.checks.has_permissions(ban_members=True)
    async def ban(self, interaction: discord.Interaction, member: discord.User, reason: Optional[str] = None) -> None:
        assert interaction.guild is not None
        await safe_defer(interaction)
        case = await self._pending_case(interaction.guild.id, member)
        await self.core.actuator.ban(case.id, interaction.user.id, reason=reason)
        await safe_send(interaction, embed=success_embed(f"{member.mention} banned (case #{case.id})."))

    @warden.command(name="reopen", description="Reopen a member's most recent resolved case")
    @app_commands.checks.has_permissions(moderate_members=True)
    async def reopen(self, interaction: discord.Interaction, member: discord.User, notes: Optional[str] = None) -> None:
        assert interaction.guild is not None
        await safe_defer(interaction)
        cases = await self.core.case_store.list_for_actor(interaction.guild.id, member.id, limit=1)
        if not cases:
            raise WardenError(f"{member.mention} has no verification cases")
        case = await self.core.actuator.reopen(cases[0].id, interaction.user.id, notes=notes)
        await safe_send(interaction, embed=success_embed(f"Case #{case.id} for {member.mention} reopened."))

    @warden.command(name="thread", description="Open a private verification thread for a member's pending case")
    @app_commands.checks.has_permissions(moderate_members=True)
    async def thread(self, interaction: discord.Interaction, member: discord.Member) -> None:
        assert interaction.guild is not None
        await safe_defer(interaction)
        case = await self._pending_case(interaction.guild.id, member)
        thread_id = await self.core.actuator.create_thread(case.id, interaction.user.id)
        await safe_send(interaction, embed=success_embed(f"Verification thread: <#{thread_id}>"))

    @warden.command(name="pending", description="List verification cases waiting for a moderator")
    @app_commands.checks.has_permissions(moderate_members=True)
    async def pending(self, interaction: discord.Interaction) -> None:
        assert interaction.guild is not None
        await safe_defer(interaction)
        await safe_send(interaction, await self.core.history.pending(interaction.guild.id))

    @warden.command(name="history", description="Show a member's verification history")
    @app_commands.checks.has_permissions(moderate_members=True)
    async def history(self, interaction: discord.Interaction, member: discord.User) -> None:
        assert interaction.guild is not None
        await safe_defer(interaction)
        await self._send_history(interaction, interaction.guild.id, member.id)

    @warden.command(name="setup", description="Set the restricted role and moderation channels")
    @app_commands.checks.has_permissions(manage_guild=True)
    async def setup(
        self,
        interaction: discord.Interaction,
        restricted_role: Optional[discord.Role] = None,
        admin_channel: Optional[discord.TextChannel] = None,
        verification_channel: Optional[discord.TextChannel] = None,
        ping_role: Optional[discord.Role] = None,
    ) -> None:
        assert interaction.guild is not None
        await self.core.server_store.ensure(interaction.guild.id, interaction.guild.name)
        cfg = await self.core.server_store.set_channels(
            interaction.guild.id,
            restricted_role_id=restricted_role.id if restricted_role else None,
            admin_channel_id=admin_channel.id if admin_channel else None,
            verification_channel_id=verification_channel.id if verification_channel else None,
            admin_role_id=ping_role.id if ping_role else None,
        )
        await safe_send(interaction, embed=success_embed(self._describe(cfg)))

    @warden.command(name="config-show", description="Show this server's detection settings")
    @app_commands.checks.has_permissions(manage_guild=True)
    async def config_show(self, interaction: discord.Interaction) -> None:
        assert interaction.guild is not None
        cfg = await self.core.server_store.ensure(interaction.guild.id, interaction.guild.name)
        await safe_send(interaction, self._describe(cfg))

    @warden.command(name="config-set", description="Change one detection setting")
    @app_commands.describe(key="Setting name", value="New value (keywords: comma separated)")
    @app_commands.choices(
        key=[app_commands.Choice(name=k, value=k) for k in [*EDITABLE_SETTINGS, "suspicious_keywords"]]
    )
    @app_commands.checks.has_permissions(manage_guild=True)
    async def config_set(self, interaction: discord.Interaction, key: str, value: str) -> None:
        assert interaction.guild is not None
        try:
            parsed = coerce_setting(key, value)
        except ValueError as e:
            await safe_send(interaction, embed=error_embed(str(e)))
            return
        cfg = await self.core.server_store.update_settings(interaction.guild.id, **{key: parsed})
        log.info("Server %s set %s=%r (by %s)", interaction.guild.id, key, parsed, interaction.user.id)
        await safe_send(interaction, embed=success_embed(self._describe(cfg)))

    @staticmethod
    def _describe(cfg: ServerConfig) -> str:
        def ref(value: Optional[int], kind: str) -> str:
            if not value:
                return "not set"
            return f"<@&{value}>" if kind == "role" else f"<#{value}>"

        lines = [
            f"Restricted role: {ref(cfg.restricted_role_id, 'role')}",
            f"Admin channel: {ref(cfg.admin_channel_id, 'channel')}",
            f"Verification channel: {ref(cfg.verification_channel_id, 'channel')}",
            f"Ping role: {ref(cfg.admin_role_id, 'role')}",
        ]
        lines += [f"{k}: {v}" for k, v in cfg.settings_dict().items()]
        return "\n".join(lines)
