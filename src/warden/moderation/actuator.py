from __future__ import annotations

import logging
from typing import Optional

import aiosqlite

from ..errors import ActiveCaseExistsError, CaseNotFoundError, ConfigurationError, InvalidTransitionError, WardenError
from ..events.bus import EventBus
from ..events.models import CaseBanned, CaseReopened, CaseThreadCreated, CaseVerified
from ..platform.base import Platform
from ..services.case_store import CaseStore
from ..services.server_store import ServerStore
from .locks import KeyedLocks
from .models import AdminActionType, CaseStatus, VerificationCase
from .state_machine import plan_transition

log = logging.getLogger("warden.actuator")


class ModerationActuator:
    """Moderator-driven case actions and the platform operations behind them.

    Status changes go through the state machine and a status-guarded update, under the
    same per-(server, actor) lock the security service uses. Side effects (roles,
    audit, notification edits) are left to event subscribers.
    """

    def __init__(
        self,
        *,
        bus: EventBus,
        locks: KeyedLocks,
        platform: Platform,
        server_store: ServerStore,
        case_store: CaseStore,
    ) -> None:
        self.bus = bus
        self.locks = locks
        self.platform = platform
        self.servers = server_store
        self.cases = case_store

    # -------------------- Platform operations --------------------

    async def restrict(self, server_id: int, actor_id: int, reason: str) -> bool:
        cfg = await self.servers.ensure(server_id)
        if not cfg.restricted_role_id:
            raise ConfigurationError(f"Server {server_id} has no restricted role configured")
        ok = await self.platform.add_restricted_role(server_id, actor_id, cfg.restricted_role_id, reason)
        if not ok:
            log.warning("Could not restrict %s in %s", actor_id, server_id)
        return ok

    async def unrestrict(self, server_id: int, actor_id: int, reason: str) -> bool:
        cfg = await self.servers.ensure(server_id)
        if not cfg.restricted_role_id:
            raise ConfigurationError(f"Server {server_id} has no restricted role configured")
        ok = await self.platform.remove_restricted_role(server_id, actor_id, cfg.restricted_role_id, reason)
        if not ok:
            log.warning("Could not lift restriction on %s in %s", actor_id, server_id)
        return ok

    # -------------------- Case transitions --------------------

    async def verify(self, case_id: int, moderator_id: int, *, notes: Optional[str] = None) -> VerificationCase:
        case = await self._require(case_id)
        async with self.locks.hold((case.server_id, case.actor_id)):
            case = await self._require(case_id)
            target = plan_transition(case, AdminActionType.VERIFY)
            updated = await self._apply(case, target, moderator_id, AdminActionType.VERIFY)
            log.info("Case #%s verified by %s", case.id, moderator_id)
            await self.bus.publish(
                CaseVerified(
                    server_id=case.server_id,
                    actor_id=case.actor_id,
                    moderator_id=moderator_id,
                    case_id=case.id,
                    previous_status=case.status,
                    notes=notes,
                    at=updated.resolved_at or updated.updated_at,
                )
            )
            return updated

    async def ban(self, case_id: int, moderator_id: int, *, reason: Optional[str] = None) -> VerificationCase:
        """Ban on the platform, then record it. A failed ban leaves the case pending."""
        case = await self._require(case_id)
        reason = reason or "Banned after verification review"
        async with self.locks.hold((case.server_id, case.actor_id)):
            case = await self._require(case_id)
            target = plan_transition(case, AdminActionType.BAN)
            if not await self.platform.ban_member(case.server_id, case.actor_id, f"{reason} (case #{case.id})"):
                raise WardenError(f"Could not ban <@{case.actor_id}>; case #{case.id} is still pending")
            updated = await self._apply(case, target, moderator_id, AdminActionType.BAN)
            log.info("Case #%s banned by %s", case.id, moderator_id)
            await self.bus.publish(
                CaseBanned(
                    server_id=case.server_id,
                    actor_id=case.actor_id,
                    moderator_id=moderator_id,
                    case_id=case.id,
                    reason=reason,
                    previous_status=case.status,
                    at=updated.resolved_at or updated.updated_at,
                )
            )
            return updated

    async def reopen(self, case_id: int, moderator_id: int, *, notes: Optional[str] = None) -> VerificationCase:
        case = await self._require(case_id)
        async with self.locks.hold((case.server_id, case.actor_id)):
            case = await self._require(case_id)
            target = plan_transition(case, AdminActionType.REOPEN)
            other = await self.cases.find_active_pending(case.server_id, case.actor_id)
            if other is not None:
                raise ActiveCaseExistsError(case.id, case.status.value, other.id)
            try:
                updated = await self._apply(case, target, moderator_id, AdminActionType.REOPEN)
            except aiosqlite.IntegrityError:
                other = await self.cases.find_active_pending(case.server_id, case.actor_id)
                raise ActiveCaseExistsError(case.id, case.status.value, other.id if other else 0) from None
            log.info("Case #%s reopened by %s (was %s)", case.id, moderator_id, case.status.value)
            await self.bus.publish(
                CaseReopened(
                    case_id=case.id,
                    server_id=case.server_id,
                    actor_id=case.actor_id,
                    moderator_id=moderator_id,
                    previous_status=case.status,
                    notes=notes,
                    at=updated.updated_at,
                )
            )
            return updated

    async def create_thread(self, case_id: int, moderator_id: int) -> int:
        """Open the case's discussion thread, or return the one it already has."""
        case = await self._require(case_id)
        async with self.locks.hold((case.server_id, case.actor_id)):
            case = await self._require(case_id)
            if case.thread_id:
                return case.thread_id
            if not case.is_pending:
                raise InvalidTransitionError(case.id, case.status.value, AdminActionType.CREATE_THREAD.value)

            cfg = await self.servers.ensure(case.server_id)
            channel_id = cfg.verification_channel_id or cfg.admin_channel_id
            if not channel_id:
                raise ConfigurationError("No verification or admin channel is configured")

            member = await self.platform.fetch_member(case.server_id, case.actor_id)
            name = f"Verification: {member.username if member else case.actor_id}"
            intro = (
                f"Verification thread for <@{case.actor_id}> (case #{case.id}).\n"
                "Please answer the moderators' questions here so we can verify your account."
            )
            thread_id = await self.platform.create_thread(
                case.server_id, channel_id, name, intro, invite_ids=(case.actor_id, moderator_id)
            )
            if thread_id is None:
                raise WardenError(f"Could not create a thread for case #{case.id}")

            if not await self.cases.link_thread(case.id, thread_id):
                current = await self._require(case_id)
                log.warning("Case #%s got a thread concurrently; keeping %s", case.id, current.thread_id)
                return current.thread_id or thread_id

            log.info("Thread %s created for case #%s by %s", thread_id, case.id, moderator_id)
            await self.bus.publish(
                CaseThreadCreated(
                    case_id=case.id,
                    server_id=case.server_id,
                    actor_id=case.actor_id,
                    moderator_id=moderator_id,
                    thread_id=thread_id,
                )
            )
            return thread_id

    async def _require(self, case_id: int) -> VerificationCase:
        case = await self.cases.find_by_id(case_id)
        if case is None:
            raise CaseNotFoundError(case_id)
        return case

    async def _apply(
        self,
        case: VerificationCase,
        target: CaseStatus,
        moderator_id: int,
        action: AdminActionType,
    ) -> VerificationCase:
        updated = await self.cases.update_status(case.id, expected=case.status, new=target, moderator_id=moderator_id)
        if updated is None:
            current = await self._require(case.id)
            raise InvalidTransitionError(case.id, current.status.value, action.value)
        return updated
