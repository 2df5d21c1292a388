from __future__ import annotations

import logging
from typing import Optional

from ...moderation.models import AdminActionType, CaseStatus
from ...moderation.notice import CaseNotifier
from ...platform.base import Platform
from ...services.admin_action_store import AdminActionStore
from ...services.case_store import CaseStore
from ..bus import EventBus
from ..models import CaseBanned, CaseReopened, CaseThreadCreated, CaseVerified

log = logging.getLogger("warden.subscribers.audit")


class AuditLogSubscriber:
    """Records one AdminAction per moderator transition and refreshes the notification.

    Verify and ban also close the case's discussion thread.
    """

    def __init__(
        self,
        *,
        platform: Platform,
        notifier: CaseNotifier,
        case_store: CaseStore,
        admin_action_store: AdminActionStore,
    ) -> None:
        self.platform = platform
        self.notifier = notifier
        self.cases = case_store
        self.actions = admin_action_store

    def subscribe(self, bus: EventBus) -> None:
        bus.subscribe(CaseVerified, self.on_case_verified)
        bus.subscribe(CaseBanned, self.on_case_banned)
        bus.subscribe(CaseReopened, self.on_case_reopened)
        bus.subscribe(CaseThreadCreated, self.on_thread_created)

    async def on_case_verified(self, event: CaseVerified) -> None:
        await self._record(event, AdminActionType.VERIFY, event.previous_status, CaseStatus.VERIFIED, event.notes)
        await self._close_thread(event.case_id, f"✅ <@{event.actor_id}> was verified by <@{event.moderator_id}>.")
        await self._annotate(event.case_id)

    async def on_case_banned(self, event: CaseBanned) -> None:
        await self._record(event, AdminActionType.BAN, event.previous_status, CaseStatus.BANNED, event.reason)
        await self._close_thread(event.case_id, f"🔨 <@{event.actor_id}> was banned by <@{event.moderator_id}>.")
        await self._annotate(event.case_id)

    async def on_case_reopened(self, event: CaseReopened) -> None:
        await self._record(event, AdminActionType.REOPEN, event.previous_status, CaseStatus.PENDING, event.notes)
        await self._annotate(event.case_id)

    async def on_thread_created(self, event: CaseThreadCreated) -> None:
        await self._record(event, AdminActionType.CREATE_THREAD, CaseStatus.PENDING, CaseStatus.PENDING, None)
        await self._annotate(event.case_id)

    async def _record(
        self,
        event: CaseVerified | CaseBanned | CaseReopened | CaseThreadCreated,
        action_type: AdminActionType,
        previous: CaseStatus,
        new: CaseStatus,
        notes: Optional[str],
    ) -> None:
        action = await self.actions.create(
            server_id=event.server_id,
            actor_id=event.actor_id,
            moderator_id=event.moderator_id,
            case_id=event.case_id,
            action_type=action_type,
            previous_status=previous,
            new_status=new,
            notes=notes,
            at=event.at,
        )
        if action is None:
            log.info("%s for case #%s was already recorded", action_type.value, event.case_id)

    async def _close_thread(self, case_id: int, message: str) -> None:
        case = await self.cases.find_by_id(case_id)
        if case is None or not case.thread_id:
            return
        if not await self.platform.close_thread(case.thread_id, message):
            log.warning("Could not close thread %s for case #%s", case.thread_id, case_id)

    async def _annotate(self, case_id: int) -> None:
        case = await self.cases.find_by_id(case_id)
        if case is not None:
            await self.notifier.sync(case)
