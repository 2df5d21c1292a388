from __future__ import annotations

from ...services.member_store import MemberStore, MemberVerification
from ...services.server_store import ServerStore
from ..bus import EventBus
from ..models import CaseBanned, CaseOpened, CaseReopened, CaseVerified


class MemberStatusSubscriber:
    """Keeps the denormalized member row in step with the member's case."""

    def __init__(self, *, member_store: MemberStore, server_store: ServerStore) -> None:
        self.members = member_store
        self.servers = server_store

    def subscribe(self, bus: EventBus) -> None:
        bus.subscribe(CaseOpened, self.on_case_opened)
        bus.subscribe(CaseVerified, self.on_case_verified)
        bus.subscribe(CaseBanned, self.on_case_banned)
        bus.subscribe(CaseReopened, self.on_case_reopened)

    async def on_case_opened(self, event: CaseOpened) -> None:
        cfg = await self.servers.ensure(event.server_id)
        await self.members.set_status(
            event.server_id,
            event.actor_id,
            MemberVerification.PENDING,
            is_restricted=cfg.auto_restrict and bool(cfg.restricted_role_id),
            at=event.case.created_at,
        )

    async def on_case_verified(self, event: CaseVerified) -> None:
        await self.members.set_status(
            event.server_id, event.actor_id, MemberVerification.VERIFIED, is_restricted=False, at=event.at
        )

    async def on_case_banned(self, event: CaseBanned) -> None:
        await self.members.set_status(
            event.server_id, event.actor_id, MemberVerification.BANNED, is_restricted=True, at=event.at
        )

    async def on_case_reopened(self, event: CaseReopened) -> None:
        cfg = await self.servers.ensure(event.server_id)
        await self.members.set_status(
            event.server_id,
            event.actor_id,
            MemberVerification.PENDING,
            is_restricted=bool(cfg.restricted_role_id),
            at=event.at,
        )
