from __future__ import annotations

import logging

from .member_store import MemberStore
from .user_store import UserStore

log = logging.getLogger("warden.reputation")

GLOBAL_PENALTY = 10
GLOBAL_PENALTY_MIN_CONFIDENCE = 0.7
SERVER_PENALTY_SCALE = 20
SERVER_VERIFIED_BONUS = 5


class ReputationService:
    """Server-local and global reputation scores, both clamped to 0..100."""

    def __init__(self, *, user_store: UserStore, member_store: MemberStore) -> None:
        self.users = user_store
        self.members = member_store

    async def record_suspicion(self, server_id: int, actor_id: int, confidence: float) -> None:
        penalty = round(confidence * SERVER_PENALTY_SCALE)
        await self.members.adjust_reputation(server_id, actor_id, -penalty)
        if confidence > GLOBAL_PENALTY_MIN_CONFIDENCE:
            await self.users.adjust_reputation(actor_id, -GLOBAL_PENALTY)
        log.debug("Reputation of %s in %s lowered by %d", actor_id, server_id, penalty)

    async def record_verified(self, server_id: int, actor_id: int) -> None:
        await self.members.adjust_reputation(server_id, actor_id, SERVER_VERIFIED_BONUS)
