from __future__ import annotations

from ...services.reputation import ReputationService
from ..bus import EventBus
from ..models import AdditionalSuspicionDetected, CaseOpened, CaseVerified


class ReputationSubscriber:
    def __init__(self, *, reputation: ReputationService) -> None:
        self.reputation = reputation

    def subscribe(self, bus: EventBus) -> None:
        bus.subscribe(CaseOpened, self.on_suspicion)
        bus.subscribe(AdditionalSuspicionDetected, self.on_suspicion)
        bus.subscribe(CaseVerified, self.on_case_verified)

    async def on_suspicion(self, event: CaseOpened | AdditionalSuspicionDetected) -> None:
        await self.reputation.record_suspicion(event.server_id, event.actor_id, event.result.confidence)

    async def on_case_verified(self, event: CaseVerified) -> None:
        await self.reputation.record_verified(event.server_id, event.actor_id)
