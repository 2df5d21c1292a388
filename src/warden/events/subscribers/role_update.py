from __future__ import annotations

import logging

from ...errors import ConfigurationError
from ...moderation.actuator import ModerationActuator
from ..bus import EventBus
from ..models import CaseVerified

log = logging.getLogger("warden.subscribers.role_update")


class RoleUpdateSubscriber:
    """Lifts the restriction once a case is verified."""

    def __init__(self, *, actuator: ModerationActuator) -> None:
        self.actuator = actuator

    def subscribe(self, bus: EventBus) -> None:
        bus.subscribe(CaseVerified, self.on_case_verified)

    async def on_case_verified(self, event: CaseVerified) -> None:
        try:
            await self.actuator.unrestrict(event.server_id, event.actor_id, f"Verified by moderator (case #{event.case_id})")
        except ConfigurationError as e:
            log.warning("Not lifting restriction on %s: %s", event.actor_id, e)
