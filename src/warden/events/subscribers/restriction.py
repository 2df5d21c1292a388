from __future__ import annotations

import logging

from ...errors import ConfigurationError
from ...moderation.actuator import ModerationActuator
from ...services.server_store import ServerStore
from ..bus import EventBus
from ..models import CaseOpened

log = logging.getLogger("warden.subscribers.restriction")


class RestrictionSubscriber:
    """Applies the restricted role when a case opens."""

    def __init__(self, *, actuator: ModerationActuator, server_store: ServerStore) -> None:
        self.actuator = actuator
        self.servers = server_store

    def subscribe(self, bus: EventBus) -> None:
        bus.subscribe(CaseOpened, self.on_case_opened)

    async def on_case_opened(self, event: CaseOpened) -> None:
        cfg = await self.servers.ensure(event.server_id)
        if not cfg.auto_restrict:
            return
        try:
            await self.actuator.restrict(event.server_id, event.actor_id, f"Suspicious activity (case #{event.case.id})")
        except ConfigurationError as e:
            log.warning("Not restricting %s: %s", event.actor_id, e)
