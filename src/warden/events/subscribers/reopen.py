from __future__ import annotations

import logging

from ...errors import ConfigurationError
from ...moderation.actuator import ModerationActuator
from ...platform.base import Platform
from ...services.case_store import CaseStore
from ..bus import EventBus
from ..models import CaseReopened

log = logging.getLogger("warden.subscribers.reopen")


class ReopenSubscriber:
    """Puts a reopened case back in front of moderators: thread reopened, member restricted again."""

    def __init__(self, *, platform: Platform, actuator: ModerationActuator, case_store: CaseStore) -> None:
        self.platform = platform
        self.actuator = actuator
        self.cases = case_store

    def subscribe(self, bus: EventBus) -> None:
        bus.subscribe(CaseReopened, self.on_case_reopened)

    async def on_case_reopened(self, event: CaseReopened) -> None:
        case = await self.cases.find_by_id(event.case_id)
        if case is not None and case.thread_id:
            note = f"🔄 Case reopened by <@{event.moderator_id}> (was {event.previous_status.value})."
            if not await self.platform.reopen_thread(case.thread_id, note):
                log.warning("Could not reopen thread %s for case #%s", case.thread_id, event.case_id)

        try:
            await self.actuator.restrict(event.server_id, event.actor_id, f"Case #{event.case_id} reopened")
        except ConfigurationError as e:
            log.warning("Not re-restricting %s: %s", event.actor_id, e)
