from __future__ import annotations

from ...moderation.notice import CaseNotifier
from ...services.case_store import CaseStore
from ..bus import EventBus
from ..models import AdditionalSuspicionDetected, CaseOpened


class NotificationSubscriber:
    """Posts the moderator notification for a new case and edits it as more signals arrive.

    A merge into a case whose first post never landed backfills the link.
    """

    def __init__(self, *, notifier: CaseNotifier, case_store: CaseStore) -> None:
        self.notifier = notifier
        self.cases = case_store

    def subscribe(self, bus: EventBus) -> None:
        bus.subscribe(CaseOpened, self.on_case_opened)
        bus.subscribe(AdditionalSuspicionDetected, self.on_additional_suspicion)

    async def on_case_opened(self, event: CaseOpened) -> None:
        await self.notifier.sync(event.case, event.result)

    async def on_additional_suspicion(self, event: AdditionalSuspicionDetected) -> None:
        case = await self.cases.find_by_id(event.case.id) or event.case
        await self.notifier.sync(case, event.result)
