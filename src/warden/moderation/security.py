from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Optional

from ..detection.models import DetectionResult, ProfileData
from ..events.bus import EventBus
from ..events.models import AdditionalSuspicionDetected, CaseOpened
from ..refs import MessageRef
from ..services.case_store import CaseStore
from ..services.detection_store import DetectionStore
from ..services.member_store import MemberStore
from ..services.server_store import ServerStore
from ..services.user_store import UserStore
from .locks import KeyedLocks
from .models import VerificationCase

log = logging.getLogger("warden.security")


@dataclass(frozen=True)
class SuspicionOutcome:
    case: VerificationCase
    # False when the signal was merged into a case that was already pending.
    opened: bool
    result: DetectionResult


class SecurityActionService:
    """Opens a verification case for a suspicious verdict, or merges into the pending one.

    Everything from the pending-case lookup to the published event runs under a
    per-(server, actor) lock shared with the moderation actuator, so one actor never
    has two pending cases and subscribers never see a half-written case.
    """

    def __init__(
        self,
        *,
        bus: EventBus,
        locks: KeyedLocks,
        server_store: ServerStore,
        user_store: UserStore,
        member_store: MemberStore,
        case_store: CaseStore,
        detection_store: DetectionStore,
    ) -> None:
        self.bus = bus
        self.locks = locks
        self.servers = server_store
        self.users = user_store
        self.members = member_store
        self.cases = case_store
        self.detections = detection_store

    async def handle_suspicion(
        self,
        server_id: int,
        actor_id: int,
        result: DetectionResult,
        *,
        source: Optional[MessageRef] = None,
        profile: Optional[ProfileData] = None,
    ) -> Optional[SuspicionOutcome]:
        if not result.is_suspicious:
            return None

        async with self.locks.hold((server_id, actor_id)):
            await self._ensure_entities(server_id, actor_id, profile)
            result = await self._ensure_detection_event(server_id, actor_id, result, source)

            active = await self.cases.find_active_pending(server_id, actor_id)
            if active is None:
                created = await self.cases.create(server_id, actor_id, detection_event_id=result.detection_event_id)
                if created is not None:
                    await self._link_event(result, created)
                    log.info(
                        "Opened case #%s for %s in %s (%s, %.2f)",
                        created.id, actor_id, server_id, result.trigger_source.value, result.confidence,
                    )
                    await self.bus.publish(
                        CaseOpened(server_id=server_id, actor_id=actor_id, case=created, result=result, source=source)
                    )
                    return SuspicionOutcome(case=created, opened=True, result=result)

                # Another process won the insert; fold into its case.
                active = await self.cases.find_active_pending(server_id, actor_id)
                if active is None:
                    log.error("Case insert for %s/%s conflicted but no pending case exists", server_id, actor_id)
                    return None

            merged = await self.cases.record_detection(active.id) or active
            await self._link_event(result, merged)
            log.info("Merged %s signal into case #%s (%d detections)", result.trigger_source.value, merged.id, merged.detection_count)
            await self.bus.publish(
                AdditionalSuspicionDetected(server_id=server_id, actor_id=actor_id, case=merged, result=result, source=source)
            )
            return SuspicionOutcome(case=merged, opened=False, result=result)

    async def _ensure_entities(self, server_id: int, actor_id: int, profile: Optional[ProfileData]) -> None:
        await self.servers.ensure(server_id)
        if profile is not None:
            await self.users.ensure(actor_id, profile.username, profile.account_created_at)
            await self.members.ensure(server_id, actor_id, profile.joined_at)
        else:
            await self.users.ensure(actor_id)
            await self.members.ensure(server_id, actor_id)

    async def _ensure_detection_event(
        self,
        server_id: int,
        actor_id: int,
        result: DetectionResult,
        source: Optional[MessageRef],
    ) -> DetectionResult:
        if result.detection_event_id is not None:
            return result
        try:
            event = await self.detections.create(
                server_id=server_id,
                actor_id=actor_id,
                signal_type=result.trigger_source,
                label=result.label,
                confidence=result.confidence,
                reasons=result.reasons,
                source=source,
                content=result.trigger_content,
            )
        except Exception:
            log.exception("Could not record detection event for %s/%s; continuing without it", server_id, actor_id)
            return result
        return replace(result, detection_event_id=event.id)

    async def _link_event(self, result: DetectionResult, case: VerificationCase) -> None:
        if result.detection_event_id is None:
            return
        try:
            await self.detections.link_case(result.detection_event_id, case.id)
        except Exception:
            log.exception("Could not link detection event %s to case #%s", result.detection_event_id, case.id)
