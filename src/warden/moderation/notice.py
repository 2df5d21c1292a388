from __future__ import annotations

import logging
from typing import Optional

from ..detection.models import DetectionEvent, DetectionResult, SignalType
from ..platform.base import CaseNotice, Platform
from ..refs import MessageRef
from ..services.admin_action_store import AdminActionStore
from ..services.case_store import CaseStore
from ..services.detection_store import DetectionStore
from ..services.server_store import ServerStore
from ..services.user_store import UserStore
from .history import action_log_line
from .models import VerificationCase

log = logging.getLogger("warden.notice")

TRIGGER_NAMES = {
    SignalType.MESSAGE: "Suspicious message",
    SignalType.JOIN: "Server join",
    SignalType.REPORT: "User report",
    SignalType.MANUAL: "Moderator flag",
}
MAX_REASONS = 10


class CaseNotifier:
    """Builds a case's notification and keeps the posted message in step with the case.

    The first successful post is linked to the case and never replaced; later calls edit it.
    A case whose first post failed is retried on the next call.
    """

    def __init__(
        self,
        *,
        platform: Platform,
        server_store: ServerStore,
        user_store: UserStore,
        case_store: CaseStore,
        detection_store: DetectionStore,
        admin_action_store: AdminActionStore,
    ) -> None:
        self.platform = platform
        self.servers = server_store
        self.users = user_store
        self.cases = case_store
        self.detections = detection_store
        self.actions = admin_action_store

    async def build(self, case: VerificationCase, result: Optional[DetectionResult] = None) -> CaseNotice:
        events = await self.detections.for_case(case.id)
        latest: Optional[DetectionEvent] = events[-1] if events else None
        if latest is None and case.detection_event_id is not None:
            latest = await self.detections.find_by_id(case.detection_event_id)

        reasons: list[str] = []
        for reason in [r for e in events for r in e.reasons] + list(result.reasons if result else ()):
            if reason not in reasons:
                reasons.append(reason)

        if result is not None:
            confidence = result.confidence
            trigger = TRIGGER_NAMES[result.trigger_source]
            trigger_content = result.trigger_content
        elif latest is not None:
            confidence = latest.confidence
            trigger = TRIGGER_NAMES[latest.signal_type]
            trigger_content = latest.content
        else:
            confidence, trigger, trigger_content = 0.0, "Unknown", None

        trigger_link = None
        if latest is not None and latest.source is not None:
            trigger_link = latest.source.jump_url(case.server_id)

        member = await self.platform.fetch_member(case.server_id, case.actor_id)
        if member is not None:
            username, created, joined = member.username, member.account_created_at, member.joined_at
        else:
            user = await self.users.get(case.actor_id)
            username = user.username if user and user.username else str(case.actor_id)
            created = user.account_created_at if user else None
            joined = None

        actions = await self.actions.find_by_case(case.id)
        cfg = await self.servers.ensure(case.server_id)
        return CaseNotice(
            case_id=case.id,
            server_id=case.server_id,
            actor_id=case.actor_id,
            status=case.status,
            username=username,
            account_created_at=created,
            joined_at=joined,
            confidence=confidence,
            trigger=trigger,
            trigger_content=trigger_content,
            trigger_link=trigger_link,
            reasons=tuple(reasons[:MAX_REASONS]),
            detection_count=case.detection_count,
            action_log=tuple(action_log_line(a) for a in actions),
            thread_id=case.thread_id,
            mention_role_id=cfg.admin_role_id if case.is_pending and not case.notification else None,
        )

    async def sync(self, case: VerificationCase, result: Optional[DetectionResult] = None) -> Optional[MessageRef]:
        """Post or edit the notification for `case`. Returns the linked message, if any."""
        notice = await self.build(case, result)

        if case.notification is not None:
            if not await self.platform.edit_message(case.notification, notice):
                log.warning("Could not edit notification for case #%s (message %s)", case.id, case.notification.message_id)
            return case.notification

        cfg = await self.servers.ensure(case.server_id)
        if not cfg.admin_channel_id:
            log.warning("No admin channel configured for server %s; case #%s has no notification", case.server_id, case.id)
            return None

        ref = await self.platform.send_message(cfg.admin_channel_id, notice)
        if ref is None:
            log.warning("Notification for case #%s was not delivered; it will be retried", case.id)
            return None

        if await self.cases.link_notification(case.id, ref):
            return ref

        current = await self.cases.find_by_id(case.id)
        log.warning("Case #%s already had a notification linked; message %s is a duplicate", case.id, ref.message_id)
        return current.notification if current else None
