from __future__ import annotations

from ...moderation.actuator import ModerationActuator
from ...moderation.notice import CaseNotifier
from ...platform.base import Platform
from ...services.admin_action_store import AdminActionStore
from ...services.case_store import CaseStore
from ...services.member_store import MemberStore
from ...services.reputation import ReputationService
from ...services.server_store import ServerStore
from ..bus import EventBus
from .audit import AuditLogSubscriber
from .member_status import MemberStatusSubscriber
from .notification import NotificationSubscriber
from .reopen import ReopenSubscriber
from .reputation import ReputationSubscriber
from .restriction import RestrictionSubscriber
from .role_update import RoleUpdateSubscriber


def register_subscribers(
    bus: EventBus,
    *,
    platform: Platform,
    actuator: ModerationActuator,
    notifier: CaseNotifier,
    server_store: ServerStore,
    case_store: CaseStore,
    member_store: MemberStore,
    admin_action_store: AdminActionStore,
    reputation: ReputationService,
) -> list[object]:
    """Wire every reaction subscriber onto `bus`, in dispatch order."""
    subscribers = [
        RestrictionSubscriber(actuator=actuator, server_store=server_store),
        NotificationSubscriber(notifier=notifier, case_store=case_store),
        RoleUpdateSubscriber(actuator=actuator),
        AuditLogSubscriber(
            platform=platform,
            notifier=notifier,
            case_store=case_store,
            admin_action_store=admin_action_store,
        ),
        MemberStatusSubscriber(member_store=member_store, server_store=server_store),
        ReopenSubscriber(platform=platform, actuator=actuator, case_store=case_store),
        ReputationSubscriber(reputation=reputation),
    ]
    for sub in subscribers:
        sub.subscribe(bus)
    return subscribers
