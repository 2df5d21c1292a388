from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from .config import DetectionDefaults
from .database import initialize_database
from .detection.classifier import Classifier
from .detection.orchestrator import DetectionOrchestrator
from .events.bus import EventBus
from .events.subscribers import register_subscribers
from .moderation.actuator import ModerationActuator
from .moderation.history import HistoryService
from .moderation.locks import KeyedLocks
from .moderation.notice import CaseNotifier
from .moderation.security import SecurityActionService
from .platform.base import Platform
from .services.admin_action_store import AdminActionStore
from .services.base import BaseService
from .services.case_store import CaseStore
from .services.detection_store import DetectionStore
from .services.member_store import MemberStore
from .services.reputation import ReputationService
from .services.server_store import ServerStore
from .services.user_store import UserStore


@dataclass
class WardenCore:
    """Every store and service, wired together. Built once per process."""

    sqlite_path: str
    server_store: ServerStore
    user_store: UserStore
    member_store: MemberStore
    detection_store: DetectionStore
    case_store: CaseStore
    admin_action_store: AdminActionStore
    bus: EventBus
    locks: KeyedLocks
    orchestrator: DetectionOrchestrator
    security: SecurityActionService
    actuator: ModerationActuator
    notifier: CaseNotifier
    history: HistoryService
    reputation: ReputationService

    @property
    def stores(self) -> list[BaseService]:
        return [
            self.server_store,
            self.user_store,
            self.member_store,
            self.detection_store,
            self.case_store,
            self.admin_action_store,
        ]

    async def init(self) -> None:
        await initialize_database(self.sqlite_path, self.stores)


def build_core(
    *,
    sqlite_path: str,
    platform: Platform,
    classifier: Optional[Classifier] = None,
    classifier_timeout_seconds: float = 10.0,
    cache_ttl: int = 120,
    defaults: Optional[DetectionDefaults] = None,
) -> WardenCore:
    server_store = ServerStore(sqlite_path, cache_ttl, defaults)
    user_store = UserStore(sqlite_path, cache_ttl)
    member_store = MemberStore(sqlite_path, cache_ttl)
    detection_store = DetectionStore(sqlite_path, cache_ttl)
    case_store = CaseStore(sqlite_path, cache_ttl)
    admin_action_store = AdminActionStore(sqlite_path, cache_ttl)

    bus = EventBus()
    locks = KeyedLocks()
    orchestrator = DetectionOrchestrator(
        server_store=server_store,
        detection_store=detection_store,
        classifier=classifier,
        classifier_timeout_seconds=classifier_timeout_seconds,
    )
    security = SecurityActionService(
        bus=bus,
        locks=locks,
        server_store=server_store,
        user_store=user_store,
        member_store=member_store,
        case_store=case_store,
        detection_store=detection_store,
    )
    actuator = ModerationActuator(
        bus=bus,
        locks=locks,
        platform=platform,
        server_store=server_store,
        case_store=case_store,
    )
    notifier = CaseNotifier(
        platform=platform,
        server_store=server_store,
        user_store=user_store,
        case_store=case_store,
        detection_store=detection_store,
        admin_action_store=admin_action_store,
    )
    reputation = ReputationService(user_store=user_store, member_store=member_store)
    register_subscribers(
        bus,
        platform=platform,
        actuator=actuator,
        notifier=notifier,
        server_store=server_store,
        case_store=case_store,
        member_store=member_store,
        admin_action_store=admin_action_store,
        reputation=reputation,
    )
    return WardenCore(
        sqlite_path=sqlite_path,
        server_store=server_store,
        user_store=user_store,
        member_store=member_store,
        detection_store=detection_store,
        case_store=case_store,
        admin_action_store=admin_action_store,
        bus=bus,
        locks=locks,
        orchestrator=orchestrator,
        security=security,
        actuator=actuator,
        notifier=notifier,
        history=HistoryService(case_store=case_store, admin_action_store=admin_action_store),
        reputation=reputation,
    )
