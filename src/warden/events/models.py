from __future__ import annotations

import typing
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, Union

from ..detection.models import DetectionResult
from ..moderation.models import CaseStatus, VerificationCase
from ..refs import MessageRef
from ..services.base import utcnow


@dataclass(frozen=True)
class CaseOpened:
    server_id: int
    actor_id: int
    case: VerificationCase
    result: DetectionResult
    source: Optional[MessageRef] = None


@dataclass(frozen=True)
class AdditionalSuspicionDetected:
    server_id: int
    actor_id: int
    case: VerificationCase
    result: DetectionResult
    source: Optional[MessageRef] = None


@dataclass(frozen=True)
class CaseVerified:
    server_id: int
    actor_id: int
    moderator_id: int
    case_id: int
    previous_status: CaseStatus = CaseStatus.PENDING
    notes: Optional[str] = None
    at: datetime = field(default_factory=utcnow)


@dataclass(frozen=True)
class CaseBanned:
    server_id: int
    actor_id: int
    moderator_id: int
    case_id: int
    reason: str
    previous_status: CaseStatus = CaseStatus.PENDING
    at: datetime = field(default_factory=utcnow)


@dataclass(frozen=True)
class CaseReopened:
    case_id: int
    server_id: int
    actor_id: int
    moderator_id: int
    previous_status: CaseStatus
    notes: Optional[str] = None
    at: datetime = field(default_factory=utcnow)


@dataclass(frozen=True)
class CaseThreadCreated:
    case_id: int
    server_id: int
    actor_id: int
    moderator_id: int
    thread_id: int
    at: datetime = field(default_factory=utcnow)


Event = Union[
    CaseOpened,
    AdditionalSuspicionDetected,
    CaseVerified,
    CaseBanned,
    CaseReopened,
    CaseThreadCreated,
]

EVENT_TYPES: tuple[type, ...] = typing.get_args(Event)
