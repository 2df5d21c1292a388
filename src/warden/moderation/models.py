from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional

from ..refs import MessageRef


class CaseStatus(str, Enum):
    PENDING = "PENDING"
    VERIFIED = "VERIFIED"
    BANNED = "BANNED"

    @property
    def is_terminal(self) -> bool:
        return self is not CaseStatus.PENDING


class AdminActionType(str, Enum):
    VERIFY = "VERIFY"
    BAN = "BAN"
    REOPEN = "REOPEN"
    CREATE_THREAD = "CREATE_THREAD"


@dataclass(frozen=True)
class VerificationCase:
    id: int
    server_id: int
    actor_id: int
    status: CaseStatus
    created_at: datetime
    updated_at: datetime
    detection_event_id: Optional[int] = None
    notification: Optional[MessageRef] = None
    thread_id: Optional[int] = None
    resolved_at: Optional[datetime] = None
    resolved_by: Optional[int] = None
    detection_count: int = 1
    notes: str = ""
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def is_pending(self) -> bool:
        return self.status is CaseStatus.PENDING


@dataclass(frozen=True)
class AdminAction:
    id: int
    server_id: int
    actor_id: int
    moderator_id: int
    case_id: int
    action_type: AdminActionType
    created_at: datetime
    previous_status: Optional[CaseStatus] = None
    new_status: Optional[CaseStatus] = None
    notes: Optional[str] = None
