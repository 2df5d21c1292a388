from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional

from ..refs import MessageRef


class SignalType(str, Enum):
    MESSAGE = "message"
    JOIN = "join"
    REPORT = "report"
    MANUAL = "manual"


class Label(str, Enum):
    OK = "OK"
    SUSPICIOUS = "SUSPICIOUS"


@dataclass(frozen=True)
class ProfileData:
    """What the classifiers get to see about an actor."""

    user_id: int
    username: str
    account_created_at: Optional[datetime] = None
    joined_at: Optional[datetime] = None
    is_bot: bool = False
    recent_messages: tuple[str, ...] = ()


@dataclass(frozen=True)
class ClassifierVerdict:
    label: Label
    confidence: float
    reasons: tuple[str, ...] = ()

    @property
    def is_suspicious(self) -> bool:
        return self.label is Label.SUSPICIOUS


@dataclass(frozen=True)
class DetectionResult:
    label: Label
    confidence: float
    reasons: tuple[str, ...]
    trigger_source: SignalType
    trigger_content: Optional[str] = None
    detection_event_id: Optional[int] = None
    used_ai: bool = False

    @property
    def is_suspicious(self) -> bool:
        return self.label is Label.SUSPICIOUS


@dataclass(frozen=True)
class DetectionEvent:
    """One suspicion signal as persisted. Only case_id changes after creation."""

    id: int
    server_id: int
    actor_id: int
    signal_type: SignalType
    label: Label
    confidence: float
    reasons: tuple[str, ...]
    detected_at: datetime
    source: Optional[MessageRef] = None
    content: Optional[str] = None
    case_id: Optional[int] = None
    metadata: dict = field(default_factory=dict)
