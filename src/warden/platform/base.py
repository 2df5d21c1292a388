from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Protocol, Union

from ..moderation.models import CaseStatus
from ..refs import MessageRef


@dataclass(frozen=True)
class MemberInfo:
    user_id: int
    username: str
    display_name: str
    account_created_at: Optional[datetime] = None
    joined_at: Optional[datetime] = None
    is_bot: bool = False
    avatar_url: Optional[str] = None


@dataclass(frozen=True)
class CaseNotice:
    """Everything a moderator sees on a case notification, independent of how it is drawn."""

    case_id: int
    server_id: int
    actor_id: int
    status: CaseStatus
    username: str
    account_created_at: Optional[datetime]
    joined_at: Optional[datetime]
    confidence: float
    trigger: str
    trigger_content: Optional[str]
    trigger_link: Optional[str]
    reasons: tuple[str, ...]
    detection_count: int
    action_log: tuple[str, ...] = ()
    thread_id: Optional[int] = None
    mention_role_id: Optional[int] = None


Content = Union[str, CaseNotice]


class Platform(Protocol):
    """Capability set the moderation core uses.

    "Not found" and permission problems come back as None/False and are logged by the
    implementation; only programming errors raise.
    """

    async def fetch_member(self, server_id: int, actor_id: int) -> Optional[MemberInfo]: ...

    async def send_message(self, channel_id: int, content: Content) -> Optional[MessageRef]: ...

    async def edit_message(self, ref: MessageRef, content: Content) -> bool: ...

    async def add_restricted_role(self, server_id: int, actor_id: int, role_id: int, reason: str) -> bool: ...

    async def remove_restricted_role(self, server_id: int, actor_id: int, role_id: int, reason: str) -> bool: ...

    async def ban_member(self, server_id: int, actor_id: int, reason: str) -> bool: ...

    async def create_thread(
        self,
        server_id: int,
        channel_id: int,
        name: str,
        intro: str,
        *,
        invite_ids: tuple[int, ...] = (),
    ) -> Optional[int]: ...

    async def close_thread(self, thread_id: int, message: str) -> bool: ...

    async def reopen_thread(self, thread_id: int, message: str) -> bool: ...
