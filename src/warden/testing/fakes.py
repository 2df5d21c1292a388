from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from ..detection.models import ClassifierVerdict, Label, ProfileData
from ..platform.base import Content, MemberInfo
from ..refs import MessageRef


def fake_member(
    user_id: int = 123456789,
    username: str = "TestUser",
    *,
    account_age_days: float = 365,
    member_age_days: float = 30,
) -> MemberInfo:
    """Fake platform member for testing."""
    now = datetime.now(timezone.utc)
    return MemberInfo(
        user_id=user_id,
        username=username,
        display_name=username,
        account_created_at=now - timedelta(days=account_age_days),
        joined_at=now - timedelta(days=member_age_days),
    )


def profile_of(member: MemberInfo, recent_messages: tuple[str, ...] = ()) -> ProfileData:
    return ProfileData(
        user_id=member.user_id,
        username=member.username,
        account_created_at=member.account_created_at,
        joined_at=member.joined_at,
        is_bot=member.is_bot,
        recent_messages=recent_messages,
    )


@dataclass
class FakeThread:
    id: int
    server_id: int
    channel_id: int
    name: str
    archived: bool = False
    locked: bool = False
    messages: list[str] = field(default_factory=list)


class FakePlatform:
    """Fake platform for testing. Records every call; individual operations can be made to fail."""

    def __init__(self) -> None:
        self.members: dict[tuple[int, int], MemberInfo] = {}
        self.roles: dict[tuple[int, int], set[int]] = {}
        self.messages: dict[MessageRef, Content] = {}
        self.threads: dict[int, FakeThread] = {}
        self.banned: set[tuple[int, int]] = set()
        self.calls: list[tuple[str, tuple[Any, ...]]] = []
        self.fail: set[str] = set()
        # Suspends every call once, letting concurrent flows interleave.
        self.yield_on_call = True
        self._next_id = 900_000

    def add_member(self, server_id: int, member: MemberInfo) -> MemberInfo:
        self.members[(server_id, member.user_id)] = member
        return member

    def calls_to(self, name: str) -> list[tuple[Any, ...]]:
        return [args for n, args in self.calls if n == name]

    async def _enter(self, name: str, *args: Any) -> bool:
        self.calls.append((name, args))
        if self.yield_on_call:
            await asyncio.sleep(0)
        return name not in self.fail

    def _new_id(self) -> int:
        self._next_id += 1
        return self._next_id

    async def fetch_member(self, server_id: int, actor_id: int) -> Optional[MemberInfo]:
        if not await self._enter("fetch_member", server_id, actor_id):
            return None
        return self.members.get((server_id, actor_id))

    async def send_message(self, channel_id: int, content: Content) -> Optional[MessageRef]:
        if not await self._enter("send_message", channel_id, content):
            return None
        ref = MessageRef(channel_id, self._new_id())
        self.messages[ref] = content
        return ref

    async def edit_message(self, ref: MessageRef, content: Content) -> bool:
        if not await self._enter("edit_message", ref, content) or ref not in self.messages:
            return False
        self.messages[ref] = content
        return True

    async def add_restricted_role(self, server_id: int, actor_id: int, role_id: int, reason: str) -> bool:
        if not await self._enter("add_restricted_role", server_id, actor_id, role_id):
            return False
        if (server_id, actor_id) not in self.members:
            return False
        self.roles.setdefault((server_id, actor_id), set()).add(role_id)
        return True

    async def remove_restricted_role(self, server_id: int, actor_id: int, role_id: int, reason: str) -> bool:
        if not await self._enter("remove_restricted_role", server_id, actor_id, role_id):
            return False
        if (server_id, actor_id) not in self.members:
            return False
        self.roles.setdefault((server_id, actor_id), set()).discard(role_id)
        return True

    async def ban_member(self, server_id: int, actor_id: int, reason: str) -> bool:
        if not await self._enter("ban_member", server_id, actor_id, reason):
            return False
        self.banned.add((server_id, actor_id))
        self.members.pop((server_id, actor_id), None)
        return True

    async def create_thread(
        self,
        server_id: int,
        channel_id: int,
        name: str,
        intro: str,
        *,
        invite_ids: tuple[int, ...] = (),
    ) -> Optional[int]:
        if not await self._enter("create_thread", server_id, channel_id, name):
            return None
        thread = FakeThread(id=self._new_id(), server_id=server_id, channel_id=channel_id, name=name, messages=[intro])
        self.threads[thread.id] = thread
        return thread.id

    async def close_thread(self, thread_id: int, message: str) -> bool:
        if not await self._enter("close_thread", thread_id, message) or thread_id not in self.threads:
            return False
        thread = self.threads[thread_id]
        thread.messages.append(message)
        thread.archived = thread.locked = True
        return True

    async def reopen_thread(self, thread_id: int, message: str) -> bool:
        if not await self._enter("reopen_thread", thread_id, message) or thread_id not in self.threads:
            return False
        thread = self.threads[thread_id]
        thread.archived = thread.locked = False
        thread.messages.append(message)
        return True


class StubClassifier:
    """Fake classifier for testing. Returns a fixed verdict, or raises `error`."""

    def __init__(
        self,
        verdict: Optional[ClassifierVerdict] = None,
        *,
        error: Optional[BaseException] = None,
        delay: float = 0.0,
    ) -> None:
        self.verdict = verdict or ClassifierVerdict(Label.OK, 0.2)
        self.error = error
        self.delay = delay
        self.calls: list[ProfileData] = []

    async def analyze(self, profile: ProfileData) -> ClassifierVerdict:
        self.calls.append(profile)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.verdict
