from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from ..constants import MAX_MESSAGE_LENGTH
from ..services.admin_action_store import AdminActionStore
from ..services.case_store import CaseStore
from .models import AdminAction, AdminActionType, VerificationCase

_ACTION_TEXT = {
    AdminActionType.VERIFY: "✅ Verified by {who}",
    AdminActionType.BAN: "🔨 Banned by {who}",
    AdminActionType.REOPEN: "🔄 Verification reopened by {who}",
    AdminActionType.CREATE_THREAD: "📝 Verification thread created by {who}",
}


def _stamp(when: datetime, markdown: bool) -> str:
    if markdown:
        return f"<t:{int(when.timestamp())}:f>"
    return when.strftime("%Y-%m-%d %H:%M UTC")


def action_summary(action: AdminAction, *, markdown: bool = True) -> str:
    who = f"<@{action.moderator_id}>" if markdown else f"@{action.moderator_id}"
    text = _ACTION_TEXT[action.action_type].format(who=who)
    return f"{text} at {_stamp(action.created_at, markdown)}"


def action_log_line(action: AdminAction) -> str:
    """One line of the notification's action log."""
    verb = {
        AdminActionType.VERIFY: "verified",
        AdminActionType.BAN: "banned",
        AdminActionType.REOPEN: "reopened",
        AdminActionType.CREATE_THREAD: "created a thread",
    }[action.action_type]
    return f"• <@{action.moderator_id}> {verb} <t:{int(action.created_at.timestamp())}:R>"


@dataclass(frozen=True)
class CaseHistoryEntry:
    case: VerificationCase
    actions: tuple[AdminAction, ...]


@dataclass(frozen=True)
class RenderedHistory:
    text: str
    # Too long for one message; send `text` as a file instead.
    as_file: bool
    filename: Optional[str] = None


def format_history(entries: list[CaseHistoryEntry], actor_id: int, *, markdown: bool = True) -> str:
    if markdown:
        out = [f"# Verification history for <@{actor_id}>", ""]
    else:
        out = [f"Verification history for @{actor_id}", ""]
    if not entries:
        out.append("No verification cases recorded.")
        return "\n".join(out)

    for entry in entries:
        case = entry.case
        heading = f"Case #{case.id} | {_stamp(case.created_at, markdown)}"
        out.append(f"## {heading}" if markdown else f"=== {heading} ===")
        out.append(f"Status: {case.status.value}")
        out.append(f"Detections: {case.detection_count}")
        if case.thread_id:
            out.append(f"Thread: <#{case.thread_id}>" if markdown else f"Thread: {case.thread_id}")
        if case.notes:
            out.append(f"Notes: {case.notes}")
        if entry.actions:
            out.append("Actions:")
            bullet = "-" if markdown else "*"
            for action in entry.actions:
                line = f"{bullet} {action_summary(action, markdown=markdown)}"
                if action.previous_status != action.new_status and action.new_status is not None:
                    prev = action.previous_status.value if action.previous_status else "none"
                    line += f"\n  Status changed from {prev} to {action.new_status.value}"
                if action.notes:
                    line += f"\n  Notes: {action.notes}"
                out.append(line)
        out.append("")
    return "\n".join(out).rstrip() + "\n"


def format_pending(cases: list[VerificationCase], server_id: int) -> str:
    if not cases:
        return "No pending verification cases."
    out = [f"# Pending verification cases ({len(cases)})"]
    for case in cases:
        line = f"- Case #{case.id}: <@{case.actor_id}> opened {_stamp(case.created_at, True)}, {case.detection_count} detection(s)"
        if case.notification is not None:
            line += f" [notice]({case.notification.jump_url(server_id)})"
        out.append(line)
    return "\n".join(out)


class HistoryService:
    def __init__(self, *, case_store: CaseStore, admin_action_store: AdminActionStore) -> None:
        self.cases = case_store
        self.actions = admin_action_store

    async def load(self, server_id: int, actor_id: int, limit: int = 10) -> list[CaseHistoryEntry]:
        cases = await self.cases.list_for_actor(server_id, actor_id, limit=limit)
        entries = []
        for case in cases:
            actions = await self.actions.find_by_case(case.id)
            entries.append(CaseHistoryEntry(case=case, actions=tuple(actions)))
        return entries

    async def pending(self, server_id: int, limit: int = 25) -> str:
        cases = await self.cases.list_pending(server_id, limit=limit)
        text = format_pending(cases, server_id)
        if len(text) <= MAX_MESSAGE_LENGTH:
            return text
        cut = text[: MAX_MESSAGE_LENGTH - 4].rsplit("\n", 1)[0]
        return cut + "\n..."

    async def render(self, server_id: int, actor_id: int, limit: int = 10) -> RenderedHistory:
        entries = await self.load(server_id, actor_id, limit=limit)
        text = format_history(entries, actor_id, markdown=True)
        if len(text) <= MAX_MESSAGE_LENGTH:
            return RenderedHistory(text=text, as_file=False)
        return RenderedHistory(
            text=format_history(entries, actor_id, markdown=False),
            as_file=True,
            filename=f"verification-history-{actor_id}.txt",
        )
