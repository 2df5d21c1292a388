from __future__ import annotations

import pytest

from conftest import ACTOR_ID, MODERATOR_ID, RESTRICTED_ROLE_ID, SERVER_ID, VERIFY_CHANNEL_ID, suspicious
from warden.errors import (
    ActiveCaseExistsError,
    CaseNotFoundError,
    ConfigurationError,
    InvalidTransitionError,
    WardenError,
)
from warden.moderation.models import AdminActionType, CaseStatus


async def _open_case(core):
    outcome = await core.security.handle_suspicion(SERVER_ID, ACTOR_ID, suspicious())
    return outcome.case


@pytest.mark.asyncio
async def test_verify_resolves_case_and_lifts_restriction(core, platform) -> None:
    case = await _open_case(core)

    verified = await core.actuator.verify(case.id, MODERATOR_ID, notes="looks fine")

    assert verified.status is CaseStatus.VERIFIED
    assert verified.resolved_at is not None
    assert verified.resolved_by == MODERATOR_ID
    assert RESTRICTED_ROLE_ID not in platform.roles[(SERVER_ID, ACTOR_ID)]

    actions = await core.admin_action_store.find_by_case(case.id)
    assert [a.action_type for a in actions] == [AdminActionType.VERIFY]
    assert actions[0].previous_status is CaseStatus.PENDING
    assert actions[0].new_status is CaseStatus.VERIFIED
    assert actions[0].notes == "looks fine"

    # The notification was edited to show the resolution.
    notice = platform.messages[verified.notification]
    assert notice.status is CaseStatus.VERIFIED
    assert len(notice.action_log) == 1


@pytest.mark.asyncio
async def test_reopen_returns_case_to_pending(core, platform) -> None:
    case = await _open_case(core)
    await core.actuator.verify(case.id, MODERATOR_ID)

    reopened = await core.actuator.reopen(case.id, MODERATOR_ID, notes="second look")

    assert reopened.status is CaseStatus.PENDING
    assert reopened.resolved_at is None
    assert reopened.resolved_by is None
    assert RESTRICTED_ROLE_ID in platform.roles[(SERVER_ID, ACTOR_ID)]

    actions = await core.admin_action_store.find_by_case(case.id)
    assert [a.action_type for a in actions] == [AdminActionType.VERIFY, AdminActionType.REOPEN]
    assert actions[1].previous_status is CaseStatus.VERIFIED
    assert actions[1].new_status is CaseStatus.PENDING


@pytest.mark.asyncio
async def test_ban_removes_member(core, platform) -> None:
    case = await _open_case(core)

    banned = await core.actuator.ban(case.id, MODERATOR_ID, reason="spam bot")

    assert banned.status is CaseStatus.BANNED
    assert (SERVER_ID, ACTOR_ID) in platform.banned
    actions = await core.admin_action_store.find_by_case(case.id)
    assert [a.action_type for a in actions] == [AdminActionType.BAN]
    assert actions[0].notes == "spam bot"


@pytest.mark.asyncio
async def test_failed_ban_leaves_case_pending(core, platform) -> None:
    case = await _open_case(core)
    platform.fail = {"ban_member"}

    with pytest.raises(WardenError):
        await core.actuator.ban(case.id, MODERATOR_ID)

    assert (await core.case_store.find_by_id(case.id)).status is CaseStatus.PENDING
    assert await core.admin_action_store.find_by_case(case.id) == []


@pytest.mark.asyncio
@pytest.mark.parametrize("first, second", [("verify", "verify"), ("verify", "ban"), ("ban", "verify"), ("ban", "ban")])
async def test_resolved_case_cannot_be_resolved_again(core, first, second) -> None:
    case = await _open_case(core)
    await getattr(core.actuator, first)(case.id, MODERATOR_ID)
    before = await core.case_store.find_by_id(case.id)

    with pytest.raises(InvalidTransitionError):
        await getattr(core.actuator, second)(case.id, MODERATOR_ID)

    assert await core.case_store.find_by_id(case.id) == before
    assert len(await core.admin_action_store.find_by_case(case.id)) == 1


@pytest.mark.asyncio
async def test_pending_case_cannot_be_reopened(core) -> None:
    case = await _open_case(core)
    with pytest.raises(InvalidTransitionError):
        await core.actuator.reopen(case.id, MODERATOR_ID)


@pytest.mark.asyncio
async def test_reopen_refused_while_another_case_is_pending(core) -> None:
    old = await _open_case(core)
    await core.actuator.verify(old.id, MODERATOR_ID)
    newer = await _open_case(core)
    assert newer.id != old.id

    with pytest.raises(ActiveCaseExistsError) as info:
        await core.actuator.reopen(old.id, MODERATOR_ID)

    assert info.value.active_case_id == newer.id
    assert (await core.case_store.find_by_id(old.id)).status is CaseStatus.VERIFIED


@pytest.mark.asyncio
async def test_unknown_case(core) -> None:
    with pytest.raises(CaseNotFoundError):
        await core.actuator.verify(12345, MODERATOR_ID)


@pytest.mark.asyncio
async def test_thread_lifecycle(core, platform) -> None:
    case = await _open_case(core)

    thread_id = await core.actuator.create_thread(case.id, MODERATOR_ID)
    assert await core.actuator.create_thread(case.id, MODERATOR_ID) == thread_id
    assert len(platform.calls_to("create_thread")) == 1
    assert platform.calls_to("create_thread")[0][1] == VERIFY_CHANNEL_ID
    assert (await core.case_store.find_by_id(case.id)).thread_id == thread_id

    await core.actuator.verify(case.id, MODERATOR_ID)
    assert platform.threads[thread_id].archived is True

    await core.actuator.reopen(case.id, MODERATOR_ID)
    assert platform.threads[thread_id].archived is False

    actions = await core.admin_action_store.find_by_case(case.id)
    assert [a.action_type for a in actions] == [
        AdminActionType.CREATE_THREAD,
        AdminActionType.VERIFY,
        AdminActionType.REOPEN,
    ]


@pytest.mark.asyncio
async def test_thread_requires_pending_case(core) -> None:
    case = await _open_case(core)
    await core.actuator.ban(case.id, MODERATOR_ID)

    with pytest.raises(InvalidTransitionError):
        await core.actuator.create_thread(case.id, MODERATOR_ID)


@pytest.mark.asyncio
async def test_restrict_without_role_is_a_configuration_error(core) -> None:
    await core.server_store.ensure(SERVER_ID + 1)
    with pytest.raises(ConfigurationError):
        await core.actuator.restrict(SERVER_ID + 1, ACTOR_ID, "test")
