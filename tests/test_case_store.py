from __future__ import annotations

import asyncio

import aiosqlite
import pytest

from conftest import ACTOR_ID, MODERATOR_ID, SERVER_ID
from warden.moderation.models import CaseStatus
from warden.refs import MessageRef


@pytest.mark.asyncio
async def test_round_trip_preserves_status_resolution_and_link(core) -> None:
    cases = core.case_store
    case = await cases.create(SERVER_ID, ACTOR_ID, notes="first")
    assert case is not None and case.status is CaseStatus.PENDING

    assert await cases.link_notification(case.id, MessageRef(11, 22)) is True
    updated = await cases.update_status(case.id, expected=CaseStatus.PENDING, new=CaseStatus.VERIFIED, moderator_id=MODERATOR_ID)
    assert updated is not None

    loaded = await cases.find_by_id(case.id)
    assert loaded == updated
    assert loaded.status is CaseStatus.VERIFIED
    assert loaded.resolved_by == MODERATOR_ID
    assert loaded.resolved_at is not None
    assert loaded.notification == MessageRef(11, 22)
    assert loaded.notes == "first"


@pytest.mark.asyncio
async def test_second_pending_case_is_refused(core) -> None:
    first = await core.case_store.create(SERVER_ID, ACTOR_ID)
    second = await core.case_store.create(SERVER_ID, ACTOR_ID)

    assert first is not None
    assert second is None
    # Another actor is unaffected.
    assert await core.case_store.create(SERVER_ID, ACTOR_ID + 1) is not None


@pytest.mark.asyncio
async def test_concurrent_inserts_yield_one_pending_case(core) -> None:
    results = await asyncio.gather(*(core.case_store.create(SERVER_ID, ACTOR_ID) for _ in range(5)))
    assert len([r for r in results if r is not None]) == 1


@pytest.mark.asyncio
async def test_status_update_is_guarded(core) -> None:
    case = await core.case_store.create(SERVER_ID, ACTOR_ID)
    await core.case_store.update_status(case.id, expected=CaseStatus.PENDING, new=CaseStatus.BANNED, moderator_id=1)

    stale = await core.case_store.update_status(case.id, expected=CaseStatus.PENDING, new=CaseStatus.VERIFIED, moderator_id=2)
    assert stale is None
    assert (await core.case_store.find_by_id(case.id)).status is CaseStatus.BANNED


@pytest.mark.asyncio
async def test_reopen_clears_resolution(core) -> None:
    case = await core.case_store.create(SERVER_ID, ACTOR_ID)
    await core.case_store.update_status(case.id, expected=CaseStatus.PENDING, new=CaseStatus.VERIFIED, moderator_id=1)
    reopened = await core.case_store.update_status(case.id, expected=CaseStatus.VERIFIED, new=CaseStatus.PENDING, moderator_id=1)

    assert reopened.status is CaseStatus.PENDING
    assert reopened.resolved_at is None
    assert reopened.resolved_by is None


@pytest.mark.asyncio
async def test_reopen_into_existing_pending_violates_index(core) -> None:
    old = await core.case_store.create(SERVER_ID, ACTOR_ID)
    await core.case_store.update_status(old.id, expected=CaseStatus.PENDING, new=CaseStatus.VERIFIED, moderator_id=1)
    await core.case_store.create(SERVER_ID, ACTOR_ID)

    with pytest.raises(aiosqlite.IntegrityError):
        await core.case_store.update_status(old.id, expected=CaseStatus.VERIFIED, new=CaseStatus.PENDING, moderator_id=1)


@pytest.mark.asyncio
async def test_notification_link_is_never_replaced(core) -> None:
    case = await core.case_store.create(SERVER_ID, ACTOR_ID)
    assert await core.case_store.link_notification(case.id, MessageRef(1, 100)) is True
    assert await core.case_store.link_notification(case.id, MessageRef(1, 200)) is False
    assert (await core.case_store.find_by_id(case.id)).notification == MessageRef(1, 100)


@pytest.mark.asyncio
async def test_partial_update(core) -> None:
    case = await core.case_store.create(SERVER_ID, ACTOR_ID)
    updated = await core.case_store.update(case.id, notes="checked", metadata={"source": "test"})
    assert updated.notes == "checked"
    assert updated.metadata == {"source": "test"}

    with pytest.raises(ValueError):
        await core.case_store.update(case.id, status="BANNED")


@pytest.mark.asyncio
async def test_missing_case_returns_none(core) -> None:
    assert await core.case_store.find_by_id(999) is None
    assert await core.case_store.find_active_pending(SERVER_ID, 999) is None
    assert await core.admin_action_store.find_by_case(999) == []


@pytest.mark.asyncio
async def test_list_pending_skips_resolved_cases(core) -> None:
    first = await core.case_store.create(SERVER_ID, ACTOR_ID)
    second = await core.case_store.create(SERVER_ID, ACTOR_ID + 1)
    await core.case_store.create(SERVER_ID + 1, ACTOR_ID)
    await core.case_store.update_status(first.id, expected=CaseStatus.PENDING, new=CaseStatus.VERIFIED, moderator_id=1)

    pending = await core.case_store.list_pending(SERVER_ID)

    assert [c.id for c in pending] == [second.id]
