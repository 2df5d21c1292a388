from __future__ import annotations

import pytest

from conftest import ACTOR_ID, MODERATOR_ID, SERVER_ID, suspicious
from warden.events.models import CaseVerified
from warden.services.member_store import MemberVerification
from warden.testing.fakes import FakePlatform, fake_member, profile_of


@pytest.mark.asyncio
async def test_member_row_follows_case_status(core) -> None:
    outcome = await core.security.handle_suspicion(SERVER_ID, ACTOR_ID, suspicious())
    member = await core.member_store.get(SERVER_ID, ACTOR_ID)
    assert member.verification_status is MemberVerification.PENDING
    assert member.is_restricted is True

    await core.actuator.verify(outcome.case.id, MODERATOR_ID)
    member = await core.member_store.get(SERVER_ID, ACTOR_ID)
    assert member.verification_status is MemberVerification.VERIFIED
    assert member.is_restricted is False
    assert member.last_verified_at is not None

    await core.actuator.reopen(outcome.case.id, MODERATOR_ID)
    await core.actuator.ban(outcome.case.id, MODERATOR_ID)
    member = await core.member_store.get(SERVER_ID, ACTOR_ID)
    assert member.verification_status is MemberVerification.BANNED
    # Kept from the earlier verification.
    assert member.last_verified_at is not None


@pytest.mark.asyncio
async def test_reputation_drops_with_confidence(core) -> None:
    await core.security.handle_suspicion(SERVER_ID, ACTOR_ID, suspicious(1.0))

    assert (await core.member_store.get(SERVER_ID, ACTOR_ID)).reputation_score == 30
    assert (await core.user_store.get(ACTOR_ID)).global_reputation == 90


@pytest.mark.asyncio
async def test_low_confidence_spares_global_reputation(core) -> None:
    outcome = await core.security.handle_suspicion(SERVER_ID, ACTOR_ID, suspicious(0.6))
    assert (await core.member_store.get(SERVER_ID, ACTOR_ID)).reputation_score == 38
    assert (await core.user_store.get(ACTOR_ID)).global_reputation == 100

    await core.actuator.verify(outcome.case.id, MODERATOR_ID)
    assert (await core.member_store.get(SERVER_ID, ACTOR_ID)).reputation_score == 43


@pytest.mark.asyncio
async def test_reputation_is_clamped(core) -> None:
    for _ in range(5):
        await core.security.handle_suspicion(SERVER_ID, ACTOR_ID, suspicious(1.0))
    assert (await core.member_store.get(SERVER_ID, ACTOR_ID)).reputation_score == 0


@pytest.mark.asyncio
async def test_missing_restricted_role_does_not_block_notification(make_core, platform) -> None:
    core = await make_core()
    other_server = SERVER_ID + 1
    platform.add_member(other_server, fake_member(ACTOR_ID, "spammer"))
    await core.server_store.set_channels(other_server, admin_channel_id=2001)

    outcome = await core.security.handle_suspicion(other_server, ACTOR_ID, suspicious())

    assert platform.calls_to("add_restricted_role") == []
    assert platform.calls_to("send_message")[0][0] == 2001
    assert (await core.case_store.find_by_id(outcome.case.id)).notification is not None


@pytest.mark.asyncio
async def test_member_who_left_is_tolerated(core, platform: FakePlatform) -> None:
    member = platform.members[(SERVER_ID, ACTOR_ID)]
    outcome = await core.security.handle_suspicion(SERVER_ID, ACTOR_ID, suspicious(), profile=profile_of(member))
    platform.members.clear()

    verified = await core.actuator.verify(outcome.case.id, MODERATOR_ID)

    assert verified.status.value == "VERIFIED"
    notice = platform.messages[verified.notification]
    assert notice.username == "spammer"


@pytest.mark.asyncio
async def test_failing_subscriber_does_not_stop_the_rest(core, platform) -> None:
    async def broken(event: CaseVerified) -> None:
        raise RuntimeError("boom")

    # Put the broken handler ahead of every built-in one.
    builtin = core.bus.handlers_for(CaseVerified)
    for handler in builtin:
        core.bus.unsubscribe(CaseVerified, handler)
    core.bus.subscribe(CaseVerified, broken)
    for handler in builtin:
        core.bus.subscribe(CaseVerified, handler)

    outcome = await core.security.handle_suspicion(SERVER_ID, ACTOR_ID, suspicious())
    await core.actuator.verify(outcome.case.id, MODERATOR_ID)

    assert len(platform.calls_to("remove_restricted_role")) == 1
    assert len(await core.admin_action_store.find_by_case(outcome.case.id)) == 1
