from __future__ import annotations

import asyncio

import pytest

from conftest import ACTOR_ID, ADMIN_CHANNEL_ID, RESTRICTED_ROLE_ID, SERVER_ID, suspicious
from warden.detection.models import DetectionResult, Label, SignalType
from warden.events.models import AdditionalSuspicionDetected, CaseOpened
from warden.moderation.models import CaseStatus
from warden.platform.base import CaseNotice


@pytest.mark.asyncio
async def test_first_suspicion_opens_case_notifies_and_restricts(core, platform) -> None:
    outcome = await core.security.handle_suspicion(SERVER_ID, ACTOR_ID, suspicious())

    assert outcome.opened is True
    case = await core.case_store.find_by_id(outcome.case.id)
    assert case.status is CaseStatus.PENDING
    assert case.detection_count == 1

    sends = platform.calls_to("send_message")
    assert len(sends) == 1
    assert sends[0][0] == ADMIN_CHANNEL_ID
    assert isinstance(sends[0][1], CaseNotice)
    assert case.notification is not None and case.notification.channel_id == ADMIN_CHANNEL_ID

    assert len(platform.calls_to("add_restricted_role")) == 1
    assert RESTRICTED_ROLE_ID in platform.roles[(SERVER_ID, ACTOR_ID)]


@pytest.mark.asyncio
async def test_second_suspicion_merges_into_pending_case(core, platform) -> None:
    first = await core.security.handle_suspicion(SERVER_ID, ACTOR_ID, suspicious())
    second = await core.security.handle_suspicion(SERVER_ID, ACTOR_ID, suspicious(0.95, "Sent 8 messages in 10s"))

    assert second.opened is False
    assert second.case.id == first.case.id
    assert len(await core.case_store.list_for_actor(SERVER_ID, ACTOR_ID)) == 1

    assert len(platform.calls_to("send_message")) == 1
    edits = platform.calls_to("edit_message")
    assert len(edits) == 1
    notice = edits[0][1]
    assert notice.detection_count == 2
    assert "Sent 8 messages in 10s" in notice.reasons
    assert len(platform.calls_to("add_restricted_role")) == 1


@pytest.mark.asyncio
async def test_concurrent_signals_open_exactly_one_case(core, platform) -> None:
    outcomes = await asyncio.gather(
        *(core.security.handle_suspicion(SERVER_ID, ACTOR_ID, suspicious()) for _ in range(10))
    )

    assert len({o.case.id for o in outcomes}) == 1
    assert sum(o.opened for o in outcomes) == 1
    assert len(platform.calls_to("send_message")) == 1
    assert len(platform.calls_to("add_restricted_role")) == 1

    case = await core.case_store.find_by_id(outcomes[0].case.id)
    assert case.detection_count == 10
    first_ref = platform.calls_to("edit_message")[0][0]
    assert case.notification == first_ref
    assert all(args[0] == first_ref for args in platform.calls_to("edit_message"))


@pytest.mark.asyncio
async def test_ok_verdict_is_ignored(core, platform) -> None:
    ok = DetectionResult(label=Label.OK, confidence=0.1, reasons=(), trigger_source=SignalType.MESSAGE)

    assert await core.security.handle_suspicion(SERVER_ID, ACTOR_ID, ok) is None
    assert await core.case_store.find_active_pending(SERVER_ID, ACTOR_ID) is None
    assert platform.calls == []


@pytest.mark.asyncio
async def test_lost_notification_is_backfilled_on_next_signal(core, platform) -> None:
    platform.fail = {"send_message"}
    first = await core.security.handle_suspicion(SERVER_ID, ACTOR_ID, suspicious())
    assert (await core.case_store.find_by_id(first.case.id)).notification is None

    platform.fail = set()
    await core.security.handle_suspicion(SERVER_ID, ACTOR_ID, suspicious())

    case = await core.case_store.find_by_id(first.case.id)
    assert case.notification is not None
    assert len(platform.calls_to("send_message")) == 2
    assert platform.calls_to("edit_message") == []


@pytest.mark.asyncio
async def test_detection_events_are_linked_to_the_case(core) -> None:
    result = await core.orchestrator.record_manual(SERVER_ID, ACTOR_ID, signal_type=SignalType.REPORT, reporter_id=7)
    outcome = await core.security.handle_suspicion(SERVER_ID, ACTOR_ID, result)

    assert outcome.case.detection_event_id == result.detection_event_id
    event = await core.detection_store.find_by_id(result.detection_event_id)
    assert event.case_id == outcome.case.id

    # Results that were never persisted get an event on the way in.
    second = await core.security.handle_suspicion(SERVER_ID, ACTOR_ID, suspicious())
    assert second.result.detection_event_id is not None
    assert len(await core.detection_store.for_case(outcome.case.id)) == 2


@pytest.mark.asyncio
async def test_events_carry_the_case(core) -> None:
    seen = []

    async def record(event) -> None:
        seen.append(event)

    core.bus.subscribe(CaseOpened, record)
    core.bus.subscribe(AdditionalSuspicionDetected, record)

    await core.security.handle_suspicion(SERVER_ID, ACTOR_ID, suspicious())
    await core.security.handle_suspicion(SERVER_ID, ACTOR_ID, suspicious())

    assert [type(e) for e in seen] == [CaseOpened, AdditionalSuspicionDetected]
    assert seen[0].case.id == seen[1].case.id
    assert seen[1].case.detection_count == 2


@pytest.mark.asyncio
async def test_auto_restrict_disabled(core, platform) -> None:
    await core.server_store.update_settings(SERVER_ID, auto_restrict=False)

    await core.security.handle_suspicion(SERVER_ID, ACTOR_ID, suspicious())

    assert platform.calls_to("add_restricted_role") == []
    assert len(platform.calls_to("send_message")) == 1
