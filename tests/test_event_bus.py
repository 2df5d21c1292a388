from __future__ import annotations

import pytest

from warden.events.bus import EventBus
from warden.events.models import CaseVerified


def _event() -> CaseVerified:
    return CaseVerified(server_id=1, actor_id=2, moderator_id=3, case_id=4)


@pytest.mark.asyncio
async def test_handlers_run_in_subscription_order() -> None:
    bus = EventBus()
    seen: list[str] = []

    async def first(event: CaseVerified) -> None:
        seen.append("first")

    async def second(event: CaseVerified) -> None:
        seen.append("second")

    bus.subscribe(CaseVerified, first)
    bus.subscribe(CaseVerified, second)
    failed = await bus.publish(_event())

    assert seen == ["first", "second"]
    assert failed == 0


@pytest.mark.asyncio
async def test_failing_handler_does_not_stop_the_rest() -> None:
    bus = EventBus()
    seen: list[int] = []

    async def broken(event: CaseVerified) -> None:
        raise RuntimeError("boom")

    async def healthy(event: CaseVerified) -> None:
        seen.append(event.case_id)

    bus.subscribe(CaseVerified, broken)
    bus.subscribe(CaseVerified, healthy)

    assert await bus.publish(_event()) == 1
    assert seen == [4]


@pytest.mark.asyncio
async def test_unsubscribe_removes_handler() -> None:
    bus = EventBus()
    seen: list[int] = []

    async def handler(event: CaseVerified) -> None:
        seen.append(event.case_id)

    bus.subscribe(CaseVerified, handler)
    assert bus.unsubscribe(CaseVerified, handler) is True
    assert bus.unsubscribe(CaseVerified, handler) is False
    await bus.publish(_event())
    assert seen == []


def test_subscribing_to_unknown_type_is_rejected() -> None:
    bus = EventBus()

    async def handler(event: object) -> None:
        return None

    with pytest.raises(TypeError):
        bus.subscribe(dict, handler)  # type: ignore[arg-type]


@pytest.mark.asyncio
async def test_publishing_unknown_type_is_rejected() -> None:
    with pytest.raises(TypeError):
        await EventBus().publish(object())  # type: ignore[arg-type]
