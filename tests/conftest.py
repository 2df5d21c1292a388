from __future__ import annotations

import pytest
import pytest_asyncio

from warden.container import WardenCore, build_core
from warden.detection.models import DetectionResult, Label, SignalType
from warden.testing.fakes import FakePlatform, fake_member

SERVER_ID = 1000
ADMIN_CHANNEL_ID = 2000
RESTRICTED_ROLE_ID = 3000
VERIFY_CHANNEL_ID = 4000
MODERATOR_ID = 555
ACTOR_ID = 42


def suspicious(confidence: float = 0.9, reason: str = "Suspicious keywords: 'free nitro'") -> DetectionResult:
    return DetectionResult(
        label=Label.SUSPICIOUS,
        confidence=confidence,
        reasons=(reason,),
        trigger_source=SignalType.MESSAGE,
        trigger_content="free nitro here",
    )


@pytest.fixture
def platform() -> FakePlatform:
    fake = FakePlatform()
    fake.add_member(SERVER_ID, fake_member(ACTOR_ID, "spammer", account_age_days=1, member_age_days=0.5))
    return fake


async def _make_core(tmp_path, platform: FakePlatform, **kwargs) -> WardenCore:
    core = build_core(sqlite_path=str(tmp_path / "warden.sqlite3"), platform=platform, **kwargs)
    await core.init()
    await core.server_store.ensure(SERVER_ID, "Test Server")
    await core.server_store.set_channels(
        SERVER_ID,
        restricted_role_id=RESTRICTED_ROLE_ID,
        admin_channel_id=ADMIN_CHANNEL_ID,
        verification_channel_id=VERIFY_CHANNEL_ID,
    )
    return core


@pytest_asyncio.fixture
async def core(tmp_path, platform: FakePlatform) -> WardenCore:
    return await _make_core(tmp_path, platform)


@pytest.fixture
def make_core(tmp_path, platform: FakePlatform):
    """Build a core with custom arguments (classifier, timeouts)."""

    async def factory(**kwargs) -> WardenCore:
        return await _make_core(tmp_path, platform, **kwargs)

    return factory
