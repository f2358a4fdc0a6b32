"""
Pytest configuration and shared fixtures for all tests.
"""
from datetime import datetime, timezone
from typing import Any

import pytest
from fastapi.testclient import TestClient

from fakes import FakeCheckInPersistence, FakeClock, FakeSettingsPersistence
from qc_checkin.schemas.session_settings import SessionSettings
from qc_checkin.services.checkin_context import CheckInContext
from qc_checkin.services.countdown import MemoryTimerStore
from qc_checkin.services.realtime import RealtimeFeed
from qc_checkin.services.session_clocks import ClockRegistry
from qc_checkin.services.session_settings import SessionSettingsCatalogue


@pytest.fixture
def test_user_id() -> str:
    """Generate a test user ID."""
    return "123e4567-e89b-12d3-a456-426614174000"


@pytest.fixture
def partner_user_id() -> str:
    """The other partner of the test couple."""
    return "223e4567-e89b-12d3-a456-426614174001"


@pytest.fixture
def test_couple_id() -> str:
    return "323e4567-e89b-12d3-a456-426614174002"


@pytest.fixture
def utc_now():
    """Get current UTC time."""
    return datetime.now(timezone.utc)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def timer_store() -> MemoryTimerStore:
    return MemoryTimerStore()


@pytest.fixture
def realtime() -> RealtimeFeed:
    return RealtimeFeed()


@pytest.fixture
def checkin_persistence() -> FakeCheckInPersistence:
    return FakeCheckInPersistence()


@pytest.fixture
def settings_persistence() -> FakeSettingsPersistence:
    return FakeSettingsPersistence()


@pytest.fixture
def standard_settings(test_couple_id) -> SessionSettings:
    return SessionSettings(
        couple_id=test_couple_id,
        session_duration=10,
        timeouts_per_partner=1,
        timeout_duration=2,
        turn_based_mode=True,
        turn_duration=90,
        allow_extensions=True,
        warm_up_questions=False,
        cool_down_time=2,
    )


@pytest.fixture
async def checkin_context(test_couple_id, test_user_id, checkin_persistence, realtime) -> CheckInContext:
    """A loaded context with no active check-in."""
    ctx = CheckInContext(test_couple_id, checkin_persistence, user_id=test_user_id, realtime=realtime)
    await ctx.load()
    yield ctx
    ctx.close()


@pytest.fixture
def sync_client(test_couple_id, test_user_id, checkin_persistence, settings_persistence, timer_store, clock):
    """
    TestClient with auth and persistence overridden; the check-in context is
    shared across requests like the production registry.
    """
    from qc_checkin.main import create_app
    from qc_checkin.api.deps import get_checkin_context, get_clock_registry, get_settings_catalogue
    from qc_checkin.core.security import get_current_user

    app = create_app()
    state: dict[str, Any] = {"user_id": test_user_id}
    clocks = ClockRegistry(timer_store, now_ms=clock, auto_tick=False)

    async def override_auth():
        return {"user_id": state["user_id"], "couple_id": test_couple_id, "role": "authenticated"}

    async def override_context():
        ctx = state.get("context")
        if ctx is None:
            ctx = CheckInContext(test_couple_id, checkin_persistence)
            clocks.follow(ctx)
            await ctx.load()
            state["context"] = ctx
        return ctx

    async def override_catalogue():
        catalogue = SessionSettingsCatalogue(test_couple_id, settings_persistence)
        await catalogue.load()
        return catalogue

    app.dependency_overrides[get_current_user] = override_auth
    app.dependency_overrides[get_checkin_context] = override_context
    app.dependency_overrides[get_settings_catalogue] = override_catalogue
    app.dependency_overrides[get_clock_registry] = lambda: clocks

    with TestClient(app) as c:
        c.auth_state = state
        c.clock_registry = clocks
        yield c

    app.dependency_overrides.clear()
