from functools import lru_cache

from fastapi import Depends, HTTPException

from qc_checkin.core.security import get_current_user
from qc_checkin.db.session import SessionLocal
from qc_checkin.schemas.checkin import CheckInStatus
from qc_checkin.services.checkin_context import CheckInContext, ContextRegistry
from qc_checkin.services.countdown import MemoryTimerStore
from qc_checkin.services.persistence import CheckInPersistence, SettingsPersistence
from qc_checkin.services.realtime import feed
from qc_checkin.services.session_clocks import ClockRegistry, SessionClocks
from qc_checkin.services.session_settings import SessionSettingsCatalogue


@lru_cache
def get_clock_registry() -> ClockRegistry:
    return ClockRegistry(MemoryTimerStore())


@lru_cache
def get_checkin_registry() -> ContextRegistry:
    persistence = CheckInPersistence(SessionLocal, feed)
    clocks = get_clock_registry()

    def build(couple_id: str) -> CheckInContext:
        ctx = CheckInContext(couple_id, persistence, realtime=feed)
        clocks.follow(ctx)
        return ctx

    return ContextRegistry(build)


@lru_cache
def get_settings_persistence() -> SettingsPersistence:
    return SettingsPersistence(SessionLocal, feed)


def Authed(user=Depends(get_current_user)):
    if not user.get("couple_id"):
        raise HTTPException(status_code=403, detail="User is not part of a couple")
    return {"user_id": user["user_id"], "couple_id": user["couple_id"]}


async def get_checkin_context(
    ctx=Depends(Authed),
    registry: ContextRegistry = Depends(get_checkin_registry),
) -> CheckInContext:
    return await registry.get(ctx["couple_id"])


async def get_settings_catalogue(
    ctx=Depends(Authed),
    persistence: SettingsPersistence = Depends(get_settings_persistence),
) -> SessionSettingsCatalogue:
    catalogue = SessionSettingsCatalogue(ctx["couple_id"], persistence)
    await catalogue.load()
    return catalogue


async def get_session_clocks(
    ctx: CheckInContext = Depends(get_checkin_context),
    catalogue: SessionSettingsCatalogue = Depends(get_settings_catalogue),
    registry: ClockRegistry = Depends(get_clock_registry),
) -> SessionClocks:
    session = ctx.session
    if session is None or session.base_check_in.status != CheckInStatus.IN_PROGRESS:
        raise HTTPException(status_code=404, detail="No active check-in")
    return registry.get(session.id, catalogue.get_active_settings())
