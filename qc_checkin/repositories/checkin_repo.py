from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from datetime import datetime
from typing import Any, Optional
from qc_checkin.db.models import CheckIn

IN_PROGRESS = "in-progress"

async def fetch_active_check_in(db: AsyncSession, couple_id: str) -> CheckIn | None:
    q = (
        select(CheckIn)
        .where(CheckIn.couple_id == couple_id, CheckIn.status == IN_PROGRESS)
        .order_by(CheckIn.started_at.desc())
        .limit(1)
    )
    res = await db.execute(q)
    return res.scalars().first()

async def insert_check_in(db: AsyncSession, *, check_in_id: str, couple_id: str, started_at: datetime, categories: list[str]) -> CheckIn:
    ci = CheckIn(
        id=check_in_id,
        couple_id=couple_id,
        started_at=started_at,
        status=IN_PROGRESS,
        categories=list(categories),
        current_step="welcome",
        completed_steps=[],
    )
    db.add(ci)
    await db.commit(); await db.refresh(ci)
    return ci

async def update_check_in_progress(db: AsyncSession, check_in_id: str, current_step: str, completed_steps: list[str]) -> CheckIn | None:
    ci = await db.get(CheckIn, check_in_id)
    if ci is None:
        return None
    ci.current_step = current_step
    ci.completed_steps = list(completed_steps)
    await db.commit(); await db.refresh(ci)
    return ci

async def update_check_in_status(
    db: AsyncSession,
    check_in_id: str,
    status: str,
    *,
    completed_at: Optional[datetime] = None,
    fields: Optional[dict[str, Any]] = None,
) -> CheckIn | None:
    ci = await db.get(CheckIn, check_in_id)
    if ci is None:
        return None
    ci.status = status
    ci.completed_at = completed_at
    for key in ("mood_before", "mood_after", "reflection", "current_step", "completed_steps"):
        if fields and key in fields:
            setattr(ci, key, fields[key])
    await db.commit(); await db.refresh(ci)
    return ci

def check_in_record(ci: CheckIn) -> dict[str, Any]:
    """Plain row dict, as delivered on the realtime feed."""
    return {
        "id": ci.id,
        "couple_id": ci.couple_id,
        "started_at": ci.started_at.isoformat() if ci.started_at else None,
        "completed_at": ci.completed_at.isoformat() if ci.completed_at else None,
        "status": ci.status,
        "categories": list(ci.categories or []),
        "mood_before": ci.mood_before,
        "mood_after": ci.mood_after,
        "reflection": ci.reflection,
        "current_step": ci.current_step,
        "completed_steps": list(ci.completed_steps or []),
    }
