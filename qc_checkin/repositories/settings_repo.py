from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from datetime import datetime
from typing import Any
from qc_checkin.db.models import SessionSettingsRow, SessionSettingsProposalRow

SETTINGS_FIELDS = (
    "session_duration", "timeouts_per_partner", "timeout_duration", "turn_based_mode",
    "turn_duration", "allow_extensions", "warm_up_questions", "cool_down_time",
    "pause_notifications", "auto_save_drafts", "version", "agreed_by",
)

async def fetch_settings(db: AsyncSession, couple_id: str) -> SessionSettingsRow | None:
    res = await db.execute(select(SessionSettingsRow).where(SessionSettingsRow.couple_id == couple_id))
    return res.scalar_one_or_none()

async def upsert_settings(db: AsyncSession, couple_id: str, values: dict[str, Any]) -> SessionSettingsRow:
    row = await fetch_settings(db, couple_id)
    if row is None:
        row = SessionSettingsRow(couple_id=couple_id)
        db.add(row)
    for key in SETTINGS_FIELDS:
        if key in values:
            setattr(row, key, values[key])
    await db.commit(); await db.refresh(row)
    return row

async def fetch_pending_proposal(db: AsyncSession, couple_id: str) -> SessionSettingsProposalRow | None:
    q = (
        select(SessionSettingsProposalRow)
        .where(SessionSettingsProposalRow.couple_id == couple_id, SessionSettingsProposalRow.status == "pending")
        .order_by(SessionSettingsProposalRow.proposed_at.desc())
        .limit(1)
    )
    res = await db.execute(q)
    return res.scalars().first()

async def insert_proposal(db: AsyncSession, couple_id: str, proposed_by: str, settings: dict[str, Any]) -> SessionSettingsProposalRow:
    p = SessionSettingsProposalRow(couple_id=couple_id, proposed_by=proposed_by, settings=dict(settings), status="pending")
    db.add(p)
    await db.commit(); await db.refresh(p)
    return p

async def review_proposal(db: AsyncSession, proposal_id: str, status: str, reviewed_by: str, reviewed_at: datetime) -> SessionSettingsProposalRow | None:
    p = await db.get(SessionSettingsProposalRow, proposal_id)
    if p is None:
        return None
    p.status = status
    p.reviewed_by = reviewed_by
    p.reviewed_at = reviewed_at
    await db.commit(); await db.refresh(p)
    return p

def settings_record(row: SessionSettingsRow) -> dict[str, Any]:
    data = {key: getattr(row, key) for key in SETTINGS_FIELDS}
    data["id"] = row.id
    data["couple_id"] = row.couple_id
    return data

def proposal_record(p: SessionSettingsProposalRow) -> dict[str, Any]:
    return {
        "id": p.id,
        "couple_id": p.couple_id,
        "proposed_by": p.proposed_by,
        "proposed_at": p.proposed_at.isoformat() if p.proposed_at else None,
        "settings": dict(p.settings or {}),
        "status": p.status,
        "reviewed_by": p.reviewed_by,
        "reviewed_at": p.reviewed_at.isoformat() if p.reviewed_at else None,
    }
