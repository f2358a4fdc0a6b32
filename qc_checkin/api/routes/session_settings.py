from fastapi import APIRouter, Depends, HTTPException
from qc_checkin.api.deps import Authed, get_settings_catalogue
from qc_checkin.schemas.session_settings import (
    ActiveSettingsOut,
    ProposalResponse,
    SessionSettingsProposal,
    SessionSettingsTemplate,
    SessionTemplate,
    SettingsProposalCreate,
)
from qc_checkin.services.session_settings import DEFAULT_TEMPLATES, SessionSettingsCatalogue

router = APIRouter(prefix="/api/session-settings", tags=["session-settings"])

@router.get("", response_model=ActiveSettingsOut)
async def active_settings(catalogue: SessionSettingsCatalogue = Depends(get_settings_catalogue)):
    return ActiveSettingsOut(
        settings=catalogue.get_active_settings(),
        active_template=catalogue.active_template,
        pending_proposal=catalogue.pending_proposal,
    )

@router.get("/templates", response_model=list[SessionSettingsTemplate])
async def templates():
    return list(DEFAULT_TEMPLATES)

@router.post("/proposals", response_model=SessionSettingsProposal, status_code=201)
async def propose(payload: SettingsProposalCreate, ctx=Depends(Authed), catalogue: SessionSettingsCatalogue = Depends(get_settings_catalogue)):
    result = await catalogue.propose_settings(payload.model_dump(exclude_none=True), ctx["user_id"])
    if result.error:
        raise HTTPException(status_code=400, detail=result.error)
    return catalogue.pending_proposal

@router.post("/proposals/template/{template_type}", response_model=SessionSettingsProposal, status_code=201)
async def propose_template(template_type: SessionTemplate, ctx=Depends(Authed), catalogue: SessionSettingsCatalogue = Depends(get_settings_catalogue)):
    result = await catalogue.propose_template(template_type, ctx["user_id"])
    if result.error:
        raise HTTPException(status_code=400, detail=result.error)
    return catalogue.pending_proposal

@router.post("/proposals/{proposal_id}/respond", response_model=ActiveSettingsOut)
async def respond(proposal_id: str, payload: ProposalResponse, ctx=Depends(Authed), catalogue: SessionSettingsCatalogue = Depends(get_settings_catalogue)):
    pending = catalogue.pending_proposal
    if pending is None or pending.id != proposal_id:
        raise HTTPException(status_code=404, detail="Proposal not found or no longer pending")
    if pending.proposed_by == ctx["user_id"]:
        raise HTTPException(status_code=403, detail="A proposal must be reviewed by the other partner")
    result = await catalogue.respond_to_proposal(proposal_id, payload.accept, ctx["user_id"])
    if result.error:
        raise HTTPException(status_code=502, detail=result.error)
    return ActiveSettingsOut(
        settings=catalogue.get_active_settings(),
        active_template=catalogue.active_template,
        pending_proposal=catalogue.pending_proposal,
    )
