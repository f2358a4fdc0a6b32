from fastapi import APIRouter, Depends, HTTPException, Response
from qc_checkin.api.deps import Authed, get_checkin_context
from qc_checkin.schemas.checkin import (
    ActionItemCreate,
    CategoryProgressUpdate,
    CheckInStart,
    CheckInStateOut,
    DraftNoteCreate,
    DraftNoteUpdate,
    MoodPayload,
    ReflectionPayload,
    StepPayload,
)
from qc_checkin.services import steps
from qc_checkin.services.checkin_context import CheckInContext

router = APIRouter(prefix="/api/checkins", tags=["checkins"])

def _state_out(ctx: CheckInContext, session=None) -> CheckInStateOut:
    session = session or ctx.session
    can_advance = False
    if ctx.session is not None:
        current = ctx.session.progress.current_step
        can_advance = not steps.is_last(current) and ctx.can_go_to_step(steps.next_step(current))
    return CheckInStateOut(session=session, is_loading=ctx.is_loading, error=ctx.error, can_advance=can_advance)

def _require_session(ctx: CheckInContext):
    if ctx.session is None:
        raise HTTPException(status_code=404, detail="No active check-in")
    return ctx.session

@router.get("/active", response_model=CheckInStateOut)
async def active(ctx: CheckInContext = Depends(get_checkin_context)):
    return _state_out(ctx)

@router.post("", response_model=CheckInStateOut, status_code=201)
async def start(payload: CheckInStart, ctx: CheckInContext = Depends(get_checkin_context)):
    if not await ctx.start_check_in(payload.categories):
        raise HTTPException(status_code=409, detail="A check-in is already in progress")
    return _state_out(ctx)

@router.post("/steps/go", response_model=CheckInStateOut)
async def go_to_step(payload: StepPayload, ctx: CheckInContext = Depends(get_checkin_context)):
    _require_session(ctx)
    if not ctx.go_to_step(payload.step):
        raise HTTPException(status_code=409, detail=f"Cannot navigate to step '{payload.step.value}'")
    return _state_out(ctx)

@router.post("/steps/complete", response_model=CheckInStateOut)
async def complete_step(payload: StepPayload, ctx: CheckInContext = Depends(get_checkin_context)):
    _require_session(ctx)
    await ctx.complete_step(payload.step)
    return _state_out(ctx)

@router.patch("/categories/{category_id}", response_model=CheckInStateOut)
async def update_category(category_id: str, payload: CategoryProgressUpdate, ctx: CheckInContext = Depends(get_checkin_context)):
    session = _require_session(ctx)
    if category_id not in session.selected_categories:
        raise HTTPException(status_code=404, detail="Category not part of this check-in")
    ctx.update_category_progress(category_id, **payload.model_dump(exclude_none=True))
    return _state_out(ctx)

@router.post("/notes", response_model=CheckInStateOut, status_code=201)
async def add_note(payload: DraftNoteCreate, user=Depends(Authed), ctx: CheckInContext = Depends(get_checkin_context)):
    _require_session(ctx)
    ctx.add_draft_note(payload.content, author_id=user["user_id"], privacy=payload.privacy, tags=payload.tags, category_id=payload.category_id)
    return _state_out(ctx)

@router.patch("/notes/{note_id}", response_model=CheckInStateOut)
async def update_note(note_id: str, payload: DraftNoteUpdate, ctx: CheckInContext = Depends(get_checkin_context)):
    _require_session(ctx)
    ctx.update_draft_note(note_id, **payload.model_dump(exclude_none=True))
    return _state_out(ctx)

@router.delete("/notes/{note_id}", status_code=204)
async def remove_note(note_id: str, ctx: CheckInContext = Depends(get_checkin_context)):
    _require_session(ctx)
    await ctx.remove_draft_note(note_id)
    return Response(status_code=204)

@router.post("/action-items", response_model=CheckInStateOut, status_code=201)
async def add_action_item(payload: ActionItemCreate, ctx: CheckInContext = Depends(get_checkin_context)):
    _require_session(ctx)
    ctx.add_action_item(payload.title, description=payload.description, assigned_to=payload.assigned_to, due_date=payload.due_date)
    return _state_out(ctx)

@router.post("/action-items/{item_id}/toggle", response_model=CheckInStateOut)
async def toggle_action_item(item_id: str, ctx: CheckInContext = Depends(get_checkin_context)):
    _require_session(ctx)
    ctx.toggle_action_item(item_id)
    return _state_out(ctx)

@router.delete("/action-items/{item_id}", status_code=204)
async def remove_action_item(item_id: str, ctx: CheckInContext = Depends(get_checkin_context)):
    _require_session(ctx)
    await ctx.remove_action_item(item_id)
    return Response(status_code=204)

@router.post("/mood", response_model=CheckInStateOut)
async def set_mood(payload: MoodPayload, ctx: CheckInContext = Depends(get_checkin_context)):
    _require_session(ctx)
    ctx.set_mood(payload.mood, payload.when)
    return _state_out(ctx)

@router.post("/reflection", response_model=CheckInStateOut)
async def set_reflection(payload: ReflectionPayload, ctx: CheckInContext = Depends(get_checkin_context)):
    _require_session(ctx)
    ctx.set_reflection(payload.reflection)
    return _state_out(ctx)

@router.post("/save", response_model=CheckInStateOut)
async def save(ctx: CheckInContext = Depends(get_checkin_context)):
    _require_session(ctx)
    await ctx.save_session()
    return _state_out(ctx)

@router.post("/complete", response_model=CheckInStateOut)
async def complete(ctx: CheckInContext = Depends(get_checkin_context)):
    _require_session(ctx)
    completed = await ctx.complete_check_in()
    return _state_out(ctx, session=completed)

@router.post("/abandon", status_code=204)
async def abandon(ctx: CheckInContext = Depends(get_checkin_context)):
    _require_session(ctx)
    await ctx.abandon_check_in()
    return Response(status_code=204)
