"""
Check-in session state machine.

`check_in_reducer` is a pure function of (state, action). Anything that needs
a clock or a fresh id is captured on the action when it is constructed, so
replaying the same actions always yields the same state.
"""
from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional, Union

from qc_checkin.schemas.checkin import (
    ActionItem,
    BaseCheckIn,
    CategoryProgress,
    CheckInContextState,
    CheckInProgress,
    CheckInSession,
    CheckInStatus,
    CheckInStep,
    DraftNote,
)
from qc_checkin.services import steps
from qc_checkin.utils.time import utcnow


def _new_id() -> str:
    return str(uuid.uuid4())


# ---- Actions -----------------------------------------------------------------

@dataclass(frozen=True, slots=True)
class StartCheckIn:
    categories: tuple[str, ...]
    couple_id: str = ""
    session_id: str = field(default_factory=_new_id)
    started_at: datetime = field(default_factory=utcnow)

@dataclass(frozen=True, slots=True)
class GoToStep:
    step: CheckInStep

@dataclass(frozen=True, slots=True)
class CompleteStep:
    step: CheckInStep

@dataclass(frozen=True, slots=True)
class SetCategoryProgress:
    category_id: str
    progress: dict[str, Any]
    at: datetime = field(default_factory=utcnow)

@dataclass(frozen=True, slots=True)
class AddDraftNote:
    note: DraftNote

@dataclass(frozen=True, slots=True)
class UpdateDraftNote:
    note_id: str
    updates: dict[str, Any]

@dataclass(frozen=True, slots=True)
class RemoveDraftNote:
    note_id: str

@dataclass(frozen=True, slots=True)
class AddActionItem:
    action_item: ActionItem

@dataclass(frozen=True, slots=True)
class UpdateActionItem:
    action_item_id: str
    updates: dict[str, Any]

@dataclass(frozen=True, slots=True)
class RemoveActionItem:
    action_item_id: str

@dataclass(frozen=True, slots=True)
class ToggleActionItem:
    action_item_id: str
    at: datetime = field(default_factory=utcnow)

@dataclass(frozen=True, slots=True)
class SetMood:
    mood: int
    when: str = "before"  # before | after

@dataclass(frozen=True, slots=True)
class SetReflection:
    reflection: str

@dataclass(frozen=True, slots=True)
class SaveSession:
    at: datetime = field(default_factory=utcnow)

@dataclass(frozen=True, slots=True)
class CompleteCheckIn:
    at: datetime = field(default_factory=utcnow)

@dataclass(frozen=True, slots=True)
class AbandonCheckIn:
    pass

@dataclass(frozen=True, slots=True)
class RestoreSession:
    session: CheckInSession

@dataclass(frozen=True, slots=True)
class SetError:
    message: Optional[str]

@dataclass(frozen=True, slots=True)
class SetLoading:
    is_loading: bool


CheckInAction = Union[
    StartCheckIn,
    GoToStep,
    CompleteStep,
    SetCategoryProgress,
    AddDraftNote,
    UpdateDraftNote,
    RemoveDraftNote,
    AddActionItem,
    UpdateActionItem,
    RemoveActionItem,
    ToggleActionItem,
    SetMood,
    SetReflection,
    SaveSession,
    CompleteCheckIn,
    AbandonCheckIn,
    RestoreSession,
    SetError,
    SetLoading,
]


# ---- State helpers -------------------------------------------------------------

initial_state = CheckInContextState(session=None, is_loading=True, error=None)


def create_initial_session(
    categories: list[str] | tuple[str, ...],
    *,
    session_id: str,
    started_at: datetime,
    couple_id: str = "",
) -> CheckInSession:
    cats = list(dict.fromkeys(categories))
    return CheckInSession(
        id=session_id,
        base_check_in=BaseCheckIn(
            id=session_id,
            couple_id=couple_id,
            started_at=started_at,
            status=CheckInStatus.IN_PROGRESS,
            categories=cats,
        ),
        progress=CheckInProgress(
            current_step=CheckInStep.WELCOME,
            completed_steps=[],
            total_steps=steps.TOTAL_STEPS,
            percentage=0,
        ),
        selected_categories=cats,
        category_progress=[
            CategoryProgress(category_id=cat, last_updated=started_at)
            for cat in cats
        ],
        draft_notes=[],
        action_items=[],
        started_at=started_at,
        last_saved_at=started_at,
    )


def _with_progress(session: CheckInSession, **changes: Any) -> CheckInSession:
    return session.model_copy(update={"progress": session.progress.model_copy(update=changes)})


def _with_session(state: CheckInContextState, session: CheckInSession) -> CheckInContextState:
    return state.model_copy(update={"session": session})


def _add_completed(completed: list[CheckInStep], step: CheckInStep) -> list[CheckInStep]:
    members = set(completed)
    members.add(step)
    return sorted(members, key=steps.index)


def _merge(model, updates: dict[str, Any], protected: tuple[str, ...] = ("id",)):
    # Unknown and identifying keys are dropped
    allowed = {
        k: v for k, v in updates.items()
        if k in type(model).model_fields and k not in protected
    }
    return model.model_copy(update=allowed)


# ---- Reducer -------------------------------------------------------------------

def check_in_reducer(state: CheckInContextState, action: CheckInAction) -> CheckInContextState:
    if isinstance(action, StartCheckIn):
        session = create_initial_session(
            action.categories,
            session_id=action.session_id,
            started_at=action.started_at,
            couple_id=action.couple_id,
        )
        return state.model_copy(update={"session": session, "error": None})

    if isinstance(action, AbandonCheckIn):
        return state.model_copy(update={"session": None, "error": None})

    if isinstance(action, RestoreSession):
        return state.model_copy(update={"session": action.session, "is_loading": False})

    if isinstance(action, SetError):
        return state.model_copy(update={"error": action.message})

    if isinstance(action, SetLoading):
        return state.model_copy(update={"is_loading": action.is_loading})

    session = state.session
    if session is None:
        return state

    if isinstance(action, GoToStep):
        return _with_session(state, _with_progress(
            session,
            current_step=action.step,
            percentage=steps.percentage(action.step),
        ))

    if isinstance(action, CompleteStep):
        # Advances from the completed step even if it was not the current one.
        target = steps.next_step(action.step)
        return _with_session(state, _with_progress(
            session,
            completed_steps=_add_completed(session.progress.completed_steps, action.step),
            current_step=target,
            percentage=steps.percentage(target),
        ))

    if isinstance(action, SetCategoryProgress):
        if not any(cp.category_id == action.category_id for cp in session.category_progress):
            return state
        updated = [
            _merge(cp, {**action.progress, "last_updated": action.at}, protected=("category_id",))
            if cp.category_id == action.category_id else cp
            for cp in session.category_progress
        ]
        return _with_session(state, session.model_copy(update={"category_progress": updated}))

    if isinstance(action, AddDraftNote):
        return _with_session(state, session.model_copy(
            update={"draft_notes": [*session.draft_notes, action.note]}
        ))

    if isinstance(action, UpdateDraftNote):
        if not any(n.id == action.note_id for n in session.draft_notes):
            return state
        notes = [_merge(n, action.updates) if n.id == action.note_id else n for n in session.draft_notes]
        return _with_session(state, session.model_copy(update={"draft_notes": notes}))

    if isinstance(action, RemoveDraftNote):
        if not any(n.id == action.note_id for n in session.draft_notes):
            return state
        notes = [n for n in session.draft_notes if n.id != action.note_id]
        return _with_session(state, session.model_copy(update={"draft_notes": notes}))

    if isinstance(action, AddActionItem):
        return _with_session(state, session.model_copy(
            update={"action_items": [*session.action_items, action.action_item]}
        ))

    if isinstance(action, UpdateActionItem):
        if not any(a.id == action.action_item_id for a in session.action_items):
            return state
        items = [
            _merge(a, action.updates) if a.id == action.action_item_id else a
            for a in session.action_items
        ]
        return _with_session(state, session.model_copy(update={"action_items": items}))

    if isinstance(action, RemoveActionItem):
        if not any(a.id == action.action_item_id for a in session.action_items):
            return state
        items = [a for a in session.action_items if a.id != action.action_item_id]
        return _with_session(state, session.model_copy(update={"action_items": items}))

    if isinstance(action, ToggleActionItem):
        if not any(a.id == action.action_item_id for a in session.action_items):
            return state
        items = [
            a.model_copy(update={
                "completed": not a.completed,
                "completed_at": None if a.completed else action.at,
            }) if a.id == action.action_item_id else a
            for a in session.action_items
        ]
        return _with_session(state, session.model_copy(update={"action_items": items}))

    if isinstance(action, SetMood):
        field_name = "mood_after" if action.when == "after" else "mood_before"
        base = session.base_check_in.model_copy(update={field_name: action.mood})
        return _with_session(state, session.model_copy(update={"base_check_in": base}))

    if isinstance(action, SetReflection):
        base = session.base_check_in.model_copy(update={"reflection": action.reflection})
        return _with_session(state, session.model_copy(update={"base_check_in": base}))

    if isinstance(action, SaveSession):
        return _with_session(state, session.model_copy(update={"last_saved_at": action.at}))

    if isinstance(action, CompleteCheckIn):
        base = session.base_check_in.model_copy(update={
            "status": CheckInStatus.COMPLETED,
            "completed_at": action.at,
        })
        completed = session.model_copy(update={"base_check_in": base})
        return _with_session(state, _with_progress(
            completed,
            current_step=CheckInStep.COMPLETION,
            percentage=100,
        ))

    return state
