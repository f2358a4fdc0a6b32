"""
Orchestration around the pure check-in reducer.

Local state always moves first; persistence runs afterwards and only reports
back through `state.error`. Navigation never waits on the network and a
failed write never rolls the wizard back.
"""
from __future__ import annotations

import asyncio
import logging
import uuid
from typing import Any, Callable, Optional

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
    TERMINAL_STATUSES,
)
from qc_checkin.schemas.common import QueryResult
from qc_checkin.services import steps
from qc_checkin.services.checkin_reducer import (
    AbandonCheckIn,
    AddActionItem,
    AddDraftNote,
    CheckInAction,
    CompleteCheckIn,
    CompleteStep,
    GoToStep,
    RemoveActionItem,
    RemoveDraftNote,
    RestoreSession,
    SaveSession,
    SetCategoryProgress,
    SetError,
    SetLoading,
    SetMood,
    SetReflection,
    StartCheckIn,
    ToggleActionItem,
    UpdateActionItem,
    UpdateDraftNote,
    check_in_reducer,
    initial_state,
)
from qc_checkin.services.realtime import RealtimeFeed, Subscription
from qc_checkin.utils.time import parse_timestamp, utcnow

logger = logging.getLogger(__name__)

# Where a resumed session lands when the row carries no saved progress
RESUME_STEP = CheckInStep.CATEGORY_DISCUSSION


def reconstruct_session(record: dict[str, Any]) -> CheckInSession:
    """
    Rebuild an in-memory session from a persisted in-progress row.
    """
    started_at = parse_timestamp(record.get("started_at")) or utcnow()
    categories = list(dict.fromkeys(record.get("categories") or []))

    current = steps.coerce_step(record.get("current_step") or "")
    completed = [s for s in (steps.coerce_step(x) for x in record.get("completed_steps") or []) if s]
    if current is None:
        current = RESUME_STEP
        completed = [*completed, CheckInStep.WELCOME, CheckInStep.CATEGORY_SELECTION]
    completed = sorted(set(completed), key=steps.index)

    base = BaseCheckIn(
        id=str(record["id"]),
        couple_id=str(record.get("couple_id") or ""),
        started_at=started_at,
        completed_at=parse_timestamp(record.get("completed_at")),
        status=CheckInStatus(record.get("status") or CheckInStatus.IN_PROGRESS.value),
        categories=categories,
        mood_before=record.get("mood_before"),
        mood_after=record.get("mood_after"),
        reflection=record.get("reflection"),
    )
    return CheckInSession(
        id=base.id,
        base_check_in=base,
        progress=CheckInProgress(
            current_step=current,
            completed_steps=completed,
            total_steps=steps.TOTAL_STEPS,
            percentage=steps.percentage(current),
        ),
        selected_categories=categories,
        category_progress=[CategoryProgress(category_id=c, last_updated=started_at) for c in categories],
        draft_notes=[],
        action_items=[],
        started_at=started_at,
        last_saved_at=started_at,
    )


class CheckInContext:
    """
    Imperative API over one couple's check-in: loads or starts a session,
    applies actions locally and mirrors them to persistence.

    `user_id` is only the fallback note author. A context shared by both
    partners gets the author passed per call.
    """

    def __init__(
        self,
        couple_id: str,
        persistence,
        *,
        user_id: str = "",
        realtime: Optional[RealtimeFeed] = None,
    ) -> None:
        self.couple_id = couple_id
        self.user_id = user_id
        self._persistence = persistence
        self._realtime = realtime
        self._subscription: Optional[Subscription] = None
        self._state: CheckInContextState = initial_state
        self._saved_note_ids: set[str] = set()
        self._saved_action_item_ids: set[str] = set()
        self._listeners: list[Callable[[CheckInContextState], None]] = []

    # ---- state ----------------------------------------------------------

    @property
    def state(self) -> CheckInContextState:
        return self._state

    @property
    def session(self) -> Optional[CheckInSession]:
        return self._state.session

    @property
    def is_loading(self) -> bool:
        return self._state.is_loading

    @property
    def error(self) -> Optional[str]:
        return self._state.error

    def dispatch(self, action: CheckInAction) -> CheckInContextState:
        self._state = check_in_reducer(self._state, action)
        for listener in list(self._listeners):
            listener(self._state)
        return self._state

    def on_change(self, listener: Callable[[CheckInContextState], None]) -> Callable[[], None]:
        self._listeners.append(listener)
        return lambda: self._listeners.remove(listener) if listener in self._listeners else None

    def _report(self, result: QueryResult) -> bool:
        if result.error:
            self.dispatch(SetError(result.error))
            return False
        return True

    def _clear_error(self) -> None:
        # Each persisted operation reports only its own failures
        if self._state.error is not None:
            self.dispatch(SetError(None))

    # ---- lifecycle ------------------------------------------------------

    async def load(self) -> Optional[CheckInSession]:
        result = await self._persistence.fetch_active_check_in(self.couple_id)
        if result.error:
            logger.error("Could not load active check-in for couple %s: %s", self.couple_id, result.error)
            self.dispatch(AbandonCheckIn())
        elif result.data:
            self.dispatch(RestoreSession(reconstruct_session(result.data)))
            logger.info("Restored check-in %s for couple %s", self.session.id, self.couple_id)
        else:
            self.dispatch(AbandonCheckIn())
        self.dispatch(SetLoading(False))
        self._subscribe()
        return self.session

    def close(self) -> None:
        if self._subscription is not None:
            self._subscription.unsubscribe()
            self._subscription = None

    async def start_check_in(self, categories: list[str]) -> bool:
        current = self.session
        if current is not None and current.base_check_in.status == CheckInStatus.IN_PROGRESS:
            logger.warning("Check-in %s already in progress for couple %s", current.id, self.couple_id)
            return False
        self._saved_note_ids.clear()
        self._saved_action_item_ids.clear()
        action = StartCheckIn(categories=tuple(categories), couple_id=self.couple_id)
        self.dispatch(action)
        result = await self._persistence.insert_check_in(
            action.session_id, self.couple_id, action.started_at, list(self.session.selected_categories)
        )
        self._report(result)
        return True

    async def complete_check_in(self) -> Optional[CheckInSession]:
        if self.session is None:
            return None
        state = self.dispatch(CompleteCheckIn())
        self._clear_error()
        completed = state.session
        for item in completed.action_items:
            await self._persist_action_item(item)
        await self._promote_drafts(completed)
        result = await self._persistence.update_check_in_status(
            completed.id,
            CheckInStatus.COMPLETED.value,
            completed_at=completed.base_check_in.completed_at,
            fields={
                "mood_before": completed.base_check_in.mood_before,
                "mood_after": completed.base_check_in.mood_after,
                "reflection": completed.base_check_in.reflection,
                "current_step": completed.progress.current_step.value,
                "completed_steps": [s.value for s in completed.progress.completed_steps],
            },
        )
        self._report(result)
        return completed

    async def abandon_check_in(self) -> None:
        previous = self.session
        self.dispatch(AbandonCheckIn())
        if previous is None or previous.base_check_in.status != CheckInStatus.IN_PROGRESS:
            return
        self._clear_error()
        result = await self._persistence.update_check_in_status(previous.id, CheckInStatus.ABANDONED.value)
        self._report(result)

    # ---- navigation -----------------------------------------------------

    def step_index(self, step: steps.StepLike) -> int:
        return steps.index(step)

    def can_go_to_step(self, step: steps.StepLike) -> bool:
        session = self.session
        if session is None:
            return False
        target = steps.coerce_step(step)
        if target is None:
            return False
        current_index = steps.index(session.progress.current_step)
        target_index = steps.index(target)
        return (
            target_index == current_index
            or target in session.progress.completed_steps
            or target_index == current_index + 1
        )

    def is_step_completed(self, step: steps.StepLike) -> bool:
        if self.session is None:
            return False
        return steps.coerce_step(step) in self.session.progress.completed_steps

    def go_to_step(self, step: steps.StepLike) -> bool:
        if not self.can_go_to_step(step):
            logger.debug("Refused navigation to %s", step)
            return False
        self.dispatch(GoToStep(steps.coerce_step(step)))
        return True

    async def complete_step(self, step: steps.StepLike) -> bool:
        target = steps.coerce_step(step)
        if self.session is None or target is None:
            return False
        session = self.dispatch(CompleteStep(target)).session
        self._clear_error()
        await self._persist_progress(session)
        return True

    # ---- category progress & drafts ------------------------------------

    def update_category_progress(self, category_id: str, **progress: Any) -> None:
        self.dispatch(SetCategoryProgress(category_id, progress))

    def get_current_category_progress(self) -> Optional[CategoryProgress]:
        if self.session is None:
            return None
        return next((cp for cp in self.session.category_progress if not cp.is_completed), None)

    def add_draft_note(
        self,
        content: str,
        *,
        author_id: Optional[str] = None,
        privacy: str = "draft",
        tags: Optional[list[str]] = None,
        category_id: Optional[str] = None,
    ) -> Optional[DraftNote]:
        if self.session is None:
            return None
        now = utcnow()
        note = DraftNote(
            id=str(uuid.uuid4()),
            couple_id=self.couple_id,
            author_id=author_id or self.user_id,
            check_in_id=self.session.id,
            content=content,
            privacy=privacy,
            tags=list(tags or []),
            category_id=category_id,
            created_at=now,
            updated_at=now,
        )
        self.dispatch(AddDraftNote(note))
        return note

    def update_draft_note(self, note_id: str, **updates: Any) -> None:
        self.dispatch(UpdateDraftNote(note_id, {**updates, "updated_at": utcnow()}))

    async def remove_draft_note(self, note_id: str) -> None:
        self.dispatch(RemoveDraftNote(note_id))
        if note_id in self._saved_note_ids:
            self._saved_note_ids.discard(note_id)
            self._clear_error()
            self._report(await self._persistence.delete_note(note_id, self.couple_id))

    # ---- action items ---------------------------------------------------

    def add_action_item(
        self,
        title: str,
        *,
        description: Optional[str] = None,
        assigned_to: Optional[str] = None,
        due_date: Optional[str] = None,
    ) -> Optional[ActionItem]:
        if self.session is None:
            return None
        item = ActionItem(
            id=str(uuid.uuid4()),
            couple_id=self.couple_id,
            check_in_id=self.session.id,
            title=title,
            description=description,
            assigned_to=assigned_to,
            due_date=due_date,
            created_at=utcnow(),
        )
        self.dispatch(AddActionItem(item))
        return item

    def update_action_item(self, action_item_id: str, **updates: Any) -> None:
        self.dispatch(UpdateActionItem(action_item_id, updates))

    def toggle_action_item(self, action_item_id: str) -> None:
        self.dispatch(ToggleActionItem(action_item_id))

    async def remove_action_item(self, action_item_id: str) -> None:
        self.dispatch(RemoveActionItem(action_item_id))
        if action_item_id in self._saved_action_item_ids:
            self._saved_action_item_ids.discard(action_item_id)
            self._clear_error()
            self._report(await self._persistence.delete_action_item(action_item_id, self.couple_id))

    # ---- mood / reflection ---------------------------------------------

    def set_mood(self, mood: int, when: str = "before") -> None:
        self.dispatch(SetMood(mood, when))

    def set_reflection(self, reflection: str) -> None:
        self.dispatch(SetReflection(reflection))

    # ---- saving ---------------------------------------------------------

    async def save_session(self) -> bool:
        """
        Checkpoint: flush progress and draft notes. Returns False if any write failed.
        """
        if self.session is None:
            return False
        session = self.dispatch(SaveSession()).session
        self._clear_error()
        ok = await self._persist_progress(session)
        return await self._promote_drafts(session) and ok

    async def _persist_progress(self, session: CheckInSession) -> bool:
        result = await self._persistence.update_check_in_progress(
            session.id,
            session.progress.current_step.value,
            [s.value for s in session.progress.completed_steps],
        )
        return self._report(result)

    async def _promote_drafts(self, session: CheckInSession) -> bool:
        ok = True
        for note in session.draft_notes:
            result = await self._persistence.upsert_note(note.id, note.model_dump(exclude={"id"}))
            if self._report(result):
                self._saved_note_ids.add(note.id)
            else:
                ok = False
        return ok

    async def _persist_action_item(self, item: ActionItem) -> bool:
        result = await self._persistence.upsert_action_item(item.id, item.model_dump(exclude={"id"}))
        if self._report(result):
            self._saved_action_item_ids.add(item.id)
            return True
        return False

    # ---- realtime -------------------------------------------------------

    def _subscribe(self) -> None:
        if self._realtime is None or self._subscription is not None:
            return
        self._subscription = self._realtime.subscribe(
            "check_ins", self.couple_id, on_update=self._on_check_in_update
        )

    def _on_check_in_update(self, record: dict[str, Any]) -> None:
        session = self.session
        if session is None or str(record.get("id")) != session.id:
            return
        if record.get("status") in {s.value for s in TERMINAL_STATUSES}:
            logger.info("Check-in %s ended (%s); clearing local session", session.id, record.get("status"))
            self.dispatch(AbandonCheckIn())


class ContextRegistry:
    """
    Process-local map of couple id -> loaded CheckInContext.
    """

    def __init__(self, factory: Callable[[str], CheckInContext]) -> None:
        self._factory = factory
        self._contexts: dict[str, CheckInContext] = {}
        self._lock = asyncio.Lock()

    async def get(self, couple_id: str) -> CheckInContext:
        async with self._lock:
            ctx = self._contexts.get(couple_id)
            if ctx is None:
                ctx = self._factory(couple_id)
                await ctx.load()
                self._contexts[couple_id] = ctx
        return ctx

    def drop(self, couple_id: str) -> None:
        ctx = self._contexts.pop(couple_id, None)
        if ctx is not None:
            ctx.close()

    def clear(self) -> None:
        for couple_id in list(self._contexts):
            self.drop(couple_id)
