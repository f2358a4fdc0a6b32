from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class CheckInStep(str, Enum):
    WELCOME = "welcome"
    CATEGORY_SELECTION = "category-selection"
    CATEGORY_DISCUSSION = "category-discussion"
    REFLECTION = "reflection"
    ACTION_ITEMS = "action-items"
    COMPLETION = "completion"


class CheckInStatus(str, Enum):
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"
    ABANDONED = "abandoned"


TERMINAL_STATUSES = {CheckInStatus.COMPLETED, CheckInStatus.ABANDONED}

# 1..5 as offered by the mood picker
MOOD_LABELS = {
    1: "Struggling",
    2: "Not Great",
    3: "Okay",
    4: "Good",
    5: "Great",
}


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True)


class DraftNote(_Frozen):
    id: str
    couple_id: str = ""
    author_id: str = ""
    check_in_id: Optional[str] = None
    content: str = ""
    privacy: str = "draft"  # private | shared | draft
    tags: list[str] = Field(default_factory=list)
    category_id: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class ActionItem(_Frozen):
    id: str
    couple_id: str = ""
    check_in_id: Optional[str] = None
    title: str
    description: Optional[str] = None
    assigned_to: Optional[str] = None
    due_date: Optional[str] = None
    completed: bool = False
    completed_at: Optional[datetime] = None
    created_at: datetime


class CategoryProgress(_Frozen):
    category_id: str
    is_completed: bool = False
    notes: list[DraftNote] = Field(default_factory=list)
    time_spent: int = 0
    last_updated: datetime


class BaseCheckIn(_Frozen):
    """Fields of the persisted check-in row."""
    id: str
    couple_id: str = ""
    started_at: datetime
    completed_at: Optional[datetime] = None
    status: CheckInStatus = CheckInStatus.IN_PROGRESS
    categories: list[str] = Field(default_factory=list)
    mood_before: Optional[int] = None
    mood_after: Optional[int] = None
    reflection: Optional[str] = None


class CheckInProgress(_Frozen):
    current_step: CheckInStep = CheckInStep.WELCOME
    completed_steps: list[CheckInStep] = Field(default_factory=list)
    total_steps: int = 6
    percentage: int = 0


class CheckInSession(_Frozen):
    id: str
    base_check_in: BaseCheckIn
    progress: CheckInProgress
    selected_categories: list[str] = Field(default_factory=list)
    category_progress: list[CategoryProgress] = Field(default_factory=list)
    draft_notes: list[DraftNote] = Field(default_factory=list)
    action_items: list[ActionItem] = Field(default_factory=list)
    started_at: datetime
    last_saved_at: datetime


class CheckInContextState(_Frozen):
    session: Optional[CheckInSession] = None
    is_loading: bool = True
    error: Optional[str] = None


# --- API payloads ---

class CheckInStart(BaseModel):
    categories: list[str] = Field(min_length=1)

class StepPayload(BaseModel):
    step: CheckInStep

class CategoryProgressUpdate(BaseModel):
    is_completed: Optional[bool] = None
    time_spent: Optional[int] = Field(default=None, ge=0)

class DraftNoteCreate(BaseModel):
    content: str
    privacy: str = "draft"
    tags: list[str] = Field(default_factory=list)
    category_id: Optional[str] = None

class DraftNoteUpdate(BaseModel):
    content: Optional[str] = None
    privacy: Optional[str] = None
    tags: Optional[list[str]] = None

class ActionItemCreate(BaseModel):
    title: str
    description: Optional[str] = None
    assigned_to: Optional[str] = None
    due_date: Optional[str] = None

class MoodPayload(BaseModel):
    mood: int = Field(ge=1, le=5)
    when: str = Field(default="before", pattern="^(before|after)$")

class ReflectionPayload(BaseModel):
    reflection: str

class CheckInStateOut(BaseModel):
    session: Optional[CheckInSession] = None
    is_loading: bool
    error: Optional[str] = None
    can_advance: bool = False
