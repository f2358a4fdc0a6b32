from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class SessionTemplate(str, Enum):
    QUICK = "quick"
    STANDARD = "standard"
    DEEP_DIVE = "deep-dive"
    CUSTOM = "custom"


class SessionSettings(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str = "default"
    couple_id: str = ""
    session_duration: int = Field(ge=0)         # minutes
    timeouts_per_partner: int = Field(ge=0)
    timeout_duration: int = Field(ge=0)         # minutes
    turn_based_mode: bool
    turn_duration: int = Field(ge=0)            # seconds
    allow_extensions: bool
    warm_up_questions: bool
    cool_down_time: int = Field(ge=0)           # minutes
    pause_notifications: bool = False
    auto_save_drafts: bool = True
    version: int = 1
    agreed_by: list[str] = Field(default_factory=list)


# Fields a template or a proposal may set
ADJUSTABLE_FIELDS = (
    "session_duration",
    "timeouts_per_partner",
    "timeout_duration",
    "turn_based_mode",
    "turn_duration",
    "allow_extensions",
    "warm_up_questions",
    "cool_down_time",
    "pause_notifications",
    "auto_save_drafts",
)


class SessionSettingsTemplate(BaseModel):
    name: str
    type: SessionTemplate
    description: str
    settings: dict[str, Any]


class ProposalStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


class SessionSettingsProposal(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    couple_id: str
    proposed_by: str
    proposed_at: datetime
    settings: dict[str, Any] = Field(default_factory=dict)
    status: ProposalStatus = ProposalStatus.PENDING
    reviewed_by: Optional[str] = None
    reviewed_at: Optional[datetime] = None


# --- API payloads ---

class SettingsProposalCreate(BaseModel):
    session_duration: Optional[int] = Field(default=None, ge=1)
    timeouts_per_partner: Optional[int] = Field(default=None, ge=0)
    timeout_duration: Optional[int] = Field(default=None, ge=0)
    turn_based_mode: Optional[bool] = None
    turn_duration: Optional[int] = Field(default=None, ge=0)
    allow_extensions: Optional[bool] = None
    warm_up_questions: Optional[bool] = None
    cool_down_time: Optional[int] = Field(default=None, ge=0)
    pause_notifications: Optional[bool] = None
    auto_save_drafts: Optional[bool] = None

class ProposalResponse(BaseModel):
    accept: bool

class ActiveSettingsOut(BaseModel):
    settings: SessionSettings
    active_template: Optional[SessionTemplate] = None
    pending_proposal: Optional[SessionSettingsProposal] = None
