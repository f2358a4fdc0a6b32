from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class TurnOwner(str, Enum):
    USER = "user"
    PARTNER = "partner"

    def other(self) -> "TurnOwner":
        return TurnOwner.PARTNER if self is TurnOwner.USER else TurnOwner.USER


class TimerState(BaseModel):
    model_config = ConfigDict(frozen=True)

    time_remaining: int = Field(ge=0)
    is_running: bool = False
    is_paused: bool = False


class StoredTimerState(BaseModel):
    """Snapshot written to the timer storage slot (camelCase on the wire)."""
    model_config = ConfigDict(populate_by_name=True)

    time_remaining: int = Field(alias="timeRemaining", ge=0)
    is_running: bool = Field(alias="isRunning")
    is_paused: bool = Field(alias="isPaused")
    saved_at: int = Field(alias="savedAt")


class StoredTurnState(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    current_turn: TurnOwner = Field(alias="currentTurn", default=TurnOwner.USER)
    extensions_used: int = Field(alias="extensionsUsed", default=0, ge=0)


class TurnState(BaseModel):
    current_turn: TurnOwner
    turn_time_remaining: int
    extensions_used: int
    max_extensions: int
    is_active: bool
    formatted_turn_time: str


class SessionClocksOut(BaseModel):
    session_id: str
    timer: TimerState
    formatted_time: str
    turn: TurnState
