from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship
from sqlalchemy import text, ForeignKey, String, Enum, Integer, Boolean, DateTime
from sqlalchemy.dialects.postgresql import UUID, ARRAY, JSONB
import uuid
from datetime import datetime
from typing import Optional, List

checkin_status_enum = Enum(
    "in-progress", "completed", "abandoned",
    name="checkin_status",
    schema="public"
)

note_privacy_enum = Enum(
    "private", "shared", "draft",
    name="note_privacy",
    schema="public"
)

proposal_status_enum = Enum(
    "pending", "accepted", "rejected",
    name="proposal_status",
    schema="public"
)

def _uuid_str() -> str:
    return str(uuid.uuid4())

class Base(DeclarativeBase):
    __table_args__ = {"schema": "app"}

class CheckIn(Base):
    __tablename__ = "check_ins"
    __table_args__ = {"schema": "app"}
    id: Mapped[str] = mapped_column(UUID(as_uuid=False), primary_key=True, default=_uuid_str)
    couple_id: Mapped[str] = mapped_column(UUID(as_uuid=False), nullable=False, index=True)
    started_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=text("now()"))
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    status: Mapped[str] = mapped_column(checkin_status_enum, server_default=text("'in-progress'"))
    categories: Mapped[List[str]] = mapped_column(ARRAY(String), server_default=text("'{}'"))
    mood_before: Mapped[Optional[int]] = mapped_column(Integer)
    mood_after: Mapped[Optional[int]] = mapped_column(Integer)
    reflection: Mapped[Optional[str]]
    # Last progress flushed by the driving device, used to resume after reload
    current_step: Mapped[Optional[str]] = mapped_column(String)
    completed_steps: Mapped[List[str]] = mapped_column(ARRAY(String), server_default=text("'{}'"))
    notes: Mapped[List["Note"]] = relationship(back_populates="check_in")
    action_items: Mapped[List["ActionItem"]] = relationship(back_populates="check_in", cascade="all, delete")

class Note(Base):
    __tablename__ = "notes"
    __table_args__ = {"schema": "app"}
    id: Mapped[str] = mapped_column(UUID(as_uuid=False), primary_key=True, default=_uuid_str)
    couple_id: Mapped[str] = mapped_column(UUID(as_uuid=False), nullable=False, index=True)
    author_id: Mapped[str] = mapped_column(UUID(as_uuid=False), nullable=False)
    check_in_id: Mapped[Optional[str]] = mapped_column(ForeignKey("app.check_ins.id", ondelete="SET NULL"))
    check_in: Mapped[Optional["CheckIn"]] = relationship(back_populates="notes")
    content: Mapped[str]
    privacy: Mapped[str] = mapped_column(note_privacy_enum, server_default=text("'draft'"))
    tags: Mapped[List[str]] = mapped_column(ARRAY(String), server_default=text("'{}'"))
    category_id: Mapped[Optional[str]]
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=text("now()"))
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=text("now()"))

class ActionItem(Base):
    __tablename__ = "action_items"
    __table_args__ = {"schema": "app"}
    id: Mapped[str] = mapped_column(UUID(as_uuid=False), primary_key=True, default=_uuid_str)
    couple_id: Mapped[str] = mapped_column(UUID(as_uuid=False), nullable=False, index=True)
    check_in_id: Mapped[Optional[str]] = mapped_column(ForeignKey("app.check_ins.id", ondelete="CASCADE"))
    check_in: Mapped[Optional["CheckIn"]] = relationship(back_populates="action_items")
    title: Mapped[str]
    description: Mapped[Optional[str]]
    assigned_to: Mapped[Optional[str]] = mapped_column(UUID(as_uuid=False))
    due_date: Mapped[Optional[str]]
    completed: Mapped[bool] = mapped_column(Boolean, server_default=text("false"))
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=text("now()"))

class SessionSettingsRow(Base):
    __tablename__ = "session_settings"
    __table_args__ = {"schema": "app"}
    id: Mapped[str] = mapped_column(UUID(as_uuid=False), primary_key=True, default=_uuid_str)
    couple_id: Mapped[str] = mapped_column(UUID(as_uuid=False), nullable=False, unique=True)
    session_duration: Mapped[int]
    timeouts_per_partner: Mapped[int]
    timeout_duration: Mapped[int]
    turn_based_mode: Mapped[bool]
    turn_duration: Mapped[int]
    allow_extensions: Mapped[bool]
    warm_up_questions: Mapped[bool]
    cool_down_time: Mapped[int]
    pause_notifications: Mapped[bool] = mapped_column(Boolean, server_default=text("false"))
    auto_save_drafts: Mapped[bool] = mapped_column(Boolean, server_default=text("true"))
    version: Mapped[int] = mapped_column(Integer, server_default=text("1"))
    agreed_by: Mapped[List[str]] = mapped_column(ARRAY(String), server_default=text("'{}'"))

class SessionSettingsProposalRow(Base):
    __tablename__ = "session_settings_proposals"
    __table_args__ = {"schema": "app"}
    id: Mapped[str] = mapped_column(UUID(as_uuid=False), primary_key=True, default=_uuid_str)
    couple_id: Mapped[str] = mapped_column(UUID(as_uuid=False), nullable=False, index=True)
    proposed_by: Mapped[str] = mapped_column(UUID(as_uuid=False), nullable=False)
    proposed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=text("now()"))
    settings: Mapped[dict] = mapped_column(JSONB, server_default=text("'{}'::jsonb"))
    status: Mapped[str] = mapped_column(proposal_status_enum, server_default=text("'pending'"))
    reviewed_by: Mapped[Optional[str]] = mapped_column(UUID(as_uuid=False))
    reviewed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
