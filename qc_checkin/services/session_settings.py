from __future__ import annotations

import logging
from typing import Any, Optional

from pydantic import ValidationError

from qc_checkin.schemas.common import QueryResult
from qc_checkin.schemas.session_settings import (
    ADJUSTABLE_FIELDS,
    ProposalStatus,
    SessionSettings,
    SessionSettingsProposal,
    SessionSettingsTemplate,
    SessionTemplate,
)
from qc_checkin.services.realtime import RealtimeFeed, Subscription
from qc_checkin.utils.time import utcnow

logger = logging.getLogger(__name__)


DEFAULT_TEMPLATES: tuple[SessionSettingsTemplate, ...] = (
    SessionSettingsTemplate(
        name="Quick Check-in",
        type=SessionTemplate.QUICK,
        description="5-minute focused session without timeouts",
        settings={
            "session_duration": 5,
            "timeouts_per_partner": 0,
            "timeout_duration": 0,
            "turn_based_mode": False,
            "turn_duration": 60,
            "allow_extensions": False,
            "warm_up_questions": False,
            "cool_down_time": 0,
        },
    ),
    SessionSettingsTemplate(
        name="Standard Session",
        type=SessionTemplate.STANDARD,
        description="10-minute balanced session with turn-based discussion",
        settings={
            "session_duration": 10,
            "timeouts_per_partner": 1,
            "timeout_duration": 2,
            "turn_based_mode": True,
            "turn_duration": 90,
            "allow_extensions": True,
            "warm_up_questions": False,
            "cool_down_time": 2,
        },
    ),
    SessionSettingsTemplate(
        name="Deep Dive",
        type=SessionTemplate.DEEP_DIVE,
        description="20-minute comprehensive session with warm-up and reflection",
        settings={
            "session_duration": 20,
            "timeouts_per_partner": 2,
            "timeout_duration": 3,
            "turn_based_mode": True,
            "turn_duration": 120,
            "allow_extensions": True,
            "warm_up_questions": True,
            "cool_down_time": 5,
        },
    ),
)

# Zero state before a couple has chosen or agreed on anything
DEFAULT_SETTINGS = SessionSettings(
    id="default",
    couple_id="",
    session_duration=10,
    timeouts_per_partner=1,
    timeout_duration=2,
    turn_based_mode=True,
    turn_duration=90,
    allow_extensions=True,
    warm_up_questions=False,
    cool_down_time=2,
    pause_notifications=False,
    auto_save_drafts=True,
    version=1,
    agreed_by=[],
)


def get_template(template_type: SessionTemplate | str) -> Optional[SessionSettingsTemplate]:
    for template in DEFAULT_TEMPLATES:
        if template.type.value == getattr(template_type, "value", template_type):
            return template
    return None


def default_settings(couple_id: str = "") -> SessionSettings:
    return DEFAULT_SETTINGS.model_copy(update={"couple_id": couple_id})


def merge_settings(base: SessionSettings, override: Optional[dict[str, Any]]) -> SessionSettings:
    """
    Replace `base` fields with the ones present (and not None) in `override`.
    The result is re-validated; a malformed override leaves `base` untouched.
    """
    if not override:
        return base
    merged = base.model_dump()
    for key, value in override.items():
        if key in SessionSettings.model_fields and value is not None:
            merged[key] = value
    try:
        return SessionSettings.model_validate(merged)
    except ValidationError as e:
        logger.warning("Ignoring malformed settings override: %s", e)
        return base


def parse_settings_row(record: Optional[dict[str, Any]]) -> Optional[SessionSettings]:
    if not record:
        return None
    try:
        return SessionSettings.model_validate(record)
    except ValidationError as e:
        logger.warning("Malformed session_settings row for couple %s: %s", record.get("couple_id"), e)
        return None


def parse_proposal(record: Optional[dict[str, Any]]) -> Optional[SessionSettingsProposal]:
    if not record:
        return None
    try:
        return SessionSettingsProposal.model_validate(record)
    except ValidationError as e:
        logger.warning("Malformed settings proposal %s: %s", record.get("id"), e)
        return None


class SessionSettingsCatalogue:
    """
    Named templates plus the couple's agreed override, merged into the
    settings the session timer and turn clock actually run with.

    Loading problems never block a check-in: anything unreadable falls back to
    `DEFAULT_SETTINGS`.
    """

    def __init__(self, couple_id: str, persistence, realtime: Optional[RealtimeFeed] = None) -> None:
        self.couple_id = couple_id
        self._persistence = persistence
        self._realtime = realtime
        self._subscription: Optional[Subscription] = None
        self.current_settings: Optional[SessionSettings] = None
        self.active_template: Optional[SessionTemplate] = None
        self.pending_proposal: Optional[SessionSettingsProposal] = None
        self.loaded = False

    @property
    def templates(self) -> tuple[SessionSettingsTemplate, ...]:
        return DEFAULT_TEMPLATES

    async def load(self) -> None:
        result = await self._persistence.fetch_settings(self.couple_id)
        if result.error:
            logger.error("Failed to load session settings for %s: %s", self.couple_id, result.error)
            self.current_settings = None
        else:
            self.current_settings = parse_settings_row(result.data)

        proposal = await self._persistence.fetch_pending_proposal(self.couple_id)
        if proposal.error:
            logger.error("Failed to load pending proposal for %s: %s", self.couple_id, proposal.error)
        else:
            self.pending_proposal = parse_proposal(proposal.data)

        self._subscribe()
        self.loaded = True

    def get_active_settings(self) -> SessionSettings:
        base = default_settings(self.couple_id)
        if self.active_template is not None:
            template = get_template(self.active_template)
            if template is not None:
                base = merge_settings(base, template.settings)
        if self.current_settings is not None:
            override = self.current_settings.model_dump(
                include={"id", "version", "agreed_by", *ADJUSTABLE_FIELDS}
            )
            base = merge_settings(base, override)
        return base.model_copy(update={"couple_id": self.couple_id})

    def activate_template(self, template_type: SessionTemplate | str) -> bool:
        template = get_template(template_type)
        if template is None:
            return False
        self.active_template = template.type
        logger.info("Couple %s activated template %s", self.couple_id, template.type.value)
        return True

    async def propose_settings(self, settings: dict[str, Any], proposed_by: str) -> QueryResult:
        changes = {k: v for k, v in settings.items() if k in ADJUSTABLE_FIELDS and v is not None}
        if not changes:
            return QueryResult.failure("Proposal has no settings to change")
        result = await self._persistence.insert_proposal(self.couple_id, proposed_by, changes)
        if result.error:
            logger.error("Failed to create proposal: %s", result.error)
            return result
        self.pending_proposal = parse_proposal(result.data)
        return result

    async def propose_template(self, template_type: SessionTemplate | str, proposed_by: str) -> QueryResult:
        template = get_template(template_type)
        if template is None:
            return QueryResult.failure(f"Unknown template: {getattr(template_type, 'value', template_type)}")
        return await self.propose_settings(template.settings, proposed_by)

    async def respond_to_proposal(self, proposal_id: str, accept: bool, reviewer_id: str) -> QueryResult:
        proposal = self.pending_proposal
        if proposal is None or proposal.id != proposal_id:
            return QueryResult.failure("No matching pending proposal")

        if accept:
            current = self.get_active_settings()
            agreed_by = list(dict.fromkeys([*current.agreed_by, proposal.proposed_by, reviewer_id]))
            values = {
                **current.model_dump(include=set(ADJUSTABLE_FIELDS)),
                **{k: v for k, v in proposal.settings.items() if k in ADJUSTABLE_FIELDS},
                "version": current.version + 1,
                "agreed_by": agreed_by,
            }
            saved = await self._persistence.upsert_settings(self.couple_id, values)
            if saved.error:
                logger.error("Failed to save accepted settings: %s", saved.error)
                return saved
            self.current_settings = parse_settings_row(saved.data) or merge_settings(current, values)

        status = ProposalStatus.ACCEPTED if accept else ProposalStatus.REJECTED
        reviewed = await self._persistence.review_proposal(proposal_id, status.value, reviewer_id, utcnow())
        self.pending_proposal = None
        if reviewed.error:
            logger.error("Failed to mark proposal %s as %s: %s", proposal_id, status.value, reviewed.error)
        return reviewed

    # ---- realtime --------------------------------------------------------

    def _subscribe(self) -> None:
        if self._realtime is None or self._subscription is not None:
            return
        self._subscription = self._realtime.subscribe(
            "session_settings_proposals",
            self.couple_id,
            on_insert=self._on_proposal_insert,
            on_update=self._on_proposal_update,
            on_delete=self._on_proposal_delete,
        )

    def _on_proposal_insert(self, record: dict[str, Any]) -> None:
        proposal = parse_proposal(record)
        if proposal is not None and proposal.status == ProposalStatus.PENDING:
            self.pending_proposal = proposal

    def _on_proposal_update(self, record: dict[str, Any]) -> None:
        proposal = parse_proposal(record)
        if proposal is not None and proposal.status != ProposalStatus.PENDING:
            self.pending_proposal = None

    def _on_proposal_delete(self, record: dict[str, Any]) -> None:
        self.pending_proposal = None

    def close(self) -> None:
        if self._subscription is not None:
            self._subscription.unsubscribe()
            self._subscription = None
