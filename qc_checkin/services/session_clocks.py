"""
Session countdown and turn clock for each live check-in.

Clocks are built from the couple's active settings the first time a session
asks for them and are discarded once that session completes or is abandoned.
"""
from __future__ import annotations

import logging
from typing import Callable, Optional

from qc_checkin.schemas.checkin import CheckInContextState, CheckInStatus
from qc_checkin.schemas.session_settings import SessionSettings
from qc_checkin.schemas.timer import SessionClocksOut, TurnOwner
from qc_checkin.services.countdown import TimerStore
from qc_checkin.services.session_timer import SessionTimer, session_timer_key
from qc_checkin.services.turn_clock import TurnClock, turn_clock_key
from qc_checkin.utils.time import epoch_ms

logger = logging.getLogger(__name__)


class SessionClocks:
    """The two countdowns belonging to one check-in session."""

    def __init__(
        self,
        session_id: str,
        session_settings: SessionSettings,
        *,
        store: TimerStore,
        now_ms: Callable[[], int] = epoch_ms,
        auto_tick: bool = True,
    ) -> None:
        self.session_id = session_id
        self.timer = SessionTimer(
            session_settings.session_duration,
            store=store,
            storage_key=session_timer_key(session_id),
            on_time_up=self._time_up,
            now_ms=now_ms,
            auto_tick=auto_tick,
        )
        self.turns = TurnClock(
            session_settings,
            store=store,
            storage_key=turn_clock_key(session_id),
            on_turn_expired=self._turn_expired,
            now_ms=now_ms,
            auto_tick=auto_tick,
        )

    def apply_settings(self, session_settings: SessionSettings) -> None:
        # The session countdown keeps the length it started with
        self.turns.apply_settings(session_settings)

    def snapshot(self) -> SessionClocksOut:
        return SessionClocksOut(
            session_id=self.session_id,
            timer=self.timer.state,
            formatted_time=self.timer.formatted_time,
            turn=self.turns.snapshot(),
        )

    def close(self) -> None:
        self.timer.close()
        self.turns.close()

    def discard(self) -> None:
        """
        Stop both clocks and drop their stored state.
        """
        self.timer.reset()
        self.turns.reset()

    def _time_up(self) -> None:
        logger.info("Session time is up for check-in %s", self.session_id)

    def _turn_expired(self, owner: TurnOwner) -> None:
        logger.info("Turn for %s ran out in check-in %s", owner.value, self.session_id)


class ClockRegistry:
    """
    Process-local map of session id -> SessionClocks, sharing one timer store.
    """

    def __init__(
        self,
        store: TimerStore,
        *,
        now_ms: Callable[[], int] = epoch_ms,
        auto_tick: bool = True,
    ) -> None:
        self._store = store
        self._now_ms = now_ms
        self._auto_tick = auto_tick
        self._clocks: dict[str, SessionClocks] = {}

    def get(self, session_id: str, session_settings: SessionSettings) -> SessionClocks:
        clocks = self._clocks.get(session_id)
        if clocks is None:
            clocks = SessionClocks(
                session_id, session_settings, store=self._store, now_ms=self._now_ms, auto_tick=self._auto_tick
            )
            self._clocks[session_id] = clocks
        else:
            clocks.apply_settings(session_settings)
        return clocks

    def peek(self, session_id: str) -> Optional[SessionClocks]:
        return self._clocks.get(session_id)

    def discard(self, session_id: str) -> None:
        clocks = self._clocks.pop(session_id, None)
        if clocks is not None:
            clocks.discard()
            logger.info("Discarded clocks for check-in %s", session_id)

    def follow(self, ctx) -> Callable[[], None]:
        """
        Discard a session's clocks as soon as the context stops showing it in progress.
        """
        live = _live_session_id(ctx.state)

        def on_change(state: CheckInContextState) -> None:
            nonlocal live
            now_live = _live_session_id(state)
            if live is not None and live != now_live:
                self.discard(live)
            live = now_live

        return ctx.on_change(on_change)


def _live_session_id(state: CheckInContextState) -> Optional[str]:
    session = state.session
    if session is None or session.base_check_in.status != CheckInStatus.IN_PROGRESS:
        return None
    return session.id
