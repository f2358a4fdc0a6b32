from __future__ import annotations

import json
import logging
from typing import Callable, Optional

from pydantic import ValidationError

from qc_checkin.core.config import settings as app_settings
from qc_checkin.schemas.session_settings import SessionSettings
from qc_checkin.schemas.timer import StoredTurnState, TurnOwner, TurnState
from qc_checkin.services.countdown import PersistedCountdown, TimerStore
from qc_checkin.utils.time import epoch_ms

logger = logging.getLogger(__name__)


def turn_clock_key(session_id: str) -> str:
    if not session_id:
        raise ValueError("A session id is required for the turn clock storage key")
    return f"{app_settings.TIMER_STORAGE_PREFIX}:turn:{session_id}"


class TurnClock(PersistedCountdown):
    """
    Alternating-speaker countdown.

    Running out of time never hands the floor over by itself; the caller is
    told through `on_turn_expired` and decides when to `switch_turn()`.
    Extensions are counted across the whole session, not per turn.
    """

    def __init__(
        self,
        session_settings: SessionSettings,
        *,
        store: TimerStore,
        storage_key: str,
        max_extensions: Optional[int] = None,
        extension_seconds: Optional[int] = None,
        on_turn_expired: Optional[Callable[[TurnOwner], None]] = None,
        now_ms: Callable[[], int] = epoch_ms,
        tick_seconds: Optional[float] = None,
        auto_tick: bool = False,
    ) -> None:
        self._settings = session_settings
        self.max_extensions = app_settings.MAX_TURN_EXTENSIONS if max_extensions is None else max_extensions
        self.extension_seconds = (
            app_settings.TURN_EXTENSION_SECONDS if extension_seconds is None else extension_seconds
        )
        self._on_turn_expired = on_turn_expired
        self._turn_key = f"{storage_key}:owner"
        self.current_turn = TurnOwner.USER
        self.extensions_used = 0
        super().__init__(
            storage_key,
            session_settings.turn_duration,
            store=store,
            on_expire=self._expired,
            now_ms=now_ms,
            tick_seconds=tick_seconds,
            auto_tick=auto_tick,
        )
        self._restore_turn()

    # ---- configuration -------------------------------------------------

    @property
    def is_active(self) -> bool:
        return bool(self._settings.turn_based_mode)

    @property
    def turn_duration(self) -> int:
        return self._settings.turn_duration

    @property
    def allow_extensions(self) -> bool:
        return bool(self._settings.allow_extensions)

    @property
    def turn_time_remaining(self) -> int:
        return self.time_remaining

    @property
    def formatted_turn_time(self) -> str:
        return self.formatted_time

    @property
    def can_extend(self) -> bool:
        return self.is_active and self.allow_extensions and self.extensions_used < self.max_extensions

    def apply_settings(self, session_settings: SessionSettings) -> None:
        """
        Swap in new active settings; a changed turn length restarts the current turn's clock.
        """
        changed = session_settings.turn_duration != self._settings.turn_duration
        self._settings = session_settings
        self._total = max(0, int(session_settings.turn_duration))
        if not self.is_active:
            self.close()
            self._set(is_running=False, is_paused=False)
        elif changed:
            self._set(time_remaining=self._total)

    def snapshot(self) -> TurnState:
        return TurnState(
            current_turn=self.current_turn,
            turn_time_remaining=self.turn_time_remaining,
            extensions_used=self.extensions_used,
            max_extensions=self.max_extensions,
            is_active=self.is_active,
            formatted_turn_time=self.formatted_turn_time,
        )

    # ---- transitions ---------------------------------------------------

    def start(self) -> None:
        if not self.is_active:
            return
        self._set(time_remaining=self.turn_duration, is_running=True, is_paused=False)

    def pause(self) -> None:
        if self.is_active and self.is_running and not self.is_paused:
            self._set(is_paused=True)

    def resume(self) -> None:
        if self.is_active and self.is_running and self.is_paused:
            self._set(is_paused=False)

    def switch_turn(self) -> None:
        if not self.is_active:
            return
        self.current_turn = self.current_turn.other()
        self._save_turn()
        self._set(time_remaining=self.turn_duration, is_running=True, is_paused=False)
        logger.info("Turn switched to %s", self.current_turn.value)

    def extend_turn(self) -> bool:
        if not self.can_extend:
            return False
        expired = not self.is_running and self.time_remaining == 0
        self.extensions_used += 1
        self._save_turn()
        if expired:
            self._set(time_remaining=self.extension_seconds, is_running=True, is_paused=False)
        else:
            self._set(time_remaining=self.time_remaining + self.extension_seconds)
        return True

    def reset_extensions(self) -> None:
        self.extensions_used = 0
        self._save_turn()

    def reset(self) -> None:
        self.close()
        self.current_turn = TurnOwner.USER
        self.extensions_used = 0
        self._set(time_remaining=self.turn_duration, is_running=False, is_paused=False, persist=False)
        self._clear_storage()
        try:
            self._store.remove(self._turn_key)
        except Exception as e:
            logger.warning("Could not clear turn state %s: %s", self._turn_key, e)

    def tick(self) -> None:
        if not self.is_active:
            return
        super().tick()

    def start_ticking(self):
        if not self.is_active:
            return None
        return super().start_ticking()

    # ---- internals -----------------------------------------------------

    def _expired(self) -> None:
        if self._on_turn_expired is not None:
            self._on_turn_expired(self.current_turn)

    def _save_turn(self) -> None:
        stored = StoredTurnState(current_turn=self.current_turn, extensions_used=self.extensions_used)
        try:
            self._store.set(self._turn_key, json.dumps(stored.model_dump(by_alias=True, mode="json")))
        except Exception as e:
            logger.warning("Could not persist turn state %s: %s", self._turn_key, e)

    def _restore_turn(self) -> None:
        try:
            raw = self._store.get(self._turn_key)
        except Exception as e:
            logger.warning("Turn storage unavailable for %s: %s", self._turn_key, e)
            return
        if not raw:
            return
        try:
            stored = StoredTurnState.model_validate(json.loads(raw))
        except (ValueError, ValidationError) as e:
            logger.warning("Discarding unreadable turn state %s: %s", self._turn_key, e)
            return
        self.current_turn = stored.current_turn
        self.extensions_used = min(stored.extensions_used, self.max_extensions)
