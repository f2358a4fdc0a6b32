from __future__ import annotations

import logging
from typing import Callable, Optional

from qc_checkin.core.config import settings
from qc_checkin.services.clock import minutes_to_seconds
from qc_checkin.services.countdown import PersistedCountdown, TimerStore
from qc_checkin.utils.time import epoch_ms

logger = logging.getLogger(__name__)


def session_timer_key(session_id: str) -> str:
    """
    Storage key for a session countdown; one per check-in session.
    """
    if not session_id:
        raise ValueError("A session id is required for the timer storage key")
    return f"{settings.TIMER_STORAGE_PREFIX}:{session_id}"


class SessionTimer(PersistedCountdown):
    """
    Countdown for a whole check-in.

    Idle -> Running -> Paused -> Running ... -> Expired, with reset back to Idle
    from anywhere. `start()` always begins from the full duration.
    """

    def __init__(
        self,
        duration_minutes: int,
        *,
        store: TimerStore,
        storage_key: str,
        on_time_up: Optional[Callable[[], None]] = None,
        now_ms: Callable[[], int] = epoch_ms,
        tick_seconds: Optional[float] = None,
        auto_tick: bool = False,
    ) -> None:
        self.duration_minutes = duration_minutes
        super().__init__(
            storage_key,
            minutes_to_seconds(duration_minutes),
            store=store,
            on_expire=on_time_up,
            now_ms=now_ms,
            tick_seconds=tick_seconds,
            auto_tick=auto_tick,
        )

    def start(self) -> None:
        self._set(time_remaining=self.total_seconds, is_running=True, is_paused=False)
        logger.info("Session timer %s started (%ss)", self.storage_key, self.total_seconds)

    def pause(self) -> None:
        if self.is_running and not self.is_paused:
            self._set(is_paused=True)

    def resume(self) -> None:
        if self.is_running and self.is_paused:
            self._set(is_paused=False)

    def reset(self) -> None:
        self.close()
        self._set(time_remaining=self.total_seconds, is_running=False, is_paused=False, persist=False)
        self._clear_storage()
