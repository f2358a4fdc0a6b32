"""
Persisted countdown primitive shared by the session timer and the turn clock.

Each instance owns one storage key. Every state change writes
``{timeRemaining, isRunning, isPaused, savedAt}`` to that key so a fresh
instance (after a reload or crash) can pick up where the last one stopped,
subtracting the wall-clock time that passed while nothing was ticking.
"""
from __future__ import annotations

import asyncio
import json
import logging
from typing import Callable, Optional, Protocol

from pydantic import ValidationError

from qc_checkin.core.config import settings
from qc_checkin.schemas.timer import StoredTimerState, TimerState
from qc_checkin.services.clock import drift_corrected_remaining, format_countdown
from qc_checkin.utils.time import epoch_ms

logger = logging.getLogger(__name__)


class TimerStore(Protocol):
    """Session-scoped key/value slot holding one JSON blob per timer."""

    def get(self, key: str) -> Optional[str]: ...

    def set(self, key: str, value: str) -> None: ...

    def remove(self, key: str) -> None: ...


class MemoryTimerStore:
    """
    Process-local timer storage; lives as long as the owning session.
    """

    def __init__(self) -> None:
        self._items: dict[str, str] = {}

    def get(self, key: str) -> Optional[str]:
        return self._items.get(key)

    def set(self, key: str, value: str) -> None:
        self._items[key] = value

    def remove(self, key: str) -> None:
        self._items.pop(key, None)

    def keys(self) -> list[str]:
        return list(self._items)


def load_snapshot(store: TimerStore, key: str) -> Optional[StoredTimerState]:
    try:
        raw = store.get(key)
    except Exception as e:
        logger.warning("Timer storage unavailable for %s: %s", key, e)
        return None
    if not raw:
        return None
    try:
        return StoredTimerState.model_validate(json.loads(raw))
    except (ValueError, ValidationError) as e:
        logger.warning("Discarding unreadable timer snapshot %s: %s", key, e)
        return None


def save_snapshot(store: TimerStore, key: str, state: TimerState, *, now_ms: int) -> None:
    snapshot = StoredTimerState(
        time_remaining=state.time_remaining,
        is_running=state.is_running,
        is_paused=state.is_paused,
        saved_at=now_ms,
    )
    try:
        store.set(key, json.dumps(snapshot.model_dump(by_alias=True)))
    except Exception as e:
        logger.warning("Could not persist timer %s: %s", key, e)


def clear_snapshot(store: TimerStore, key: str) -> None:
    try:
        store.remove(key)
    except Exception as e:
        logger.warning("Could not clear timer %s: %s", key, e)


class PersistedCountdown:
    """
    One-second countdown with drift-corrected restore.

    Subclasses decide what the public transitions mean; this class owns the
    flags, the storage slot, ticking and the expiry callback.
    """

    def __init__(
        self,
        storage_key: str,
        total_seconds: int,
        *,
        store: TimerStore,
        on_expire: Optional[Callable[[], None]] = None,
        now_ms: Callable[[], int] = epoch_ms,
        tick_seconds: Optional[float] = None,
        auto_tick: bool = False,
    ) -> None:
        self.storage_key = storage_key
        self._store = store
        self._total = max(0, int(total_seconds))
        self._on_expire = on_expire
        self._now_ms = now_ms
        self._tick_seconds = settings.TIMER_TICK_SECONDS if tick_seconds is None else tick_seconds
        self._auto_tick = auto_tick
        self._task: Optional[asyncio.Task] = None
        self._state = self._restore()
        if self._auto_tick and self._state.is_running and not self._state.is_paused:
            self.start_ticking()

    # ---- state -----------------------------------------------------------

    @property
    def total_seconds(self) -> int:
        return self._total

    @property
    def state(self) -> TimerState:
        return self._state

    @property
    def time_remaining(self) -> int:
        return self._state.time_remaining

    @property
    def is_running(self) -> bool:
        return self._state.is_running

    @property
    def is_paused(self) -> bool:
        return self._state.is_paused

    @property
    def formatted_time(self) -> str:
        return format_countdown(self._state.time_remaining)

    def _restore(self) -> TimerState:
        stored = load_snapshot(self._store, self.storage_key)
        if stored is None:
            return TimerState(time_remaining=self._total, is_running=False, is_paused=False)

        running = stored.is_running
        paused = stored.is_paused and running
        remaining = stored.time_remaining
        if running and not paused:
            remaining = drift_corrected_remaining(remaining, stored.saved_at, now_ms=self._now_ms())
            if remaining == 0:
                # Ran out while nobody was ticking
                running = False
        restored = TimerState(time_remaining=remaining, is_running=running, is_paused=paused)
        logger.debug("Restored timer %s: %s", self.storage_key, restored)
        save_snapshot(self._store, self.storage_key, restored, now_ms=self._now_ms())
        return restored

    def _set(self, *, time_remaining: Optional[int] = None, is_running: Optional[bool] = None,
             is_paused: Optional[bool] = None, persist: bool = True) -> None:
        current = self._state
        running = current.is_running if is_running is None else is_running
        paused = current.is_paused if is_paused is None else is_paused
        self._state = TimerState(
            time_remaining=max(0, current.time_remaining if time_remaining is None else time_remaining),
            is_running=running,
            is_paused=paused and running,
        )
        if persist:
            save_snapshot(self._store, self.storage_key, self._state, now_ms=self._now_ms())
        if self._auto_tick and self._state.is_running and not self._state.is_paused:
            self.start_ticking()

    def _clear_storage(self) -> None:
        clear_snapshot(self._store, self.storage_key)

    # ---- ticking ---------------------------------------------------------

    def tick(self) -> None:
        """
        Advance one second. Stops at zero and fires the expiry callback once.
        """
        if not self._state.is_running or self._state.is_paused:
            return
        remaining = self._state.time_remaining - 1
        if remaining > 0:
            self._set(time_remaining=remaining)
            return
        self._set(time_remaining=0, is_running=False, is_paused=False)
        logger.info("Timer %s expired", self.storage_key)
        if self._on_expire is not None:
            self._on_expire()

    def advance(self, seconds: int) -> None:
        for _ in range(max(0, int(seconds))):
            if not self._state.is_running or self._state.is_paused:
                break
            self.tick()

    def start_ticking(self) -> Optional[asyncio.Task]:
        """
        Drive `tick()` from the running event loop until the countdown stops.
        """
        if self._task is not None and not self._task.done():
            return self._task
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("No running loop; timer %s ticks manually", self.storage_key)
            return None
        self._task = loop.create_task(self._run())
        return self._task

    async def _run(self) -> None:
        while self._state.is_running and not self._state.is_paused:
            await asyncio.sleep(self._tick_seconds)
            self.tick()

    def close(self) -> None:
        """
        Stop the live tick loop; persisted state is left as is.
        """
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None
