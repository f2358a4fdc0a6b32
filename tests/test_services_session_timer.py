"""
Tests for the persisted session countdown.
"""
import asyncio
import json

import pytest

from qc_checkin.services.countdown import MemoryTimerStore, load_snapshot
from qc_checkin.services.session_timer import SessionTimer, session_timer_key


KEY = "qc-session-timer:s1"


def _timer(store, clock, minutes=1, on_time_up=None, key=KEY):
    return SessionTimer(minutes, store=store, storage_key=key, on_time_up=on_time_up, now_ms=clock)


def _stored(store, key=KEY):
    raw = store.get(key)
    return json.loads(raw) if raw else None


class BrokenStore:
    """Storage that is unavailable, e.g. disabled in the browser."""

    def get(self, key):
        raise OSError("storage disabled")

    def set(self, key, value):
        raise OSError("storage disabled")

    def remove(self, key):
        raise OSError("storage disabled")


class TestSessionTimerKey:

    def test_session_id_required(self):
        with pytest.raises(ValueError):
            session_timer_key("")

    def test_per_session_key(self):
        assert session_timer_key("abc") == "qc-session-timer:abc"


class TestTransitions:
    """Test Idle/Running/Paused/Expired transitions."""

    def test_initial_state_is_idle_full_duration(self, timer_store, clock):
        timer = _timer(timer_store, clock, minutes=10)

        assert timer.time_remaining == 600
        assert not timer.is_running
        assert not timer.is_paused
        assert timer.formatted_time == "10:00"
        assert _stored(timer_store) is None

    def test_start_persists_snapshot(self, timer_store, clock):
        timer = _timer(timer_store, clock)
        timer.start()

        assert _stored(timer_store) == {
            "timeRemaining": 60,
            "isRunning": True,
            "isPaused": False,
            "savedAt": clock.now,
        }

    def test_pause_and_resume(self, timer_store, clock):
        timer = _timer(timer_store, clock)
        timer.start()
        timer.advance(10)
        timer.pause()

        assert timer.is_paused
        timer.advance(10)
        assert timer.time_remaining == 50

        timer.resume()
        assert not timer.is_paused
        timer.advance(5)
        assert timer.time_remaining == 45

    def test_pause_when_idle_is_no_op(self, timer_store, clock):
        timer = _timer(timer_store, clock)
        timer.pause()

        assert not timer.is_paused
        assert _stored(timer_store) is None

    def test_resume_when_running_is_no_op(self, timer_store, clock):
        timer = _timer(timer_store, clock)
        timer.start()
        timer.resume()
        assert timer.is_running and not timer.is_paused

    def test_start_always_uses_full_duration(self, timer_store, clock):
        timer = _timer(timer_store, clock)
        timer.start()
        timer.advance(20)
        timer.start()
        assert timer.time_remaining == 60

    def test_paused_implies_running(self, timer_store, clock):
        timer = _timer(timer_store, clock)
        timer.start()
        timer.pause()
        timer.reset()
        assert not timer.is_running and not timer.is_paused


class TestExpiry:
    """Test counting down to zero."""

    def test_one_minute_scenario(self, timer_store, clock):
        fired = []
        timer = _timer(timer_store, clock, on_time_up=lambda: fired.append(True))
        timer.start()

        timer.advance(55)
        assert timer.formatted_time == "00:05"
        assert fired == []

        timer.advance(5)
        assert timer.formatted_time == "00:00"
        assert not timer.is_running
        assert fired == [True]

        timer.advance(5)
        timer.tick()
        assert fired == [True]

    def test_never_negative(self, timer_store, clock):
        timer = _timer(timer_store, clock)
        timer.start()
        timer.advance(500)
        assert timer.time_remaining == 0


class TestRestore:
    """Test drift-corrected restore from storage."""

    def test_running_timer_is_drift_corrected(self, timer_store, clock):
        timer = _timer(timer_store, clock, minutes=5)
        timer.start()

        clock.advance(10)
        restored = _timer(timer_store, clock, minutes=5)

        assert restored.time_remaining == 290
        assert restored.is_running

    def test_restore_after_full_duration_is_expired(self, timer_store, clock):
        fired = []
        timer = _timer(timer_store, clock, minutes=5)
        timer.start()

        clock.advance(301)
        restored = _timer(timer_store, clock, minutes=5, on_time_up=lambda: fired.append(True))

        assert restored.time_remaining == 0
        assert not restored.is_running
        assert fired == []

    def test_paused_timer_is_not_drift_corrected(self, timer_store, clock):
        timer = _timer(timer_store, clock, minutes=5)
        timer.start()
        timer.advance(30)
        timer.pause()

        clock.advance(120)
        restored = _timer(timer_store, clock, minutes=5)

        assert restored.time_remaining == 270
        assert restored.is_paused

    def test_partial_seconds_are_floored(self, timer_store, clock):
        timer = _timer(timer_store, clock, minutes=5)
        timer.start()

        clock.advance(2.9)
        assert _timer(timer_store, clock, minutes=5).time_remaining == 298

    def test_reset_removes_persisted_state(self, timer_store, clock):
        timer = _timer(timer_store, clock)
        timer.start()
        timer.advance(10)
        timer.reset()

        assert _stored(timer_store) is None
        fresh = _timer(timer_store, clock)
        assert fresh.time_remaining == 60
        assert not fresh.is_running

    def test_keys_are_independent(self, timer_store, clock):
        a = _timer(timer_store, clock, key="qc-session-timer:a")
        b = _timer(timer_store, clock, key="qc-session-timer:b")
        a.start()

        assert _stored(timer_store, "qc-session-timer:b") is None
        assert not b.is_running

    def test_corrupt_snapshot_is_ignored(self, timer_store, clock):
        timer_store.set(KEY, "{not json")
        timer = _timer(timer_store, clock)

        assert timer.time_remaining == 60
        assert not timer.is_running

    def test_invalid_snapshot_is_ignored(self, timer_store, clock):
        timer_store.set(KEY, json.dumps({"timeRemaining": -4, "isRunning": True}))
        assert load_snapshot(timer_store, KEY) is None

    def test_unavailable_storage_is_no_stored_state(self, clock):
        timer = _timer(BrokenStore(), clock)
        timer.start()
        timer.advance(3)

        assert timer.time_remaining == 57


class TestTickLoop:
    """Test the asyncio-driven tick loop."""

    @pytest.mark.asyncio
    async def test_ticks_until_expired(self, clock):
        fired = []
        timer = SessionTimer(
            1, store=MemoryTimerStore(), storage_key=KEY, now_ms=clock,
            on_time_up=lambda: fired.append(True), tick_seconds=0, auto_tick=True,
        )
        timer.start()
        task = timer.start_ticking()

        await asyncio.wait_for(task, timeout=5)

        assert timer.time_remaining == 0
        assert fired == [True]

    @pytest.mark.asyncio
    async def test_close_cancels_loop(self, clock):
        timer = SessionTimer(1, store=MemoryTimerStore(), storage_key=KEY, now_ms=clock, tick_seconds=10)
        timer.start()
        task = timer.start_ticking()

        timer.close()
        await asyncio.sleep(0)

        assert task.cancelled() or task.done()
        assert timer.time_remaining == 60

    @pytest.mark.asyncio
    async def test_restored_running_timer_keeps_ticking(self, timer_store, clock):
        """A timer rebuilt after a reload resumes counting down on its own."""
        first = SessionTimer(1, store=timer_store, storage_key=KEY, now_ms=clock, tick_seconds=10, auto_tick=True)
        first.start()
        first.close()
        clock.advance(10)

        restored = SessionTimer(1, store=timer_store, storage_key=KEY, now_ms=clock, tick_seconds=0.01, auto_tick=True)
        assert restored.time_remaining == 50
        assert restored.is_running

        await asyncio.sleep(0.2)

        assert restored.time_remaining < 50
        restored.close()

    @pytest.mark.asyncio
    async def test_restored_paused_timer_stays_put(self, timer_store, clock):
        first = SessionTimer(1, store=timer_store, storage_key=KEY, now_ms=clock, tick_seconds=10, auto_tick=True)
        first.start()
        first.pause()
        first.close()
        clock.advance(10)

        restored = SessionTimer(1, store=timer_store, storage_key=KEY, now_ms=clock, tick_seconds=0.01, auto_tick=True)
        await asyncio.sleep(0.05)

        assert restored.time_remaining == 60
        assert restored.is_paused
        restored.close()

    def test_no_loop_means_manual_ticking(self, timer_store, clock):
        timer = _timer(timer_store, clock)
        timer.start()
        assert timer.start_ticking() is None
