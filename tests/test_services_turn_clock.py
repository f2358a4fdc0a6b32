"""
Tests for the alternating-speaker turn clock.
"""
import json

import pytest

from qc_checkin.schemas.timer import TurnOwner
from qc_checkin.services.turn_clock import TurnClock, turn_clock_key


KEY = "qc-session-timer:turn:s1"


def _clock(settings, store, clock, **kwargs):
    return TurnClock(settings, store=store, storage_key=KEY, now_ms=clock, **kwargs)


class TestTurnClockKey:

    def test_keys(self):
        assert turn_clock_key("s1") == "qc-session-timer:turn:s1"

    def test_session_id_required(self):
        with pytest.raises(ValueError):
            turn_clock_key("")


class TestActivation:
    """Test behaviour tied to turn_based_mode."""

    def test_active_mirrors_settings(self, standard_settings, timer_store, clock):
        turns = _clock(standard_settings, timer_store, clock)

        assert turns.is_active
        assert turns.turn_time_remaining == 90
        assert turns.formatted_turn_time == "01:30"
        assert turns.current_turn is TurnOwner.USER

    def test_inactive_operations_are_no_ops(self, standard_settings, timer_store, clock):
        settings = standard_settings.model_copy(update={"turn_based_mode": False})
        turns = _clock(settings, timer_store, clock)

        turns.start()
        turns.switch_turn()
        turns.tick()

        assert not turns.is_active
        assert not turns.is_running
        assert turns.current_turn is TurnOwner.USER
        assert turns.extend_turn() is False
        assert timer_store.keys() == []

    def test_apply_settings_switching_mode_off_stops_clock(self, standard_settings, timer_store, clock):
        turns = _clock(standard_settings, timer_store, clock)
        turns.start()

        turns.apply_settings(standard_settings.model_copy(update={"turn_based_mode": False}))

        assert not turns.is_running

    def test_apply_settings_new_duration(self, standard_settings, timer_store, clock):
        turns = _clock(standard_settings, timer_store, clock)
        turns.start()

        turns.apply_settings(standard_settings.model_copy(update={"turn_duration": 120}))

        assert turns.turn_duration == 120
        assert turns.turn_time_remaining == 120


class TestTurns:
    """Test switching and expiry."""

    def test_switch_turn_resets_time_and_keeps_extensions(self, standard_settings, timer_store, clock):
        turns = _clock(standard_settings, timer_store, clock)
        turns.start()
        turns.advance(30)
        turns.extend_turn()

        turns.switch_turn()

        assert turns.current_turn is TurnOwner.PARTNER
        assert turns.turn_time_remaining == 90
        assert turns.extensions_used == 1
        assert turns.is_running

    def test_switch_twice_returns_to_user(self, standard_settings, timer_store, clock):
        turns = _clock(standard_settings, timer_store, clock)
        turns.switch_turn()
        turns.switch_turn()
        assert turns.current_turn is TurnOwner.USER

    def test_expiry_reports_owner_without_switching(self, standard_settings, timer_store, clock):
        expired = []
        turns = _clock(standard_settings, timer_store, clock, on_turn_expired=expired.append)
        turns.start()
        turns.switch_turn()

        turns.advance(90)

        assert expired == [TurnOwner.PARTNER]
        assert turns.current_turn is TurnOwner.PARTNER
        assert not turns.is_running
        assert turns.turn_time_remaining == 0

    def test_pause_and_resume(self, standard_settings, timer_store, clock):
        turns = _clock(standard_settings, timer_store, clock)
        turns.start()
        turns.pause()
        turns.advance(10)
        assert turns.turn_time_remaining == 90

        turns.resume()
        turns.advance(10)
        assert turns.turn_time_remaining == 80


class TestExtensions:
    """Test the bounded extension policy."""

    def test_extend_adds_sixty_seconds(self, standard_settings, timer_store, clock):
        turns = _clock(standard_settings, timer_store, clock)
        turns.start()
        turns.advance(30)

        assert turns.extend_turn() is True
        assert turns.turn_time_remaining == 120
        assert turns.extensions_used == 1

    def test_extensions_are_capped(self, standard_settings, timer_store, clock):
        turns = _clock(standard_settings, timer_store, clock)
        turns.start()

        results = [turns.extend_turn() for _ in range(turns.max_extensions + 1)]

        assert results == [True, True, False]
        assert turns.extensions_used == turns.max_extensions == 2
        assert not turns.can_extend

    def test_extensions_disallowed_by_settings(self, standard_settings, timer_store, clock):
        settings = standard_settings.model_copy(update={"allow_extensions": False})
        turns = _clock(settings, timer_store, clock)
        turns.start()

        assert turns.extend_turn() is False
        assert turns.turn_time_remaining == 90

    def test_extending_expired_turn_restarts_it(self, standard_settings, timer_store, clock):
        turns = _clock(standard_settings, timer_store, clock)
        turns.start()
        turns.advance(90)

        assert turns.extend_turn() is True
        assert turns.is_running
        assert turns.turn_time_remaining == 60

    def test_reset_extensions(self, standard_settings, timer_store, clock):
        turns = _clock(standard_settings, timer_store, clock, max_extensions=1)
        turns.start()
        turns.extend_turn()
        assert not turns.can_extend

        turns.reset_extensions()

        assert turns.extensions_used == 0
        assert turns.can_extend


class TestPersistence:
    """Test storage of turn state."""

    def test_turn_state_survives_reload(self, standard_settings, timer_store, clock):
        turns = _clock(standard_settings, timer_store, clock)
        turns.start()
        turns.switch_turn()
        turns.extend_turn()

        clock.advance(20)
        restored = _clock(standard_settings, timer_store, clock)

        assert restored.current_turn is TurnOwner.PARTNER
        assert restored.extensions_used == 1
        assert restored.turn_time_remaining == 130
        assert restored.is_running

    def test_countdown_slot_keeps_exact_format(self, standard_settings, timer_store, clock):
        turns = _clock(standard_settings, timer_store, clock)
        turns.start()

        assert set(json.loads(timer_store.get(KEY))) == {"timeRemaining", "isRunning", "isPaused", "savedAt"}
        turns.switch_turn()
        assert json.loads(timer_store.get(f"{KEY}:owner")) == {"currentTurn": "partner", "extensionsUsed": 0}

    def test_reset_clears_both_keys(self, standard_settings, timer_store, clock):
        turns = _clock(standard_settings, timer_store, clock)
        turns.start()
        turns.switch_turn()

        turns.reset()

        assert timer_store.keys() == []
        assert turns.current_turn is TurnOwner.USER
        assert turns.extensions_used == 0
        assert turns.turn_time_remaining == 90

    def test_snapshot(self, standard_settings, timer_store, clock):
        turns = _clock(standard_settings, timer_store, clock)
        snap = turns.snapshot()

        assert snap.current_turn is TurnOwner.USER
        assert snap.turn_time_remaining == 90
        assert snap.extensions_used == 0
        assert snap.max_extensions == 2
        assert snap.is_active is True
        assert snap.formatted_turn_time == "01:30"
