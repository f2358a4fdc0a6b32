from __future__ import annotations

from typing import Optional

from qc_checkin.utils.time import epoch_ms

# Business defaults for session timing
DEFAULT_SESSION_MINUTES = 10
DEFAULT_TURN_SECONDS = 90
TURN_EXTENSION_SECONDS = 60
DEFAULT_MAX_EXTENSIONS = 2


def elapsed_whole_seconds(saved_at_ms: int, *, now_ms: Optional[int] = None) -> int:
    """
    Whole seconds elapsed since `saved_at_ms`, never negative.
    A clock that moved backwards counts as zero elapsed time.
    """
    now = epoch_ms() if now_ms is None else now_ms
    return max(0, (now - saved_at_ms) // 1000)


def drift_corrected_remaining(time_remaining: int, saved_at_ms: int, *, now_ms: Optional[int] = None) -> int:
    """
    Subtract the real time that passed since a snapshot was written.
    - floors elapsed time to whole seconds
    - never returns a negative remainder
    """
    return max(0, time_remaining - elapsed_whole_seconds(saved_at_ms, now_ms=now_ms))


def format_countdown(seconds: int) -> str:
    """
    Zero-padded 'MM:SS'. Minutes keep growing past two digits ('125:00').
    """
    if seconds < 0:
        seconds = 0
    minutes, secs = divmod(int(seconds), 60)
    return f"{minutes:02d}:{secs:02d}"


def minutes_to_seconds(minutes: int) -> int:
    return max(0, int(minutes)) * 60
