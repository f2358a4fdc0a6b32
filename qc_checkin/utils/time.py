from __future__ import annotations

import time
from datetime import datetime, timezone
from typing import Optional


UTC = timezone.utc


def utcnow() -> datetime:
    """
    Returns timezone-aware current UTC time.
    """
    return datetime.now(UTC)


def ensure_aware(dt: datetime, assume_utc: bool = True) -> datetime:
    """
    Ensure a datetime is timezone-aware. If naive and assume_utc is True,
    interpret as UTC; otherwise raise ValueError.
    """
    if dt.tzinfo is not None:
        return dt.astimezone(UTC)
    if assume_utc:
        return dt.replace(tzinfo=UTC)
    raise ValueError("Naive datetime provided and assume_utc=False")


def epoch_ms() -> int:
    """
    Wall-clock milliseconds since the Unix epoch.
    """
    return int(time.time() * 1000)


def parse_timestamp(value: Optional[str | datetime]) -> Optional[datetime]:
    """
    Accept an ISO string or datetime (as stored in rows and realtime payloads)
    and return an aware UTC datetime.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return ensure_aware(value)
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    return ensure_aware(datetime.fromisoformat(text))

