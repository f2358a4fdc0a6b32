"""
In-process change feed scoped by (table, couple).

Writers publish plain row dicts after a successful write; subscribers map the
record into their own domain shape. Handler failures are logged and do not
stop delivery to the other subscribers.
"""
from __future__ import annotations

import itertools
import logging
import threading
from dataclasses import dataclass
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)

Record = dict[str, Any]
Handler = Callable[[Record], None]

INSERT = "INSERT"
UPDATE = "UPDATE"
DELETE = "DELETE"


@dataclass(slots=True)
class _Listener:
    id: int
    table: str
    couple_id: str
    on_insert: Optional[Handler] = None
    on_update: Optional[Handler] = None
    on_delete: Optional[Handler] = None


class Subscription:
    def __init__(self, feed: "RealtimeFeed", listener_id: int) -> None:
        self._feed = feed
        self._listener_id = listener_id
        self.active = True

    def unsubscribe(self) -> None:
        if self.active:
            self._feed._remove(self._listener_id)
            self.active = False


class RealtimeFeed:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._ids = itertools.count(1)
        self._listeners: dict[int, _Listener] = {}

    def subscribe(
        self,
        table: str,
        couple_id: str,
        *,
        on_insert: Optional[Handler] = None,
        on_update: Optional[Handler] = None,
        on_delete: Optional[Handler] = None,
    ) -> Subscription:
        with self._lock:
            listener_id = next(self._ids)
            self._listeners[listener_id] = _Listener(
                listener_id, table, str(couple_id), on_insert, on_update, on_delete
            )
        logger.debug("Subscribed %s:couple:%s (#%s)", table, couple_id, listener_id)
        return Subscription(self, listener_id)

    def _remove(self, listener_id: int) -> None:
        with self._lock:
            self._listeners.pop(listener_id, None)

    def publish(self, table: str, event: str, record: Record) -> int:
        """
        Deliver `record` to matching subscribers. Returns how many handlers ran.
        """
        couple_id = str(record.get("couple_id", ""))
        with self._lock:
            targets = [
                l for l in self._listeners.values()
                if l.table == table and l.couple_id == couple_id
            ]
        delivered = 0
        for listener in targets:
            handler = {
                INSERT: listener.on_insert,
                UPDATE: listener.on_update,
                DELETE: listener.on_delete,
            }.get(event)
            if handler is None:
                continue
            try:
                handler(record)
                delivered += 1
            except Exception as e:
                logger.error("Realtime handler for %s %s failed: %s", table, event, e)
        return delivered

    def subscriber_count(self, table: Optional[str] = None) -> int:
        with self._lock:
            if table is None:
                return len(self._listeners)
            return sum(1 for l in self._listeners.values() if l.table == table)


feed = RealtimeFeed()
