"""
In-memory stand-ins for the persistence gateways and the wall clock.
"""
import uuid
from datetime import datetime, timezone
from typing import Any, Optional

from qc_checkin.schemas.common import QueryResult


class FakeClock:
    """Controllable epoch-millisecond clock."""

    def __init__(self, start_ms: int = 1_700_000_000_000):
        self.now = start_ms

    def __call__(self) -> int:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += int(seconds * 1000)


class _FakeGateway:
    def __init__(self):
        self.calls: list[tuple[str, tuple]] = []
        self.fail: set[str] = set()

    def _result(self, name: str, args: tuple, data: Any = None) -> QueryResult:
        self.calls.append((name, args))
        if name in self.fail:
            return QueryResult.failure(f"{name} failed")
        return QueryResult.success(data)

    def called(self, name: str) -> list[tuple]:
        return [args for n, args in self.calls if n == name]


class FakeCheckInPersistence(_FakeGateway):
    """In-memory stand-in for CheckInPersistence."""

    def __init__(self, active: Optional[dict[str, Any]] = None):
        super().__init__()
        self.active = active
        self.notes: dict[str, dict[str, Any]] = {}
        self.action_items: dict[str, dict[str, Any]] = {}

    async def fetch_active_check_in(self, couple_id):
        return self._result("fetch_active_check_in", (couple_id,), self.active)

    async def insert_check_in(self, check_in_id, couple_id, started_at, categories):
        record = {"id": check_in_id, "couple_id": couple_id, "status": "in-progress", "categories": categories}
        return self._result("insert_check_in", (check_in_id, couple_id, started_at, categories), record)

    async def update_check_in_progress(self, check_in_id, current_step, completed_steps):
        return self._result("update_check_in_progress", (check_in_id, current_step, completed_steps), {"id": check_in_id})

    async def update_check_in_status(self, check_in_id, status, *, completed_at=None, fields=None):
        return self._result("update_check_in_status", (check_in_id, status, completed_at, fields), {"id": check_in_id})

    async def upsert_note(self, note_id, values):
        result = self._result("upsert_note", (note_id, values), {"id": note_id, **values})
        if result.ok:
            self.notes[note_id] = values
        return result

    async def delete_note(self, note_id, couple_id):
        result = self._result("delete_note", (note_id, couple_id), note_id in self.notes)
        if result.ok:
            self.notes.pop(note_id, None)
        return result

    async def upsert_action_item(self, item_id, values):
        result = self._result("upsert_action_item", (item_id, values), {"id": item_id, **values})
        if result.ok:
            self.action_items[item_id] = values
        return result

    async def delete_action_item(self, item_id, couple_id):
        result = self._result("delete_action_item", (item_id, couple_id), item_id in self.action_items)
        if result.ok:
            self.action_items.pop(item_id, None)
        return result


class FakeSettingsPersistence(_FakeGateway):
    """In-memory stand-in for SettingsPersistence."""

    def __init__(self, settings_row: Optional[dict[str, Any]] = None, proposal: Optional[dict[str, Any]] = None):
        super().__init__()
        self.settings_row = settings_row
        self.proposal = proposal

    async def fetch_settings(self, couple_id):
        return self._result("fetch_settings", (couple_id,), self.settings_row)

    async def upsert_settings(self, couple_id, values):
        row = {"id": (self.settings_row or {}).get("id", str(uuid.uuid4())), "couple_id": couple_id, **values}
        result = self._result("upsert_settings", (couple_id, values), row)
        if result.ok:
            self.settings_row = row
        return result

    async def fetch_pending_proposal(self, couple_id):
        return self._result("fetch_pending_proposal", (couple_id,), self.proposal)

    async def insert_proposal(self, couple_id, proposed_by, settings):
        record = {
            "id": str(uuid.uuid4()),
            "couple_id": couple_id,
            "proposed_by": proposed_by,
            "proposed_at": datetime.now(timezone.utc).isoformat(),
            "settings": dict(settings),
            "status": "pending",
        }
        result = self._result("insert_proposal", (couple_id, proposed_by, settings), record)
        if result.ok:
            self.proposal = record
        return result

    async def review_proposal(self, proposal_id, status, reviewed_by, reviewed_at):
        record = {**(self.proposal or {}), "status": status, "reviewed_by": reviewed_by}
        result = self._result("review_proposal", (proposal_id, status, reviewed_by, reviewed_at), record)
        if result.ok:
            self.proposal = None
        return result


