"""
Async persistence gateways used by the check-in context and the settings catalogue.

Every call opens its own DB session, converts rows into plain record dicts and
reports failures as `QueryResult.error` instead of raising. Successful writes
are echoed on the realtime feed, the way the hosted database broadcasts row
changes to both partners.
"""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Awaitable, Callable, Optional

from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_fixed

from qc_checkin.core.config import settings
from qc_checkin.repositories import checkin_repo, note_repo, settings_repo
from qc_checkin.schemas.common import QueryResult
from qc_checkin.services.realtime import INSERT, UPDATE, DELETE, RealtimeFeed

logger = logging.getLogger(__name__)


class _Gateway:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        realtime: Optional[RealtimeFeed] = None,
        *,
        attempts: Optional[int] = None,
        retry_wait: Optional[float] = None,
    ) -> None:
        self._session_factory = session_factory
        self._realtime = realtime
        self._attempts = settings.DB_RETRY_ATTEMPTS if attempts is None else attempts
        self._retry_wait = settings.DB_RETRY_WAIT_SECONDS if retry_wait is None else retry_wait

    async def _run(self, label: str, op: Callable[[AsyncSession], Awaitable[Any]]) -> QueryResult:
        # Only connection-level failures are retried
        retrying = AsyncRetrying(
            stop=stop_after_attempt(max(1, self._attempts)),
            wait=wait_fixed(self._retry_wait),
            retry=retry_if_exception_type((OSError, OperationalError)),
            reraise=True,
        )
        try:
            async for attempt in retrying:
                with attempt:
                    async with self._session_factory() as db:
                        return QueryResult.success(await op(db))
        except (SQLAlchemyError, OSError) as e:
            logger.error("%s failed: %s", label, e)
            return QueryResult.failure(f"{label} failed")

    def _publish(self, table: str, event: str, record: Optional[dict[str, Any]]) -> None:
        if self._realtime is not None and record is not None:
            self._realtime.publish(table, event, record)


class CheckInPersistence(_Gateway):

    async def fetch_active_check_in(self, couple_id: str) -> QueryResult:
        async def op(db):
            ci = await checkin_repo.fetch_active_check_in(db, couple_id)
            return checkin_repo.check_in_record(ci) if ci else None
        return await self._run("Loading active check-in", op)

    async def insert_check_in(self, check_in_id: str, couple_id: str, started_at: datetime, categories: list[str]) -> QueryResult:
        async def op(db):
            ci = await checkin_repo.insert_check_in(
                db, check_in_id=check_in_id, couple_id=couple_id, started_at=started_at, categories=categories
            )
            return checkin_repo.check_in_record(ci)
        result = await self._run("Starting check-in", op)
        if result.ok:
            self._publish("check_ins", INSERT, result.data)
        return result

    async def update_check_in_progress(self, check_in_id: str, current_step: str, completed_steps: list[str]) -> QueryResult:
        async def op(db):
            ci = await checkin_repo.update_check_in_progress(db, check_in_id, current_step, completed_steps)
            return checkin_repo.check_in_record(ci) if ci else None
        result = await self._run("Saving check-in progress", op)
        if result.ok:
            self._publish("check_ins", UPDATE, result.data)
        return result

    async def update_check_in_status(
        self,
        check_in_id: str,
        status: str,
        *,
        completed_at: Optional[datetime] = None,
        fields: Optional[dict[str, Any]] = None,
    ) -> QueryResult:
        async def op(db):
            ci = await checkin_repo.update_check_in_status(
                db, check_in_id, status, completed_at=completed_at, fields=fields
            )
            return checkin_repo.check_in_record(ci) if ci else None
        result = await self._run("Updating check-in status", op)
        if result.ok:
            self._publish("check_ins", UPDATE, result.data)
        return result

    async def upsert_note(self, note_id: str, values: dict[str, Any]) -> QueryResult:
        async def op(db):
            note = await note_repo.upsert_note(db, note_id, values)
            return {"id": note.id, **{k: getattr(note, k) for k in note_repo.NOTE_FIELDS}}
        result = await self._run("Saving note", op)
        if result.ok:
            self._publish("notes", UPDATE, result.data)
        return result

    async def delete_note(self, note_id: str, couple_id: str) -> QueryResult:
        result = await self._run("Deleting note", lambda db: note_repo.delete_note(db, note_id))
        if result.ok and result.data:
            self._publish("notes", DELETE, {"id": note_id, "couple_id": couple_id})
        return result

    async def upsert_action_item(self, item_id: str, values: dict[str, Any]) -> QueryResult:
        async def op(db):
            item = await note_repo.upsert_action_item(db, item_id, values)
            return {"id": item.id, **{k: getattr(item, k) for k in note_repo.ACTION_ITEM_FIELDS}}
        result = await self._run("Saving action item", op)
        if result.ok:
            self._publish("action_items", UPDATE, result.data)
        return result

    async def delete_action_item(self, item_id: str, couple_id: str) -> QueryResult:
        result = await self._run("Deleting action item", lambda db: note_repo.delete_action_item(db, item_id))
        if result.ok and result.data:
            self._publish("action_items", DELETE, {"id": item_id, "couple_id": couple_id})
        return result


class SettingsPersistence(_Gateway):

    async def fetch_settings(self, couple_id: str) -> QueryResult:
        async def op(db):
            row = await settings_repo.fetch_settings(db, couple_id)
            return settings_repo.settings_record(row) if row else None
        return await self._run("Loading session settings", op)

    async def upsert_settings(self, couple_id: str, values: dict[str, Any]) -> QueryResult:
        async def op(db):
            row = await settings_repo.upsert_settings(db, couple_id, values)
            return settings_repo.settings_record(row)
        return await self._run("Saving session settings", op)

    async def fetch_pending_proposal(self, couple_id: str) -> QueryResult:
        async def op(db):
            p = await settings_repo.fetch_pending_proposal(db, couple_id)
            return settings_repo.proposal_record(p) if p else None
        return await self._run("Loading pending proposal", op)

    async def insert_proposal(self, couple_id: str, proposed_by: str, settings: dict[str, Any]) -> QueryResult:
        async def op(db):
            p = await settings_repo.insert_proposal(db, couple_id, proposed_by, settings)
            return settings_repo.proposal_record(p)
        result = await self._run("Creating settings proposal", op)
        if result.ok:
            self._publish("session_settings_proposals", INSERT, result.data)
        return result

    async def review_proposal(self, proposal_id: str, status: str, reviewed_by: str, reviewed_at: datetime) -> QueryResult:
        async def op(db):
            p = await settings_repo.review_proposal(db, proposal_id, status, reviewed_by, reviewed_at)
            return settings_repo.proposal_record(p) if p else None
        result = await self._run("Reviewing settings proposal", op)
        if result.ok:
            self._publish("session_settings_proposals", UPDATE, result.data)
        return result
