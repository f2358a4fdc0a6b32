from sqlalchemy.ext.asyncio import AsyncSession
from typing import Any
from qc_checkin.db.models import Note, ActionItem

NOTE_FIELDS = ("couple_id", "author_id", "check_in_id", "content", "privacy", "tags", "category_id", "created_at", "updated_at")
ACTION_ITEM_FIELDS = ("couple_id", "check_in_id", "title", "description", "assigned_to", "due_date", "completed", "completed_at", "created_at")

async def upsert_note(db: AsyncSession, note_id: str, values: dict[str, Any]) -> Note:
    """
    Insert or overwrite a note by id, so flushing the same draft twice is harmless.
    """
    note = await db.get(Note, note_id)
    if note is None:
        note = Note(id=note_id)
        db.add(note)
    for key in NOTE_FIELDS:
        if key in values:
            setattr(note, key, values[key])
    await db.commit(); await db.refresh(note)
    return note

async def delete_note(db: AsyncSession, note_id: str) -> bool:
    note = await db.get(Note, note_id)
    if note is None:
        return False
    await db.delete(note)
    await db.commit()
    return True

async def upsert_action_item(db: AsyncSession, item_id: str, values: dict[str, Any]) -> ActionItem:
    item = await db.get(ActionItem, item_id)
    if item is None:
        item = ActionItem(id=item_id)
        db.add(item)
    for key in ACTION_ITEM_FIELDS:
        if key in values:
            setattr(item, key, values[key])
    await db.commit(); await db.refresh(item)
    return item

async def delete_action_item(db: AsyncSession, item_id: str) -> bool:
    item = await db.get(ActionItem, item_id)
    if item is None:
        return False
    await db.delete(item)
    await db.commit()
    return True
