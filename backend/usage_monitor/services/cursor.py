"""Cursor store: the sync watermark and other key/value metadata."""

from typing import Optional
from sqlalchemy import select
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from ..models.stats import Meta

LAST_SYNCED_ID = "last_synced_id"


async def get_meta(db: AsyncSession, key: str) -> Optional[str]:
    """Read a metadata value, None if absent."""
    result = await db.execute(select(Meta.value).where(Meta.key == key))
    return result.scalar_one_or_none()


async def set_meta(db: AsyncSession, key: str, value: str) -> None:
    """
    Insert or replace a metadata value.
    Does not commit; callers decide the transaction boundary.
    """
    stmt = sqlite_insert(Meta).values(key=key, value=value)
    stmt = stmt.on_conflict_do_update(
        index_elements=[Meta.key],
        set_={"value": stmt.excluded.value},
    )
    await db.execute(stmt)


async def get_last_synced_id(db: AsyncSession) -> int:
    """Highest gateway log id already folded into the aggregates (0 if never synced)."""
    value = await get_meta(db, LAST_SYNCED_ID)
    if not value:
        return 0
    return int(value)


async def set_last_synced_id(db: AsyncSession, last_id: int) -> None:
    """Advance the watermark. Never moves it backwards."""
    current = await get_last_synced_id(db)
    if last_id < current:
        raise ValueError(f"Cursor cannot move backwards ({current} -> {last_id})")
    await set_meta(db, LAST_SYNCED_ID, str(last_id))
