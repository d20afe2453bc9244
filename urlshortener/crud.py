from datetime import datetime
from typing import Optional, Sequence

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from .models import ShortLink, IdempotencyKey


# ShortLink CRUD
async def insert_link(db: AsyncSession, link: ShortLink, idempotency_key: Optional[IdempotencyKey] = None) -> ShortLink:
    """Commit a new link (and its idempotency record) in one transaction.

    Raises IntegrityError when the code or idempotency key is already taken.
    """
    db.add(link)
    if idempotency_key is not None:
        db.add(idempotency_key)
    await db.commit()
    return link


async def get_link_by_code(db: AsyncSession, code: str) -> Optional[ShortLink]:
    result = await db.execute(select(ShortLink).where(ShortLink.code == code))
    return result.scalar_one_or_none()


async def list_links_by_owner(db: AsyncSession, owner: str, after: Optional[str], limit: int) -> Sequence[ShortLink]:
    stmt = select(ShortLink).where(ShortLink.owner == owner).order_by(ShortLink.code).limit(limit)
    if after:
        stmt = stmt.where(ShortLink.code > after)
    result = await db.execute(stmt)
    return result.scalars().all()


async def expire_link(db: AsyncSession, link: ShortLink, at: datetime) -> ShortLink:
    await db.execute(
        update(ShortLink)
        .where(ShortLink.id == link.id)
        .values(expires_at=at)
    )
    await db.commit()
    link.expires_at = at
    return link


# Idempotency CRUD
async def get_idempotency_key(db: AsyncSession, owner: str, key: str) -> Optional[IdempotencyKey]:
    result = await db.execute(
        select(IdempotencyKey).where(IdempotencyKey.owner == owner, IdempotencyKey.key == key)
    )
    return result.scalar_one_or_none()
