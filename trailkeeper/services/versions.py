"""Version numbers over an auditable's history.

Version ``n`` is the ``n``-th entry of the auditable's ascending history,
starting at 1.
"""

from __future__ import annotations

from sqlalchemy import Select, false
from sqlalchemy.ext.asyncio import AsyncSession

from trailkeeper.models import Audit
from trailkeeper.services.audit_log import audits_for


async def resolve_version(
    db: AsyncSession, auditable: object, version: int | None = None
) -> Audit | None:
    """Return the entry for ``version``, or ``None`` past the end of history."""
    if version is None:
        version = 1
    if version < 1:
        return None
    stmt = audits_for(auditable).offset(version - 1).limit(1)
    result = await db.execute(stmt)
    return result.scalars().first()


async def from_version(
    db: AsyncSession, auditable: object, version: int | None = None
) -> Select[tuple[Audit]]:
    """Entries from ``version`` onwards; empty when the version does not exist."""
    anchor = await resolve_version(db, auditable, version)
    if anchor is None:
        return audits_for(auditable).where(false())
    return audits_for(auditable).where(Audit.id >= anchor.id)


async def to_version(
    db: AsyncSession, auditable: object, version: int | None = None
) -> Select[tuple[Audit]]:
    """Entries up to ``version``; the full history when it does not exist."""
    anchor = await resolve_version(db, auditable, version)
    if anchor is None:
        return audits_for(auditable)
    return audits_for(auditable).where(Audit.id <= anchor.id)
