"""Append-only audit log storage and queries.

Every query helper returns a ``Select`` so callers can compose further
filters before executing it. Entries are always ordered by ``Audit.id``.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from datetime import UTC, datetime
from typing import Literal

from sqlalchemy import Select, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from trailkeeper.exceptions import PersistenceFailure
from trailkeeper.models import Audit, AuditAction, EntityRef

logger = logging.getLogger(__name__)

Order = Literal["asc", "desc"]


def _ordered(stmt: Select[tuple[Audit]], order: Order) -> Select[tuple[Audit]]:
    column = Audit.id.asc() if order == "asc" else Audit.id.desc()
    return stmt.order_by(None).order_by(column)


async def append(db: AsyncSession, audit: Audit) -> Audit:
    """Persist an audit entry inside the current transaction.

    The database assigns ``id``; a failed flush is reported as
    ``PersistenceFailure`` and nothing is considered appended.
    """
    audit.created_at = datetime.now(UTC)
    db.add(audit)
    try:
        await db.flush()
    except SQLAlchemyError as exc:
        raise PersistenceFailure("append", str(exc)) from exc

    logger.debug("Appended %r", audit)
    return audit


def audits_for(auditable: object, order: Order = "asc") -> Select[tuple[Audit]]:
    """Entries for one auditable, oldest first unless ``order="desc"``."""
    ref = EntityRef.of(auditable)
    stmt = select(Audit).where(
        Audit.auditable_type == ref.type_name,
        Audit.auditable_id == ref.id,
    )
    return _ordered(stmt, order)


def ascending(stmt: Select[tuple[Audit]]) -> Select[tuple[Audit]]:
    return _ordered(stmt, "asc")


def descending(stmt: Select[tuple[Audit]]) -> Select[tuple[Audit]]:
    return _ordered(stmt, "desc")


def with_action(
    stmt: Select[tuple[Audit]], action: AuditAction | str
) -> Select[tuple[Audit]]:
    return stmt.where(Audit.action == AuditAction(action).value)


def creates(stmt: Select[tuple[Audit]]) -> Select[tuple[Audit]]:
    return with_action(stmt, AuditAction.CREATE)


def updates(stmt: Select[tuple[Audit]]) -> Select[tuple[Audit]]:
    return with_action(stmt, AuditAction.UPDATE)


def destroys(stmt: Select[tuple[Audit]]) -> Select[tuple[Audit]]:
    return with_action(stmt, AuditAction.DESTROY)


def up_until(stmt: Select[tuple[Audit]], moment: datetime) -> Select[tuple[Audit]]:
    """Restrict to entries created at or before ``moment``."""
    return stmt.where(Audit.created_at <= moment)


def ancestors_of(audit: Audit) -> Select[tuple[Audit]]:
    """All entries of the same auditable up to and including ``audit``."""
    return audits_for(audit.auditable).where(Audit.id <= audit.id)


def audits_for_associated(associated: object) -> Select[tuple[Audit]]:
    ref = EntityRef.of(associated)
    stmt = select(Audit).where(
        Audit.associated_type == ref.type_name,
        Audit.associated_id == ref.id,
    )
    return _ordered(stmt, "asc")


def audits_by_actor(actor: object) -> Select[tuple[Audit]]:
    """Entries made by a model actor or a free-text label."""
    if isinstance(actor, str):
        stmt = select(Audit).where(Audit.username == actor)
    else:
        ref = EntityRef.of(actor)
        stmt = select(Audit).where(
            Audit.user_type == ref.type_name,
            Audit.user_id == ref.id,
        )
    return _ordered(stmt, "asc")


def audits_for_request(request_id: str) -> Select[tuple[Audit]]:
    return _ordered(select(Audit).where(Audit.request_uuid == request_id), "asc")


async def fetch(db: AsyncSession, stmt: Select[tuple[Audit]]) -> list[Audit]:
    result = await db.execute(stmt)
    return list(result.scalars())


async def get_audit(db: AsyncSession, audit_id: int) -> Audit | None:
    return await db.get(Audit, audit_id)


def serialize_audit(entry: Audit) -> dict[str, object]:
    """Serialize one audit entry for logs and the CLI."""
    actor = entry.actor
    return {
        "id": entry.id,
        "auditable": str(entry.auditable),
        "associated": str(entry.associated) if entry.associated else None,
        "parent": str(entry.parent) if entry.parent else None,
        "agency": str(entry.agency) if entry.agency else None,
        "actor": str(actor) if actor is not None else None,
        "action": entry.action,
        "changes": dict(entry.audited_changes or {}),
        "comment": entry.comment,
        "remote_address": entry.remote_address,
        "request_id": entry.request_uuid,
        "created_at": entry.created_at.isoformat() if entry.created_at else None,
    }


def serialize_audits(entries: Sequence[Audit]) -> list[dict[str, object]]:
    return [serialize_audit(entry) for entry in entries]
