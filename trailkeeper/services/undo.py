"""Revert the effect of a single audit entry on the live entity."""

from __future__ import annotations

import logging
from typing import Any, assert_never

from sqlalchemy.ext.asyncio import AsyncSession

from trailkeeper.exceptions import EntityNotFound, PersistenceFailure
from trailkeeper.models import Audit, AuditAction, EntityRef
from trailkeeper.registry import (
    AuditableRegistry,
    create_entity,
    default_registry,
    delete_entity,
    lookup_entity,
    save_entity,
)
from trailkeeper.services.revisions import assign_attributes

logger = logging.getLogger(__name__)


async def _require_entity(
    db: AsyncSession, ref: EntityRef, registry: AuditableRegistry
) -> Any:
    entity = await lookup_entity(db, ref.type_name, ref.id, registry=registry)
    if entity is None:
        raise EntityNotFound(ref.type_name, ref.id)
    return entity


async def undo(
    db: AsyncSession,
    audit: Audit,
    *,
    registry: AuditableRegistry = default_registry,
) -> Any:
    """Reverse ``audit`` and return the entity it touched.

    - create: the entity is deleted
    - destroy: a new entity is created from the last known attributes
    - update: the changed attributes get their old values back

    Runs inside a savepoint, so a failed undo leaves the entity as it was.
    The undo itself is not audited here; whatever hooks the entity layer
    runs on the resulting write still apply.
    """
    ref = audit.auditable
    action = audit.action_kind
    entity: Any = None

    try:
        async with db.begin_nested():
            match action:
                case AuditAction.CREATE:
                    entity = await _require_entity(db, ref, registry)
                    await delete_entity(db, entity)
                case AuditAction.DESTROY:
                    entity = await create_entity(
                        db, ref.type_name, audit.old_attributes, registry=registry
                    )
                case AuditAction.UPDATE:
                    entity = await _require_entity(db, ref, registry)
                    assign_attributes(entity, audit.old_attributes)
                    await save_entity(db, entity)
                case _:
                    assert_never(action)
    except PersistenceFailure:
        # The savepoint rollback expires the entity; reload it so callers can
        # read it without lazy IO.
        if entity is not None and entity in db:
            await db.refresh(entity)
        raise

    logger.info("Undid %s of %s (audit %s)", action.value, ref, audit.id)
    return entity
