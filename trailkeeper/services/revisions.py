"""Rebuild past states of an auditable from its audit entries."""

from __future__ import annotations

import dataclasses
import logging
from collections.abc import Iterable, Iterator, Mapping
from datetime import datetime
from typing import Any, TypeVar

from sqlalchemy import inspect
from sqlalchemy.ext.asyncio import AsyncSession

from trailkeeper.models import Audit, EntityRef
from trailkeeper.registry import (
    AuditableRegistry,
    column_names,
    default_registry,
    lookup_entity,
)
from trailkeeper.services.audit_log import (
    ancestors_of,
    audits_for,
    fetch,
    up_until,
)
from trailkeeper.services.versions import resolve_version

logger = logging.getLogger(__name__)

T = TypeVar("T")


def iter_revision_attributes(audits: Iterable[Audit]) -> Iterator[dict[str, Any]]:
    """Yield the accumulated attribute map after each entry in turn."""
    attributes: dict[str, Any] = {}
    for audit in audits:
        attributes.update(audit.new_attributes)
        yield dict(attributes)


def reconstruct_attributes(audits: Iterable[Audit]) -> dict[str, Any]:
    """Fold entries, oldest first, into the attributes as of the last one."""
    attributes: dict[str, Any] = {}
    for audit in audits:
        attributes.update(audit.new_attributes)
    return attributes


def _is_frozen_dataclass(instance: object) -> bool:
    return dataclasses.is_dataclass(instance) and instance.__dataclass_params__.frozen


def _is_frozen(instance: object) -> bool:
    if _is_frozen_dataclass(instance):
        return True
    state = inspect(instance, raiseerr=False)
    return state is not None and (state.deleted or state.was_deleted)


def _is_writable(instance: object, name: str) -> bool:
    descriptor = getattr(type(instance), name, None)
    if isinstance(descriptor, property):
        return descriptor.fset is not None

    mapper = inspect(type(instance), raiseerr=False)
    if mapper is not None:
        return name in mapper.column_attrs

    if dataclasses.is_dataclass(instance):
        return any(field.name == name and field.init for field in dataclasses.fields(instance))

    return name in getattr(instance, "__dict__", {})


def _transient_copy(instance: T, *, keep_identity: bool = False) -> T:
    """Copy the column state of a mapped instance into a new transient one."""
    model_cls = type(instance)
    mapper = inspect(model_cls)
    primary_keys = {mapper.get_property_by_column(col).key for col in mapper.primary_key}
    copy = model_cls()
    for name in column_names(model_cls):
        if name in primary_keys and not keep_identity:
            continue
        setattr(copy, name, getattr(instance, name))
    return copy


def assign_attributes(instance: T, attributes: Mapping[str, Any]) -> T:
    """Apply historical attributes to ``instance``.

    Attributes the instance no longer has (renamed or dropped columns) are
    skipped. Frozen instances are left alone and a modified copy is
    returned instead.
    """
    writable = {}
    for name, value in attributes.items():
        if _is_writable(instance, name):
            writable[name] = value
        else:
            logger.debug(
                "Skipping %s.%s: no writable attribute", type(instance).__name__, name
            )

    if _is_frozen_dataclass(instance):
        return dataclasses.replace(instance, **writable)

    if _is_frozen(instance):
        instance = _transient_copy(instance)

    for name, value in writable.items():
        setattr(instance, name, value)
    return instance


async def _revision_base(
    db: AsyncSession, auditable: EntityRef, registry: AuditableRegistry
) -> Any:
    # Never hand back the session's own object: autoflush would write the
    # historical values over the live row.
    live = await lookup_entity(db, auditable.type_name, auditable.id, registry=registry)
    if live is None:
        return registry.resolve(auditable.type_name)()
    return _transient_copy(live, keep_identity=True)


async def revision_at(
    db: AsyncSession,
    audit: Audit,
    *,
    registry: AuditableRegistry = default_registry,
) -> Any:
    """Return the auditable as it looked right after ``audit``.

    The result is a transient instance. If the entity has since been
    deleted it carries only the reconstructed attributes.
    """
    attributes = reconstruct_attributes(await fetch(db, ancestors_of(audit)))
    base = await _revision_base(db, audit.auditable, registry)
    return assign_attributes(base, attributes)


async def revision(
    db: AsyncSession,
    auditable: object,
    version: int,
    *,
    registry: AuditableRegistry = default_registry,
) -> Any | None:
    """Return the auditable at a 1-based version, or ``None`` past the end."""
    audit = await resolve_version(db, auditable, version)
    if audit is None:
        return None
    return await revision_at(db, audit, registry=registry)


async def revisions(
    db: AsyncSession,
    auditable: object,
    from_version: int = 1,
    *,
    registry: AuditableRegistry = default_registry,
) -> list[Any]:
    """Return one instance per entry, starting at ``from_version``."""
    ref = EntityRef.of(auditable)
    history = await fetch(db, audits_for(ref))
    if not history:
        return []

    base = await _revision_base(db, ref, registry)
    states = list(iter_revision_attributes(history))
    return [
        assign_attributes(_transient_copy(base, keep_identity=True), attributes)
        for attributes in states[max(from_version, 1) - 1 :]
    ]


async def revision_at_time(
    db: AsyncSession,
    auditable: object,
    moment: datetime,
    *,
    registry: AuditableRegistry = default_registry,
) -> Any | None:
    """Return the auditable as of ``moment``, or ``None`` if it had no history yet."""
    ref = EntityRef.of(auditable)
    history = await fetch(db, up_until(audits_for(ref), moment))
    if not history:
        return None
    base = await _revision_base(db, ref, registry)
    return assign_attributes(base, reconstruct_attributes(history))
