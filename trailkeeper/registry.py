"""Entity lookup and persistence by audited type name."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from typing import Any, TypeVar

from sqlalchemy import inspect
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import ColumnProperty

from trailkeeper.exceptions import PersistenceFailure, UnknownAuditableType
from trailkeeper.models.base import Base
from trailkeeper.models.refs import type_name_of

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=type)


class AuditableRegistry:
    """Maps stored type names back to mapped classes.

    Classes can be registered explicitly; anything else mapped on ``Base``
    is found by name on first use.
    """

    def __init__(self, base: type[Base] = Base) -> None:
        self._base = base
        self._classes: dict[str, type] = {}

    def register(self, model_cls: ModelT) -> ModelT:
        self._classes[type_name_of(model_cls)] = model_cls
        return model_cls

    def resolve(self, type_name: str) -> type:
        model_cls = self._classes.get(type_name)
        if model_cls is not None:
            return model_cls

        for mapper in self._base.registry.mappers:
            if type_name_of(mapper.class_) == type_name:
                self._classes[type_name] = mapper.class_
                return mapper.class_

        raise UnknownAuditableType(type_name)

    def audited_classes(self) -> list[type]:
        """Return the explicitly registered classes."""
        return list(self._classes.values())

    def __contains__(self, type_name: object) -> bool:
        return type_name in self._classes


default_registry = AuditableRegistry()


def register_auditable(model_cls: ModelT) -> ModelT:
    """Class decorator registering a model with the default registry."""
    return default_registry.register(model_cls)


def column_names(model_cls: type) -> Iterable[str]:
    return [
        prop.key
        for prop in inspect(model_cls).attrs
        if isinstance(prop, ColumnProperty)
    ]


async def lookup_entity(
    db: AsyncSession,
    type_name: str,
    entity_id: Any,
    *,
    registry: AuditableRegistry = default_registry,
) -> Any | None:
    """Return the live entity or ``None`` when it no longer exists."""
    model_cls = registry.resolve(type_name)
    try:
        return await db.get(model_cls, entity_id)
    except SQLAlchemyError as exc:
        raise PersistenceFailure("lookup", str(exc)) from exc


async def create_entity(
    db: AsyncSession,
    type_name: str,
    attributes: Mapping[str, Any],
    *,
    registry: AuditableRegistry = default_registry,
) -> Any:
    """Create and flush a new entity from an attribute map.

    Keys without a matching column are ignored.
    """
    model_cls = registry.resolve(type_name)
    known = set(column_names(model_cls))
    instance = model_cls(**{key: value for key, value in attributes.items() if key in known})
    await save_entity(db, instance)
    logger.debug("Created %s from %d attributes", type_name, len(attributes))
    return instance


async def save_entity(db: AsyncSession, instance: Any) -> Any:
    db.add(instance)
    try:
        await db.flush()
    except SQLAlchemyError as exc:
        raise PersistenceFailure("save", str(exc)) from exc
    return instance


async def delete_entity(db: AsyncSession, instance: Any) -> None:
    try:
        await db.delete(instance)
        await db.flush()
    except SQLAlchemyError as exc:
        raise PersistenceFailure("delete", str(exc)) from exc
