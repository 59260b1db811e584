"""Typed references to audited entities."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from sqlalchemy import inspect
from sqlalchemy.exc import NoInspectionAvailable


@dataclass(frozen=True)
class EntityRef:
    """A (type name, identifier) pair pointing at some mapped entity.

    Audit entries only ever store references; turning one back into a live
    object is the registry's job.
    """

    type_name: str
    id: Any

    @classmethod
    def of(cls, target: object) -> EntityRef:
        """Build a reference from a mapped instance, or pass a ref through."""

        if isinstance(target, EntityRef):
            return target

        try:
            state = inspect(target)
        except NoInspectionAvailable as exc:
            raise TypeError(
                f"Cannot reference {type(target).__name__!r}: not a mapped instance"
            ) from exc

        identity = state.mapper.primary_key_from_instance(target)
        entity_id = identity[0] if len(identity) == 1 else tuple(identity)
        return cls(type_name_of(type(target)), entity_id)

    def __str__(self) -> str:
        return f"{self.type_name}#{self.id}"


def type_name_of(model_cls: type) -> str:
    """Return the name an audited class is stored under."""

    return getattr(model_cls, "__audit_name__", None) or model_cls.__name__


def is_mapped_instance(target: object) -> bool:
    if isinstance(target, type):
        return False
    try:
        inspect(target)
    except NoInspectionAvailable:
        return False
    return True
