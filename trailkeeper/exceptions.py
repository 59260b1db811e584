"""Exceptions raised by trailkeeper."""

from __future__ import annotations

from typing import Any


class TrailkeeperError(Exception):
    """Base class for all trailkeeper errors."""


class EntityNotFound(TrailkeeperError, LookupError):
    """The live entity an operation needs no longer exists."""

    def __init__(self, type_name: str, entity_id: Any) -> None:
        """Initialize the error.

        Args:
            type_name: Registered type name of the missing entity
            entity_id: Primary key that was looked up
        """
        super().__init__(f"{type_name} '{entity_id}' not found")
        self.type_name = type_name
        self.entity_id = entity_id


class UnknownAuditableType(TrailkeeperError, LookupError):
    """No mapped class is registered under a type name."""

    def __init__(self, type_name: str) -> None:
        super().__init__(f"No auditable class registered as '{type_name}'")
        self.type_name = type_name


class PersistenceFailure(TrailkeeperError):
    """The backing store rejected an append, create, save or delete."""

    def __init__(self, operation: str, detail: str | None = None) -> None:
        """Initialize the error.

        Args:
            operation: Name of the storage operation that failed
            detail: Message from the underlying driver, if any
        """
        message = f"Persistence failure during {operation}"
        if detail:
            message += f": {detail}"
        super().__init__(message)
        self.operation = operation


class ImmutableAuditError(TrailkeeperError):
    """A persisted audit row was about to be modified."""

    def __init__(self, audit_id: int | None) -> None:
        super().__init__(f"Audit {audit_id} is immutable once persisted")
        self.audit_id = audit_id


__all__ = [
    "EntityNotFound",
    "ImmutableAuditError",
    "PersistenceFailure",
    "TrailkeeperError",
    "UnknownAuditableType",
]
