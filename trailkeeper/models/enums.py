"""Enum types for models."""

from enum import Enum


class AuditAction(str, Enum):
    """Kind of change an audit entry records."""

    CREATE = "create"
    UPDATE = "update"
    DESTROY = "destroy"
