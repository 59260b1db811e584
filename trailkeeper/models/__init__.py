"""Database models for trailkeeper."""

from trailkeeper.models.audit import Audit
from trailkeeper.models.base import Base
from trailkeeper.models.enums import AuditAction
from trailkeeper.models.refs import EntityRef

__all__ = ["Audit", "AuditAction", "Base", "EntityRef"]
