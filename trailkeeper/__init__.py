"""Change capture and history reconstruction for SQLAlchemy models."""

from trailkeeper.context import (
    AuditContext,
    as_actor,
    audit_scope,
    begin_scope,
    controller_scope,
    current_context,
    end_scope,
    run_as,
    run_as_async,
    with_parent,
)
from trailkeeper.exceptions import (
    EntityNotFound,
    ImmutableAuditError,
    PersistenceFailure,
    TrailkeeperError,
    UnknownAuditableType,
)
from trailkeeper.models import Audit, AuditAction, EntityRef
from trailkeeper.registry import AuditableRegistry, register_auditable
from trailkeeper.services.audit_log import ancestors_of, audits_for
from trailkeeper.services.capture import capture
from trailkeeper.services.revisions import reconstruct_attributes, revision_at
from trailkeeper.services.undo import undo
from trailkeeper.services.versions import from_version, resolve_version, to_version

__version__ = "0.1.0"

__all__ = [
    "Audit",
    "AuditAction",
    "AuditContext",
    "AuditableRegistry",
    "EntityNotFound",
    "EntityRef",
    "ImmutableAuditError",
    "PersistenceFailure",
    "TrailkeeperError",
    "UnknownAuditableType",
    "ancestors_of",
    "as_actor",
    "audit_scope",
    "audits_for",
    "begin_scope",
    "capture",
    "controller_scope",
    "current_context",
    "end_scope",
    "from_version",
    "reconstruct_attributes",
    "register_auditable",
    "resolve_version",
    "revision_at",
    "run_as",
    "run_as_async",
    "to_version",
    "undo",
    "with_parent",
]
