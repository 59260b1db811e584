"""Change capture: turn a change map into a stored audit entry."""

from __future__ import annotations

import logging
import uuid
from collections.abc import Mapping
from datetime import date, datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import inspect
from sqlalchemy.ext.asyncio import AsyncSession

from trailkeeper.config import config
from trailkeeper.context import AuditContext, Supplier, current_context
from trailkeeper.models import Audit, AuditAction, EntityRef
from trailkeeper.models.refs import is_mapped_instance
from trailkeeper.registry import column_names
from trailkeeper.services.audit_log import append

logger = logging.getLogger(__name__)


def _serialize_value(value: object) -> object:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, (str, int, float, bool)) or value is None:
        return value
    if isinstance(value, (list, tuple)):
        return [_serialize_value(item) for item in value]
    if isinstance(value, dict):
        return {str(key): _serialize_value(item) for key, item in value.items()}
    return str(value)


def _serialize_changes(
    action: AuditAction, changes: Mapping[str, Any]
) -> dict[str, object]:
    serialized: dict[str, object] = {}
    for key, value in changes.items():
        if action is not AuditAction.CREATE and isinstance(value, tuple):
            serialized[key] = [_serialize_value(value[0]), _serialize_value(value[1])]
        else:
            serialized[key] = _serialize_value(value)
    return serialized


def _is_ignored(field: str) -> bool:
    return field in config.IGNORED_ATTRIBUTES


def compute_changes(
    before: Mapping[str, object],
    after: Mapping[str, object],
) -> dict[str, tuple[object, object]]:
    """Build an ``(old, new)`` map for modified fields only."""
    changes: dict[str, tuple[object, object]] = {}
    for field in sorted(set(before.keys()) | set(after.keys())):
        if _is_ignored(field):
            continue
        left = before.get(field)
        right = after.get(field)
        if _serialize_value(left) != _serialize_value(right):
            changes[field] = (left, right)
    return changes


def creation_changes(attributes: Mapping[str, object]) -> dict[str, object]:
    return {
        field: value
        for field, value in sorted(attributes.items())
        if not _is_ignored(field)
    }


def destruction_changes(
    attributes: Mapping[str, object],
) -> dict[str, tuple[object, None]]:
    """Keep the last known attributes as old values with no new state."""
    return {field: (value, None) for field, value in creation_changes(attributes).items()}


def attributes_of(instance: object) -> dict[str, object]:
    """Snapshot the column attributes of a mapped instance.

    Primary keys are left out; they identify the auditable, they are not
    part of its state.
    """
    mapper = inspect(type(instance))
    primary_keys = {mapper.get_property_by_column(col).key for col in mapper.primary_key}
    return {
        name: getattr(instance, name)
        for name in column_names(type(instance))
        if name not in primary_keys
    }


def _call_supplier(supplier: Supplier | None, label: str) -> object | None:
    if supplier is None:
        return None
    try:
        return supplier()
    except Exception:
        # Supplier errors never abort the write being audited.
        logger.exception("Current %s supplier failed; recording no %s", label, label)
        return None


def _resolve_actor(context: AuditContext) -> object | None:
    if context.actor_override is not None:
        return context.actor_override
    return _call_supplier(context.actor_supplier, "actor")


def _assign_actor(audit: Audit, actor: object | None) -> None:
    if actor is None:
        return
    if isinstance(actor, (str, EntityRef)) or is_mapped_instance(actor):
        audit.actor = actor
        return
    logger.warning("Ignoring unsupported audit actor %r", actor)


def _assign_agency(audit: Audit, agency: object | None) -> None:
    if agency is None:
        return
    if isinstance(agency, EntityRef) or is_mapped_instance(agency):
        audit.agency = agency
        return
    logger.warning("Ignoring unsupported audit agency %r", agency)


def enrich(audit: Audit, context: AuditContext | None = None) -> Audit:
    """Fill actor, agency, parent, request id and remote address.

    Fields already set on the entry are kept. Missing context simply leaves
    the field empty, except the request id which is always generated.
    """
    context = context or current_context()

    if audit.actor is None:
        _assign_actor(audit, _resolve_actor(context))
    if audit.agency is None:
        _assign_agency(audit, _call_supplier(context.agency_supplier, "agency"))
    if context.parent is not None:
        audit.parent = context.parent
    if not audit.request_uuid:
        audit.request_uuid = context.request_id or str(uuid.uuid4())
    if not audit.remote_address:
        audit.remote_address = context.remote_address
    return audit


async def capture(
    db: AsyncSession,
    action: AuditAction | str,
    auditable: object,
    changes: Mapping[str, Any],
    *,
    associated: object | None = None,
    comment: str | None = None,
    context: AuditContext | None = None,
) -> Audit:
    """Record one change of ``auditable`` inside the current transaction.

    ``context`` replaces the ambient audit context for this entry when given.
    """
    action = AuditAction(action)
    audit = Audit(
        action=action.value,
        audited_changes=_serialize_changes(action, changes),
        comment=comment,
    )
    audit.auditable = auditable
    audit.associated = associated
    enrich(audit, context)

    await append(db, audit)
    logger.debug(
        "Captured %s of %s (audit %s, request %s)",
        action.value,
        audit.auditable,
        audit.id,
        audit.request_uuid,
    )
    return audit
