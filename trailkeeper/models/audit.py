"""Audit model."""

from __future__ import annotations

from collections.abc import Mapping
from datetime import UTC, datetime
from types import MappingProxyType
from typing import Any

from sqlalchemy import JSON, DateTime, Index, Integer, String, Text, event
from sqlalchemy.orm import Mapped, mapped_column, object_session

from trailkeeper.exceptions import ImmutableAuditError
from trailkeeper.models.base import Base
from trailkeeper.models.enums import AuditAction
from trailkeeper.models.refs import EntityRef


def _as_pair(value: Any) -> Any:
    # JSON has no tuples; pairs come back from the column as two-item lists.
    if isinstance(value, (list, tuple)) and len(value) == 2:
        return (value[0], value[1])
    return value


class Audit(Base):
    """Immutable record of one create, update or destroy of an auditable.

    ``id`` is the only ordering key. ``created_at`` is informational and
    never used to sort entries.

    ``audited_changes`` holds ``{attribute: value}`` for creates and
    ``{attribute: [old, new]}`` for updates and destroys.
    """

    __tablename__ = "audits"
    __table_args__ = (
        Index("auditable_index", "auditable_type", "auditable_id"),
        Index("associated_index", "associated_type", "associated_id"),
        Index("user_index", "user_type", "user_id"),
        Index("parent_index", "parent_type", "parent_id"),
        Index("agency_index", "agency_type", "agency_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    auditable_type: Mapped[str] = mapped_column(String(255))
    auditable_id: Mapped[int] = mapped_column(Integer)
    associated_type: Mapped[str | None] = mapped_column(String(255), nullable=True)
    associated_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    user_type: Mapped[str | None] = mapped_column(String(255), nullable=True)
    user_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    username: Mapped[str | None] = mapped_column(String(255), nullable=True)
    parent_type: Mapped[str | None] = mapped_column(String(255), nullable=True)
    parent_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    agency_type: Mapped[str | None] = mapped_column(String(255), nullable=True)
    agency_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    action: Mapped[str] = mapped_column(String(16))
    audited_changes: Mapped[dict[str, Any] | None] = mapped_column(
        JSON, nullable=True
    )
    comment: Mapped[str | None] = mapped_column(Text, nullable=True)
    remote_address: Mapped[str | None] = mapped_column(String(45), nullable=True)
    request_uuid: Mapped[str] = mapped_column(String(64), index=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=lambda: datetime.now(UTC), index=True
    )

    def __repr__(self) -> str:
        return (
            f"<Audit id={self.id} {self.action} "
            f"{self.auditable_type}#{self.auditable_id}>"
        )

    @property
    def action_kind(self) -> AuditAction:
        return AuditAction(self.action)

    @property
    def auditable(self) -> EntityRef:
        return EntityRef(self.auditable_type, self.auditable_id)

    @auditable.setter
    def auditable(self, target: object) -> None:
        ref = EntityRef.of(target)
        self.auditable_type = ref.type_name
        self.auditable_id = ref.id

    @property
    def associated(self) -> EntityRef | None:
        if self.associated_type is None:
            return None
        return EntityRef(self.associated_type, self.associated_id)

    @associated.setter
    def associated(self, target: object | None) -> None:
        ref = EntityRef.of(target) if target is not None else None
        self.associated_type = ref.type_name if ref else None
        self.associated_id = ref.id if ref else None

    @property
    def parent(self) -> EntityRef | None:
        if self.parent_type is None:
            return None
        return EntityRef(self.parent_type, self.parent_id)

    @parent.setter
    def parent(self, target: object | None) -> None:
        ref = EntityRef.of(target) if target is not None else None
        self.parent_type = ref.type_name if ref else None
        self.parent_id = ref.id if ref else None

    @property
    def agency(self) -> EntityRef | None:
        """The organisation the actor was working on behalf of."""
        if self.agency_type is None:
            return None
        return EntityRef(self.agency_type, self.agency_id)

    @agency.setter
    def agency(self, target: object | None) -> None:
        ref = EntityRef.of(target) if target is not None else None
        self.agency_type = ref.type_name if ref else None
        self.agency_id = ref.id if ref else None

    @property
    def actor(self) -> EntityRef | str | None:
        """The model reference or free-text label that made the change."""
        if self.user_type is not None:
            return EntityRef(self.user_type, self.user_id)
        return self.username

    @actor.setter
    def actor(self, value: object | None) -> None:
        # Reset both either way so only one variant is ever populated.
        self.user_type = None
        self.user_id = None
        self.username = None
        if value is None:
            return
        if isinstance(value, str):
            self.username = value
            return
        ref = EntityRef.of(value)
        self.user_type = ref.type_name
        self.user_id = ref.id

    @property
    def changes(self) -> Mapping[str, Any]:
        """Read-only view of the recorded changes."""
        raw = self.audited_changes or {}
        if self.action == AuditAction.CREATE:
            return MappingProxyType(dict(raw))
        return MappingProxyType({key: _as_pair(value) for key, value in raw.items()})

    @property
    def new_attributes(self) -> dict[str, Any]:
        """Changed attributes with their values after this change."""
        if self.action == AuditAction.CREATE:
            return dict(self.changes)
        return {
            key: value[1] if isinstance(value, tuple) else value
            for key, value in self.changes.items()
        }

    @property
    def old_attributes(self) -> dict[str, Any]:
        """Changed attributes with their values before this change."""
        if self.action == AuditAction.CREATE:
            return {key: None for key in self.changes}
        return {
            key: value[0] if isinstance(value, tuple) else value
            for key, value in self.changes.items()
        }


@event.listens_for(Audit, "before_update")
def _reject_audit_update(mapper: Any, connection: Any, target: Audit) -> None:
    session = object_session(target)
    if session is not None and not session.is_modified(target):
        return
    raise ImmutableAuditError(target.id)
