import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from factories import Company, User, create_user
from trailkeeper.exceptions import UnknownAuditableType
from trailkeeper.models.refs import type_name_of
from trailkeeper.registry import (
    AuditableRegistry,
    column_names,
    create_entity,
    default_registry,
    lookup_entity,
)


class LegacyAccount:
    __audit_name__ = "Account"


def test_resolves_mapped_classes_by_name() -> None:
    assert default_registry.resolve("User") is User
    assert default_registry.resolve("Company") is Company


def test_unknown_type_name() -> None:
    with pytest.raises(UnknownAuditableType) as excinfo:
        default_registry.resolve("Spaceship")
    assert excinfo.value.type_name == "Spaceship"


def test_explicit_registration_uses_audit_name() -> None:
    registry = AuditableRegistry()
    registry.register(LegacyAccount)

    assert type_name_of(LegacyAccount) == "Account"
    assert "Account" in registry
    assert "LegacyAccount" not in registry
    assert registry.resolve("Account") is LegacyAccount
    assert registry.audited_classes() == [LegacyAccount]


def test_column_names() -> None:
    assert set(column_names(Company)) == {"id", "name", "owner_id"}
    assert "display_name" not in column_names(User)


async def test_lookup_entity(db: AsyncSession) -> None:
    user, _ = await create_user(db)

    assert await lookup_entity(db, "User", user.id) is user
    assert await lookup_entity(db, "User", user.id + 100) is None


async def test_create_entity_ignores_unknown_keys(db: AsyncSession) -> None:
    company = await create_entity(db, "Company", {"name": "Acme", "motto": "Go"})

    assert isinstance(company, Company)
    assert company.id is not None
    assert company.name == "Acme"
    assert not hasattr(company, "motto")
