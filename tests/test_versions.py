from sqlalchemy.ext.asyncio import AsyncSession

from factories import create_versions
from trailkeeper.services.audit_log import fetch
from trailkeeper.services.versions import from_version, resolve_version, to_version


async def test_resolve_version(db: AsyncSession) -> None:
    user, audits = await create_versions(db, 3)

    assert (await resolve_version(db, user)).id == audits[0].id
    assert (await resolve_version(db, user, 2)).id == audits[1].id
    assert await resolve_version(db, user, 4) is None
    assert await resolve_version(db, user, 0) is None
    assert await resolve_version(db, user, -1) is None


async def test_from_version(db: AsyncSession) -> None:
    user, audits = await create_versions(db, 3)

    entries = await fetch(db, await from_version(db, user, 2))
    assert [a.id for a in entries] == [audits[1].id, audits[2].id]


async def test_to_version(db: AsyncSession) -> None:
    user, audits = await create_versions(db, 3)

    entries = await fetch(db, await to_version(db, user, 2))
    assert [a.id for a in entries] == [audits[0].id, audits[1].id]


async def test_default_version_is_the_first(db: AsyncSession) -> None:
    user, audits = await create_versions(db, 3)

    assert len(await fetch(db, await from_version(db, user))) == 3
    assert [a.id for a in await fetch(db, await to_version(db, user))] == [audits[0].id]


async def test_versions_past_the_end(db: AsyncSession) -> None:
    user, audits = await create_versions(db, 3)

    assert await fetch(db, await from_version(db, user, 10)) == []
    assert len(await fetch(db, await to_version(db, user, 10))) == len(audits)


async def test_version_zero_is_not_the_default(db: AsyncSession) -> None:
    user, audits = await create_versions(db, 3)

    assert await fetch(db, await from_version(db, user, 0)) == []
    assert len(await fetch(db, await to_version(db, user, 0))) == len(audits)
