from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

from sqlalchemy.ext.asyncio import AsyncSession

from factories import User, create_user, create_versions, destroy_user, update_user
from trailkeeper.models import Audit
from trailkeeper.services.revisions import (
    assign_attributes,
    iter_revision_attributes,
    reconstruct_attributes,
    revision,
    revision_at,
    revision_at_time,
    revisions,
)


@dataclass(frozen=True)
class Point:
    x: int
    y: int


class Note:
    def __init__(self, text: str) -> None:
        self.text = text


def _history() -> list[Audit]:
    return [
        Audit(action="create", audited_changes={"name": "A", "logins": 0}),
        Audit(action="update", audited_changes={"name": ["A", "B"]}),
        Audit(action="update", audited_changes={"logins": [0, 3]}),
    ]


def test_iter_revision_attributes() -> None:
    states = list(iter_revision_attributes(_history()))

    assert states == [
        {"name": "A", "logins": 0},
        {"name": "B", "logins": 0},
        {"name": "B", "logins": 3},
    ]


def test_reconstruct_attributes_is_repeatable() -> None:
    history = _history()

    assert reconstruct_attributes(history) == {"name": "B", "logins": 3}
    assert reconstruct_attributes(history) == reconstruct_attributes(history)
    assert reconstruct_attributes([]) == {}


def test_assign_skips_unknown_and_read_only_attributes() -> None:
    user = User(name="A", username="a")

    result = assign_attributes(
        user, {"name": "B", "nickname": "bee", "display_name": "ignored"}
    )

    assert result is user
    assert user.name == "B"
    assert not hasattr(user, "nickname")
    assert user.display_name == "B (a)"


def test_assign_on_frozen_dataclass_returns_copy() -> None:
    point = Point(1, 2)

    moved = assign_attributes(point, {"x": 5, "z": 9})

    assert moved == Point(5, 2)
    assert point == Point(1, 2)


def test_assign_on_plain_object() -> None:
    note = Note("draft")

    assign_attributes(note, {"text": "final", "author": "me"})

    assert note.text == "final"
    assert not hasattr(note, "author")


async def test_assign_on_deleted_instance_returns_copy(db: AsyncSession) -> None:
    user, _ = await create_user(db, name="A")
    await db.delete(user)
    await db.flush()

    restored = assign_attributes(user, {"name": "Z"})

    assert restored is not user
    assert restored.name == "Z"
    assert restored.username == "brandon"
    assert restored.id is None
    assert user.name == "A"


async def test_revision_at_each_entry(db: AsyncSession) -> None:
    user, audits = await create_versions(db, 3)

    for number, audit in enumerate(audits, start=1):
        past = await revision_at(db, audit)
        assert isinstance(past, User)
        assert past.id == user.id
        assert past.name == f"Foobar {number}"


async def test_revision_at_leaves_live_entity_alone(db: AsyncSession) -> None:
    user, first = await create_user(db, name="A")
    await update_user(db, user, name="B")

    past = await revision_at(db, first)
    await db.flush()
    await db.refresh(user)

    assert past is not user
    assert past.name == "A"
    assert user.name == "B"
    assert past not in db


async def test_revision_after_destroy(db: AsyncSession) -> None:
    user, _ = await create_user(db, name="A")
    updated = await update_user(db, user, name="B")
    destroyed = await destroy_user(db, user)

    past = await revision_at(db, updated)
    assert isinstance(past, User)
    assert past.name == "B"
    assert past.username == "brandon"

    # Destroy entries record the attributes going away.
    gone = await revision_at(db, destroyed)
    assert gone.name is None


async def test_revision_by_version(db: AsyncSession) -> None:
    user, _ = await create_versions(db, 3)

    assert (await revision(db, user, 1)).name == "Foobar 1"
    assert (await revision(db, user, 3)).name == "Foobar 3"
    assert await revision(db, user, 4) is None


async def test_revisions_list(db: AsyncSession) -> None:
    user, _ = await create_versions(db, 3)

    assert [r.name for r in await revisions(db, user)] == [
        "Foobar 1",
        "Foobar 2",
        "Foobar 3",
    ]
    assert [r.name for r in await revisions(db, user, 2)] == ["Foobar 2", "Foobar 3"]
    assert all(r.id == user.id for r in await revisions(db, user))


async def test_revisions_without_history(db: AsyncSession) -> None:
    user = User(name="Untracked")
    db.add(user)
    await db.flush()

    assert await revisions(db, user) == []


async def test_revision_at_time(db: AsyncSession) -> None:
    user, _ = await create_versions(db, 2)

    latest = await revision_at_time(db, user, datetime.now(UTC) + timedelta(days=1))
    assert latest.name == "Foobar 2"

    before = await revision_at_time(db, user, datetime.now(UTC) - timedelta(days=1))
    assert before is None
