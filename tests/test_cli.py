import json
import sys

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from factories import create_user, update_user
from trailkeeper.context import audit_scope
from trailkeeper.scripts import cli


@pytest.fixture
def cli_session(
    session_factory: async_sessionmaker[AsyncSession],
    monkeypatch: pytest.MonkeyPatch,
) -> async_sessionmaker[AsyncSession]:
    async def fake_init_db() -> None:
        return None

    monkeypatch.setattr(cli, "AsyncSessionLocal", session_factory)
    monkeypatch.setattr(cli, "init_db", fake_init_db)
    return session_factory


async def test_cli_shows_history(
    cli_session: async_sessionmaker[AsyncSession],
    capsys: pytest.CaptureFixture[str],
) -> None:
    async with cli_session() as session:
        user, _ = await create_user(session, name="A")
        await update_user(session, user, name="B")
        await session.commit()
        user_id = user.id

    await cli.show_history("User", user_id)
    entries = json.loads(capsys.readouterr().out)
    assert [entry["action"] for entry in entries] == ["create", "update"]

    await cli.show_history("User", user_id, descending=True, action="update")
    entries = json.loads(capsys.readouterr().out)
    assert [entry["changes"]["name"] for entry in entries] == [["A", "B"]]


async def test_cli_history_of_unknown_entity(
    cli_session: async_sessionmaker[AsyncSession],
    capsys: pytest.CaptureFixture[str],
) -> None:
    await cli.show_history("User", 404)
    captured = capsys.readouterr()
    assert captured.out == ""
    assert "No audits for User#404" in captured.err


async def test_cli_shows_audit_with_state(
    cli_session: async_sessionmaker[AsyncSession],
    capsys: pytest.CaptureFixture[str],
) -> None:
    async with cli_session() as session:
        user, _ = await create_user(session, name="A")
        audit = await update_user(session, user, name="B")
        await session.commit()
        audit_id = audit.id

    await cli.show_audit(audit_id)
    payload = json.loads(capsys.readouterr().out)

    assert payload["audit"]["id"] == audit_id
    assert payload["version"] == 2
    assert payload["attributes"]["name"] == "B"
    assert payload["attributes"]["username"] == "brandon"


async def test_cli_show_missing_audit_exits(
    cli_session: async_sessionmaker[AsyncSession],
) -> None:
    with pytest.raises(SystemExit) as excinfo:
        await cli.show_audit(999)
    assert excinfo.value.code == 1


async def test_cli_shows_request(
    cli_session: async_sessionmaker[AsyncSession],
    capsys: pytest.CaptureFixture[str],
) -> None:
    async with cli_session() as session:
        with audit_scope(request_id="req-cli"):
            await create_user(session, name="A")
            await create_user(session, name="B")
        await create_user(session, name="C")
        await session.commit()

    await cli.show_request("req-cli")
    entries = json.loads(capsys.readouterr().out)
    assert [entry["changes"]["name"] for entry in entries] == ["A", "B"]


@pytest.mark.usefixtures("isolated_loggers")
def test_main_dispatches_history(monkeypatch: pytest.MonkeyPatch) -> None:
    calls = []

    async def fake_show_history(
        type_name: str, entity_id: int, *, descending: bool, action: str | None
    ) -> None:
        calls.append((type_name, entity_id, descending, action))

    monkeypatch.setattr(cli, "show_history", fake_show_history)
    monkeypatch.setattr(
        sys, "argv", ["trailkeeper", "history", "User", "7", "--desc", "--action", "update"]
    )

    cli.main()

    assert calls == [("User", 7, True, "update")]


@pytest.mark.usefixtures("isolated_loggers")
def test_main_rejects_unknown_action(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(
        sys, "argv", ["trailkeeper", "history", "User", "7", "--action", "archive"]
    )
    with pytest.raises(SystemExit):
        cli.main()
