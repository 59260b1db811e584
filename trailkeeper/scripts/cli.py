"""CLI tool for inspecting audit history."""

from __future__ import annotations

import argparse
import asyncio
import json
import sys

from trailkeeper.config import config
from trailkeeper.database import AsyncSessionLocal, init_db
from trailkeeper.logging_config import configure_logging
from trailkeeper.models import AuditAction, EntityRef
from trailkeeper.services.audit_log import (
    ancestors_of,
    audits_for,
    audits_for_request,
    fetch,
    get_audit,
    serialize_audit,
    serialize_audits,
    with_action,
)
from trailkeeper.services.revisions import reconstruct_attributes


def _print_json(payload: object) -> None:
    print(json.dumps(payload, indent=2, sort_keys=True, default=str))


async def show_history(
    type_name: str,
    entity_id: int,
    *,
    descending: bool = False,
    action: str | None = None,
) -> None:
    """Print the audit history of one entity."""
    await init_db()
    async with AsyncSessionLocal() as session:
        stmt = audits_for(
            EntityRef(type_name, entity_id), "desc" if descending else "asc"
        )
        if action:
            stmt = with_action(stmt, action)
        entries = await fetch(session, stmt)

    if not entries:
        print(f"No audits for {type_name}#{entity_id}.", file=sys.stderr)
        return
    _print_json(serialize_audits(entries))


async def show_audit(audit_id: int) -> None:
    """Print one audit entry and the attributes as of that entry."""
    await init_db()
    async with AsyncSessionLocal() as session:
        audit = await get_audit(session, audit_id)
        if audit is None:
            print(f"Audit {audit_id} not found.", file=sys.stderr)
            sys.exit(1)
        history = await fetch(session, ancestors_of(audit))

    _print_json(
        {
            "audit": serialize_audit(audit),
            "version": len(history),
            "attributes": reconstruct_attributes(history),
        }
    )


async def show_request(request_id: str) -> None:
    """Print every audit recorded for one request."""
    await init_db()
    async with AsyncSessionLocal() as session:
        entries = await fetch(session, audits_for_request(request_id))

    if not entries:
        print(f"No audits for request {request_id}.", file=sys.stderr)
        return
    _print_json(serialize_audits(entries))


def main() -> None:
    parser = argparse.ArgumentParser(description="trailkeeper audit history tool.")
    subparsers = parser.add_subparsers(dest="command", required=True)

    history_parser = subparsers.add_parser("history", help="List audits of an entity")
    history_parser.add_argument("type_name", help="Audited type name, e.g. User")
    history_parser.add_argument("entity_id", type=int, help="Entity id")
    history_parser.add_argument(
        "--desc", action="store_true", help="Newest first instead of oldest first"
    )
    history_parser.add_argument(
        "--action",
        choices=[action.value for action in AuditAction],
        help="Only show one kind of change",
    )

    show_parser = subparsers.add_parser(
        "show", help="Show an audit and the state it produced"
    )
    show_parser.add_argument("audit_id", type=int, help="Audit id")

    request_parser = subparsers.add_parser(
        "request", help="List audits recorded for one request"
    )
    request_parser.add_argument("request_id", help="Request id")

    args = parser.parse_args()
    configure_logging(debug=config.DEBUG)

    if args.command == "history":
        asyncio.run(
            show_history(
                args.type_name,
                args.entity_id,
                descending=args.desc,
                action=args.action,
            )
        )
    elif args.command == "show":
        asyncio.run(show_audit(args.audit_id))
    elif args.command == "request":
        asyncio.run(show_request(args.request_id))


if __name__ == "__main__":
    main()
