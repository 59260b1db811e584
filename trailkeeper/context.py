"""Execution-scoped audit context.

Holds the ambient values change capture reads when it records an entry:
who is acting, which request the change belongs to, where it came from
and which parent entity it should be grouped under.

Everything lives in one immutable ``AuditContext`` stored in a single
``ContextVar``. Each thread and each asyncio task sees its own value, so an
actor set while serving one request never leaks into another. Scopes are
entered and left with tokens, so nested scopes restore whatever was active
before them.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Iterator
from contextlib import contextmanager
from contextvars import ContextVar, Token
from dataclasses import dataclass, replace
from typing import Any, ParamSpec, TypeVar

from trailkeeper.config import config
from trailkeeper.models.refs import EntityRef

logger = logging.getLogger(__name__)

P = ParamSpec("P")
T = TypeVar("T")

Supplier = Callable[[], object | None]


@dataclass(frozen=True)
class AuditContext:
    """Ambient values available to change capture in the current execution."""

    actor_supplier: Supplier | None = None
    agency_supplier: Supplier | None = None
    request_id: str | None = None
    remote_address: str | None = None
    controller: Any = None
    parent: EntityRef | None = None
    actor_override: object | None = None


_EMPTY = AuditContext()

_audit_context: ContextVar[AuditContext] = ContextVar("audit_context", default=_EMPTY)


def current_context() -> AuditContext:
    """Return the audit context of the running thread or task."""
    return _audit_context.get()


def begin_scope(**values: Any) -> Token[AuditContext]:
    """Install a new audit context derived from the current one.

    Called by request adapters when a unit of work starts. Keys must be
    ``AuditContext`` field names. Returns the token ``end_scope`` needs.
    """
    if values.get("parent") is not None:
        values["parent"] = EntityRef.of(values["parent"])
    scoped = replace(current_context(), **values)
    logger.debug("Entering audit scope request_id=%s", scoped.request_id)
    return _audit_context.set(scoped)


def end_scope(token: Token[AuditContext]) -> None:
    """Restore the context that was active before ``begin_scope``."""
    _audit_context.reset(token)


@contextmanager
def audit_scope(**values: Any) -> Iterator[AuditContext]:
    """Run a block inside a scoped audit context, cleared on every exit path."""
    token = begin_scope(**values)
    try:
        yield current_context()
    finally:
        end_scope(token)


def _controller_supplier(controller: Any, method_name: str) -> Supplier:
    def supplier() -> object | None:
        current = getattr(controller, method_name, None)
        if callable(current):
            return current()
        return current

    return supplier


def _controller_request_values(controller: Any) -> dict[str, str | None]:
    request = getattr(controller, "request", None)
    if request is None:
        return {"remote_address": None, "request_id": None}

    remote_address = getattr(request, "remote_ip", None)
    if remote_address is None:
        client = getattr(request, "client", None)
        remote_address = getattr(client, "host", None)

    request_id = getattr(request, "uuid", None) or getattr(request, "request_id", None)
    if request_id is None:
        state = getattr(request, "state", None)
        request_id = getattr(state, "request_id", None)

    return {
        "remote_address": str(remote_address) if remote_address else None,
        "request_id": str(request_id) if request_id else None,
    }


@contextmanager
def controller_scope(controller: Any) -> Iterator[AuditContext]:
    """Populate the audit context from a controller-like object.

    The actor and agency are resolved lazily through the controller's
    current-user and current-agency methods, only when an entry is written.
    """
    with audit_scope(
        controller=controller,
        actor_supplier=_controller_supplier(controller, config.CURRENT_USER_METHOD),
        agency_supplier=_controller_supplier(controller, config.CURRENT_AGENCY_METHOD),
        **_controller_request_values(controller),
    ) as scoped:
        yield scoped


@contextmanager
def with_parent(parent: object) -> Iterator[EntityRef]:
    """Group every entry captured in the block under ``parent``."""
    ref = EntityRef.of(parent)
    with audit_scope(parent=ref):
        yield ref


@contextmanager
def as_actor(actor: object) -> Iterator[None]:
    """Record every entry captured in the block as made by ``actor``.

    Takes precedence over the ambient actor supplier. Nested blocks restore
    the enclosing override when they exit.
    """
    token = _audit_context.set(replace(current_context(), actor_override=actor))
    try:
        yield
    finally:
        _audit_context.reset(token)


def run_as(actor: object, body: Callable[P, T], *args: P.args, **kwargs: P.kwargs) -> T:
    """Call ``body`` with ``actor`` forced as the audit actor."""
    with as_actor(actor):
        return body(*args, **kwargs)


async def run_as_async(
    actor: object,
    body: Callable[P, Awaitable[T]],
    *args: P.args,
    **kwargs: P.kwargs,
) -> T:
    """Await ``body`` with ``actor`` forced as the audit actor."""
    with as_actor(actor):
        return await body(*args, **kwargs)
