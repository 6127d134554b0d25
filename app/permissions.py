"""
Per-session permission cache and access decisions.

The table for an actor is filled by exactly one upstream fetch and then read
synchronously. Lookups made before the table is ready fail closed. A role
change is only picked up after `invalidate()`; the table is never patched.
"""

from __future__ import annotations

import asyncio
from collections import OrderedDict
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field

from loguru import logger

from app import settings
from app.endpoints import Endpoint, parse_endpoint
from app.errors import UpstreamFailure
from app.models import PermissionStatus
from app.schemas import PermissionRecord

PermissionFetcher = Callable[[], Awaitable[list[dict]]]

_CAPABILITIES = ("can_read", "can_create", "can_update", "can_delete")


# ---------------------------------------------------------------------------
# Decisions
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Allow:
    pass


@dataclass(frozen=True)
class Pending:
    """Permissions are still loading; neither allow nor redirect yet."""


@dataclass(frozen=True)
class Redirect:
    to: str
    endpoint: Endpoint


Decision = Allow | Pending | Redirect


@dataclass(frozen=True)
class GuardOptions:
    auto_redirect: bool = True
    redirect_to: str = settings.UNAUTHORIZED_REDIRECT


def decide_access(
    status: PermissionStatus,
    permission: PermissionRecord,
    options: GuardOptions = GuardOptions(),
) -> Decision:
    """
    Pure gating rule. Nothing is decided while the table is uninitialized or
    loading; once it has settled (ready or error) a missing read capability
    means redirect.
    """
    if not options.auto_redirect:
        return Allow()
    if status in (PermissionStatus.UNINITIALIZED, PermissionStatus.LOADING):
        return Pending()
    if not permission.can_read:
        return Redirect(to=options.redirect_to, endpoint=permission.endpoint)
    return Allow()


# ---------------------------------------------------------------------------
# Table construction
# ---------------------------------------------------------------------------


def build_table(records: list[dict]) -> dict[Endpoint, PermissionRecord]:
    """
    Turn the raw upstream records into a typed table. Records for unknown
    endpoints or with malformed fields are dropped. When several roles grant
    the same endpoint their capabilities are OR-ed together.
    """
    table: dict[Endpoint, PermissionRecord] = {}
    for raw in records:
        try:
            endpoint = parse_endpoint(str(raw.get("endpoint", "")))
            record = PermissionRecord.model_validate({**raw, "endpoint": endpoint})
        except (ValueError, AttributeError):
            logger.debug("Dropping permission record {!r}", raw)
            continue

        existing = table.get(endpoint)
        if existing is not None:
            record = PermissionRecord(
                endpoint=endpoint,
                **{
                    cap: getattr(existing, cap) or getattr(record, cap)
                    for cap in _CAPABILITIES
                },
            )
        table[endpoint] = record
    return table


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------


@dataclass
class SessionPermissions:
    token: str | None = None
    status: PermissionStatus = PermissionStatus.UNINITIALIZED
    table: dict[Endpoint, PermissionRecord] = field(default_factory=dict)
    error: str | None = None
    task: asyncio.Task | None = None


class PermissionService:
    """
    In-memory, session-scoped permission tables keyed by actor id.

    A session belongs to one bearer token: a request carrying a different
    token for the same actor (a re-login) starts a fresh session. At most
    `max_sessions` are kept; the least recently loaded ones are dropped.
    """

    def __init__(self, max_sessions: int = settings.PERMISSION_SESSION_LIMIT) -> None:
        self._sessions: OrderedDict[str, SessionPermissions] = OrderedDict()
        self._max_sessions = max_sessions

    def session(self, actor_id: str, token: str | None = None) -> SessionPermissions:
        s = self._sessions.get(actor_id)
        if s is None or s.token != token:
            if s is not None:
                logger.info(
                    "New session token for actor {}, dropping cached permissions",
                    actor_id,
                )
            s = SessionPermissions(token=token)
            self._sessions[actor_id] = s
        self._sessions.move_to_end(actor_id)
        self._evict()
        return s

    def _evict(self) -> None:
        while len(self._sessions) > self._max_sessions:
            actor_id, _ = self._sessions.popitem(last=False)
            logger.debug("Evicted permission session for actor {}", actor_id)

    def status(self, actor_id: str) -> PermissionStatus:
        s = self._sessions.get(actor_id)
        return s.status if s is not None else PermissionStatus.UNINITIALIZED

    def load(
        self, actor_id: str, fetch: PermissionFetcher, token: str | None = None
    ) -> asyncio.Task:
        """
        Start the session's fetch unless one is already in flight or has
        succeeded. Callers arriving while it runs share the same task.
        An errored session is fetched again on the next load.
        """
        s = self.session(actor_id, token)
        if s.task is not None and s.status != PermissionStatus.ERROR:
            return s.task

        s.status = PermissionStatus.LOADING
        s.error = None
        s.task = asyncio.ensure_future(self._fetch_into(actor_id, s, fetch))
        return s.task

    async def ensure_loaded(
        self, actor_id: str, fetch: PermissionFetcher, token: str | None = None
    ) -> PermissionStatus:
        s = self._sessions.get(actor_id)
        if s is not None and s.token == token and s.status == PermissionStatus.READY:
            self._sessions.move_to_end(actor_id)
            return PermissionStatus.READY
        # shield: a cancelled request must not cancel the shared fetch
        await asyncio.shield(self.load(actor_id, fetch, token))
        return self.status(actor_id)

    async def _fetch_into(
        self, actor_id: str, s: SessionPermissions, fetch: PermissionFetcher
    ) -> None:
        try:
            records = await fetch()
        except UpstreamFailure as exc:
            logger.warning(
                "Permission fetch failed for actor {}: {}", actor_id, exc.message
            )
            s.table = {}
            s.error = exc.message
            s.status = PermissionStatus.ERROR
            return
        except Exception as exc:
            logger.exception("Permission fetch crashed for actor {}", actor_id)
            s.table = {}
            s.error = str(exc) or exc.__class__.__name__
            s.status = PermissionStatus.ERROR
            return

        s.table = build_table(records)
        s.status = PermissionStatus.READY
        logger.debug(
            "Loaded {} permission records for actor {}", len(s.table), actor_id
        )

    def invalidate(self, actor_id: str) -> None:
        """Forget the actor's table; the next load fetches it again."""
        self._sessions.pop(actor_id, None)

    def clear(self) -> None:
        self._sessions.clear()

    def select_permission(
        self, actor_id: str, endpoint: Endpoint
    ) -> PermissionRecord | None:
        s = self._sessions.get(actor_id)
        if s is None or s.status != PermissionStatus.READY:
            return None
        return s.table.get(endpoint)

    def resolve(self, actor_id: str, endpoint: Endpoint) -> PermissionRecord:
        record = self.select_permission(actor_id, endpoint)
        return record if record is not None else PermissionRecord.denied(endpoint)

    def records(self, actor_id: str) -> list[PermissionRecord]:
        s = self._sessions.get(actor_id)
        if s is None or s.status != PermissionStatus.READY:
            return []
        return list(s.table.values())

    def error(self, actor_id: str) -> str | None:
        s = self._sessions.get(actor_id)
        return s.error if s is not None else None

    def guard_access(
        self,
        actor_id: str,
        endpoint: Endpoint,
        options: GuardOptions = GuardOptions(),
    ) -> Decision:
        return decide_access(
            self.status(actor_id), self.resolve(actor_id, endpoint), options
        )


permission_service = PermissionService()
