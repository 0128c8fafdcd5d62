"""
Optimistic client for the project board.

Every mutation follows the same protocol:

    1. snapshot the shadow list held by the QueryCache
    2. apply the predicted change to the shadow list immediately
    3. send the authoritative call through the transport (as a task)
    4. on failure, restore the snapshot and report the error
    5. always invalidate the cache so the next read refetches

Mutation methods are synchronous and must be called from a running event
loop; they return a Mutation handle whose `wait()` resolves once the
authoritative call has settled.
"""

import asyncio
import logging
import uuid
from contextlib import asynccontextmanager
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import AsyncIterator, Awaitable, Callable, Optional

from .cache import QueryCache
from .coordinator import MutationResult
from .db import Project, normalize_description
from .errors import BoardError, TransportError
from .notify import SUCCESS_MESSAGES, LogNotifier, Notifier
from .ordering import (
    DEFAULT_PRIORITY,
    DEFAULT_STATUS,
    DropIntent,
    append_position,
    apply_move,
    apply_removal,
    plan_move,
    resolve_drop,
)
from .transport import Transport

logger = logging.getLogger(__name__)


def placeholder_id() -> str:
    """Temporary id for a project the server has not created yet."""
    return f"tmp-{uuid.uuid4().hex[:8]}"


class MutationState(str, Enum):
    IDLE = "idle"
    OPTIMISTIC = "optimistic"
    RECONCILED = "reconciled"
    ROLLED_BACK = "rolled_back"


@dataclass(eq=False)
class Mutation:
    """Handle for one in-flight or settled mutation."""
    kind: str
    project_id: Optional[str] = None
    state: MutationState = MutationState.IDLE
    previous: Optional[list] = field(default=None, repr=False)
    result: Optional[MutationResult] = None
    error: Optional[BoardError] = None
    task: Optional[asyncio.Task] = field(default=None, repr=False)

    @property
    def settled(self) -> bool:
        return self.state in (MutationState.RECONCILED, MutationState.ROLLED_BACK)

    async def wait(self) -> Optional[MutationResult]:
        if self.task is not None:
            await self.task
        return self.result


class ReconciliationClient:
    """
    Shadow copy of the board with optimistic writes.

    With `serialize=True` the authoritative calls for one project id are
    issued one after another; otherwise concurrent mutations race and the
    refetch after settlement shows whatever the server committed.
    """

    def __init__(
        self,
        transport: Transport,
        cache: Optional[QueryCache] = None,
        notifier: Optional[Notifier] = None,
        serialize: bool = False,
    ):
        self.transport = transport
        self.cache = cache if cache is not None else QueryCache()
        self.notifier = notifier if notifier is not None else LogNotifier()
        self.serialize = serialize
        self._in_flight: set[Mutation] = set()
        self._locks: dict[str, asyncio.Lock] = {}
        self._lock_users: dict[str, int] = {}

    async def __aenter__(self) -> "ReconciliationClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.drain()
        self.close()

    @property
    def idle(self) -> bool:
        return not self._in_flight

    # --- Reads ---

    async def projects(self) -> list[Project]:
        """Shadow list, refetched first when it is stale."""
        if self.cache.stale:
            await self.refresh()
        return self.cache.get() or []

    async def refresh(self) -> None:
        generation = self.cache.generation
        projects = await self.transport.list_projects()
        if not self.cache.complete_fetch(generation, projects):
            logger.debug("Discarded refetch superseded by a local write")

    async def drain(self) -> None:
        """Wait for every in-flight mutation to settle."""
        while self._in_flight:
            await asyncio.gather(*(m.task for m in list(self._in_flight)))

    def close(self) -> None:
        self.cache.close()

    # --- Mutations ---

    def create(
        self,
        name: str,
        description: Optional[str] = None,
        status: str = DEFAULT_STATUS,
        priority: str = DEFAULT_PRIORITY,
    ) -> Mutation:
        def predict(current: list) -> list:
            now = datetime.now().isoformat()
            placeholder = Project(
                id=placeholder_id(),
                name=(name or "").strip(),
                description=normalize_description(description),
                status=status,
                priority=priority,
                order=append_position(current, status),
                created_at=now,
                updated_at=now,
            )
            return current + [placeholder]

        return self._submit(
            "create", None, predict,
            lambda: self.transport.create_project(name, description, status, priority),
        )

    def update(
        self,
        project_id: str,
        name: Optional[str] = None,
        description: Optional[str] = None,
        priority: Optional[str] = None,
        status: Optional[str] = None,
    ) -> Mutation:
        changes = {
            k: v
            for k, v in (("name", name), ("description", description), ("priority", priority), ("status", status))
            if v is not None
        }

        def predict(current: list) -> list:
            project = next((p for p in current if p.id == project_id), None)
            if project is None:
                return current
            if status is not None and status != project.status:
                plan = plan_move(
                    project_id, project.status, project.order,
                    status, append_position(current, status),
                )
                current = apply_move(current, plan)
            payload = {k: v for k, v in changes.items() if k != "status"}
            if "name" in payload:
                payload["name"] = payload["name"].strip()
            if "description" in payload:
                payload["description"] = normalize_description(payload["description"])
            return [replace(p, **payload) if p.id == project_id else p for p in current]

        return self._submit(
            "update", project_id, predict,
            lambda: self.transport.update_project(project_id, changes),
        )

    def move(self, intent: DropIntent) -> Mutation:
        def predict(current: list) -> list:
            target = resolve_drop(current, intent)
            if target is None:
                return current
            project = next(p for p in current if p.id == intent.project_id)
            plan = plan_move(project.id, project.status, project.order, target.status, target.order)
            return apply_move(current, plan)

        return self._submit(
            "move", intent.project_id, predict,
            lambda: self.transport.drop(intent),
        )

    def delete(self, project_id: str) -> Mutation:
        return self._submit(
            "delete", project_id,
            lambda current: apply_removal(current, project_id),
            lambda: self.transport.delete_project(project_id),
        )

    # --- Protocol ---

    def _submit(
        self,
        kind: str,
        project_id: Optional[str],
        predict: Callable[[list], list],
        call: Callable[[], Awaitable[MutationResult]],
    ) -> Mutation:
        loop = asyncio.get_running_loop()
        mutation = Mutation(kind=kind, project_id=project_id)
        mutation.previous = self.cache.snapshot()

        try:
            optimistic = predict(self.cache.get() or [])
        except BoardError as e:
            # The shadow copy may be behind the server; let the server decide.
            logger.debug("No local prediction for %s: %s", kind, e)
        else:
            self.cache.set(optimistic)

        mutation.state = MutationState.OPTIMISTIC
        mutation.task = loop.create_task(self._settle(mutation, call))
        self._in_flight.add(mutation)
        return mutation

    async def _settle(self, mutation: Mutation, call: Callable[[], Awaitable[MutationResult]]) -> None:
        try:
            if self.serialize and mutation.project_id is not None:
                async with self._serialized(mutation.project_id):
                    result = await call()
            else:
                result = await call()
        except BoardError as e:
            self._roll_back(mutation, e)
        except Exception as e:
            logger.exception("Unexpected failure during %s", mutation.kind)
            self._roll_back(mutation, TransportError(f"{mutation.kind} failed: {e}"))
        else:
            mutation.result = result
            mutation.state = MutationState.RECONCILED
            if not result.noop:
                self.notifier.success(mutation.kind, SUCCESS_MESSAGES[mutation.kind])
        finally:
            if not self.cache.closed:
                self.cache.invalidate()
            self._in_flight.discard(mutation)

    def _roll_back(self, mutation: Mutation, error: BoardError) -> None:
        if not self.cache.closed:
            self.cache.restore(mutation.previous)
        mutation.error = error
        mutation.state = MutationState.ROLLED_BACK
        self.notifier.error(mutation.kind, error.message)

    @asynccontextmanager
    async def _serialized(self, project_id: str) -> AsyncIterator[None]:
        """Hold the per-project lock; forget it once nobody holds or waits for it."""
        lock = self._locks.get(project_id)
        if lock is None:
            lock = self._locks[project_id] = asyncio.Lock()
        self._lock_users[project_id] = self._lock_users.get(project_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[project_id] -= 1
            if not self._lock_users[project_id]:
                del self._lock_users[project_id]
                del self._locks[project_id]
