"""
Async boundary between the reconciliation client and the coordinator.

Transports raise BoardError subclasses for every failure; anything else
that escapes a call is wrapped in TransportError.
"""

import asyncio
import logging
from typing import Optional

from .coordinator import MutationCoordinator, MutationResult
from .db import Project
from .errors import BoardError, TransportError
from .ordering import DropIntent

logger = logging.getLogger(__name__)


class Transport:
    """Interface the client talks to."""

    async def list_projects(self) -> list[Project]:
        raise NotImplementedError

    async def create_project(
        self,
        name: str,
        description: Optional[str],
        status: str,
        priority: str,
    ) -> MutationResult:
        raise NotImplementedError

    async def update_project(self, project_id: str, changes: dict) -> MutationResult:
        raise NotImplementedError

    async def drop(self, intent: DropIntent) -> MutationResult:
        raise NotImplementedError

    async def delete_project(self, project_id: str) -> MutationResult:
        raise NotImplementedError


class LocalTransport(Transport):
    """Runs coordinator calls in a worker thread so the event loop keeps going."""

    def __init__(self, coordinator: MutationCoordinator):
        self.coordinator = coordinator

    async def _call(self, fn, *args, **kwargs):
        try:
            return await asyncio.to_thread(fn, *args, **kwargs)
        except BoardError:
            raise
        except Exception as e:
            logger.exception("Call to %s failed", getattr(fn, "__name__", fn))
            raise TransportError(f"Board call failed: {e}") from e

    async def _mutate(self, fn, *args, **kwargs) -> MutationResult:
        result = await self._call(fn, *args, **kwargs)
        if not result.success:
            raise result.error
        return result

    async def list_projects(self) -> list[Project]:
        return await self._call(self.coordinator.list_projects)

    async def create_project(self, name, description, status, priority) -> MutationResult:
        return await self._mutate(self.coordinator.create, name, description, status, priority)

    async def update_project(self, project_id: str, changes: dict) -> MutationResult:
        return await self._mutate(self.coordinator.update, project_id, **changes)

    async def drop(self, intent: DropIntent) -> MutationResult:
        return await self._mutate(self.coordinator.drop, intent)

    async def delete_project(self, project_id: str) -> MutationResult:
        return await self._mutate(self.coordinator.delete, project_id)
