"""
Translate board intents into store calls.

A drop intent names the project being dragged and what it was released
over: another project, a column header, or nothing. The store resolves
the intent against the rows it reads inside its write transaction, so
positions are never taken from an earlier read. The coordinator wraps
the outcome in a MutationResult. It never writes compensating updates;
the store's transaction is the only atomicity boundary.
"""

import logging
from dataclasses import dataclass
from typing import Callable, Optional

from .db import Project, ProjectDatabase
from .errors import BoardError
from .ordering import DEFAULT_PRIORITY, DEFAULT_STATUS, DropIntent

logger = logging.getLogger(__name__)


@dataclass
class MutationResult:
    """Outcome of one coordinator call."""
    success: bool
    kind: str
    project: Optional[Project] = None
    error: Optional[BoardError] = None
    noop: bool = False

    def to_dict(self) -> dict:
        if not self.success:
            return {
                "success": False,
                "error": str(self.error),
                "error_type": type(self.error).__name__,
                "retryable": bool(self.error and self.error.retryable),
            }
        data: dict = {"success": True}
        if self.project is not None:
            data["project"] = self.project.to_dict()
        if self.noop:
            data["noop"] = True
        return data


class MutationCoordinator:
    """Single entry point for board writes against the authoritative store."""

    def __init__(self, db: ProjectDatabase):
        self.db = db

    def _run(self, kind: str, fn: Callable[..., Project], *args, **kwargs) -> MutationResult:
        try:
            project = fn(*args, **kwargs)
        except BoardError as e:
            logger.warning("%s failed: %s", kind, e)
            return MutationResult(success=False, kind=kind, error=e)
        return MutationResult(success=True, kind=kind, project=project)

    def list_projects(self) -> list[Project]:
        return self.db.list_projects()

    def create(
        self,
        name: str,
        description: Optional[str] = None,
        status: str = DEFAULT_STATUS,
        priority: str = DEFAULT_PRIORITY,
    ) -> MutationResult:
        return self._run("create", self.db.create_project, name, description, status, priority)

    def update(self, project_id: str, **changes) -> MutationResult:
        return self._run("update", self.db.update_project, project_id, **changes)

    def delete(self, project_id: str) -> MutationResult:
        return self._run("delete", self.db.delete_project, project_id)

    def move(self, project_id: str, status: str, order: Optional[int] = None) -> MutationResult:
        """Move to an explicit slot; `order=None` appends to `status`."""
        return self._run("move", self.db.move_project, project_id, status, order)

    def drop(self, intent: DropIntent) -> MutationResult:
        """Apply a drag-and-drop intent."""
        if not intent.has_target:
            logger.debug("Discarding drop of %s with no target", intent.project_id)
            return MutationResult(success=True, kind="move", noop=True)
        try:
            project, moved = self.db.drop_project(intent)
        except BoardError as e:
            logger.warning("move failed: %s", e)
            return MutationResult(success=False, kind="move", error=e)
        return MutationResult(success=True, kind="move", project=project, noop=not moved)
