"""
laneorder MCP Server - Kanban project board for AI agents.

Provides tools for listing, creating, editing, reordering and deleting
projects stored in .laneorder/board.db. Every column stays densely ordered:
positions inside a column are always 0..n-1.

Usage:
    laneorder-mcp                            # Use default .laneorder/board.db
    laneorder-mcp --db /path/to/board.db     # Specify database path

Configuration in an MCP client:
    {
      "mcpServers": {
        "laneorder": {
          "command": "laneorder-mcp",
          "args": ["--db", ".laneorder/board.db"]
        }
      }
    }
"""

import argparse
import logging
import os
from typing import Optional

from mcp.server.fastmcp import FastMCP

from .config import configure_logging, find_db_path
from .coordinator import MutationCoordinator
from .db import ProjectDatabase
from .errors import BoardError
from .ordering import STATUSES, DropIntent

logger = logging.getLogger(__name__)

# Initialize MCP server
mcp = FastMCP(
    "laneorder",
    instructions="""
laneorder is a Kanban board of projects with four columns:
new, in_progress, in_review, completed.

Each column keeps its projects at positions 0..n-1. Use:
- list_projects / get_project to read the board
- create_project to append a project to a column
- drop_project to apply a drag-and-drop (onto a project or a column)
- move_project to place a project at an explicit position
- update_project to edit name, description, priority or column
- delete_project to remove a project (its column closes the gap)
- check_board / repair_board to verify or restore dense positions
""",
)

# Coordinator instance (initialized at runtime)
_coordinator: Optional[MutationCoordinator] = None


def get_coordinator() -> MutationCoordinator:
    """Get or initialize the coordinator and its database."""
    global _coordinator
    if _coordinator is None:
        _coordinator = MutationCoordinator(ProjectDatabase(find_db_path()))
    return _coordinator


def _error(e: BoardError) -> dict:
    return {
        "success": False,
        "error": str(e),
        "error_type": type(e).__name__,
        "retryable": e.retryable,
    }


# =============================================================================
# Read Tools
# =============================================================================


@mcp.tool()
def get_board_status() -> dict:
    """
    Get project counts per column and overall completion.

    Returns:
        dict with fields:
        - total_projects (int)
        - new_projects, in_progress_projects, in_review_projects, completed_projects (int)
        - completion_percent (float): completed / total, 0-100
        - dense (bool): True when every column is ordered 0..n-1
    """
    try:
        return get_coordinator().db.get_board_status().to_dict()
    except BoardError as e:
        return _error(e)


@mcp.tool()
def list_projects(status: Optional[str] = None) -> list[dict]:
    """
    List projects column by column, in board order.

    Args:
        status: Only this column - one of: new, in_progress, in_review, completed

    Returns:
        list of project dicts with id, name, description, status, priority,
        order, created_at, updated_at
    """
    try:
        projects = get_coordinator().db.list_projects(status=status)
    except BoardError as e:
        return [_error(e)]
    return [p.to_dict() for p in projects]


@mcp.tool()
def get_project(project_id: str) -> dict:
    """
    Get full details for one project.

    Args:
        project_id: The project identifier (e.g., "proj-1a2b3c4d")
    """
    try:
        project = get_coordinator().db.get_project(project_id)
    except BoardError as e:
        return _error(e)
    if project:
        return project.to_dict()
    return {"error": f"Project {project_id} not found"}


@mcp.tool()
def check_board() -> dict:
    """
    Verify that every column is densely ordered.

    Returns:
        {"dense": true} or {"dense": false, "violations": {status: [orders...]}}
    """
    try:
        violations = get_coordinator().db.check_density()
    except BoardError as e:
        return _error(e)
    if violations:
        return {"dense": False, "violations": violations}
    return {"dense": True}


# =============================================================================
# Write Tools
# =============================================================================


@mcp.tool()
def create_project(
    name: str,
    description: Optional[str] = None,
    status: str = "new",
    priority: str = "medium",
) -> dict:
    """
    Create a project at the end of a column.

    Args:
        name: Project name (3-100 characters)
        description: Optional description (up to 500 characters)
        status: Column - one of: new, in_progress, in_review, completed
        priority: One of: low, medium, high

    Returns:
        {"success": true, "project": {...}} or {"success": false, "error": "..."}
    """
    return get_coordinator().create(name, description, status, priority).to_dict()


@mcp.tool()
def update_project(
    project_id: str,
    name: Optional[str] = None,
    description: Optional[str] = None,
    priority: Optional[str] = None,
    status: Optional[str] = None,
) -> dict:
    """
    Update project details. Only provided fields are changed.

    Changing `status` appends the project to the end of the new column.

    Returns:
        {"success": true, "project": {...}} or {"success": false, "error": "..."}
    """
    return get_coordinator().update(
        project_id,
        name=name,
        description=description,
        priority=priority,
        status=status,
    ).to_dict()


@mcp.tool()
def drop_project(
    project_id: str,
    over_project_id: Optional[str] = None,
    over_status: Optional[str] = None,
) -> dict:
    """
    Apply a drag-and-drop.

    Args:
        project_id: The project being dragged
        over_project_id: Project it was released over; the dragged project
            takes that project's position (in that project's column)
        over_status: Column it was released over; the dragged project is
            appended to that column

    Give at most one target. With no target the drop is discarded.

    Returns:
        {"success": true, "project": {...}, "noop": bool} or
        {"success": false, "error": "...", "retryable": bool}

    Examples:
        drop_project("proj-1a2b3c4d", over_project_id="proj-9f8e7d6c")
        drop_project("proj-1a2b3c4d", over_status="in_review")
    """
    intent = DropIntent(project_id, over_project_id=over_project_id, over_status=over_status)
    return get_coordinator().drop(intent).to_dict()


@mcp.tool()
def move_project(project_id: str, status: str, order: Optional[int] = None) -> dict:
    """
    Place a project at an explicit position.

    Args:
        project_id: The project identifier
        status: Target column
        order: Zero-based position in the target column; omit to append

    Returns:
        {"success": true, "project": {...}} or {"success": false, "error": "..."}
    """
    return get_coordinator().move(project_id, status, order).to_dict()


@mcp.tool()
def delete_project(project_id: str) -> dict:
    """
    Permanently delete a project. Later projects in its column move up one slot.

    Returns:
        {"success": true, "project": {...}} or {"success": false, "error": "..."}
    """
    return get_coordinator().delete(project_id).to_dict()


@mcp.tool()
def repair_board(status: Optional[str] = None) -> dict:
    """
    Renumber columns to 0..n-1, keeping their current relative order.

    Use after check_board reports violations (e.g. rows edited by hand).

    Args:
        status: Only repair this column (default: all columns)
    """
    if status is not None and status not in STATUSES:
        return {"success": False, "error": f"Invalid status value: {status}"}
    try:
        changed = get_coordinator().db.compact(status)
    except BoardError as e:
        return _error(e)
    return {"success": True, "changed": changed}


# =============================================================================
# Entry Point
# =============================================================================


def main():
    """Entry point for the laneorder-mcp command."""
    parser = argparse.ArgumentParser(
        description="laneorder MCP server - Kanban project board for AI agents",
    )
    parser.add_argument(
        "--db",
        type=str,
        help="Path to board.db (default: find .laneorder/board.db by walking up)",
    )
    parser.add_argument(
        "--transport",
        type=str,
        default="stdio",
        choices=["stdio", "streamable-http"],
        help="MCP transport (default: stdio)",
    )
    parser.add_argument("--log-level", type=str, help="Logging level (default: WARNING)")

    args = parser.parse_args()
    configure_logging(args.log_level)

    # Set database path in environment for get_coordinator()
    if args.db:
        os.environ["LANEORDER_DB_PATH"] = args.db

    logger.info("Serving board at %s", find_db_path())
    mcp.run(transport=args.transport)


if __name__ == "__main__":
    main()
