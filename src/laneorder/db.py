"""
Database access layer for the project board.

Projects live in one SQLite table, partitioned into groups by `status`
and ordered inside each group by a dense zero-based `sort_order`. Every
write runs in a single `BEGIN IMMEDIATE` transaction: sibling
renumbering is issued as batched conditional UPDATEs, the touched groups
are verified before COMMIT, and any failure rolls the whole write back.
"""

import hashlib
import logging
import sqlite3
from contextlib import contextmanager
from dataclasses import dataclass, asdict
from datetime import datetime
from pathlib import Path
from typing import Iterator, Optional, Union

from .config import busy_timeout
from .errors import (
    BoardError,
    ConcurrencyError,
    InvariantError,
    StorageError,
    ValidationError,
)
from .ordering import (
    DEFAULT_PRIORITY,
    DEFAULT_STATUS,
    PRIORITIES,
    STATUSES,
    DropIntent,
    MovePlan,
    Shift,
    plan_move,
    plan_removal,
    resolve_drop,
)

logger = logging.getLogger(__name__)

NAME_MIN_LENGTH = 3
NAME_MAX_LENGTH = 100
DESCRIPTION_MAX_LENGTH = 500

_SCHEMA = """
    CREATE TABLE IF NOT EXISTS projects (
        id TEXT PRIMARY KEY,
        name TEXT NOT NULL,
        description TEXT,
        status TEXT NOT NULL DEFAULT 'new',
        priority TEXT NOT NULL DEFAULT 'medium',
        sort_order INTEGER NOT NULL DEFAULT 0,
        created_at TEXT DEFAULT CURRENT_TIMESTAMP,
        updated_at TEXT
    )
"""

_STATUS_RANK = "CASE status " + " ".join(
    f"WHEN '{s}' THEN {i}" for i, s in enumerate(STATUSES)
) + f" ELSE {len(STATUSES)} END"


def generate_project_id(name: str, timestamp: str) -> str:
    """
    Generate a content-based project ID.

    Format: proj-{hash[:8]} where hash is derived from name + timestamp.
    """
    content = f"{name}|{timestamp}"
    hash_hex = hashlib.sha256(content.encode()).hexdigest()
    return f"proj-{hash_hex[:8]}"


@dataclass
class Project:
    """Project record from the database."""
    id: str
    name: str = ""
    description: Optional[str] = None
    status: str = DEFAULT_STATUS  # new, in_progress, in_review, completed
    priority: str = DEFAULT_PRIORITY  # low, medium, high
    order: int = 0
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    def to_dict(self) -> dict:
        """Convert to dictionary, excluding None values."""
        return {k: v for k, v in asdict(self).items() if v is not None}


@dataclass
class BoardStatus:
    """Aggregated board statistics."""
    total_projects: int = 0
    new_projects: int = 0
    in_progress_projects: int = 0
    in_review_projects: int = 0
    completed_projects: int = 0
    completion_percent: float = 0.0
    dense: bool = True

    def to_dict(self) -> dict:
        return asdict(self)


# --- Validation ---


def validate_status(status: str) -> str:
    if status not in STATUSES:
        raise ValidationError(f"Invalid status value: {status}")
    return status


def validate_priority(priority: str) -> str:
    if priority not in PRIORITIES:
        raise ValidationError(f"Invalid priority value: {priority}")
    return priority


def clean_name(name: Optional[str]) -> str:
    name = (name or "").strip()
    if not name:
        raise ValidationError("Project name is required")
    if len(name) < NAME_MIN_LENGTH:
        raise ValidationError(f"Project name must be at least {NAME_MIN_LENGTH} characters")
    if len(name) > NAME_MAX_LENGTH:
        raise ValidationError(f"Project name must be less than {NAME_MAX_LENGTH} characters")
    return name


def normalize_description(description: Optional[str]) -> Optional[str]:
    """Stored form of a description: stripped, None when not given."""
    return None if description is None else description.strip()


def clean_description(description: Optional[str]) -> Optional[str]:
    description = normalize_description(description)
    if description is None:
        return None
    if len(description) > DESCRIPTION_MAX_LENGTH:
        raise ValidationError(
            f"Description must be less than {DESCRIPTION_MAX_LENGTH} characters"
        )
    return description


def _translate(error: sqlite3.Error) -> BoardError:
    message = str(error)
    lowered = message.lower()
    if isinstance(error, sqlite3.OperationalError) and ("locked" in lowered or "busy" in lowered):
        return ConcurrencyError(f"Board is busy, retry the operation: {message}")
    return StorageError(f"Database error: {message}")


def _row_to_project(row: sqlite3.Row) -> Project:
    return Project(
        id=row["id"],
        name=row["name"],
        description=row["description"],
        status=row["status"],
        priority=row["priority"],
        order=row["sort_order"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


class ProjectDatabase:
    """Authoritative, densely ordered project store."""

    def __init__(self, db_path: Union[str, Path], timeout: Optional[float] = None):
        self.db_path = Path(db_path)
        self.timeout = busy_timeout() if timeout is None else timeout
        self._ensure_tables()

    def _get_connection(self) -> sqlite3.Connection:
        """Get a database connection with row factory and manual transactions."""
        conn = sqlite3.connect(self.db_path, timeout=self.timeout, isolation_level=None)
        conn.row_factory = sqlite3.Row
        return conn

    def _ensure_tables(self):
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        conn = self._get_connection()
        try:
            conn.execute(_SCHEMA)
            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_projects_status_order
                ON projects(status, sort_order)
            """)
        except sqlite3.Error as e:
            raise _translate(e) from e
        finally:
            conn.close()

    @contextmanager
    def _read(self) -> Iterator[sqlite3.Connection]:
        conn = self._get_connection()
        try:
            yield conn
        except sqlite3.Error as e:
            raise _translate(e) from e
        finally:
            conn.close()

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        """One all-or-nothing write. IMMEDIATE takes the write lock up front."""
        conn = self._get_connection()
        try:
            conn.execute("BEGIN IMMEDIATE")
            yield conn
            conn.commit()
        except BoardError:
            conn.rollback()
            raise
        except sqlite3.Error as e:
            conn.rollback()
            raise _translate(e) from e
        finally:
            conn.close()

    # --- Row helpers ---

    def _fetch(self, conn: sqlite3.Connection, project_id: str) -> Project:
        row = conn.execute("SELECT * FROM projects WHERE id = ?", (project_id,)).fetchone()
        if not row:
            raise ValidationError(f"Project not found: {project_id}")
        return _row_to_project(row)

    def _count(self, conn: sqlite3.Connection, status: str) -> int:
        row = conn.execute(
            "SELECT COUNT(*) AS n FROM projects WHERE status = ?", (status,)
        ).fetchone()
        return row["n"]

    def _apply_shift(self, conn: sqlite3.Connection, shift: Shift, exclude_id: Optional[str]) -> int:
        query = "UPDATE projects SET sort_order = sort_order + ? WHERE status = ? AND sort_order >= ?"
        params: list = [shift.delta, shift.status, shift.lower]
        if shift.upper is not None:
            query += " AND sort_order <= ?"
            params.append(shift.upper)
        if exclude_id is not None:
            query += " AND id != ?"
            params.append(exclude_id)
        return conn.execute(query, params).rowcount

    def _verify(self, conn: sqlite3.Connection, statuses) -> None:
        """Refuse to commit a group whose positions are not exactly 0..n-1."""
        for status in statuses:
            row = conn.execute("""
                SELECT COUNT(*) AS n,
                       COUNT(DISTINCT sort_order) AS distinct_n,
                       MIN(sort_order) AS lo,
                       MAX(sort_order) AS hi
                FROM projects WHERE status = ?
            """, (status,)).fetchone()
            n = row["n"]
            if n and (row["distinct_n"] != n or row["lo"] != 0 or row["hi"] != n - 1):
                raise InvariantError(
                    f"Group '{status}' would not be densely ordered "
                    f"({n} projects, positions {row['lo']}..{row['hi']}, {row['distinct_n']} distinct)"
                )

    def _apply_plan(self, conn: sqlite3.Connection, plan: MovePlan) -> Project:
        now = datetime.now().isoformat()
        shifted = 0
        for shift in plan.shifts:
            shifted += self._apply_shift(conn, shift, plan.project_id)
        conn.execute("""
            UPDATE projects
            SET status = ?, sort_order = ?, updated_at = ?
            WHERE id = ?
        """, (plan.to_status, plan.new_order, now, plan.project_id))
        self._verify(conn, plan.touched_statuses)
        logger.debug(
            "Moved %s from %s/%d to %s/%d (%d siblings renumbered)",
            plan.project_id, plan.from_status, plan.old_order,
            plan.to_status, plan.new_order, shifted,
        )
        return self._fetch(conn, plan.project_id)

    def _move(self, conn: sqlite3.Connection, project: Project, to_status: str, new_order: int) -> Project:
        if project.status == to_status:
            limit = self._count(conn, to_status) - 1
        else:
            limit = self._count(conn, to_status)
        if new_order < 0 or new_order > limit:
            raise ValidationError(
                f"Position {new_order} is outside '{to_status}' (0..{limit})"
            )
        plan = plan_move(project.id, project.status, project.order, to_status, new_order)
        if plan.noop:
            return project
        return self._apply_plan(conn, plan)

    def _check_position(self, project: Project, status: str, order: int) -> None:
        if project.status != status or project.order != order:
            raise ConcurrencyError(
                f"Project {project.id} is at {project.status}/{project.order}, "
                f"not {status}/{order}; refresh and retry"
            )

    # --- Reads ---

    def get_project(self, project_id: str) -> Optional[Project]:
        """Get a single project by ID."""
        with self._read() as conn:
            row = conn.execute("SELECT * FROM projects WHERE id = ?", (project_id,)).fetchone()
            return _row_to_project(row) if row else None

    def list_projects(self, status: Optional[str] = None) -> list[Project]:
        """All projects, by board column and then by position."""
        query = "SELECT * FROM projects"
        params: list = []
        if status:
            validate_status(status)
            query += " WHERE status = ?"
            params.append(status)
        query += f" ORDER BY {_STATUS_RANK}, sort_order, id"
        with self._read() as conn:
            return [_row_to_project(row) for row in conn.execute(query, params).fetchall()]

    def count(self, status: str) -> int:
        validate_status(status)
        with self._read() as conn:
            return self._count(conn, status)

    def get_board_status(self) -> BoardStatus:
        """Get aggregated board statistics."""
        status = BoardStatus()
        with self._read() as conn:
            rows = conn.execute("""
                SELECT status, COUNT(*) AS count
                FROM projects
                GROUP BY status
            """).fetchall()
        for row in rows:
            if row["status"] in STATUSES:
                setattr(status, f"{row['status']}_projects", row["count"])
            status.total_projects += row["count"]
        if status.total_projects > 0:
            status.completion_percent = round(
                100 * status.completed_projects / status.total_projects, 1
            )
        status.dense = not self.check_density()
        return status

    def check_density(self) -> dict:
        """Map each group whose positions are not 0..n-1 to its sorted positions."""
        with self._read() as conn:
            rows = conn.execute(
                "SELECT status, sort_order FROM projects ORDER BY status, sort_order"
            ).fetchall()
        groups: dict[str, list[int]] = {}
        for row in rows:
            groups.setdefault(row["status"], []).append(row["sort_order"])
        return {
            status: orders
            for status, orders in groups.items()
            if orders != list(range(len(orders)))
        }

    # --- Writes ---

    def create_project(
        self,
        name: str,
        description: Optional[str] = None,
        status: str = DEFAULT_STATUS,
        priority: str = DEFAULT_PRIORITY,
    ) -> Project:
        """Append a new project to the end of its group."""
        name = clean_name(name)
        description = clean_description(description)
        validate_status(status)
        validate_priority(priority)

        with self._transaction() as conn:
            now = datetime.now().isoformat()
            project_id = generate_project_id(name, now)

            # Handle collision by appending counter if ID exists
            base_id = project_id
            counter = 1
            while conn.execute("SELECT 1 FROM projects WHERE id = ?", (project_id,)).fetchone():
                project_id = f"{base_id}-{counter}"
                counter += 1

            order = self._count(conn, status)
            conn.execute("""
                INSERT INTO projects
                (id, name, description, status, priority, sort_order, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """, (project_id, name, description, status, priority, order, now, now))
            self._verify(conn, (status,))
            logger.info("Created project %s in %s at position %d", project_id, status, order)
            return self._fetch(conn, project_id)

    def move_within_group(self, project_id: str, status: str, old_order: int, new_order: int) -> Project:
        """
        Reorder a project inside its group.

        `old_order` must be the project's current position; a stale value
        raises ConcurrencyError instead of renumbering the wrong range.
        """
        validate_status(status)
        with self._transaction() as conn:
            project = self._fetch(conn, project_id)
            self._check_position(project, status, old_order)
            return self._move(conn, project, status, new_order)

    def move_between_groups(
        self,
        project_id: str,
        from_status: str,
        old_order: int,
        to_status: str,
        new_order: int,
    ) -> Project:
        """Move a project into another group at `new_order` (0..count(to_status))."""
        validate_status(from_status)
        validate_status(to_status)
        with self._transaction() as conn:
            project = self._fetch(conn, project_id)
            self._check_position(project, from_status, old_order)
            return self._move(conn, project, to_status, new_order)

    def move_to_end(self, project_id: str, status: str) -> Project:
        """Append a project to another group. Same group is a no-op."""
        validate_status(status)
        with self._transaction() as conn:
            project = self._fetch(conn, project_id)
            if project.status == status:
                return project
            return self._move(conn, project, status, self._count(conn, status))

    def move_project(self, project_id: str, status: str, new_order: Optional[int] = None) -> Project:
        """
        Move a project to `status` at `new_order`, reading its current
        position inside the transaction. `new_order=None` appends.
        """
        if new_order is None:
            return self.move_to_end(project_id, status)
        validate_status(status)
        with self._transaction() as conn:
            project = self._fetch(conn, project_id)
            return self._move(conn, project, status, new_order)

    def drop_project(self, intent: DropIntent) -> tuple[Project, bool]:
        """
        Resolve a drag-and-drop against the rows read inside the write
        transaction and apply it. Returns the project and whether it moved.
        """
        with self._transaction() as conn:
            project = self._fetch(conn, intent.project_id)
            rows = conn.execute("SELECT * FROM projects").fetchall()
            target = resolve_drop([_row_to_project(row) for row in rows], intent)
            if target is None:
                return project, False
            moved = self._move(conn, project, target.status, target.order)
            return moved, moved != project

    def update_project(
        self,
        project_id: str,
        name: Optional[str] = None,
        description: Optional[str] = None,
        priority: Optional[str] = None,
        status: Optional[str] = None,
    ) -> Project:
        """Update project details. A status change appends to the new group."""
        updates = []
        params: list = []

        if name is not None:
            updates.append("name = ?")
            params.append(clean_name(name))
        if description is not None:
            updates.append("description = ?")
            params.append(clean_description(description))
        if priority is not None:
            updates.append("priority = ?")
            params.append(validate_priority(priority))
        if status is not None:
            validate_status(status)

        with self._transaction() as conn:
            project = self._fetch(conn, project_id)
            if status is not None and status != project.status:
                project = self._move(conn, project, status, self._count(conn, status))
            if updates:
                updates.append("updated_at = ?")
                params.append(datetime.now().isoformat())
                params.append(project_id)
                conn.execute(f"UPDATE projects SET {', '.join(updates)} WHERE id = ?", params)
                project = self._fetch(conn, project_id)
            return project

    def delete_project(self, project_id: str) -> Project:
        """Delete a project and close the gap it leaves in its group."""
        with self._transaction() as conn:
            project = self._fetch(conn, project_id)
            conn.execute("DELETE FROM projects WHERE id = ?", (project_id,))
            shifted = self._apply_shift(conn, plan_removal(project.status, project.order), None)
            self._verify(conn, (project.status,))
            logger.info(
                "Deleted project %s from %s/%d (%d siblings renumbered)",
                project_id, project.status, project.order, shifted,
            )
            return project

    def compact(self, status: Optional[str] = None) -> int:
        """
        Renumber groups to 0..n-1 keeping their current relative order
        (ties broken by creation time). Returns the number of rows changed.
        """
        statuses = (validate_status(status),) if status else STATUSES
        changed = 0
        with self._transaction() as conn:
            for group in statuses:
                rows = conn.execute("""
                    SELECT id, sort_order FROM projects
                    WHERE status = ?
                    ORDER BY sort_order, created_at, id
                """, (group,)).fetchall()
                renumbered = [
                    (position, row["id"])
                    for position, row in enumerate(rows)
                    if row["sort_order"] != position
                ]
                if renumbered:
                    conn.executemany(
                        "UPDATE projects SET sort_order = ? WHERE id = ?", renumbered
                    )
                    changed += len(renumbered)
                self._verify(conn, (group,))
        if changed:
            logger.warning("Compacted %d project positions", changed)
        return changed
