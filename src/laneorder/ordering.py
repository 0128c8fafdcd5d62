"""
Position arithmetic for densely ordered groups.

A board is a set of groups (statuses), each holding projects at positions
0..n-1. Moving or removing a project is described by a plan: a list of
range shifts over sibling positions plus the moved project's new slot.
The database layer turns each Shift into one batched UPDATE; the client
applies the very same plan to its shadow copy to predict the outcome.
"""

from dataclasses import dataclass, replace
from typing import Iterable, Optional, Sequence

from .errors import ValidationError

STATUSES = ("new", "in_progress", "in_review", "completed")
STATUS_TITLES = {
    "new": "New",
    "in_progress": "In Progress",
    "in_review": "In Review",
    "completed": "Completed",
}
PRIORITIES = ("low", "medium", "high")

DEFAULT_STATUS = "new"
DEFAULT_PRIORITY = "medium"


@dataclass(frozen=True)
class Shift:
    """Add `delta` to every position in [lower, upper] of one group (upper None = open)."""
    status: str
    lower: int
    upper: Optional[int]
    delta: int

    def covers(self, status: str, order: int) -> bool:
        if status != self.status or order < self.lower:
            return False
        return self.upper is None or order <= self.upper


@dataclass(frozen=True)
class MovePlan:
    """Everything needed to carry one project to a new slot."""
    project_id: str
    from_status: str
    old_order: int
    to_status: str
    new_order: int
    shifts: tuple = ()

    @property
    def noop(self) -> bool:
        return self.from_status == self.to_status and self.old_order == self.new_order

    @property
    def touched_statuses(self) -> tuple:
        if self.from_status == self.to_status:
            return (self.from_status,)
        return (self.from_status, self.to_status)


def plan_within_group(project_id: str, status: str, old_order: int, new_order: int) -> MovePlan:
    """Plan a reorder inside one group.

    Moving forward closes the gap behind the project by pulling the
    siblings in (old, new] back one slot; moving backward pushes the
    siblings in [new, old) forward one slot.
    """
    if old_order == new_order:
        shifts = ()
    elif old_order < new_order:
        shifts = (Shift(status, old_order + 1, new_order, -1),)
    else:
        shifts = (Shift(status, new_order, old_order - 1, +1),)
    return MovePlan(project_id, status, old_order, status, new_order, shifts)


def plan_between_groups(
    project_id: str,
    from_status: str,
    old_order: int,
    to_status: str,
    new_order: int,
) -> MovePlan:
    """Plan a move across groups: close the gap in the source, open a slot in the target."""
    shifts = (
        Shift(from_status, old_order + 1, None, -1),
        Shift(to_status, new_order, None, +1),
    )
    return MovePlan(project_id, from_status, old_order, to_status, new_order, shifts)


def plan_move(
    project_id: str,
    from_status: str,
    old_order: int,
    to_status: str,
    new_order: int,
) -> MovePlan:
    if from_status == to_status:
        return plan_within_group(project_id, from_status, old_order, new_order)
    return plan_between_groups(project_id, from_status, old_order, to_status, new_order)


def plan_removal(status: str, order: int) -> Shift:
    """Siblings after a removed project slide back one slot."""
    return Shift(status, order + 1, None, -1)


def shift_projects(projects: Iterable, shift: Shift, exclude_id: Optional[str] = None) -> list:
    out = []
    for p in projects:
        if p.id != exclude_id and shift.covers(p.status, p.order):
            p = replace(p, order=p.order + shift.delta)
        out.append(p)
    return out


def apply_move(projects: Sequence, plan: MovePlan) -> list:
    """Return a new list with `plan` applied. Unknown project ids leave the list unchanged."""
    if plan.noop or not any(p.id == plan.project_id for p in projects):
        return list(projects)
    result = list(projects)
    for shift in plan.shifts:
        result = shift_projects(result, shift, exclude_id=plan.project_id)
    return [
        replace(p, status=plan.to_status, order=plan.new_order) if p.id == plan.project_id else p
        for p in result
    ]


def apply_removal(projects: Sequence, project_id: str) -> list:
    target = next((p for p in projects if p.id == project_id), None)
    if target is None:
        return list(projects)
    remaining = [p for p in projects if p.id != project_id]
    return shift_projects(remaining, plan_removal(target.status, target.order))


def group_members(projects: Iterable, status: str) -> list:
    return sorted((p for p in projects if p.status == status), key=lambda p: p.order)


def append_position(projects: Iterable, status: str) -> int:
    """Position a new member of `status` receives: one past the current last."""
    return sum(1 for p in projects if p.status == status)


def is_dense(orders: Iterable[int]) -> bool:
    ordered = sorted(orders)
    return ordered == list(range(len(ordered)))


def density_violations(projects: Iterable) -> dict:
    """Map each status whose positions are not exactly 0..n-1 to its sorted positions."""
    by_status: dict[str, list[int]] = {}
    for p in projects:
        by_status.setdefault(p.status, []).append(p.order)
    return {
        status: sorted(orders)
        for status, orders in by_status.items()
        if not is_dense(orders)
    }


# --- Drops ---


@dataclass(frozen=True)
class DropIntent:
    """A drag released over another project, over a column, or over nothing."""
    project_id: str
    over_project_id: Optional[str] = None
    over_status: Optional[str] = None

    @property
    def has_target(self) -> bool:
        return self.over_project_id is not None or self.over_status is not None


@dataclass(frozen=True)
class DropTarget:
    status: str
    order: int
    at_end: bool = False


def resolve_drop(projects: Sequence, intent: DropIntent) -> Optional[DropTarget]:
    """
    Map an intent onto a (status, order) target using `projects` as the
    current state. Returns None when the drop changes nothing.

    Column drop: append to that column, or nothing if it is the
    project's own column. Project drop: take the target project's
    current position, in whichever column it sits.
    """
    if not intent.has_target:
        return None
    if intent.over_project_id is not None and intent.over_status is not None:
        raise ValidationError("Drop intent must name a project or a column, not both")

    active = next((p for p in projects if p.id == intent.project_id), None)
    if active is None:
        raise ValidationError(f"Project not found: {intent.project_id}")

    if intent.over_status is not None:
        if intent.over_status not in STATUSES:
            raise ValidationError(f"Invalid status value: {intent.over_status}")
        if active.status == intent.over_status:
            return None
        return DropTarget(intent.over_status, append_position(projects, intent.over_status), at_end=True)

    if intent.over_project_id == intent.project_id:
        return None
    target = next((p for p in projects if p.id == intent.over_project_id), None)
    if target is None:
        raise ValidationError(f"Drop target not found: {intent.over_project_id}")
    return DropTarget(target.status, target.order)
