from laneorder.db import Project
from laneorder.ordering import (
    Shift,
    append_position,
    apply_move,
    apply_removal,
    density_violations,
    group_members,
    is_dense,
    plan_between_groups,
    plan_move,
    plan_within_group,
)


def board(**groups):
    projects = []
    for status, names in groups.items():
        for order, name in enumerate(names):
            projects.append(Project(id=name, name=name, status=status, order=order))
    return projects


def names(projects, status):
    return [p.id for p in group_members(projects, status)]


class TestPlans:
    def test_forward_move_pulls_range_back(self):
        plan = plan_within_group("a", "new", 0, 2)
        assert plan.shifts == (Shift("new", 1, 2, -1),)
        assert not plan.noop

    def test_backward_move_pushes_range_forward(self):
        plan = plan_within_group("c", "new", 2, 0)
        assert plan.shifts == (Shift("new", 0, 1, +1),)

    def test_same_position_is_noop(self):
        plan = plan_within_group("a", "new", 1, 1)
        assert plan.noop
        assert plan.shifts == ()

    def test_between_groups_closes_and_opens(self):
        plan = plan_between_groups("a", "new", 0, "in_progress", 1)
        assert plan.shifts == (
            Shift("new", 1, None, -1),
            Shift("in_progress", 1, None, +1),
        )
        assert plan.touched_statuses == ("new", "in_progress")

    def test_plan_move_dispatches_on_group(self):
        assert plan_move("a", "new", 0, "new", 2).shifts == plan_within_group("a", "new", 0, 2).shifts
        assert len(plan_move("a", "new", 0, "completed", 0).shifts) == 2

    def test_shift_covers_open_range(self):
        shift = Shift("new", 2, None, -1)
        assert shift.covers("new", 2)
        assert shift.covers("new", 40)
        assert not shift.covers("new", 1)
        assert not shift.covers("completed", 3)


class TestApply:
    def test_move_forward_within_group(self):
        projects = board(new=["p1", "p2", "p3"])
        moved = apply_move(projects, plan_within_group("p1", "new", 0, 2))
        assert names(moved, "new") == ["p2", "p3", "p1"]
        assert not density_violations(moved)

    def test_move_backward_within_group(self):
        projects = board(new=["p1", "p2", "p3", "p4"])
        moved = apply_move(projects, plan_within_group("p4", "new", 3, 1))
        assert names(moved, "new") == ["p1", "p4", "p2", "p3"]

    def test_move_between_groups(self):
        projects = board(new=["p1", "p2"], in_progress=["p3"])
        moved = apply_move(projects, plan_between_groups("p1", "new", 0, "in_progress", 1))
        assert names(moved, "new") == ["p2"]
        assert names(moved, "in_progress") == ["p3", "p1"]
        assert not density_violations(moved)

    def test_apply_does_not_mutate_input(self):
        projects = board(new=["p1", "p2"])
        apply_move(projects, plan_within_group("p1", "new", 0, 1))
        assert [(p.id, p.order) for p in projects] == [("p1", 0), ("p2", 1)]

    def test_unknown_project_leaves_list_unchanged(self):
        projects = board(new=["p1", "p2"])
        assert apply_move(projects, plan_within_group("ghost", "new", 0, 1)) == projects

    def test_removal_compacts_group(self):
        projects = board(new=["p1", "p2", "p3"], completed=["p4"])
        remaining = apply_removal(projects, "p2")
        assert [(p.id, p.order) for p in group_members(remaining, "new")] == [("p1", 0), ("p3", 1)]
        assert names(remaining, "completed") == ["p4"]

    def test_append_position_is_group_size(self):
        projects = board(new=["p1", "p2", "p3"])
        assert append_position(projects, "new") == 3
        assert append_position(projects, "in_review") == 0


class TestDensity:
    def test_is_dense(self):
        assert is_dense([])
        assert is_dense([2, 0, 1])
        assert not is_dense([0, 2])
        assert not is_dense([0, 0, 1])
        assert not is_dense([1, 2])

    def test_violations_report_only_broken_groups(self):
        projects = board(new=["p1", "p2"], completed=["p3"])
        projects[1].order = 5
        assert density_violations(projects) == {"new": [0, 5]}
