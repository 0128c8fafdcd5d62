import sqlite3

import pytest

from conftest import seed
from laneorder import server


@pytest.fixture(autouse=True)
def board(coordinator, monkeypatch):
    monkeypatch.setattr(server, "_coordinator", coordinator)
    return coordinator


def test_create_and_list(db):
    result = server.create_project("Website", description="Landing page", priority="high")
    assert result["success"] is True
    assert result["project"]["order"] == 0

    second = server.create_project("Mobile app")
    assert second["project"]["order"] == 1

    listed = server.list_projects()
    assert [p["name"] for p in listed] == ["Website", "Mobile app"]
    assert server.list_projects(status="completed") == []


def test_create_rejects_bad_input():
    result = server.create_project("Website", status="archived")
    assert result["success"] is False
    assert "Invalid status" in result["error"]
    assert result["error_type"] == "ValidationError"


def test_drop_onto_project_and_column(db):
    p1, p2, p3 = seed(db, "new", ["P-one", "P-two", "P-three"])

    result = server.drop_project(p1.id, over_project_id=p3.id)
    assert result["success"] is True
    assert result["project"]["order"] == 2

    result = server.drop_project(p2.id, over_status="completed")
    assert (result["project"]["status"], result["project"]["order"]) == ("completed", 0)

    result = server.drop_project(p3.id)
    assert result == {"success": True, "noop": True}

    assert [(p["name"], p["order"]) for p in server.list_projects(status="new")] == [
        ("P-three", 0),
        ("P-one", 1),
    ]


def test_move_update_delete(db):
    p1, p2 = seed(db, "new", ["P-one", "P-two"])
    assert server.move_project(p2.id, "new", 0)["project"]["order"] == 0

    updated = server.update_project(p1.id, status="in_review", name="Reviewed")
    assert updated["project"]["status"] == "in_review"

    assert server.delete_project(p2.id)["success"] is True
    assert server.get_project(p2.id) == {"error": f"Project {p2.id} not found"}
    assert server.get_board_status()["total_projects"] == 1


def test_move_out_of_range():
    result = server.create_project("P-one")
    moved = server.move_project(result["project"]["id"], "new", 5)
    assert moved["success"] is False
    assert moved["retryable"] is False


def test_check_and_repair(db):
    p1, p2 = seed(db, "new", ["P-one", "P-two"])
    conn = sqlite3.connect(db.db_path)
    conn.execute("UPDATE projects SET sort_order = 9 WHERE id = ?", (p2.id,))
    conn.commit()
    conn.close()

    assert server.check_board() == {"dense": False, "violations": {"new": [0, 9]}}
    assert server.repair_board() == {"success": True, "changed": 1}
    assert server.check_board() == {"dense": True}
    assert server.repair_board(status="archived")["success"] is False
