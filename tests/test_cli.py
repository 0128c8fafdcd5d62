import json

import pytest

from laneorder.cli import EXIT_CONFIG, EXIT_CONFLICT, EXIT_DATABASE, EXIT_SUCCESS, EXIT_USAGE, main
from laneorder.db import ProjectDatabase
from laneorder.errors import StorageError, TransportError
from laneorder.transport import LocalTransport


def run(*argv):
    try:
        main(list(argv))
    except SystemExit as e:
        return e.code or 0
    return 0


@pytest.fixture
def project_dir(tmp_path, monkeypatch):
    monkeypatch.delenv("LANEORDER_DB_PATH", raising=False)
    monkeypatch.delenv("LANEORDER_DIR", raising=False)
    assert run("--dir", str(tmp_path), "init") == EXIT_SUCCESS
    return tmp_path


def board(project_dir):
    return ProjectDatabase(project_dir / ".laneorder" / "board.db")


def test_init_creates_board(project_dir):
    assert (project_dir / ".laneorder" / "board.db").exists()


def test_missing_board(tmp_path, capsys):
    assert run("--dir", str(tmp_path / "nowhere"), "status") == EXIT_CONFIG
    assert "Board not found" in capsys.readouterr().err


def test_add_and_list(project_dir, capsys):
    assert run("--dir", str(project_dir), "add", "Website redesign", "--priority", "high") == EXIT_SUCCESS
    assert "Project created successfully!" in capsys.readouterr().out

    assert run("--dir", str(project_dir), "--json", "list") == EXIT_SUCCESS
    listed = json.loads(capsys.readouterr().out)
    assert [(p["name"], p["order"], p["priority"]) for p in listed] == [("Website redesign", 0, "high")]


def test_move_onto_project(project_dir, capsys):
    db = board(project_dir)
    p1 = db.create_project("P-one")
    db.create_project("P-two")
    p3 = db.create_project("P-three")

    assert run("--dir", str(project_dir), "move", p1.id, "--onto", p3.id) == EXIT_SUCCESS
    assert [p.name for p in db.list_projects(status="new")] == ["P-two", "P-three", "P-one"]


def test_move_requires_one_target(project_dir, capsys):
    assert run("--dir", str(project_dir), "move", "proj-x") == EXIT_USAGE


def test_failed_mutation_exit_code(project_dir, capsys):
    code = run("--dir", str(project_dir), "move", "proj-missing", "--to", "completed")
    assert code == EXIT_USAGE
    assert "Project not found" in capsys.readouterr().err


def test_edit_delete_and_status(project_dir, capsys):
    db = board(project_dir)
    p1 = db.create_project("P-one")
    db.create_project("P-two")

    assert run("--dir", str(project_dir), "edit", p1.id, "--status", "completed") == EXIT_SUCCESS
    assert db.get_project(p1.id).status == "completed"

    assert run("--dir", str(project_dir), "delete", p1.id) == EXIT_SUCCESS
    capsys.readouterr()

    assert run("--dir", str(project_dir), "--json", "status") == EXIT_SUCCESS
    status = json.loads(capsys.readouterr().out)
    assert status["total_projects"] == 1
    assert status["dense"] is True


def test_check_and_repair(project_dir, capsys):
    import sqlite3

    db = board(project_dir)
    db.create_project("P-one")
    p2 = db.create_project("P-two")
    conn = sqlite3.connect(db.db_path)
    conn.execute("UPDATE projects SET sort_order = 4 WHERE id = ?", (p2.id,))
    conn.commit()
    conn.close()

    assert run("--dir", str(project_dir), "check") != EXIT_SUCCESS
    assert run("--dir", str(project_dir), "repair") == EXIT_SUCCESS
    assert run("--dir", str(project_dir), "check") == EXIT_SUCCESS


def test_check_reports_storage_errors(project_dir, capsys, monkeypatch):
    def broken(self):
        raise StorageError("Database error: disk I/O error")

    monkeypatch.setattr(ProjectDatabase, "check_density", broken)
    assert run("--dir", str(project_dir), "check") == EXIT_DATABASE
    assert "disk I/O error" in capsys.readouterr().err


def test_board_load_failure_exits_cleanly(project_dir, capsys, monkeypatch):
    async def unreachable(self):
        raise TransportError("connection reset")

    monkeypatch.setattr(LocalTransport, "list_projects", unreachable)
    assert run("--dir", str(project_dir), "add", "Website redesign") == EXIT_CONFLICT
    err = capsys.readouterr().err
    assert "connection reset" in err
    assert "Could not load the board" in err
    assert board(project_dir).list_projects() == []


def test_version(capsys):
    assert run("--version") == EXIT_SUCCESS
    assert "laneorder" in capsys.readouterr().out
