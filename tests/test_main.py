from __future__ import annotations

import json

from teamtasks import main as main_module
from teamtasks.config import Settings
from teamtasks.infra.memory import VectorMemory
from teamtasks.main import main

ADMIN = "2vxsx-fae"


def last_json_line(text: str):
    return json.loads(text.strip().splitlines()[-1])


def make_settings(tmp_path, backend: str = "file") -> Settings:
    return Settings(
        database_url=f"sqlite:///{tmp_path / 'stable.db'}",
        storage_backend=backend,
        memory_path=str(tmp_path / "stable.bin"),
        bucket_size_pages=1,
        admin_identity=ADMIN,
        log_dir=str(tmp_path / "logs"),
    )


def test_commands_share_persistent_state(tmp_path, capsys) -> None:
    settings = make_settings(tmp_path)

    assert main(["--caller", ADMIN, "add-member", "m1"], settings) == 0
    assert json.loads(capsys.readouterr().out) == {"id": 0, "principal_id": "m1"}

    create = [
        "--caller", ADMIN, "create-task",
        "--title", "Write spec", "--description", "Draft design doc",
        "--assignee", "m1", "--deadline", "1",
    ]
    assert main(create, settings) == 0
    created = json.loads(capsys.readouterr().out)
    assert created["id"] == 0
    assert created["is_done"] is False

    assert main(["--caller", "m1", "complete-task", "0"], settings) == 0
    assert json.loads(capsys.readouterr().out)["is_done"] is True

    assert main(["--caller", "m1", "complete-task", "0"], settings) == 1
    assert last_json_line(capsys.readouterr().err)["error"] == "task_already_done"


def test_sql_backend_and_not_found_output(tmp_path, capsys) -> None:
    settings = make_settings(tmp_path, backend="sql")

    assert main(["search-tasks", "anything"], settings) == 1
    error = last_json_line(capsys.readouterr().err)
    assert error == {
        "error": "not_found",
        "kind": "task",
        "message": "no task title or description contains 'anything'",
    }

    assert main(["is-member", "m1"], settings) == 0
    assert json.loads(capsys.readouterr().out) is False


def test_unknown_backend_is_reported(tmp_path, capsys) -> None:
    settings = make_settings(tmp_path, backend="tape")

    assert main(["list-members"], settings) == 2
    assert "STORAGE_BACKEND" in capsys.readouterr().err


def test_list_tasks_by_status(tmp_path, capsys) -> None:
    settings = make_settings(tmp_path)
    main(["--caller", ADMIN, "add-member", "m1"], settings)
    for title in ("First task", "Second task"):
        main(
            [
                "--caller", ADMIN, "create-task",
                "--title", title, "--description", "Draft design doc",
                "--assignee", "m1", "--deadline", "5",
            ],
            settings,
        )
    main(["--caller", "m1", "complete-task", "1"], settings)
    capsys.readouterr()

    assert main(["list-tasks", "--status", "open"], settings) == 0
    assert [task["title"] for task in json.loads(capsys.readouterr().out)] == ["First task"]

    assert main(["list-tasks", "--status", "expired"], settings) == 1
    assert last_json_line(capsys.readouterr().err)["message"] == "no expired tasks stored"


def test_memory_is_closed_after_each_command(tmp_path, monkeypatch, capsys) -> None:
    opened = []

    class TrackedMemory(VectorMemory):
        closed = False

        def close(self) -> None:
            self.closed = True

    def open_tracked(settings):
        opened.append(TrackedMemory())
        return opened[-1]

    monkeypatch.setattr(main_module, "open_memory", open_tracked)
    settings = make_settings(tmp_path, backend="memory")

    assert main(["list-members"], settings) == 0
    assert main(["get-task", "7"], settings) == 1
    assert [memory.closed for memory in opened] == [True, True]
