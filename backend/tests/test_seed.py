# tests/test_seed.py - Demo data generation and loading
import io
import json
from datetime import datetime, timezone

import pytest

from auth import AuthService
from entities import build_services
from logging_system import build_logger
from seed import DEMO_PASSWORD, DemoDataGenerator, apply_demo_data, main
from storage import MemoryStorage
from tests.conftest import make_settings

NOW = datetime(2030, 6, 1, 9, 0, tzinfo=timezone.utc)


def test_generation_is_deterministic():
    first = DemoDataGenerator(seed=7, now=NOW).generate_all(users=2, tasks=5)
    second = DemoDataGenerator(seed=7, now=NOW).generate_all(users=2, tasks=5)
    assert first == second
    assert DemoDataGenerator(seed=8, now=NOW).generate_all(users=2, tasks=5) != first


def test_counts_and_shapes():
    data = DemoDataGenerator(seed=1, now=NOW).generate_all(users=3, tasks=4)
    assert data["counts"] == {"users": 3, "projects": 9, "tasks": 12, "meetings": 6, "notes": 6, "tags": 12}
    emails = [b["user"]["email"] for b in data["data"]]
    assert len(set(emails)) == 3
    for bundle in data["data"]:
        assert bundle["user"]["password"] == DEMO_PASSWORD
        for meeting in bundle["meetings"]:
            assert meeting["end_time"] > meeting["start_time"]
        for task in bundle["tasks"]:
            assert task["project_index"] is None or 0 <= task["project_index"] < 3
            assert all(0 <= i < 4 for i in task["tag_indexes"])


@pytest.mark.asyncio
async def test_apply_inserts_and_skips_existing(tmp_path):
    settings = make_settings(tmp_path)
    storage = MemoryStorage()
    logger = build_logger(settings, stream=io.StringIO())
    services = build_services(storage, logger)
    auth = AuthService(settings, services, logger)
    data = DemoDataGenerator(seed=3, now=NOW).generate_all(users=2, tasks=6)

    assert await apply_demo_data(data, services, auth) == {"users": 2, "skipped": 0}
    assert storage.count("user") == 2
    assert storage.count("task") == 12
    assert storage.count("project") == 6
    assert storage.count("meeting") == 4
    assert storage.count("task_tag") == sum(len(t["tag_indexes"]) for b in data["data"] for t in b["tasks"])

    meetings = await services.meetings.find()
    assert all(m["duration"] > 0 for m in meetings)

    account = data["data"][0]["user"]
    user = await auth.authenticate_user(account["email"], DEMO_PASSWORD)
    assert user["email"] == account["email"]

    assert await apply_demo_data(data, services, auth) == {"users": 0, "skipped": 2}
    assert storage.count("user") == 2


def test_cli_writes_json(tmp_path, capsys):
    output = tmp_path / "demo.json"
    assert main(["--users", "1", "--tasks", "3", "--output", str(output), "--seed", "5"]) == 0
    data = json.loads(output.read_text())
    assert data["seed"] == 5
    assert data["counts"]["tasks"] == 3
    assert "Demo data written" in capsys.readouterr().out


def test_cli_apply_refuses_memory_backend(monkeypatch, capsys):
    monkeypatch.setenv("STORAGE_BACKEND", "memory")
    assert main(["--users", "1", "--apply"]) == 2
    assert "STORAGE_BACKEND=sql" in capsys.readouterr().err


def test_cli_apply_writes_to_sql_backend(tmp_path, monkeypatch, capsys):
    monkeypatch.setenv("STORAGE_BACKEND", "sql")
    monkeypatch.setenv("DATABASE_URL", f"sqlite+aiosqlite:///{tmp_path / 'seed.db'}")
    monkeypatch.setenv("BCRYPT_ROUNDS", "4")
    monkeypatch.setenv("LOG_LEVEL", "warning")
    assert main(["--users", "1", "--tasks", "2", "--apply"]) == 0
    assert "Users created: 1" in capsys.readouterr().out

    assert main(["--users", "1", "--tasks", "2", "--apply"]) == 0
    assert "Users created: 0 (skipped existing: 1)" in capsys.readouterr().out
