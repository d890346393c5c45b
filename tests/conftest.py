"""Shared test fixtures for ideabox."""

from __future__ import annotations

import sqlite3
from datetime import datetime, timedelta
from pathlib import Path

import pytest

from ideabox.config import Config
from ideabox.models import Idea
from ideabox.storage.db import get_connection
from ideabox.storage.repository import Repository


class FakeClock:
    """Manually advanced clock for scheduler tests."""

    def __init__(self, start: datetime | None = None) -> None:
        self.current = start or datetime(2024, 6, 1, 9, 0, 0)

    def now(self) -> datetime:
        return self.current

    def advance(self, seconds: float) -> None:
        self.current += timedelta(seconds=seconds)


@pytest.fixture
def db_path(tmp_path: Path) -> Path:
    return tmp_path / "test.db"


@pytest.fixture
def db_conn(db_path: Path) -> sqlite3.Connection:
    conn = get_connection(db_path)
    yield conn
    conn.close()


@pytest.fixture
def repo(db_conn: sqlite3.Connection) -> Repository:
    return Repository(db_conn)


@pytest.fixture
def config(db_path: Path) -> Config:
    return Config(db_path=db_path)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def work_idea(repo: Repository) -> Idea:
    return repo.create_idea("这是一个关于工作的重要想法", importance=3)


@pytest.fixture
def tagged_ideas(repo: Repository) -> list[Idea]:
    """Existing ideas carrying the tags the work idea will be matched on."""
    return [
        repo.create_idea("周报要写", tags=["工作"]),
        repo.create_idea("截止日期", tags=["重要"]),
        repo.create_idea("周末去爬山", tags=["生活"]),
    ]


def drain_queue(repo: Repository) -> None:
    """Mark every queued task completed so tests start from a clean queue."""
    for task in repo.find_pending_tasks(limit=1000):
        repo.claim_task(task.id)
        repo.finish_task(task.id, "completed", {"success": True})
