"""Tests for ideabox.storage (db + repository)."""

from __future__ import annotations

import json
import sqlite3
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from conftest import drain_queue
from ideabox.errors import IdeaNotFoundError, ReminderNotFoundError, ValidationError
from ideabox.models import (
    STATUS_COMPLETED,
    STATUS_FAILED,
    STATUS_PENDING,
    STATUS_PROCESSING,
    TASK_ANALYZE_IDEA,
    Idea,
)
from ideabox.storage.db import get_connection
from ideabox.storage.repository import Repository


class TestDatabase:
    def test_creates_tables(self, db_conn: sqlite3.Connection):
        tables = db_conn.execute(
            "SELECT name FROM sqlite_master WHERE type='table' ORDER BY name"
        ).fetchall()
        table_names = {row["name"] for row in tables}
        for expected in (
            "ideas",
            "tags",
            "idea_tags",
            "reminders",
            "idea_relations",
            "summaries",
            "enrichment_tasks",
            "settings",
        ):
            assert expected in table_names

    def test_wal_mode(self, db_conn: sqlite3.Connection):
        mode = db_conn.execute("PRAGMA journal_mode").fetchone()[0]
        assert mode == "wal"

    def test_foreign_keys_on(self, db_conn: sqlite3.Connection):
        fk = db_conn.execute("PRAGMA foreign_keys").fetchone()[0]
        assert fk == 1

    def test_idempotent_schema(self, db_path: Path):
        conn1 = get_connection(db_path)
        conn1.close()
        conn2 = get_connection(db_path)
        tables = conn2.execute(
            "SELECT name FROM sqlite_master WHERE type='table'"
        ).fetchall()
        conn2.close()
        assert len(tables) > 0

    def test_relation_pair_unique(self, repo: Repository):
        a = repo.create_idea("a")
        b = repo.create_idea("b")
        repo._conn.execute(
            "INSERT INTO idea_relations (source_id, target_id, strength, created_by, created_at) "
            "VALUES (?, ?, 0.5, 'ai', '2024-01-01')",
            (a.id, b.id),
        )
        with pytest.raises(sqlite3.IntegrityError):
            repo._conn.execute(
                "INSERT INTO idea_relations (source_id, target_id, strength, created_by, created_at) "
                "VALUES (?, ?, 0.9, 'ai', '2024-01-01')",
                (a.id, b.id),
            )

    def test_task_status_constrained(self, repo: Repository):
        task = repo.enqueue_task(TASK_ANALYZE_IDEA, {"ideaId": 1})
        with pytest.raises(sqlite3.IntegrityError):
            repo._conn.execute(
                "UPDATE enrichment_tasks SET status = 'retrying' WHERE id = ?", (task.id,)
            )


class TestIdeas:
    def test_create_idea(self, repo: Repository):
        idea = repo.create_idea("读一本书", tags=["学习", "阅读"], importance=4)
        assert idea.id > 0
        assert idea.content == "读一本书"
        assert idea.importance == 4
        assert not idea.is_archived
        assert idea.tags == ["学习", "阅读"]

    def test_create_enqueues_analysis(self, repo: Repository):
        idea = repo.create_idea("新想法")
        tasks = repo.find_pending_tasks(limit=10)
        assert len(tasks) == 1
        assert tasks[0].type == TASK_ANALYZE_IDEA
        assert json.loads(tasks[0].data) == {"ideaId": idea.id}
        assert tasks[0].priority == 1
        assert tasks[0].status == STATUS_PENDING

    def test_create_default_importance(self, repo: Repository):
        assert repo.create_idea("x").importance == 1

    def test_create_rejects_blank_content(self, repo: Repository):
        with pytest.raises(ValidationError):
            repo.create_idea("   ")

    @pytest.mark.parametrize("importance", [0, 6])
    def test_create_rejects_bad_importance(self, repo: Repository, importance: int):
        with pytest.raises(ValidationError):
            repo.create_idea("x", importance=importance)

    def test_blank_tag_leaves_no_idea(self, repo: Repository):
        with pytest.raises(ValidationError):
            repo.create_idea("x", tags=["ok", " "])
        assert repo.list_ideas(include_archived=True) == []

    def test_tags_shared_between_ideas(self, repo: Repository):
        repo.create_idea("a", tags=["工作"])
        repo.create_idea("b", tags=["工作"])
        count = repo._conn.execute("SELECT COUNT(*) FROM tags").fetchone()[0]
        assert count == 1

    def test_update_idea(self, repo: Repository):
        idea = repo.create_idea("old", tags=["a", "b"], importance=2)
        drain_queue(repo)

        updated = repo.update_idea(idea.id, content="new", tags=["c"], importance=5)
        assert updated.content == "new"
        assert updated.tags == ["c"]
        assert updated.importance == 5
        assert updated.updated_at >= idea.updated_at

        tasks = repo.find_pending_tasks(limit=10)
        assert [json.loads(t.data)["ideaId"] for t in tasks] == [idea.id]

    def test_update_keeps_tags_when_not_given(self, repo: Repository):
        idea = repo.create_idea("old", tags=["a"])
        updated = repo.update_idea(idea.id, content="new")
        assert updated.tags == ["a"]

    def test_update_missing(self, repo: Repository):
        with pytest.raises(IdeaNotFoundError):
            repo.update_idea(42, content="x")

    def test_archive_is_soft(self, repo: Repository):
        idea = repo.create_idea("x")
        repo.archive_idea(idea.id)
        assert repo.get_idea(idea.id).is_archived
        assert repo.list_ideas() == []
        assert len(repo.list_ideas(include_archived=True)) == 1

    def test_archive_missing(self, repo: Repository):
        with pytest.raises(IdeaNotFoundError):
            repo.archive_idea(42)

    def test_get_missing(self, repo: Repository):
        assert repo.get_idea(42) is None
        assert repo.get_idea_detail(42) is None


class TestListIdeas:
    @pytest.fixture(autouse=True)
    def setup_data(self, repo: Repository):
        self.low = repo.create_idea("买牛奶", tags=["生活"], importance=1)
        self.high = repo.create_idea("项目上线", tags=["工作"], importance=5)
        self.mid = repo.create_idea("Learn Rust", tags=["学习"], importance=3)
        self.repo = repo

    def test_newest_first(self):
        ids = [i.id for i in self.repo.list_ideas()]
        assert ids == [self.mid.id, self.high.id, self.low.id]

    def test_sort_by_importance(self):
        ids = [i.id for i in self.repo.list_ideas(sort="importance")]
        assert ids == [self.high.id, self.mid.id, self.low.id]

    def test_filter_by_tag(self):
        ideas = self.repo.list_ideas(tag="工作")
        assert [i.id for i in ideas] == [self.high.id]

    def test_search_case_insensitive(self):
        ideas = self.repo.list_ideas(search="rust")
        assert [i.id for i in ideas] == [self.mid.id]

    def test_limit(self):
        assert len(self.repo.list_ideas(limit=2)) == 2


class TestFindIdeasByTags:
    def test_empty_tags_match_nothing(self, repo: Repository):
        repo.create_idea("a", tags=["工作"])
        assert repo.find_ideas_by_tags([], exclude_id=0, limit=5) == []

    def test_any_tag_matches(self, repo: Repository):
        a = repo.create_idea("a", tags=["工作"])
        b = repo.create_idea("b", tags=["学习"])
        repo.create_idea("c", tags=["生活"])
        found = repo.find_ideas_by_tags(["工作", "学习"], exclude_id=0, limit=5)
        assert [i.id for i in found] == [a.id, b.id]

    def test_excludes_id_and_archived(self, repo: Repository):
        a = repo.create_idea("a", tags=["工作"])
        b = repo.create_idea("b", tags=["工作"])
        c = repo.create_idea("c", tags=["工作"])
        repo.archive_idea(c.id)
        found = repo.find_ideas_by_tags(["工作"], exclude_id=a.id, limit=5)
        assert [i.id for i in found] == [b.id]


class TestIdeaDetail:
    def test_includes_everything(self, repo: Repository):
        source = repo.create_idea("工作计划", tags=["工作"])
        target = repo.create_idea("工作总结", tags=["工作"])
        repo.upsert_relation(source.id, target.id, 0.7)
        repo.append_summary(source.id, "这是关于工作的想法。")
        repo.create_reminder(source.id, datetime(2024, 6, 1, 9, 0))

        detail = repo.get_idea_detail(source.id)
        assert detail["tags"] == ["工作"]
        assert detail["relations"][0]["target_id"] == target.id
        assert detail["relations"][0]["target_content"] == "工作总结"
        assert detail["summaries"][0]["content"] == "这是关于工作的想法。"
        assert detail["reminders"][0]["due_at"] == "2024-06-01T09:00:00"


class TestTasks:
    def test_claim_only_pending(self, repo: Repository):
        task = repo.enqueue_task(TASK_ANALYZE_IDEA, {"ideaId": 1})
        assert repo.claim_task(task.id) is True
        assert repo.get_task(task.id).status == STATUS_PROCESSING
        assert repo.claim_task(task.id) is False

    def test_finish_only_from_processing(self, repo: Repository):
        task = repo.enqueue_task(TASK_ANALYZE_IDEA, {"ideaId": 1})
        assert repo.finish_task(task.id, STATUS_COMPLETED, {"success": True}) is False
        assert repo.get_task(task.id).status == STATUS_PENDING

        repo.claim_task(task.id)
        assert repo.finish_task(task.id, STATUS_FAILED, {"error": "x"}) is True
        # Terminal: no way back
        assert repo.claim_task(task.id) is False
        assert repo.finish_task(task.id, STATUS_COMPLETED, {}) is False
        assert repo.get_task(task.id).status == STATUS_FAILED

    def test_finish_rejects_non_terminal(self, repo: Repository):
        task = repo.enqueue_task(TASK_ANALYZE_IDEA, {"ideaId": 1})
        repo.claim_task(task.id)
        with pytest.raises(ValueError):
            repo.finish_task(task.id, STATUS_PENDING, {})

    def test_finish_records_result(self, repo: Repository):
        task = repo.enqueue_task(TASK_ANALYZE_IDEA, {"ideaId": 1})
        repo.claim_task(task.id)
        when = datetime(2024, 6, 1, 12, 0)
        repo.finish_task(task.id, STATUS_COMPLETED, {"success": True, "tags": ["工作"]}, now=when)
        stored = repo.get_task(task.id)
        assert stored.processed_at == when
        assert json.loads(stored.result) == {"success": True, "tags": ["工作"]}

    def test_list_tasks_by_status(self, repo: Repository):
        a = repo.enqueue_task(TASK_ANALYZE_IDEA, {"ideaId": 1})
        repo.enqueue_task(TASK_ANALYZE_IDEA, {"ideaId": 2})
        repo.claim_task(a.id)
        assert [t.id for t in repo.list_tasks(status=STATUS_PROCESSING)] == [a.id]
        assert len(repo.list_tasks()) == 2


class TestReminders:
    def test_due_reminders(self, repo: Repository):
        idea = repo.create_idea("交房租")
        now = datetime(2024, 6, 1, 12, 0)
        past = repo.create_reminder(idea.id, now - timedelta(hours=1))
        exact = repo.create_reminder(idea.id, now)
        repo.create_reminder(idea.id, now + timedelta(hours=1))
        done = repo.create_reminder(idea.id, now - timedelta(days=1))
        repo.update_reminder(done.id, is_completed=True)

        due = repo.get_due_reminders(now)
        assert [r["id"] for r in due] == [past.id, exact.id]
        assert due[0]["idea_content"] == "交房租"

    def test_due_reminders_with_utc_offsets(self, repo: Repository):
        idea = repo.create_idea("开会")
        due = repo.create_reminder(idea.id, datetime(2024, 6, 1, 10, 0, tzinfo=timezone.utc))
        later = repo.create_reminder(idea.id, datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc))
        # 09:30 at UTC-2 is 11:30 UTC
        now = datetime(2024, 6, 1, 9, 30, tzinfo=timezone(timedelta(hours=-2)))

        assert [r["id"] for r in repo.get_due_reminders(now)] == [due.id]
        assert later.id not in [r["id"] for r in repo.get_due_reminders(now)]

    def test_aware_due_at_stored_as_local_time(self, repo: Repository):
        idea = repo.create_idea("x")
        aware = datetime(2024, 6, 1, 10, 0, tzinfo=timezone.utc)
        reminder = repo.create_reminder(idea.id, aware)
        assert reminder.due_at.tzinfo is None
        assert repo.get_reminder(reminder.id).due_at == aware.astimezone().replace(tzinfo=None)

        moved = repo.update_reminder(reminder.id, due_at=datetime(2024, 6, 2, 10, 0, tzinfo=timezone.utc))
        assert moved.due_at.tzinfo is None

    def test_reminder_for_missing_idea(self, repo: Repository):
        with pytest.raises(IdeaNotFoundError):
            repo.create_reminder(42, datetime.now())

    def test_update_reminder(self, repo: Repository):
        idea = repo.create_idea("x")
        reminder = repo.create_reminder(idea.id, datetime(2024, 1, 1))
        moved = repo.update_reminder(reminder.id, due_at=datetime(2024, 2, 1))
        assert moved.due_at == datetime(2024, 2, 1)
        assert not moved.is_completed

    def test_update_missing_reminder(self, repo: Repository):
        with pytest.raises(ReminderNotFoundError):
            repo.update_reminder(42, is_completed=True)

    def test_list_open_reminders(self, repo: Repository):
        idea = repo.create_idea("x")
        open_one = repo.create_reminder(idea.id, datetime(2024, 1, 1))
        closed = repo.create_reminder(idea.id, datetime(2024, 1, 2))
        repo.update_reminder(closed.id, is_completed=True)
        assert [r.id for r in repo.list_reminders(include_completed=False)] == [open_one.id]


class TestSettings:
    def test_upsert(self, repo: Repository):
        repo.update_settings({"theme": "dark", "hotkey": "Ctrl+Alt+I"})
        repo.update_settings({"theme": "light"})
        assert repo.get_settings() == {"hotkey": "Ctrl+Alt+I", "theme": "light"}

    def test_values_stored_as_strings(self, repo: Repository):
        repo.update_settings({"autostart": True, "interval": 5})
        assert repo.get_settings() == {"autostart": "True", "interval": "5"}


class TestStats:
    def test_get_stats(self, repo: Repository):
        a = repo.create_idea("a", tags=["工作"])
        b = repo.create_idea("b", tags=["工作", "学习"])
        repo.archive_idea(b.id)
        repo.upsert_relation(a.id, b.id, 0.7)
        repo.append_summary(a.id, "s")
        repo.create_reminder(a.id, datetime(2024, 1, 1))

        stats = repo.get_stats()
        assert stats["total_ideas"] == 2
        assert stats["archived_ideas"] == 1
        assert stats["total_tags"] == 2
        assert stats["total_relations"] == 1
        assert stats["total_summaries"] == 1
        assert stats["open_reminders"] == 1
        assert stats["tasks"] == {"pending": 2, "processing": 0, "completed": 0, "failed": 0}

    def test_list_tags_counts(self, repo: Repository):
        repo.create_idea("a", tags=["工作"])
        repo.create_idea("b", tags=["工作", "学习"])
        counts = {t["name"]: t["idea_count"] for t in repo.list_tags()}
        assert counts == {"工作": 2, "学习": 1}
