"""CRUD operations for ideas, tags, reminders, relations, summaries and tasks."""

from __future__ import annotations

import json
import logging
import sqlite3
from datetime import datetime
from typing import Any, Iterable

from ideabox.enrichment.tags import normalize_tag_name, resolve_tag
from ideabox.errors import IdeaNotFoundError, ReminderNotFoundError, ValidationError
from ideabox.models import (
    CREATED_BY_AI,
    MAX_IMPORTANCE,
    MIN_IMPORTANCE,
    STATUS_COMPLETED,
    STATUS_FAILED,
    STATUS_PENDING,
    STATUS_PROCESSING,
    SUMMARY_AUTO,
    TASK_ANALYZE_IDEA,
    EnrichmentTask,
    Idea,
    Relation,
    Reminder,
    Summary,
    Tag,
)

logger = logging.getLogger(__name__)


def _local(value: datetime) -> datetime:
    """Timestamps are stored as naive local time; aware values are converted."""
    if value.tzinfo is not None:
        return value.astimezone().replace(tzinfo=None)
    return value


def _ts(value: datetime | None) -> str:
    return _local(value or datetime.now()).isoformat()


def _parse_ts(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


def _check_importance(importance: int) -> int:
    if not MIN_IMPORTANCE <= importance <= MAX_IMPORTANCE:
        raise ValidationError(
            f"Importance must be between {MIN_IMPORTANCE} and {MAX_IMPORTANCE}, got {importance}"
        )
    return importance


def _check_content(content: str) -> str:
    if not content or not content.strip():
        raise ValidationError("Idea content must not be empty")
    return content


class Repository:
    """Data access layer for the ideabox SQLite database."""

    def __init__(self, conn: sqlite3.Connection) -> None:
        self._conn = conn

    # -- Ideas ---------------------------------------------------------------

    def create_idea(
        self,
        content: str,
        tags: Iterable[str] | None = None,
        importance: int = 1,
    ) -> Idea:
        """Create an idea, attach its tags and enqueue it for analysis."""
        names = [normalize_tag_name(name) for name in tags or []]
        idea_id = self.insert_idea(
            _check_content(content), importance=_check_importance(importance)
        )
        for name in names:
            tag = resolve_tag(self, name)
            self.attach_tag(idea_id, tag.id)
        self._conn.commit()

        self.enqueue_task(TASK_ANALYZE_IDEA, {"ideaId": idea_id}, priority=1)
        logger.info(f"Created idea {idea_id}")
        return self.get_idea(idea_id)

    def insert_idea(
        self,
        content: str,
        importance: int = 1,
        is_archived: bool = False,
        created_at: datetime | None = None,
        updated_at: datetime | None = None,
    ) -> int:
        """Insert a bare idea row without tags or queueing. Returns the new id."""
        created = _ts(created_at)
        cursor = self._conn.execute(
            """INSERT INTO ideas (content, importance, is_archived, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?)""",
            (
                content,
                importance,
                int(is_archived),
                created,
                _ts(updated_at) if updated_at else created,
            ),
        )
        self._conn.commit()
        return cursor.lastrowid

    def update_idea(
        self,
        idea_id: int,
        content: str | None = None,
        tags: Iterable[str] | None = None,
        importance: int | None = None,
        is_archived: bool | None = None,
    ) -> Idea:
        """Update the given fields, replace the tag set if given, and re-enqueue analysis."""
        if self.get_idea(idea_id) is None:
            raise IdeaNotFoundError(idea_id)
        names = None if tags is None else [normalize_tag_name(name) for name in tags]

        assignments = ["updated_at = ?"]
        params: list[Any] = [_ts(None)]
        if content is not None:
            assignments.append("content = ?")
            params.append(_check_content(content))
        if importance is not None:
            assignments.append("importance = ?")
            params.append(_check_importance(importance))
        if is_archived is not None:
            assignments.append("is_archived = ?")
            params.append(int(is_archived))
        params.append(idea_id)

        self._conn.execute(
            f"UPDATE ideas SET {', '.join(assignments)} WHERE id = ?", params
        )

        if names is not None:
            self._conn.execute("DELETE FROM idea_tags WHERE idea_id = ?", (idea_id,))
            for name in names:
                tag = resolve_tag(self, name)
                self.attach_tag(idea_id, tag.id)
        self._conn.commit()

        self.enqueue_task(TASK_ANALYZE_IDEA, {"ideaId": idea_id}, priority=1)
        logger.info(f"Updated idea {idea_id}")
        return self.get_idea(idea_id)

    def archive_idea(self, idea_id: int) -> None:
        """Soft-delete an idea. Ideas are never hard-deleted."""
        cursor = self._conn.execute(
            "UPDATE ideas SET is_archived = 1, updated_at = ? WHERE id = ?",
            (_ts(None), idea_id),
        )
        self._conn.commit()
        if cursor.rowcount == 0:
            raise IdeaNotFoundError(idea_id)

    def get_idea(self, idea_id: int) -> Idea | None:
        row = self._conn.execute("SELECT * FROM ideas WHERE id = ?", (idea_id,)).fetchone()
        return self._row_to_idea(row) if row else None

    def get_idea_detail(self, idea_id: int) -> dict | None:
        """Get an idea with its tags, reminders, outgoing relations and summaries."""
        idea = self.get_idea(idea_id)
        if idea is None:
            return None

        relation_rows = self._conn.execute(
            """
            SELECT r.*, i.content AS target_content
            FROM idea_relations r
            JOIN ideas i ON i.id = r.target_id
            WHERE r.source_id = ?
            ORDER BY r.id
            """,
            (idea_id,),
        ).fetchall()

        return {
            "id": idea.id,
            "content": idea.content,
            "importance": idea.importance,
            "is_archived": idea.is_archived,
            "created_at": idea.created_at.isoformat(),
            "updated_at": idea.updated_at.isoformat(),
            "tags": idea.tags,
            "reminders": [
                {
                    "id": r.id,
                    "due_at": r.due_at.isoformat(),
                    "is_completed": r.is_completed,
                    "created_at": r.created_at.isoformat(),
                }
                for r in self.list_reminders(idea_id=idea_id)
            ],
            "relations": [dict(row) for row in relation_rows],
            "summaries": [
                {"id": s.id, "content": s.content, "type": s.type, "created_at": s.created_at.isoformat()}
                for s in self.get_summaries(idea_id)
            ],
        }

    def list_ideas(
        self,
        sort: str = "created",
        tag: str | None = None,
        search: str | None = None,
        limit: int | None = None,
        include_archived: bool = False,
    ) -> list[Idea]:
        """List ideas, newest first or by importance, with optional filters."""
        query = "SELECT i.* FROM ideas i WHERE 1=1"
        params: list[Any] = []

        if not include_archived:
            query += " AND i.is_archived = 0"
        if tag:
            query += """ AND EXISTS (
                SELECT 1 FROM idea_tags it JOIN tags t ON t.id = it.tag_id
                WHERE it.idea_id = i.id AND t.name = ?)"""
            params.append(tag)
        if search:
            query += " AND instr(lower(i.content), lower(?)) > 0"
            params.append(search)

        if sort == "importance":
            query += " ORDER BY i.importance DESC, i.created_at DESC, i.id DESC"
        else:
            query += " ORDER BY i.created_at DESC, i.id DESC"

        if limit is not None:
            query += " LIMIT ?"
            params.append(limit)

        rows = self._conn.execute(query, params).fetchall()
        return [self._row_to_idea(row) for row in rows]

    def find_ideas_by_tags(
        self, tag_names: Iterable[str], exclude_id: int, limit: int
    ) -> list[Idea]:
        """Find non-archived ideas other than exclude_id carrying any of the tags.

        An empty tag list matches nothing.
        """
        names = list(dict.fromkeys(tag_names))
        if not names:
            return []

        placeholders = ", ".join("?" for _ in names)
        rows = self._conn.execute(
            f"""
            SELECT DISTINCT i.*
            FROM ideas i
            JOIN idea_tags it ON it.idea_id = i.id
            JOIN tags t ON t.id = it.tag_id
            WHERE t.name IN ({placeholders})
              AND i.id != ?
              AND i.is_archived = 0
            ORDER BY i.id
            LIMIT ?
            """,
            (*names, exclude_id, limit),
        ).fetchall()
        return [self._row_to_idea(row) for row in rows]

    # -- Tags ----------------------------------------------------------------

    def get_tag_by_name(self, name: str) -> Tag | None:
        row = self._conn.execute("SELECT id, name FROM tags WHERE name = ?", (name,)).fetchone()
        return Tag(id=row["id"], name=row["name"]) if row else None

    def insert_tag(self, name: str) -> Tag:
        """Insert a new tag. Raises sqlite3.IntegrityError if the name exists."""
        cursor = self._conn.execute(
            "INSERT INTO tags (name, created_at) VALUES (?, ?)", (name, _ts(None))
        )
        self._conn.commit()
        return Tag(id=cursor.lastrowid, name=name)

    def attach_tag(self, idea_id: int, tag_id: int) -> bool:
        """Link a tag to an idea. Returns False if it was already linked."""
        cursor = self._conn.execute(
            "INSERT OR IGNORE INTO idea_tags (idea_id, tag_id) VALUES (?, ?)",
            (idea_id, tag_id),
        )
        self._conn.commit()
        return cursor.rowcount > 0

    def get_idea_tags(self, idea_id: int) -> list[str]:
        rows = self._conn.execute(
            """
            SELECT t.name FROM tags t
            JOIN idea_tags it ON it.tag_id = t.id
            WHERE it.idea_id = ?
            ORDER BY t.id
            """,
            (idea_id,),
        ).fetchall()
        return [row["name"] for row in rows]

    def list_tags(self) -> list[dict]:
        """Get all tags with the number of ideas carrying each."""
        rows = self._conn.execute(
            """
            SELECT t.id, t.name, COUNT(it.idea_id) AS idea_count
            FROM tags t
            LEFT JOIN idea_tags it ON it.tag_id = t.id
            GROUP BY t.id, t.name
            ORDER BY idea_count DESC, t.name
            """
        ).fetchall()
        return [dict(row) for row in rows]

    # -- Relations -----------------------------------------------------------

    def upsert_relation(
        self,
        source_id: int,
        target_id: int,
        strength: float,
        created_by: str = CREATED_BY_AI,
    ) -> Relation:
        """Create the (source, target) relation, or update its strength if it exists."""
        self._conn.execute(
            """INSERT INTO idea_relations (source_id, target_id, strength, created_by, created_at)
            VALUES (?, ?, ?, ?, ?)
            ON CONFLICT (source_id, target_id) DO UPDATE SET strength = excluded.strength""",
            (source_id, target_id, strength, created_by, _ts(None)),
        )
        self._conn.commit()
        row = self._conn.execute(
            "SELECT * FROM idea_relations WHERE source_id = ? AND target_id = ?",
            (source_id, target_id),
        ).fetchone()
        return self._row_to_relation(row)

    def get_relations(self, source_id: int | None = None) -> list[Relation]:
        if source_id is None:
            rows = self._conn.execute("SELECT * FROM idea_relations ORDER BY id").fetchall()
        else:
            rows = self._conn.execute(
                "SELECT * FROM idea_relations WHERE source_id = ? ORDER BY id", (source_id,)
            ).fetchall()
        return [self._row_to_relation(row) for row in rows]

    # -- Summaries -----------------------------------------------------------

    def append_summary(self, idea_id: int, content: str, kind: str = SUMMARY_AUTO) -> Summary:
        """Append a summary. Earlier summaries are kept."""
        created = datetime.now()
        cursor = self._conn.execute(
            "INSERT INTO summaries (idea_id, content, type, created_at) VALUES (?, ?, ?, ?)",
            (idea_id, content, kind, created.isoformat()),
        )
        self._conn.commit()
        return Summary(
            id=cursor.lastrowid, idea_id=idea_id, content=content, type=kind, created_at=created
        )

    def get_summaries(self, idea_id: int) -> list[Summary]:
        rows = self._conn.execute(
            "SELECT * FROM summaries WHERE idea_id = ? ORDER BY id", (idea_id,)
        ).fetchall()
        return [
            Summary(
                id=row["id"],
                idea_id=row["idea_id"],
                content=row["content"],
                type=row["type"],
                created_at=_parse_ts(row["created_at"]),
            )
            for row in rows
        ]

    # -- Reminders -----------------------------------------------------------

    def create_reminder(
        self,
        idea_id: int,
        due_at: datetime,
        is_completed: bool = False,
        created_at: datetime | None = None,
    ) -> Reminder:
        if self.get_idea(idea_id) is None:
            raise IdeaNotFoundError(idea_id)
        due_at = _local(due_at)
        created = _local(created_at or datetime.now())
        cursor = self._conn.execute(
            """INSERT INTO reminders (idea_id, due_at, is_completed, created_at)
            VALUES (?, ?, ?, ?)""",
            (idea_id, _ts(due_at), int(is_completed), _ts(created)),
        )
        self._conn.commit()
        return Reminder(
            id=cursor.lastrowid,
            idea_id=idea_id,
            due_at=due_at,
            is_completed=is_completed,
            created_at=created,
        )

    def update_reminder(
        self,
        reminder_id: int,
        due_at: datetime | None = None,
        is_completed: bool | None = None,
    ) -> Reminder:
        assignments: list[str] = []
        params: list[Any] = []
        if due_at is not None:
            assignments.append("due_at = ?")
            params.append(_ts(due_at))
        if is_completed is not None:
            assignments.append("is_completed = ?")
            params.append(int(is_completed))

        if assignments:
            params.append(reminder_id)
            self._conn.execute(
                f"UPDATE reminders SET {', '.join(assignments)} WHERE id = ?", params
            )
            self._conn.commit()

        reminder = self.get_reminder(reminder_id)
        if reminder is None:
            raise ReminderNotFoundError(reminder_id)
        return reminder

    def get_reminder(self, reminder_id: int) -> Reminder | None:
        row = self._conn.execute(
            "SELECT * FROM reminders WHERE id = ?", (reminder_id,)
        ).fetchone()
        return self._row_to_reminder(row) if row else None

    def list_reminders(
        self, idea_id: int | None = None, include_completed: bool = True
    ) -> list[Reminder]:
        query = "SELECT * FROM reminders WHERE 1=1"
        params: list[Any] = []
        if idea_id is not None:
            query += " AND idea_id = ?"
            params.append(idea_id)
        if not include_completed:
            query += " AND is_completed = 0"
        query += " ORDER BY due_at, id"
        rows = self._conn.execute(query, params).fetchall()
        return [self._row_to_reminder(row) for row in rows]

    def get_due_reminders(self, now: datetime | None = None) -> list[dict]:
        """Reminders due at or before now that are not completed, with idea content."""
        rows = self._conn.execute(
            """
            SELECT r.id, r.idea_id, r.due_at, r.is_completed, i.content AS idea_content
            FROM reminders r
            JOIN ideas i ON i.id = r.idea_id
            WHERE r.due_at <= ? AND r.is_completed = 0
            ORDER BY r.due_at, r.id
            """,
            (_ts(now),),
        ).fetchall()
        return [dict(row) for row in rows]

    # -- Enrichment tasks ----------------------------------------------------

    def enqueue_task(self, kind: str, payload: dict, priority: int = 1) -> EnrichmentTask:
        created = datetime.now()
        data = json.dumps(payload)
        cursor = self._conn.execute(
            """INSERT INTO enrichment_tasks (type, data, priority, status, created_at)
            VALUES (?, ?, ?, ?, ?)""",
            (kind, data, priority, STATUS_PENDING, created.isoformat()),
        )
        self._conn.commit()
        return EnrichmentTask(
            id=cursor.lastrowid, type=kind, data=data, priority=priority, created_at=created
        )

    def find_pending_tasks(self, limit: int) -> list[EnrichmentTask]:
        """Pending tasks, highest priority first, then in arrival order."""
        rows = self._conn.execute(
            """
            SELECT * FROM enrichment_tasks
            WHERE status = ?
            ORDER BY priority DESC, id ASC
            LIMIT ?
            """,
            (STATUS_PENDING, limit),
        ).fetchall()
        return [self._row_to_task(row) for row in rows]

    def claim_task(self, task_id: int) -> bool:
        """Move a task from pending to processing.

        Returns False if the task was no longer pending (claimed elsewhere).
        """
        cursor = self._conn.execute(
            "UPDATE enrichment_tasks SET status = ? WHERE id = ? AND status = ?",
            (STATUS_PROCESSING, task_id, STATUS_PENDING),
        )
        self._conn.commit()
        return cursor.rowcount == 1

    def finish_task(
        self,
        task_id: int,
        status: str,
        result: dict,
        now: datetime | None = None,
    ) -> bool:
        """Record a terminal status for a task that is processing.

        Returns False if the task was not in the processing state.
        """
        if status not in (STATUS_COMPLETED, STATUS_FAILED):
            raise ValueError(f"Not a terminal task status: {status}")
        cursor = self._conn.execute(
            """UPDATE enrichment_tasks SET status = ?, processed_at = ?, result = ?
            WHERE id = ? AND status = ?""",
            (status, _ts(now), json.dumps(result, ensure_ascii=False), task_id, STATUS_PROCESSING),
        )
        self._conn.commit()
        if cursor.rowcount == 0:
            logger.warning(f"Task {task_id} was not processing, status {status} not recorded")
            return False
        return True

    def get_task(self, task_id: int) -> EnrichmentTask | None:
        row = self._conn.execute(
            "SELECT * FROM enrichment_tasks WHERE id = ?", (task_id,)
        ).fetchone()
        return self._row_to_task(row) if row else None

    def list_tasks(self, status: str | None = None, limit: int = 50) -> list[EnrichmentTask]:
        query = "SELECT * FROM enrichment_tasks"
        params: list[Any] = []
        if status:
            query += " WHERE status = ?"
            params.append(status)
        query += " ORDER BY id DESC LIMIT ?"
        params.append(limit)
        rows = self._conn.execute(query, params).fetchall()
        return [self._row_to_task(row) for row in rows]

    # -- Settings ------------------------------------------------------------

    def get_settings(self) -> dict[str, str]:
        rows = self._conn.execute("SELECT key, value FROM settings ORDER BY key").fetchall()
        return {row["key"]: row["value"] for row in rows}

    def update_settings(self, settings: dict[str, Any]) -> None:
        """Insert or update each setting. Values are stored as strings."""
        for key, value in settings.items():
            self._conn.execute(
                """INSERT INTO settings (key, value) VALUES (?, ?)
                ON CONFLICT (key) DO UPDATE SET value = excluded.value""",
                (key, str(value)),
            )
        self._conn.commit()

    # -- Stats ---------------------------------------------------------------

    def get_stats(self) -> dict:
        """Get summary statistics about stored ideas and the task queue."""

        def count(sql: str) -> int:
            return self._conn.execute(sql).fetchone()[0]

        task_rows = self._conn.execute(
            "SELECT status, COUNT(*) AS n FROM enrichment_tasks GROUP BY status"
        ).fetchall()
        tasks = {status: 0 for status in (STATUS_PENDING, STATUS_PROCESSING, STATUS_COMPLETED, STATUS_FAILED)}
        tasks.update({row["status"]: row["n"] for row in task_rows})

        return {
            "total_ideas": count("SELECT COUNT(*) FROM ideas"),
            "archived_ideas": count("SELECT COUNT(*) FROM ideas WHERE is_archived = 1"),
            "total_tags": count("SELECT COUNT(*) FROM tags"),
            "total_relations": count("SELECT COUNT(*) FROM idea_relations"),
            "total_summaries": count("SELECT COUNT(*) FROM summaries"),
            "open_reminders": count("SELECT COUNT(*) FROM reminders WHERE is_completed = 0"),
            "tasks": tasks,
        }

    # -- Row mapping ---------------------------------------------------------

    def _row_to_idea(self, row: sqlite3.Row) -> Idea:
        return Idea(
            id=row["id"],
            content=row["content"],
            importance=row["importance"],
            is_archived=bool(row["is_archived"]),
            created_at=_parse_ts(row["created_at"]),
            updated_at=_parse_ts(row["updated_at"]),
            tags=self.get_idea_tags(row["id"]),
        )

    @staticmethod
    def _row_to_relation(row: sqlite3.Row) -> Relation:
        return Relation(
            id=row["id"],
            source_id=row["source_id"],
            target_id=row["target_id"],
            strength=row["strength"],
            created_by=row["created_by"],
            created_at=_parse_ts(row["created_at"]),
        )

    @staticmethod
    def _row_to_reminder(row: sqlite3.Row) -> Reminder:
        return Reminder(
            id=row["id"],
            idea_id=row["idea_id"],
            due_at=_parse_ts(row["due_at"]),
            is_completed=bool(row["is_completed"]),
            created_at=_parse_ts(row["created_at"]),
        )

    @staticmethod
    def _row_to_task(row: sqlite3.Row) -> EnrichmentTask:
        return EnrichmentTask(
            id=row["id"],
            type=row["type"],
            data=row["data"],
            priority=row["priority"],
            status=row["status"],
            result=row["result"],
            created_at=_parse_ts(row["created_at"]),
            processed_at=_parse_ts(row["processed_at"]),
        )
