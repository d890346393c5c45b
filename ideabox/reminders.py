"""Due-reminder checks and the notification log.

Every check logs each due reminder and appends it to a JSONL notification
log so a desktop shell (or a human) can pick notifications up later. Each
line is a JSON object with timestamp, reminder id, idea id, due time and a
preview of the idea text.

The log file lives alongside ideabox.db by default.
"""

from __future__ import annotations

import json
import logging
import os
from datetime import datetime
from pathlib import Path

from ideabox.storage.repository import Repository

logger = logging.getLogger(__name__)

CONTENT_PREVIEW_LIMIT = 200


def resolve_notification_path(db_path: Path | None = None) -> Path:
    """Find the notification log, checking env var then defaulting next to the DB."""
    env_path = os.getenv("IDEABOX_NOTIFY_LOG")
    if env_path:
        return Path(env_path)

    if db_path is None:
        db_path = Path(os.getenv("IDEABOX_DB_PATH", "ideabox.db"))
    return Path(db_path).parent / "ideabox-notifications.jsonl"


def check_due_reminders(
    repo: Repository,
    now: datetime | None = None,
    notification_log: Path | None = None,
) -> list[dict]:
    """Report reminders that are due and not completed.

    Read-only: reminders stay open until the user marks them done.
    """
    now = now or datetime.now()
    due = repo.get_due_reminders(now)
    for reminder in due:
        logger.info(f"Reminder due for idea: {reminder['idea_content']}")
        if notification_log is not None:
            _append_notification(notification_log, reminder, now)
    return due


def _append_notification(log_path: Path, reminder: dict, now: datetime) -> None:
    """Append a notification entry. Never raises."""
    try:
        entry = {
            "timestamp": now.isoformat(),
            "reminder_id": reminder["id"],
            "idea_id": reminder["idea_id"],
            "due_at": reminder["due_at"],
            "content_preview": reminder["idea_content"][:CONTENT_PREVIEW_LIMIT],
        }
        with open(log_path, "a", encoding="utf-8") as f:
            f.write(json.dumps(entry, ensure_ascii=False, default=str) + "\n")
    except OSError as e:
        logger.warning(f"Could not write notification to {log_path}: {e}")


def read_notifications(
    limit: int = 20,
    idea_id: int | None = None,
    log_path: Path | None = None,
) -> list[dict]:
    """Read recent notification entries.

    Returns entries in reverse chronological order (most recent first).
    """
    path = log_path or resolve_notification_path()
    if not path.exists():
        return []

    entries: list[dict] = []
    for line in path.read_text(encoding="utf-8").splitlines():
        if not line.strip():
            continue
        try:
            entry = json.loads(line)
        except json.JSONDecodeError:
            continue

        if idea_id is not None and entry.get("idea_id") != idea_id:
            continue

        entries.append(entry)

    entries.reverse()
    return entries[:limit]
