"""JSON export and import of the whole idea store."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

from ideabox.enrichment.tags import resolve_tag
from ideabox.errors import ValidationError
from ideabox.models import MAX_IMPORTANCE, MIN_IMPORTANCE
from ideabox.storage.repository import Repository

logger = logging.getLogger(__name__)


@dataclass
class ImportReport:
    ideas: int = 0
    tags: int = 0
    reminders: int = 0
    settings: int = 0


def export_data(repo: Repository) -> dict:
    """Dump ideas (archived included) with their tags, reminders, relations and summaries."""
    ideas = []
    for idea in repo.list_ideas(include_archived=True):
        detail = repo.get_idea_detail(idea.id)
        detail["tags"] = [{"name": name} for name in detail["tags"]]
        detail["relations"] = [
            {
                "target_id": rel["target_id"],
                "strength": rel["strength"],
                "created_by": rel["created_by"],
            }
            for rel in detail["relations"]
        ]
        ideas.append(detail)
    ideas.reverse()  # oldest first

    return {
        "ideas": ideas,
        "tags": [{"name": t["name"]} for t in repo.list_tags()],
        "settings": [{"key": k, "value": v} for k, v in repo.get_settings().items()],
        "exportDate": datetime.now().isoformat(),
    }


def import_data(repo: Repository, data: dict) -> ImportReport:
    """Load exported data. Ideas are always created as new records.

    Tags and settings are upserted by name/key. Imported ideas are not
    queued for analysis. The whole document is validated before anything
    is written, so a bad item leaves the database untouched.
    """
    validate_import(data)
    report = ImportReport()

    for tag in data.get("tags") or []:
        resolve_tag(repo, tag["name"])
        report.tags += 1

    for item in data.get("ideas") or []:
        created_at = _parse_optional(item.get("created_at"))
        idea_id = repo.insert_idea(
            item["content"],
            importance=item.get("importance", 1),
            is_archived=bool(item.get("is_archived", False)),
            created_at=created_at,
            updated_at=_parse_optional(item.get("updated_at")) or created_at,
        )
        report.ideas += 1

        for tag in item.get("tags") or []:
            name = tag["name"] if isinstance(tag, dict) else tag
            repo.attach_tag(idea_id, resolve_tag(repo, name).id)

        for reminder in item.get("reminders") or []:
            repo.create_reminder(
                idea_id,
                datetime.fromisoformat(reminder["due_at"]),
                is_completed=bool(reminder.get("is_completed", False)),
                created_at=_parse_optional(reminder.get("created_at")),
            )
            report.reminders += 1

    settings = {s["key"]: s["value"] for s in data.get("settings") or []}
    if settings:
        repo.update_settings(settings)
        report.settings = len(settings)

    logger.info(
        f"Imported {report.ideas} ideas, {report.tags} tags, "
        f"{report.reminders} reminders, {report.settings} settings"
    )
    return report


def validate_import(data: object) -> None:
    """Raise ValidationError describing the first malformed part of an export document."""
    if not isinstance(data, dict):
        raise ValidationError("Import data must be a JSON object")

    for i, tag in enumerate(data.get("tags") or []):
        if not isinstance(tag, dict):
            raise ValidationError(f"tags[{i}] must be an object with a name")
        _check_tag_name(tag.get("name"), f"tags[{i}]")

    for i, item in enumerate(data.get("ideas") or []):
        where = f"ideas[{i}]"
        if not isinstance(item, dict):
            raise ValidationError(f"{where} must be an object")
        content = item.get("content")
        if not isinstance(content, str) or not content.strip():
            raise ValidationError(f"{where} has no content")
        importance = item.get("importance", 1)
        if (
            not isinstance(importance, int)
            or isinstance(importance, bool)
            or not MIN_IMPORTANCE <= importance <= MAX_IMPORTANCE
        ):
            raise ValidationError(
                f"{where} importance must be between {MIN_IMPORTANCE} and {MAX_IMPORTANCE}"
            )
        _check_timestamp(item.get("created_at"), f"{where}.created_at", required=False)
        _check_timestamp(item.get("updated_at"), f"{where}.updated_at", required=False)

        for j, tag in enumerate(item.get("tags") or []):
            name = tag.get("name") if isinstance(tag, dict) else tag
            _check_tag_name(name, f"{where}.tags[{j}]")

        for j, reminder in enumerate(item.get("reminders") or []):
            if not isinstance(reminder, dict):
                raise ValidationError(f"{where}.reminders[{j}] must be an object")
            _check_timestamp(reminder.get("due_at"), f"{where}.reminders[{j}].due_at", required=True)
            _check_timestamp(
                reminder.get("created_at"), f"{where}.reminders[{j}].created_at", required=False
            )

    for i, setting in enumerate(data.get("settings") or []):
        if not isinstance(setting, dict) or not setting.get("key") or "value" not in setting:
            raise ValidationError(f"settings[{i}] must have a key and a value")


def _check_tag_name(name: object, where: str) -> None:
    if not isinstance(name, str) or not name.strip():
        raise ValidationError(f"{where} has a blank tag name")


def _check_timestamp(value: object, where: str, required: bool) -> None:
    if value is None or value == "":
        if required:
            raise ValidationError(f"{where} is missing")
        return
    if not isinstance(value, str):
        raise ValidationError(f"{where} must be an ISO date/time string")
    try:
        datetime.fromisoformat(value)
    except ValueError:
        raise ValidationError(f"{where} is not a valid ISO date/time: {value!r}")


def write_export(repo: Repository, path: Path) -> Path:
    path.write_text(
        json.dumps(export_data(repo), ensure_ascii=False, indent=2) + "\n", encoding="utf-8"
    )
    return path


def read_import(repo: Repository, path: Path) -> ImportReport:
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise ValidationError(f"{path} is not valid JSON: {e}")
    return import_data(repo, data)


def _parse_optional(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None
