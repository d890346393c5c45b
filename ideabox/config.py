"""Settings for ideabox, read from IDEABOX_* environment variables.

A .env file is loaded at import but never overrides variables already set
in the environment. Anything unset falls back to the dataclass defaults.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

DEFAULT_DB_PATH = Path("ideabox.db")
DEFAULT_KEYWORDS = [
    "工作",
    "学习",
    "项目",
    "会议",
    "想法",
    "创意",
    "任务",
    "重要",
    "紧急",
]
DEFAULT_BATCH_SIZE = 5
DEFAULT_RELATED_LIMIT = 5
DEFAULT_RELATION_STRENGTH = 0.7
DEFAULT_TASK_INTERVAL = 300  # seconds
DEFAULT_REMINDER_INTERVAL = 60  # seconds
DEFAULT_TASK_WARN_SECONDS = 30.0


def _parse_keywords(raw: str | None) -> list[str]:
    if not raw:
        return list(DEFAULT_KEYWORDS)
    return [k.strip() for k in raw.split(",") if k.strip()]


@dataclass
class Config:
    db_path: Path = DEFAULT_DB_PATH
    keywords: list[str] = field(default_factory=lambda: list(DEFAULT_KEYWORDS))
    batch_size: int = DEFAULT_BATCH_SIZE
    related_limit: int = DEFAULT_RELATED_LIMIT
    relation_strength: float = DEFAULT_RELATION_STRENGTH
    task_interval: int = DEFAULT_TASK_INTERVAL
    reminder_interval: int = DEFAULT_REMINDER_INTERVAL
    task_warn_seconds: float = DEFAULT_TASK_WARN_SECONDS
    log_level: str = "INFO"

    @classmethod
    def load(cls) -> Config:
        return cls(
            db_path=Path(os.getenv("IDEABOX_DB_PATH", str(DEFAULT_DB_PATH))),
            keywords=_parse_keywords(os.getenv("IDEABOX_KEYWORDS")),
            batch_size=int(os.getenv("IDEABOX_BATCH_SIZE", DEFAULT_BATCH_SIZE)),
            related_limit=int(os.getenv("IDEABOX_RELATED_LIMIT", DEFAULT_RELATED_LIMIT)),
            relation_strength=float(
                os.getenv("IDEABOX_RELATION_STRENGTH", DEFAULT_RELATION_STRENGTH)
            ),
            task_interval=int(os.getenv("IDEABOX_TASK_INTERVAL", DEFAULT_TASK_INTERVAL)),
            reminder_interval=int(
                os.getenv("IDEABOX_REMINDER_INTERVAL", DEFAULT_REMINDER_INTERVAL)
            ),
            task_warn_seconds=float(
                os.getenv("IDEABOX_TASK_WARN_SECONDS", DEFAULT_TASK_WARN_SECONDS)
            ),
            log_level=os.getenv("IDEABOX_LOG_LEVEL", "INFO").upper(),
        )

    def validate(self) -> list[str]:
        """Return a list of config issues."""
        issues = []
        if not self.keywords:
            issues.append("Keyword vocabulary is empty (IDEABOX_KEYWORDS)")
        if self.batch_size < 1:
            issues.append("Batch size must be positive (IDEABOX_BATCH_SIZE)")
        if self.related_limit < 1:
            issues.append("Related idea limit must be positive (IDEABOX_RELATED_LIMIT)")
        if not 0.0 <= self.relation_strength <= 1.0:
            issues.append("Relation strength must be within [0, 1] (IDEABOX_RELATION_STRENGTH)")
        if self.task_interval < 1:
            issues.append("Task interval must be positive (IDEABOX_TASK_INTERVAL)")
        if self.reminder_interval < 1:
            issues.append("Reminder interval must be positive (IDEABOX_REMINDER_INTERVAL)")
        return issues
