"""Core data models for ideabox."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

# Task lifecycle: pending -> processing -> completed | failed
STATUS_PENDING = "pending"
STATUS_PROCESSING = "processing"
STATUS_COMPLETED = "completed"
STATUS_FAILED = "failed"
TASK_STATUSES = (STATUS_PENDING, STATUS_PROCESSING, STATUS_COMPLETED, STATUS_FAILED)

TASK_ANALYZE_IDEA = "analyze_idea"

CREATED_BY_AI = "ai"
CREATED_BY_USER = "user"

SUMMARY_AUTO = "auto"
SUMMARY_MANUAL = "manual"

MIN_IMPORTANCE = 1
MAX_IMPORTANCE = 5

SORT_ORDERS = ("created", "importance")


@dataclass
class Tag:
    id: int
    name: str  # unique, case-sensitive


@dataclass
class Idea:
    id: int
    content: str
    importance: int = 1  # 1..5
    is_archived: bool = False
    created_at: datetime = field(default_factory=datetime.now)
    updated_at: datetime = field(default_factory=datetime.now)
    tags: list[str] = field(default_factory=list)


@dataclass
class Reminder:
    id: int
    idea_id: int
    due_at: datetime
    is_completed: bool = False
    created_at: datetime = field(default_factory=datetime.now)


@dataclass
class Relation:
    id: int
    source_id: int
    target_id: int
    strength: float  # 0..1
    created_by: str = CREATED_BY_AI  # "ai" | "user"
    created_at: datetime = field(default_factory=datetime.now)


@dataclass
class Summary:
    id: int
    idea_id: int
    content: str
    type: str = SUMMARY_AUTO  # "auto" | "manual"
    created_at: datetime = field(default_factory=datetime.now)


@dataclass
class EnrichmentTask:
    id: int
    type: str  # "analyze_idea"
    data: str  # raw JSON payload, parsed at dispatch time
    priority: int = 1
    status: str = STATUS_PENDING
    result: str | None = None  # JSON
    created_at: datetime = field(default_factory=datetime.now)
    processed_at: datetime | None = None
