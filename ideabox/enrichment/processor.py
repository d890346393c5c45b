"""Enrichment task queue processing.

Each tick claims a small batch of pending tasks, highest priority first,
and runs them one after another. A task ends either completed or failed;
failed tasks are not retried. An exception inside one task is recorded on
that task and never stops the rest of the batch.
"""

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass, field
from typing import Callable

from ideabox.config import Config
from ideabox.enrichment.keywords import extract_keywords
from ideabox.enrichment.relations import link_related_ideas
from ideabox.enrichment.summary import generate_summary
from ideabox.enrichment.tags import resolve_tag
from ideabox.errors import IdeaNotFoundError, MalformedPayloadError, UnknownTaskKindError
from ideabox.models import STATUS_COMPLETED, STATUS_FAILED, TASK_ANALYZE_IDEA, EnrichmentTask
from ideabox.storage.repository import Repository

logger = logging.getLogger(__name__)


@dataclass
class BatchReport:
    completed: list[int] = field(default_factory=list)
    failed: list[int] = field(default_factory=list)
    skipped: list[int] = field(default_factory=list)  # claimed by another worker

    @property
    def processed(self) -> int:
        return len(self.completed) + len(self.failed)


def parse_idea_payload(raw: str) -> int:
    """Extract the idea id from an analyze_idea payload like {"ideaId": 3}."""
    try:
        data = json.loads(raw)
    except (TypeError, json.JSONDecodeError) as e:
        raise MalformedPayloadError(f"Task payload is not valid JSON: {e}") from e

    if not isinstance(data, dict):
        raise MalformedPayloadError(f"Task payload must be an object, got {type(data).__name__}")
    idea_id = data.get("ideaId")
    # bool is an int subclass
    if not isinstance(idea_id, int) or isinstance(idea_id, bool):
        raise MalformedPayloadError(f"Task payload has no integer ideaId: {raw[:200]}")
    return idea_id


def analyze_idea(repo: Repository, config: Config, idea_id: int) -> dict:
    """Tag an idea from its text, link it to related ideas and summarize it."""
    idea = repo.get_idea(idea_id)
    if idea is None:
        raise IdeaNotFoundError(idea_id)

    keywords = extract_keywords(idea.content, config.keywords)

    for name in keywords:
        if name in idea.tags:
            continue
        tag = resolve_tag(repo, name)
        repo.attach_tag(idea.id, tag.id)

    relations = link_related_ideas(
        repo,
        idea.id,
        keywords,
        limit=config.related_limit,
        strength=config.relation_strength,
    )
    summary = generate_summary(repo, idea.id, keywords)

    return {
        "success": True,
        "tags": list(keywords),
        "related": [r.target_id for r in relations],
        "summaryId": summary.id,
    }


def _handle_analyze_idea(repo: Repository, config: Config, task: EnrichmentTask) -> dict:
    return analyze_idea(repo, config, parse_idea_payload(task.data))


TaskHandler = Callable[[Repository, Config, EnrichmentTask], dict]

HANDLERS: dict[str, TaskHandler] = {
    TASK_ANALYZE_IDEA: _handle_analyze_idea,
}


class TaskProcessor:
    """Drains the enrichment task queue one batch at a time."""

    def __init__(
        self,
        repo: Repository,
        config: Config | None = None,
        handlers: dict[str, TaskHandler] | None = None,
    ) -> None:
        self._repo = repo
        self._config = config or Config()
        self._handlers = dict(HANDLERS if handlers is None else handlers)

    def process_pending(self) -> BatchReport:
        """Process up to batch_size pending tasks."""
        report = BatchReport()
        tasks = self._repo.find_pending_tasks(self._config.batch_size)
        if not tasks:
            logger.debug("No pending enrichment tasks")
            return report

        logger.info(f"Processing {len(tasks)} enrichment task(s)...")
        for task in tasks:
            self._process_task(task, report)

        logger.info(
            f"Batch done: {len(report.completed)} completed, {len(report.failed)} failed, "
            f"{len(report.skipped)} skipped"
        )
        return report

    def _process_task(self, task: EnrichmentTask, report: BatchReport) -> None:
        if not self._repo.claim_task(task.id):
            logger.info(f"Task {task.id} already claimed, skipping")
            report.skipped.append(task.id)
            return

        started = time.monotonic()
        try:
            result = self._dispatch(task)
        except Exception as e:
            logger.exception(f"Error processing task {task.id}")
            self._record(task.id, STATUS_FAILED, {"error": str(e)}, report.failed)
        else:
            self._record(task.id, STATUS_COMPLETED, result, report.completed)
            logger.info(f"Task {task.id} completed successfully")
        finally:
            elapsed = time.monotonic() - started
            if elapsed > self._config.task_warn_seconds:
                logger.warning(f"Task {task.id} took {elapsed:.1f}s")

    def _dispatch(self, task: EnrichmentTask) -> dict:
        handler = self._handlers.get(task.type)
        if handler is None:
            raise UnknownTaskKindError(task.type)
        return handler(self._repo, self._config, task)

    def _record(self, task_id: int, status: str, result: dict, bucket: list[int]) -> None:
        try:
            self._repo.finish_task(task_id, status, result)
        except Exception:
            # Task stays in processing; the rest of the batch still runs.
            logger.exception(f"Could not record status {status} for task {task_id}")
            return
        bucket.append(task_id)
