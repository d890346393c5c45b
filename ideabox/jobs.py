"""The two background ticks: enrichment queue and reminder check.

Each tick opens its own SQLite connection, since the scheduler thread
cannot share the connection of the thread that built it.
"""

from __future__ import annotations

import logging
from contextlib import closing
from datetime import datetime
from pathlib import Path

from ideabox.config import Config
from ideabox.enrichment.processor import BatchReport, TaskProcessor
from ideabox.reminders import check_due_reminders, resolve_notification_path
from ideabox.scheduler import Clock, Scheduler, SystemClock
from ideabox.storage.db import get_connection
from ideabox.storage.repository import Repository

logger = logging.getLogger(__name__)

ENRICHMENT_JOB = "enrichment"
REMINDER_JOB = "reminders"


def run_enrichment_tick(config: Config) -> BatchReport:
    with closing(get_connection(config.db_path)) as conn:
        return TaskProcessor(Repository(conn), config).process_pending()


def run_reminder_tick(
    config: Config,
    now: datetime | None = None,
    notification_log: Path | None = None,
) -> list[dict]:
    log_path = notification_log or resolve_notification_path(config.db_path)
    with closing(get_connection(config.db_path)) as conn:
        return check_due_reminders(Repository(conn), now=now, notification_log=log_path)


def build_scheduler(
    config: Config,
    clock: Clock | None = None,
    poll_seconds: float = 1.0,
) -> Scheduler:
    """Create a scheduler with the enrichment and reminder jobs registered."""
    clock = clock or SystemClock()
    scheduler = Scheduler(clock=clock, poll_seconds=poll_seconds)
    scheduler.every(config.task_interval, ENRICHMENT_JOB, lambda: run_enrichment_tick(config))
    scheduler.every(
        config.reminder_interval,
        REMINDER_JOB,
        lambda: run_reminder_tick(config, now=clock.now()),
    )
    return scheduler
