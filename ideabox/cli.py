"""CLI entry point for ideabox."""

from __future__ import annotations

import json
import logging
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Iterator, List, Optional

import typer
from rich import print as rprint
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from ideabox.config import Config
from ideabox.errors import IdeaboxError
from ideabox.jobs import build_scheduler, run_enrichment_tick, run_reminder_tick
from ideabox.models import SORT_ORDERS, TASK_STATUSES
from ideabox.reminders import read_notifications, resolve_notification_path
from ideabox.storage.db import get_connection
from ideabox.storage.exchange import read_import, write_export
from ideabox.storage.repository import Repository

app = typer.Typer(help="Capture ideas, tag them, and let a background job relate them.")

DB_OPTION = typer.Option(None, "--db", help="Database file path (default: IDEABOX_DB_PATH)")


def _setup_logging(level: str) -> None:
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), rich_tracebacks=True, show_path=False)],
        force=True,
    )


def _load_config(db_path: Optional[str]) -> Config:
    config = Config.load()
    if db_path:
        config.db_path = Path(db_path)
    return config


@contextmanager
def _open_repo(db_path: Optional[str]) -> Iterator[Repository]:
    """Open the database, turning ideabox errors into a clean exit."""
    config = _load_config(db_path)
    conn = get_connection(config.db_path)
    try:
        yield Repository(conn)
    except IdeaboxError as e:
        rprint(f"[red]{e}[/red]")
        raise typer.Exit(1)
    finally:
        conn.close()


def _parse_when(value: str) -> datetime:
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        rprint(f"[red]Not an ISO date/time: {value}[/red]")
        raise typer.Exit(1)


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug logging"),
) -> None:
    config = Config.load()
    _setup_logging("DEBUG" if verbose else config.log_level)


@app.command()
def add(
    content: str = typer.Argument(help="The idea text"),
    tag: List[str] = typer.Option([], "--tag", "-t", help="Tag to attach (repeatable)"),
    importance: int = typer.Option(1, "--importance", "-i", min=1, max=5, help="1 (low) to 5 (high)"),
    db_path: Optional[str] = DB_OPTION,
) -> None:
    """Capture a new idea. It is queued for background analysis."""
    with _open_repo(db_path) as repo:
        idea = repo.create_idea(content, tags=tag, importance=importance)
        rprint(f"[green]Saved idea {idea.id}[/green]")
        if idea.tags:
            rprint(f"  Tags: {', '.join(idea.tags)}")


@app.command("list")
def list_ideas(
    sort: str = typer.Option("created", help="Sort order: created or importance"),
    tag: Optional[str] = typer.Option(None, "--tag", "-t", help="Only ideas with this tag"),
    search: Optional[str] = typer.Option(None, "--search", "-s", help="Substring to search for"),
    limit: Optional[int] = typer.Option(None, "--limit", "-n", help="Max ideas to show"),
    archived: bool = typer.Option(False, "--archived", help="Include archived ideas"),
    as_json: bool = typer.Option(False, "--json", help="Output JSON"),
    db_path: Optional[str] = DB_OPTION,
) -> None:
    """List ideas, newest first."""
    if sort not in SORT_ORDERS:
        rprint(f"[red]Unknown sort order: {sort}[/red]")
        raise typer.Exit(1)
    with _open_repo(db_path) as repo:
        ideas = repo.list_ideas(
            sort=sort, tag=tag, search=search, limit=limit, include_archived=archived
        )

        if as_json:
            typer.echo(
                json.dumps(
                    [
                        {
                            "id": i.id,
                            "content": i.content,
                            "importance": i.importance,
                            "is_archived": i.is_archived,
                            "tags": i.tags,
                            "created_at": i.created_at.isoformat(),
                        }
                        for i in ideas
                    ],
                    ensure_ascii=False,
                )
            )
            return

        if not ideas:
            rprint("[yellow]No ideas found.[/yellow]")
            return

        table = Table("ID", "Idea", "Importance", "Tags", "Created")
        for idea in ideas:
            table.add_row(
                str(idea.id),
                idea.content if len(idea.content) <= 60 else idea.content[:57] + "...",
                "★" * idea.importance,
                ", ".join(idea.tags),
                idea.created_at.strftime("%Y-%m-%d %H:%M"),
            )
        rprint(table)


@app.command()
def show(
    idea_id: int = typer.Argument(help="Idea ID"),
    as_json: bool = typer.Option(False, "--json", help="Output JSON"),
    db_path: Optional[str] = DB_OPTION,
) -> None:
    """Show an idea with its tags, reminders, related ideas and summaries."""
    with _open_repo(db_path) as repo:
        detail = repo.get_idea_detail(idea_id)
        if detail is None:
            rprint(f"[red]Idea {idea_id} not found[/red]")
            raise typer.Exit(1)

        if as_json:
            typer.echo(json.dumps(detail, ensure_ascii=False, default=str))
            return

        status = " [dim](archived)[/dim]" if detail["is_archived"] else ""
        rprint(f"[bold]Idea {detail['id']}[/bold]{status}")
        rprint(f"  {detail['content']}")
        rprint(f"  Importance: {detail['importance']}")
        rprint(f"  Tags: {', '.join(detail['tags']) or '-'}")
        for reminder in detail["reminders"]:
            state = "done" if reminder["is_completed"] else "open"
            rprint(f"  Reminder {reminder['id']}: {reminder['due_at']} ({state})")
        if detail["relations"]:
            rprint("\n[bold]Related:[/bold]")
            for rel in detail["relations"]:
                rprint(f"  → {rel['target_id']} ({rel['strength']:.1f}, {rel['created_by']}): {rel['target_content']}")
        if detail["summaries"]:
            rprint("\n[bold]Summaries:[/bold]")
            for summary in detail["summaries"]:
                rprint(f"  ({summary['type']}) {summary['content']}")


@app.command()
def edit(
    idea_id: int = typer.Argument(help="Idea ID"),
    content: Optional[str] = typer.Option(None, "--content", "-c", help="New text"),
    tag: Optional[List[str]] = typer.Option(None, "--tag", "-t", help="Replace tags (repeatable)"),
    importance: Optional[int] = typer.Option(None, "--importance", "-i", min=1, max=5),
    clear_tags: bool = typer.Option(False, "--clear-tags", help="Remove all tags"),
    db_path: Optional[str] = DB_OPTION,
) -> None:
    """Edit an idea. It is queued for analysis again."""
    if clear_tags and tag:
        rprint("[red]Use either --tag or --clear-tags, not both[/red]")
        raise typer.Exit(1)
    new_tags = [] if clear_tags else (tag or None)
    with _open_repo(db_path) as repo:
        idea = repo.update_idea(idea_id, content=content, tags=new_tags, importance=importance)
        rprint(f"[green]Updated idea {idea.id}[/green]")


@app.command()
def archive(
    idea_id: int = typer.Argument(help="Idea ID"),
    db_path: Optional[str] = DB_OPTION,
) -> None:
    """Archive an idea (ideas are never deleted)."""
    with _open_repo(db_path) as repo:
        repo.archive_idea(idea_id)
        rprint(f"Archived idea {idea_id}")


@app.command()
def tags(db_path: Optional[str] = DB_OPTION) -> None:
    """List tags with their idea counts."""
    with _open_repo(db_path) as repo:
        all_tags = repo.list_tags()
        if not all_tags:
            rprint("[yellow]No tags yet.[/yellow]")
            return
        for t in all_tags:
            rprint(f"  {t['name']}: {t['idea_count']} idea(s)")


@app.command()
def remind(
    idea_id: int = typer.Argument(help="Idea ID"),
    due: str = typer.Argument(help="When, as ISO date/time (2024-06-01T09:00)"),
    db_path: Optional[str] = DB_OPTION,
) -> None:
    """Set a reminder on an idea."""
    due_at = _parse_when(due)
    with _open_repo(db_path) as repo:
        reminder = repo.create_reminder(idea_id, due_at)
        rprint(f"[green]Reminder {reminder.id} set for {due_at:%Y-%m-%d %H:%M}[/green]")


@app.command()
def reminders(
    due: bool = typer.Option(False, "--due", help="Only reminders that are due now"),
    idea_id: Optional[int] = typer.Option(None, "--idea", help="Only reminders of this idea"),
    db_path: Optional[str] = DB_OPTION,
) -> None:
    """List reminders."""
    with _open_repo(db_path) as repo:
        if due:
            items = repo.get_due_reminders(datetime.now())
            if not items:
                rprint("No reminders due.")
            for r in items:
                rprint(f"  [bold]{r['id']}[/bold] {r['due_at']} idea {r['idea_id']}: {r['idea_content']}")
            return

        items = repo.list_reminders(idea_id=idea_id)
        if not items:
            rprint("No reminders.")
        for r in items:
            state = "[green]done[/green]" if r.is_completed else "open"
            rprint(f"  [bold]{r.id}[/bold] {r.due_at:%Y-%m-%d %H:%M} idea {r.idea_id} ({state})")


@app.command()
def done(
    reminder_id: int = typer.Argument(help="Reminder ID"),
    db_path: Optional[str] = DB_OPTION,
) -> None:
    """Mark a reminder as completed."""
    with _open_repo(db_path) as repo:
        repo.update_reminder(reminder_id, is_completed=True)
        rprint(f"Reminder {reminder_id} completed")


@app.command()
def settings(db_path: Optional[str] = DB_OPTION) -> None:
    """Show stored settings."""
    with _open_repo(db_path) as repo:
        values = repo.get_settings()
        if not values:
            rprint("No settings stored.")
        for key, value in values.items():
            rprint(f"  {key} = {value}")


@app.command("set")
def set_setting(
    key: str = typer.Argument(help="Setting name"),
    value: str = typer.Argument(help="Setting value"),
    db_path: Optional[str] = DB_OPTION,
) -> None:
    """Store a setting."""
    with _open_repo(db_path) as repo:
        repo.update_settings({key: value})
        rprint(f"{key} = {value}")


@app.command("export")
def export_cmd(
    output: str = typer.Argument("ideabox-export.json", help="Output JSON file"),
    db_path: Optional[str] = DB_OPTION,
) -> None:
    """Export all ideas, tags and settings to JSON."""
    with _open_repo(db_path) as repo:
        path = write_export(repo, Path(output))
        stats = repo.get_stats()
        rprint(f"[green]Exported {stats['total_ideas']} ideas to {path}[/green]")


@app.command("import")
def import_cmd(
    source: str = typer.Argument(help="JSON file produced by 'ideabox export'"),
    db_path: Optional[str] = DB_OPTION,
) -> None:
    """Import ideas, tags and settings from a JSON export."""
    path = Path(source)
    if not path.exists():
        rprint(f"[red]File not found: {path}[/red]")
        raise typer.Exit(1)
    with _open_repo(db_path) as repo:
        report = read_import(repo, path)
        rprint(
            f"[green]Imported {report.ideas} ideas, {report.tags} tags, "
            f"{report.reminders} reminders, {report.settings} settings[/green]"
        )


@app.command()
def tasks(
    status: Optional[str] = typer.Option(None, help=f"Filter by status: {', '.join(TASK_STATUSES)}"),
    limit: int = typer.Option(20, help="Max tasks to show"),
    db_path: Optional[str] = DB_OPTION,
) -> None:
    """Show the enrichment task queue."""
    if status and status not in TASK_STATUSES:
        rprint(f"[red]Unknown status: {status}[/red]")
        raise typer.Exit(1)
    with _open_repo(db_path) as repo:
        items = repo.list_tasks(status=status, limit=limit)
        if not items:
            rprint("No tasks.")
        for t in items:
            rprint(f"  {t.id} {t.type} ({t.status}) priority={t.priority} data={t.data} result={t.result or '-'}")


@app.command()
def process(db_path: Optional[str] = DB_OPTION) -> None:
    """Run one enrichment batch now."""
    config = _load_config(db_path)
    report = run_enrichment_tick(config)
    rprint(
        f"Processed {report.processed} task(s): "
        f"[green]{len(report.completed)} completed[/green], "
        f"[red]{len(report.failed)} failed[/red]"
    )


@app.command("check-reminders")
def check_reminders(db_path: Optional[str] = DB_OPTION) -> None:
    """Check for due reminders now and write notifications."""
    config = _load_config(db_path)
    due = run_reminder_tick(config)
    rprint(f"{len(due)} reminder(s) due")


@app.command()
def notifications(
    limit: int = typer.Option(20, help="Max entries to show"),
    db_path: Optional[str] = DB_OPTION,
) -> None:
    """Show recent reminder notifications."""
    config = _load_config(db_path)
    entries = read_notifications(limit=limit, log_path=resolve_notification_path(config.db_path))
    if not entries:
        rprint("No notifications.")
    for e in entries:
        rprint(f"  {e['timestamp']} reminder {e['reminder_id']} (idea {e['idea_id']}): {e['content_preview']}")


@app.command()
def stats(db_path: Optional[str] = DB_OPTION) -> None:
    """Show statistics about stored ideas and the task queue."""
    with _open_repo(db_path) as repo:
        s = repo.get_stats()
        rprint("[bold]ideabox statistics:[/bold]")
        rprint(f"  Ideas:          {s['total_ideas']} ({s['archived_ideas']} archived)")
        rprint(f"  Tags:           {s['total_tags']}")
        rprint(f"  Relations:      {s['total_relations']}")
        rprint(f"  Summaries:      {s['total_summaries']}")
        rprint(f"  Open reminders: {s['open_reminders']}")
        rprint("  Tasks:          " + ", ".join(f"{k} {v}" for k, v in s["tasks"].items()))


@app.command()
def run(db_path: Optional[str] = DB_OPTION) -> None:
    """Run the background jobs until interrupted."""
    config = _load_config(db_path)
    issues = config.validate()
    if issues:
        for issue in issues:
            rprint(f"[red]Config error: {issue}[/red]")
        raise typer.Exit(1)

    scheduler = build_scheduler(config)
    scheduler.start()
    rprint(
        f"Running: enrichment every {config.task_interval}s, "
        f"reminders every {config.reminder_interval}s. Ctrl-C to stop."
    )
    try:
        scheduler.wait()
    except KeyboardInterrupt:
        rprint("\nStopping...")
    finally:
        scheduler.stop(timeout=10)


if __name__ == "__main__":
    app()
