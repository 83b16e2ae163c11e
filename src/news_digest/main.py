"""CLI entrypoint for news-digest."""

import logging
from collections.abc import Callable
from pathlib import Path

import rich_click as click

from news_digest import __version__
from news_digest.controllers import (
    TaskArchiveCommand,
    TaskCliController,
    TaskCommandResult,
    TaskDateCommand,
    TaskEventsCommand,
    TaskListCommand,
    TaskScheduleCommand,
    TaskTickCommand,
    TaskTriggerCommand,
)
from news_digest.engine.models import TaskStatus

click.rich_click.USE_MARKDOWN = True
TASK_CONTROLLER = TaskCliController()
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")


@click.group()
@click.version_option(version=__version__, prog_name="news-digest")
@click.option(
    "--log-level",
    type=click.Choice(LOG_LEVELS, case_sensitive=False),
    default=None,
    help="Configure console logging at this level.",
)
def news_digest(log_level: str | None) -> None:
    """Daily Hacker News digest engine."""

    if log_level is not None:
        logging.basicConfig(
            level=log_level.upper(),
            format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        )


@news_digest.group()
def task() -> None:
    """Daily task commands."""


@task.command("tick")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.option("--date", "task_date", default=None, help="Task date, YYYY-MM-DD.")
@click.option(
    "--drain/--no-drain",
    default=False,
    show_default=True,
    help="Keep ticking until the task is published, blocked, or fails.",
)
@click.option(
    "--max-ticks",
    type=click.IntRange(min=1),
    default=None,
    help="Upper bound on ticks with --drain.",
)
def task_tick(
    db_path: Path | None,
    task_date: str | None,
    drain: bool,
    max_ticks: int | None,
) -> None:
    """Advance the daily task by one phase."""

    _run(
        lambda: TASK_CONTROLLER.tick(
            TaskTickCommand(
                db_path=db_path,
                task_date=task_date,
                drain=drain,
                max_ticks=max_ticks,
            ),
        ),
        failure_message="Tick failed.",
    )


@task.command("trigger")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.option("--date", "task_date", default=None, help="Task date, YYYY-MM-DD.")
@click.option(
    "--wait/--no-wait",
    default=True,
    show_default=True,
    help="Run the tick in this process, or detach it and return immediately.",
)
@click.option("--drain/--no-drain", default=False, show_default=True, help="Tick until settled.")
def task_trigger(db_path: Path | None, task_date: str | None, wait: bool, drain: bool) -> None:
    """Trigger a tick, synchronously or in the background."""

    _run(
        lambda: TASK_CONTROLLER.trigger(
            TaskTriggerCommand(db_path=db_path, task_date=task_date, wait=wait, drain=drain),
        ),
        failure_message="Tick failed.",
    )


@task.command("status")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.option("--date", "task_date", default=None, help="Task date, YYYY-MM-DD.")
def task_status(db_path: Path | None, task_date: str | None) -> None:
    """Show task status and item counts."""

    _run(lambda: TASK_CONTROLLER.status(TaskDateCommand(db_path=db_path, task_date=task_date)))


@task.command("list")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.option(
    "--status",
    type=click.Choice([status.value for status in TaskStatus], case_sensitive=False),
    default=None,
    help="Only tasks in this status.",
)
@click.option(
    "--limit",
    type=click.IntRange(min=1, max=1000),
    default=30,
    show_default=True,
    help="Max tasks to print.",
)
def task_list(db_path: Path | None, status: str | None, limit: int) -> None:
    """List recent daily tasks."""

    _run(
        lambda: TASK_CONTROLLER.list_tasks(
            TaskListCommand(db_path=db_path, status=status, limit=limit),
        ),
    )


@task.command("retry-failed")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.option("--date", "task_date", default=None, help="Task date, YYYY-MM-DD.")
def task_retry_failed(db_path: Path | None, task_date: str | None) -> None:
    """Re-queue failed items that still have retries left."""

    _run(
        lambda: TASK_CONTROLLER.retry_failed(
            TaskDateCommand(db_path=db_path, task_date=task_date),
        ),
    )


@task.command("force-publish")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.option("--date", "task_date", default=None, help="Task date, YYYY-MM-DD.")
def task_force_publish(db_path: Path | None, task_date: str | None) -> None:
    """Publish completed items now, regardless of pending work."""

    _run(
        lambda: TASK_CONTROLLER.force_publish(
            TaskDateCommand(db_path=db_path, task_date=task_date),
        ),
    )


@task.command("archive")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
def task_archive(db_path: Path | None) -> None:
    """Archive published tasks older than the retention window."""

    _run(lambda: TASK_CONTROLLER.archive(TaskArchiveCommand(db_path=db_path)))


@task.command("batches")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.option("--date", "task_date", default=None, help="Task date, YYYY-MM-DD.")
def task_batches(db_path: Path | None, task_date: str | None) -> None:
    """Show batch audit records and statistics."""

    _run(lambda: TASK_CONTROLLER.batches(TaskDateCommand(db_path=db_path, task_date=task_date)))


@task.command("events")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.option("--date", "task_date", default=None, help="Task date, YYYY-MM-DD.")
@click.option("--type", "event_type", default=None, help="Only events of this type.")
@click.option(
    "--limit",
    type=click.IntRange(min=1, max=1000),
    default=50,
    show_default=True,
    help="Print at most this many of the latest events.",
)
def task_events(
    db_path: Path | None,
    task_date: str | None,
    event_type: str | None,
    limit: int,
) -> None:
    """Show the task audit trail."""

    _run(
        lambda: TASK_CONTROLLER.events(
            TaskEventsCommand(
                db_path=db_path,
                task_date=task_date,
                event_type=event_type,
                limit=limit,
            ),
        ),
    )


@task.command("schedule")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.option(
    "--interval",
    "interval_seconds",
    type=click.IntRange(min=1),
    default=None,
    help="Seconds between runs (default: NEWS_DIGEST_SCHEDULE_INTERVAL_SECONDS).",
)
@click.option(
    "--max-runs",
    type=click.IntRange(min=1),
    default=None,
    help="Stop after this many runs.",
)
@click.option("--drain/--no-drain", default=True, show_default=True, help="Tick until settled.")
def task_schedule(
    db_path: Path | None,
    interval_seconds: int | None,
    max_runs: int | None,
    drain: bool,
) -> None:
    """Trigger the default date on a timer until SIGINT/SIGTERM."""

    _run(
        lambda: TASK_CONTROLLER.schedule(
            TaskScheduleCommand(
                db_path=db_path,
                interval_seconds=interval_seconds,
                max_runs=max_runs,
                drain=drain,
            ),
        ),
    )


def _run(
    action: Callable[[], TaskCommandResult],
    *,
    failure_message: str = "Command failed.",
) -> None:
    try:
        result = action()
    except (ValueError, RuntimeError) as error:
        raise click.ClickException(str(error)) from error
    _emit_lines(result.lines)
    if not result.success:
        raise click.ClickException(failure_message)


def _emit_lines(lines: list[str]) -> None:
    for line in lines:
        click.echo(line)


if __name__ == "__main__":  # pragma: no cover
    news_digest()
