"""Controllers for daily task CLI commands."""

from __future__ import annotations

import os
import subprocess
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path

from news_digest.config import Settings
from news_digest.engine.control import ControlSurface, TriggerReport
from news_digest.engine.models import TaskStatus, TaskStatusView, TickResult
from news_digest.engine.orchestrator import default_task_date, normalize_task_date
from news_digest.engine.repository import TaskRepository
from news_digest.wiring import engine_context


@dataclass(slots=True)
class TaskTickCommand:
    """CLI input for a synchronous tick."""

    db_path: Path | None
    task_date: str | None
    drain: bool = False
    max_ticks: int | None = None


@dataclass(slots=True)
class TaskTriggerCommand:
    """CLI input for trigger; ``wait=False`` detaches the tick into a subprocess."""

    db_path: Path | None
    task_date: str | None
    wait: bool
    drain: bool = False


@dataclass(slots=True)
class TaskDateCommand:
    """CLI input for commands that act on one task date."""

    db_path: Path | None
    task_date: str | None


@dataclass(slots=True)
class TaskListCommand:
    db_path: Path | None
    status: str | None
    limit: int


@dataclass(slots=True)
class TaskEventsCommand:
    db_path: Path | None
    task_date: str | None
    event_type: str | None
    limit: int


@dataclass(slots=True)
class TaskArchiveCommand:
    db_path: Path | None


@dataclass(slots=True)
class TaskScheduleCommand:
    """CLI input for the timer loop."""

    db_path: Path | None
    interval_seconds: int | None
    max_runs: int | None
    drain: bool = True


@dataclass(slots=True)
class TaskCommandResult:
    """Lines to print plus whether the command should exit non-zero."""

    lines: list[str]
    success: bool = True


class TaskCliController:
    """Coordinates tick, trigger, inspection and recovery CLI operations."""

    def tick(self, command: TaskTickCommand) -> TaskCommandResult:
        settings = _validated_settings(command.db_path)
        with _control(settings) as control:
            report = control.trigger_sync(
                command.task_date,
                drain=command.drain,
                max_ticks=command.max_ticks,
            )
        return _trigger_result(report)

    def trigger(self, command: TaskTriggerCommand) -> TaskCommandResult:
        if command.wait:
            return self.tick(
                TaskTickCommand(
                    db_path=command.db_path,
                    task_date=command.task_date,
                    drain=command.drain,
                ),
            )

        settings = _validated_settings(command.db_path)
        date_key = (
            normalize_task_date(command.task_date) if command.task_date else default_task_date()
        )
        args = [
            sys.executable,
            "-m",
            "news_digest.main",
            "task",
            "tick",
            "--date",
            date_key,
            "--db-path",
            str(settings.db_path),
        ]
        if command.drain:
            args.append("--drain")
        process = subprocess.Popen(  # noqa: S603
            args,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
            start_new_session=True,
            env=os.environ.copy(),
        )
        return TaskCommandResult(
            lines=[f"Tick for {date_key} started in background: pid={process.pid}"],
        )

    def status(self, command: TaskDateCommand) -> TaskCommandResult:
        settings = Settings.from_env(db_path=command.db_path)
        date_key = _resolve_date(command.task_date)
        with _repository(settings) as repository:
            view = repository.get_status(date_key)
        if view is None:
            return TaskCommandResult(lines=[f"Task not found: {date_key}"])
        return TaskCommandResult(lines=_status_lines(view))

    def list_tasks(self, command: TaskListCommand) -> TaskCommandResult:
        settings = Settings.from_env(db_path=command.db_path)
        status_filter = TaskStatus(command.status.strip().lower()) if command.status else None
        with _repository(settings) as repository:
            tasks = repository.list_tasks(status=status_filter, limit=command.limit)

        lines = [f"Tasks: {len(tasks)}"]
        for task in tasks:
            lines.append(
                f"  {task.task_date} status={task.status.value} total={task.total_items} "
                f"completed={task.completed_count} failed={task.failed_count} "
                f"updated_at={task.updated_at.isoformat()}",
            )
        return TaskCommandResult(lines=lines)

    def retry_failed(self, command: TaskDateCommand) -> TaskCommandResult:
        settings = _validated_settings(command.db_path)
        with _control(settings) as control:
            date_key = control.resolve_date(command.task_date)
            reset = control.retry_failed(date_key)
        return TaskCommandResult(lines=[f"Failed items re-queued for {date_key}: {reset}"])

    def force_publish(self, command: TaskDateCommand) -> TaskCommandResult:
        settings = _validated_settings(command.db_path)
        with _control(settings) as control:
            date_key = control.resolve_date(command.task_date)
            items = control.force_publish(date_key)
        return TaskCommandResult(lines=[f"Task {date_key} force-published with {items} items"])

    def archive(self, command: TaskArchiveCommand) -> TaskCommandResult:
        settings = _validated_settings(command.db_path)
        with _control(settings) as control:
            archived = control.archive()
        lines = [f"Archived tasks: {len(archived)}"]
        lines.extend(f"  {task_date}" for task_date in archived)
        return TaskCommandResult(lines=lines)

    def batches(self, command: TaskDateCommand) -> TaskCommandResult:
        settings = Settings.from_env(db_path=command.db_path)
        date_key = _resolve_date(command.task_date)
        with _repository(settings) as repository:
            stats = repository.batch_statistics(date_key)
            batches = repository.list_batches(date_key)

        lines = [
            f"Batches for {date_key}: {stats.batches}",
            f"Items: {stats.items} external_calls={stats.external_calls} "
            f"avg_duration_ms={stats.average_duration_ms:.0f}",
            "By status: "
            + (
                ", ".join(f"{name}={count}" for name, count in sorted(stats.by_status.items()))
                or "-"
            ),
        ]
        for batch in batches:
            lines.append(
                f"  #{batch.batch_index} status={batch.status.value} items={batch.item_count} "
                f"calls={batch.external_call_count} duration_ms={batch.duration_ms} "
                f"error={batch.error_message or '-'}",
            )
        return TaskCommandResult(lines=lines)

    def events(self, command: TaskEventsCommand) -> TaskCommandResult:
        settings = Settings.from_env(db_path=command.db_path)
        date_key = _resolve_date(command.task_date)
        with _repository(settings) as repository:
            events = repository.list_events(date_key, event_type=command.event_type)

        selected = events[-command.limit :] if command.limit else events
        lines = [f"Events for {date_key}: {len(events)}"]
        for event in selected:
            transition = ""
            if event.status_from or event.status_to:
                transition = (
                    f" {event.status_from.value if event.status_from else '-'} -> "
                    f"{event.status_to.value if event.status_to else '-'}"
                )
            details = " ".join(f"{key}={value}" for key, value in sorted(event.details.items()))
            lines.append(
                f"  {event.created_at.isoformat()} {event.event_type}{transition}"
                + (f" {details}" if details else ""),
            )
        return TaskCommandResult(lines=lines)

    def schedule(self, command: TaskScheduleCommand) -> TaskCommandResult:
        settings = _validated_settings(command.db_path)
        interval = command.interval_seconds or settings.engine.schedule_interval_seconds
        with _control(settings) as control:
            summary = control.run_schedule(
                interval_seconds=interval,
                max_runs=command.max_runs,
                drain=command.drain,
            )
        return TaskCommandResult(
            lines=[
                f"Schedule stopped: runs={summary.runs} ticks={summary.ticks} "
                f"errors={summary.errors}",
            ],
        )


def _validated_settings(db_path: Path | None) -> Settings:
    settings = Settings.from_env(db_path=db_path)
    settings.validate()
    return settings


def _resolve_date(task_date: str | None) -> str:
    return normalize_task_date(task_date) if task_date else default_task_date()


def _trigger_result(report: TriggerReport) -> TaskCommandResult:
    lines = [_tick_line(tick) for tick in report.ticks]
    if report.status is not None:
        lines.extend(_status_lines(report.status))
    return TaskCommandResult(lines=lines, success=report.error is None)


def _tick_line(tick: TickResult) -> str:
    line = (
        f"Tick {tick.task_date}: {tick.action.value} "
        f"{tick.status_before.value} -> {tick.status_after.value} "
        f"claimed={tick.claimed} completed={tick.completed} failed={tick.failed} "
        f"reclaimed={tick.reclaimed} pending={tick.pending} in_flight={tick.in_flight}"
    )
    if tick.published_items:
        line += f" published_items={tick.published_items}"
    if tick.archived_tasks:
        line += f" archived={tick.archived_tasks}"
    if tick.error:
        line += f" error={tick.error}"
    return line


def _status_lines(view: TaskStatusView) -> list[str]:
    task = view.task
    counts = ", ".join(
        f"{status.value}={count}" for status, count in view.item_counts.items() if count
    )
    lines = [
        f"Task: {task.task_date}",
        f"Status: {task.status.value}",
        f"Items: total={task.total_items} completed={task.completed_count} "
        f"failed={task.failed_count}",
        f"By status: {counts or '-'}",
        f"Batches: {view.batches}",
        f"Updated: {task.updated_at.isoformat()}",
    ]
    if task.published_at is not None:
        lines.append(f"Published: {task.published_at.isoformat()}")
    if task.archived_at is not None:
        lines.append(f"Archived: {task.archived_at.isoformat()}")
    if task.last_error:
        lines.append(f"Last error: {task.last_error}")
    return lines


@contextmanager
def _repository(settings: Settings) -> Iterator[TaskRepository]:
    repository = TaskRepository(
        db_path=settings.db_path,
        sqlite_busy_timeout_ms=settings.sqlite_busy_timeout_ms,
    )
    repository.init_schema()
    try:
        yield repository
    finally:
        repository.close()


@contextmanager
def _control(settings: Settings) -> Iterator[ControlSurface]:
    with _repository(settings) as repository, engine_context(settings, repository) as context:
        yield ControlSurface(context)
