"""Entry points for triggering ticks, inspecting status and recovery."""

from __future__ import annotations

import logging
import signal
import threading
import time
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field

from news_digest.engine.models import TaskStatusView, TickAction, TickResult
from news_digest.engine.orchestrator import (
    EngineContext,
    TaskOrchestrator,
    default_task_date,
    normalize_task_date,
)
from news_digest.engine.recovery import RecoveryService

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class TriggerReport:
    """Ticks run by one synchronous trigger, plus the resulting status."""

    task_date: str
    ticks: list[TickResult] = field(default_factory=list)
    status: TaskStatusView | None = None

    @property
    def error(self) -> str | None:
        return self.ticks[-1].error if self.ticks else None


@dataclass(slots=True)
class ScheduleSummary:
    runs: int = 0
    ticks: int = 0
    errors: int = 0


class ControlSurface:
    """Library-level control API; the CLI is a thin layer over it."""

    def __init__(self, context: EngineContext) -> None:
        self.context = context
        self.orchestrator = TaskOrchestrator(context)
        self.recovery = RecoveryService(context)
        self._stop_requested = False

    def resolve_date(self, task_date: str | None) -> str:
        if task_date:
            return normalize_task_date(task_date)
        return default_task_date(self.context.clock())

    def trigger_async(self, task_date: str | None = None) -> threading.Thread:
        """Start one tick in a background thread and return immediately."""

        date_key = self.resolve_date(task_date)
        thread = threading.Thread(
            target=self._run_tick_logged,
            args=(date_key,),
            name=f"digest-tick-{date_key}",
        )
        thread.start()
        return thread

    def trigger_sync(
        self,
        task_date: str | None = None,
        *,
        drain: bool = False,
        max_ticks: int | None = None,
    ) -> TriggerReport:
        """Run one tick, or with ``drain`` keep ticking until the task settles.

        Draining stops when the task is published or archived, when a tick
        reports an error, when a tick has nothing to do because another
        invocation holds the remaining items, or after ``max_ticks``.
        """

        date_key = self.resolve_date(task_date)
        limit = 1 if not drain else max_ticks or self.context.settings.engine.drain_max_ticks
        report = TriggerReport(task_date=date_key)
        for _ in range(limit):
            result = self.orchestrator.run_tick(date_key)
            report.ticks.append(result)
            if result.error or result.finished or result.action == TickAction.WAITING:
                break
        report.status = self.get_status(date_key)
        return report

    def get_status(self, task_date: str | None = None) -> TaskStatusView | None:
        return self.context.repository.get_status(self.resolve_date(task_date))

    def retry_failed(self, task_date: str | None = None) -> int:
        return self.recovery.retry_failed(self.resolve_date(task_date))

    def force_publish(self, task_date: str | None = None) -> int:
        return self.recovery.force_publish(self.resolve_date(task_date))

    def reclaim_stuck(self, task_date: str | None = None) -> int:
        return self.recovery.reclaim_stuck(self.resolve_date(task_date))

    def archive(self) -> list[str]:
        return self.recovery.archive_sweep()

    def run_schedule(
        self,
        *,
        interval_seconds: float,
        max_runs: int | None = None,
        drain: bool = True,
    ) -> ScheduleSummary:
        """Timer loop: trigger the default date every ``interval_seconds``.

        SIGINT/SIGTERM stop the loop after the current tick.
        """

        summary = ScheduleSummary()
        self._stop_requested = False
        with self._signal_handlers():
            while not self._stop_requested:
                if max_runs is not None and summary.runs >= max_runs:
                    break
                summary.runs += 1
                try:
                    report = self.trigger_sync(drain=drain)
                except Exception:
                    logger.exception("Scheduled tick failed")
                    summary.errors += 1
                else:
                    summary.ticks += len(report.ticks)
                    if report.error:
                        summary.errors += 1
                if max_runs is not None and summary.runs >= max_runs:
                    break
                self._sleep_with_stop(interval_seconds)
        return summary

    def request_stop(self) -> None:
        self._stop_requested = True

    def _run_tick_logged(self, task_date: str) -> None:
        try:
            self.orchestrator.run_tick(task_date)
        except Exception:
            logger.exception("Background tick for %s failed", task_date)

    def _sleep_with_stop(self, seconds: float) -> None:
        deadline = time.monotonic() + seconds
        while not self._stop_requested and time.monotonic() < deadline:
            time.sleep(min(0.1, max(0.0, deadline - time.monotonic())))

    @contextmanager
    def _signal_handlers(self) -> Iterator[None]:
        original_sigint = signal.getsignal(signal.SIGINT)
        original_sigterm = signal.getsignal(signal.SIGTERM)

        def _handler(signum: int, _: object | None) -> None:
            logger.info("Received %s, stopping after current tick", signal.Signals(signum).name)
            self.request_stop()

        try:
            signal.signal(signal.SIGINT, _handler)
            signal.signal(signal.SIGTERM, _handler)
            installed = True
        except ValueError:
            # Signal handlers can only be installed in main thread.
            installed = False
        try:
            yield
        finally:
            if installed:
                signal.signal(signal.SIGINT, original_sigint)
                signal.signal(signal.SIGTERM, original_sigterm)
