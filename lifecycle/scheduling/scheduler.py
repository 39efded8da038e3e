"""Daily trigger for the verification scan."""

from __future__ import annotations

import logging
import threading
from datetime import datetime
from pathlib import Path
from typing import Callable, Protocol
from zoneinfo import ZoneInfo

from croniter import croniter

from lifecycle.common.constants import DEFAULT_SCHEDULE_CRON
from lifecycle.common.errors import ConfigError, LifecycleError
from lifecycle.common.logging import get_logger, log_event
from lifecycle.common.models import BatchReport
from lifecycle.common.time_utils import ensure_utc, utc_now
from lifecycle.verification.reports import write_batch_report
from lifecycle.verification.scanner import VerificationScanner

LOGGER = get_logger("scheduling")


class Trigger(Protocol):
    def next_fire(self, after: datetime) -> datetime: ...


class CronTrigger:
    """Cron expression evaluated in a fixed timezone; fire times are returned in UTC."""

    def __init__(self, expression: str = DEFAULT_SCHEDULE_CRON, timezone: str = "UTC") -> None:
        if not croniter.is_valid(expression):
            raise ConfigError(f"Invalid cron expression: {expression}")
        self.expression = expression
        self.tz = ZoneInfo(timezone)

    @classmethod
    def from_config(cls, cfg: dict) -> "CronTrigger":
        schedule = cfg.get("schedule") or {}
        return cls(schedule.get("cron", DEFAULT_SCHEDULE_CRON), schedule.get("timezone", "UTC"))

    def next_fire(self, after: datetime) -> datetime:
        local = ensure_utc(after).astimezone(self.tz)
        return ensure_utc(croniter(self.expression, local).get_next(datetime))


class Scheduler:
    """Runs one scan per trigger fire on a background thread.

    ``run_once`` is the synchronous entry point used by operators and tests;
    the background loop calls it with the clock's current time.
    """

    def __init__(
        self,
        scanner: VerificationScanner,
        trigger: Trigger,
        *,
        clock: Callable[[], datetime] = utc_now,
        reports_dir: Path | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self.scanner = scanner
        self.trigger = trigger
        self.clock = clock
        self.reports_dir = reports_dir
        self.logger = logger or LOGGER
        self.last_report: BatchReport | None = None
        self._stop = threading.Event()
        self._cancel = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def run_once(
        self,
        now: datetime | None = None,
        cancel: threading.Event | None = None,
        *,
        run_id: str | None = None,
    ) -> BatchReport:
        report = self.scanner.scan(now if now is not None else self.clock(), cancel, run_id=run_id)
        self.last_report = report
        log_event(
            self.logger,
            (
                f"verification run {report.status}: checked={report.total} reminders={report.reminders_sent} "
                f"unverified={report.unverified_count} errors={len(report.errors)}"
            ),
            level=logging.INFO if report.status == "success" else logging.WARNING,
            run_id=report.run_id,
            component="scheduler",
            event="RUN_SUMMARY",
            status=report.status,
        )
        for error in report.errors:
            log_event(
                self.logger,
                error.message,
                level=logging.ERROR,
                run_id=report.run_id,
                component="scheduler",
                organisation_id=error.organisation_id,
                event="RUN_ERROR",
                status="error",
                error_code=error.error_code,
            )
        if self.reports_dir is not None:
            write_batch_report(report, self.reports_dir)
        return report

    def _loop(self) -> None:
        while not self._stop.is_set():
            now = self.clock()
            fire_at = self.trigger.next_fire(now)
            wait_seconds = max((fire_at - ensure_utc(now)).total_seconds(), 0.0)
            log_event(
                self.logger,
                f"next verification run at {fire_at.isoformat()}",
                component="scheduler",
                event="SCHEDULE_WAIT",
                status="ok",
            )
            if self._stop.wait(wait_seconds):
                break
            self._cancel.clear()
            try:
                self.run_once(self.clock(), self._cancel)
            except LifecycleError as exc:
                log_event(
                    self.logger,
                    f"fatal error in verification run: {exc}",
                    level=logging.ERROR,
                    component="scheduler",
                    event="RUN_FAIL",
                    status="error",
                    error_code=exc.error_code,
                )
            except Exception:
                self.logger.exception("unexpected failure in verification run")

    def start(self) -> None:
        if self.running:
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._loop, name="verification-scheduler", daemon=True)
        self._thread.start()
        log_event(
            self.logger,
            "verification scheduler started",
            component="scheduler",
            event="SCHEDULER_START",
            status="ok",
        )

    def wait(self, timeout: float | None = None) -> bool:
        """Block until ``stop`` is called or ``timeout`` elapses."""
        return self._stop.wait(timeout)

    def stop(self, timeout: float | None = 30.0) -> None:
        """Stop the loop and cancel an in-flight run; started organisations finish."""
        self._stop.set()
        self._cancel.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
        log_event(
            self.logger,
            "verification scheduler stopped",
            component="scheduler",
            event="SCHEDULER_STOP",
            status="ok",
        )
