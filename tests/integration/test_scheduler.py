from __future__ import annotations

import threading
import time
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from lifecycle.common.errors import ConfigError
from lifecycle.common.models import BatchReport
from lifecycle.common.time_utils import format_timestamp
from lifecycle.notifications.dispatcher import NotificationDispatcher
from lifecycle.scheduling.scheduler import CronTrigger, Scheduler
from lifecycle.verification.mutator import StateMutator
from lifecycle.verification.reports import read_latest_report
from lifecycle.verification.scanner import VerificationScanner
from lifecycle.verification.store import JsonDocumentStore

NOW = datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc)


class AcceptingTransport:
    def send_template(self, to_email, template_id, data):
        return True


class FireOnceTrigger:
    def __init__(self):
        self.calls = 0

    def next_fire(self, after: datetime) -> datetime:
        self.calls += 1
        return after if self.calls == 1 else after + timedelta(days=1)


class BlockingScanner:
    def __init__(self):
        self.started = threading.Event()
        self.saw_cancel = False

    def scan(self, now, cancel=None, *, run_id=None):
        self.started.set()
        self.saw_cancel = cancel.wait(5)
        return BatchReport(run_id=run_id or "run-blocked", now=now, cancelled=self.saw_cancel)


def _scanner() -> VerificationScanner:
    store = JsonDocumentStore(
        {
            "organisations": [
                {
                    "_id": "org-1",
                    "Key": "alpha",
                    "Name": "Alpha",
                    "IsVerified": True,
                    "DocumentModifiedDate": format_timestamp(NOW - timedelta(days=90)),
                    "Administrators": [{"Email": "admin@alpha.org", "IsSelected": True}],
                }
            ]
        }
    )
    dispatcher = NotificationDispatcher(
        AcceptingTransport(), reminder_template_id="tpl-remind", expiry_template_id="tpl-expire"
    )
    return VerificationScanner(store, dispatcher, StateMutator(store))


@pytest.mark.integration
def test_run_once_writes_batch_report(tmp_path: Path):
    scheduler = Scheduler(_scanner(), CronTrigger(), reports_dir=tmp_path)

    report = scheduler.run_once(NOW, run_id="scan-test")

    assert report.reminders_sent == 1
    assert scheduler.last_report is report
    written = read_latest_report(tmp_path)
    assert written["run_id"] == "scan-test"
    assert written["status"] == "success"
    assert written["now"] == "2026-03-01T09:00:00.000Z"


def test_cron_trigger_fires_at_nine_utc():
    trigger = CronTrigger("0 9 * * *")

    assert trigger.next_fire(datetime(2026, 3, 1, 8, 0, tzinfo=timezone.utc)) == NOW
    assert trigger.next_fire(NOW) == NOW + timedelta(days=1)


def test_cron_trigger_rejects_invalid_expression():
    with pytest.raises(ConfigError):
        CronTrigger("not a cron")


@pytest.mark.integration
def test_background_loop_runs_on_fire_and_stops():
    scheduler = Scheduler(_scanner(), FireOnceTrigger(), clock=lambda: NOW)

    scheduler.start()
    deadline = time.monotonic() + 5
    while scheduler.last_report is None and time.monotonic() < deadline:
        time.sleep(0.01)
    scheduler.stop(timeout=5)

    assert scheduler.last_report is not None
    assert scheduler.last_report.reminders_sent == 1
    assert scheduler.running is False


@pytest.mark.integration
def test_stop_cancels_in_flight_run():
    scanner = BlockingScanner()
    scheduler = Scheduler(scanner, FireOnceTrigger(), clock=lambda: NOW)

    scheduler.start()
    assert scanner.started.wait(5)
    scheduler.stop(timeout=5)

    assert scanner.saw_cancel is True
    assert scheduler.last_report.status == "cancelled"
