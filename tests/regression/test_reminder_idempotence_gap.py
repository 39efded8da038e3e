from datetime import datetime, timedelta, timezone

import pytest

from lifecycle.common.time_utils import format_timestamp
from lifecycle.notifications.dispatcher import NotificationDispatcher
from lifecycle.verification.mutator import StateMutator
from lifecycle.verification.scanner import VerificationScanner
from lifecycle.verification.store import JsonDocumentStore

NOW = datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc)


class CountingTransport:
    def __init__(self):
        self.calls = 0

    def send_template(self, to_email, template_id, data):
        self.calls += 1
        return True


def _scanner(transport):
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
    dispatcher = NotificationDispatcher(transport, reminder_template_id="tpl-remind", expiry_template_id="tpl-expire")
    return VerificationScanner(store, dispatcher, StateMutator(store))


@pytest.mark.regression
def test_repeated_scan_on_same_day_sends_reminder_again():
    # No reminder ledger is kept; a second run on the reminder day repeats the email.
    transport = CountingTransport()
    scanner = _scanner(transport)

    first = scanner.scan(NOW, run_id="scan-a")
    second = scanner.scan(NOW + timedelta(hours=3), run_id="scan-b")

    assert (first.reminders_sent, second.reminders_sent) == (1, 1)
    assert transport.calls == 2


@pytest.mark.regression
def test_unverification_is_not_repeated():
    transport = CountingTransport()
    scanner = _scanner(transport)

    first = scanner.scan(NOW + timedelta(days=10), run_id="scan-a")
    second = scanner.scan(NOW + timedelta(days=11), run_id="scan-b")

    assert first.unverified_count == 1
    assert second.unverified_count == 0
    assert second.errors == []
    assert transport.calls == 1
