from datetime import datetime, timedelta, timezone

from lifecycle.common.models import Action, Organisation
from lifecycle.verification.rules import VerificationRules, elapsed_days

NOW = datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc)


def _org(days_ago: float, verified: bool = True) -> Organisation:
    return Organisation(
        id="org-1",
        key="org-1",
        name="Alpha",
        is_verified=verified,
        document_modified_date=NOW - timedelta(days=days_ago),
    )


def test_elapsed_days_floors_partial_days():
    assert elapsed_days(NOW, NOW - timedelta(days=90)) == 90
    assert elapsed_days(NOW, NOW - timedelta(days=89, hours=23, minutes=59)) == 89
    assert elapsed_days(NOW, NOW - timedelta(days=90, hours=23)) == 90


def test_elapsed_days_ignores_calendar_boundaries():
    modified = datetime(2026, 1, 1, 23, 0, tzinfo=timezone.utc)
    now = datetime(2026, 1, 2, 1, 0, tzinfo=timezone.utc)
    assert elapsed_days(now, modified) == 0


def test_elapsed_days_treats_naive_values_as_utc():
    assert elapsed_days(NOW.replace(tzinfo=None), NOW - timedelta(days=3)) == 3


def test_reminder_only_on_exact_threshold():
    rules = VerificationRules()
    reminded = [days for days in range(0, 400) if Action.REMIND in rules.actions_for(days, True)]
    assert reminded == [90]


def test_unverify_only_when_verified_and_stale():
    rules = VerificationRules()
    assert all(Action.UNVERIFY in rules.actions_for(days, True) for days in range(100, 400))
    assert not any(Action.UNVERIFY in rules.actions_for(days, True) for days in range(0, 100))
    assert not any(Action.UNVERIFY in rules.actions_for(days, False) for days in range(0, 400))


def test_future_modification_date_is_noop():
    decision = VerificationRules().classify(_org(-2), NOW)
    assert decision.elapsed_days == -2
    assert decision.is_noop


def test_classify_builds_decision():
    decision = VerificationRules().classify(_org(105), NOW)
    assert decision.organisation_id == "org-1"
    assert decision.elapsed_days == 105
    assert decision.actions == frozenset({Action.UNVERIFY})


def test_thresholds_come_from_config():
    rules = VerificationRules.from_config({"reminder_days": 30, "expiry_days": 45})
    assert rules.actions_for(30, True) == frozenset({Action.REMIND})
    assert rules.actions_for(45, True) == frozenset({Action.UNVERIFY})
