"""Elapsed-day arithmetic and lifecycle classification."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta

from lifecycle.common.constants import EXPIRY_DAYS, REMINDER_DAYS
from lifecycle.common.models import Action, Organisation, VerificationDecision
from lifecycle.common.time_utils import ensure_utc

ONE_DAY = timedelta(days=1)


def elapsed_days(now: datetime, modified: datetime) -> int:
    """Whole days between ``modified`` and ``now``, floored, ignoring calendar boundaries."""
    return (ensure_utc(now) - ensure_utc(modified)) // ONE_DAY


@dataclass(frozen=True)
class VerificationRules:
    reminder_days: int = REMINDER_DAYS
    expiry_days: int = EXPIRY_DAYS

    @classmethod
    def from_config(cls, cfg: dict) -> "VerificationRules":
        return cls(
            reminder_days=int(cfg.get("reminder_days", REMINDER_DAYS)),
            expiry_days=int(cfg.get("expiry_days", EXPIRY_DAYS)),
        )

    def actions_for(self, days: int, is_verified: bool) -> frozenset[Action]:
        actions = set()
        # Exact match: a day missed by the scheduler is never caught up.
        if days == self.reminder_days:
            actions.add(Action.REMIND)
        if days >= self.expiry_days and is_verified:
            actions.add(Action.UNVERIFY)
        return frozenset(actions)

    def classify(self, organisation: Organisation, now: datetime) -> VerificationDecision:
        days = elapsed_days(now, organisation.document_modified_date)
        return VerificationDecision(
            organisation_id=organisation.id,
            elapsed_days=days,
            actions=self.actions_for(days, organisation.is_verified),
        )
