"""Daily verification scan: reminders at 90 days, expiry at 100."""

from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime

from lifecycle.common.errors import LifecycleError, PersistenceError, ValidationError
from lifecycle.common.ids import generate_run_id
from lifecycle.common.logging import get_logger, log_event
from lifecycle.common.models import Action, BatchError, BatchReport, Organisation, PreviewStats
from lifecycle.common.time_utils import ensure_utc, utc_now
from lifecycle.notifications.dispatcher import NotificationDispatcher, validate_email
from lifecycle.verification.mutator import StateMutator
from lifecycle.verification.rules import VerificationRules
from lifecycle.verification.store import OrganisationRepository

NOTIFICATION_FAILED = "NOTIFICATION_FAILED"
UNEXPECTED_ERROR = "UNEXPECTED_ERROR"

LOGGER = get_logger("verification.scanner")


@dataclass
class _Outcome:
    organisation_id: str
    started: bool = True
    skipped: bool = False
    reminder_sent: bool = False
    unverified: bool = False
    services_updated: int = 0
    errors: list[BatchError] = field(default_factory=list)


class VerificationScanner:
    """Classify every organisation and drive notifications and unverification.

    With ``max_workers`` above one, organisations are processed on a bounded
    thread pool; the report is still folded in enumeration order so its counts
    are exact.
    """

    def __init__(
        self,
        repository: OrganisationRepository,
        dispatcher: NotificationDispatcher,
        mutator: StateMutator,
        *,
        rules: VerificationRules | None = None,
        max_workers: int = 1,
        logger: logging.Logger | None = None,
    ) -> None:
        self.repository = repository
        self.dispatcher = dispatcher
        self.mutator = mutator
        self.rules = rules or VerificationRules()
        self.max_workers = max(1, max_workers)
        self.logger = logger or LOGGER

    def _recipient(self, organisation: Organisation) -> str | None:
        admin = organisation.selected_administrator
        if admin is None or not admin.email:
            return None
        return admin.email

    def _error(self, outcome: _Outcome, organisation: Organisation, message: str, error_code: str, run_id: str) -> None:
        outcome.errors.append(BatchError(organisation_id=organisation.id, message=message, error_code=error_code))
        log_event(
            self.logger,
            message,
            level=logging.ERROR,
            run_id=run_id,
            component="verification",
            organisation_id=organisation.id,
            event="ORGANISATION_FAIL",
            status="error",
            error_code=error_code,
        )

    def _guarded(self, outcome: _Outcome, organisation: Organisation, run_id: str, step) -> None:
        try:
            step()
        except PersistenceError:
            raise
        except LifecycleError as exc:
            self._error(outcome, organisation, f"Error processing {organisation.name}: {exc}", exc.error_code, run_id)
        except Exception as exc:
            self.logger.exception("unexpected failure for organisation %s", organisation.id)
            self._error(outcome, organisation, f"Error processing {organisation.name}: {exc}", UNEXPECTED_ERROR, run_id)

    def process_organisation(self, organisation: Organisation, now: datetime, run_id: str = "") -> _Outcome:
        outcome = _Outcome(organisation_id=organisation.id)
        for warning in organisation.warnings:
            log_event(
                self.logger,
                f"{warning} for {organisation.name}; first selected administrator used",
                level=logging.WARNING,
                run_id=run_id,
                component="verification",
                organisation_id=organisation.id,
                event="ADMINISTRATOR_NORMALISED",
                status="warning",
                error_code=warning,
            )

        email = self._recipient(organisation)
        if email is None:
            outcome.skipped = True
            return outcome

        decision = self.rules.classify(organisation, now)
        if decision.is_noop:
            return outcome

        try:
            email = validate_email(email)
        except ValidationError as exc:
            outcome.skipped = True
            self._error(outcome, organisation, f"Error processing {organisation.name}: {exc}", exc.error_code, run_id)
            return outcome

        if Action.REMIND in decision.actions:

            def remind() -> None:
                if self.dispatcher.send_reminder(email, organisation.name, decision.elapsed_days):
                    outcome.reminder_sent = True
                else:
                    self._error(
                        outcome, organisation, f"Failed to send reminder for {organisation.name}", NOTIFICATION_FAILED, run_id
                    )

            self._guarded(outcome, organisation, run_id, remind)

        if Action.UNVERIFY in decision.actions:

            def unverify() -> None:
                # The expiry email only follows a successful write, so an overlapping
                # run that loses the conditional update stays silent.
                outcome.services_updated = self.mutator.unverify(
                    organisation.id, expected_modified_date=organisation.document_modified_date
                )
                outcome.unverified = True
                if not self.dispatcher.send_expiry(email, organisation.name):
                    self._error(
                        outcome,
                        organisation,
                        f"Failed to send expiration email for {organisation.name}",
                        NOTIFICATION_FAILED,
                        run_id,
                    )

            self._guarded(outcome, organisation, run_id, unverify)

        return outcome

    def _run_unit(
        self,
        organisation: Organisation,
        now: datetime,
        run_id: str,
        cancel: threading.Event | None,
        abort: threading.Event,
    ) -> _Outcome:
        if abort.is_set() or (cancel is not None and cancel.is_set()):
            return _Outcome(organisation_id=organisation.id, started=False)
        try:
            return self.process_organisation(organisation, now, run_id)
        except PersistenceError:
            abort.set()
            raise
        except Exception as exc:
            self.logger.exception("unexpected failure for organisation %s", organisation.id)
            outcome = _Outcome(organisation_id=organisation.id)
            error_code = getattr(exc, "error_code", UNEXPECTED_ERROR)
            self._error(outcome, organisation, f"Error processing {organisation.name}: {exc}", error_code, run_id)
            return outcome

    def scan(
        self,
        now: datetime | None = None,
        cancel: threading.Event | None = None,
        *,
        run_id: str | None = None,
    ) -> BatchReport:
        now = ensure_utc(now) if now is not None else utc_now()
        run_id = run_id or generate_run_id("scan")
        report = BatchReport(run_id=run_id, now=now)

        load_errors: list[BatchError] = []
        organisations = self.repository.list_organisations(errors=load_errors)
        report.total = len(organisations) + len(load_errors)
        report.errors.extend(load_errors)

        log_event(
            self.logger,
            f"verification check started for {report.total} organisations",
            run_id=run_id,
            component="verification",
            event="SCAN_START",
            status="ok",
        )

        abort = threading.Event()
        if self.max_workers == 1:
            outcomes = [self._run_unit(org, now, run_id, cancel, abort) for org in organisations]
        else:
            with ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="verification") as pool:
                futures = [pool.submit(self._run_unit, org, now, run_id, cancel, abort) for org in organisations]
                outcomes = [future.result() for future in futures]

        for outcome in outcomes:
            if not outcome.started:
                report.cancelled = True
                continue
            report.skipped += int(outcome.skipped)
            report.reminders_sent += int(outcome.reminder_sent)
            report.unverified_count += int(outcome.unverified)
            report.services_updated += outcome.services_updated
            report.errors.extend(outcome.errors)

        log_event(
            self.logger,
            (
                f"verification check completed: checked={report.total} reminders={report.reminders_sent} "
                f"unverified={report.unverified_count} skipped={report.skipped} errors={len(report.errors)}"
            ),
            level=logging.INFO if report.status == "success" else logging.WARNING,
            run_id=run_id,
            component="verification",
            event="SCAN_END",
            status=report.status,
        )
        return report

    def preview(self, now: datetime | None = None) -> PreviewStats:
        """Count what a scan at ``now`` would do without sending or writing anything."""
        now = ensure_utc(now) if now is not None else utc_now()
        organisations = self.repository.list_organisations(errors=[])
        needs_reminder = needs_unverify = already_unverified = 0
        for organisation in organisations:
            if self._recipient(organisation) is None:
                continue
            decision = self.rules.classify(organisation, now)
            needs_reminder += int(Action.REMIND in decision.actions)
            needs_unverify += int(Action.UNVERIFY in decision.actions)
            if decision.elapsed_days >= self.rules.expiry_days and not organisation.is_verified:
                already_unverified += 1
        return PreviewStats(
            total=len(organisations),
            needs_reminder=needs_reminder,
            needs_unverify=needs_unverify,
            already_unverified=already_unverified,
        )
