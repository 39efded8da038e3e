"""Verification state transitions."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable

from lifecycle.common.logging import get_logger, log_event
from lifecycle.common.models import UnverifyCommand
from lifecycle.common.time_utils import utc_now
from lifecycle.verification.store import OrganisationRepository

LOGGER = get_logger("verification.mutator")


class StateMutator:
    def __init__(
        self,
        repository: OrganisationRepository,
        *,
        cascade_to_services: bool = True,
        clock: Callable[[], datetime] = utc_now,
        logger: logging.Logger | None = None,
    ) -> None:
        self.repository = repository
        self.cascade_to_services = cascade_to_services
        self.clock = clock
        self.logger = logger or LOGGER

    def unverify(self, organisation_id: str, expected_modified_date: datetime | None = None) -> int:
        """Mark the organisation unverified and return how many services followed.

        Raises ``NotFoundError`` or ``ConcurrencyError`` from the repository's
        conditional write.
        """
        command = UnverifyCommand(
            organisation_id=organisation_id,
            status_changed_at=self.clock(),
            expected_modified_date=expected_modified_date,
        )
        organisation = self.repository.apply_unverify(command)

        services_updated = 0
        if self.cascade_to_services:
            services_updated = self.repository.update_related_services(organisation.key, {"IsVerified": False})

        log_event(
            self.logger,
            f"organisation unverified: {organisation.name} ({services_updated} services updated)",
            component="verification",
            organisation_id=organisation_id,
            event="UNVERIFY",
            status="ok",
        )
        return services_updated
