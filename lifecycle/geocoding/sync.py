"""Keep address coordinates in step with their postcodes."""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Iterable, Sequence

from lifecycle.common.errors import TransientError
from lifecycle.common.logging import get_logger, log_event
from lifecycle.common.models import Address, GeocodeResult
from lifecycle.common.postcode import normalise_postcode, postcode_key, same_postcode
from lifecycle.geocoding.resolver import PostcodeLookup

POSTCODE_NOT_FOUND = "POSTCODE_NOT_FOUND"
GEOCODE_UNAVAILABLE = "GEOCODE_UNAVAILABLE"

LOGGER = get_logger("geocoding.sync")


@dataclass(frozen=True)
class SyncWarning:
    postcode: str
    code: str
    message: str


class _Failed:
    def __init__(self, error: TransientError) -> None:
        self.error = error


class AddressSyncCoordinator:
    """Refresh coordinates for one batch of address writes.

    A coordinator memoises lookups by normalised postcode, so create one per
    entity mutation. Lookup failures never block the write: the address keeps
    whatever coordinates it already had and a ``SyncWarning`` is recorded.
    """

    def __init__(self, resolver: PostcodeLookup, *, logger: logging.Logger | None = None) -> None:
        self.resolver = resolver
        self.logger = logger or LOGGER
        self.warnings: list[SyncWarning] = []
        self.lookups = 0
        self._memo: dict[str, GeocodeResult | None | _Failed] = {}

    def _resolve(self, postcode: str) -> GeocodeResult | None:
        key = postcode_key(postcode)
        if key not in self._memo:
            self.lookups += 1
            try:
                self._memo[key] = self.resolver.resolve(postcode)
            except TransientError as exc:
                self._memo[key] = _Failed(exc)
        outcome = self._memo[key]
        if isinstance(outcome, _Failed):
            raise outcome.error
        return outcome

    def _warn(self, postcode: str, code: str, message: str) -> None:
        self.warnings.append(SyncWarning(postcode=postcode, code=code, message=message))
        log_event(
            self.logger,
            message,
            level=logging.WARNING,
            component="geocoding",
            postcode=postcode,
            event="ADDRESS_SYNC",
            status="warning",
            error_code=code,
        )

    def needs_lookup(self, old_postcode: str | None, new_address: Address) -> bool:
        if new_address.is_outreach or normalise_postcode(new_address.postcode) is None:
            return False
        if new_address.coordinates is None:
            return True
        return not same_postcode(old_postcode, new_address.postcode)

    def sync(self, old_postcode: str | None, new_address: Address) -> Address:
        if not self.needs_lookup(old_postcode, new_address):
            return new_address

        postcode = normalise_postcode(new_address.postcode)
        try:
            result = self._resolve(postcode)
        except TransientError as exc:
            self._warn(postcode, GEOCODE_UNAVAILABLE, f"Geocoding unavailable for {postcode}: {exc}")
            return new_address

        if result is None:
            self._warn(postcode, POSTCODE_NOT_FOUND, f"Postcode not found: {postcode}")
            return new_address
        return replace(new_address, coordinates=result.coordinates)

    def sync_many(self, pairs: Iterable[tuple[str | None, Address]]) -> list[Address]:
        return [self.sync(old_postcode, address) for old_postcode, address in pairs]


def initialise_addresses(coordinator: AddressSyncCoordinator, addresses: Sequence[Address]) -> list[Address]:
    """Populate coordinates for newly created addresses."""
    return coordinator.sync_many((None, address) for address in addresses)


def sync_organisation_addresses(
    coordinator: AddressSyncCoordinator,
    existing: Sequence[Address],
    updated: Sequence[Address],
) -> list[Address]:
    """Pair updated organisation addresses with the stored ones by position."""
    pairs = []
    for idx, address in enumerate(updated):
        old_postcode = existing[idx].postcode if idx < len(existing) else None
        pairs.append((old_postcode, address))
    return coordinator.sync_many(pairs)


def sync_service_locations(
    coordinator: AddressSyncCoordinator,
    previous_postcode: str | None,
    locations: Sequence[Address],
) -> list[Address]:
    """Service locations are compared against the service's stored postcode."""
    return coordinator.sync_many((previous_postcode, location) for location in locations)
