from __future__ import annotations

import pytest

from lifecycle.common.models import Address, Coordinates
from lifecycle.geocoding.resolver import GeocodeResolver
from lifecycle.geocoding.sync import (
    POSTCODE_NOT_FOUND,
    AddressSyncCoordinator,
    initialise_addresses,
    sync_organisation_addresses,
)

ENDPOINT = "https://postcodes.test/postcodes"


class FakeHttpClient:
    def __init__(self, payloads):
        self.payloads = payloads
        self.calls: list[str] = []

    def get_json(self, url, **_kwargs):
        self.calls.append(url)
        return self.payloads.get(url)


def _payload(postcode, lon, lat):
    return {"status": 200, "result": {"postcode": postcode, "longitude": lon, "latitude": lat}}


@pytest.mark.integration
def test_postcode_change_refreshes_stored_location():
    client = FakeHttpClient({f"{ENDPOINT}/M2%202BB": _payload("M2 2BB", -2.23, 53.48)})
    coordinator = AddressSyncCoordinator(GeocodeResolver(client, endpoint=ENDPOINT))
    stored = Address(postcode="M1 1AA", coordinates=Coordinates(longitude=-2.24, latitude=53.47))
    document = {"Postcode": "M1 1AA", "Location": stored.coordinates.to_document()}

    [updated] = sync_organisation_addresses(coordinator, [stored], [Address(postcode="m2 2bb", coordinates=stored.coordinates)])
    written = updated.apply_to_document(document)

    assert written["Location"] == {"type": "Point", "coordinates": [-2.23, 53.48]}
    assert coordinator.warnings == []
    assert client.calls == [f"{ENDPOINT}/M2%202BB"]


@pytest.mark.integration
def test_new_addresses_share_lookups_and_tolerate_unknown_postcodes():
    client = FakeHttpClient({f"{ENDPOINT}/M2%202BB": _payload("M2 2BB", -2.23, 53.48)})
    coordinator = AddressSyncCoordinator(GeocodeResolver(client, endpoint=ENDPOINT))

    addresses = initialise_addresses(
        coordinator,
        [
            Address(postcode="M2 2BB"),
            Address(postcode="m22bb"),
            Address(postcode="ZZ9 9ZZ"),
            Address(postcode="M2 2BB", is_outreach=True),
        ],
    )

    assert addresses[0].coordinates == Coordinates(longitude=-2.23, latitude=53.48)
    assert addresses[1].coordinates == addresses[0].coordinates
    assert addresses[2].coordinates is None
    assert addresses[3].coordinates is None
    assert [warning.code for warning in coordinator.warnings] == [POSTCODE_NOT_FOUND]
    assert coordinator.lookups == 2
