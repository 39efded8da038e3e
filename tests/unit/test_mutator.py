from __future__ import annotations

from datetime import datetime, timezone

import pytest

from lifecycle.common.errors import ConcurrencyError, NotFoundError
from lifecycle.verification.mutator import StateMutator
from lifecycle.verification.store import JsonDocumentStore

NOW = datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc)
MODIFIED = datetime(2025, 11, 16, 9, 0, tzinfo=timezone.utc)


def _store() -> JsonDocumentStore:
    return JsonDocumentStore(
        {
            "organisations": [
                {
                    "_id": "org-1",
                    "Key": "alpha",
                    "Name": "Alpha",
                    "IsVerified": True,
                    "DocumentModifiedDate": "2025-11-16T09:00:00Z",
                    "Administrators": [{"Email": "admin@alpha.org", "IsSelected": True}],
                }
            ],
            "services": [{"_id": "svc-1", "ServiceProviderKey": "alpha", "IsVerified": True}],
        }
    )


def test_unverify_cascades_to_services():
    store = _store()
    mutator = StateMutator(store, clock=lambda: NOW)

    assert mutator.unverify("org-1", expected_modified_date=MODIFIED) == 1
    assert store.get("org-1").is_verified is False
    assert store.get("org-1").document_modified_date == MODIFIED
    assert store.documents()["services"][0]["IsVerified"] is False


def test_unverify_without_cascade_leaves_services():
    store = _store()

    assert StateMutator(store, cascade_to_services=False, clock=lambda: NOW).unverify("org-1") == 0
    assert store.documents()["services"][0]["IsVerified"] is True


def test_second_unverify_is_a_concurrency_error():
    mutator = StateMutator(_store(), clock=lambda: NOW)
    mutator.unverify("org-1")

    with pytest.raises(ConcurrencyError):
        mutator.unverify("org-1")


def test_unverify_missing_organisation():
    with pytest.raises(NotFoundError):
        StateMutator(_store(), clock=lambda: NOW).unverify("gone")
