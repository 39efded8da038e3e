"""Organisation repository with conditional verification writes."""

from __future__ import annotations

import copy
import json
import threading
from pathlib import Path
from typing import Any, Protocol

from lifecycle.common.errors import ConcurrencyError, NotFoundError, PersistenceError, ValidationError
from lifecycle.common.fs import read_json, write_json
from lifecycle.common.models import BatchError, Organisation, UnverifyCommand
from lifecycle.common.time_utils import format_timestamp, parse_timestamp

STATUS_MODIFIED_FIELD = "VerificationStatusModifiedDate"


class OrganisationRepository(Protocol):
    def list_organisations(self, errors: list[BatchError] | None = None) -> list[Organisation]: ...

    def get(self, organisation_id: str) -> Organisation: ...

    def apply_unverify(self, command: UnverifyCommand) -> Organisation: ...

    def update_related_services(self, provider_key: str, changes: dict[str, Any]) -> int: ...


class JsonDocumentStore:
    """Document store persisted as one JSON file.

    The file holds ``{"organisations": [...], "services": [...]}`` using the
    directory's document field names. Writes are serialised by a lock and
    replace the file atomically. With ``path=None`` the store is memory-only.
    """

    def __init__(self, documents: dict[str, list[dict]] | None = None, *, path: Path | None = None) -> None:
        self.path = path
        self._lock = threading.Lock()
        documents = documents or {}
        self._organisations: list[dict] = list(documents.get("organisations", []))
        self._services: list[dict] = list(documents.get("services", []))

    @classmethod
    def open(cls, path: Path) -> "JsonDocumentStore":
        if not path.exists():
            raise PersistenceError(f"Organisation store not found: {path}")
        try:
            payload = read_json(path)
        except (OSError, json.JSONDecodeError) as exc:
            raise PersistenceError(f"Organisation store unreadable: {path}: {exc}") from exc
        if not isinstance(payload, dict) or not isinstance(payload.get("organisations"), list):
            raise PersistenceError(f"Organisation store has no organisations collection: {path}")
        return cls(payload, path=path)

    def _flush(self) -> None:
        if self.path is None:
            return
        try:
            write_json(self.path, {"organisations": self._organisations, "services": self._services})
        except OSError as exc:
            raise PersistenceError(f"Organisation store write failed: {self.path}: {exc}") from exc

    def _find(self, organisation_id: str) -> dict | None:
        for doc in self._organisations:
            if str(doc.get("_id")) == organisation_id:
                return doc
        return None

    def documents(self) -> dict[str, list[dict]]:
        with self._lock:
            return copy.deepcopy({"organisations": self._organisations, "services": self._services})

    def list_organisations(self, errors: list[BatchError] | None = None) -> list[Organisation]:
        """Parse every organisation document.

        Documents that cannot be parsed raise ``ValidationError`` unless an
        ``errors`` list is supplied, in which case they are reported there and
        left out of the result.
        """
        with self._lock:
            docs = copy.deepcopy(self._organisations)
        organisations = []
        for doc in docs:
            try:
                organisations.append(Organisation.from_document(doc))
            except (KeyError, TypeError, ValueError) as exc:
                failure = ValidationError(f"Malformed organisation document {doc.get('_id')}: {exc}")
                if errors is None:
                    raise failure from exc
                errors.append(
                    BatchError(
                        organisation_id=str(doc.get("_id")),
                        message=str(failure),
                        error_code=failure.error_code,
                    )
                )
        return organisations

    def get(self, organisation_id: str) -> Organisation:
        with self._lock:
            doc = self._find(organisation_id)
            if doc is None:
                raise NotFoundError(f"Organisation not found: {organisation_id}")
            return Organisation.from_document(copy.deepcopy(doc))

    def apply_unverify(self, command: UnverifyCommand) -> Organisation:
        """Flip ``IsVerified`` to false only if it is still true and unmodified.

        ``DocumentModifiedDate`` is never written here; the status change is
        stamped on its own field so the aging clock keeps running.
        """
        with self._lock:
            doc = self._find(command.organisation_id)
            if doc is None:
                raise NotFoundError(f"Organisation not found: {command.organisation_id}")
            if not doc.get("IsVerified", False):
                raise ConcurrencyError(f"Organisation already unverified: {command.organisation_id}")
            if command.expected_modified_date is not None:
                stored = parse_timestamp(doc.get("DocumentModifiedDate"))
                if stored != command.expected_modified_date:
                    raise ConcurrencyError(f"Organisation modified since scan: {command.organisation_id}")

            previous = copy.deepcopy(doc)
            doc["IsVerified"] = False
            doc[STATUS_MODIFIED_FIELD] = format_timestamp(command.status_changed_at)
            try:
                self._flush()
            except PersistenceError:
                doc.clear()
                doc.update(previous)
                raise
            return Organisation.from_document(copy.deepcopy(doc))

    def update_related_services(self, provider_key: str, changes: dict[str, Any]) -> int:
        with self._lock:
            updated = 0
            for service in self._services:
                if service.get("ServiceProviderKey") != provider_key:
                    continue
                if all(service.get(field) == value for field, value in changes.items()):
                    continue
                service.update(changes)
                updated += 1
            if updated:
                self._flush()
            return updated
