"""Data models shared by the verification and geocoding engines."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from lifecycle.common.time_utils import format_timestamp, parse_timestamp

MULTIPLE_SELECTED_ADMINISTRATORS = "MULTIPLE_SELECTED_ADMINISTRATORS"


@dataclass(frozen=True)
class Administrator:
    email: str
    is_selected: bool = False

    @classmethod
    def from_document(cls, doc: dict[str, Any]) -> "Administrator":
        if not isinstance(doc, dict):
            raise TypeError(f"Administrator entry must be a mapping, got {type(doc).__name__}")
        email = doc.get("Email") or ""
        return cls(email=str(email).strip(), is_selected=bool(doc.get("IsSelected", False)))


def _normalise_administrators(
    administrators: list[Administrator],
) -> tuple[tuple[Administrator, ...], tuple[str, ...]]:
    selected = [idx for idx, admin in enumerate(administrators) if admin.is_selected]
    if len(selected) <= 1:
        return tuple(administrators), ()

    first = selected[0]
    normalised = tuple(
        admin if idx == first or not admin.is_selected else Administrator(email=admin.email, is_selected=False)
        for idx, admin in enumerate(administrators)
    )
    return normalised, (MULTIPLE_SELECTED_ADMINISTRATORS,)


@dataclass(frozen=True)
class Organisation:
    id: str
    key: str
    name: str
    is_verified: bool
    document_modified_date: datetime | None
    administrators: tuple[Administrator, ...] = ()
    warnings: tuple[str, ...] = ()

    @classmethod
    def from_document(cls, doc: dict[str, Any]) -> "Organisation":
        admins = [Administrator.from_document(item) for item in doc.get("Administrators") or []]
        administrators, warnings = _normalise_administrators(admins)
        modified = parse_timestamp(doc.get("DocumentModifiedDate"))
        # Organisations nobody can be notified about are skipped before they are aged.
        has_recipient = any(admin.is_selected and admin.email for admin in administrators)
        if modified is None and has_recipient:
            raise ValueError(f"Organisation {doc.get('_id')} has no DocumentModifiedDate")
        return cls(
            id=str(doc["_id"]),
            key=str(doc.get("Key") or doc["_id"]),
            name=str(doc.get("Name") or ""),
            is_verified=bool(doc.get("IsVerified", False)),
            document_modified_date=modified,
            administrators=administrators,
            warnings=warnings,
        )

    @property
    def selected_administrator(self) -> Administrator | None:
        for admin in self.administrators:
            if admin.is_selected:
                return admin
        return None


@dataclass(frozen=True)
class Coordinates:
    longitude: float
    latitude: float

    @classmethod
    def from_document(cls, doc: dict[str, Any] | None) -> "Coordinates | None":
        if not doc:
            return None
        pair = doc.get("coordinates") or []
        if len(pair) != 2 or pair[0] is None or pair[1] is None:
            return None
        return cls(longitude=float(pair[0]), latitude=float(pair[1]))

    def to_document(self) -> dict[str, Any]:
        return {"type": "Point", "coordinates": [self.longitude, self.latitude]}


@dataclass(frozen=True)
class Address:
    postcode: str | None
    coordinates: Coordinates | None = None
    lines: tuple[str, ...] = ()
    city: str | None = None
    key: str | None = None
    is_outreach: bool = False

    @classmethod
    def from_document(cls, doc: dict[str, Any]) -> "Address":
        # Organisation addresses use Street/Street1..3, service locations StreetLine1..4.
        line_fields = ("Street", "Street1", "Street2", "Street3", "StreetLine1", "StreetLine2", "StreetLine3", "StreetLine4")
        lines = tuple(str(doc[name]) for name in line_fields if doc.get(name))
        return cls(
            postcode=doc.get("Postcode") or None,
            coordinates=Coordinates.from_document(doc.get("Location")),
            lines=lines,
            city=doc.get("City") or None,
            key=doc.get("Key") or None,
            is_outreach=bool(doc.get("IsOutreachLocation", False)),
        )

    def apply_to_document(self, doc: dict[str, Any]) -> dict[str, Any]:
        """Return a copy of ``doc`` with this address's coordinates written back."""
        updated = dict(doc)
        if self.coordinates is not None:
            updated["Location"] = self.coordinates.to_document()
        return updated


@dataclass(frozen=True)
class GeocodeResult:
    postcode: str
    longitude: float
    latitude: float

    @property
    def coordinates(self) -> Coordinates:
        return Coordinates(longitude=self.longitude, latitude=self.latitude)


class Action(str, Enum):
    REMIND = "remind"
    UNVERIFY = "unverify"


@dataclass(frozen=True)
class VerificationDecision:
    organisation_id: str
    elapsed_days: int
    actions: frozenset[Action] = frozenset()

    @property
    def is_noop(self) -> bool:
        return not self.actions


@dataclass(frozen=True)
class UnverifyCommand:
    organisation_id: str
    status_changed_at: datetime
    expected_modified_date: datetime | None = None


@dataclass(frozen=True)
class BatchError:
    organisation_id: str
    message: str
    error_code: str


@dataclass
class BatchReport:
    run_id: str
    now: datetime
    total: int = 0
    reminders_sent: int = 0
    unverified_count: int = 0
    skipped: int = 0
    services_updated: int = 0
    errors: list[BatchError] = field(default_factory=list)
    cancelled: bool = False

    @property
    def status(self) -> str:
        if self.cancelled:
            return "cancelled"
        if self.errors:
            return "partial"
        return "success"

    def to_dict(self) -> dict[str, Any]:
        payload = asdict(self)
        payload["now"] = format_timestamp(self.now)
        payload["status"] = self.status
        return payload


@dataclass(frozen=True)
class PreviewStats:
    total: int = 0
    needs_reminder: int = 0
    needs_unverify: int = 0
    already_unverified: int = 0

    def to_dict(self) -> dict[str, int]:
        return asdict(self)
