"""UK postcode normalisation used for lookups and change detection."""

from __future__ import annotations

import re

_WHITESPACE_RE = re.compile(r"\s+")


def normalise_postcode(raw: str | None) -> str | None:
    """Trim, uppercase and collapse whitespace into the ``OUTWARD INWARD`` form.

    Values too short to carry an inward code are returned compacted but
    otherwise untouched so the lookup service can decide whether they exist.
    """
    if raw is None:
        return None

    cleaned = _WHITESPACE_RE.sub("", raw.upper())
    if not cleaned:
        return None

    if len(cleaned) < 5:
        return cleaned
    return f"{cleaned[:-3]} {cleaned[-3:]}"


def postcode_key(raw: str | None) -> str | None:
    normalised = normalise_postcode(raw)
    if normalised is None:
        return None
    return normalised.replace(" ", "")


def same_postcode(left: str | None, right: str | None) -> bool:
    return postcode_key(left) == postcode_key(right)
