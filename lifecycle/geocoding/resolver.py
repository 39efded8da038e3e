"""Postcode to coordinate resolution backed by postcodes.io."""

from __future__ import annotations

import threading
from collections import OrderedDict
from typing import Protocol
from urllib.parse import quote

from lifecycle.common.errors import TransientError
from lifecycle.common.http import HttpClient, HttpRequestError, RetryConfig, TimeoutConfig
from lifecycle.common.logging import get_logger, log_event
from lifecycle.common.models import GeocodeResult
from lifecycle.common.postcode import normalise_postcode, postcode_key

SOURCE_TYPE = "postcodes"
DEFAULT_ENDPOINT = "https://api.postcodes.io/postcodes"

LOGGER = get_logger("geocoding")


class PostcodeLookup(Protocol):
    def resolve(self, postcode: str | None) -> GeocodeResult | None: ...


def _safe_float(value: object) -> float | None:
    if value is None:
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def parse_lookup_payload(payload: dict | None, requested: str) -> GeocodeResult | None:
    if not payload:
        return None
    result = payload.get("result") or {}
    lon = _safe_float(result.get("longitude"))
    lat = _safe_float(result.get("latitude"))
    # Some valid postcodes (e.g. Crown Dependencies) come back without a centroid.
    if lon is None or lat is None:
        return None
    return GeocodeResult(postcode=str(result.get("postcode") or requested), longitude=lon, latitude=lat)


class GeocodeResolver:
    """Resolve UK postcodes to coordinates with a bounded LRU cache.

    ``resolve`` returns ``None`` when the postcode does not exist and raises
    ``TransientError`` when the service cannot be reached. Not-found answers
    are cached; transient failures are not.
    """

    def __init__(
        self,
        client: HttpClient,
        *,
        endpoint: str = DEFAULT_ENDPOINT,
        timeout: TimeoutConfig | None = None,
        retry: RetryConfig | None = None,
        cache_size: int = 1024,
    ) -> None:
        self.client = client
        self.endpoint = endpoint.rstrip("/")
        self.timeout = timeout
        self.retry = retry
        self.cache_size = cache_size
        self._cache: OrderedDict[str, GeocodeResult | None] = OrderedDict()
        self._lock = threading.Lock()

    @classmethod
    def from_config(cls, client: HttpClient, cfg: dict) -> "GeocodeResolver":
        return cls(
            client,
            endpoint=cfg.get("endpoint", DEFAULT_ENDPOINT),
            timeout=TimeoutConfig.from_config(cfg.get("timeout")),
            retry=RetryConfig.from_config(cfg.get("retry")),
            cache_size=int(cfg.get("cache_size", 1024)),
        )

    def _cached(self, key: str) -> tuple[bool, GeocodeResult | None]:
        with self._lock:
            if key not in self._cache:
                return False, None
            self._cache.move_to_end(key)
            return True, self._cache[key]

    def _remember(self, key: str, result: GeocodeResult | None) -> None:
        with self._lock:
            self._cache[key] = result
            self._cache.move_to_end(key)
            while len(self._cache) > self.cache_size:
                self._cache.popitem(last=False)

    def _lookup(self, normalised: str) -> GeocodeResult | None:
        url = f"{self.endpoint}/{quote(normalised)}"
        try:
            payload = self.client.get_json(
                url,
                source_type=SOURCE_TYPE,
                timeout=self.timeout,
                retry=self.retry,
                not_found_ok=True,
            )
        except TransientError:
            raise
        except HttpRequestError as exc:
            raise TransientError(f"Postcode lookup rejected for {normalised}: {exc}") from exc
        return parse_lookup_payload(payload, normalised)

    def resolve(self, postcode: str | None) -> GeocodeResult | None:
        normalised = normalise_postcode(postcode)
        if normalised is None:
            return None
        key = postcode_key(normalised)

        hit, cached = self._cached(key)
        if hit:
            return cached

        result = self._lookup(normalised)
        self._remember(key, result)
        log_event(
            LOGGER,
            "postcode resolved" if result else "postcode not found",
            component="geocoding",
            postcode=normalised,
            event="GEOCODE_LOOKUP",
            status="ok" if result else "not_found",
        )
        return result
