"""HTTP client with retries, timeouts, and per-service rate limiting."""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from types import TracebackType
from typing import Any
from urllib.parse import urlparse

import requests
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential_jitter

from lifecycle.common.constants import USER_AGENT
from lifecycle.common.errors import LifecycleError, TransientError

RETRYABLE_STATUS_CODES = {408, 425, 429, 500, 502, 503, 504}


@dataclass(frozen=True)
class TimeoutConfig:
    connect: float = 5.0
    read: float = 15.0

    @classmethod
    def from_config(cls, cfg: dict | None) -> "TimeoutConfig":
        cfg = cfg or {}
        return cls(connect=float(cfg.get("connect", cls.connect)), read=float(cfg.get("read", cls.read)))


@dataclass(frozen=True)
class RetryConfig:
    max_attempts: int = 3
    multiplier: float = 0.5
    max_wait: float = 5.0

    @classmethod
    def from_config(cls, cfg: dict | None) -> "RetryConfig":
        cfg = cfg or {}
        return cls(
            max_attempts=int(cfg.get("max_attempts", cls.max_attempts)),
            multiplier=float(cfg.get("multiplier", cls.multiplier)),
            max_wait=float(cfg.get("max_wait", cls.max_wait)),
        )


class HttpRequestError(LifecycleError):
    error_code = "HTTP_ERROR"

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class RetryableHttpError(HttpRequestError, TransientError):
    error_code = "HTTP_ERROR"


class TokenBucket:
    def __init__(self, rate_per_sec: float, capacity: float | None = None) -> None:
        self.rate_per_sec = rate_per_sec
        self.capacity = capacity if capacity is not None else rate_per_sec
        self.tokens = self.capacity
        self.updated_at = time.monotonic()
        self.lock = threading.Lock()

    def acquire(self, tokens: float = 1.0) -> None:
        while True:
            with self.lock:
                now = time.monotonic()
                elapsed = now - self.updated_at
                self.tokens = min(self.capacity, self.tokens + elapsed * self.rate_per_sec)
                self.updated_at = now
                if self.tokens >= tokens:
                    self.tokens -= tokens
                    return
                deficit = tokens - self.tokens
                wait_for = max(deficit / self.rate_per_sec, 0.01)
            time.sleep(wait_for)


class HostRateLimiter:
    def __init__(self, default_rate_per_sec: float) -> None:
        self.default_rate_per_sec = default_rate_per_sec
        self.buckets: dict[str, TokenBucket] = {}
        self.lock = threading.Lock()

    def acquire(self, host: str, tokens: float = 1.0) -> None:
        with self.lock:
            bucket = self.buckets.get(host)
            if bucket is None:
                bucket = TokenBucket(rate_per_sec=self.default_rate_per_sec)
                self.buckets[host] = bucket
        bucket.acquire(tokens=tokens)


class HttpClient:
    """Shared client for the geocoding and email services.

    ``rate_limits`` maps a service name (``source_type``) to requests per
    second; services without an entry are not throttled.
    """

    def __init__(
        self,
        *,
        timeout: TimeoutConfig | None = None,
        retry: RetryConfig | None = None,
        rate_limits: dict[str, float] | None = None,
    ) -> None:
        self.timeout = timeout or TimeoutConfig()
        self.retry = retry or RetryConfig()
        self.session = requests.Session()
        self.limiters = {
            name: HostRateLimiter(default_rate_per_sec=rate)
            for name, rate in (rate_limits or {}).items()
            if rate and rate > 0
        }

    def close(self) -> None:
        self.session.close()

    def __enter__(self) -> "HttpClient":
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()

    def _host(self, url: str) -> str:
        return urlparse(url).netloc

    def _apply_rate_limit(self, url: str, source_type: str) -> None:
        limiter = self.limiters.get(source_type)
        if limiter is not None:
            limiter.acquire(self._host(url))

    def _headers(self, headers: dict[str, str] | None) -> dict[str, str]:
        out = {"User-Agent": USER_AGENT, "Accept": "application/json"}
        if headers:
            out.update(headers)
        return out

    def _raise_for_status_or_retry(self, response: requests.Response, allowed: set[int]) -> None:
        status = response.status_code
        if status in allowed:
            return
        if status in RETRYABLE_STATUS_CODES:
            raise RetryableHttpError(f"Retryable HTTP status: {status}", status_code=status)
        if status >= 400:
            raise HttpRequestError(f"HTTP status: {status}", status_code=status)

    def _send(
        self,
        method: str,
        url: str,
        *,
        source_type: str,
        params: dict[str, Any] | None = None,
        json_body: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
        timeout: TimeoutConfig | None = None,
        allowed_statuses: set[int] | None = None,
    ) -> requests.Response:
        req_timeout = timeout or self.timeout
        self._apply_rate_limit(url, source_type)

        try:
            response = self.session.request(
                method=method,
                url=url,
                params=params,
                json=json_body,
                headers=self._headers(headers),
                timeout=(req_timeout.connect, req_timeout.read),
            )
        except (requests.Timeout, requests.ConnectionError) as exc:
            raise RetryableHttpError(f"{source_type} request failed: {exc}") from exc
        self._raise_for_status_or_retry(response, allowed_statuses or set())
        return response

    def request(
        self,
        method: str,
        url: str,
        *,
        source_type: str,
        retry: RetryConfig | None = None,
        **kwargs: Any,
    ) -> requests.Response:
        policy = retry or self.retry

        @retry_policy(policy)
        def _wrapped() -> requests.Response:
            return self._send(method, url, source_type=source_type, **kwargs)

        return _wrapped()

    def get_json(
        self,
        url: str,
        *,
        source_type: str,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
        timeout: TimeoutConfig | None = None,
        retry: RetryConfig | None = None,
        not_found_ok: bool = False,
    ) -> dict[str, Any] | None:
        """GET a JSON document; with ``not_found_ok`` a 404 yields ``None``."""
        response = self.request(
            "GET",
            url,
            source_type=source_type,
            retry=retry,
            params=params,
            headers=headers,
            timeout=timeout,
            allowed_statuses={404} if not_found_ok else None,
        )
        if response.status_code == 404:
            return None
        try:
            return response.json()
        except ValueError as exc:
            raise HttpRequestError(f"Invalid JSON payload from {url}", status_code=response.status_code) from exc

    def post_json(
        self,
        url: str,
        *,
        source_type: str,
        payload: dict[str, Any],
        headers: dict[str, str] | None = None,
        timeout: TimeoutConfig | None = None,
        retry: RetryConfig | None = None,
    ) -> int:
        """POST a JSON body and return the response status code."""
        merged = {"Content-Type": "application/json"}
        if headers:
            merged.update(headers)
        response = self.request(
            "POST",
            url,
            source_type=source_type,
            retry=retry,
            json_body=payload,
            headers=merged,
            timeout=timeout,
        )
        return response.status_code


def retry_policy(policy: RetryConfig):
    return retry(
        stop=stop_after_attempt(max(policy.max_attempts, 1)),
        wait=wait_exponential_jitter(
            initial=policy.multiplier,
            max=policy.max_wait,
            jitter=1.0,
        ),
        retry=retry_if_exception_type(RetryableHttpError),
        reraise=True,
    )
