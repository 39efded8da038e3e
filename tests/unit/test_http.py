from __future__ import annotations

import pytest
import requests

from lifecycle.common.errors import TransientError
from lifecycle.common.http import HttpClient, HttpRequestError, RetryConfig, RetryableHttpError


class FakeResponse:
    def __init__(self, status_code: int, payload=None, raises_json: bool = False):
        self.status_code = status_code
        self._payload = payload
        self._raises_json = raises_json

    def json(self):
        if self._raises_json:
            raise ValueError("bad json")
        return self._payload


def test_http_get_json_success(monkeypatch):
    client = HttpClient(retry=RetryConfig(max_attempts=1))

    monkeypatch.setattr(client.session, "request", lambda **_kwargs: FakeResponse(200, {"ok": True}))
    payload = client.get_json("https://example.com", source_type="postcodes")

    assert payload == {"ok": True}


def test_http_not_found_ok_returns_none(monkeypatch):
    client = HttpClient(retry=RetryConfig(max_attempts=1))
    monkeypatch.setattr(client.session, "request", lambda **_kwargs: FakeResponse(404, {"error": "Invalid postcode"}))

    assert client.get_json("https://example.com", source_type="postcodes", not_found_ok=True) is None


def test_http_not_found_raises_without_flag(monkeypatch):
    client = HttpClient(retry=RetryConfig(max_attempts=1))
    monkeypatch.setattr(client.session, "request", lambda **_kwargs: FakeResponse(404))

    with pytest.raises(HttpRequestError) as excinfo:
        client.get_json("https://example.com", source_type="postcodes")
    assert excinfo.value.status_code == 404
    assert not isinstance(excinfo.value, TransientError)


def test_http_retryable_status_raises_retryable_error(monkeypatch):
    client = HttpClient(retry=RetryConfig(max_attempts=1))
    monkeypatch.setattr(client.session, "request", lambda **_kwargs: FakeResponse(503, {"x": 1}))

    with pytest.raises(RetryableHttpError) as excinfo:
        client.get_json("https://example.com", source_type="postcodes")
    assert isinstance(excinfo.value, TransientError)


def test_http_retries_until_success(monkeypatch):
    client = HttpClient(retry=RetryConfig(max_attempts=3, multiplier=0, max_wait=0))
    responses = [FakeResponse(502), FakeResponse(429), FakeResponse(200, {"ok": 1})]
    monkeypatch.setattr(client.session, "request", lambda **_kwargs: responses.pop(0))

    assert client.get_json("https://example.com", source_type="postcodes") == {"ok": 1}
    assert responses == []


def test_http_timeout_becomes_transient(monkeypatch):
    client = HttpClient(retry=RetryConfig(max_attempts=1))

    def boom(**_kwargs):
        raise requests.Timeout("read timed out")

    monkeypatch.setattr(client.session, "request", boom)

    with pytest.raises(TransientError):
        client.get_json("https://example.com", source_type="postcodes")


def test_http_invalid_json_raises(monkeypatch):
    client = HttpClient(retry=RetryConfig(max_attempts=1))
    monkeypatch.setattr(client.session, "request", lambda **_kwargs: FakeResponse(200, raises_json=True))

    with pytest.raises(HttpRequestError):
        client.get_json("https://example.com", source_type="postcodes")


def test_http_post_json_returns_status_and_sends_body(monkeypatch):
    client = HttpClient(retry=RetryConfig(max_attempts=1))
    seen = {}

    def capture(**kwargs):
        seen.update(kwargs)
        return FakeResponse(202)

    monkeypatch.setattr(client.session, "request", capture)

    status = client.post_json("https://example.com/send", source_type="sendgrid", payload={"a": 1})

    assert status == 202
    assert seen["method"] == "POST"
    assert seen["json"] == {"a": 1}
    assert seen["headers"]["Content-Type"] == "application/json"


def test_rate_limits_only_for_configured_services():
    client = HttpClient(rate_limits={"postcodes": 5.0, "sendgrid": 0})
    assert set(client.limiters) == {"postcodes"}
