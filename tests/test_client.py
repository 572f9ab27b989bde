"""Tests for the blocking Google Books client."""
import pytest
import requests

from readshelf.client import GoogleBooksClient
from readshelf.errors import RemoteFetchError


class FakeResponse:
    def __init__(self, status_code, payload=None):
        self.status_code = status_code
        self._payload = payload
        self.text = str(payload)

    def json(self):
        if self._payload is None:
            raise ValueError("no json")
        return self._payload


def _client_with(monkeypatch, responses, **kwargs):
    client = GoogleBooksClient(**kwargs)
    calls = []

    def fake_get(url, params=None, timeout=None):
        calls.append(params)
        response = responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response

    monkeypatch.setattr(client.session, "get", fake_get)
    monkeypatch.setattr(client, "_backoff", lambda attempt: None)
    return client, calls


def test_search_returns_candidates(monkeypatch):
    """Test a successful blocking search."""
    payload = {"items": [{"id": "v1", "volumeInfo": {"title": "Dune"}}]}
    client, calls = _client_with(monkeypatch, [FakeResponse(200, payload)])

    candidates = client.search("dune")

    assert [c.title for c in candidates] == ["Dune"]
    assert calls[0]["q"] == "dune"
    assert "key" not in calls[0]


def test_single_attempt_by_default(monkeypatch):
    """Test that a server error is not retried by default."""
    client, calls = _client_with(monkeypatch, [FakeResponse(503, {}), FakeResponse(200, {})])

    with pytest.raises(RemoteFetchError):
        client.search("dune")
    assert len(calls) == 1


def test_opt_in_retry_on_server_error(monkeypatch):
    """Test that a transient failure is retried when retries are enabled."""
    client, calls = _client_with(
        monkeypatch,
        [requests.exceptions.Timeout(), FakeResponse(200, {"items": []})],
        max_retries=2,
    )

    assert client.search("dune") == []
    assert len(calls) == 2


def test_client_error_is_not_retried(monkeypatch):
    """Test that 4xx responses are never retried."""
    client, calls = _client_with(monkeypatch, [FakeResponse(400, {}), FakeResponse(200, {})], max_retries=3)

    with pytest.raises(RemoteFetchError):
        client.search("dune")
    assert len(calls) == 1


def test_malformed_body_is_a_fetch_error(monkeypatch):
    """Test that a non-JSON body raises RemoteFetchError."""
    client, _ = _client_with(monkeypatch, [FakeResponse(200, None)])

    with pytest.raises(RemoteFetchError):
        client.search("dune")
