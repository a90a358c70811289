"""Tests for ClaimUploadClient using a stubbed requests session."""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Tuple

import pytest
import requests

from territory_claim.claim_client import (
    ClaimUploadClient,
    classify_response_status,
    create_default_session,
)
from territory_claim.errors import (
    AuthenticationError,
    ClaimNetworkError,
    ClaimUploadError,
    TerritoryOverlapError,
    UnrepairablePolygonError,
)
from territory_claim.models import ClaimUploadRequest

from conftest import make_territory, square_ring


class FakeResponse:
    def __init__(self, status: int, payload: Any = None, text: str = "") -> None:
        self.status_code = status
        self._payload = payload
        self.text = text
        self.url = "http://claims.test"

    def json(self) -> Any:
        if self._payload is None:
            raise ValueError("no json")
        return self._payload


class FakeSession:
    def __init__(self, *responses: Any) -> None:
        self.responses = list(responses)
        self.calls: List[Tuple[str, str, Dict[str, Any]]] = []
        self.headers: Dict[str, str] = {}

    def request(self, method: str, url: str, **kwargs: Any) -> FakeResponse:
        self.calls.append((method, url, kwargs))
        item = self.responses.pop(0)
        if isinstance(item, Exception):
            raise item
        return item


def _client(session: FakeSession, token: Optional[str] = "tok") -> ClaimUploadClient:
    return ClaimUploadClient("http://claims.test/", token=token, session=session)


def _request() -> ClaimUploadRequest:
    return ClaimUploadRequest(owner_id="alice", path=square_ring(100.0))


def test_upload_posts_payload_and_returns_id() -> None:
    session = FakeSession(FakeResponse(201, {"id": "t-1"}))
    client = _client(session)

    assert client.upload_territory(_request()) == "t-1"

    method, url, kwargs = session.calls[0]
    assert (method, url) == ("POST", "http://claims.test/rpc/upload_territory")
    assert kwargs["json"]["owner_id"] == "alice"
    assert kwargs["json"]["path"][0].keys() == {"lat", "lon"}
    assert session.headers["Authorization"] == "Bearer tok"


def test_error_status_maps_to_typed_error() -> None:
    session = FakeSession(
        FakeResponse(409, {"message": "overlaps t-9", "code": "territory_overlap"})
    )
    with pytest.raises(TerritoryOverlapError, match="overlaps t-9"):
        _client(session).upload_territory(_request())


def test_error_code_overrides_status() -> None:
    response = FakeResponse(400, {"message": "bad", "code": "unrepairable_polygon"})
    error = classify_response_status(response, "Territory upload")
    assert isinstance(error, UnrepairablePolygonError)


def test_plain_text_error_body_uses_status_mapping() -> None:
    error = classify_response_status(FakeResponse(401, text="denied"), "Listing")
    assert isinstance(error, AuthenticationError)
    assert "denied" in str(error)
    assert classify_response_status(FakeResponse(200, {}), "Listing") is None


def test_server_error_is_generic_upload_error() -> None:
    error = classify_response_status(FakeResponse(503, text="down"), "Upload")
    assert type(error) is ClaimUploadError


def test_transport_failure_becomes_network_error() -> None:
    session = FakeSession(requests.ConnectionError("refused"))
    with pytest.raises(ClaimNetworkError):
        _client(session).upload_territory(_request())


def test_missing_id_in_response_is_an_error() -> None:
    session = FakeSession(FakeResponse(201, {}))
    with pytest.raises(ClaimUploadError):
        _client(session).upload_territory(_request())


def test_territory_listing_is_cached_until_invalidated() -> None:
    payload = {"territories": [make_territory("t-1", "bob", square_ring(50.0)).to_payload()]}
    session = FakeSession(
        FakeResponse(200, payload),
        FakeResponse(200, payload),
        FakeResponse(200, {"territories": []}),
    )
    client = _client(session)

    first = client.fetch_territories()
    second = client.fetch_territories()
    assert [t.id for t in first] == ["t-1"]
    assert second == first
    assert len(session.calls) == 1

    assert len(client.fetch_territories(refresh=True)) == 1
    client.invalidate()
    assert client.fetch_territories() == []
    assert len(session.calls) == 3


def test_increment_distance_returns_total() -> None:
    session = FakeSession(FakeResponse(200, {"total_m": 320.5}))
    assert _client(session).increment_distance_walked("alice", 120.0) == 320.5
    _, url, kwargs = session.calls[0]
    assert url.endswith("/rpc/increment_distance_walked")
    assert kwargs["json"] == {"owner_id": "alice", "delta_m": 120.0}


def test_default_session_retries_reads_only() -> None:
    session = create_default_session("tok", read_retries=2)

    retry = session.get_adapter("https://claims.test").max_retries
    assert retry.total == 2
    assert "GET" in retry.allowed_methods
    assert "POST" not in retry.allowed_methods
    assert 429 in retry.status_forcelist
    assert session.headers["Authorization"] == "Bearer tok"

    anonymous = create_default_session()
    assert "Authorization" not in anonymous.headers
