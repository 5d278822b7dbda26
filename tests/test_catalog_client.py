"""Tests for core.catalog_client.CatalogClient.

All tests mock the client's requests.Session.post so no real HTTP calls are
made. Covers token acquisition, page decoding, and failure classification.
"""

import json
import os
from unittest.mock import MagicMock, patch

import pytest
import requests

from core.catalog_client import (
    CatalogClient,
    PageStatus,
    ProductRecord,
    classify_errors,
)
from core.state_store import StateStore

FIXTURES_DIR = os.path.join(os.path.dirname(__file__), "fixtures")
API_URL = "https://api.example.test/graphql"


def load_fixture(name):
    with open(os.path.join(FIXTURES_DIR, name)) as f:
        return json.load(f)


def _mock_response(payload=None, status_code=200, invalid_json=False):
    mock_resp = MagicMock()
    mock_resp.status_code = status_code
    if invalid_json:
        mock_resp.json.side_effect = ValueError("Expecting value: line 1 column 1 (char 0)")
    else:
        mock_resp.json.return_value = payload
    return mock_resp


@pytest.fixture
def store(tmp_path):
    return StateStore(tmp_path)


@pytest.fixture
def client(store):
    return CatalogClient(API_URL, store=store)


def _messages(store):
    return [e.message for e in store.read_log()]


# ---------------------------------------------------------------------------
# Token acquisition
# ---------------------------------------------------------------------------

def test_request_token_success(client, store):
    with patch.object(client._session, "post", return_value=_mock_response(load_fixture("token_response.json"))) as mock_post:
        token = client.request_token("my-secure-key")

    assert token == "tok-3f9a1c"
    assert "Token obtained successfully." in _messages(store)

    args, kwargs = mock_post.call_args
    assert args[0] == API_URL
    assert kwargs["timeout"] == 30
    assert kwargs["verify"] is True
    assert kwargs["headers"]["Content-Type"] == "application/json"
    assert "X-Auth-Token" not in kwargs["headers"]
    query = kwargs["json"]["query"]
    assert "requestToken" in query
    assert 'secure: "my-secure-key"' in query
    assert 'scope: "products"' in query


def test_request_token_empty_key_sends_nothing(client, store):
    with patch.object(client._session, "post") as mock_post:
        assert client.request_token("") is None
        assert client.request_token("   ") is None

    mock_post.assert_not_called()
    assert _messages(store)[0] == "ERROR: Secure key is not configured."


def test_request_token_transport_failure(client, store):
    with patch.object(client._session, "post", side_effect=requests.ConnectionError("connection refused")):
        assert client.request_token("key") is None
    assert "ERROR: Cannot connect to the API." in _messages(store)


def test_request_token_invalid_json(client, store):
    with patch.object(client._session, "post", return_value=_mock_response(invalid_json=True, status_code=502)):
        assert client.request_token("key") is None
    assert "ERROR: Cannot connect to the API." in _messages(store)


def test_request_token_graphql_error(client, store):
    payload = {"errors": [{"message": "Invalid secure key"}]}
    with patch.object(client._session, "post", return_value=_mock_response(payload)):
        assert client.request_token("wrong") is None

    line = _messages(store)[-1]
    assert line.startswith("ERROR: API returned an error while requesting a token:")
    assert "Invalid secure key" in line


def test_request_token_missing_token(client, store):
    payload = {"data": {"requestToken": None}}
    with patch.object(client._session, "post", return_value=_mock_response(payload)):
        assert client.request_token("key") is None
    assert "ERROR: API did not return a token." in _messages(store)


def test_request_token_without_store_uses_logging(caplog):
    client = CatalogClient(API_URL)
    with caplog.at_level("ERROR", logger="core.catalog_client"):
        assert client.request_token("") is None
    assert "ERROR: Secure key is not configured." in caplog.text


# ---------------------------------------------------------------------------
# Product pages
# ---------------------------------------------------------------------------

def test_fetch_products_page_decodes_records(client):
    with patch.object(client._session, "post", return_value=_mock_response(load_fixture("products_page.json"))) as mock_post:
        page = client.fetch_products_page("tok", offset=200, limit=100)

    assert page.ok
    assert page.status is PageStatus.OK
    assert len(page.records) == 4
    assert page.records[0].sku == "ABC123"
    assert page.records[0].availability == "A"
    assert page.records[1].availability == "N"
    assert page.records[2].sku is None
    assert page.records[3].availability == ""

    kwargs = mock_post.call_args[1]
    assert kwargs["headers"]["X-Auth-Token"] == "tok"
    assert "limit: 100, offset: 200" in kwargs["json"]["query"]


def test_fetch_products_page_empty(client):
    payload = {"data": {"products": {"edges": []}}}
    with patch.object(client._session, "post", return_value=_mock_response(payload)):
        page = client.fetch_products_page("tok", 0, 100)
    assert page.ok
    assert page.records == []


def test_fetch_products_page_transport_error(client):
    with patch.object(client._session, "post", side_effect=requests.Timeout("read timed out")):
        page = client.fetch_products_page("tok", 0, 100)
    assert page.status is PageStatus.TRANSPORT_ERROR
    assert "read timed out" in page.error


def test_fetch_products_page_non_object_json(client):
    with patch.object(client._session, "post", return_value=_mock_response(["unexpected"])):
        page = client.fetch_products_page("tok", 0, 100)
    assert page.status is PageStatus.TRANSPORT_ERROR


def test_fetch_products_page_rate_limited(client):
    payload = {"errors": [{"message": "API rate limit exceeded, try again later"}]}
    with patch.object(client._session, "post", return_value=_mock_response(payload)):
        page = client.fetch_products_page("tok", 0, 100)
    assert page.status is PageStatus.RATE_LIMITED
    assert page.messages == ["API rate limit exceeded, try again later"]


def test_fetch_products_page_http_429(client):
    with patch.object(client._session, "post", return_value=_mock_response(status_code=429, invalid_json=True)):
        page = client.fetch_products_page("tok", 0, 100)
    assert page.status is PageStatus.RATE_LIMITED


def test_fetch_products_page_graphql_error(client):
    payload = {"errors": [{"message": "Token expired"}]}
    with patch.object(client._session, "post", return_value=_mock_response(payload)):
        page = client.fetch_products_page("tok", 0, 100)
    assert page.status is PageStatus.GRAPHQL_ERROR
    assert "Token expired" in page.error


# ---------------------------------------------------------------------------
# Classification and records
# ---------------------------------------------------------------------------

def test_classify_errors_markers():
    assert classify_errors([{"message": "rate limit reached"}]) is PageStatus.RATE_LIMITED
    assert classify_errors([{"message": "too many requests"}]) is PageStatus.RATE_LIMITED
    assert classify_errors([{"message": "x", "extensions": {"reason": "rate limit"}}]) is PageStatus.RATE_LIMITED


def test_classify_errors_is_case_sensitive():
    assert classify_errors([{"message": "Too Many Requests"}]) is PageStatus.GRAPHQL_ERROR
    assert classify_errors([{"message": "Rate Limit"}]) is PageStatus.GRAPHQL_ERROR


def test_classify_errors_other():
    assert classify_errors([{"message": "Internal server error"}]) is PageStatus.GRAPHQL_ERROR


def test_product_record_from_edge_tolerates_nulls():
    record = ProductRecord.from_edge({"barcodes": None, "supplies": None})
    assert record.sku is None
    assert record.availability == ""
    assert ProductRecord.from_edge("garbage") == ProductRecord()


def test_product_record_empty_first_barcode_has_no_sku():
    assert ProductRecord(barcodes=["", "123"]).sku is None
