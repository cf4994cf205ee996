"""
Tests for the Peppol API client.

These tests use responses library to mock HTTP requests,
validating client behavior without making real API calls.
"""

import json
import logging
from datetime import datetime, timezone
from urllib.parse import parse_qs, urlparse

import pytest
import requests
import responses

from fixtures import (
    ACCESS_TOKEN,
    BASE_URL,
    INBOUND_SUPPLIER_ID,
    INBOUND_URL,
    OUTBOUND_SUPPLIER_ID,
    OUTBOUND_URL,
    TOKEN_URL,
    cannot_transition_error,
    jsonapi_document,
    jsonapi_status,
    peppol_invoice,
    statuses_url,
)
from peppol_reconciler.peppol_client import (
    BusinessStatus,
    PeppolAPIError,
    PeppolAuthenticationError,
    PeppolClient,
    PeppolConnectionError,
    PeppolDocument,
    PeppolError,
)
from peppol_reconciler.peppol_client.client import format_timestamp, parse_timestamp


def _query(call) -> dict[str, list[str]]:
    return parse_qs(urlparse(call.request.url).query)


class TestAuthentication:
    """Test client-credentials token exchange."""

    @responses.activate
    def test_authenticate_success(self, config, session):
        """Token is requested with basic auth and stored on the client."""
        responses.add(
            responses.POST,
            TOKEN_URL,
            json={"access_token": ACCESS_TOKEN, "token_type": "Bearer", "expires_in": 3600},
            status=200,
        )

        client = PeppolClient(config, session=session)
        token = client.authenticate()

        assert token == ACCESS_TOKEN
        assert client.token == ACCESS_TOKEN

        request = responses.calls[0].request
        assert request.headers["Authorization"] == "Basic Y2xpZW50LWlkOmNsaWVudC1zZWNyZXQ="
        assert request.body == "grant_type=client_credentials"
        assert request.headers["Content-Type"] == "application/x-www-form-urlencoded"

    @responses.activate
    def test_authenticate_rejected(self, config, session):
        """A refused token exchange raises PeppolAuthenticationError."""
        responses.add(
            responses.POST,
            TOKEN_URL,
            json={"error": "invalid_client"},
            status=401,
        )

        client = PeppolClient(config, session=session)
        with pytest.raises(PeppolAuthenticationError) as exc_info:
            client.authenticate()

        assert exc_info.value.status_code == 401
        assert "invalid_client" in exc_info.value.describe()
        assert client.token is None

    @responses.activate
    def test_authenticate_without_access_token(self, config, session):
        """A 200 response without access_token is still an authentication failure."""
        responses.add(responses.POST, TOKEN_URL, json={"token_type": "Bearer"}, status=200)

        client = PeppolClient(config, session=session)
        with pytest.raises(PeppolAuthenticationError):
            client.authenticate()

    @responses.activate
    def test_authenticate_non_json(self, config, session):
        responses.add(responses.POST, TOKEN_URL, body="<html>login</html>", status=200)

        client = PeppolClient(config, session=session)
        with pytest.raises(PeppolAuthenticationError):
            client.authenticate()
        assert client.token is None

    def test_request_before_authenticate(self, config, session):
        """Calling the API without a token fails before any request."""
        client = PeppolClient(config, session=session)
        with pytest.raises(PeppolError, match="Not authenticated"):
            client.fetch_inbound_documents(INBOUND_SUPPLIER_ID)


class TestDocumentListing:
    """Test outbound and inbound document listing."""

    @responses.activate
    def test_fetch_outbound_documents(self, client):
        """Outbound listing sends supplier, window start and page size."""
        responses.add(
            responses.GET,
            OUTBOUND_URL,
            json={
                "data": [
                    jsonapi_document(
                        "out-1",
                        "T1",
                        technicalStatus="delivered",
                        businessStatus="pending",
                    )
                ]
            },
            status=200,
        )

        since = datetime(2025, 11, 15, 12, 0, tzinfo=timezone.utc)
        docs = client.fetch_outbound_documents(OUTBOUND_SUPPLIER_ID, since)

        assert len(docs) == 1
        assert docs[0].id == "out-1"
        assert docs[0].transmission_id == "T1"
        assert docs[0].technical_status == "delivered"
        assert docs[0].business_status == "pending"

        call = responses.calls[0]
        query = _query(call)
        assert query["supplierId"] == [OUTBOUND_SUPPLIER_ID]
        assert query["fromStatusChanged"] == ["2025-11-15T12:00:00.000Z"]
        assert query["page[size]"] == ["100"]
        assert call.request.headers["Authorization"] == f"Bearer {ACCESS_TOKEN}"
        assert call.request.headers["Accept"] == "application/vnd.api+json"

    @responses.activate
    def test_fetch_inbound_documents(self, client):
        """Inbound listing filters by supplier and reads the supplier relationship."""
        doc = jsonapi_document("in-1", "T1")
        doc["relationships"] = {"supplier": {"data": {"type": "suppliers", "id": "sup-9"}}}
        responses.add(responses.GET, INBOUND_URL, json={"data": [doc]}, status=200)

        docs = client.fetch_inbound_documents(INBOUND_SUPPLIER_ID)

        assert [d.id for d in docs] == ["in-1"]
        assert docs[0].supplier_id == "sup-9"
        assert docs[0].created_at == datetime(2025, 11, 20, 9, 0, tzinfo=timezone.utc)
        assert _query(responses.calls[0])["supplierId"] == [INBOUND_SUPPLIER_ID]

    @responses.activate
    def test_empty_data_gives_empty_list(self, client):
        responses.add(responses.GET, INBOUND_URL, json={"data": None}, status=200)

        assert client.fetch_inbound_documents(INBOUND_SUPPLIER_ID) == []

    @responses.activate
    def test_only_first_page_is_read(self, client, caplog):
        """A next link is logged but never followed."""
        responses.add(
            responses.GET,
            INBOUND_URL,
            json={
                "data": [jsonapi_document("in-1", "T1")],
                "links": {"next": f"{INBOUND_URL}?page[number]=2"},
            },
            status=200,
        )

        with caplog.at_level(logging.WARNING):
            docs = client.fetch_inbound_documents(INBOUND_SUPPLIER_ID)

        assert len(docs) == 1
        assert len(responses.calls) == 1
        assert "only the first 100 records" in caplog.text


class TestDocumentXml:
    """Test inbound document XML download."""

    @responses.activate
    def test_fetch_document_xml(self, client):
        xml = peppol_invoice(number="2001")
        responses.add(
            responses.GET,
            f"{INBOUND_URL}/in-1",
            body=xml,
            content_type="application/xml",
            status=200,
        )

        assert client.fetch_document_xml("in-1") == xml
        assert responses.calls[0].request.headers["Accept"] == "application/xml"


class TestBusinessStatuses:
    """Test business status read and write."""

    @responses.activate
    def test_fetch_business_statuses(self, client):
        responses.add(
            responses.GET,
            statuses_url("in-1"),
            json={
                "data": [
                    jsonapi_status("s-1", "received", "2025-11-20T10:00:00Z"),
                    jsonapi_status("s-2", "accepted", "2025-11-21T10:00:00Z", "sent"),
                ]
            },
            status=200,
        )

        statuses = client.fetch_business_statuses("in-1")

        assert [s.code for s in statuses] == ["received", "accepted"]
        assert statuses[1].technical_status == "sent"

    @responses.activate
    def test_send_business_status(self, client):
        """Status is posted as a JSON:API resource."""
        responses.add(
            responses.POST,
            statuses_url("in-1"),
            json={"data": jsonapi_status("s-3", "accepted", "2025-11-21T11:00:00Z", "pending")},
            status=201,
        )

        created = client.send_business_status("in-1", "accepted")

        assert isinstance(created, BusinessStatus)
        assert created.id == "s-3"
        assert created.technical_status == "pending"

        request = responses.calls[0].request
        assert request.headers["Content-Type"] == "application/vnd.api+json"
        assert json.loads(request.body) == {
            "data": {
                "type": "peppolInboundDocumentBusinessStatus",
                "attributes": {"code": "accepted"},
            }
        }

    @responses.activate
    def test_send_business_status_empty_body(self, client):
        """An empty 201 still means the status was accepted."""
        responses.add(responses.POST, statuses_url("in-1"), body="", status=201)

        created = client.send_business_status("in-1", "accepted")

        assert created.id is None
        assert created.code == "accepted"

    @responses.activate
    def test_send_business_status_refused(self, client):
        """A 403 keeps the status code and the JSON:API error detail."""
        responses.add(
            responses.POST,
            statuses_url("in-1"),
            json=cannot_transition_error("accepted", "rejected"),
            status=403,
        )

        with pytest.raises(PeppolAPIError) as exc_info:
            client.send_business_status("in-1", "rejected")

        error = exc_info.value
        assert error.status_code == 403
        assert error.first_error_detail == "Cannot transition from accepted to rejected"
        assert "Cannot transition" in str(error)


class TestErrorHandling:
    """Test transport and server error mapping."""

    @responses.activate
    def test_server_error_without_json(self, client):
        responses.add(responses.GET, INBOUND_URL, body="Bad gateway", status=502)

        with pytest.raises(PeppolAPIError) as exc_info:
            client.fetch_inbound_documents(INBOUND_SUPPLIER_ID)

        assert exc_info.value.errors == []
        assert exc_info.value.first_error_detail is None
        assert exc_info.value.describe() == "Bad gateway"

    @responses.activate
    def test_non_json_listing(self, client):
        """A 200 maintenance page is an API error, not a decoder crash."""
        responses.add(responses.GET, INBOUND_URL, body="<html>maintenance</html>", status=200)

        with pytest.raises(PeppolAPIError) as exc_info:
            client.fetch_inbound_documents(INBOUND_SUPPLIER_ID)

        assert exc_info.value.status_code == 200
        assert exc_info.value.message == "Invalid JSON response"
        assert exc_info.value.describe() == "<html>maintenance</html>"

    @responses.activate
    def test_non_object_json(self, client):
        responses.add(responses.GET, statuses_url("in-1"), json=["not", "an", "object"], status=200)

        with pytest.raises(PeppolAPIError):
            client.fetch_business_statuses("in-1")

    @responses.activate
    def test_connection_error(self, client):
        responses.add(
            responses.GET,
            INBOUND_URL,
            body=requests.exceptions.ConnectionError("connection refused"),
        )

        with pytest.raises(PeppolConnectionError):
            client.fetch_inbound_documents(INBOUND_SUPPLIER_ID)

    @responses.activate
    def test_no_retries(self, client):
        """Failures surface on the first attempt."""
        responses.add(responses.GET, INBOUND_URL, json={"errors": []}, status=503)

        with pytest.raises(PeppolAPIError):
            client.fetch_inbound_documents(INBOUND_SUPPLIER_ID)

        assert len(responses.calls) == 1


class TestRecords:
    """Test record parsing helpers."""

    def test_document_id_falls_back_to_attributes(self):
        doc = PeppolDocument.from_api_response({"attributes": {"id": "attr-id"}})
        assert doc.id == "attr-id"
        assert doc.transmission_id is None
        assert doc.created_at is None

    def test_parse_timestamp_variants(self):
        assert parse_timestamp("2025-11-20T09:00:00Z") == datetime(
            2025, 11, 20, 9, 0, tzinfo=timezone.utc
        )
        assert parse_timestamp("2025-11-20T09:00:00.123+01:00").utcoffset().total_seconds() == 3600
        assert parse_timestamp("2025-11-20").tzinfo == timezone.utc
        assert parse_timestamp("not a date") is None
        assert parse_timestamp(None) is None

    def test_format_timestamp_is_utc_with_millis(self):
        naive = datetime(2025, 11, 15, 12, 0, 0)
        assert format_timestamp(naive) == "2025-11-15T12:00:00.000Z"

    def test_base_url_trailing_slash(self, config, session):
        from dataclasses import replace

        from peppol_reconciler.config import ApiConfig

        cfg = replace(config, api=ApiConfig(base_url=f"{BASE_URL}/", token_url=TOKEN_URL))
        assert PeppolClient(cfg, session=session).base_url == BASE_URL
