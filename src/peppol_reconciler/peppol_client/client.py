"""
Peppol e-invoicing API client implementation.

The platform speaks JSON:API for document and status resources and returns
raw UBL XML for a single inbound document.
"""

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone

import requests

from ..config import Config
from .errors import (
    PeppolAPIError,
    PeppolAuthenticationError,
    PeppolConnectionError,
    PeppolError,
)
from .tls import create_session

logger = logging.getLogger(__name__)

JSON_API = "application/vnd.api+json"
BUSINESS_STATUS_TYPE = "peppolInboundDocumentBusinessStatus"


def parse_timestamp(value: str | None) -> datetime | None:
    """Parse an API timestamp (ISO 8601, ``Z`` suffix allowed) to an aware datetime."""
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    except ValueError:
        logger.debug(f"Unparseable timestamp: {value!r}")
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def format_timestamp(value: datetime) -> str:
    """Format a datetime the way the API expects query timestamps."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    utc = value.astimezone(timezone.utc)
    return utc.isoformat(timespec="milliseconds").replace("+00:00", "Z")


@dataclass
class PeppolDocument:
    """Inbound or outbound Peppol document.

    Outbound documents carry a denormalized business status string; the
    status of an inbound document lives in its business-status list.
    """

    id: str
    created: str | None  # Raw creation timestamp as sent by the API
    transmission_id: str | None = None
    technical_status: str | None = None
    business_status: str | None = None
    supplier_id: str | None = None
    attributes: dict = field(default_factory=dict)

    @property
    def created_at(self) -> datetime | None:
        return parse_timestamp(self.created)

    @classmethod
    def from_api_response(cls, data: dict) -> "PeppolDocument":
        """Create from a JSON:API resource object."""
        attributes = data.get("attributes") or {}
        supplier = ((data.get("relationships") or {}).get("supplier") or {}).get("data") or {}

        return cls(
            id=str(data.get("id") or attributes.get("id", "")),
            created=attributes.get("createdAt"),
            transmission_id=attributes.get("transmissionId"),
            technical_status=attributes.get("technicalStatus"),
            business_status=attributes.get("businessStatus"),
            supplier_id=supplier.get("id"),
            attributes=attributes,
        )


@dataclass
class BusinessStatus:
    """A single business-status record of an inbound document."""

    id: str | None
    code: str | None
    technical_status: str | None = None
    created: str | None = None

    @property
    def created_at(self) -> datetime | None:
        return parse_timestamp(self.created)

    @classmethod
    def from_api_response(cls, data: dict) -> "BusinessStatus":
        attributes = data.get("attributes") or {}
        return cls(
            id=str(data.get("id", "")),
            code=attributes.get("code"),
            technical_status=attributes.get("technicalStatus"),
            created=attributes.get("createdAt"),
        )


class PeppolClient:
    """
    Client for the Peppol e-invoicing API.

    Features:
    - OAuth2 client-credentials token exchange
    - List outbound and inbound documents (first page only)
    - Download the UBL XML of an inbound document
    - Read and post business statuses

    There is no retry policy: every failure surfaces to the caller with the
    HTTP status and body untouched.
    """

    def __init__(self, config: Config, session: requests.Session | None = None):
        """
        Initialize Peppol client.

        Args:
            config: Application configuration
            session: Preconfigured session; a mutual-TLS session is created
                from ``config.tls`` when omitted
        """
        self.config = config
        self.base_url = config.api.base_url.rstrip("/")
        self.timeout = config.settings.timeout_seconds
        self.page_size = config.settings.page_size
        self.session = session if session is not None else create_session(config.tls)
        self.token: str | None = None

    @property
    def auth_headers(self) -> dict[str, str]:
        if not self.token:
            raise PeppolError("Not authenticated: call authenticate() first")
        return {
            "Authorization": f"Bearer {self.token}",
            "Accept": JSON_API,
        }

    def _request(
        self,
        method: str,
        url: str,
        params: dict | None = None,
        json_data: dict | None = None,
        form_data: dict | None = None,
        headers: dict | None = None,
        auth: tuple[str, str] | None = None,
    ) -> requests.Response:
        """Make an API request with error handling.

        JSON bodies are serialized here so the JSON:API content type in
        ``headers`` is not replaced by requests' ``application/json``.
        """
        logger.debug(f"API Request: {method} {url}")
        if json_data:
            logger.debug(f"Request body: {json.dumps(json_data)}")

        try:
            response = self.session.request(
                method=method,
                url=url,
                params=params,
                data=json.dumps(json_data) if json_data is not None else form_data,
                headers=headers,
                auth=auth,
                timeout=self.timeout,
            )
        except requests.exceptions.ConnectionError as e:
            raise PeppolConnectionError(f"Failed to connect to {url}: {e}") from e
        except requests.exceptions.Timeout as e:
            raise PeppolConnectionError(f"Request to {url} timed out: {e}") from e
        except requests.exceptions.RequestException as e:
            raise PeppolError(f"Request failed: {e}") from e

        logger.debug(f"Response status: {response.status_code}")

        if not response.ok:
            error_body = response.text
            errors: list[dict] = []
            try:
                body = response.json()
                if isinstance(body, dict) and isinstance(body.get("errors"), list):
                    errors = body["errors"]
            except ValueError:
                pass

            logger.debug(f"Error response body: {error_body}")
            raise PeppolAPIError(
                status_code=response.status_code,
                message=response.reason or "",
                response_body=error_body,
                errors=errors,
            )

        return response

    def _json(self, response: requests.Response) -> dict:
        """Decode a JSON object body; anything else is an API error."""
        try:
            body = response.json()
        except ValueError:
            body = None
        if not isinstance(body, dict):
            logger.debug(f"Non-JSON response body: {response.text[:200]}")
            raise PeppolAPIError(
                status_code=response.status_code,
                message="Invalid JSON response",
                response_body=response.text,
            )
        return body

    def _data(self, response: requests.Response) -> list[dict]:
        """Extract the primary ``data`` array from a JSON:API collection."""
        body = self._json(response)
        if (body.get("links") or {}).get("next"):
            logger.warning(
                f"{response.url} has more pages; only the first {self.page_size} "
                "records are processed"
            )
        return body.get("data") or []

    def authenticate(self) -> str:
        """
        Exchange client credentials for a bearer token.

        Returns:
            The access token (also stored on the client)

        Raises:
            PeppolAuthenticationError: If the token endpoint refuses the credentials
            PeppolConnectionError: If the token endpoint is unreachable
        """
        auth = self.config.auth
        try:
            response = self._request(
                "POST",
                self.config.api.token_url,
                form_data={"grant_type": "client_credentials"},
                headers={"Accept": "application/json"},
                auth=(auth.client_id, auth.client_secret),
            )
        except PeppolAPIError as e:
            raise PeppolAuthenticationError(
                status_code=e.status_code,
                message=e.message,
                response_body=e.response_body,
                errors=e.errors,
            ) from e

        try:
            token = self._json(response).get("access_token")
        except PeppolAPIError as e:
            raise PeppolAuthenticationError(
                status_code=e.status_code,
                message=e.message,
                response_body=e.response_body,
            ) from e
        if not token:
            raise PeppolAuthenticationError(
                status_code=response.status_code,
                message="Token response contains no access_token",
                response_body=response.text,
            )

        self.token = token
        return token

    def fetch_outbound_documents(self, supplier_id: str, from_date: datetime) -> list[PeppolDocument]:
        """
        List outbound documents whose status changed since ``from_date``.

        Args:
            supplier_id: Sending supplier
            from_date: Lower bound of the status-change window
        """
        response = self._request(
            "GET",
            f"{self.base_url}/peppol/documents",
            params={
                "supplierId": supplier_id,
                "fromStatusChanged": format_timestamp(from_date),
                "page[size]": self.page_size,
            },
            headers=self.auth_headers,
        )
        return [PeppolDocument.from_api_response(d) for d in self._data(response)]

    def fetch_inbound_documents(self, supplier_id: str) -> list[PeppolDocument]:
        """List inbound documents received by ``supplier_id``."""
        response = self._request(
            "GET",
            f"{self.base_url}/peppol/inbound-documents",
            params={
                "supplierId": supplier_id,
                "page[size]": self.page_size,
            },
            headers=self.auth_headers,
        )
        return [PeppolDocument.from_api_response(d) for d in self._data(response)]

    def fetch_document_xml(self, document_id: str) -> str:
        """Download the UBL XML body of an inbound document."""
        response = self._request(
            "GET",
            f"{self.base_url}/peppol/inbound-documents/{document_id}",
            headers={**self.auth_headers, "Accept": "application/xml"},
        )
        return response.text

    def fetch_business_statuses(self, document_id: str) -> list[BusinessStatus]:
        """List all business-status records of an inbound document (unordered)."""
        response = self._request(
            "GET",
            f"{self.base_url}/peppol/inbound-documents/{document_id}/business-statuses",
            headers=self.auth_headers,
        )
        return [BusinessStatus.from_api_response(d) for d in self._data(response)]

    def send_business_status(self, document_id: str, code: str) -> BusinessStatus:
        """
        Post a business status for an inbound document.

        Raises:
            PeppolAPIError: 403 with a "Cannot transition" detail when the
                document already has a final status
        """
        payload = {
            "data": {
                "type": BUSINESS_STATUS_TYPE,
                "attributes": {"code": code},
            }
        }
        response = self._request(
            "POST",
            f"{self.base_url}/peppol/inbound-documents/{document_id}/business-statuses",
            json_data=payload,
            headers={**self.auth_headers, "Content-Type": JSON_API},
        )
        if not response.content.strip():
            # 201/204 without a body: accepted, but the new record is unknown
            return BusinessStatus(id=None, code=code)
        return BusinessStatus.from_api_response(self._json(response).get("data") or {})

    def close(self) -> None:
        self.session.close()
