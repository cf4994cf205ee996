"""
Exception hierarchy for Peppol API operations.
"""

import json


class PeppolError(Exception):
    """Base exception for Peppol client errors."""

    pass


class PeppolAPIError(PeppolError):
    """API returned an error response.

    JSON:API error bodies look like ``{"errors": [{"status": "403",
    "detail": "..."}]}``; the list is kept as-is in ``errors``.
    """

    def __init__(
        self,
        status_code: int,
        message: str,
        response_body: str | None = None,
        errors: list[dict] | None = None,
    ):
        self.status_code = status_code
        self.message = message
        self.response_body = response_body
        self.errors = errors or []
        super().__init__(f"Peppol API error {status_code}: {self.first_error_detail or message}")

    @property
    def first_error_detail(self) -> str | None:
        """Detail of the first JSON:API error object, if the body carried one."""
        for error in self.errors:
            if isinstance(error, dict):
                detail = error.get("detail") or error.get("title")
                if detail:
                    return str(detail)
        return None

    def describe(self) -> str:
        """Readable detail for reports: first error detail or the raw body."""
        if self.first_error_detail:
            return self.first_error_detail
        if self.response_body:
            try:
                return json.dumps(json.loads(self.response_body), indent=2)
            except ValueError:
                return self.response_body
        return self.message


class PeppolAuthenticationError(PeppolAPIError):
    """Token exchange was refused or returned no access token."""

    pass


class PeppolConnectionError(PeppolError):
    """Failed to connect to the Peppol API (connection refused, timeout, TLS)."""

    pass


class CertificateError(PeppolError):
    """Client certificate bundle is missing or cannot be opened."""

    pass
