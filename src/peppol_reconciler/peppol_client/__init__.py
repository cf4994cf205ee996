"""
Peppol e-invoicing API client.

Provides:
- Client-credentials authentication
- Outbound and inbound document listing (first page)
- Inbound document XML download
- Business status read/write

Transport is mutual TLS from a PKCS#12 bundle.
"""

from .client import BusinessStatus, PeppolClient, PeppolDocument
from .errors import (
    CertificateError,
    PeppolAPIError,
    PeppolAuthenticationError,
    PeppolConnectionError,
    PeppolError,
)
from .tls import create_session

__all__ = [
    "BusinessStatus",
    "CertificateError",
    "PeppolAPIError",
    "PeppolAuthenticationError",
    "PeppolClient",
    "PeppolConnectionError",
    "PeppolDocument",
    "PeppolError",
    "create_session",
]
