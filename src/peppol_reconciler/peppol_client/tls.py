"""
Mutual TLS transport for the Peppol API.

The platform authenticates clients with a certificate shipped as a
password-protected PKCS#12 (.pfx) bundle. requests only understands PEM
files, so the bundle is unpacked with cryptography and loaded into an SSL
context that is handed to urllib3 through a transport adapter.
"""

import logging
import os
import ssl
import tempfile
from pathlib import Path

import requests
import urllib3
from cryptography.hazmat.primitives.serialization import (
    BestAvailableEncryption,
    Encoding,
    NoEncryption,
    PrivateFormat,
    pkcs12,
)
from requests.adapters import HTTPAdapter
from urllib3.util.ssl_ import create_urllib3_context

from ..config import TlsConfig
from .errors import CertificateError

logger = logging.getLogger(__name__)


class Pkcs12Adapter(HTTPAdapter):
    """HTTPAdapter that presents a client certificate from an SSL context."""

    def __init__(self, ssl_context: ssl.SSLContext, **kwargs):
        # HTTPAdapter.__init__ calls init_poolmanager, so this must come first
        self._ssl_context = ssl_context
        super().__init__(**kwargs)

    def init_poolmanager(self, *args, **kwargs):
        kwargs["ssl_context"] = self._ssl_context
        return super().init_poolmanager(*args, **kwargs)

    def proxy_manager_for(self, *args, **kwargs):
        kwargs["ssl_context"] = self._ssl_context
        return super().proxy_manager_for(*args, **kwargs)


def build_ssl_context(
    pfx_data: bytes,
    passphrase: str | None,
    verify_server: bool = False,
) -> ssl.SSLContext:
    """
    Build an SSL context carrying the client certificate chain.

    Args:
        pfx_data: Raw PKCS#12 bundle
        passphrase: Bundle password (None for unprotected bundles)
        verify_server: Whether the server certificate is validated

    Raises:
        CertificateError: If the bundle cannot be decrypted or has no key
    """
    password = passphrase.encode() if passphrase else None
    try:
        key, cert, chain = pkcs12.load_key_and_certificates(pfx_data, password)
    except ValueError as e:
        raise CertificateError(f"Cannot open PKCS#12 bundle: {e}") from e

    if key is None or cert is None:
        raise CertificateError("PKCS#12 bundle contains no private key or certificate")

    # The key is only ever written encrypted when a passphrase exists
    encryption = BestAvailableEncryption(password) if password else NoEncryption()
    key_pem = key.private_bytes(Encoding.PEM, PrivateFormat.PKCS8, encryption)
    cert_pem = cert.public_bytes(Encoding.PEM) + b"".join(
        c.public_bytes(Encoding.PEM) for c in chain or []
    )

    cert_reqs = ssl.CERT_REQUIRED if verify_server else ssl.CERT_NONE
    context = create_urllib3_context(cert_reqs=cert_reqs)
    if verify_server:
        context.load_default_certs()

    with tempfile.TemporaryDirectory(prefix="peppol-tls-") as tmp:
        cert_path = os.path.join(tmp, "client.crt")
        key_path = os.path.join(tmp, "client.key")
        with open(cert_path, "wb") as f:
            f.write(cert_pem)
        with open(os.open(key_path, os.O_WRONLY | os.O_CREAT, 0o600), "wb") as f:
            f.write(key_pem)
        context.load_cert_chain(cert_path, key_path, password=passphrase)

    return context


def create_session(tls: TlsConfig) -> requests.Session:
    """
    Create a requests session configured for mutual TLS.

    Raises:
        CertificateError: If the PKCS#12 file does not exist or is invalid
    """
    pfx_file = Path(tls.pfx_file)
    if not pfx_file.exists():
        raise CertificateError(f"SSL certificate not found: {pfx_file}")

    context = build_ssl_context(pfx_file.read_bytes(), tls.passphrase, tls.verify_server)

    session = requests.Session()
    session.verify = tls.verify_server
    if not tls.verify_server:
        urllib3.disable_warnings(urllib3.exceptions.InsecureRequestWarning)
        logger.warning("Server certificate validation is disabled")

    session.mount("https://", Pkcs12Adapter(context))
    logger.debug(f"Loaded client certificate from {pfx_file.resolve()}")
    return session
