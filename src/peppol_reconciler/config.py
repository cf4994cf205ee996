"""
Configuration management (SSOT).

This module defines ALL configuration for the Peppol reconciler.
All config keys are defined here; no other module should invent config keys.

Key invariants:
- Configuration is loaded once per run and never mutated afterwards
- Environment variables always win over the YAML file
- Credentials are only ever read from here, never from os.environ elsewhere
"""

import os
from dataclasses import dataclass, field
from datetime import date
from pathlib import Path

import yaml

DEFAULT_PFX_FILE = "client_fullchain_with_password.pfx"


class ConfigValidationError(Exception):
    """Raised when configuration validation fails."""

    pass


@dataclass(frozen=True)
class ApiConfig:
    """Peppol API endpoints."""

    base_url: str
    token_url: str


@dataclass(frozen=True)
class AuthConfig:
    """OAuth2 client-credentials pair."""

    client_id: str
    client_secret: str


@dataclass(frozen=True)
class TlsConfig:
    """Mutual TLS settings.

    The client certificate comes from a PKCS#12 bundle. Server certificate
    validation is switched off for the test environment.
    """

    pfx_file: Path = field(default_factory=lambda: Path(DEFAULT_PFX_FILE))
    passphrase: str | None = None
    verify_server: bool = False


@dataclass(frozen=True)
class SupplierConfig:
    """A trading-partner identity on the Peppol platform."""

    id: str
    name: str


@dataclass(frozen=True)
class SettingsConfig:
    """Run settings."""

    page_size: int = 100
    # Outbound documents are fetched this many days back (API max is 6)
    lookback_days: int = 6
    timeout_seconds: int = 30
    # Settle time after sending final statuses
    final_status_wait_seconds: int = 30
    countdown_interval_seconds: int = 5
    output_dir: Path = field(default_factory=lambda: Path("reports"))
    # Invoices issued on or after this date form their own batch
    issue_date_cutoff: date = date(2025, 11, 28)


@dataclass(frozen=True)
class BusinessStatusConfig:
    """Business status codes used on inbound documents."""

    accepted: str = "accepted"
    rejected: str = "rejected"

    @property
    def final_statuses(self) -> tuple[str, ...]:
        """Codes after which the API refuses any further transition."""
        return (self.accepted, self.rejected)


@dataclass(frozen=True)
class Config:
    """Application configuration (SSOT).

    All configuration is centralized here. No other module should define
    configuration keys or defaults.
    """

    api: ApiConfig
    auth: AuthConfig
    tls: TlsConfig = field(default_factory=TlsConfig)
    outbound_supplier: SupplierConfig = field(
        default_factory=lambda: SupplierConfig(
            id="ef111c85-4315-4cde-bed9-efd29f25e19c",
            name="ABC Test Peppol B.V.",
        )
    )
    inbound_supplier: SupplierConfig = field(
        default_factory=lambda: SupplierConfig(
            id="330a0188-1cda-4596-9715-23ddb4c33771",
            name="XYZ Test Peppol B.V.",
        )
    )
    settings: SettingsConfig = field(default_factory=SettingsConfig)
    business_status: BusinessStatusConfig = field(default_factory=BusinessStatusConfig)

    def validate(self) -> list[str]:
        """Validate configuration completeness and consistency.

        Returns:
            List of validation errors (empty if valid)
        """
        errors: list[str] = []

        # Required endpoints and credentials
        if not self.api.base_url:
            errors.append("api.base_url is required (BASE_URL)")
        if not self.api.token_url:
            errors.append("api.token_url is required (TOKEN_URL)")
        if not self.auth.client_id:
            errors.append("auth.client_id is required (CLIENT_ID)")
        if not self.auth.client_secret:
            errors.append("auth.client_secret is required (CLIENT_SECRET)")

        if self.settings.page_size <= 0:
            errors.append("settings.page_size must be positive")
        if self.settings.lookback_days < 0:
            errors.append("settings.lookback_days must not be negative")
        if self.settings.final_status_wait_seconds < 0:
            errors.append("settings.final_status_wait_seconds must not be negative")
        if self.settings.countdown_interval_seconds <= 0:
            errors.append("settings.countdown_interval_seconds must be positive")

        return errors


def _parse_date(value: object, default: date) -> date:
    if value is None or value == "":
        return default
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value))


def _int_from_env(name: str, fallback: int) -> int:
    raw = os.environ.get(name, "")
    if not raw:
        return fallback
    try:
        return int(raw)
    except ValueError:
        raise ConfigValidationError(f"{name} must be an integer, got {raw!r}") from None


def load_config(config_path: Path) -> Config:
    """
    Load configuration from YAML file.

    Environment variables override config values:
    - BASE_URL
    - TOKEN_URL
    - CLIENT_ID
    - CLIENT_SECRET
    - PFX_FILE (PKCS#12 client certificate bundle)
    - SSL_PASSPHRASE
    - PEPPOL_OUTPUT_DIR (report directory)
    - PEPPOL_WAIT_SECONDS (settle time after sending final statuses)
    """
    if config_path.exists():
        with open(config_path) as f:
            data = yaml.safe_load(f) or {}
    else:
        data = {}
    if not isinstance(data, dict):
        raise ConfigValidationError(f"{config_path} must contain a YAML mapping")

    api_data = data.get("api") or {}
    api = ApiConfig(
        base_url=os.environ.get("BASE_URL", api_data.get("base_url", "")).rstrip("/"),
        token_url=os.environ.get("TOKEN_URL", api_data.get("token_url", "")),
    )

    auth_data = data.get("auth") or {}
    auth = AuthConfig(
        client_id=os.environ.get("CLIENT_ID", auth_data.get("client_id", "")),
        client_secret=os.environ.get("CLIENT_SECRET", auth_data.get("client_secret", "")),
    )

    tls_data = data.get("tls") or {}
    tls = TlsConfig(
        pfx_file=Path(os.environ.get("PFX_FILE", tls_data.get("pfx_file", DEFAULT_PFX_FILE))),
        passphrase=os.environ.get("SSL_PASSPHRASE", tls_data.get("passphrase")),
        verify_server=tls_data.get("verify_server", False),
    )

    suppliers_data = data.get("suppliers") or {}
    defaults = Config(api=api, auth=auth)
    outbound_data = suppliers_data.get("outbound") or {}
    outbound = SupplierConfig(
        id=outbound_data.get("id", defaults.outbound_supplier.id),
        name=outbound_data.get("name", defaults.outbound_supplier.name),
    )
    inbound_data = suppliers_data.get("inbound") or {}
    inbound = SupplierConfig(
        id=inbound_data.get("id", defaults.inbound_supplier.id),
        name=inbound_data.get("name", defaults.inbound_supplier.name),
    )

    settings_data = data.get("settings") or {}
    base = SettingsConfig()
    settings = SettingsConfig(
        page_size=settings_data.get("page_size", base.page_size),
        lookback_days=settings_data.get("lookback_days", base.lookback_days),
        timeout_seconds=settings_data.get("timeout_seconds", base.timeout_seconds),
        final_status_wait_seconds=_int_from_env(
            "PEPPOL_WAIT_SECONDS",
            settings_data.get("final_status_wait_seconds", base.final_status_wait_seconds),
        ),
        countdown_interval_seconds=settings_data.get(
            "countdown_interval_seconds", base.countdown_interval_seconds
        ),
        output_dir=Path(
            os.environ.get("PEPPOL_OUTPUT_DIR", settings_data.get("output_dir", base.output_dir))
        ),
        issue_date_cutoff=_parse_date(
            settings_data.get("issue_date_cutoff"), base.issue_date_cutoff
        ),
    )

    status_data = data.get("business_status") or {}
    business_status = BusinessStatusConfig(
        accepted=status_data.get("accepted", "accepted"),
        rejected=status_data.get("rejected", "rejected"),
    )

    return Config(
        api=api,
        auth=auth,
        tls=tls,
        outbound_supplier=outbound,
        inbound_supplier=inbound,
        settings=settings,
        business_status=business_status,
    )


def create_default_config(config_path: Path) -> None:
    """Create a default configuration file."""
    default_config = """# Peppol reconciler configuration
#
# Secrets belong in the environment (or a .env file):
#   BASE_URL, TOKEN_URL, CLIENT_ID, CLIENT_SECRET, PFX_FILE, SSL_PASSPHRASE
# Environment variables always override the values below.

api:
  base_url: ""                             # e.g. https://api.example.com/v1
  token_url: ""                            # OAuth2 token endpoint

tls:
  pfx_file: "client_fullchain_with_password.pfx"
  verify_server: false                     # Test environment uses a private CA

suppliers:
  outbound:
    id: "ef111c85-4315-4cde-bed9-efd29f25e19c"
    name: "ABC Test Peppol B.V."
  inbound:
    id: "330a0188-1cda-4596-9715-23ddb4c33771"
    name: "XYZ Test Peppol B.V."

settings:
  page_size: 100                           # Only the first page is read
  lookback_days: 6                         # API rejects windows above 6 days
  timeout_seconds: 30
  final_status_wait_seconds: 30            # Settle time after sending statuses
  countdown_interval_seconds: 5
  output_dir: "reports"
  issue_date_cutoff: "2025-11-28"          # Inclusive

business_status:
  accepted: "accepted"
  rejected: "rejected"
"""

    config_path.parent.mkdir(parents=True, exist_ok=True)
    with open(config_path, "w") as f:
        f.write(default_config)
