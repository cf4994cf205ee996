"""Test fixtures and utilities."""

from datetime import date
from pathlib import Path

import pytest
import requests

from fixtures import ACCESS_TOKEN, BASE_URL, TOKEN_URL
from peppol_reconciler.config import (
    ApiConfig,
    AuthConfig,
    Config,
    SettingsConfig,
)
from peppol_reconciler.peppol_client import PeppolClient


@pytest.fixture
def config(tmp_path) -> Config:
    """Configuration pointing at the test API with a temp report dir."""
    return Config(
        api=ApiConfig(base_url=BASE_URL, token_url=TOKEN_URL),
        auth=AuthConfig(client_id="client-id", client_secret="client-secret"),
        settings=SettingsConfig(
            final_status_wait_seconds=30,
            countdown_interval_seconds=5,
            output_dir=tmp_path / "reports",
            issue_date_cutoff=date(2025, 11, 28),
        ),
    )


@pytest.fixture
def session() -> requests.Session:
    """Plain session; responses intercepts it, no TLS bundle needed."""
    return requests.Session()


@pytest.fixture
def client(config, session) -> PeppolClient:
    """Client that is already authenticated."""
    peppol = PeppolClient(config, session=session)
    peppol.token = ACCESS_TOKEN
    return peppol


@pytest.fixture
def report_dir(config) -> Path:
    return config.settings.output_dir
