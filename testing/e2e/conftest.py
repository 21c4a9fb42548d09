"""Pytest configuration and fixtures for E2E tests."""
import os
import sys
from pathlib import Path

import pytest

PROJECT_ROOT = Path(__file__).parent.parent.parent

# Make the launcher library importable
sys.path.insert(0, str(PROJECT_ROOT / "scripts"))

from mock_launcher.launch import DEFAULT_CONFIG, base_url as default_base_url, wait_for_service_root


@pytest.fixture(scope="session")
def project_root():
    return PROJECT_ROOT


@pytest.fixture(scope="session")
def base_url():
    """Provide base URL of the mockup server from MOCK_SERVER_URL env var."""
    return os.getenv("MOCK_SERVER_URL", default_base_url(DEFAULT_CONFIG))


@pytest.fixture(scope="session")
def mock_server(base_url):
    """
    Require a running mockup server.

    The server is started separately with scripts/run_mock_server.py; tests
    using this fixture are skipped when nothing answers on the service root.

    Yields:
        str: the server base URL
    """
    timeout = float(os.getenv("MOCK_SERVER_WAIT", "2"))
    if not wait_for_service_root(base_url, timeout_secs=timeout):
        pytest.skip(f"Redfish mockup server not reachable at {base_url}")
    yield base_url


def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line(
        "markers", "requires_server: mark test as needing a running mockup server"
    )
