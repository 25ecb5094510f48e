"""
Pytest configuration and fixtures.
"""

import pytest

from tests.fakes.failing_store import FailingStore
from tryon.config import get_settings, reset_settings
from tryon.payments.ledger import BalanceLedger
from tryon.storage.factory import reset_storage


@pytest.fixture
def test_env(monkeypatch):
    """Test environment: stub provider, no polling interval."""
    monkeypatch.setenv('TRYON_PROVIDER_STUB', '1')
    monkeypatch.setenv('TRYON_POLL_INTERVAL_SECONDS', '0')
    monkeypatch.setenv('STORAGE_MODE', 'memory')
    monkeypatch.delenv('PIAPI_API_KEY', raising=False)
    for name in ('TRYON_IMAGE_MAX_POLL_ATTEMPTS', 'TRYON_VIDEO_MAX_POLL_ATTEMPTS',
                 'TRYON_IMAGE_COST', 'TRYON_VIDEO_COST', 'TRYON_SUBMIT_ATTEMPTS',
                 'TRYON_PREFERRED_SOURCE_PATTERN'):
        monkeypatch.delenv(name, raising=False)

    # Reset singletons after setting env vars
    reset_settings()
    reset_storage()
    yield
    reset_settings()
    reset_storage()


@pytest.fixture
def settings(test_env):
    return get_settings()


@pytest.fixture
def store():
    return FailingStore()


@pytest.fixture
def ledger(store):
    return BalanceLedger(store)
