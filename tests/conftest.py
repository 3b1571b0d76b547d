"""Shared pytest fixtures and configuration."""

import os
import pytest
from freezegun import freeze_time

# Set test environment variables
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("SUPABASE_URL", "https://test.supabase.co")
os.environ.setdefault("SUPABASE_SERVICE_ROLE_KEY", "test-key")
os.environ.setdefault("DEFAULT_TIMEZONE", "Asia/Kolkata")

from src.services.change_trigger import ChangeTriggerEngine
from src.services.container import Services
from tests.utils.fakes import FakeGeocoder, FakeIdentityProvider, FakeNotifier
from tests.utils.memory_store import InMemoryDocumentStore


@pytest.fixture
def store():
    """Empty in-memory document store."""
    return InMemoryDocumentStore()


@pytest.fixture
def identity():
    return FakeIdentityProvider()


@pytest.fixture
def geocoder():
    return FakeGeocoder()


@pytest.fixture
def notifier():
    return FakeNotifier()


@pytest.fixture
def services(store, identity, geocoder, notifier):
    return Services(store=store, identity=identity, geocoder=geocoder, notifier=notifier)


@pytest.fixture
def engine(services):
    return ChangeTriggerEngine(services)


@pytest.fixture
def freeze_time_fixture():
    """Fixture for freezing time in tests."""
    with freeze_time("2025-10-15 05:00:00") as frozen_time:
        yield frozen_time


@pytest.fixture
def production(monkeypatch):
    """Run with production only stages enabled."""
    from src.utils.config import Settings
    monkeypatch.setattr(Settings, "ENVIRONMENT", "production")
    yield


@pytest.fixture
def fixed_now(monkeypatch):
    """Pin the change trigger clock without freezing the event loop."""
    from tests.utils.factories import BASE_TIMESTAMP
    monkeypatch.setattr("src.services.change_context.now_ms", lambda: BASE_TIMESTAMP)
    return BASE_TIMESTAMP
