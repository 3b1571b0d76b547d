"""Tests for push notification dispatch."""

import pytest

from src.services import collections
from src.services.container import Services
from src.services.notification_dispatcher import build_payload, dispatch_notification
from src.utils.config import Settings
from tests.utils.fakes import FakeNotifier


@pytest.mark.unit
def test_build_payload():
    payload = build_payload("Asha created a leave")

    assert payload == {
        "data": {"read": "1"},
        "notification": {"title": Settings.APP_NAME, "body": "Asha created a leave"},
    }


@pytest.mark.unit
@pytest.mark.asyncio
async def test_sends_to_registered_device(services, store, notifier):
    store.seed(collections.updates("uid-1"), {"registrationToken": "token-1", "phoneNumber": "+919800000001"})

    sent = await dispatch_notification(services, "uid-1", "ADD1", {"comment": "On my way"})

    assert sent is True
    assert notifier.sent == [("token-1", build_payload("On my way"))]


@pytest.mark.unit
@pytest.mark.asyncio
async def test_skips_users_without_token(services, notifier):
    assert await dispatch_notification(services, "uid-2", "ADD1", {"comment": "hi"}) is False
    assert notifier.sent == []


@pytest.mark.unit
@pytest.mark.asyncio
async def test_delivery_failure_is_swallowed(store, identity):
    store.seed(collections.updates("uid-1"), {"registrationToken": "token-1"})
    services = Services(store=store, identity=identity, notifier=FakeNotifier(fail=True))

    assert await dispatch_notification(services, "uid-1", "ADD1", {"comment": "hi"}) is False


@pytest.mark.unit
@pytest.mark.asyncio
async def test_no_notifier_configured(store, identity):
    services = Services(store=store, identity=identity)

    assert await dispatch_notification(services, "uid-1", "ADD1", {"comment": "hi"}) is False
