"""Tests for the Supabase identity provider and identity failures in the change trigger."""

from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import pytest

from src.services import collections
from src.services.change_trigger import ChangeTriggerEngine
from src.services.identity import SupabaseIdentityProvider
from src.utils.errors import IdentityProviderError
from tests.utils.factories import create_activity_data, create_addendum_data
from tests.utils.fakes import FakeIdentityProvider
from tests.utils.helpers import seed_addendum, write_activity

ASHA = "+919800000001"
RAVI = "+919800000002"


def auth_user(phone: str, uid: str, name: str = "") -> SimpleNamespace:
    return SimpleNamespace(
        id=uid,
        phone=phone.lstrip("+"),
        email=None,
        email_confirmed_at=None,
        user_metadata={"display_name": name},
        app_metadata={"admin": ["Acme"]},
    )


class UnavailableIdentityProvider(FakeIdentityProvider):

    async def get_user_by_phone_number(self, phone_number: str):
        raise IdentityProviderError("Failed to look up user: 503 Service Unavailable")


@pytest.mark.unit
@pytest.mark.asyncio
async def test_lookup_finds_the_account():
    client = MagicMock()
    client.auth.admin.list_users.return_value = [auth_user(RAVI, "uid-2"), auth_user(ASHA, "uid-1", "Asha")]

    with patch("src.services.supabase_client.get_supabase_client", return_value=client):
        user = await SupabaseIdentityProvider().get_user_by_phone_number(ASHA)

    assert user.uid == "uid-1"
    assert user.phone_number == ASHA
    assert user.display_name == "Asha"
    assert user.custom_claims == {"admin": ["Acme"]}


@pytest.mark.unit
@pytest.mark.asyncio
async def test_unknown_number_is_unregistered():
    client = MagicMock()
    client.auth.admin.list_users.return_value = [auth_user(RAVI, "uid-2")]

    with patch("src.services.supabase_client.get_supabase_client", return_value=client):
        user = await SupabaseIdentityProvider().get_user_by_phone_number(ASHA)

    assert user.is_registered is False
    assert user.phone_number == ASHA


@pytest.mark.unit
@pytest.mark.asyncio
async def test_provider_outage_raises():
    client = MagicMock()
    client.auth.admin.list_users.side_effect = RuntimeError("503 Service Unavailable")

    with patch("src.services.supabase_client.get_supabase_client", return_value=client):
        with pytest.raises(IdentityProviderError, match="503"):
            await SupabaseIdentityProvider().get_user_by_phone_number(ASHA)


@pytest.mark.unit
@pytest.mark.asyncio
async def test_change_trigger_stops_when_identity_is_unavailable(store, services, fixed_now):
    services.identity = UnavailableIdentityProvider()
    engine = ChangeTriggerEngine(services)
    store.seed(collections.assignee("V1", RAVI), {"canEdit": True, "addToInclude": True})
    path = seed_addendum(store, "O1", "ADD1", create_addendum_data("create", "V1", "visit", ASHA))

    ctx = await write_activity(
        engine, store, "V1", create_activity_data("visit", "Acme", "O1", ASHA, addendumDocRef=path),
    )

    assert ctx is None
    assert store.data(collections.profile(RAVI)) is None
    assert store.data(collections.profile_activity(RAVI, "V1")) is None
    assert store.data(collections.office_activity("O1", "V1")) is None
