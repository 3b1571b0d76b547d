"""Change trigger runs for office, subscription and branch activities."""

import pytest

from src.services import collections
from src.services.handlers.office_handler import OfficeHandler, sanitize_office_name, slugify
from tests.utils.factories import create_activity_data, create_addendum_data, field
from tests.utils.fakes import FakeGeocoder
from tests.utils.helpers import seed_addendum, seed_office, seed_template, write_activity

ASHA = "+919800000001"
RAVI = "+919800000002"


def assign(store, activity_id: str, *phone_numbers: str) -> None:
    for phone_number in phone_numbers:
        store.seed(collections.assignee(activity_id, phone_number), {"canEdit": True, "addToInclude": True})


def activities_of(store, template: str) -> dict:
    return {
        activity_id: data
        for activity_id, data in store.collection("Activities").items()
        if data.get("template") == template
    }


def office_data(store, addendum_id: str, action: str, first_contact: str) -> dict:
    path = seed_addendum(store, "O2", addendum_id, create_addendum_data(action, "O2", "office", ASHA))
    attachment = {
        "Name": field("Beta Labs"),
        "Timezone": field("Asia/Kolkata"),
        "First Contact": field(first_contact, "phoneNumber"),
        "Second Contact": field("", "phoneNumber"),
    }
    return create_activity_data(
        "office", "Beta Labs", "O2", ASHA,
        attachment=attachment, activity_name="OFFICE: Beta Labs", addendumDocRef=path,
    )


@pytest.fixture
def office_templates(store):
    seed_template(store, "subscription", attachment={"Subscriber": "phoneNumber", "Template": "string"})
    seed_template(store, "recipient", attachment={"Name": "string", "cc": "string"})
    seed_template(store, "admin", attachment={"Admin": "phoneNumber"})


@pytest.mark.unit
def test_office_name_helpers():
    assert slugify("Beta Labs & Sons") == "beta-labs-sons"
    assert sanitize_office_name("Acme Technologies Pvt. Ltd.") == "acme technologies"
    assert sanitize_office_name("growthfile.com") == "growthfile"


@pytest.mark.unit
@pytest.mark.asyncio
async def test_branch_search_retries_with_sanitized_name(services):
    class SearchingGeocoder(FakeGeocoder):
        def __init__(self):
            super().__init__()
            self.queries = []

        async def search_places(self, query: str) -> list:
            self.queries.append(query)
            return ["place-1"] if query == "acme" else []

    geocoder = SearchingGeocoder()
    services.geocoder = geocoder

    assert await OfficeHandler().find_places(services, "Acme Pvt Ltd") == ["place-1"]
    assert geocoder.queries == ["Acme Pvt Ltd", "acme"]


@pytest.mark.integration
@pytest.mark.asyncio
async def test_office_create(engine, store, office_templates, fixed_now):
    assign(store, "O2", ASHA)

    ctx = await write_activity(engine, store, "O2", office_data(store, "ADD1", "create", ASHA))

    assert ctx is not None
    assert store.data(collections.office("O2"))["slug"] == "beta-labs"

    [recipient] = activities_of(store, "recipient").values()
    assert recipient["activityName"] == "RECIPIENT: FOOTPRINTS REPORT"
    assert recipient["officeId"] == "O2"
    assert recipient["attachment"]["Name"]["value"] == "footprints"

    [subscription] = activities_of(store, "subscription").values()
    assert subscription["attachment"]["Subscriber"]["value"] == ASHA
    assert subscription["attachment"]["Template"]["value"] == "subscription"

    sitemap = store.data(collections.sitemap_entry("beta-labs"))
    assert sitemap["officeId"] == "O2"
    assert sitemap["office"] == "Beta Labs"


@pytest.mark.integration
@pytest.mark.asyncio
async def test_office_rerun_creates_nothing_new(engine, store, office_templates, fixed_now):
    assign(store, "O2", ASHA)
    await write_activity(engine, store, "O2", office_data(store, "ADD1", "create", ASHA))

    snapshot = store.snapshot(collections.activity("O2"))
    assert await engine.handle_change(snapshot, snapshot) is not None

    assert len(activities_of(store, "recipient")) == 1
    assert len(activities_of(store, "subscription")) == 1


@pytest.mark.integration
@pytest.mark.asyncio
async def test_office_contact_change_moves_the_subscription(engine, store, office_templates, fixed_now):
    assign(store, "O2", ASHA, RAVI)
    await write_activity(engine, store, "O2", office_data(store, "ADD1", "create", ASHA))

    await write_activity(engine, store, "O2", office_data(store, "ADD2", "update", RAVI))

    by_subscriber = {
        data["attachment"]["Subscriber"]["value"]: data
        for data in activities_of(store, "subscription").values()
    }
    assert by_subscriber[ASHA]["status"] == "CANCELLED"
    assert by_subscriber[ASHA]["addendumDocRef"] is None
    assert by_subscriber[RAVI]["status"] == "CONFIRMED"


@pytest.fixture
def admin_subscription(store):
    seed_office(store, "Acme", "O1")
    seed_template(store, "admin", attachment={"Admin": "phoneNumber"})
    seed_template(store, "claim", attachment={"Claim Type": "string"}, can_edit_rule="ADMIN")
    store.seed(
        collections.activity("CT1"),
        create_activity_data("claim-type", "Acme", "O1", RAVI, attachment={"Name": field("Travel")}),
    )
    assign(store, "S1", ASHA, RAVI)


def subscription_data(store, addendum_id: str, action: str, status: str = "CONFIRMED") -> dict:
    path = seed_addendum(store, "O1", addendum_id, create_addendum_data(action, "S1", "subscription", RAVI))
    attachment = {"Subscriber": field(ASHA, "phoneNumber"), "Template": field("claim")}
    return create_activity_data(
        "subscription", "Acme", "O1", RAVI,
        attachment=attachment, status=status, addendumDocRef=path,
    )


@pytest.mark.integration
@pytest.mark.asyncio
async def test_subscription_create(engine, store, admin_subscription, fixed_now):
    ctx = await write_activity(engine, store, "S1", subscription_data(store, "ADD1", "create"))

    assert ctx is not None
    subscription = store.data(collections.profile_subscription(ASHA, "S1"))
    assert subscription["template"] == "claim"
    assert subscription["status"] == "CONFIRMED"
    assert subscription["canEditRule"] == "ADMIN"
    assert subscription["include"] == [RAVI]
    assert subscription["attachment"] == {"Claim Type": {"type": "string", "value": ""}}

    [admin] = activities_of(store, "admin").values()
    assert admin["attachment"]["Admin"]["value"] == ASHA
    assert admin["status"] == "CONFIRMED"

    assert store.data(collections.attendance_summary("O1", "10-2025", ASHA))["phoneNumber"] == ASHA
    assert store.data(collections.profile_activity(ASHA, "CT1"))["canEdit"] is False


@pytest.mark.integration
@pytest.mark.asyncio
async def test_cancelling_the_last_admin_subscription_cancels_the_admin(engine, store, admin_subscription, fixed_now):
    await write_activity(engine, store, "S1", subscription_data(store, "ADD1", "create"))

    await write_activity(engine, store, "S1", subscription_data(store, "ADD2", "changeStatus", status="CANCELLED"))

    assert store.data(collections.profile_subscription(ASHA, "S1"))["status"] == "CANCELLED"
    [admin] = activities_of(store, "admin").values()
    assert admin["status"] == "CANCELLED"


@pytest.mark.integration
@pytest.mark.asyncio
async def test_subscriber_change_moves_the_profile_subscription(engine, store, admin_subscription, fixed_now):
    await write_activity(engine, store, "S1", subscription_data(store, "ADD1", "create"))

    data = subscription_data(store, "ADD2", "update")
    data["attachment"]["Subscriber"]["value"] = RAVI
    await write_activity(engine, store, "S1", data)

    assert not store.snapshot(collections.profile_subscription(ASHA, "S1")).exists
    assert store.data(collections.profile_subscription(RAVI, "S1"))["template"] == "claim"


def branch_data(store, addendum_id: str, name: str, template: str = "branch", status: str = "CONFIRMED") -> dict:
    path = seed_addendum(store, "O1", addendum_id, create_addendum_data("update", "B1", template, ASHA))
    return create_activity_data(
        template, "Acme", "O1", ASHA,
        attachment={"Name": field(name)}, status=status, addendumDocRef=path,
    )


@pytest.mark.integration
@pytest.mark.asyncio
async def test_branch_rename_rewrites_employee_base_location(engine, store, fixed_now):
    seed_office(store, "Acme", "O1")
    store.seed(collections.activity("B1"), branch_data(store, "ADD0", "HQ"))
    store.seed(collections.activity("E1"), create_activity_data(
        "employee", "Acme", "O1", ASHA,
        attachment={"Employee Contact": field(RAVI, "phoneNumber"), "Base Location": field("HQ")},
    ))

    await write_activity(engine, store, "B1", branch_data(store, "ADD1", "Head Office"))

    employee = store.data(collections.activity("E1"))
    assert employee["attachment"]["Base Location"] == {"type": "string", "value": "Head Office"}
    assert employee["attachment"]["Employee Contact"]["value"] == RAVI


@pytest.mark.integration
@pytest.mark.asyncio
async def test_cancelled_department_is_cleared_from_employees(engine, store, fixed_now):
    seed_office(store, "Acme", "O1")
    store.seed(collections.activity("D1"), branch_data(store, "ADD0", "Sales", template="department"))
    store.seed(collections.activity("E1"), create_activity_data(
        "employee", "Acme", "O1", ASHA, attachment={"Department": field("Sales")},
    ))

    await write_activity(
        engine, store, "D1", branch_data(store, "ADD1", "Sales", template="department", status="CANCELLED"),
    )

    assert store.data(collections.activity("E1"))["attachment"]["Department"]["value"] == ""
