"""Tests for activity, template and addendum models."""

import pytest
from pydantic import ValidationError

from src.models.activity import Activity, ActivityStatus, CanEditRule, Creator, Geopoint
from src.models.addendum import Addendum, AddendumAction, SKIPPABLE_ACTIONS
from src.models.template import Template


def _activity(**overrides) -> Activity:
    data = dict(
        template="leave",
        office="Acme",
        office_id="OFFICE1",
        timezone="Asia/Kolkata",
        timestamp=1700000000000,
        create_timestamp=1700000000000,
        creator=Creator(phone_number="+919000000001"),
    )
    data.update(overrides)
    return Activity(**data)


@pytest.mark.unit
def test_activity_document_uses_camel_case_keys():
    """Activity documents are stored with camelCase keys."""
    doc = _activity(activity_name="LEAVE: +919000000001").to_document()

    assert doc["officeId"] == "OFFICE1"
    assert doc["activityName"] == "LEAVE: +919000000001"
    assert doc["canEditRule"] == "ALL"
    assert doc["status"] == "CONFIRMED"
    assert doc["creator"] == {
        "phoneNumber": "+919000000001",
        "displayName": "",
        "photoURL": "",
    }
    assert doc["addendumDocRef"] is None


@pytest.mark.unit
def test_activity_document_drops_unset_optional_fields():
    """Optional denormalized fields are omitted until set."""
    doc = _activity().to_document()

    assert "adjustedGeopoints" not in doc
    assert "cancellationMessage" not in doc

    doc = _activity(cancellation_message="LEAVE LIMIT EXCEEDED").to_document()
    assert doc["cancellationMessage"] == "LEAVE LIMIT EXCEEDED"


@pytest.mark.unit
def test_activity_rejects_unknown_status():
    """Status must be one of the lifecycle values."""
    with pytest.raises(ValidationError):
        _activity(status="DONE")


@pytest.mark.unit
def test_enum_values():
    """Statuses and edit rules match stored strings."""
    assert ActivityStatus("CANCELLED") is ActivityStatus.CANCELLED
    assert CanEditRule("EMPLOYEE") is CanEditRule.EMPLOYEE


@pytest.mark.unit
def test_geopoint_bounds():
    """Latitude and longitude are range checked."""
    Geopoint(latitude=28.6, longitude=77.2)
    with pytest.raises(ValidationError):
        Geopoint(latitude=91, longitude=0)


@pytest.mark.unit
def test_template_parses_stored_document():
    """Templates load from camelCase documents."""
    template = Template.model_validate({
        "name": "leave",
        "attachment": {"Leave Type": {"type": "leave-type", "value": ""}},
        "schedule": ["Leave Dates"],
        "venue": [],
        "canEditRule": "CREATOR",
        "statusOnCreate": "PENDING",
        "hidden": 0,
    })

    assert template.can_edit_rule is CanEditRule.CREATOR
    assert template.status_on_create is ActivityStatus.PENDING
    assert template.attachment_document() == {"Leave Type": {"type": "leave-type", "value": ""}}


@pytest.mark.unit
def test_addendum_document_excludes_empty_optionals():
    """Addendum documents omit fields the action does not use."""
    doc = Addendum(
        action=AddendumAction.COMMENT,
        activity_id="A1",
        template="leave",
        user="+919000000001",
        user_device_timestamp=1,
        timestamp=2,
        comment="hello",
    ).to_document()

    assert doc["action"] == "comment"
    assert doc["comment"] == "hello"
    assert "remove" not in doc
    assert "status" not in doc


@pytest.mark.unit
def test_skippable_actions():
    """Device-only actions are skipped by post-processing."""
    assert "install" in SKIPPABLE_ACTIONS
    assert "create" not in SKIPPABLE_ACTIONS
