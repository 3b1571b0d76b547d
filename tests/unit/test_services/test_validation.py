"""Tests for the validation library."""

import pytest

from src.services.validation import (
    is_e164_phone_number,
    is_hhmm_format,
    is_valid_base64,
    is_valid_date,
    is_valid_email,
    is_valid_geopoint,
    is_valid_weekday,
    validate_request_body,
    validate_schedules,
    validate_venues,
)
from tests.utils.factories import BASE_TIMESTAMP, create_request_body, geopoint, schedule, venue


@pytest.mark.unit
@pytest.mark.parametrize("value,expected", [
    ("+919876543210", True),
    ("+14155552671", True),
    ("9876543210", False),
    ("+0123456789", False),
    ("", False),
    (None, False),
])
def test_is_e164_phone_number(value, expected):
    assert is_e164_phone_number(value) is expected


@pytest.mark.unit
def test_predicates():
    assert is_valid_date(BASE_TIMESTAMP)
    assert not is_valid_date(-1)
    assert not is_valid_date(float("inf"))
    assert not is_valid_date(True)
    assert is_valid_geopoint({"latitude": 28.4, "longitude": 77.0})
    assert not is_valid_geopoint({"latitude": 91, "longitude": 77.0})
    assert not is_valid_geopoint({"latitude": "28.4", "longitude": 77.0})
    assert is_hhmm_format("09:30")
    assert not is_hhmm_format("24:00")
    assert is_valid_email("someone@example.com")
    assert not is_valid_email("someone@example")
    assert is_valid_weekday("Monday")
    assert not is_valid_weekday("Funday")
    assert is_valid_base64("data:image/jpg;base64,AAAA")
    assert is_valid_base64("https://cdn.example.com/a.jpg")
    assert not is_valid_base64("AAAA")


@pytest.mark.unit
def test_validate_schedules_accepts_empty_times():
    result = validate_schedules([schedule("Leave Dates")], ["Leave Dates"])

    assert result.is_valid
    assert result.value == [{"name": "Leave Dates", "startTime": "", "endTime": ""}]


@pytest.mark.unit
@pytest.mark.parametrize("schedules,message", [
    (None, "The 'schedule' field is missing from the request body."),
    ({}, "The schedule should be an array of objects"),
    ([], "Expected 1 schedules. Found 0"),
    ([{"name": "Leave Dates", "startTime": ""}], "Missing the field 'endTime' in schedule at position 0"),
    ([schedule("Duty")], "'Duty' is not a valid schedule name. Use: Leave Dates"),
    ([schedule("Leave Dates", BASE_TIMESTAMP + 1, BASE_TIMESTAMP)], "Schedule 'Leave Dates' has start time after the end time"),
    ([schedule("Leave Dates", BASE_TIMESTAMP, "")], "The startTime and endTime of 'Leave Dates' should be valid epoch timestamps"),
])
def test_validate_schedules_rejects(schedules, message):
    result = validate_schedules(schedules, ["Leave Dates"])

    assert not result.is_valid
    assert result.message == message


@pytest.mark.unit
def test_validate_schedules_rejects_duplicates():
    result = validate_schedules([schedule("A"), schedule("A")], ["A", "B"])

    assert result.message == "Duplicate schedule objects found"


@pytest.mark.unit
def test_validate_venues_keeps_empty_geopoint_without_location():
    result = validate_venues([venue("Customer Office")], ["Customer Office"])

    assert result.is_valid
    assert result.value[0]["geopoint"] == {}


@pytest.mark.unit
def test_validate_venues_strips_extra_geopoint_keys():
    point = dict(geopoint(), accuracy=12)
    result = validate_venues([venue("Branch", location="HQ", address="Sector 29", point=point)], ["Branch"])

    assert result.is_valid
    assert result.value[0]["geopoint"] == geopoint()


@pytest.mark.unit
@pytest.mark.parametrize("venues,message", [
    (None, "Missing the field 'venue' from the request body"),
    ([{"venueDescriptor": "Branch"}], "The venue at position 0 is missing the field 'address'"),
    ([venue("Warehouse")], "The value 'Warehouse' is an invalid venueDescriptor. Use: Branch"),
    ([venue("Branch", location="HQ")], "Invalid venue object at position 0"),
])
def test_validate_venues_rejects(venues, message):
    result = validate_venues(venues, ["Branch"])

    assert not result.is_valid
    assert result.message == message


@pytest.mark.unit
def test_validate_request_body_create():
    body = create_request_body(template="leave", office="Acme", share=[], attachment={})

    assert validate_request_body(body, "create").is_valid

    body["share"] = ["98765"]
    assert validate_request_body(body, "create").message == "98765 is invalid. Please contact support"


@pytest.mark.unit
@pytest.mark.parametrize("endpoint,fields,message", [
    ("update", {"activityId": "A1"}, (
        "The request body has no usable fields. Please add at least any of these: "
        "'schedule', 'venue' or 'attachment' in the request body to make a successful request."
    )),
    ("change-status", {"activityId": "A1", "status": "DONE"}, "'DONE' is not a valid activity status."),
    ("share", {"activityId": "A1", "share": []}, "The 'share' array cannot be empty."),
    ("remove", {"activityId": "A1", "remove": "12345"}, "The phone number: '12345' is not a valid phone number."),
    ("comment", {"activityId": "A1", "comment": "  "}, "The 'comment' field should be a non-empty string."),
    ("comment", {"comment": "hi"}, "The 'activityId' field is missing from the request body."),
])
def test_validate_request_body_per_endpoint(endpoint, fields, message):
    result = validate_request_body(create_request_body(**fields), endpoint)

    assert result.message == message


@pytest.mark.unit
def test_validate_request_body_envelope():
    assert validate_request_body([], "comment").message == "The request body should be a JSON object."
    assert validate_request_body({"geopoint": geopoint()}, "comment").message == (
        "The 'timestamp' field is missing from the request body."
    )
    body = create_request_body(activityId="A1", comment="hi")
    body["geopoint"] = {"latitude": 200, "longitude": 0}
    assert validate_request_body(body, "comment").message == "Your location couldn't be determined"


@pytest.mark.unit
def test_validate_request_body_unknown_endpoint():
    with pytest.raises(ValueError):
        validate_request_body({}, "delete")
