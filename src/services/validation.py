"""
Validation library.

Predicates never raise; they return booleans. The structural validators
return a ``ValidationResult`` carrying a user facing message on failure, and
callers decide which error to raise.
"""

import math
import re
from dataclasses import dataclass, field
from typing import Any, Optional

from src.models.activity import ACTIVITY_STATUSES


WEEKDAYS = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")

# Largest epoch millisecond value representable as a date
MAX_EPOCH_MS = 8.64e15

E164_PATTERN = re.compile(r"^\+[1-9]\d{5,14}$")
EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]{2,}$")
HHMM_PATTERN = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")

ENDPOINTS = ("create", "update", "change-status", "share", "remove", "comment")


@dataclass
class ValidationResult:
    is_valid: bool
    message: Optional[str] = None
    value: Any = None

    @classmethod
    def ok(cls, value: Any = None) -> "ValidationResult":
        return cls(is_valid=True, value=value)

    @classmethod
    def fail(cls, message: str) -> "ValidationResult":
        return cls(is_valid=False, message=message)


def is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)


def is_valid_date(value: Any) -> bool:
    """Finite, non-negative epoch milliseconds."""
    return is_number(value) and 0 <= value <= MAX_EPOCH_MS


def is_valid_geopoint(geopoint: Any) -> bool:
    if not isinstance(geopoint, dict):
        return False
    lat = geopoint.get("latitude")
    lng = geopoint.get("longitude")
    if not is_number(lat) or not is_number(lng):
        return False
    return -90 <= lat <= 90 and -180 <= lng <= 180


def is_non_empty_string(value: Any) -> bool:
    return isinstance(value, str) and value.strip() != ""


def is_e164_phone_number(value: Any) -> bool:
    return isinstance(value, str) and bool(E164_PATTERN.match(value))


def is_hhmm_format(value: Any) -> bool:
    return isinstance(value, str) and bool(HHMM_PATTERN.match(value))


def is_valid_email(value: Any) -> bool:
    return isinstance(value, str) and bool(EMAIL_PATTERN.match(value))


def is_valid_weekday(value: Any) -> bool:
    return isinstance(value, str) and value.lower() in WEEKDAYS


def is_valid_base64(value: Any) -> bool:
    """Image data URI or an already uploaded https URL."""
    return isinstance(value, str) and (
        value.startswith("data:image/jpg;base64,") or value.startswith("https://")
    )


def is_valid_status(value: Any) -> bool:
    return value in ACTIVITY_STATUSES


def validate_schedules(schedules: Any, schedule_names: list) -> ValidationResult:
    """
    Validate a schedule array against the template's declared schedule names.

    On success ``value`` is the cleaned list of ``{name, startTime, endTime}``.
    """
    if schedules is None:
        return ValidationResult.fail("The 'schedule' field is missing from the request body.")

    if not isinstance(schedules, list):
        return ValidationResult.fail("The schedule should be an array of objects")

    if len(schedules) != len(schedule_names):
        return ValidationResult.fail(f"Expected {len(schedule_names)} schedules. Found {len(schedules)}")

    seen_names = set()
    cleaned = []

    for position, schedule in enumerate(schedules):
        if not isinstance(schedule, dict):
            return ValidationResult.fail(f"The schedule at position {position} should be an object")

        for required in ("name", "startTime", "endTime"):
            if required not in schedule:
                return ValidationResult.fail(f"Missing the field '{required}' in schedule at position {position}")

        name = schedule["name"]
        start_time = schedule["startTime"]
        end_time = schedule["endTime"]

        if not is_non_empty_string(name):
            return ValidationResult.fail(f"Invalid schedule name at position {position}")

        if name in seen_names:
            return ValidationResult.fail("Duplicate schedule objects found")
        seen_names.add(name)

        if name not in schedule_names:
            return ValidationResult.fail(
                f"'{name}' is not a valid schedule name. Use: {', '.join(schedule_names)}"
            )

        if start_time != "" or end_time != "":
            if not is_valid_date(start_time) or not is_valid_date(end_time):
                return ValidationResult.fail(
                    f"The startTime and endTime of '{name}' should be valid epoch timestamps"
                )
            if start_time > end_time:
                return ValidationResult.fail(f"Schedule '{name}' has start time after the end time")

        cleaned.append({"name": name, "startTime": start_time, "endTime": end_time})

    return ValidationResult.ok(cleaned)


def validate_venues(venues: Any, venue_descriptors: list) -> ValidationResult:
    """
    Validate a venue array against the template's declared venue descriptors.

    On success ``value`` is the cleaned list of venue maps. A venue without a
    location keeps an empty geopoint.
    """
    if venues is None:
        return ValidationResult.fail("Missing the field 'venue' from the request body")

    if not isinstance(venues, list):
        return ValidationResult.fail("The field venue should be an 'array' of objects")

    if len(venues) != len(venue_descriptors):
        return ValidationResult.fail(f"Expected {len(venue_descriptors)} venues. Found {len(venues)}")

    seen = set()
    cleaned = []

    for position, venue in enumerate(venues):
        if not isinstance(venue, dict):
            return ValidationResult.fail(f"Invalid venue object at position {position}")

        for required in ("venueDescriptor", "address", "geopoint", "location"):
            if required not in venue:
                return ValidationResult.fail(f"The venue at position {position} is missing the field '{required}'")

        descriptor = venue["venueDescriptor"]
        if not is_non_empty_string(descriptor):
            return ValidationResult.fail(f"The venueDescriptor at position {position} should be a non-empty string")

        if descriptor in seen:
            return ValidationResult.fail("Duplicate venues found")
        seen.add(descriptor)

        if descriptor not in venue_descriptors:
            return ValidationResult.fail(
                f"The value '{descriptor}' is an invalid venueDescriptor. Use: {', '.join(venue_descriptors)}"
            )

        if not isinstance(venue["address"], str):
            return ValidationResult.fail(f"The address in venue at position {position} should be a string")

        if not isinstance(venue["location"], str):
            return ValidationResult.fail(f"The location in venue at position {position} should be a string")

        geopoint = venue["geopoint"]
        has_location = venue["location"] != "" or venue["address"] != ""
        if has_location or geopoint:
            if not is_valid_geopoint(geopoint):
                return ValidationResult.fail(f"Invalid venue object at position {position}")
            geopoint = {"latitude": geopoint["latitude"], "longitude": geopoint["longitude"]}
        else:
            geopoint = {}

        cleaned.append({
            "venueDescriptor": descriptor,
            "address": venue["address"],
            "location": venue["location"],
            "geopoint": geopoint,
        })

    return ValidationResult.ok(cleaned)


def _check_envelope(body: dict) -> Optional[str]:
    if "timestamp" not in body:
        return "The 'timestamp' field is missing from the request body."
    if not is_number(body["timestamp"]):
        return "The 'timestamp' field should be a number."
    if not is_valid_date(body["timestamp"]):
        return "The 'timestamp' in the request body is invalid."
    if "geopoint" not in body:
        return "The 'geopoint' field is missing from the request body."
    if not is_valid_geopoint(body["geopoint"]):
        return "Your location couldn't be determined"
    return None


def _check_create(body: dict) -> Optional[str]:
    if "template" not in body:
        return "The 'template' field is missing from the request body."
    if not is_non_empty_string(body["template"]):
        return f"Expected 'template' field to have a value of type 'string'. Found '{type(body['template']).__name__}'."
    if "office" not in body:
        return "The 'office' field is missing from the request body."
    if not is_non_empty_string(body["office"]):
        return "The 'office' field should be a non-empty string."
    if "share" not in body:
        return "The 'share' field is missing from the request body."
    if "attachment" not in body:
        return "The field 'attachment' is missing from the request body."
    if not isinstance(body["share"], list):
        return "The 'share' field in the request body should be an 'array'."
    for phone_number in body["share"]:
        if not is_e164_phone_number(phone_number):
            return f"{phone_number} is invalid. Please contact support"
    return None


def _check_activity_id(body: dict) -> Optional[str]:
    if "activityId" not in body:
        return "The 'activityId' field is missing from the request body."
    if not is_non_empty_string(body["activityId"]):
        return "The 'activityId' field should be a non-empty string."
    return None


def _check_update(body: dict) -> Optional[str]:
    if not any(key in body for key in ("schedule", "venue", "attachment")):
        return (
            "The request body has no usable fields. Please add at least any of these: "
            "'schedule', 'venue' or 'attachment' in the request body to make a successful request."
        )
    return None


def _check_change_status(body: dict) -> Optional[str]:
    if "status" not in body:
        return "The 'status' field is missing from the request body."
    if not is_non_empty_string(body["status"]):
        return "The 'status' field should be a non-empty string."
    if not is_valid_status(body["status"]):
        return f"'{body['status']}' is not a valid activity status."
    return None


def _check_share(body: dict) -> Optional[str]:
    if "share" not in body:
        return "The 'share' array is missing from the request body"
    if not isinstance(body["share"], list):
        return "The 'share' field in the request body should be an array."
    if not body["share"]:
        return "The 'share' array cannot be empty."
    for phone_number in body["share"]:
        if not is_e164_phone_number(phone_number):
            return f"The phone number {phone_number} is invalid. Please choose a valid phone number."
    return None


def _check_remove(body: dict) -> Optional[str]:
    if "remove" not in body:
        return "The 'remove' array is missing from the request body"
    if not isinstance(body["remove"], str):
        return "The 'remove' field in the request body should be string."
    if not is_e164_phone_number(body["remove"]):
        return f"The phone number: '{body['remove']}' is not a valid phone number."
    return None


def _check_comment(body: dict) -> Optional[str]:
    if "comment" not in body:
        return "The 'comment' field is missing from the request body."
    if not is_non_empty_string(body["comment"]):
        return "The 'comment' field should be a non-empty string."
    return None


_ENDPOINT_CHECKS = {
    "update": _check_update,
    "change-status": _check_change_status,
    "share": _check_share,
    "remove": _check_remove,
    "comment": _check_comment,
}


def validate_request_body(body: Any, endpoint: str) -> ValidationResult:
    """Structural validation of a command request body."""
    if endpoint not in ENDPOINTS:
        raise ValueError(f"Unknown endpoint: {endpoint}")

    if not isinstance(body, dict):
        return ValidationResult.fail("The request body should be a JSON object.")

    message = _check_envelope(body)
    if message is None and endpoint == "create":
        message = _check_create(body)
    elif message is None:
        message = _check_activity_id(body) or _ENDPOINT_CHECKS[endpoint](body)

    if message:
        return ValidationResult.fail(message)
    return ValidationResult.ok(body)
