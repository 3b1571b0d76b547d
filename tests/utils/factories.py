"""Test data factories using Faker."""

from typing import Optional

from faker import Faker

fake = Faker()

OFFICE_TIMEZONE = "Asia/Kolkata"

# 2025-10-15 10:30 IST
BASE_TIMESTAMP = 1760504400000


def phone_number() -> str:
    """Unique E.164 Indian mobile number."""
    return f"+91{fake.unique.random_int(min=7000000000, max=9999999999)}"


def geopoint(latitude: float = 28.4595, longitude: float = 77.0266) -> dict:
    return {"latitude": latitude, "longitude": longitude}


def field(value="", field_type: str = "string") -> dict:
    return {"type": field_type, "value": value}


def venue(descriptor: str, location: str = "", address: str = "", point: Optional[dict] = None) -> dict:
    return {
        "venueDescriptor": descriptor,
        "location": location,
        "address": address,
        "geopoint": point if point is not None else {},
    }


def schedule(name: str, start=None, end=None) -> dict:
    return {
        "name": name,
        "startTime": "" if start is None else start,
        "endTime": "" if end is None else end,
    }


def create_template_data(
    name: str,
    attachment: Optional[dict] = None,
    schedule_names: tuple = (),
    venue_descriptors: tuple = (),
    can_edit_rule: str = "ALL",
    status_on_create: str = "CONFIRMED",
) -> dict:
    """Stored template document; ``attachment`` maps field name to type."""
    return {
        "name": name,
        "attachment": {
            field_name: {"type": field_type, "value": ""}
            for field_name, field_type in (attachment or {}).items()
        },
        "schedule": list(schedule_names),
        "venue": list(venue_descriptors),
        "canEditRule": can_edit_rule,
        "statusOnCreate": status_on_create,
        "hidden": 0,
    }


def create_request_body(timestamp: int = BASE_TIMESTAMP, point: Optional[dict] = None, **fields) -> dict:
    """Command request envelope plus endpoint specific fields."""
    body = {
        "timestamp": timestamp,
        "geopoint": dict(point or geopoint(), accuracy=20, provider="fused"),
    }
    body.update(fields)
    return body


def create_activity_data(
    template: str,
    office: str,
    office_id: str,
    creator: str,
    attachment: Optional[dict] = None,
    status: str = "CONFIRMED",
    activity_name: Optional[str] = None,
    timestamp: int = BASE_TIMESTAMP,
    **fields,
) -> dict:
    """Root activity document as the create command stores it."""
    data = {
        "template": template,
        "office": office,
        "officeId": office_id,
        "status": status,
        "activityName": activity_name or f"{template.upper()}: {fake.word()}",
        "attachment": attachment or {},
        "schedule": [],
        "venue": [],
        "canEditRule": "ALL",
        "hidden": 0,
        "timezone": OFFICE_TIMEZONE,
        "timestamp": timestamp,
        "createTimestamp": timestamp,
        "creator": {"phoneNumber": creator, "displayName": fake.name(), "photoURL": ""},
        "addendumDocRef": None,
    }
    data.update(fields)
    return data


def create_addendum_data(
    action: str,
    activity_id: str,
    template: str,
    user: str,
    timestamp: int = BASE_TIMESTAMP,
    point: Optional[dict] = None,
    **fields,
) -> dict:
    data = {
        "action": action,
        "activityId": activity_id,
        "activityName": "",
        "template": template,
        "user": user,
        "userDisplayName": "",
        "userDeviceTimestamp": timestamp,
        "timestamp": timestamp,
        "location": point or geopoint(),
        "isSupportRequest": False,
        "isAdminRequest": False,
        "isAutoGenerated": False,
        "activityData": {},
        "share": [],
    }
    data.update(fields)
    return data
