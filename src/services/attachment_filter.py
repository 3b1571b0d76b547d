"""
Attachment filter.

Checks a submitted attachment against a template's attachment schema. Fields
are scanned in schema order and the first failure wins. Checks that need the
document store are returned unexecuted so the caller can run them
concurrently.
"""

from dataclasses import dataclass, field
from typing import Any, Optional

from src.models.activity import ActivityStatus
from src.services import collections
from src.services.document_store import Query
from src.services.validation import (
    WEEKDAYS,
    is_e164_phone_number,
    is_hhmm_format,
    is_non_empty_string,
    is_number,
    is_valid_base64,
    is_valid_email,
    is_valid_weekday,
)
from src.utils.dates import is_valid_timezone


VALID_TYPES = frozenset({
    "string",
    "number",
    "phoneNumber",
    "email",
    "weekday",
    "HH:MM",
    "base64",
    "boolean",
})

# Entity references resolved by attachment.Number instead of attachment.Name
TEMPLATES_WITH_NUMBER = frozenset({"bill", "invoice", "sales order", "purchase order"})

OPEN_STATUSES = [ActivityStatus.PENDING.value, ActivityStatus.CONFIRMED.value]


@dataclass
class ExistenceCheck:
    """A query whose result must (or must not) be empty."""
    query: Query
    message: str
    exclude_activity_id: Optional[str] = None


@dataclass
class ProfileCheck:
    """A phone number that must belong to a signed up user."""
    phone_number: str
    message: str


@dataclass
class AttachmentFilterResult:
    is_valid: bool = True
    message: Optional[str] = None
    phone_numbers: list = field(default_factory=list)
    name_checks: list = field(default_factory=list)
    should_exist: list = field(default_factory=list)
    should_not_exist: list = field(default_factory=list)
    profile_checks: list = field(default_factory=list)
    base64_fields: list = field(default_factory=list)

    @property
    def has_base64(self) -> bool:
        return bool(self.base64_fields)

    def fail(self, message: str) -> "AttachmentFilterResult":
        self.is_valid = False
        self.message = message
        return self


def _office_scoped(query: Query, office: str, template: str) -> Query:
    if template == "office":
        return query
    return query.where("office", "==", office)


def filter_attachment(
    attachment: Any,
    template_attachment: dict,
    template: str,
    office: str,
    activity_id: Optional[str] = None,
) -> AttachmentFilterResult:
    """
    Validate ``attachment`` against ``template_attachment`` ({field: {type, value}}).

    ``activity_id`` is set when an existing activity is being edited so its
    own Name and Number do not count as duplicates.
    """
    result = AttachmentFilterResult()

    if attachment is None or isinstance(attachment, list) or not isinstance(attachment, dict):
        found = "Array" if isinstance(attachment, list) else type(attachment).__name__
        return result.fail(f"Expected the type of 'attachment' to be of type 'Object'. Found '{found}'.")

    if len(template_attachment) != len(attachment):
        return result.fail("Fields mismatch error in the attachment object")

    phone_numbers = []

    for field_name in template_attachment:
        if field_name not in attachment:
            return result.fail(f"{field_name} is missing")

        item = attachment[field_name]
        if not isinstance(item, dict):
            return result.fail(f"{field_name} should be an object with the properties 'type' and 'value'")

        if "type" not in item:
            return result.fail(f"{field_name} is missing the property 'type'")

        if "value" not in item:
            return result.fail(f"{field_name} is missing the property 'value'")

        field_type = item["type"]
        value = item["value"]

        if not is_non_empty_string(field_type):
            return result.fail(f"{field_name} should have an alpha-numeric value")

        if field_type == "boolean":
            if not isinstance(value, bool) and value != "":
                return result.fail(f"{field_name} should be a boolean")
        elif not is_number(value) and not isinstance(value, str):
            return result.fail(f"{field_name} can only be a number or a string")

        if field_type == "base64":
            if not isinstance(value, str) or (value != "" and not is_valid_base64(value)):
                return result.fail(f"Invalid value for the field '{field_name}' in attachment object")
            if value.startswith("data:image/jpg;base64,"):
                result.base64_fields.append(field_name)

        if field_name == "Timezone" and not is_valid_timezone(value):
            return result.fail(f"{value} is not a valid {field_name}")

        if value != "" and field_type == "number" and not is_number(value):
            return result.fail(f"{field_name} should be a number")

        if template == "subscription":
            subscribed = attachment.get("Template")
            if isinstance(subscribed, dict) and subscribed.get("value") == "office":
                return result.fail("Cannot subscribe to office")

            if not is_non_empty_string(value):
                return result.fail(f"{field_name} should have an alpha-numeric value")

            if field_name == "Subscriber" and not is_e164_phone_number(value):
                return result.fail(f"{field_name} should be a valid phone number")

            if field_name == "Template":
                result.should_exist.append(ExistenceCheck(
                    query=Query(collections.TEMPLATES).where("name", "==", value).limit(1),
                    message=f"{value} does not exist",
                ))

        if template == "admin" and field_name == "Admin":
            if not is_e164_phone_number(value):
                return result.fail(f"{field_name} should be a valid phone number")
            result.profile_checks.append(ProfileCheck(
                phone_number=value,
                message=f"The user {value} has not signed up yet",
            ))

        if field_type not in VALID_TYPES and value != "":
            result.name_checks.append({"value": value, "type": field_type})
            key = "Number" if field_type in TEMPLATES_WITH_NUMBER else "Name"
            query = (
                Query(collections.ACTIVITIES)
                .where(f"attachment.{key}.value", "==", value)
                .where("template", "==", field_type)
                .where("office", "==", office)
                .where("status", "in", OPEN_STATUSES)
                .limit(1)
            )
            result.should_exist.append(ExistenceCheck(query=query, message=f"{value} does not exist"))

        if field_name == "Name":
            if not is_non_empty_string(value):
                return result.fail("Name cannot be left blank")

            if template == "office" and value != office:
                return result.fail(
                    "The office name in the 'attachment.Name.value' and the "
                    "'office' field in the request body should be the same"
                )

            query = (
                Query(collections.ACTIVITIES)
                .where("attachment.Name.value", "==", value)
                .where("template", "==", template)
                .where("status", "in", OPEN_STATUSES)
            )
            result.should_not_exist.append(ExistenceCheck(
                query=_office_scoped(query, office, template).limit(2),
                message=f"The {field_name} '{value}' already is in use",
                exclude_activity_id=activity_id,
            ))

        if field_name == "Number":
            if value == "" or value is None:
                return result.fail("Number cannot be empty")

            query = (
                Query(collections.ACTIVITIES)
                .where("attachment.Number.value", "==", value)
                .where("template", "==", template)
                .where("status", "in", OPEN_STATUSES)
            )
            result.should_not_exist.append(ExistenceCheck(
                query=_office_scoped(query, office, template).limit(2),
                message=f"The {field_name} '{value}' already is in use",
                exclude_activity_id=activity_id,
            ))

        if field_type == "phoneNumber" and value != "":
            if not is_e164_phone_number(value):
                return result.fail(f"{field_name} should be a valid phone number")
            if value not in phone_numbers:
                phone_numbers.append(value)

        if field_type == "email" and value != "" and not is_valid_email(value):
            return result.fail(f"{field_name} should be a valid email")

        if field_type == "weekday" and value != "" and not is_valid_weekday(value):
            return result.fail(f"{field_name} should be a weekday. Use: {', '.join(WEEKDAYS)}")

        if field_type == "HH:MM" and value != "" and not is_hhmm_format(value):
            return result.fail(f"{field_name} should be a valid HH:MM format value")

    result.phone_numbers = phone_numbers
    return result
