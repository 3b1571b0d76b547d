"""Shared steps of the activity write commands."""

import asyncio
from dataclasses import dataclass
from typing import Optional

from src.models.activity import ActivityStatus, CanEditRule
from src.models.addendum import Addendum, AddendumAction
from src.models.identity import Requester
from src.models.template import Template
from src.services import collections
from src.services.attachment_filter import AttachmentFilterResult, OPEN_STATUSES
from src.services.document_store import DocumentSnapshot, DocumentStore, Query
from src.services.validation import validate_request_body
from src.utils.dates import now_ms
from src.utils.errors import ConflictError, NotFoundError, PermissionDeniedError, ValidationError
from src.utils.logging import get_structured_logger, mask_phone_number

logger = get_structured_logger(__name__)


@dataclass
class CommandResult:
    status_code: int
    message: str = ""
    activity_id: Optional[str] = None
    activity: Optional[dict] = None


def require_valid_body(body, endpoint: str) -> dict:
    result = validate_request_body(body, endpoint)
    if not result.is_valid:
        raise ValidationError(result.message)
    return body


async def get_template(store: DocumentStore, name: str) -> Optional[Template]:
    snapshot = (await store.query(
        Query(collections.TEMPLATES).where("name", "==", name).limit(1)
    )).first()
    if snapshot is None:
        return None
    return Template.model_validate(snapshot.data)


async def get_office(store: DocumentStore, office: str) -> Optional[DocumentSnapshot]:
    return (await store.query(
        Query(collections.OFFICES).where("attachment.Name.value", "==", office).limit(1)
    )).first()


async def load_activity(store: DocumentStore, activity_id: str) -> DocumentSnapshot:
    snapshot = await store.get(collections.activity(activity_id))
    if not snapshot.exists:
        raise NotFoundError(f"No activity found with the id: {activity_id}.")
    return snapshot


async def check_edit_permission(store: DocumentStore, requester: Requester, activity_id: str) -> None:
    """Non-support requesters need an editable profile link to the activity."""
    if requester.is_support_request:
        return

    link = await store.get(collections.profile_activity(requester.phone_number, activity_id))
    if not link.exists:
        raise NotFoundError("The activity does not exist.")
    if not link.get("canEdit", False):
        raise PermissionDeniedError("You cannot edit this activity.")


async def resolve_existence_checks(store: DocumentStore, filter_result: AttachmentFilterResult) -> None:
    """Run profile, should-exist and then should-not-exist checks."""
    if filter_result.profile_checks:
        profiles = await store.get_all(
            collections.profile(check.phone_number) for check in filter_result.profile_checks
        )
        for check, profile in zip(filter_result.profile_checks, profiles):
            if not profile.exists or not profile.get("uid"):
                raise ValidationError(check.message)

    if filter_result.should_exist:
        results = await asyncio.gather(*(store.query(check.query) for check in filter_result.should_exist))
        for check, result in zip(filter_result.should_exist, results):
            if result.empty:
                raise ValidationError(check.message)

    if filter_result.should_not_exist:
        results = await asyncio.gather(*(store.query(check.query) for check in filter_result.should_not_exist))
        for check, result in zip(filter_result.should_not_exist, results):
            others = [doc for doc in result.docs if doc.id != check.exclude_activity_id]
            if others:
                raise ConflictError(check.message)


def get_can_edit_value(rule: str, is_admin: bool, is_employee: bool, is_creator: bool) -> bool:
    if rule == CanEditRule.NONE.value:
        return False
    if rule == CanEditRule.CREATOR.value:
        return is_creator
    if rule == CanEditRule.ADMIN.value:
        return is_admin
    if rule == CanEditRule.EMPLOYEE.value:
        return is_employee
    return True


async def is_office_admin(store: DocumentStore, office_id: str, phone_number: str) -> bool:
    result = await store.query(
        Query(collections.ACTIVITIES)
        .where("officeId", "==", office_id)
        .where("template", "==", "admin")
        .where("attachment.Admin.value", "==", phone_number)
        .where("status", "==", ActivityStatus.CONFIRMED.value)
        .limit(1)
    )
    return not result.empty


async def is_office_employee(store: DocumentStore, office_id: str, phone_number: str) -> bool:
    result = await store.query(
        Query(collections.ACTIVITIES)
        .where("officeId", "==", office_id)
        .where("template", "==", "employee")
        .where("attachment.Employee Contact.value", "==", phone_number)
        .where("status", "in", OPEN_STATUSES)
        .limit(1)
    )
    return not result.empty


async def resolve_can_edit(
    store: DocumentStore,
    office_id: Optional[str],
    phone_numbers,
    can_edit_rule: str,
    creator_phone: str,
) -> dict:
    """Map each phone number to its canEdit flag under ``can_edit_rule``."""
    phone_numbers = list(phone_numbers)
    needs_admin = can_edit_rule == CanEditRule.ADMIN.value and office_id
    needs_employee = can_edit_rule == CanEditRule.EMPLOYEE.value and office_id

    admin_flags = [False] * len(phone_numbers)
    employee_flags = [False] * len(phone_numbers)
    if needs_admin:
        admin_flags = await asyncio.gather(*(is_office_admin(store, office_id, p) for p in phone_numbers))
    if needs_employee:
        employee_flags = await asyncio.gather(*(is_office_employee(store, office_id, p) for p in phone_numbers))

    return {
        phone: get_can_edit_value(can_edit_rule, admin_flags[i], employee_flags[i], phone == creator_phone)
        for i, phone in enumerate(phone_numbers)
    }


def activity_name(template: str, attachment: dict, requester: Optional[Requester] = None) -> str:
    prefix = f"{template.upper()}:"
    if "Name" in attachment:
        name = attachment["Name"].get("value", "")
        if template == "recipient":
            return f"{prefix} {str(name).upper()} REPORT"
        return f"{prefix} {name}"
    if "Number" in attachment:
        return f"{prefix} {attachment['Number'].get('value')}"
    if requester is None:
        return prefix
    return f"{prefix} {requester.display_name or requester.phone_number}"


def build_addendum(
    action: AddendumAction,
    requester: Requester,
    body: dict,
    activity_id: str,
    activity_data: dict,
    **fields,
) -> Addendum:
    """Addendum for a command request; ``fields`` carries action specific values."""
    geopoint = body.get("geopoint") or {}
    return Addendum(
        action=action,
        activity_id=activity_id,
        activity_name=activity_data.get("activityName", ""),
        template=activity_data.get("template", ""),
        user=requester.phone_number,
        user_display_name=requester.display_name,
        user_device_timestamp=body["timestamp"],
        timestamp=now_ms(),
        location={"latitude": geopoint.get("latitude"), "longitude": geopoint.get("longitude")},
        geopoint_accuracy=geopoint.get("accuracy"),
        provider=geopoint.get("provider"),
        is_support_request=requester.is_support_request,
        activity_data=activity_data,
        **fields,
    )


def log_command(command: str, requester: Requester, activity_id: Optional[str], **context) -> None:
    logger.info(
        f"Activity {command} committed",
        command=command,
        requester=mask_phone_number(requester.phone_number),
        activity_id=activity_id,
        is_support_request=requester.is_support_request,
        **context,
    )
