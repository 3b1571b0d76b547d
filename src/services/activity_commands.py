"""Update, change-status, share, remove and comment commands."""

from src.models.addendum import AddendumAction
from src.models.identity import Requester
from src.services import collections
from src.services.activity_create import TEMPLATES_WITHOUT_ADJUSTED_GEOPOINTS, relevant_time
from src.services.attachment_filter import filter_attachment
from src.services.command_support import (
    CommandResult,
    activity_name,
    build_addendum,
    check_edit_permission,
    get_template,
    load_activity,
    log_command,
    require_valid_body,
    resolve_can_edit,
    resolve_existence_checks,
)
from src.services.document_store import DocumentSnapshot, DocumentStore, Query, merge_document
from src.services.validation import validate_schedules, validate_venues
from src.utils.dates import now_ms
from src.utils.errors import ConflictError, NotFoundError, PermissionDeniedError, ValidationError
from src.utils.geo import adjusted_geopoints_from_venue
from src.utils.logging import get_structured_logger, log_timing, mask_phone_number, sanitize_comment

logger = get_structured_logger(__name__)


async def _assignee_phone_numbers(store: DocumentStore, activity_id: str) -> list:
    result = await store.query(Query(collections.assignees(activity_id)))
    return [doc.id for doc in result.docs]


def _creator_phone(activity: DocumentSnapshot) -> str:
    creator = activity.get("creator")
    if isinstance(creator, dict):
        return creator.get("phoneNumber", "")
    return creator or ""


def _new_addendum_path(store: DocumentStore, activity: DocumentSnapshot) -> str:
    return collections.addendum(activity.get("officeId"), store.new_id())


async def update_activity(store: DocumentStore, requester: Requester, body: dict) -> CommandResult:
    """Replace schedule, venue and/or attachment of an existing activity."""
    require_valid_body(body, "update")
    activity_id = body["activityId"]

    with log_timing("update_activity", logger=logger, activity_id=activity_id):
        await check_edit_permission(store, requester, activity_id)
        activity = await load_activity(store, activity_id)
        template_name = activity.get("template")

        template = await get_template(store, template_name)
        if template is None:
            raise NotFoundError(f"No template found with the name: '{template_name}'")

        updates = {}
        new_phone_numbers = []

        if "schedule" in body:
            result = validate_schedules(body["schedule"], template.schedule)
            if not result.is_valid:
                raise ValidationError(result.message)
            updates["schedule"] = result.value
            updates["relevantTime"] = relevant_time(result.value, now_ms())

        if "venue" in body:
            result = validate_venues(body["venue"], template.venue)
            if not result.is_valid:
                raise ValidationError(result.message)
            updates["venue"] = result.value
            if template_name not in TEMPLATES_WITHOUT_ADJUSTED_GEOPOINTS:
                updates["adjustedGeopoints"] = adjusted_geopoints_from_venue(result.value)

        if "attachment" in body:
            filter_result = filter_attachment(
                body["attachment"],
                template.attachment_document(),
                template_name,
                activity.get("office"),
                activity_id=activity_id,
            )
            if not filter_result.is_valid:
                raise ValidationError(filter_result.message)
            await resolve_existence_checks(store, filter_result)

            updates["attachment"] = body["attachment"]
            updates["activityName"] = activity_name(template_name, body["attachment"], requester)

            current = set(await _assignee_phone_numbers(store, activity_id))
            new_phone_numbers = [p for p in filter_result.phone_numbers if p not in current]

        addendum_path = _new_addendum_path(store, activity)
        updates["timestamp"] = now_ms()
        updates["addendumDocRef"] = addendum_path
        activity_doc = merge_document(activity.data, updates)

        can_edit = {}
        if new_phone_numbers:
            can_edit = await resolve_can_edit(
                store,
                activity.get("officeId"),
                new_phone_numbers,
                activity.get("canEditRule", "ALL"),
                _creator_phone(activity),
            )

        addendum = build_addendum(
            AddendumAction.UPDATE,
            requester,
            body,
            activity_id,
            activity_doc,
            activity_old=activity.to_dict(),
        )

        batch = store.batch()
        batch.set(collections.activity(activity_id), updates, merge=True)
        for phone_number in new_phone_numbers:
            batch.set(collections.assignee(activity_id, phone_number), {
                "canEdit": can_edit.get(phone_number, False),
                "addToInclude": True,
            })
        batch.set(addendum_path, addendum.to_document())
        await batch.commit()

    log_command("update", requester, activity_id, fields=sorted(k for k in ("schedule", "venue", "attachment") if k in body))
    return CommandResult(status_code=204, message="Activity updated", activity_id=activity_id, activity=activity_doc)


async def change_status(store: DocumentStore, requester: Requester, body: dict) -> CommandResult:
    require_valid_body(body, "change-status")
    activity_id = body["activityId"]
    status = body["status"]

    await check_edit_permission(store, requester, activity_id)
    activity = await load_activity(store, activity_id)

    if activity.get("status") == status:
        raise ConflictError(f"The activity status is already '{status}'.")

    addendum_path = _new_addendum_path(store, activity)
    updates = {"status": status, "timestamp": now_ms(), "addendumDocRef": addendum_path}
    activity_doc = merge_document(activity.data, updates)
    addendum = build_addendum(
        AddendumAction.CHANGE_STATUS,
        requester,
        body,
        activity_id,
        activity_doc,
        status=status,
    )

    batch = store.batch()
    batch.set(collections.activity(activity_id), updates, merge=True)
    batch.set(addendum_path, addendum.to_document())
    await batch.commit()

    log_command("change-status", requester, activity_id, old_status=activity.get("status"), new_status=status)
    return CommandResult(status_code=204, message=f"Status changed to {status}", activity_id=activity_id, activity=activity_doc)


async def share_activity(store: DocumentStore, requester: Requester, body: dict) -> CommandResult:
    """Add phone numbers as assignees."""
    require_valid_body(body, "share")
    activity_id = body["activityId"]

    await check_edit_permission(store, requester, activity_id)
    activity = await load_activity(store, activity_id)

    current = set(await _assignee_phone_numbers(store, activity_id))
    new_phone_numbers = []
    for phone_number in body["share"]:
        if phone_number not in current and phone_number not in new_phone_numbers:
            new_phone_numbers.append(phone_number)

    if not new_phone_numbers:
        return CommandResult(status_code=204, message="Nothing to share", activity_id=activity_id)

    can_edit = await resolve_can_edit(
        store,
        activity.get("officeId"),
        new_phone_numbers,
        activity.get("canEditRule", "ALL"),
        _creator_phone(activity),
    )

    addendum_path = _new_addendum_path(store, activity)
    updates = {"timestamp": now_ms(), "addendumDocRef": addendum_path}
    activity_doc = merge_document(activity.data, updates)
    addendum = build_addendum(
        AddendumAction.SHARE,
        requester,
        body,
        activity_id,
        activity_doc,
        share=new_phone_numbers,
    )

    batch = store.batch()
    for phone_number in new_phone_numbers:
        batch.set(collections.assignee(activity_id, phone_number), {
            "canEdit": can_edit[phone_number],
            "addToInclude": True,
        })
    batch.set(collections.activity(activity_id), updates, merge=True)
    batch.set(addendum_path, addendum.to_document())
    await batch.commit()

    log_command("share", requester, activity_id, shared_count=len(new_phone_numbers))
    return CommandResult(status_code=204, message="Activity shared", activity_id=activity_id, activity=activity_doc)


async def remove_assignee(store: DocumentStore, requester: Requester, body: dict) -> CommandResult:
    """Unassign one phone number; the last assignee can never be removed."""
    require_valid_body(body, "remove")
    activity_id = body["activityId"]
    phone_number = body["remove"]

    await check_edit_permission(store, requester, activity_id)
    activity = await load_activity(store, activity_id)

    current = await _assignee_phone_numbers(store, activity_id)
    if phone_number not in current:
        raise NotFoundError(f"{phone_number} is not an assignee of the activity.")
    if len(current) == 1:
        raise PermissionDeniedError("Cannot remove the last assignee of the activity.")

    addendum_path = _new_addendum_path(store, activity)
    updates = {"timestamp": now_ms(), "addendumDocRef": addendum_path}
    activity_doc = merge_document(activity.data, updates)
    addendum = build_addendum(
        AddendumAction.REMOVE,
        requester,
        body,
        activity_id,
        activity_doc,
        remove=phone_number,
    )

    batch = store.batch()
    batch.delete(collections.assignee(activity_id, phone_number))
    batch.delete(collections.profile_activity(phone_number, activity_id))
    batch.set(collections.activity(activity_id), updates, merge=True)
    batch.set(addendum_path, addendum.to_document())
    await batch.commit()

    log_command("remove", requester, activity_id, removed=mask_phone_number(phone_number))
    return CommandResult(status_code=204, message="Assignee removed", activity_id=activity_id, activity=activity_doc)


async def add_comment(store: DocumentStore, requester: Requester, body: dict) -> CommandResult:
    """Record a comment; any assignee may comment, edit rights are not needed."""
    require_valid_body(body, "comment")
    activity_id = body["activityId"]

    if not requester.is_support_request:
        link = await store.get(collections.profile_activity(requester.phone_number, activity_id))
        if not link.exists:
            raise NotFoundError(f"No activity found with the id: '{activity_id}'")

    activity = await load_activity(store, activity_id)

    addendum_path = _new_addendum_path(store, activity)
    updates = {"timestamp": now_ms(), "addendumDocRef": addendum_path}
    activity_doc = merge_document(activity.data, updates)
    addendum = build_addendum(
        AddendumAction.COMMENT,
        requester,
        body,
        activity_id,
        activity_doc,
        comment=body["comment"],
    )

    batch = store.batch()
    batch.set(collections.activity(activity_id), updates, merge=True)
    batch.set(addendum_path, addendum.to_document())
    await batch.commit()

    log_command("comment", requester, activity_id, comment=sanitize_comment(body["comment"]))
    return CommandResult(status_code=204, message="Comment added", activity_id=activity_id)


COMMANDS = {
    "update": update_activity,
    "change-status": change_status,
    "share": share_activity,
    "remove": remove_assignee,
    "comment": add_comment,
}
