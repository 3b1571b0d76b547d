"""Create command: validate a templated activity request and commit it atomically."""

import asyncio
from typing import Optional

from src.models.activity import Activity, ActivityStatus, Creator
from src.models.addendum import AddendumAction
from src.models.identity import Requester
from src.models.template import Template
from src.services import collections
from src.services.attachment_filter import OPEN_STATUSES, filter_attachment
from src.services.command_support import (
    CommandResult,
    activity_name,
    build_addendum,
    get_office,
    get_template,
    log_command,
    require_valid_body,
    resolve_can_edit,
    resolve_existence_checks,
)
from src.services.document_store import DocumentSnapshot, DocumentStore, Query
from src.services.validation import validate_schedules, validate_venues
from src.utils.config import Settings
from src.utils.dates import local_dates_between, now_ms, to_local
from src.utils.errors import (
    ConflictError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from src.utils.geo import adjusted_geopoints_from_venue, is_distance_accurate
from src.utils.logging import get_structured_logger, log_timing, mask_phone_number

logger = get_structured_logger(__name__)

# Templates whose venue is the requester's position, not a fixed place
TEMPLATES_WITHOUT_ADJUSTED_GEOPOINTS = frozenset({"check-in", "on duty", "leave"})

LEAVE_TEMPLATES = frozenset({"leave", "on duty"})


def relevant_time(schedule: list, at: int) -> Optional[int]:
    """Nearest upcoming schedule start, else the latest past start."""
    starts = [s.get("startTime") for s in schedule if isinstance(s.get("startTime"), (int, float))]
    if not starts:
        return None
    upcoming = [start for start in starts if start >= at]
    return int(min(upcoming) if upcoming else max(starts))


def schedule_window(schedule: list) -> Optional[tuple]:
    """(start, end) of the first schedule with both times set."""
    for item in schedule:
        start, end = item.get("startTime"), item.get("endTime")
        if isinstance(start, (int, float)) and isinstance(end, (int, float)):
            return start, end
    return None


async def _leave_days_taken(
    store: DocumentStore,
    office_id: str,
    phone_number: str,
    leave_type: str,
    year: int,
    timezone: str,
) -> int:
    existing = await store.query(
        Query(collections.ACTIVITIES)
        .where("officeId", "==", office_id)
        .where("template", "==", "leave")
        .where("creator.phoneNumber", "==", phone_number)
        .where("attachment.Leave Type.value", "==", leave_type)
        .where("status", "in", OPEN_STATUSES)
    )
    taken = 0
    for doc in existing.docs:
        window = schedule_window(doc.get("schedule", []))
        if window is None:
            continue
        days = local_dates_between(window[0], window[1], timezone)
        taken += sum(1 for day in days if day.year == year)
    return taken


async def apply_leave_limit(
    store: DocumentStore,
    office_id: str,
    requester: Requester,
    attachment: dict,
    schedule: list,
    timezone: str,
) -> Optional[str]:
    """Cancellation message when the request exceeds the annual leave limit."""
    leave_type = (attachment.get("Leave Type") or {}).get("value")
    window = schedule_window(schedule)
    if not leave_type or window is None:
        return None

    leave_type_doc = (await store.query(
        Query(collections.ACTIVITIES)
        .where("officeId", "==", office_id)
        .where("template", "==", "leave-type")
        .where("attachment.Name.value", "==", leave_type)
        .where("status", "==", ActivityStatus.CONFIRMED.value)
        .limit(1)
    )).first()
    if leave_type_doc is None:
        return None

    annual_limit = leave_type_doc.get("attachment.Annual Limit.value")
    if not isinstance(annual_limit, (int, float)) or annual_limit <= 0:
        return None

    requested_days = local_dates_between(window[0], window[1], timezone)
    year = to_local(window[0], timezone).year
    taken = await _leave_days_taken(store, office_id, requester.phone_number, leave_type, year, timezone)
    excess = taken + len(requested_days) - annual_limit

    logger.info(
        "Leave limit evaluated",
        office_id=office_id,
        leave_type=leave_type,
        annual_limit=annual_limit,
        days_taken=taken,
        days_requested=len(requested_days),
    )

    if excess <= 0:
        return None
    return (
        "LEAVE LIMIT EXCEEDED: You have exceeded the limit for leave "
        f"application under {leave_type} by {int(excess)}"
    )


async def log_payroll_conflicts(
    store: DocumentStore,
    office_id: str,
    requester: Requester,
    schedule: list,
    timezone: str,
) -> list:
    """Report overlapping leave and on duty days without blocking the request."""
    window = schedule_window(schedule)
    if window is None:
        return []

    requested = set(local_dates_between(window[0], window[1], timezone))
    existing = await store.query(
        Query(collections.ACTIVITIES)
        .where("officeId", "==", office_id)
        .where("template", "in", sorted(LEAVE_TEMPLATES))
        .where("creator.phoneNumber", "==", requester.phone_number)
        .where("status", "in", OPEN_STATUSES)
    )

    conflicts = []
    for doc in existing.docs:
        other = schedule_window(doc.get("schedule", []))
        if other is None:
            continue
        overlap = requested & set(local_dates_between(other[0], other[1], timezone))
        if overlap:
            conflicts.append(doc.id)

    if conflicts:
        logger.warning(
            "Payroll conflict detected",
            office_id=office_id,
            requester=mask_phone_number(requester.phone_number),
            conflicting_activity_ids=conflicts,
        )
    return conflicts


def _defaults_source(
    template_name: str,
    requester: Requester,
    subscription: Optional[DocumentSnapshot],
    template: Optional[Template],
) -> dict:
    if requester.is_support_request or template_name == "enquiry" or subscription is None:
        if template is None:
            raise NotFoundError(f"No template found with the name: '{template_name}'")
        return {
            "schedule": template.schedule,
            "venue": template.venue,
            "attachment": template.attachment_document(),
            "canEditRule": template.can_edit_rule.value,
            "statusOnCreate": template.status_on_create.value,
            "hidden": template.hidden,
            "include": [],
        }
    return {
        "schedule": subscription.get("schedule", []),
        "venue": subscription.get("venue", []),
        "attachment": subscription.get("attachment", {}),
        "canEditRule": subscription.get("canEditRule", "ALL"),
        "statusOnCreate": subscription.get("statusOnCreate", ActivityStatus.CONFIRMED.value),
        "hidden": subscription.get("hidden", 0),
        "include": subscription.get("include", []),
    }


async def create_activity(store: DocumentStore, requester: Requester, body: dict) -> CommandResult:
    """Create an activity, its assignees and its create addendum in one batch."""
    require_valid_body(body, "create")
    template_name = body["template"]
    office = body["office"]

    with log_timing("create_activity", logger=logger, template=template_name):
        subscription_query = (
            Query(collections.profile_subscriptions(requester.phone_number))
            .where("office", "==", office)
            .where("template", "==", template_name)
            .limit(1)
        )
        subscriptions, office_doc, template = await asyncio.gather(
            store.query(subscription_query),
            get_office(store, office),
            get_template(store, template_name),
        )
        subscription = subscriptions.first()

        if office_doc is None and template_name != "office":
            raise NotFoundError(f"No office found with the name: '{office}'")

        if not requester.is_support_request and template_name != "enquiry":
            if subscription is None:
                raise PermissionDeniedError(
                    f"No subscription found for the template: '{template_name}' with the office '{office}'"
                )
            if subscription.get("status") == ActivityStatus.CANCELLED.value:
                raise PermissionDeniedError(
                    f"Your subscription to the template '{template_name}' is 'CANCELLED'. Cannot create an activity"
                )

        if office_doc is not None and template_name == "office":
            raise ConflictError(f"The office '{office}' already exists")

        if office_doc is not None and office_doc.get("status") == ActivityStatus.CANCELLED.value:
            raise PermissionDeniedError("The office status is 'CANCELLED'. Cannot create an activity")

        source = _defaults_source(template_name, requester, subscription, template)

        phone_numbers = []

        def add_phone(phone_number):
            if phone_number and phone_number not in phone_numbers:
                phone_numbers.append(phone_number)

        for phone_number in source["include"]:
            add_phone(phone_number)
        for phone_number in body["share"]:
            add_phone(phone_number)
        if not requester.is_support_request:
            add_phone(requester.phone_number)

        schedule_result = validate_schedules(body.get("schedule"), source["schedule"])
        if not schedule_result.is_valid:
            raise ValidationError(schedule_result.message)

        venue_result = validate_venues(body.get("venue"), source["venue"])
        if not venue_result.is_valid:
            raise ValidationError(venue_result.message)

        filter_result = filter_attachment(body["attachment"], source["attachment"], template_name, office)
        if not filter_result.is_valid:
            raise ValidationError(filter_result.message)
        for phone_number in filter_result.phone_numbers:
            add_phone(phone_number)

        await resolve_existence_checks(store, filter_result)

        if not phone_numbers:
            raise ValidationError("No assignees found")

        activity_id = store.new_id()
        office_id = activity_id if template_name == "office" else office_doc.id
        if template_name == "office":
            timezone = body["attachment"].get("Timezone", {}).get("value") or Settings.DEFAULT_TIMEZONE
        else:
            timezone = office_doc.get("attachment.Timezone.value") or Settings.DEFAULT_TIMEZONE

        can_edit = await resolve_can_edit(
            store,
            office_id if template_name != "office" else None,
            phone_numbers,
            source["canEditRule"],
            requester.phone_number,
        )
        if template_name == "admin":
            can_edit[body["attachment"]["Admin"]["value"]] = True

        status = source["statusOnCreate"]
        cancellation_message = None
        if template_name in LEAVE_TEMPLATES:
            await log_payroll_conflicts(store, office_id, requester, schedule_result.value, timezone)
        if template_name == "leave":
            cancellation_message = await apply_leave_limit(
                store, office_id, requester, body["attachment"], schedule_result.value, timezone,
            )
            if cancellation_message:
                status = ActivityStatus.CANCELLED.value

        timestamp = now_ms()
        addendum_id = store.new_id()
        addendum_path = collections.addendum(office_id, addendum_id)

        activity = Activity(
            template=template_name,
            office=office,
            office_id=office_id,
            status=status,
            activity_name=activity_name(template_name, body["attachment"], requester),
            attachment=body["attachment"],
            schedule=schedule_result.value,
            venue=venue_result.value,
            can_edit_rule=source["canEditRule"],
            hidden=source["hidden"],
            timezone=timezone,
            timestamp=timestamp,
            create_timestamp=timestamp,
            creator=Creator(
                phone_number=requester.phone_number,
                display_name=requester.display_name,
                photo_url=requester.photo_url,
            ),
            addendum_doc_ref=addendum_path,
            cancellation_message=cancellation_message,
            relevant_time=relevant_time(schedule_result.value, timestamp),
        )
        if template_name not in TEMPLATES_WITHOUT_ADJUSTED_GEOPOINTS:
            activity.adjusted_geopoints = adjusted_geopoints_from_venue(venue_result.value)
        activity_doc = activity.to_document()

        distance_accurate = None
        if template_name == "check-in" and venue_result.value:
            distance_accurate = is_distance_accurate(
                body["geopoint"],
                body["geopoint"].get("accuracy"),
                venue_result.value[0].get("geopoint"),
            )

        addendum = build_addendum(
            AddendumAction.CREATE,
            requester,
            body,
            activity_id,
            activity_doc,
            share=phone_numbers,
            cancellation_message=cancellation_message,
            distance_accurate=distance_accurate,
        )

        batch = store.batch()
        batch.set(collections.activity(activity_id), activity_doc)
        for phone_number in phone_numbers:
            add_to_include = not (template_name == "subscription" and phone_number == requester.phone_number)
            batch.set(collections.assignee(activity_id, phone_number), {
                "canEdit": can_edit.get(phone_number, False),
                "addToInclude": add_to_include,
            })
        batch.set(addendum_path, addendum.to_document())
        await batch.commit()

    log_command(
        "create",
        requester,
        activity_id,
        template=template_name,
        office_id=office_id,
        status=status,
        assignee_count=len(phone_numbers),
    )

    return CommandResult(
        status_code=201,
        message=cancellation_message or "Activity created",
        activity_id=activity_id,
        activity=activity_doc,
    )
