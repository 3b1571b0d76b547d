"""Activities the change trigger creates on a user's behalf."""

from typing import Optional

from src.models.activity import Activity, ActivityStatus, Creator
from src.models.addendum import Addendum, AddendumAction
from src.models.template import Template
from src.services import collections
from src.services.attachment_filter import OPEN_STATUSES
from src.services.change_context import ChangeContext
from src.services.command_support import get_template
from src.services.container import Services
from src.services.document_store import DocumentStore, Query
from src.utils.config import Settings
from src.utils.dates import date_parts
from src.utils.geo import adjusted_geopoints_from_venue
from src.utils.logging import get_structured_logger, mask_phone_number

logger = get_structured_logger(__name__)


def empty_schedule(template: Template) -> list:
    return [{"name": name, "startTime": "", "endTime": ""} for name in template.schedule]


def empty_venue(template: Template) -> list:
    return [
        {"venueDescriptor": descriptor, "address": "", "location": "", "geopoint": {}}
        for descriptor in template.venue
    ]


def _creator(ctx: ChangeContext) -> Creator:
    creator = ctx.after.get("creator") or {}
    if isinstance(creator, str):
        creator = {"phoneNumber": creator}
    return Creator(
        phone_number=creator.get("phoneNumber") or ctx.actor or "",
        display_name=creator.get("displayName", ""),
        photo_url=creator.get("photoURL", ""),
    )


async def create_auto_activity(
    services: Services,
    ctx: ChangeContext,
    template: Template,
    attachment: dict,
    activity_name: str,
    assignees: dict,
    venue: Optional[list] = None,
    schedule: Optional[list] = None,
) -> str:
    """
    Commit an activity, its assignees and an auto-generated create addendum.

    ``assignees`` maps phone number to ``(can_edit, add_to_include)``.
    """
    store = services.store
    activity_id = store.new_id()
    office_id = ctx.activity_id if ctx.template == "office" else ctx.office_id
    addendum_path = collections.addendum(office_id, store.new_id())
    creator = _creator(ctx)
    venue = venue if venue is not None else empty_venue(template)

    activity_doc = Activity(
        template=template.name,
        office=ctx.office,
        office_id=office_id,
        status=ActivityStatus.CONFIRMED,
        activity_name=activity_name,
        attachment=attachment,
        schedule=schedule if schedule is not None else empty_schedule(template),
        venue=venue,
        can_edit_rule=template.can_edit_rule,
        hidden=template.hidden,
        timezone=ctx.timezone or Settings.DEFAULT_TIMEZONE,
        timestamp=ctx.now,
        create_timestamp=ctx.now,
        creator=creator,
        addendum_doc_ref=addendum_path,
        adjusted_geopoints=adjusted_geopoints_from_venue(venue),
    ).to_document()

    addendum = Addendum(
        action=AddendumAction.CREATE,
        activity_id=activity_id,
        activity_name=activity_name,
        template=template.name,
        user=creator.phone_number,
        user_display_name=creator.display_name,
        user_device_timestamp=ctx.now,
        timestamp=ctx.now,
        location=ctx.addendum.get("location") if ctx.addendum else None,
        is_auto_generated=True,
        activity_data=activity_doc,
        share=list(assignees),
    )

    batch = store.batch()
    batch.set(collections.activity(activity_id), activity_doc)
    for phone_number, (can_edit, add_to_include) in assignees.items():
        batch.set(collections.assignee(activity_id, phone_number), {
            "canEdit": can_edit,
            "addToInclude": add_to_include,
        })
    batch.set(addendum_path, addendum.to_document())
    await batch.commit()

    logger.info(
        "Auto activity created",
        template=template.name,
        activity_id=activity_id,
        source_activity_id=ctx.activity_id,
        office_id=office_id,
    )
    return activity_id


def attachment_with(template: Template, **values) -> dict:
    """Template attachment with selected field values filled in."""
    attachment = template.attachment_document()
    for field_name, value in values.items():
        attachment.setdefault(field_name, {"type": "string", "value": ""})
        attachment[field_name]["value"] = value
    return attachment


async def find_open_activity(store: DocumentStore, office_id: str, template: str, **attachment_values):
    query = (
        Query(collections.ACTIVITIES)
        .where("officeId", "==", office_id)
        .where("template", "==", template)
        .where("status", "in", OPEN_STATUSES)
    )
    for field_name, value in attachment_values.items():
        query = query.where(f"attachment.{field_name.replace('_', ' ')}.value", "==", value)
    return (await store.query(query.limit(1))).first()


async def find_confirmed_subscription(store: DocumentStore, office_id: str, subscriber: str, template_name: str):
    return (await store.query(
        Query(collections.ACTIVITIES)
        .where("officeId", "==", office_id)
        .where("template", "==", "subscription")
        .where("attachment.Subscriber.value", "==", subscriber)
        .where("attachment.Template.value", "==", template_name)
        .where("status", "==", ActivityStatus.CONFIRMED.value)
        .limit(1)
    )).first()


async def has_payroll_recipient(store: DocumentStore, office_id: str) -> bool:
    recipient = (await store.query(
        Query(collections.ACTIVITIES)
        .where("officeId", "==", office_id)
        .where("template", "==", "recipient")
        .where("attachment.Name.value", "==", "payroll")
        .where("status", "==", ActivityStatus.CONFIRMED.value)
        .limit(1)
    )).first()
    return recipient is not None


async def create_auto_subscription(
    services: Services,
    ctx: ChangeContext,
    template_name: str,
    subscriber: Optional[str],
) -> Optional[str]:
    """Subscribe ``subscriber`` to ``template_name`` unless a confirmed subscription exists."""
    if not subscriber:
        return None

    store = services.store
    office_id = ctx.activity_id if ctx.template == "office" else ctx.office_id

    if await find_confirmed_subscription(store, office_id, subscriber, template_name):
        return None

    if template_name == "attendance regularization" and not await has_payroll_recipient(store, office_id):
        return None

    subscription_template = await get_template(store, "subscription")
    if subscription_template is None:
        logger.warning("Subscription template missing", office_id=office_id)
        return None

    admins_can_edit = set(ctx.admins_can_edit)
    phone_numbers = list(dict.fromkeys(ctx.assignee_phone_numbers + [subscriber]))
    assignees = {
        phone: (phone in admins_can_edit, phone != subscriber)
        for phone in phone_numbers
    }

    return await create_auto_activity(
        services,
        ctx,
        subscription_template,
        attachment_with(subscription_template, Subscriber=subscriber, Template=template_name),
        f"SUBSCRIPTION: {subscriber}",
        assignees,
    )


async def office_contacts(store: DocumentStore, office_id: str) -> list:
    office = await store.get(collections.office(office_id))
    contacts = [
        office.get("attachment.First Contact.value"),
        office.get("attachment.Second Contact.value"),
    ]
    return [contact for contact in contacts if contact]


async def create_admin(services: Services, ctx: ChangeContext, phone_number: str) -> Optional[str]:
    """Grant office admin rights by creating a confirmed ``admin`` activity."""
    store = services.store
    office_id = ctx.office_id

    if await find_open_activity(store, office_id, "admin", Admin=phone_number):
        return None

    admin_template = await get_template(store, "admin")
    if admin_template is None:
        logger.warning("Admin template missing", office_id=office_id)
        return None

    contacts = await office_contacts(store, office_id)
    assignees = {phone: (True, False) for phone in dict.fromkeys([phone_number] + contacts)}

    logger.info("Creating admin", office_id=office_id, phone_number=mask_phone_number(phone_number))
    return await create_auto_activity(
        services,
        ctx,
        admin_template,
        attachment_with(admin_template, Admin=phone_number),
        f"ADMIN: {phone_number}",
        assignees,
    )


def add_auto_comment(
    batch,
    store: DocumentStore,
    ctx: ChangeContext,
    activity_id: str,
    activity_data: dict,
    comment: str,
    user: Optional[str] = None,
    action: AddendumAction = AddendumAction.COMMENT,
) -> str:
    """
    Stage an auto-generated comment addendum for ``activity_id`` and point the
    activity at it so the addendum processor picks it up.
    """
    addendum = ctx.addendum
    office_id = activity_data.get("officeId") or ctx.office_id
    addendum_path = collections.addendum(office_id, store.new_id())
    user = user or ctx.actor or ""
    parts = date_parts(ctx.now, ctx.timezone)

    batch.set(addendum_path, Addendum(
        action=action,
        activity_id=activity_id,
        activity_name=activity_data.get("activityName", ""),
        template=activity_data.get("template", ""),
        user=user,
        user_display_name=ctx.display_name(user),
        user_device_timestamp=addendum.get("userDeviceTimestamp", ctx.now) if addendum else ctx.now,
        timestamp=ctx.now,
        location=addendum.get("location") if addendum else None,
        geopoint_accuracy=addendum.get("geopointAccuracy") if addendum else None,
        provider=addendum.get("provider") if addendum else None,
        is_support_request=bool(addendum.get("isSupportRequest", False)) if addendum else False,
        is_auto_generated=True,
        activity_data=activity_data,
        comment=comment,
        **parts,
    ).to_document())
    batch.set(collections.activity(activity_id), {
        "addendumDocRef": addendum_path,
        "timestamp": ctx.now,
    }, merge=True)
    return addendum_path
