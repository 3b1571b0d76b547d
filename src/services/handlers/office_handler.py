"""Office activities: contacts, footprints report, branches and the sitemap."""

import re
from typing import Optional

from src.models.activity import ActivityStatus
from src.models.addendum import AddendumAction
from src.services import collections
from src.services.auto_activities import (
    attachment_with,
    create_auto_activity,
    create_auto_subscription,
    find_open_activity,
)
from src.services.change_context import ChangeContext
from src.services.command_support import get_template
from src.services.container import Services
from src.services.document_store import Query
from src.services.template_handlers import TemplateHandler
from src.utils.errors import GeocodingError
from src.utils.geo import make_geopoint
from src.utils.logging import get_structured_logger, mask_phone_number

logger = get_structured_logger(__name__)

CONTACT_FIELDS = ("First Contact", "Second Contact")
FOOTPRINTS = "footprints"
COMMON_TLDS = ("co.in", "com", "in", "net", "org", "gov", "uk")
COMPANY_WORDS = ("limited", "private", "ltd", "pvt")


def slugify(text: str) -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", (text or "").lower())
    return slug.strip("-")


def sanitize_office_name(office: str) -> str:
    """Office name without domain suffixes, punctuation and company words."""
    result = office.lower()
    for tld in COMMON_TLDS:
        if result.endswith(f".{tld}"):
            result = result[: -len(tld) - 1]
            break
    result = re.sub(r"[.,()]", "", result)
    for word in COMPANY_WORDS:
        result = re.sub(rf"\b{word}\b", "", result)
    return re.sub(r"\s+", " ", result).strip()


async def cancel_bound_activity(services: Services, ctx: ChangeContext, query: Query) -> None:
    doc = (await services.store.query(query.limit(1))).first()
    if doc is None or doc.get("status") == ActivityStatus.CANCELLED.value:
        return

    batch = services.store.batch()
    batch.set(doc.path, {
        "status": ActivityStatus.CANCELLED.value,
        "addendumDocRef": None,
        "timestamp": ctx.now,
    }, merge=True)
    await batch.commit()


class OfficeHandler(TemplateHandler):
    reentrancy_guard = (
        "Old contacts are only cancelled while they differ from the new ones "
        "and are skipped once CANCELLED. Footprints, subscriptions and "
        "branches check for an existing open activity first; the sitemap "
        "entry is an overwrite."
    )

    async def on_activity_change(self, ctx: ChangeContext, services: Services) -> None:
        for field_name in CONTACT_FIELDS:
            old_contact = ctx.old_value(field_name)
            if old_contact and old_contact != ctx.value(field_name):
                await self.cancel_contact(ctx, services, old_contact)

        await self.create_footprints_recipient(ctx, services)
        for field_name in CONTACT_FIELDS:
            await create_auto_subscription(services, ctx, "subscription", ctx.value(field_name))

        if ctx.action == AddendumAction.CREATE.value:
            await self.create_branches(ctx, services)
        await self.update_sitemap(ctx, services)

    async def cancel_contact(self, ctx: ChangeContext, services: Services, phone_number: str) -> None:
        logger.info(
            "Office contact replaced",
            office_id=ctx.office_id,
            phone_number=mask_phone_number(phone_number),
        )
        base = Query(collections.ACTIVITIES).where("officeId", "==", ctx.office_id)
        await cancel_bound_activity(
            services,
            ctx,
            base.where("template", "==", "subscription")
            .where("attachment.Template.value", "==", "subscription")
            .where("attachment.Subscriber.value", "==", phone_number),
        )
        await cancel_bound_activity(
            services,
            ctx,
            base.where("template", "==", "admin").where("attachment.Admin.value", "==", phone_number),
        )

    async def create_footprints_recipient(self, ctx: ChangeContext, services: Services) -> Optional[str]:
        store = services.store
        if await find_open_activity(store, ctx.office_id, "recipient", Name=FOOTPRINTS):
            return None

        template = await get_template(store, "recipient")
        if template is None:
            return None

        contacts = {ctx.value(f) for f in CONTACT_FIELDS} - {None, ""}
        assignees = {phone: (phone in contacts, False) for phone in ctx.assignee_phone_numbers}
        return await create_auto_activity(
            services,
            ctx,
            template,
            attachment_with(template, Name=FOOTPRINTS),
            "RECIPIENT: FOOTPRINTS REPORT",
            assignees,
            venue=[],
            schedule=[],
        )

    async def find_places(self, services: Services, office: str) -> list:
        """Place ids for the office name, retried once with a sanitized name."""
        for attempt, query in enumerate((office, sanitize_office_name(office))):
            try:
                place_ids = await services.geocoder.search_places(query)
            except GeocodingError as e:
                logger.warning("Branch search failed", office=office, attempt=attempt + 1, error=str(e))
                place_ids = []
            if place_ids:
                return place_ids
        return []

    async def create_branches(self, ctx: ChangeContext, services: Services) -> list:
        if services.geocoder is None:
            return []

        store = services.store
        template = await get_template(store, "branch")
        if template is None:
            return []

        created = []
        descriptor = template.venue[0] if template.venue else "Branch Office"
        for place_id in await self.find_places(services, ctx.office):
            try:
                place = await services.geocoder.place_details(place_id)
            except GeocodingError as e:
                logger.warning("Branch details failed", place_id=place_id, error=str(e))
                continue
            if place is None or not place.name:
                continue
            if await find_open_activity(store, ctx.office_id, "branch", Name=place.name):
                continue

            venue = [{
                "venueDescriptor": descriptor,
                "address": place.address,
                "location": place.name,
                "geopoint": make_geopoint(place.latitude, place.longitude),
                "placeId": place.place_id,
            }]
            assignees = {phone: (True, False) for phone in ctx.assignee_phone_numbers}
            created.append(await create_auto_activity(
                services,
                ctx,
                template,
                attachment_with(template, Name=place.name),
                f"BRANCH: {place.name}",
                assignees,
                venue=venue,
            ))

        logger.info("Branches created", office_id=ctx.office_id, count=len(created))
        return created

    async def update_sitemap(self, ctx: ChangeContext, services: Services) -> None:
        batch = services.store.batch()
        batch.set(collections.sitemap_entry(slugify(ctx.office)), {
            "office": ctx.office,
            "officeId": ctx.office_id,
            "lastMod": ctx.after.update_time,
            "createTime": ctx.after.create_time,
        })
        await batch.commit()
