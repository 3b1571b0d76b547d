"""
Subscription activities.

Keeps ``Profiles/{subscriber}/Subscriptions/{activityId}`` in sync with the
activity, reconciles admin rights for ``canEditRule == ADMIN`` templates,
seeds the subscriber's attendance documents and shares the office's
``*-type`` catalogs with the subscriber.
"""

from src.models.activity import ActivityStatus, CanEditRule
from src.models.subscription import ProfileSubscription
from src.models.template import Template
from src.services import collections
from src.services.auto_activities import create_admin
from src.services.change_context import ChangeContext
from src.services.command_support import get_template
from src.services.container import Services
from src.services.document_store import Query, ShardedBatchWriter
from src.services.template_handlers import TemplateHandler
from src.utils.dates import date_parts, month_year_key, to_local
from src.utils.logging import get_structured_logger, mask_phone_number

logger = get_structured_logger(__name__)

TYPE_ACTIVITY_TEMPLATES = frozenset({"customer", "leave", "claim", "duty"})


class SubscriptionHandler(TemplateHandler):
    reentrancy_guard = (
        "The profile subscription is overwritten with the same data, admin "
        "creation checks for an open admin activity, attendance documents are "
        "only created when missing and type activity copies are merge sets."
    )

    async def on_activity_change(self, ctx: ChangeContext, services: Services) -> None:
        subscriber = ctx.value("Subscriber")
        template_name = ctx.value("Template")
        if not subscriber or not template_name:
            return

        template = await get_template(services.store, template_name)
        if template is None:
            logger.warning(
                "Subscription references unknown template",
                activity_id=ctx.activity_id,
                subscribed_template=template_name,
            )
            return

        await self.write_profile_subscription(ctx, services, template, subscriber)
        await self.reconcile_admin(ctx, services, template, subscriber)
        if ctx.has_been_created:
            await self.seed_attendance(ctx, services, subscriber)
        await self.share_type_activities(ctx, services, template_name, subscriber)

    async def write_profile_subscription(self, ctx, services: Services, template: Template, subscriber: str) -> None:
        store = services.store
        path = collections.profile_subscription(subscriber, ctx.activity_id)
        existing = await store.get(path)

        include = list(existing.get("include", [])) if existing.exists else []
        for assignee in ctx.assignees:
            if assignee.phone_number == subscriber or not assignee.add_to_include:
                continue
            if assignee.phone_number not in include:
                include.append(assignee.phone_number)

        subscription = ProfileSubscription(
            office=ctx.office,
            template=template.name,
            status=ctx.status,
            include=include,
            schedule=template.schedule,
            venue=template.venue,
            attachment=template.attachment_document(),
            can_edit_rule=template.can_edit_rule,
            status_on_create=template.status_on_create,
            hidden=template.hidden,
            report=template.report,
            timestamp=ctx.after.get("timestamp", ctx.now),
        )

        batch = store.batch()
        batch.set(path, subscription.to_document())

        old_subscriber = ctx.old_value("Subscriber")
        if ctx.before.exists and old_subscriber and old_subscriber != subscriber:
            batch.delete(collections.profile_subscription(old_subscriber, ctx.activity_id))
            logger.info(
                "Subscription moved to new subscriber",
                activity_id=ctx.activity_id,
                old_subscriber=mask_phone_number(old_subscriber),
                new_subscriber=mask_phone_number(subscriber),
            )
        await batch.commit()

    async def reconcile_admin(self, ctx, services: Services, template: Template, subscriber: str) -> None:
        if template.can_edit_rule != CanEditRule.ADMIN:
            return

        store = services.store
        if not ctx.is_cancelled:
            if subscriber not in ctx.admins:
                await create_admin(services, ctx, subscriber)
            return

        remaining = await store.query(
            Query(collections.profile_subscriptions(subscriber))
            .where("canEditRule", "==", CanEditRule.ADMIN.value)
            .where("status", "==", ActivityStatus.CONFIRMED.value)
            .where("office", "==", ctx.office)
            .limit(1)
        )
        if not remaining.empty:
            return

        admin = (await store.query(
            Query(collections.ACTIVITIES)
            .where("officeId", "==", ctx.office_id)
            .where("template", "==", "admin")
            .where("attachment.Admin.value", "==", subscriber)
            .where("status", "==", ActivityStatus.CONFIRMED.value)
            .limit(1)
        )).first()
        if admin is None:
            return

        batch = store.batch()
        batch.set(admin.path, {
            "status": ActivityStatus.CANCELLED.value,
            "addendumDocRef": None,
            "timestamp": ctx.now,
        }, merge=True)
        await batch.commit()
        logger.info("Admin cancelled with last admin subscription", admin_activity_id=admin.id)

    async def seed_attendance(self, ctx, services: Services, subscriber: str) -> None:
        store = services.store
        local_now = to_local(ctx.now, ctx.timezone)
        month_year = month_year_key(ctx.now, ctx.timezone)
        parts = date_parts(ctx.now, ctx.timezone)
        day_path = collections.attendance_day(ctx.office_id, month_year, subscriber, local_now.day)
        summary_path = collections.attendance_summary(ctx.office_id, month_year, subscriber)

        day_doc, summary_doc = await store.get_all([day_path, summary_path])
        seed = {"phoneNumber": subscriber, "month": parts["month"], "year": parts["year"]}

        batch = store.batch()
        if not day_doc.exists:
            batch.set(day_path, seed, merge=True)
        if not summary_doc.exists:
            batch.set(summary_path, seed)
        await batch.commit()

    async def share_type_activities(self, ctx, services: Services, template_name: str, subscriber: str) -> None:
        if template_name not in TYPE_ACTIVITY_TEMPLATES:
            return

        store = services.store
        type_activities = await store.query(
            Query(collections.ACTIVITIES)
            .where("officeId", "==", ctx.office_id)
            .where("template", "==", f"{template_name}-type")
            .where("status", "==", ActivityStatus.CONFIRMED.value)
        )
        if type_activities.empty:
            return

        can_edit = subscriber in ctx.admins_can_edit
        writer = ShardedBatchWriter(store)
        for activity in type_activities.docs:
            data = activity.to_dict()
            data.pop("addendumDocRef", None)
            data["canEdit"] = can_edit
            writer.set(collections.profile_activity(subscriber, activity.id), data, merge=True)
        await writer.commit()
