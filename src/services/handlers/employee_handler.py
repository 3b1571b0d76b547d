"""
Employee activities.

An employee activity ties a phone number to an office. Writes to it keep
the employee's profile, the office directory and every activity the
employee takes part in consistent with that tie.
"""

from src.models.activity import ActivityStatus
from src.services import collections
from src.services.auto_activities import create_auto_subscription
from src.services.change_context import ChangeContext
from src.services.container import Services
from src.services.cursor_jobs import CursorJob
from src.services.directory import remove_directory_entry, sync_directory_entry
from src.services.document_store import DELETE_FIELD, ArrayUnion, DocumentSnapshot, Query, ShardedBatchWriter
from src.services.template_handlers import TemplateHandler
from src.utils.config import Settings
from src.utils.logging import get_structured_logger, log_timing, mask_phone_number

logger = get_structured_logger(__name__)

DEFAULT_SUBSCRIPTIONS = ("check-in", "leave", "attendance regularization")
SUPERVISOR_FIELDS = ("First Supervisor", "Second Supervisor", "Third Supervisor")
PHONE_BOUND_TEMPLATES = frozenset({"admin", "subscription"})


def replace_phone_number(doc: DocumentSnapshot, old_phone: str, new_phone: str, new_user, now: int) -> dict:
    """Fields of an activity with every reference to ``old_phone`` swapped."""
    attachment = doc.to_dict().get("attachment") or {}
    for item in attachment.values():
        if isinstance(item, dict) and item.get("value") == old_phone:
            item["value"] = new_phone

    updates = {"attachment": attachment, "timestamp": now, "addendumDocRef": None}

    creator = doc.get("creator")
    creator_phone = creator.get("phoneNumber") if isinstance(creator, dict) else creator
    if creator_phone == old_phone:
        updates["creator"] = {
            "phoneNumber": new_phone,
            "displayName": new_user.display_name or "",
            "photoURL": new_user.photo_url or "",
        }
    return updates


class EmployeeHandler(TemplateHandler):
    reentrancy_guard = (
        "Profile and directory writes are idempotent merges. The phone number "
        "cascade only runs while before and after contacts differ and the "
        "cancel cascade only on the transition into CANCELLED; both skip the "
        "triggering employee activity. Default subscriptions check for a "
        "confirmed subscription first and supervisor changes compare old and "
        "new values."
    )

    async def on_activity_change(self, ctx: ChangeContext, services: Services) -> None:
        phone_number = ctx.value("Employee Contact")
        if not phone_number:
            return

        old_phone_number = ctx.old_value("Employee Contact")
        phone_changed = bool(ctx.before.exists and old_phone_number and old_phone_number != phone_number)

        await self.update_profile(ctx, services, phone_number)
        if phone_changed:
            await self.move_phone_number(ctx, services, old_phone_number, phone_number)

        await sync_directory_entry(services.store, ctx.after, ctx.now)

        if ctx.has_been_cancelled:
            await self.remove_from_office_activities(ctx, services, phone_number)

        if ctx.has_been_created:
            for template_name in DEFAULT_SUBSCRIPTIONS:
                await create_auto_subscription(services, ctx, template_name, phone_number)

        await self.update_supervisors(ctx, services, phone_number)

    async def update_profile(self, ctx: ChangeContext, services: Services, phone_number: str) -> None:
        if ctx.is_cancelled:
            profile = {"employeeOf": {ctx.office: DELETE_FIELD}}
        else:
            profile = {"employeeOf": {ctx.office: ctx.office_id}}
        if ctx.has_been_created:
            profile["lastLocationMapUpdateTimestamp"] = ctx.now

        batch = services.store.batch()
        batch.set(collections.profile(phone_number), profile, merge=True)
        await batch.commit()

    async def move_phone_number(self, ctx: ChangeContext, services: Services, old_phone: str, new_phone: str) -> None:
        store = services.store
        logger.info(
            "Employee phone number changed",
            activity_id=ctx.activity_id,
            office_id=ctx.office_id,
            old_phone_number=mask_phone_number(old_phone),
            new_phone_number=mask_phone_number(new_phone),
        )

        old_user, new_user = (
            await services.identity.get_user_by_phone_number(old_phone),
            await services.identity.get_user_by_phone_number(new_phone),
        )

        batch = store.batch()
        batch.set(collections.profile(old_phone), {"employeeOf": {ctx.office: DELETE_FIELD}}, merge=True)
        updates = (await store.query(
            Query(collections.UPDATES).where("phoneNumber", "==", old_phone).limit(1)
        )).first()
        if updates is not None:
            batch.set(updates.path, {"removeFromOffice": ArrayUnion([ctx.office])}, merge=True)
        await batch.commit()

        if old_user.is_registered:
            await services.identity.delete_user(old_user.uid)
        await remove_directory_entry(store, ctx.office_id, old_phone)

        async def replace_page(docs: list) -> None:
            page = store.batch()
            for doc in docs:
                if doc.id == ctx.activity_id:
                    continue
                template = doc.get("template")
                page.set(collections.assignee(doc.id, new_phone), {
                    "canEdit": bool(doc.get("canEdit", False)),
                    "addToInclude": template != "subscription",
                }, merge=True)
                page.delete(collections.assignee(doc.id, old_phone))
                page.set(
                    collections.activity(doc.id),
                    replace_phone_number(doc, old_phone, new_phone, new_user, ctx.now),
                    merge=True,
                )
            await page.commit()

        job = CursorJob(
            store,
            Query(collections.profile_activities(old_phone)).where("office", "==", ctx.office),
            replace_page,
            page_size=Settings.PHONE_CHANGE_PAGE_SIZE,
            name="replace_phone_number",
        )
        with log_timing("replace_phone_number", logger=logger, activity_id=ctx.activity_id):
            await job.run()

    async def remove_from_office_activities(self, ctx: ChangeContext, services: Services, phone_number: str) -> None:
        """Cancel the employee's admin and subscriptions, unassign them everywhere else."""
        store = services.store

        async def remove_page(docs: list) -> None:
            page = ShardedBatchWriter(store)
            for doc in docs:
                if doc.id == ctx.activity_id or doc.get("status") == ActivityStatus.CANCELLED.value:
                    continue

                template = doc.get("template")
                bound_phone = doc.get("attachment.Admin.value") or doc.get("attachment.Subscriber.value")
                if template in PHONE_BOUND_TEMPLATES and bound_phone == phone_number:
                    page.set(collections.activity(doc.id), {
                        "status": ActivityStatus.CANCELLED.value,
                        "addendumDocRef": None,
                        "timestamp": ctx.now,
                    }, merge=True)
                    continue

                page.set(collections.activity(doc.id), {"addendumDocRef": None, "timestamp": ctx.now}, merge=True)
                page.delete(collections.assignee(doc.id, phone_number))
                page.delete(collections.profile_activity(phone_number, doc.id))
            await page.commit()

        job = CursorJob(
            store,
            Query(collections.profile_activities(phone_number)).where("office", "==", ctx.office),
            remove_page,
            page_size=Settings.EMPLOYEE_CANCEL_PAGE_SIZE,
            name="remove_from_office_activities",
        )
        with log_timing("remove_from_office_activities", logger=logger, activity_id=ctx.activity_id):
            await job.run()

    async def update_supervisors(self, ctx: ChangeContext, services: Services, phone_number: str) -> None:
        if ctx.is_cancelled:
            return

        old = [ctx.old_value(f) for f in SUPERVISOR_FIELDS]
        new = [ctx.value(f) for f in SUPERVISOR_FIELDS]
        if old == new:
            return

        store = services.store
        subscriptions = await store.query(
            Query(collections.ACTIVITIES)
            .where("officeId", "==", ctx.office_id)
            .where("template", "==", "subscription")
            .where("attachment.Subscriber.value", "==", phone_number)
        )

        removed = [o for o, n in zip(old, new) if o and o != n and o not in new]
        added = [n for n in new if n]

        writer = ShardedBatchWriter(store)
        for subscription in subscriptions.docs:
            writer.set(subscription.path, {"addendumDocRef": None, "timestamp": ctx.now}, merge=True)
            for supervisor in removed:
                writer.delete(collections.assignee(subscription.id, supervisor))
            for supervisor in added:
                writer.set(collections.assignee(subscription.id, supervisor), {
                    "canEdit": supervisor in ctx.admins,
                    "addToInclude": True,
                })
        await writer.commit()

        logger.info(
            "Supervisors updated on subscriptions",
            activity_id=ctx.activity_id,
            subscriptions=subscriptions.size,
        )
