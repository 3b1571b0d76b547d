"""
Reactive engine run for every write of an ``Activities/{id}`` document.

One run walks a fixed pipeline of stages over an immutable
``ChangeContext``:

1. fan the activity out to assignee profiles and the office copy
2. post-process the addendum the write points at
3. create placeholder profiles for assignees without an account
4. dispatch to the template handler
5. apply allowances for ``checkIn`` actions
6. count the addendum in the daily statistics (production only)

Writes made by the engine itself re-trigger it with ``addendumDocRef``
set to ``None``; such runs skip the addendum dependent stages.
"""

from types import MappingProxyType
from typing import Optional

from src.models.addendum import AddendumAction
from src.services import collections
from src.services.addendum_processor import process_addendum
from src.services.allowance import apply_daily_allowance, apply_km_allowance
from src.services.change_context import ChangeContext, build_context
from src.services.container import Services
from src.services.daily_stats import record_daily_status
from src.services.document_store import DocumentSnapshot, ShardedBatchWriter
from src.services.handlers.admin_handler import AdminHandler
from src.services.handlers.branch_handler import BranchHandler, EmployeeFieldCascadeHandler
from src.services.handlers.checkin_handler import CheckInHandler
from src.services.handlers.claim_handler import ClaimHandler
from src.services.handlers.employee_handler import EmployeeHandler
from src.services.handlers.leave_handler import LeaveHandler
from src.services.handlers.office_handler import OfficeHandler, slugify
from src.services.handlers.recipient_handler import RecipientHandler
from src.services.handlers.subscription_handler import SubscriptionHandler
from src.services.handlers.type_handler import TypeActivityHandler
from src.services.template_handlers import HandlerRegistry
from src.utils.dates import date_parts
from src.utils.logging import correlation_context, get_structured_logger, log_timing

logger = get_structured_logger(__name__)


def default_registry() -> HandlerRegistry:
    return HandlerRegistry(
        {
            "employee": EmployeeHandler(),
            "office": OfficeHandler(),
            "subscription": SubscriptionHandler(),
            "admin": AdminHandler(),
            "leave": LeaveHandler(),
            "check-in": CheckInHandler(),
            "claim": ClaimHandler(),
            "recipient": RecipientHandler(),
            "branch": BranchHandler(),
            "region": EmployeeFieldCascadeHandler("Region"),
            "department": EmployeeFieldCascadeHandler("Department"),
        },
        type_handler=TypeActivityHandler(),
    )


def merged_addendum(ctx: ChangeContext) -> dict:
    if ctx.addendum is None:
        return {}
    return dict(ctx.addendum.to_dict(), **ctx.addendum_updates)


def office_copy_path(ctx: ChangeContext) -> str:
    if ctx.template == "office":
        return collections.office(ctx.activity_id)
    return collections.office_activity(ctx.office_id, ctx.activity_id)


class ChangeTriggerEngine:

    def __init__(self, services: Services, registry: Optional[HandlerRegistry] = None):
        self.services = services
        self.registry = registry or default_registry()
        self.stages = (
            self.fan_out,
            self.process_addendum,
            self.create_new_profiles,
            self.dispatch,
            self.apply_allowances,
            self.record_statistics,
        )

    async def handle_change(self, before: DocumentSnapshot, after: DocumentSnapshot) -> Optional[ChangeContext]:
        """
        Run every stage for one write.

        Errors abort the remaining stages of this write only; they are logged
        and never raised, since the write itself is already committed.
        """
        if not after.exists:
            logger.info("Activity deleted", activity_id=after.id)
            return None

        with correlation_context(after.id):
            ctx = None
            try:
                ctx = await build_context(self.services, before, after)
                for stage in self.stages:
                    ctx = await stage(ctx)
            except Exception as e:
                logger.error(
                    "Change trigger failed",
                    exc_info=True,
                    activity_id=after.id,
                    template=after.get("template"),
                    action=ctx.action if ctx else None,
                    error=str(e),
                )
                return None
            return ctx

    def activity_copy(self, ctx: ChangeContext) -> dict:
        data = ctx.after.to_dict()
        data["assignees"] = [assignee.roster_entry() for assignee in ctx.assignees]
        data["addendumDocRef"] = None
        if ctx.customer_object:
            data["customerObject"] = dict(ctx.customer_object)
        return data

    async def fan_out(self, ctx: ChangeContext) -> ChangeContext:
        """Profile copies with each assignee's canEdit, plus the office copy."""
        writer = ShardedBatchWriter(self.services.store)
        copy = self.activity_copy(ctx)

        for assignee in ctx.assignees:
            # Check-ins are only kept for people who can open the app
            if ctx.template == "check-in" and not assignee.uid:
                continue
            writer.set(
                collections.profile_activity(assignee.phone_number, ctx.activity_id),
                dict(copy, canEdit=assignee.can_edit),
            )

        office_copy = dict(
            copy,
            isCancelled=ctx.is_cancelled,
            creationTimestamp=ctx.after.get("createTimestamp") or ctx.now,
        )
        if ctx.has_been_created:
            parts = date_parts(office_copy["creationTimestamp"], ctx.timezone)
            office_copy.update(
                creationDate=parts["date"],
                creationMonth=parts["month"],
                creationYear=parts["year"],
            )
        if ctx.template == "office":
            office_copy["slug"] = slugify(ctx.office)
        else:
            office_copy["adminsCanEdit"] = ctx.admins_can_edit
        writer.set(office_copy_path(ctx), office_copy, merge=True)

        batches = await writer.commit()
        logger.debug("Activity fanned out", activity_id=ctx.activity_id, assignees=len(ctx.assignees), batches=batches)
        return ctx

    async def process_addendum(self, ctx: ChangeContext) -> ChangeContext:
        return await process_addendum(ctx, self.services)

    async def create_new_profiles(self, ctx: ChangeContext) -> ChangeContext:
        """Profiles holding an SMS invite context for assignees without an account."""
        pending = [assignee.phone_number for assignee in ctx.assignees if not assignee.uid]
        if not pending:
            return ctx

        store = self.services.store
        profiles = await store.get_all(collections.profile(phone) for phone in pending)
        creator = ctx.after.get("creator") or {}
        batch = store.batch()
        for profile in profiles:
            if profile.exists:
                continue
            batch.set(profile.path, {
                "smsContext": {
                    "activityName": ctx.after.get("activityName", ""),
                    "creator": creator.get("displayName") or creator.get("phoneNumber", ""),
                    "office": ctx.office,
                },
            })
        if len(batch):
            await batch.commit()
            logger.info("Profiles created", activity_id=ctx.activity_id, profiles=len(batch))
        return ctx

    async def dispatch(self, ctx: ChangeContext) -> ChangeContext:
        handler = self.registry.get(ctx.template)
        with log_timing("template_handler", logger, activity_id=ctx.activity_id, template=ctx.template):
            await handler.on_activity_change(ctx, self.services)
        return ctx

    async def apply_allowances(self, ctx: ChangeContext) -> ChangeContext:
        if ctx.action != AddendumAction.CHECK_IN.value:
            return ctx

        addendum = merged_addendum(ctx)
        await apply_daily_allowance(ctx, self.services, addendum)
        await apply_km_allowance(ctx, self.services, addendum, ctx.previous_addendum)
        return ctx

    async def record_statistics(self, ctx: ChangeContext) -> ChangeContext:
        if ctx.addendum is None:
            return ctx
        await record_daily_status(self.services, ctx.addendum.id, MappingProxyType(merged_addendum(ctx)), ctx.now)
        return ctx
