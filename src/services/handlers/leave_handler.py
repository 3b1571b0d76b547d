"""
Leave and duty conflicts.

A leave conflicts with every duty of the same office whose relevant time
falls inside the leave and in which the applicant takes part. Conflicts are
recorded on both sides (``conflictingDuties`` on the leave,
``conflictingLeaves`` on the duty) with an automatic comment, and are
cleared the same way once an edit or a cancellation removes the overlap.
"""

from typing import Optional

from src.models.activity import ActivityStatus
from src.models.addendum import AddendumAction
from src.services import collections
from src.services.attendance import find_employee
from src.services.auto_activities import add_auto_comment
from src.services.change_context import ChangeContext
from src.services.container import Services
from src.services.directory import sync_directory_entry
from src.services.document_store import ArrayRemove, ArrayUnion, DocumentSnapshot, Query
from src.services.template_handlers import TemplateHandler
from src.utils.dates import end_of_day_ms, to_local
from src.utils.logging import get_structured_logger

logger = get_structured_logger(__name__)

CONFLICT_ACTIONS = frozenset({
    AddendumAction.CREATE.value,
    AddendumAction.UPDATE.value,
    AddendumAction.CHANGE_STATUS.value,
})


def leave_window(schedule: list, tz_name: Optional[str]) -> Optional[tuple]:
    """(start, end) of the first schedule; a single-day leave lasts until the end of that day."""
    if not schedule:
        return None
    start, end = schedule[0].get("startTime"), schedule[0].get("endTime")
    if not start or not end:
        return None
    if to_local(start, tz_name).date() == to_local(end, tz_name).date():
        end = end_of_day_ms(start, tz_name)
    return start, end


def duty_participants(duty: DocumentSnapshot) -> list:
    include = duty.get("attachment.Include.value") or []
    if isinstance(include, str):
        include = [include]
    return [duty.get("attachment.Supervisor.value")] + list(include)


def applicant(ctx: ChangeContext) -> str:
    creator = ctx.after.get("creator")
    if isinstance(creator, dict):
        return creator.get("phoneNumber", "")
    return creator or ""


class LeaveHandler(TemplateHandler):
    reentrancy_guard = (
        "Creation skips duties linked on either side in the stored documents: "
        "listed in the leave's current conflictingDuties or holding the leave "
        "in conflictingLeaves. Updates return when the length of "
        "conflictingDuties changed between before and after, which is the "
        "write this handler made on the previous pass. The directory entry "
        "is an overwrite."
    )

    async def on_activity_change(self, ctx: ChangeContext, services: Services) -> None:
        if ctx.action not in CONFLICT_ACTIONS:
            return

        await self.refresh_directory(ctx, services)
        if ctx.action == AddendumAction.CREATE.value and ctx.is_cancelled:
            return

        window = leave_window(ctx.after.get("schedule") or [], ctx.timezone)
        if window is None:
            return

        if ctx.action == AddendumAction.CREATE.value:
            await self.record_conflicts(ctx, services, window)
        else:
            await self.resolve_conflicts(ctx, services, window)

    async def refresh_directory(self, ctx: ChangeContext, services: Services) -> None:
        employee = await find_employee(services.store, ctx.office_id, applicant(ctx))
        if employee is not None:
            await sync_directory_entry(services.store, employee, ctx.now)

    async def record_conflicts(self, ctx: ChangeContext, services: Services, window: tuple) -> list:
        store = services.store
        phone_number = applicant(ctx)
        current = await store.get(ctx.after.path)
        known = set(current.get("conflictingDuties") or [])

        duties = await store.query(
            Query(collections.ACTIVITIES)
            .where("officeId", "==", ctx.office_id)
            .where("template", "==", "duty")
            .where("relevantTime", ">=", window[0])
            .where("relevantTime", "<=", window[1])
        )
        conflicts = [
            duty for duty in duties.docs
            if duty.id not in known
            and ctx.activity_id not in (duty.get("conflictingLeaves") or [])
            and duty.get("status") != ActivityStatus.CANCELLED.value
            and phone_number in duty_participants(duty)
        ]
        if not conflicts:
            return []

        comment = f"{ctx.display_name(phone_number)} has a leave conflict with duty"
        batch = store.batch()
        for duty in conflicts:
            batch.set(duty.path, {"conflictingLeaves": ArrayUnion([ctx.activity_id])}, merge=True)
            add_auto_comment(batch, store, ctx, duty.id, duty.to_dict(), comment, user=phone_number)

        batch.set(ctx.after.path, {
            "conflictingDuties": ArrayUnion([duty.id for duty in conflicts]),
        }, merge=True)
        add_auto_comment(batch, store, ctx, ctx.activity_id, ctx.after.to_dict(), comment, user=phone_number)
        await batch.commit()

        logger.info(
            "Leave conflicts recorded",
            activity_id=ctx.activity_id,
            conflicting_duties=[duty.id for duty in conflicts],
        )
        return conflicts

    async def resolve_conflicts(self, ctx: ChangeContext, services: Services, window: tuple) -> list:
        old_conflicts = ctx.before.get("conflictingDuties") or []
        conflicts = ctx.after.get("conflictingDuties") or []
        if len(old_conflicts) != len(conflicts) or not conflicts:
            return []

        old_schedule = (ctx.before.get("schedule") or [{}])[0]
        new_schedule = (ctx.after.get("schedule") or [{}])[0]
        if (
            old_schedule.get("startTime") == new_schedule.get("startTime")
            and old_schedule.get("endTime") == new_schedule.get("endTime")
            and ctx.before.get("status") == ctx.status
        ):
            return []

        store = services.store
        duties = await store.get_all(collections.activity(duty_id) for duty_id in conflicts)
        resolved = []
        for duty in duties:
            relevant_time = duty.get("relevantTime")
            still_overlaps = (
                relevant_time is not None
                and window[0] <= relevant_time <= window[1]
                and not ctx.is_cancelled
                and duty.get("status") != ActivityStatus.CANCELLED.value
            )
            if not still_overlaps:
                resolved.append(duty)
        if not resolved:
            return []

        phone_number = applicant(ctx)
        comment = f"{ctx.display_name(phone_number)} has removed leave conflict with duty"
        batch = store.batch()
        for duty in resolved:
            if duty.exists:
                batch.set(duty.path, {"conflictingLeaves": ArrayRemove([ctx.activity_id])}, merge=True)
                add_auto_comment(batch, store, ctx, duty.id, duty.to_dict(), comment, user=phone_number)

        batch.set(ctx.after.path, {
            "conflictingDuties": ArrayRemove([duty.id for duty in resolved]),
        }, merge=True)
        add_auto_comment(batch, store, ctx, ctx.activity_id, ctx.after.to_dict(), comment, user=phone_number)
        await batch.commit()

        logger.info(
            "Leave conflicts resolved",
            activity_id=ctx.activity_id,
            resolved_duties=[duty.id for duty in resolved],
        )
        return resolved
