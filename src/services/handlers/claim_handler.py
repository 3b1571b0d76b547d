"""Claims are mirrored as reimbursement line items in the monthly status ledger."""

from src.models.activity import ActivityStatus
from src.models.addendum import AddendumAction
from src.models.status import Reimbursement
from src.services import collections
from src.services.change_context import ChangeContext
from src.services.container import Services
from src.services.template_handlers import TemplateHandler
from src.utils.dates import date_parts, month_year_key
from src.utils.logging import get_structured_logger

logger = get_structured_logger(__name__)


def upsert_reimbursement(status_object: dict, day: int, item: dict, keys: tuple = ("activityId",)) -> dict:
    """Replace the line item matching ``item`` on every key in ``keys``, else append it."""
    day_entry = status_object.setdefault(str(day), {})
    items = day_entry.setdefault("reimbursements", [])
    for index, existing in enumerate(items):
        if all(existing.get(key) == item.get(key) for key in keys):
            items[index] = item
            break
    else:
        items.append(item)
    return status_object


class ClaimHandler(TemplateHandler):
    reentrancy_guard = "Line items are upserted by claim activity id."

    async def on_activity_change(self, ctx: ChangeContext, services: Services) -> None:
        creator = ctx.after.get("creator") or {}
        phone_number = creator.get("phoneNumber") if isinstance(creator, dict) else creator
        if not phone_number:
            return

        schedule = (ctx.after.get("schedule") or [{}])[0]
        at = schedule.get("startTime") or ctx.after.get("createTimestamp") or ctx.now
        month_year = month_year_key(at, ctx.timezone)
        parts = date_parts(at, ctx.timezone)

        reimbursement = Reimbursement(
            activity_id=ctx.activity_id,
            template=ctx.template,
            phone_number=phone_number,
            timestamp=ctx.now,
            amount=float(ctx.value("Amount") or 0),
            status=ctx.status,
            activity_name=ctx.after.get("activityName", ""),
            claim_type=ctx.value("Claim Type"),
            details={"text": ctx.value("Details", "")},
            photo_url=ctx.value("Photo URL", ""),
            create_timestamp=ctx.after.get("createTimestamp"),
        )
        if ctx.action == AddendumAction.CHANGE_STATUS.value and ctx.status == ActivityStatus.CONFIRMED.value:
            reimbursement.confirmed_by = ctx.actor
            reimbursement.approval_timestamp = ctx.now
        venue_query = ctx.addendum_updates.get("venueQuery") if ctx.addendum_updates else None
        if venue_query:
            reimbursement.identifier = venue_query.get("location")

        store = services.store
        path = collections.employee_status(ctx.office_id, month_year, phone_number)
        status_doc = await store.get(path)
        status_object = upsert_reimbursement(
            status_doc.to_dict().get("statusObject", {}),
            parts["date"],
            reimbursement.to_document(),
        )

        batch = store.batch()
        batch.set(path, {
            "phoneNumber": phone_number,
            "statusObject": status_object,
            "month": parts["month"],
            "year": parts["year"],
        }, merge=True)
        await batch.commit()
        logger.info("Claim reimbursement recorded", activity_id=ctx.activity_id, month_year=month_year)
