"""Check-ins near a scheduled duty are recorded on that duty."""

from src.models.activity import ActivityStatus
from src.models.addendum import AddendumAction
from src.services import collections
from src.services.activity_create import relevant_time
from src.services.auto_activities import add_auto_comment
from src.services.change_context import ChangeContext
from src.services.container import Services
from src.services.document_store import Query
from src.services.template_handlers import TemplateHandler
from src.utils.dates import MS_IN_DAY
from src.utils.geo import coordinates, haversine_distance
from src.utils.logging import get_structured_logger

logger = get_structured_logger(__name__)

DUTY_RADIUS_KM = 1


def duty_geopoint(duty, office_copy):
    """Customer location of the duty, else its first venue."""
    customer = office_copy.get("customerObject") if office_copy.exists else None
    if customer and customer.get("latitude") is not None:
        return {"latitude": customer["latitude"], "longitude": customer["longitude"]}
    venue = (duty.get("venue") or [{}])[0]
    return venue.get("geopoint")


class CheckInHandler(TemplateHandler):
    reentrancy_guard = (
        "Runs for create addenda only, and skips duties whose "
        "checkIns.{phone} map already holds this check-in activity id."
    )

    async def on_activity_change(self, ctx: ChangeContext, services: Services) -> list:
        if ctx.action != AddendumAction.CREATE.value or ctx.is_cancelled:
            return []

        location = ctx.addendum.get("location")
        if not coordinates(location):
            return []

        store = services.store
        phone_number = ctx.actor
        duties = await store.query(
            Query(collections.ACTIVITIES)
            .where("officeId", "==", ctx.office_id)
            .where("template", "==", "duty")
            .where("relevantTime", ">=", ctx.now - MS_IN_DAY)
            .where("relevantTime", "<=", ctx.now + MS_IN_DAY)
        )
        candidates = [
            duty for duty in duties.docs
            if duty.get("status") != ActivityStatus.CANCELLED.value
            and ctx.activity_id not in (duty.get(f"checkIns.{phone_number}") or {})
        ]
        if not candidates:
            return []

        assignee_docs = await store.get_all(collections.assignee(d.id, phone_number) for d in candidates)
        office_copies = await store.get_all(collections.office_activity(ctx.office_id, d.id) for d in candidates)

        matched = []
        batch = store.batch()
        for duty, assignee, office_copy in zip(candidates, assignee_docs, office_copies):
            if not assignee.exists:
                continue
            target = duty_geopoint(duty, office_copy)
            if not coordinates(target) or haversine_distance(target, location) > DUTY_RADIUS_KM:
                continue

            comment = (
                f"{ctx.display_name(phone_number)} checked in from Duty Location: "
                f"{duty.get('attachment.Location.value', '')}"
            )
            add_auto_comment(
                batch, store, ctx, duty.id, duty.to_dict(), comment,
                user=phone_number, action=AddendumAction.CHECK_IN,
            )
            batch.set(duty.path, {
                "checkIns": {phone_number: {ctx.activity_id: ctx.now}},
                "relevantTime": relevant_time(duty.get("schedule") or [], ctx.now),
            }, merge=True)
            matched.append(duty.id)

        await batch.commit()
        if matched:
            logger.info("Check-in matched duties", activity_id=ctx.activity_id, duties=matched)
        return matched
