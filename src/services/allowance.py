"""
Allowances earned by checking in.

Both allowances are line items in the employee's monthly status document
(``statusObject[date].reimbursements``):

- daily allowance: every confirmed ``daily allowance`` of the office whose
  ``Start Time``-``End Time`` window contains the local time of the check-in.
- km allowance: the first confirmed ``km allowance`` matching the trip
  (local or travel, branch visit, scheduled check-in) pays ``Rate`` per km
  travelled since the previous addendum, up to its ``Daily Limit``.
"""

from decimal import ROUND_HALF_UP, Decimal
from typing import Mapping, Optional

from src.models.activity import ActivityStatus
from src.models.addendum import Addendum, AddendumAction
from src.models.status import Reimbursement
from src.services import collections
from src.services.attendance import find_employee
from src.services.change_context import ChangeContext
from src.services.container import Services
from src.services.directory import base_location_geopoint
from src.services.document_store import DocumentSnapshot, Query
from src.services.handlers.claim_handler import upsert_reimbursement
from src.utils.dates import date_parts, month_year_key, parse_hh_mm, to_local
from src.utils.errors import GeocodingError
from src.utils.geo import coordinates, haversine_distance, make_geopoint
from src.utils.logging import get_structured_logger, mask_phone_number

logger = get_structured_logger(__name__)

CENTS = Decimal("0.01")


def within_window(start: str, end: str, local_time) -> bool:
    start_time, end_time = parse_hh_mm(start), parse_hh_mm(end)
    if start_time is None or end_time is None:
        return False
    return start_time <= local_time.time().replace(second=0, microsecond=0) <= end_time


def money(amount) -> Decimal:
    try:
        return Decimal(str(amount or 0))
    except ArithmeticError:
        return Decimal(0)


async def _status_document(services: Services, ctx: ChangeContext, phone_number: str):
    path = collections.employee_status(ctx.office_id, month_year_key(ctx.now, ctx.timezone), phone_number)
    snapshot = await services.store.get(path)
    return path, snapshot.to_dict().get("statusObject", {})


async def apply_daily_allowance(ctx: ChangeContext, services: Services, addendum: Mapping) -> list:
    """Returns the ids of the daily allowances granted for this check-in."""
    phone_number = addendum.get("user")
    if not phone_number:
        return []

    store = services.store
    allowances = await store.query(
        Query(collections.ACTIVITIES)
        .where("officeId", "==", ctx.office_id)
        .where("template", "==", "daily allowance")
        .where("status", "==", ActivityStatus.CONFIRMED.value)
    )
    local_now = to_local(ctx.now, ctx.timezone)
    matched = [
        allowance for allowance in allowances.docs
        if within_window(
            allowance.get("attachment.Start Time.value"),
            allowance.get("attachment.End Time.value"),
            local_now,
        )
    ]
    if not matched:
        return []

    path, status_object = await _status_document(services, ctx, phone_number)
    parts = date_parts(ctx.now, ctx.timezone)
    existing = status_object.get(str(parts["date"]), {}).get("reimbursements", [])
    new_items = 0
    for allowance in matched:
        item = Reimbursement(
            activity_id=ctx.activity_id,
            allowance_id=allowance.id,
            template=allowance.get("template"),
            phone_number=phone_number,
            timestamp=ctx.now,
            name=allowance.get("attachment.Name.value", ""),
            amount=float(money(allowance.get("attachment.Amount.value"))),
            status=allowance.get("status"),
        ).to_document()
        if not any(
            e.get("activityId") == ctx.activity_id and e.get("allowanceId") == allowance.id
            for e in existing
        ):
            new_items += 1
        upsert_reimbursement(status_object, parts["date"], item, keys=("activityId", "allowanceId"))

    batch = store.batch()
    batch.set(path, {
        "phoneNumber": phone_number,
        "statusObject": status_object,
        "month": parts["month"],
        "year": parts["year"],
    }, merge=True)
    if new_items:
        batch.set(collections.addendum(ctx.office_id, store.new_id()), Addendum(
            action=AddendumAction.CHECK_IN,
            activity_id=ctx.activity_id,
            activity_name=ctx.after.get("activityName", ""),
            template=ctx.template,
            user=phone_number,
            user_display_name=ctx.display_name(phone_number),
            user_device_timestamp=addendum.get("userDeviceTimestamp") or ctx.now,
            timestamp=ctx.now,
            location=addendum.get("location"),
            geopoint_accuracy=addendum.get("geopointAccuracy"),
            provider=addendum.get("provider"),
            is_support_request=bool(addendum.get("isSupportRequest", False)),
            is_auto_generated=True,
            activity_data=ctx.after.to_dict(),
            comment="",
            **parts,
        ).to_document())
    await batch.commit()

    logger.info(
        "Daily allowance applied",
        activity_id=ctx.activity_id,
        phone_number=mask_phone_number(phone_number),
        allowances=[allowance.id for allowance in matched],
        new_items=new_items,
    )
    return [allowance.id for allowance in matched]


async def trip_origin(ctx: ChangeContext, services: Services, phone_number: str, previous: DocumentSnapshot):
    """Base location branch of the employee, else the previous location."""
    origin = previous.get("location")
    employee = await find_employee(services.store, ctx.office_id, phone_number)
    base_location = employee.get("attachment.Base Location.value") if employee else None
    point = await base_location_geopoint(services.store, ctx.office_id, base_location)
    if point:
        return make_geopoint(*point)
    return origin


async def trip_distance(services: Services, origin, destination) -> float:
    """Road distance in km with a great circle fallback."""
    one, two = coordinates(origin), coordinates(destination)
    if one is None or two is None:
        return 0
    if services.geocoder is not None:
        try:
            meters = await services.geocoder.distance_meters(one, two)
        except GeocodingError as e:
            logger.warning("Distance lookup failed", error=str(e))
            meters = None
        if meters is not None:
            return meters / 1000
    return haversine_distance(origin, destination)


async def apply_km_allowance(
    ctx: ChangeContext,
    services: Services,
    addendum: Mapping,
    previous: Optional[DocumentSnapshot],
) -> Optional[str]:
    """Returns the km allowance id the trip was paid from."""
    if previous is None:
        return None
    phone_number = addendum.get("user")
    if not phone_number:
        return None

    location = addendum.get("location")
    same_day = previous.get("date") == addendum.get("date")
    if same_day:
        distance = float(addendum.get("distanceTravelled") or 0)
    else:
        origin = await trip_origin(ctx, services, phone_number, previous)
        distance = await trip_distance(services, origin, location)
    if distance <= 0:
        return None

    is_local = addendum.get("city") == previous.get("city")
    venue_query = addendum.get("venueQuery") or {}
    include_branch = str(venue_query.get("location", "")).upper().endswith("BRANCH")
    scheduled_only = AddendumAction.CHECK_IN.value in (addendum.get("action"), previous.get("action"))

    query = (
        Query(collections.ACTIVITIES)
        .where("officeId", "==", ctx.office_id)
        .where("template", "==", "km allowance")
        .where("status", "==", ActivityStatus.CONFIRMED.value)
        .where("attachment.Local.value" if is_local else "attachment.Travel.value", "==", True)
    )
    if include_branch:
        query = query.where("attachment.Include Branch.value", "==", True)
    if scheduled_only:
        query = query.where("attachment.Scheduled Only.value", "==", True)

    store = services.store
    allowances = await store.query(query)
    if allowances.empty:
        return None
    if allowances.size > 1:
        logger.warning(
            "Multiple km allowances match one trip",
            office_id=ctx.office_id,
            allowance_ids=[doc.id for doc in allowances.docs],
            is_local=is_local,
            include_branch=include_branch,
            scheduled_only=scheduled_only,
        )

    allowance = allowances.docs[0]
    rate = money(allowance.get("attachment.Rate.value"))
    amount = (rate * Decimal(str(distance))).quantize(CENTS, rounding=ROUND_HALF_UP)

    path, status_object = await _status_document(services, ctx, phone_number)
    parts = date_parts(ctx.now, ctx.timezone)
    today = status_object.get(str(parts["date"]), {}).get("reimbursements", [])
    claimed_today = sum(money(item.get("amount")) for item in today)
    daily_limit = allowance.get("attachment.Daily Limit.value")
    if daily_limit and claimed_today > money(daily_limit):
        logger.info("Km allowance daily limit reached", allowance_id=allowance.id, claimed=str(claimed_today))
        return None

    item = Reimbursement(
        activity_id=allowance.id,
        template=allowance.get("template"),
        phone_number=phone_number,
        timestamp=ctx.now,
        name=allowance.get("attachment.Name.value", ""),
        amount=float(amount),
        status=allowance.get("status"),
        distance=round(distance, 2),
        identifier=venue_query.get("location"),
    ).to_document()
    item["rate"] = float(rate)
    item["geopoint"] = location
    upsert_reimbursement(status_object, parts["date"], item)

    batch = store.batch()
    batch.set(path, {
        "phoneNumber": phone_number,
        "statusObject": status_object,
        "month": parts["month"],
        "year": parts["year"],
    }, merge=True)
    await batch.commit()

    logger.info(
        "Km allowance applied",
        activity_id=ctx.activity_id,
        allowance_id=allowance.id,
        distance_km=round(distance, 2),
        amount=str(amount),
    )
    return allowance.id
