"""Daily attendance documents maintained from check-in creation."""

from typing import Mapping, Optional

from src.models.activity import ActivityStatus
from src.models.addendum import AddendumAction
from src.services import collections
from src.services.change_context import ChangeContext
from src.services.container import Services
from src.services.document_store import ArrayUnion, DocumentStore, Query
from src.utils.dates import date_parts, hh_mm, month_year_key
from src.utils.logging import get_structured_logger, mask_phone_number

logger = get_structured_logger(__name__)


async def find_employee(store: DocumentStore, office_id: str, phone_number: str):
    return (await store.query(
        Query(collections.ACTIVITIES)
        .where("officeId", "==", office_id)
        .where("template", "==", "employee")
        .where("status", "==", ActivityStatus.CONFIRMED.value)
        .where("attachment.Employee Contact.value", "==", phone_number)
        .limit(1)
    )).first()


async def add_check_in_timestamps(ctx: ChangeContext, services: Services, addendum: Mapping) -> Optional[str]:
    """
    Record a newly created check-in on the creator's attendance day.

    Each check-in activity is counted once; employees with location
    validation enabled only get counted for distance accurate check-ins.
    Returns the attendance document path when something was written.
    """
    if addendum.get("action") != AddendumAction.CREATE.value:
        return None

    creator = ctx.after.get("creator") or {}
    phone_number = creator.get("phoneNumber") if isinstance(creator, dict) else creator
    if not phone_number:
        return None

    store = services.store
    created_at = ctx.after.get("createTimestamp") or ctx.now
    timestamp = addendum.get("timestamp") or ctx.now
    month_year = month_year_key(created_at, ctx.timezone)
    parts = date_parts(created_at, ctx.timezone)
    path = collections.attendance_day(ctx.office_id, month_year, phone_number, parts["date"])

    attendance = await store.get(path)
    if ctx.activity_id in (attendance.get("countedCheckIns") or []):
        return None

    employee = await find_employee(store, ctx.office_id, phone_number)
    if (
        employee is not None
        and employee.get("attachment.Location Validation Check.value") is True
        and not addendum.get("distanceAccurate")
    ):
        logger.info(
            "Inaccurate check-in not counted",
            activity_id=ctx.activity_id,
            phone_number=mask_phone_number(phone_number),
        )
        return None

    update = {
        "date": parts["date"],
        "month": parts["month"],
        "year": parts["year"],
        "phoneNumber": phone_number,
        "lastCheckInTimestamp": timestamp,
        "lastCheckIn": hh_mm(timestamp, ctx.timezone),
        "numberOfCheckIns": (attendance.get("numberOfCheckIns") or 0) + 1,
        "countedCheckIns": ArrayUnion([ctx.activity_id]),
    }
    if not attendance.get("firstCheckInTimestamp"):
        update["firstCheckInTimestamp"] = timestamp
        update["firstCheckIn"] = hh_mm(timestamp, ctx.timezone)

    batch = store.batch()
    batch.set(path, update, merge=True)
    await batch.commit()

    logger.info(
        "Check-in counted",
        activity_id=ctx.activity_id,
        month_year=month_year,
        check_ins=update["numberOfCheckIns"],
    )
    return path
