"""Realtime employee directory kept at ``Offices/{officeId}/Directory/{phone}``."""

from typing import Optional

from src.models.activity import ActivityStatus
from src.services import collections
from src.services.document_store import DocumentSnapshot, DocumentStore, Query
from src.utils.geo import coordinates

DIRECTORY_FIELDS = {
    "Name": "employeeName",
    "Employee Code": "employeeCode",
    "Designation": "designation",
    "Department": "department",
    "Region": "region",
    "Base Location": "baseLocation",
    "First Supervisor": "firstSupervisor",
    "Second Supervisor": "secondSupervisor",
    "Third Supervisor": "thirdSupervisor",
}


async def base_location_geopoint(store: DocumentStore, office_id: str, base_location: Optional[str]) -> Optional[tuple]:
    if not base_location:
        return None

    branch = (await store.query(
        Query(collections.ACTIVITIES)
        .where("officeId", "==", office_id)
        .where("template", "==", "branch")
        .where("attachment.Name.value", "==", base_location)
        .where("status", "==", ActivityStatus.CONFIRMED.value)
        .limit(1)
    )).first()
    if branch is None:
        return None
    venue = (branch.get("venue") or [{}])[0]
    return coordinates(venue.get("geopoint"))


def directory_entry(employee: DocumentSnapshot, now: int, geopoint: Optional[tuple] = None) -> dict:
    entry = {
        target: employee.get(f"attachment.{source}.value", "")
        for source, target in DIRECTORY_FIELDS.items()
    }
    entry.update({
        "phoneNumber": employee.get("attachment.Employee Contact.value"),
        "activityId": employee.id,
        "status": employee.get("status"),
        "timestamp": now,
    })
    if geopoint:
        entry["latitude"], entry["longitude"] = geopoint
    return entry


async def sync_directory_entry(store: DocumentStore, employee: DocumentSnapshot, now: int) -> None:
    """Upsert the employee's entry, or drop it once the employee is cancelled."""
    office_id = employee.get("officeId")
    phone_number = employee.get("attachment.Employee Contact.value")
    if not office_id or not phone_number:
        return

    path = collections.directory_entry(office_id, phone_number)
    batch = store.batch()
    if employee.get("status") == ActivityStatus.CANCELLED.value:
        batch.delete(path)
    else:
        geopoint = await base_location_geopoint(store, office_id, employee.get("attachment.Base Location.value"))
        batch.set(path, directory_entry(employee, now, geopoint))
    await batch.commit()


async def remove_directory_entry(store: DocumentStore, office_id: str, phone_number: str) -> None:
    batch = store.batch()
    batch.delete(collections.directory_entry(office_id, phone_number))
    await batch.commit()
