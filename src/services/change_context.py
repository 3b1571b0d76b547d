"""
Immutable per-event context for the change trigger.

The context is built once from the (before, after) snapshots and the
collaborators; pipeline stages return an updated copy through
``dataclasses.replace`` instead of mutating shared state.
"""

import asyncio
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Mapping, Optional

from src.models.activity import ActivityStatus
from src.models.identity import UserRecord
from src.services import collections
from src.services.container import Services
from src.services.document_store import DocumentSnapshot, Query
from src.utils.dates import now_ms
from src.utils.geo import coordinates


@dataclass(frozen=True)
class AssigneeInfo:
    phone_number: str
    can_edit: bool = False
    add_to_include: bool = True
    uid: Optional[str] = None
    display_name: str = ""
    photo_url: str = ""
    custom_claims: Mapping = field(default_factory=lambda: MappingProxyType({}))

    def roster_entry(self) -> dict:
        return {
            "phoneNumber": self.phone_number,
            "displayName": self.display_name,
            "photoURL": self.photo_url,
        }


@dataclass(frozen=True)
class ChangeContext:
    before: DocumentSnapshot
    after: DocumentSnapshot
    assignees: tuple = ()
    admins: frozenset = frozenset()
    addendum: Optional[DocumentSnapshot] = None
    addendum_creator: Optional[UserRecord] = None
    customer_object: Optional[Mapping] = None
    now: int = 0
    addendum_updates: Mapping = field(default_factory=lambda: MappingProxyType({}))
    previous_addendum: Optional[DocumentSnapshot] = None

    @property
    def activity_id(self) -> str:
        return self.after.id

    @property
    def template(self) -> str:
        return self.after.get("template", "")

    @property
    def office(self) -> str:
        return self.after.get("office", "")

    @property
    def office_id(self) -> str:
        return self.after.get("officeId", "")

    @property
    def timezone(self) -> Optional[str]:
        return self.after.get("timezone")

    @property
    def status(self) -> str:
        return self.after.get("status", "")

    @property
    def action(self) -> Optional[str]:
        if self.addendum is None:
            return None
        return self.addendum.get("action")

    @property
    def has_been_created(self) -> bool:
        return not self.before.exists and self.after.exists

    @property
    def has_been_cancelled(self) -> bool:
        return (
            self.before.get("status") != ActivityStatus.CANCELLED.value
            and self.status == ActivityStatus.CANCELLED.value
        )

    @property
    def is_cancelled(self) -> bool:
        return self.status == ActivityStatus.CANCELLED.value

    @property
    def assignee_phone_numbers(self) -> list:
        return [assignee.phone_number for assignee in self.assignees]

    @property
    def admins_can_edit(self) -> list:
        """Assignees who are confirmed admins of the office."""
        return [phone for phone in self.assignee_phone_numbers if phone in self.admins]

    def assignee(self, phone_number: str) -> Optional[AssigneeInfo]:
        for assignee in self.assignees:
            if assignee.phone_number == phone_number:
                return assignee
        return None

    def value(self, field_name: str, default=None):
        """Attachment value of the activity after the write."""
        return self.after.get(f"attachment.{field_name}.value", default)

    def old_value(self, field_name: str, default=None):
        return self.before.get(f"attachment.{field_name}.value", default)

    @property
    def actor(self) -> Optional[str]:
        if self.addendum is None:
            return None
        return self.addendum.get("user")

    def display_name(self, phone_number: str) -> str:
        assignee = self.assignee(phone_number)
        if assignee and assignee.display_name:
            return assignee.display_name
        if self.addendum_creator and self.addendum_creator.phone_number == phone_number:
            return self.addendum_creator.display_name or phone_number
        return phone_number


async def _customer_object(services: Services, after: DocumentSnapshot) -> Optional[dict]:
    location = after.get("attachment.Location.value")
    if not location:
        return None

    customer = (await services.store.query(
        Query(collections.ACTIVITIES)
        .where("officeId", "==", after.get("officeId"))
        .where("template", "==", "customer")
        .where("attachment.Name.value", "==", location)
        .where("status", "==", ActivityStatus.CONFIRMED.value)
        .limit(1)
    )).first()
    if customer is None:
        return None

    result = {
        field_name: item.get("value")
        for field_name, item in customer.get("attachment", {}).items()
        if isinstance(item, dict)
    }
    venue = (customer.get("venue") or [{}])[0]
    point = coordinates(venue.get("geopoint"))
    if point:
        result["latitude"], result["longitude"] = point
    result["address"] = venue.get("address", "")
    result["location"] = venue.get("location", "")
    return result


async def build_context(services: Services, before: DocumentSnapshot, after: DocumentSnapshot) -> ChangeContext:
    """Load assignees, office admins, the addendum and identities for one write."""
    store = services.store
    activity_id = after.id
    office_id = activity_id if after.get("template") == "office" else after.get("officeId")
    addendum_ref = after.get("addendumDocRef")

    assignee_docs, admin_docs, addendum = await asyncio.gather(
        store.query(Query(collections.assignees(activity_id))),
        store.query(
            Query(collections.ACTIVITIES)
            .where("officeId", "==", office_id)
            .where("template", "==", "admin")
            .where("status", "==", ActivityStatus.CONFIRMED.value)
        ),
        store.get(addendum_ref) if addendum_ref else _none(),
    )
    if addendum is not None and not addendum.exists:
        addendum = None

    phone_numbers = [doc.id for doc in assignee_docs.docs]
    creator_phone = addendum.get("user") if addendum else None
    lookups = list(phone_numbers)
    if creator_phone and creator_phone not in phone_numbers:
        lookups.append(creator_phone)

    users = await asyncio.gather(*(services.identity.get_user_by_phone_number(p) for p in lookups))
    users_by_phone = dict(zip(lookups, users))

    assignees = []
    for doc in assignee_docs.docs:
        user = users_by_phone[doc.id]
        assignees.append(AssigneeInfo(
            phone_number=doc.id,
            can_edit=bool(doc.get("canEdit", False)),
            add_to_include=doc.get("addToInclude", True) is not False,
            uid=user.uid,
            display_name=user.display_name,
            photo_url=user.photo_url,
            custom_claims=MappingProxyType(dict(user.custom_claims)),
        ))

    customer_object = None
    if not before.exists:
        customer_object = await _customer_object(services, after)

    return ChangeContext(
        before=before,
        after=after,
        assignees=tuple(assignees),
        admins=frozenset(doc.get("attachment.Admin.value") for doc in admin_docs.docs),
        addendum=addendum,
        addendum_creator=users_by_phone.get(creator_phone) if creator_phone not in phone_numbers else None,
        customer_object=MappingProxyType(customer_object) if customer_object else None,
        now=now_ms(),
    )


async def _none():
    return None
