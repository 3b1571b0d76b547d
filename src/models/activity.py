"""Activity model - a templated, office-scoped record shared between assignees."""

from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class ActivityStatus(str, Enum):
    """Lifecycle states of an activity."""
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    CANCELLED = "CANCELLED"


class CanEditRule(str, Enum):
    """Who may edit an activity created from a template."""
    ALL = "ALL"
    NONE = "NONE"
    ADMIN = "ADMIN"
    CREATOR = "CREATOR"
    EMPLOYEE = "EMPLOYEE"


ACTIVITY_STATUSES = {status.value for status in ActivityStatus}
CAN_EDIT_RULES = {rule.value for rule in CanEditRule}


class StoreModel(BaseModel):
    """Base for models persisted as camelCase documents."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_document(self) -> dict:
        return self.model_dump(by_alias=True, mode="json")


class Geopoint(StoreModel):
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)


class Schedule(StoreModel):
    name: str
    start_time: Any = Field(default="", description="Epoch ms or '' when unset")
    end_time: Any = Field(default="", description="Epoch ms or '' when unset")


class Venue(StoreModel):
    venue_descriptor: str
    location: str = ""
    address: str = ""
    geopoint: dict = Field(default_factory=dict, description="{latitude, longitude} or {} when unset")


class Creator(StoreModel):
    phone_number: str
    display_name: str = ""
    photo_url: str = Field(default="", alias="photoURL")


class Assignee(StoreModel):
    """Per-assignee permission record under Activities/{id}/Assignees/{phone}."""
    can_edit: bool = False
    add_to_include: bool = True


class Activity(StoreModel):
    """Root activity document stored at Activities/{activityId}."""
    template: str = Field(..., description="Template name, e.g. 'leave', 'employee'")
    office: str
    office_id: str
    status: ActivityStatus = ActivityStatus.CONFIRMED
    activity_name: str = ""
    attachment: dict[str, Any] = Field(default_factory=dict)
    schedule: list[dict] = Field(default_factory=list)
    venue: list[dict] = Field(default_factory=list)
    can_edit_rule: CanEditRule = CanEditRule.ALL
    hidden: int = 0
    timezone: str
    timestamp: int = Field(..., description="Epoch ms of the latest write")
    create_timestamp: int
    creator: Creator
    addendum_doc_ref: Optional[str] = Field(None, description="Path of the addendum that caused the latest write")
    adjusted_geopoints: Optional[str] = None
    cancellation_message: Optional[str] = None
    relevant_time: Optional[int] = None

    def to_document(self) -> dict:
        doc = self.model_dump(by_alias=True, mode="json")
        for optional in ("adjustedGeopoints", "cancellationMessage", "relevantTime"):
            if doc.get(optional) is None:
                doc.pop(optional, None)
        return doc
