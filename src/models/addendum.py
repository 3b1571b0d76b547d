"""Addendum model - the immutable audit record of one write."""

from enum import Enum
from typing import Any, Optional

from pydantic import Field

from src.models.activity import StoreModel


class AddendumAction(str, Enum):
    """Action that produced an addendum."""
    CREATE = "create"
    UPDATE = "update"
    CHANGE_STATUS = "changeStatus"
    SHARE = "share"
    REMOVE = "remove"
    COMMENT = "comment"
    CHECK_IN = "checkIn"
    UPDATE_PHONE_NUMBER = "updatePhoneNumber"
    INSTALL = "install"
    SIGNUP = "signup"
    BRANCH_VIEW = "branchView"
    PRODUCT_VIEW = "productView"
    VIDEO_PLAY = "videoPlay"


# Actions that only receive date parts during post-processing
SKIPPABLE_ACTIONS = {
    AddendumAction.INSTALL.value,
    AddendumAction.SIGNUP.value,
    AddendumAction.BRANCH_VIEW.value,
    AddendumAction.PRODUCT_VIEW.value,
    AddendumAction.VIDEO_PLAY.value,
    AddendumAction.UPDATE_PHONE_NUMBER.value,
}


class Addendum(StoreModel):
    """Stored at Offices/{officeId}/Addendum/{addendumId}."""
    action: AddendumAction
    activity_id: str
    activity_name: str = ""
    template: str
    user: str = Field(..., description="Phone number of the actor")
    user_display_name: str = ""
    user_device_timestamp: int
    timestamp: int
    location: Optional[dict] = None
    geopoint_accuracy: Optional[float] = None
    provider: Optional[str] = None
    is_support_request: bool = False
    is_admin_request: bool = False
    is_auto_generated: bool = False
    activity_data: dict[str, Any] = Field(default_factory=dict)
    activity_old: Optional[dict[str, Any]] = None
    share: list[str] = Field(default_factory=list)
    remove: Optional[str] = None
    status: Optional[str] = None
    comment: Optional[str] = None
    cancellation_message: Optional[str] = None
    distance_accurate: Optional[bool] = None
    updated_phone_number: Optional[str] = None
    date: Optional[int] = None
    month: Optional[int] = None
    year: Optional[int] = None

    def to_document(self) -> dict:
        return self.model_dump(by_alias=True, mode="json", exclude_none=True)
