"""Subscription model - a user's right to create activities of one template in one office."""

from typing import Any, Optional

from pydantic import Field

from src.models.activity import ActivityStatus, CanEditRule, StoreModel


class ProfileSubscription(StoreModel):
    """Stored at Profiles/{phone}/Subscriptions/{subscriptionActivityId}."""
    office: str
    template: str
    status: ActivityStatus
    include: list[str] = Field(default_factory=list, description="Phones auto-shared on every create")
    schedule: list[str] = Field(default_factory=list)
    venue: list[str] = Field(default_factory=list)
    attachment: dict[str, Any] = Field(default_factory=dict)
    can_edit_rule: CanEditRule = CanEditRule.ALL
    status_on_create: ActivityStatus = ActivityStatus.CONFIRMED
    hidden: int = 0
    report: Optional[str] = None
    timestamp: int
