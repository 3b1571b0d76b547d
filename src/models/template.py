"""Template model - the schema every activity of a kind must follow."""

from typing import Any, Optional

from pydantic import Field

from src.models.activity import ActivityStatus, CanEditRule, StoreModel


class AttachmentField(StoreModel):
    """One attachment field definition: declared type and default value."""
    type: str = Field(..., description="string, number, phoneNumber, email, weekday, HH:MM, base64 or a template name")
    value: Any = ""


class Template(StoreModel):
    """Activity template stored in ActivityTemplates."""
    name: str
    attachment: dict[str, AttachmentField] = Field(default_factory=dict)
    schedule: list[str] = Field(default_factory=list, description="Schedule names")
    venue: list[str] = Field(default_factory=list, description="Venue descriptors")
    can_edit_rule: CanEditRule = CanEditRule.ALL
    status_on_create: ActivityStatus = ActivityStatus.CONFIRMED
    hidden: int = 0
    comment: Optional[str] = None
    report: Optional[str] = None

    def attachment_document(self) -> dict:
        """Template attachment as stored on activities: {field: {type, value}}."""
        return {
            field: {"type": definition.type, "value": definition.value}
            for field, definition in self.attachment.items()
        }
