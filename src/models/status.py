"""Per-employee monthly status documents: reimbursements and attendance."""

from typing import Any, Optional

from pydantic import Field

from src.models.activity import StoreModel


class Reimbursement(StoreModel):
    """Line item in Statuses/{monthYear}/Employees/{phone}.statusObject[date].reimbursements."""
    activity_id: str
    template: str
    phone_number: str
    timestamp: int
    amount: float = 0
    status: str = "PENDING"
    name: str = ""
    activity_name: str = ""
    claim_type: Optional[str] = None
    details: dict[str, Any] = Field(default_factory=dict)
    photo_url: Optional[str] = Field(None, alias="photoURL")
    create_timestamp: Optional[int] = None
    confirmed_by: Optional[str] = None
    approval_timestamp: Optional[int] = None
    identifier: Optional[str] = None
    allowance_id: Optional[str] = None
    distance: Optional[float] = None

    def to_document(self) -> dict:
        return self.model_dump(by_alias=True, mode="json", exclude_none=True)
