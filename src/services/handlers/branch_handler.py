"""
Branch, region and department activities.

Employees reference these by name in their attachment, so a rename or a
cancellation is written through to every employee of the office.
"""

from src.models.activity import ActivityStatus
from src.services import collections
from src.services.change_context import ChangeContext
from src.services.container import Services
from src.services.directory import sync_directory_entry
from src.services.document_store import Query, ShardedBatchWriter
from src.services.template_handlers import TemplateHandler
from src.utils.logging import get_structured_logger

logger = get_structured_logger(__name__)

EMPLOYEE_FIELDS = {
    "branch": "Base Location",
    "region": "Region",
    "department": "Department",
}


class EmployeeFieldCascadeHandler(TemplateHandler):
    reentrancy_guard = (
        "Only employees whose field still holds the old name are rewritten; "
        "a second pass finds none."
    )

    def __init__(self, employee_field: str):
        self.employee_field = employee_field

    async def on_activity_change(self, ctx: ChangeContext, services: Services) -> None:
        await self.cascade_name(ctx, services)

    async def cascade_name(self, ctx: ChangeContext, services: Services) -> int:
        if not ctx.before.exists:
            return 0

        old_name = ctx.old_value("Name")
        new_name = "" if ctx.is_cancelled else ctx.value("Name")
        if not old_name or old_name == new_name:
            return 0

        store = services.store
        employees = await store.query(
            Query(collections.ACTIVITIES)
            .where("officeId", "==", ctx.office_id)
            .where("template", "==", "employee")
            .where(f"attachment.{self.employee_field}.value", "==", old_name)
        )

        writer = ShardedBatchWriter(store)
        for employee in employees.docs:
            writer.set(employee.path, {
                "attachment": {self.employee_field: {"value": new_name}},
                "addendumDocRef": None,
                "timestamp": ctx.now,
            }, merge=True)
        batches = await writer.commit()

        logger.info(
            "Employee field renamed",
            office_id=ctx.office_id,
            employee_field=self.employee_field,
            employees=employees.size,
            batches=batches,
        )
        return employees.size


class BranchHandler(EmployeeFieldCascadeHandler):
    reentrancy_guard = (
        "Directory entries are overwrites; the rename cascade only touches "
        "employees still holding the old branch name."
    )

    def __init__(self):
        super().__init__(EMPLOYEE_FIELDS["branch"])

    async def on_activity_change(self, ctx: ChangeContext, services: Services) -> None:
        if await self.cascade_name(ctx, services):
            return

        store = services.store
        employees = await store.query(
            Query(collections.ACTIVITIES)
            .where("officeId", "==", ctx.office_id)
            .where("template", "==", "employee")
            .where("status", "==", ActivityStatus.CONFIRMED.value)
            .where("attachment.Base Location.value", "==", ctx.value("Name"))
        )
        for employee in employees.docs:
            await sync_directory_entry(store, employee, ctx.now)
