"""Report recipients and the payroll subscription grant."""

from src.models.addendum import AddendumAction
from src.services import collections
from src.services.auto_activities import create_auto_subscription
from src.services.change_context import ChangeContext
from src.services.container import Services
from src.services.document_store import Query
from src.services.template_handlers import TemplateHandler
from src.utils.logging import get_structured_logger

logger = get_structured_logger(__name__)

PAYROLL = "payroll"


class RecipientHandler(TemplateHandler):
    reentrancy_guard = (
        "Recipients/{id} is a merge set (or a delete once cancelled). "
        "Subscription grants check for a confirmed subscription first."
    )

    async def on_activity_change(self, ctx: ChangeContext, services: Services) -> None:
        if ctx.action == AddendumAction.COMMENT.value:
            return

        store = services.store
        path = collections.recipient(ctx.activity_id)
        batch = store.batch()
        if ctx.is_cancelled:
            batch.delete(path)
        else:
            batch.set(path, {
                "include": ctx.assignee_phone_numbers,
                "cc": ctx.value("cc"),
                "office": ctx.office,
                "report": ctx.value("Name"),
                "officeId": ctx.office_id,
                "status": ctx.status,
            }, merge=True)
        await batch.commit()

        if ctx.addendum is None or ctx.is_cancelled or ctx.value("Name") != PAYROLL:
            return

        directory = await store.query(Query(collections.directory(ctx.office_id)))
        for entry in directory.docs:
            await create_auto_subscription(services, ctx, "attendance regularization", entry.id)
        logger.info(
            "Payroll recipient subscriptions checked",
            office_id=ctx.office_id,
            employees=directory.size,
        )
