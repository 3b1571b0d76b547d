"""``*-type`` catalogs (leave-type, claim-type, ...) re-trigger their subscriptions."""

from src.models.activity import ActivityStatus
from src.models.addendum import AddendumAction
from src.services import collections
from src.services.change_context import ChangeContext
from src.services.container import Services
from src.services.document_store import Query, ShardedBatchWriter
from src.services.template_handlers import TemplateHandler
from src.utils.logging import get_structured_logger

logger = get_structured_logger(__name__)

IGNORED_ACTIONS = frozenset({AddendumAction.COMMENT.value, AddendumAction.SHARE.value})


def parent_template(template: str) -> str:
    return template[: -len("-type")] if template.endswith("-type") else ""


class TypeActivityHandler(TemplateHandler):
    reentrancy_guard = (
        "Writes addendumDocRef None on subscriptions; the subscription "
        "handler copies the catalog with merge sets, so repeats converge."
    )

    async def on_activity_change(self, ctx: ChangeContext, services: Services) -> int:
        if ctx.action in IGNORED_ACTIONS:
            return 0

        parent = parent_template(ctx.template)
        if not parent:
            return 0

        store = services.store
        subscriptions = await store.query(
            Query(collections.ACTIVITIES)
            .where("officeId", "==", ctx.office_id)
            .where("template", "==", "subscription")
            .where("attachment.Template.value", "==", parent)
            .where("status", "==", ActivityStatus.CONFIRMED.value)
        )

        writer = ShardedBatchWriter(store)
        for subscription in subscriptions.docs:
            writer.set(subscription.path, {"addendumDocRef": None, "timestamp": ctx.now}, merge=True)
        batches = await writer.commit()

        logger.info(
            "Subscriptions re-triggered by type activity",
            activity_id=ctx.activity_id,
            parent_template=parent,
            subscriptions=subscriptions.size,
            batches=batches,
        )
        return subscriptions.size
