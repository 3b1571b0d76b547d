"""Push notification for each comment fanned out to a user."""

from typing import Mapping

from src.services import collections
from src.services.container import Services
from src.utils.config import Settings
from src.utils.errors import NotificationError
from src.utils.logging import get_structured_logger, sanitize_comment

logger = get_structured_logger(__name__)


def build_payload(comment: str) -> dict:
    return {
        "data": {"read": "1"},
        "notification": {"title": Settings.APP_NAME, "body": comment or ""},
    }


async def dispatch_notification(services: Services, uid: str, addendum_id: str, update: Mapping) -> bool:
    """
    Send the comment in ``Updates/{uid}/Addendum/{addendum_id}`` to the
    user's registered device. Delivery failures are logged, never retried.
    """
    if services.notifier is None:
        logger.debug("Push notifier not configured", addendum_id=addendum_id)
        return False

    user_updates = await services.store.get(collections.updates(uid))
    token = user_updates.get("registrationToken")
    if not token:
        logger.debug("No registration token", uid=uid, addendum_id=addendum_id)
        return False

    try:
        await services.notifier.send(token, build_payload(update.get("comment", "")))
    except NotificationError as e:
        logger.warning(
            "Push notification failed",
            uid=uid,
            addendum_id=addendum_id,
            error=str(e),
        )
        return False

    logger.info(
        "Push notification sent",
        uid=uid,
        addendum_id=addendum_id,
        comment=sanitize_comment(update.get("comment", "")),
    )
    return True
