"""Office admin claims follow the state of ``admin`` activities."""

from src.services.change_context import ChangeContext
from src.services.container import Services
from src.services.template_handlers import TemplateHandler
from src.utils.logging import get_structured_logger, mask_phone_number

logger = get_structured_logger(__name__)


def admin_offices(custom_claims, office: str, cancelled: bool) -> list:
    offices = [o for o in (custom_claims or {}).get("admin", []) if o != office]
    if not cancelled:
        offices.append(office)
    return offices


class AdminHandler(TemplateHandler):
    reentrancy_guard = (
        "Compares the computed admin office list with the current claims and "
        "skips set_custom_claims when they are equal."
    )

    async def on_activity_change(self, ctx: ChangeContext, services: Services) -> None:
        phone_number = ctx.value("Admin")
        if not phone_number:
            return

        user = await services.identity.get_user_by_phone_number(phone_number)
        if not user.is_registered:
            return

        claims = dict(user.custom_claims)
        current = list(claims.get("admin", []))
        offices = admin_offices(claims, ctx.office, ctx.is_cancelled)
        if sorted(current) == sorted(offices):
            return

        claims["admin"] = offices
        await services.identity.set_custom_claims(user.uid, claims)
        logger.info(
            "Admin claims updated",
            phone_number=mask_phone_number(phone_number),
            office_id=ctx.office_id,
            revoked=ctx.is_cancelled,
        )
