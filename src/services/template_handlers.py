"""Template handler interface and the template name lookup table."""

from typing import Optional

from src.services.change_context import ChangeContext
from src.services.container import Services


class TemplateHandler:
    """
    Reacts to writes of activities of one template family.

    Handlers are re-run for duplicate deliveries of the same write, so each
    one documents the marker it checks before writing in ``reentrancy_guard``.
    """

    reentrancy_guard = ""

    async def on_activity_change(self, ctx: ChangeContext, services: Services) -> None:
        raise NotImplementedError


class NoopHandler(TemplateHandler):
    reentrancy_guard = "Writes nothing."

    async def on_activity_change(self, ctx: ChangeContext, services: Services) -> None:
        return None


class HandlerRegistry:
    """Exact template name lookup; ``*-type`` templates share one handler."""

    def __init__(self, handlers: Optional[dict] = None, type_handler: Optional[TemplateHandler] = None):
        self._handlers = dict(handlers or {})
        self._type_handler = type_handler
        self._default = NoopHandler()

    def register(self, template: str, handler: TemplateHandler) -> None:
        self._handlers[template] = handler

    def get(self, template: str) -> TemplateHandler:
        if template in self._handlers:
            return self._handlers[template]
        if self._type_handler is not None and template.endswith("-type"):
            return self._type_handler
        return self._default

    def __contains__(self, template: str) -> bool:
        return template in self._handlers
