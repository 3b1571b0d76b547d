"""Event loop shared by the synchronous serverless handlers."""

import asyncio


def get_event_loop() -> asyncio.AbstractEventLoop:
    """Current thread's loop, replaced with a fresh one when missing or closed."""
    try:
        loop = asyncio.get_event_loop()
    except RuntimeError:
        loop = None
    if loop is None or loop.is_closed():
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
    return loop
