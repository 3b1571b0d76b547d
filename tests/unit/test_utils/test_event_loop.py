"""Tests for the serverless handlers' event loop helper."""

import asyncio

import pytest

from src.utils.event_loop import get_event_loop


@pytest.fixture
def fresh_loop():
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    yield loop
    asyncio.set_event_loop(None)
    if not loop.is_closed():
        loop.close()


@pytest.mark.unit
def test_reuses_the_open_loop(fresh_loop):
    assert get_event_loop() is fresh_loop
    assert get_event_loop() is fresh_loop


@pytest.mark.unit
def test_replaces_a_closed_loop(fresh_loop):
    fresh_loop.close()

    loop = get_event_loop()

    assert loop is not fresh_loop
    assert not loop.is_closed()
    assert loop.run_until_complete(asyncio.sleep(0, result="done")) == "done"
    loop.close()
