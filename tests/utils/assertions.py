"""Custom assertion helpers."""

from typing import Any, Optional

import pytest

from src.utils.errors import ActivityHubError


async def assert_rejected(coro, status_code: int, message: Optional[str] = None) -> ActivityHubError:
    """Await ``coro`` and assert it fails with ``status_code`` (and ``message`` when given)."""
    with pytest.raises(ActivityHubError) as exc_info:
        await coro
    assert exc_info.value.status_code == status_code, exc_info.value.message
    if message is not None:
        assert exc_info.value.message == message
    return exc_info.value


def assert_valid_addendum(addendum: Any, action: str, activity_id: str) -> None:
    """Assert that a stored addendum document is well formed."""
    assert addendum is not None
    assert addendum["action"] == action
    assert addendum["activityId"] == activity_id
    assert isinstance(addendum["user"], str)
    assert isinstance(addendum["timestamp"], int)
    assert "activityData" in addendum


def assert_no_writes(store, commits_before: int) -> None:
    assert len(store.commits) == commits_before, store.commits[commits_before:]
