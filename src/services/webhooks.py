"""Database webhook payloads for rows of the documents table."""

import hmac
from typing import Optional

from src.services.document_store import DocumentSnapshot
from src.services.supabase_client import snapshot_from_row
from src.utils.config import Settings
from src.utils.logging import get_structured_logger

logger = get_structured_logger(__name__)


def verify_webhook_secret(received: Optional[str]) -> bool:
    """Constant time check of the shared secret; open when none is configured."""
    expected = Settings.WEBHOOK_SECRET
    if not expected:
        return not Settings.is_production()
    if not received:
        return False
    return hmac.compare_digest(expected.encode("utf-8"), received.encode("utf-8"))


def row_path(payload: dict) -> Optional[str]:
    row = payload.get("record") or payload.get("old_record") or {}
    return row.get("path")


def snapshots(payload: dict) -> tuple:
    """``(before, after)`` snapshots; a missing side is a non-existent document."""
    path = row_path(payload)
    old_record = payload.get("old_record")
    record = payload.get("record")
    if payload.get("type") == "DELETE":
        record = None

    before = snapshot_from_row(old_record) if old_record else DocumentSnapshot(path=path)
    after = snapshot_from_row(record) if record else DocumentSnapshot(path=path)
    return before, after


def path_segments(path: Optional[str]) -> list:
    return [segment for segment in (path or "").split("/") if segment]
