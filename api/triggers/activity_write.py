"""Database webhook for writes to Activities/{id}; runs the change trigger."""

from http.server import BaseHTTPRequestHandler
import json

from src.services import collections
from src.services.change_trigger import ChangeTriggerEngine
from src.services.container import get_services
from src.services.webhooks import path_segments, row_path, snapshots, verify_webhook_secret
from src.utils.event_loop import get_event_loop
from src.utils.logging import correlation_context, get_structured_logger
from src.utils.logging_config import LoggingConfig

LoggingConfig.setup_logging()
logger = get_structured_logger(__name__)

_engine = None


def get_engine() -> ChangeTriggerEngine:
    global _engine
    if _engine is None:
        _engine = ChangeTriggerEngine(get_services())
    return _engine


def is_activity_path(path) -> bool:
    segments = path_segments(path)
    return len(segments) == 2 and segments[0] == collections.ACTIVITIES


def process_webhook(payload: dict) -> dict:
    """Run the engine for one webhook payload; returns the response body."""
    path = row_path(payload)
    if not is_activity_path(path):
        return {"ok": True, "ignored": path}

    before, after = snapshots(payload)
    loop = get_event_loop()

    with correlation_context(after.id):
        ctx = loop.run_until_complete(get_engine().handle_change(before, after))
    return {"ok": True, "activityId": after.id, "processed": ctx is not None}


class handler(BaseHTTPRequestHandler):
    """Vercel serverless function handler for activity write webhooks."""

    def _respond(self, status_code: int, body: dict) -> None:
        self.send_response(status_code)
        self.send_header('Content-Type', 'application/json')
        self.end_headers()
        self.wfile.write(json.dumps(body).encode('utf-8'))

    def do_POST(self):
        if not verify_webhook_secret(self.headers.get("X-Webhook-Secret")):
            logger.warning("Webhook secret mismatch")
            self._respond(401, {"message": "invalid webhook secret"})
            return

        content_length = int(self.headers.get('Content-Length', 0))
        raw_body = self.rfile.read(content_length).decode('utf-8') if content_length > 0 else ""
        try:
            payload = json.loads(raw_body) if raw_body else {}
        except json.JSONDecodeError:
            self._respond(400, {"message": "The request body is not valid JSON."})
            return

        # Engine failures are logged inside the engine; the write is already committed
        self._respond(200, process_webhook(payload))
