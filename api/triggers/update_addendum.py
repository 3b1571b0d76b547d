"""Database webhook for comments written to Updates/{uid}/Addendum/{id}; sends the push."""

from http.server import BaseHTTPRequestHandler
import json

from src.services import collections
from src.services.container import get_services
from src.services.notification_dispatcher import dispatch_notification
from src.services.webhooks import path_segments, row_path, verify_webhook_secret
from src.utils.event_loop import get_event_loop
from src.utils.logging import correlation_context, get_structured_logger
from src.utils.logging_config import LoggingConfig

LoggingConfig.setup_logging()
logger = get_structured_logger(__name__)


def parse_update_path(path):
    """``(uid, addendum_id)`` for ``Updates/{uid}/Addendum/{id}``, else None."""
    segments = path_segments(path)
    if len(segments) != 4 or segments[0] != collections.UPDATES or segments[2] != "Addendum":
        return None
    return segments[1], segments[3]


def process_webhook(payload: dict) -> dict:
    parsed = parse_update_path(row_path(payload))
    if parsed is None or payload.get("type") != "INSERT":
        return {"ok": True, "sent": False}

    uid, addendum_id = parsed
    record = payload.get("record") or {}
    loop = get_event_loop()

    with correlation_context(addendum_id):
        sent = loop.run_until_complete(
            dispatch_notification(get_services(), uid, addendum_id, record.get("data") or {})
        )
    return {"ok": True, "sent": sent}


class handler(BaseHTTPRequestHandler):
    """Vercel serverless function handler for update addendum webhooks."""

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

        self._respond(200, process_webhook(payload))
