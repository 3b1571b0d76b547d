"""Activity write commands endpoint: /api/activities/{action}."""

from http.server import BaseHTTPRequestHandler
from urllib.parse import parse_qs, urlparse
import json

from src.models.identity import Requester
from src.services.activity_commands import COMMANDS
from src.services.activity_create import create_activity
from src.services.container import get_services
from src.utils.errors import (
    ActivityHubError,
    MethodNotAllowedError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from src.utils.event_loop import get_event_loop
from src.utils.logging import correlation_context, get_structured_logger
from src.utils.logging_config import LoggingConfig

LoggingConfig.setup_logging()
logger = get_structured_logger(__name__)

ACTIONS = dict(COMMANDS, create=create_activity)

ALLOWED_METHODS = {
    "create": "POST",
    "comment": "POST",
    "update": "PATCH",
    "change-status": "PATCH",
    "share": "PATCH",
    "remove": "PATCH",
}


async def authenticate(services, authorization: str, as_support: bool) -> Requester:
    """Resolve the bearer token to the requesting user."""
    if not authorization or not authorization.lower().startswith("bearer "):
        raise PermissionDeniedError("Missing bearer token.")

    user = await services.identity.verify_access_token(authorization.split(" ", 1)[1].strip())
    if user is None or not user.uid:
        raise PermissionDeniedError("Invalid bearer token.")

    if as_support and not user.custom_claims.get("support"):
        raise PermissionDeniedError("You cannot make support requests.")

    return Requester(
        phone_number=user.phone_number,
        uid=user.uid,
        display_name=user.display_name,
        photo_url=user.photo_url,
        is_support_request=as_support,
        custom_claims=user.custom_claims,
    )


async def handle_command(method: str, path: str, headers, raw_body: str) -> tuple:
    """Returns ``(status_code, payload)``; payload is None for empty responses."""
    url = urlparse(path)
    action = url.path.rstrip("/").rsplit("/", 1)[-1]
    as_support = parse_qs(url.query).get("as", [""])[0] == "support"

    try:
        if action not in ACTIONS:
            raise NotFoundError(f"No resource found at the path: {url.path}")
        if ALLOWED_METHODS[action] != method:
            raise MethodNotAllowedError(f"{method} is not allowed for /{action}. Use {ALLOWED_METHODS[action]}.")

        try:
            body = json.loads(raw_body) if raw_body else {}
        except json.JSONDecodeError:
            raise ValidationError("The request body is not valid JSON.")

        services = get_services()
        requester = await authenticate(services, headers.get("Authorization", ""), as_support)
        result = await ACTIONS[action](services.store, requester, body)

    except ActivityHubError as e:
        logger.info("Command rejected", action=action, status_code=e.status_code, reason=e.message)
        return e.status_code, {"message": e.message}
    except Exception as e:
        logger.error("Command failed", exc_info=True, action=action, error=str(e))
        return 500, {"message": "INTERNAL SERVER ERROR"}

    if result.status_code == 204:
        return 204, None
    payload = {"message": result.message}
    if result.activity_id:
        payload["activityId"] = result.activity_id
    return result.status_code, payload


class handler(BaseHTTPRequestHandler):
    """Vercel serverless function handler for activity commands."""

    def _respond(self, status_code: int, payload) -> None:
        self.send_response(status_code)
        self.send_header('Content-Type', 'application/json')
        self.end_headers()
        if payload is not None:
            self.wfile.write(json.dumps(payload).encode('utf-8'))

    def _handle(self, method: str) -> None:
        content_length = int(self.headers.get('Content-Length', 0))
        raw_body = self.rfile.read(content_length).decode('utf-8') if content_length > 0 else ""

        with correlation_context(self.headers.get(LoggingConfig.LOG_CORRELATION_ID_HEADER)):
            status_code, payload = get_event_loop().run_until_complete(
                handle_command(method, self.path, self.headers, raw_body)
            )
        self._respond(status_code, payload)

    def do_POST(self):
        self._handle("POST")

    def do_PATCH(self):
        self._handle("PATCH")

    def do_GET(self):
        self._respond(405, {"message": "GET is not allowed. Use POST or PATCH."})

    def do_PUT(self):
        self._respond(405, {"message": "PUT is not allowed. Use POST or PATCH."})

    def do_DELETE(self):
        self._respond(405, {"message": "DELETE is not allowed. Use POST or PATCH."})
