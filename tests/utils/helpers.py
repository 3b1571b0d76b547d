"""Test helper functions."""

import json
from io import BytesIO
from typing import Dict, Iterable, Optional
from unittest.mock import Mock

from src.models.identity import Requester
from src.services import collections
from tests.utils.factories import OFFICE_TIMEZONE, create_activity_data, create_template_data


def make_requester(phone_number: str, display_name: str = "", is_support_request: bool = False) -> Requester:
    return Requester(
        phone_number=phone_number,
        uid=f"uid-{phone_number.lstrip('+')}",
        display_name=display_name,
        is_support_request=is_support_request,
    )


def seed_template(store, name: str, **kwargs) -> dict:
    data = create_template_data(name, **kwargs)
    store.seed(collections.template(name.replace(" ", "-")), data)
    return data


def seed_office(store, name: str, office_id: str = "OFFICE1", contacts: Iterable[str] = ()) -> str:
    """Root office activity plus its Offices copy."""
    contacts = list(contacts)
    attachment = {
        "Name": {"type": "string", "value": name},
        "Timezone": {"type": "string", "value": OFFICE_TIMEZONE},
        "First Contact": {"type": "phoneNumber", "value": contacts[0] if contacts else ""},
        "Second Contact": {"type": "phoneNumber", "value": contacts[1] if len(contacts) > 1 else ""},
    }
    data = create_activity_data(
        "office", name, office_id, contacts[0] if contacts else "+919999999999",
        attachment=attachment, activity_name=f"OFFICE: {name}",
    )
    store.seed(collections.activity(office_id), data)
    store.seed(collections.office(office_id), data)
    return office_id


def seed_activity(store, activity_id: str, data: dict, assignees: Optional[Dict[str, bool]] = None) -> None:
    """Root activity, its assignees and the assignees' profile links."""
    store.seed(collections.activity(activity_id), data)
    for phone_number, can_edit in (assignees or {}).items():
        store.seed(collections.assignee(activity_id, phone_number), {"canEdit": can_edit, "addToInclude": True})
        store.seed(
            collections.profile_activity(phone_number, activity_id),
            dict(data, canEdit=can_edit),
        )


def seed_subscription(store, phone_number: str, office: str, template: str, status: str = "CONFIRMED",
                      include: Iterable[str] = (), **defaults) -> None:
    data = {
        "office": office,
        "template": template,
        "status": status,
        "include": list(include),
        "schedule": [],
        "venue": [],
        "attachment": {},
        "canEditRule": "ALL",
        "statusOnCreate": "CONFIRMED",
        "hidden": 0,
    }
    data.update(defaults)
    store.seed(collections.profile_subscription(phone_number, f"sub-{template.replace(' ', '-')}"), data)


def seed_addendum(store, office_id: str, addendum_id: str, data: dict) -> str:
    path = collections.addendum(office_id, addendum_id)
    store.seed(path, data)
    return path


async def write_activity(engine, store, activity_id: str, data: dict):
    """Store ``data`` as the activity and run the change trigger for that write."""
    path = collections.activity(activity_id)
    before = store.snapshot(path)
    store.seed(path, data)
    return await engine.handle_change(before, store.snapshot(path))


def invoke_handler(handler_class, method: str, path: str, body=None, headers: Optional[dict] = None):
    """Run a serverless handler for one request; returns ``(status, json body or None)``."""
    raw = b""
    if body is not None:
        raw = body.encode("utf-8") if isinstance(body, str) else json.dumps(body).encode("utf-8")

    request_headers = {"Content-Length": str(len(raw))}
    request_headers.update(headers or {})
    head = f"{method} {path} HTTP/1.1\r\n" + "".join(f"{k}: {v}\r\n" for k, v in request_headers.items())
    request = head.encode("utf-8") + b"\r\n" + raw

    class MockSocket:
        def makefile(self, *args, **kwargs):
            return BytesIO(request)

        def sendall(self, data):
            pass

        def close(self):
            pass

    h = handler_class.__new__(handler_class)
    h.request = MockSocket()
    h.client_address = ("127.0.0.1", 8000)
    h.server = None
    h.rfile = BytesIO(request)
    h.wfile = BytesIO()
    h.raw_requestline = h.rfile.readline()
    h.parse_request()

    h.send_response = Mock()
    h.send_header = Mock()
    h.end_headers = Mock()

    getattr(h, f"do_{method}")()

    status = h.send_response.call_args[0][0]
    h.wfile.seek(0)
    written = h.wfile.read().decode("utf-8")
    return status, json.loads(written) if written else None
