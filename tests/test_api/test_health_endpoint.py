"""Tests for health check endpoint."""

import pytest
from http.server import BaseHTTPRequestHandler

from api.health import handler
from src.utils.config import Settings
from tests.utils.helpers import invoke_handler


@pytest.mark.unit
def test_health_handler_class():
    assert issubclass(handler, BaseHTTPRequestHandler)


@pytest.mark.unit
def test_health_get_request(monkeypatch):
    monkeypatch.setattr(Settings, "GOOGLE_MAPS_API_KEY", "maps-key")
    monkeypatch.setattr(Settings, "FCM_SERVER_KEY", None)
    monkeypatch.setattr(Settings, "ENVIRONMENT", "test")
    monkeypatch.setattr(Settings, "DEFAULT_TIMEZONE", "Asia/Kolkata")

    status, payload = invoke_handler(handler, "GET", "/api/health")

    assert status == 200
    assert payload == {
        "status": "ok",
        "service": "activity-hub-backend",
        "environment": "test",
        "timezone": "Asia/Kolkata",
        "geocoding": True,
        "push": False,
    }


@pytest.mark.unit
def test_health_post_request():
    status, payload = invoke_handler(handler, "POST", "/api/health")

    assert status == 200
    assert payload["status"] == "ok"
