"""Health check endpoint."""

from http.server import BaseHTTPRequestHandler
import json

from src.utils.config import Settings


def health_payload() -> dict:
    """Service status plus which optional collaborators are configured."""
    return {
        "status": "ok",
        "service": "activity-hub-backend",
        "environment": Settings.ENVIRONMENT,
        "timezone": Settings.DEFAULT_TIMEZONE,
        "geocoding": bool(Settings.GOOGLE_MAPS_API_KEY),
        "push": bool(Settings.FCM_SERVER_KEY),
    }


class handler(BaseHTTPRequestHandler):
    """Health check handler for Vercel serverless function."""

    def do_GET(self):
        self.send_response(200)
        self.send_header('Content-Type', 'application/json')
        self.end_headers()
        self.wfile.write(json.dumps(health_payload()).encode('utf-8'))

    def do_POST(self):
        self.do_GET()
