"""Push notification collaborator."""

from abc import ABC, abstractmethod
from typing import Optional

import httpx

from src.utils.config import Settings
from src.utils.errors import NotificationError


class PushNotifier(ABC):

    @abstractmethod
    async def send(self, registration_token: str, payload: dict) -> None:
        """Deliver one push; raises NotificationError on failure."""
        ...


class FcmPushNotifier(PushNotifier):
    """Firebase Cloud Messaging legacy HTTP endpoint."""

    URL = "https://fcm.googleapis.com/fcm/send"

    def __init__(self, server_key: Optional[str] = None, timeout: Optional[float] = None):
        self.server_key = server_key or Settings.FCM_SERVER_KEY
        self.timeout = timeout or Settings.HTTP_TIMEOUT_SECONDS

        if not self.server_key:
            raise NotificationError("FCM_SERVER_KEY must be set")

    async def send(self, registration_token: str, payload: dict) -> None:
        message = dict(payload, to=registration_token, priority="high")
        headers = {"Authorization": f"key={self.server_key}"}
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(self.URL, json=message, headers=headers)
                response.raise_for_status()
                body = response.json()
        except httpx.HTTPError as e:
            raise NotificationError(f"Push delivery failed: {e}")

        if body.get("failure"):
            errors = [result.get("error") for result in body.get("results", []) if result.get("error")]
            raise NotificationError(f"Push rejected: {', '.join(errors) or 'unknown error'}")
