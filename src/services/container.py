"""Collaborators shared by commands and the change trigger."""

from dataclasses import dataclass
from typing import Optional

from src.services.document_store import DocumentStore
from src.services.geocoding import Geocoder, GoogleMapsGeocoder
from src.services.identity import IdentityProvider, SupabaseIdentityProvider
from src.services.notifier import FcmPushNotifier, PushNotifier
from src.services.supabase_client import get_document_store
from src.utils.errors import GeocodingError, NotificationError
from src.utils.logging import get_structured_logger

logger = get_structured_logger(__name__)


@dataclass
class Services:
    store: DocumentStore
    identity: IdentityProvider
    geocoder: Optional[Geocoder] = None
    notifier: Optional[PushNotifier] = None


_services: Optional[Services] = None


def get_services() -> Services:
    """Build the production collaborators once per process."""
    global _services

    if _services is None:
        try:
            geocoder = GoogleMapsGeocoder()
        except GeocodingError as e:
            logger.warning("Geocoder disabled", error=str(e))
            geocoder = None

        try:
            notifier = FcmPushNotifier()
        except NotificationError as e:
            logger.warning("Push notifications disabled", error=str(e))
            notifier = None

        _services = Services(
            store=get_document_store(),
            identity=SupabaseIdentityProvider(),
            geocoder=geocoder,
            notifier=notifier,
        )

    return _services
