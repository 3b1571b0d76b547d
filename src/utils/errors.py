"""Error handling utilities."""

from typing import Optional


class ActivityHubError(Exception):
    """Base exception for the activity backend."""

    status_code = 500

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class ValidationError(ActivityHubError):
    """Request body, schedule, venue or attachment failed validation."""
    status_code = 400


class PermissionDeniedError(ActivityHubError):
    """Requester is not allowed to perform the operation."""
    status_code = 403


class NotFoundError(ActivityHubError):
    """Referenced activity, office or template does not exist."""
    status_code = 404


class MethodNotAllowedError(ActivityHubError):
    """HTTP method not accepted by the endpoint."""
    status_code = 405


class ConflictError(ActivityHubError):
    """Write would violate a uniqueness or state rule."""
    status_code = 409


class InfrastructureError(ActivityHubError):
    """A collaborator or the document store failed."""
    status_code = 500


class StoreError(InfrastructureError):
    """Document store operation error."""
    pass


class IdentityProviderError(InfrastructureError):
    """Identity provider operation error."""
    pass


class GeocodingError(InfrastructureError):
    """Geocoding or distance lookup error."""
    pass


class NotificationError(InfrastructureError):
    """Push notification delivery error."""
    pass
