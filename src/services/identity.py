"""Identity provider: phone number accounts, custom claims and token checks."""

from abc import ABC, abstractmethod
from typing import Optional

from src.models.identity import UserRecord
from src.services.supabase_client import SupabaseClient
from src.utils.errors import IdentityProviderError
from src.utils.logging import get_structured_logger, mask_phone_number

logger = get_structured_logger(__name__)


class IdentityProvider(ABC):
    """Account lookups used by commands and the change trigger."""

    @abstractmethod
    async def get_user_by_phone_number(self, phone_number: str) -> UserRecord:
        """
        ``UserRecord.unregistered`` when the lookup finds no account.

        Provider failures raise ``IdentityProviderError``.
        """
        ...

    @abstractmethod
    async def set_custom_claims(self, uid: str, claims: dict) -> None:
        ...

    @abstractmethod
    async def delete_user(self, uid: str) -> None:
        ...

    @abstractmethod
    async def verify_access_token(self, token: str) -> Optional[UserRecord]:
        ...


def _normalize_phone(phone: Optional[str]) -> str:
    if not phone:
        return ""
    return phone if phone.startswith("+") else f"+{phone}"


def _to_record(user) -> UserRecord:
    metadata = getattr(user, "user_metadata", None) or {}
    return UserRecord(
        phone_number=_normalize_phone(getattr(user, "phone", "")),
        uid=user.id,
        display_name=metadata.get("display_name") or metadata.get("full_name") or "",
        photo_url=metadata.get("avatar_url") or "",
        email=getattr(user, "email", None) or "",
        email_verified=bool(getattr(user, "email_confirmed_at", None)),
        custom_claims=dict(getattr(user, "app_metadata", None) or {}),
    )


class SupabaseIdentityProvider(IdentityProvider):
    """Supabase auth admin API; custom claims are kept in app_metadata."""

    PAGE_SIZE = 1000

    async def get_user_by_phone_number(self, phone_number: str) -> UserRecord:
        async with SupabaseClient() as client:
            page = 1
            while True:
                try:
                    users = client.auth.admin.list_users(page=page, per_page=self.PAGE_SIZE)
                except Exception as e:
                    logger.error(
                        "User lookup failed",
                        phone_number=mask_phone_number(phone_number),
                        page=page,
                        error=str(e),
                    )
                    raise IdentityProviderError(f"Failed to look up user: {e}")

                for user in users:
                    if _normalize_phone(getattr(user, "phone", "")) == phone_number:
                        return _to_record(user)

                if len(users) < self.PAGE_SIZE:
                    return UserRecord.unregistered(phone_number)
                page += 1

    async def set_custom_claims(self, uid: str, claims: dict) -> None:
        async with SupabaseClient() as client:
            try:
                client.auth.admin.update_user_by_id(uid, {"app_metadata": claims})
            except Exception as e:
                raise IdentityProviderError(f"Failed to set custom claims: {e}")

    async def delete_user(self, uid: str) -> None:
        async with SupabaseClient() as client:
            try:
                client.auth.admin.delete_user(uid)
            except Exception as e:
                raise IdentityProviderError(f"Failed to delete user: {e}")

    async def verify_access_token(self, token: str) -> Optional[UserRecord]:
        async with SupabaseClient() as client:
            try:
                response = client.auth.get_user(token)
            except Exception as e:
                logger.warning("Access token rejected", error=str(e))
                return None
        if not response or not response.user:
            return None
        return _to_record(response.user)
