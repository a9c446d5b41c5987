"""
Account operations: login, profile lookup, user administration.
"""

import secrets
from typing import Any, Dict, Optional

from shared.errors import AuthenticationError, GatewayException, NotFoundError, RetryExhaustedError, UpstreamError
from shared.logging import get_logger
from shared.metrics import MetricsCollector

from ..adapters.identity_store import IdentityStoreClient
from ..auth import ClaimSet, TokenVerifier
from ..lifecycle import USER_LIFECYCLE, UserStatus


DEFAULT_PROFILE = "user"

SYNC_NOT_FOUND = "not_found"
SYNC_AUTH_MISSING = "auth_missing"


def _user_with_profile(user: Dict[str, Any]) -> Dict[str, Any]:
    """Flatten the store's user record into the shape clients receive."""
    profile = user.get("profile") or {}
    return {
        "id": user["id"],
        "name": user.get("name"),
        "email": user["email"],
        "status": user.get("status"),
        "profile_id": user.get("profile_id"),
        "profile_name": user.get("profile_name") or profile.get("name") or DEFAULT_PROFILE,
        "created_at": user.get("created_at"),
    }


def _temporary_password() -> str:
    return secrets.token_urlsafe(12)


class AccountService:
    def __init__(self, store: IdentityStoreClient, verifier: TokenVerifier,
                 metrics: Optional[MetricsCollector] = None):
        self.store = store
        self.verifier = verifier
        self.metrics = metrics
        self.logger = get_logger("gateway.accounts")

    async def login(self, email: str, password: str) -> Dict[str, Any]:
        """Verify credentials and issue a bearer token for an active user."""
        self.logger.info("Login attempt", email=email)
        await self.store.verify_credentials(email, password)

        record = await self.store.find_user_by_email(email)
        if record is None:
            self.logger.error("User not found in system", email=email)
            raise AuthenticationError(
                "User not found in system. Please contact administrator.", "USER_NOT_FOUND"
            )

        user = _user_with_profile(record)
        if user["status"] != UserStatus.ACTIVE.value:
            self.logger.warning("Inactive user login attempt", email=email, status=user["status"])
            raise AuthenticationError("User account is not active", "USER_INACTIVE")

        token = self.verifier.issue(user)
        self.logger.info("Login successful", user_id=user["id"], profile=user["profile_name"])
        return {"token": token, "user": user}

    def profile(self, claims: ClaimSet) -> Dict[str, Any]:
        return claims.to_dict()

    async def create_user(self, name: str, email: str, profile_id: str,
                          *, actor_id: Optional[str] = None) -> Dict[str, Any]:
        """Create login credentials and the matching active user record.

        The account gets a random password the user never sees; an
        administrator sets a real one through ``change_password``. If the
        user record cannot be written the account is removed again.
        """
        self.logger.info("Creating user", email=email, profile_id=profile_id, admin_id=actor_id)
        account = await self.store.create_account(email, _temporary_password())

        try:
            record = await self.store.create_user(name, email, profile_id, UserStatus.ACTIVE.value)
        except GatewayException:
            self.logger.warning("Removing login account after failed user creation", email=email)
            await self.store.delete_account(account["id"])
            raise

        user = _user_with_profile(record)
        self.logger.info("User created", user_id=user["id"], email=email, admin_id=actor_id)
        return user

    async def change_password(self, email: str, new_password: str,
                              *, actor_id: Optional[str] = None) -> None:
        account = await self.store.find_account_by_email(email)
        if account is None:
            self.logger.warning("No login account for password change", email=email)
            raise NotFoundError("Account")

        await self.store.set_password(account["id"], new_password)
        self.logger.info("Password changed", email=email, admin_id=actor_id)

    async def check_sync(self, email: str) -> Dict[str, Any]:
        """Compare the user record with the login account for ``email``.

        ``status`` is the user's status when both exist, ``not_found`` when
        there is no user record and ``auth_missing`` when the user has no
        login account. An unreachable account store falls back to the user's
        status.
        """
        record = await self.store.find_user_by_email(email)
        if record is None:
            self.logger.info("User not found in system", email=email)
            return {"email": email, "exists": False, "status": SYNC_NOT_FOUND}

        try:
            account = await self.store.find_account_by_email(email)
        except (UpstreamError, RetryExhaustedError) as e:
            self.logger.warning("Could not check login account", email=email, error=e.message)
            return {"email": email, "exists": True, "status": record.get("status")}

        if account is None:
            self.logger.warning("User has no login account", email=email)
            return {"email": email, "exists": True, "status": SYNC_AUTH_MISSING}

        return {"email": email, "exists": True, "status": record.get("status")}

    async def update_user_status(self, user_id: str, status: UserStatus,
                                 *, actor_id: Optional[str] = None) -> Dict[str, Any]:
        """Move a user along the active/inactive lifecycle."""
        try:
            current = await self.store.get_user(user_id)
        except NotFoundError:
            self.logger.warning("User not found for status update", user_id=user_id)
            raise

        try:
            current_status = USER_LIFECYCLE.coerce(current.get("status"))
        except ValueError:
            self.logger.error("User record has no valid status", user_id=user_id, status=current.get("status"))
            raise UpstreamError("Identity store returned a user without a valid status",
                                details={"operation": "get_user"}) from None

        if not USER_LIFECYCLE.validate(current_status, status, metrics=self.metrics):
            return {"id": current["id"], "status": current_status.value}

        updated = await self.store.update_user_status(user_id, UserStatus(status).value)
        self.logger.info("User status updated", user_id=user_id, status=updated.get("status"),
                         admin_id=actor_id)
        return {"id": updated.get("id", user_id), "status": updated.get("status", UserStatus(status).value)}
