"""
Identity/data store client for Gateway.

The store is a REST service holding login accounts, users and projects.
Every call goes through ``RetryingHTTPClient``; failures are mapped onto
shared errors here so the domain services never see ``httpx`` types.
"""

from typing import Any, Dict, List, Optional

import httpx

from shared.errors import (
    ConflictError,
    InvalidCredentialsError,
    NotFoundError,
    RetryExhaustedError,
    UpstreamError,
)
from shared.http_client import RetryingHTTPClient
from shared.logging import get_logger


class IdentityStoreClient:
    """Client for the remote identity/data store."""

    def __init__(self, http_client: RetryingHTTPClient):
        self.http = http_client
        self.logger = get_logger("gateway.identity_store")

    async def close(self) -> None:
        await self.http.close()

    # Credential accounts

    async def create_account(self, email: str, password: str) -> Dict[str, Any]:
        """Register login credentials; returns the new account ``{id, email}``."""
        response = await self._send("POST", "/auth/accounts", resource="Account", operation="create_account",
                                    json={"email": email, "password": password}, conflict="USER_EXISTS")
        return response.get("account", response)

    async def find_account_by_email(self, email: str) -> Optional[Dict[str, Any]]:
        page = await self._get("/auth/accounts", resource="Account", operation="find_account_by_email",
                               params={"email": email})
        items = page.get("items", [])
        return items[0] if items else None

    async def set_password(self, account_id: str, password: str) -> None:
        await self._send("PATCH", f"/auth/accounts/{account_id}", resource="Account",
                         operation="set_password", json={"password": password})

    async def delete_account(self, account_id: str) -> None:
        await self._send("DELETE", f"/auth/accounts/{account_id}", resource="Account",
                         operation="delete_account")

    # Users

    async def verify_credentials(self, email: str, password: str) -> Dict[str, Any]:
        """Check an email/password pair; returns the store's user record."""
        try:
            response = await self.http.post("/auth/verify", json={"email": email, "password": password})
        except httpx.HTTPStatusError as e:
            if e.response.status_code in (400, 401):
                self.logger.warning("Credential check rejected", email=email)
                raise InvalidCredentialsError() from e
            raise self._upstream_error("verify_credentials", e) from e
        return response.json().get("user", {})

    async def get_user(self, user_id: str) -> Dict[str, Any]:
        return await self._get(f"/users/{user_id}", resource="User", operation="get_user")

    async def find_user_by_email(self, email: str) -> Optional[Dict[str, Any]]:
        users = await self._get("/users", resource="User", operation="find_user_by_email",
                                params={"email": email})
        items = users.get("items", []) if isinstance(users, dict) else users
        return items[0] if items else None

    async def create_user(self, name: str, email: str, profile_id: str, status: str) -> Dict[str, Any]:
        return await self._send("POST", "/users", resource="User", operation="create_user",
                                json={"name": name, "email": email, "profile_id": profile_id, "status": status},
                                conflict="USER_EXISTS")

    async def update_user_status(self, user_id: str, status: str) -> Dict[str, Any]:
        return await self._send("PATCH", f"/users/{user_id}", resource="User",
                                operation="update_user_status", json={"status": status})

    # Projects

    async def list_projects(self, owner_id: str, *, status: Optional[str] = None,
                            offset: int = 0, limit: int = 10) -> Dict[str, Any]:
        """Page of projects owned by ``owner_id``, newest first.

        Returns ``{"items": [...], "total": int}``.
        """
        params: Dict[str, Any] = {"owner_id": owner_id, "offset": offset, "limit": limit}
        if status:
            params["status"] = status
        page = await self._get("/projects", resource="Project", operation="list_projects", params=params)
        return {"items": list(page.get("items", [])), "total": int(page.get("total", 0))}

    async def get_project(self, owner_id: str, project_id: str) -> Dict[str, Any]:
        return await self._get(f"/projects/{project_id}", resource="Project", operation="get_project",
                               params={"owner_id": owner_id})

    async def find_project_by_name(self, owner_id: str, name: str,
                                   exclude_id: Optional[str] = None) -> Optional[Dict[str, Any]]:
        page = await self._get("/projects", resource="Project", operation="find_project_by_name",
                               params={"owner_id": owner_id, "name": name})
        items: List[Dict[str, Any]] = page.get("items", [])
        for item in items:
            if item.get("id") != exclude_id:
                return item
        return None

    async def create_project(self, owner_id: str, name: str, status: str) -> Dict[str, Any]:
        return await self._send("POST", "/projects", resource="Project", operation="create_project",
                                json={"user_id": owner_id, "name": name, "status": status})

    async def update_project(self, owner_id: str, project_id: str, changes: Dict[str, Any]) -> Dict[str, Any]:
        return await self._send("PATCH", f"/projects/{project_id}", resource="Project",
                                operation="update_project", params={"owner_id": owner_id}, json=changes)

    async def delete_project(self, owner_id: str, project_id: str) -> None:
        await self._send("DELETE", f"/projects/{project_id}", resource="Project",
                         operation="delete_project", params={"owner_id": owner_id})

    # Plumbing

    async def _get(self, url: str, *, resource: str, operation: str, **kwargs: Any) -> Any:
        return await self._send("GET", url, resource=resource, operation=operation, **kwargs)

    async def _send(self, method: str, url: str, *, resource: str, operation: str,
                    conflict: Optional[str] = None, **kwargs: Any) -> Any:
        try:
            response = await self.http.request(method, url, **kwargs)
        except httpx.HTTPStatusError as e:
            if e.response.status_code == 404:
                raise NotFoundError(resource) from e
            if e.response.status_code == 409 and conflict:
                self.logger.warning("Identity store conflict", operation=operation)
                raise ConflictError(f"{resource} already exists", conflict) from e
            raise self._upstream_error(operation, e) from e
        except RetryExhaustedError:
            raise
        except httpx.HTTPError as e:
            raise self._upstream_error(operation, e) from e

        if response.status_code == 204 or not response.content:
            return {}
        return response.json()

    def _upstream_error(self, operation: str, error: httpx.HTTPError) -> UpstreamError:
        details: Dict[str, Any] = {"operation": operation}
        if isinstance(error, httpx.HTTPStatusError):
            details["status_code"] = error.response.status_code
        self.logger.error("Identity store error", operation=operation, error=str(error))
        return UpstreamError("Identity store request failed", details=details)
