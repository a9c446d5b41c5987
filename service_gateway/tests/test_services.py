"""
Unit tests for the account and project services.
"""

from unittest.mock import AsyncMock, patch

import pytest

from service_gateway.app.adapters import IdentityStoreClient
from service_gateway.app.auth import TokenVerifier
from service_gateway.app.domain.accounts import AccountService
from service_gateway.app.domain.projects import ProjectService
from service_gateway.app.lifecycle import ProjectStatus, UserStatus
from shared.errors import (
    AuthenticationError,
    ConflictError,
    InvalidCredentialsError,
    NotFoundError,
    TransitionError,
    UpstreamError,
)
from shared.http_client import RetryingHTTPClient
from shared.retry import RetryConfig
from shared.test_helpers import TEST_JWT_SECRET, FakeIdentityStore, test_data_factory


USER, ADMIN, INACTIVE = test_data_factory.create_test_users()


@pytest.fixture
def backend():
    store = FakeIdentityStore()
    for user in (USER, ADMIN, INACTIVE):
        store.add_user(user)
    return store


@pytest.fixture
def store(backend):
    return IdentityStoreClient(RetryingHTTPClient(
        "http://identity-store.test",
        retry_config=RetryConfig(max_retries=0),
        transport=backend.transport(),
    ))


@pytest.fixture
def verifier():
    return TokenVerifier(TEST_JWT_SECRET, ["HS256"])


class TestAccountService:
    """Test cases for AccountService."""

    @pytest.fixture
    def accounts(self, store, verifier):
        return AccountService(store, verifier)

    @pytest.mark.asyncio
    async def test_login_issues_verifiable_token(self, accounts, verifier):
        result = await accounts.login(ADMIN.email, ADMIN.password)

        claims = verifier.verify(result["token"])
        assert claims.id == ADMIN.id
        assert claims.profile_name == "admin"
        assert result["user"]["profile_name"] == "admin"
        assert result["user"]["status"] == "active"

    @pytest.mark.asyncio
    async def test_login_bad_password(self, accounts):
        with pytest.raises(InvalidCredentialsError):
            await accounts.login(USER.email, "nope")

    @pytest.mark.asyncio
    async def test_login_inactive_user(self, accounts):
        with pytest.raises(AuthenticationError) as exc_info:
            await accounts.login(INACTIVE.email, INACTIVE.password)
        assert exc_info.value.code == "USER_INACTIVE"

    @pytest.mark.asyncio
    async def test_update_user_status(self, accounts, backend):
        result = await accounts.update_user_status(USER.id, UserStatus.INACTIVE, actor_id=ADMIN.id)

        assert result == {"id": USER.id, "status": "inactive"}
        assert backend.users[USER.id]["status"] == "inactive"

    @pytest.mark.asyncio
    async def test_same_status_is_noop(self, accounts, backend):
        writes_before = sum(1 for r in backend.requests if r.method == "PATCH")

        result = await accounts.update_user_status(USER.id, UserStatus.ACTIVE)

        assert result["status"] == "active"
        assert sum(1 for r in backend.requests if r.method == "PATCH") == writes_before

    @pytest.mark.asyncio
    async def test_unknown_user(self, accounts):
        with pytest.raises(NotFoundError):
            await accounts.update_user_status("00000000-0000-4000-8000-000000000000", UserStatus.ACTIVE)

    @pytest.mark.asyncio
    async def test_user_record_without_status(self, accounts, backend):
        del backend.users[USER.id]["status"]

        with pytest.raises(UpstreamError) as exc_info:
            await accounts.update_user_status(USER.id, UserStatus.INACTIVE)

        assert exc_info.value.status_code == 502
        assert "status" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_create_user(self, accounts, backend):
        user = await accounts.create_user("Grace Hopper", "grace@example.com", USER.profile_id,
                                          actor_id=ADMIN.id)

        assert user["status"] == "active"
        assert user["profile_id"] == USER.profile_id
        assert backend.users[user["id"]]["email"] == "grace@example.com"
        assert backend.account_for("grace@example.com") is not None

    @pytest.mark.asyncio
    async def test_create_user_removes_account_when_record_fails(self, accounts, backend):
        # A user record without login credentials: the account is created, the record insert conflicts
        backend.users["orphan"] = {"id": "orphan", "email": "orphan@example.com", "status": "active"}

        with pytest.raises(ConflictError) as exc_info:
            await accounts.create_user("Orphan", "orphan@example.com", USER.profile_id)

        assert exc_info.value.code == "USER_EXISTS"
        assert backend.account_for("orphan@example.com") is None

    @pytest.mark.asyncio
    async def test_create_user_with_existing_account(self, accounts, backend):
        users_before = len(backend.users)

        with pytest.raises(ConflictError):
            await accounts.create_user("John Again", USER.email, USER.profile_id)

        assert len(backend.users) == users_before

    @pytest.mark.asyncio
    async def test_change_password(self, accounts):
        await accounts.change_password(USER.email, "brand-new-secret", actor_id=ADMIN.id)

        result = await accounts.login(USER.email, "brand-new-secret")
        assert result["user"]["id"] == USER.id

    @pytest.mark.asyncio
    async def test_change_password_unknown_account(self, accounts):
        with pytest.raises(NotFoundError):
            await accounts.change_password("nobody@example.com", "brand-new-secret")

    @pytest.mark.asyncio
    async def test_check_sync_states(self, accounts, backend):
        assert await accounts.check_sync(ADMIN.email) == {
            "email": ADMIN.email, "exists": True, "status": "active",
        }
        assert (await accounts.check_sync("nobody@example.com"))["status"] == "not_found"

        del backend.accounts[backend.account_for(ADMIN.email)["id"]]
        assert (await accounts.check_sync(ADMIN.email))["status"] == "auth_missing"

    @pytest.mark.asyncio
    async def test_check_sync_falls_back_when_accounts_unreachable(self, accounts):
        with patch.object(accounts.store, "find_account_by_email", new_callable=AsyncMock,
                          side_effect=UpstreamError("Identity store request failed")):
            result = await accounts.check_sync(INACTIVE.email)

        assert result == {"email": INACTIVE.email, "exists": True, "status": "inactive"}


class TestProjectService:
    """Test cases for ProjectService."""

    @pytest.fixture
    def projects(self, store):
        return ProjectService(store)

    @pytest.mark.asyncio
    async def test_create_starts_pending(self, projects):
        project = await projects.create(USER.id, "Wind Park")

        assert project["status"] == "pending"
        assert project["user_id"] == USER.id

    @pytest.mark.asyncio
    async def test_duplicate_name(self, projects):
        await projects.create(USER.id, "Wind Park")

        with pytest.raises(ConflictError) as exc_info:
            await projects.create(USER.id, "Wind Park")
        assert exc_info.value.code == "DUPLICATE_PROJECT_NAME"

    @pytest.mark.asyncio
    async def test_same_name_allowed_for_other_owner(self, projects):
        await projects.create(USER.id, "Wind Park")
        assert (await projects.create(ADMIN.id, "Wind Park"))["user_id"] == ADMIN.id

    @pytest.mark.asyncio
    async def test_list_pagination(self, projects, backend):
        for i in range(7):
            backend.add_project(test_data_factory.create_test_project(USER.id, f"Project {i}"))

        result = await projects.list(USER.id, page=2, limit=3)

        assert len(result["items"]) == 3
        assert result["pagination"] == {"page": 2, "limit": 3, "total": 7, "pages": 3}

    @pytest.mark.asyncio
    async def test_list_empty(self, projects):
        result = await projects.list(USER.id)
        assert result["pagination"]["pages"] == 0

    @pytest.mark.asyncio
    async def test_get_foreign_project_is_not_found(self, projects, backend):
        project = backend.add_project(test_data_factory.create_test_project(ADMIN.id))

        with pytest.raises(NotFoundError) as exc_info:
            await projects.get(USER.id, project["id"])
        assert exc_info.value.message == "Project not found"

    @pytest.mark.asyncio
    async def test_legal_transition(self, projects, backend):
        project = backend.add_project(test_data_factory.create_test_project(USER.id))

        updated = await projects.update(USER.id, project["id"], status=ProjectStatus.ACTIVE)

        assert updated["status"] == "active"

    @pytest.mark.asyncio
    async def test_rejected_transition_changes_nothing(self, projects, backend):
        project = backend.add_project(test_data_factory.create_test_project(USER.id, status="completed"))

        with pytest.raises(TransitionError):
            await projects.update(USER.id, project["id"], name="Renamed", status=ProjectStatus.ACTIVE)

        assert backend.projects[project["id"]]["name"] == "Solar Farm"
        assert backend.projects[project["id"]]["status"] == "completed"

    @pytest.mark.asyncio
    async def test_rename_to_existing_name(self, projects, backend):
        backend.add_project(test_data_factory.create_test_project(USER.id, "Alpha"))
        beta = backend.add_project(test_data_factory.create_test_project(USER.id, "Beta"))

        with pytest.raises(ConflictError):
            await projects.update(USER.id, beta["id"], name="Alpha")

    @pytest.mark.asyncio
    async def test_terminal_resubmission_is_noop(self, projects, backend):
        project = backend.add_project(test_data_factory.create_test_project(USER.id, status="cancelled"))

        updated = await projects.update(USER.id, project["id"], status=ProjectStatus.CANCELLED)
        assert updated["status"] == "cancelled"

    @pytest.mark.asyncio
    async def test_delete(self, projects, backend):
        project = backend.add_project(test_data_factory.create_test_project(USER.id))

        await projects.delete(USER.id, project["id"])

        assert project["id"] not in backend.projects

    @pytest.mark.asyncio
    async def test_project_record_with_unknown_status(self, projects, backend):
        project = backend.add_project(test_data_factory.create_test_project(USER.id, status="archived"))

        with pytest.raises(UpstreamError):
            await projects.update(USER.id, project["id"], status=ProjectStatus.ACTIVE)
