"""
Project operations scoped to the owning user.
"""

import math
from typing import Any, Dict, Optional

from shared.errors import ConflictError, NotFoundError, UpstreamError
from shared.logging import get_logger
from shared.metrics import MetricsCollector

from ..adapters.identity_store import IdentityStoreClient
from ..lifecycle import PROJECT_LIFECYCLE, ProjectStatus


def _duplicate_name() -> ConflictError:
    return ConflictError("A project with this name already exists", "DUPLICATE_PROJECT_NAME")


class ProjectService:
    """CRUD over the owner's projects with status changes gated by the lifecycle."""

    def __init__(self, store: IdentityStoreClient, metrics: Optional[MetricsCollector] = None):
        self.store = store
        self.metrics = metrics
        self.logger = get_logger("gateway.projects")

    async def create(self, owner_id: str, name: str) -> Dict[str, Any]:
        if await self.store.find_project_by_name(owner_id, name) is not None:
            self.logger.warning("Project name already exists for user", user_id=owner_id, name=name)
            raise _duplicate_name()

        # New projects always start pending
        project = await self.store.create_project(owner_id, name, ProjectStatus.PENDING.value)
        self.logger.info("Project created", project_id=project.get("id"), user_id=owner_id)
        return project

    async def list(self, owner_id: str, *, status: Optional[ProjectStatus] = None,
                   page: int = 1, limit: int = 10) -> Dict[str, Any]:
        offset = (page - 1) * limit
        result = await self.store.list_projects(
            owner_id,
            status=ProjectStatus(status).value if status else None,
            offset=offset,
            limit=limit,
        )
        total = result["total"]
        return {
            "items": result["items"],
            "pagination": {
                "page": page,
                "limit": limit,
                "total": total,
                "pages": math.ceil(total / limit),
            },
        }

    async def get(self, owner_id: str, project_id: str) -> Dict[str, Any]:
        try:
            return await self.store.get_project(owner_id, project_id)
        except NotFoundError:
            # Other users' projects are indistinguishable from missing ones
            self.logger.warning("Project not found or access denied", user_id=owner_id,
                                project_id=project_id)
            raise NotFoundError("Project") from None

    async def update(self, owner_id: str, project_id: str, *, name: Optional[str] = None,
                     status: Optional[ProjectStatus] = None) -> Dict[str, Any]:
        existing = await self.get(owner_id, project_id)

        if name is not None and name != existing.get("name"):
            if await self.store.find_project_by_name(owner_id, name, exclude_id=project_id) is not None:
                self.logger.warning("Project name already exists for user", user_id=owner_id, name=name)
                raise _duplicate_name()

        changes: Dict[str, Any] = {}
        if name is not None:
            changes["name"] = name
        if status is not None:
            try:
                current_status = PROJECT_LIFECYCLE.coerce(existing.get("status"))
            except ValueError:
                self.logger.error("Project record has no valid status", project_id=project_id,
                                  status=existing.get("status"))
                raise UpstreamError("Identity store returned a project without a valid status",
                                    details={"operation": "get_project"}) from None
            # Raises before any field is written
            PROJECT_LIFECYCLE.validate(current_status, status, metrics=self.metrics)
            changes["status"] = ProjectStatus(status).value

        updated = await self.store.update_project(owner_id, project_id, changes)
        self.logger.info("Project updated", user_id=owner_id, project_id=project_id,
                         changes=sorted(changes))
        return updated

    async def delete(self, owner_id: str, project_id: str) -> None:
        await self.get(owner_id, project_id)
        await self.store.delete_project(owner_id, project_id)
        self.logger.info("Project deleted", user_id=owner_id, project_id=project_id)
