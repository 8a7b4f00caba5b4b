"""Project service — role-scoped project CRUD.

Row-level scoping is the whole story here:
- ADMIN sees and edits every project
- MANAGER sees and edits the projects they manage
- USER sees projects where they hold at least one task, and only
  their own tasks inside them; USERs never write projects

Anything outside the caller's scope is reported as "not found" so the
API doesn't leak which ids exist.
"""

from typing import Optional

import structlog
from sqlalchemy import delete, false, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from taskboard.auth.dependencies import CurrentIdentity
from taskboard.db.models import Project, Task
from taskboard.services.errors import NotFoundError, ValidationError
from taskboard.services.user_service import UserService

logger = structlog.get_logger()


def _clean(value: Optional[str]) -> Optional[str]:
    """Trim; blank becomes None."""
    if value is None:
        return None
    value = value.strip()
    return value or None


class ProjectService:
    """Business logic for projects, scoped by the caller's role."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.users = UserService(db)

    # ─── Scoping ─────────────────────────────────────────

    def _scoped(self, identity: CurrentIdentity):
        """SELECT Project with the caller's row filter and eager loads."""
        tasks_rel = Project.tasks
        query = select(Project)

        if identity.is_admin:
            pass
        elif identity.user_id is None:
            query = query.where(false())
        elif identity.is_manager:
            query = query.where(Project.manager_id == identity.user_id)
        else:
            query = query.where(Project.tasks.any(Task.assignee_id == identity.user_id))
            tasks_rel = Project.tasks.and_(Task.assignee_id == identity.user_id)

        return query.options(
            selectinload(Project.manager),
            selectinload(tasks_rel).selectinload(Task.assignee),
        ).execution_options(populate_existing=True)

    async def _find_writable(self, identity: CurrentIdentity, project_id: int) -> Optional[Project]:
        query = select(Project).where(Project.id == project_id)
        if not identity.is_admin:
            query = query.where(Project.manager_id == identity.user_id)
        result = await self.db.execute(query)
        return result.scalars().first()

    # ─── Read ────────────────────────────────────────────

    async def list_projects(self, identity: CurrentIdentity) -> list[Project]:
        query = self._scoped(identity).order_by(
            Project.created_at.desc(), Project.id.desc()
        )
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def get_project(self, identity: CurrentIdentity, project_id: int) -> Project:
        result = await self.db.execute(
            self._scoped(identity).where(Project.id == project_id)
        )
        project = result.scalars().first()
        if not project:
            raise NotFoundError(
                "Project not found or you do not have access to it",
                error="Project not found",
            )
        return project

    async def require_writable(self, identity: CurrentIdentity, project_id: int, action: str) -> Project:
        """Load a project the caller may modify, or raise NotFoundError."""
        project = await self._find_writable(identity, project_id)
        if not project:
            raise NotFoundError(
                f"Project not found or you do not have permission to {action}",
                error="Project not found",
            )
        return project

    # ─── Write ───────────────────────────────────────────

    async def create_project(
        self,
        identity: CurrentIdentity,
        name: Optional[str],
        description: Optional[str] = None,
        manager_id: Optional[int] = None,
    ) -> Project:
        """Create a project managed by the caller.

        An ADMIN may hand the project to another MANAGER/ADMIN via
        manager_id; for managers the field is ignored.
        """
        name = _clean(name)
        if not name:
            raise ValidationError("Project name is required")

        owner_id = identity.user_id
        if identity.is_admin and manager_id is not None and manager_id != owner_id:
            await self.users.require_project_manager(manager_id)
            owner_id = manager_id
        else:
            await self.users.require_project_manager(owner_id)

        project = Project(name=name, description=_clean(description), manager_id=owner_id)
        self.db.add(project)
        await self.db.commit()
        logger.info("projects.created", project_id=project.id, manager_id=owner_id)

        return await self.get_project(identity, project.id)

    async def update_project(
        self,
        identity: CurrentIdentity,
        project_id: int,
        name: Optional[str] = None,
        description: Optional[str] = None,
    ) -> Project:
        project = await self.require_writable(identity, project_id, "update it")

        project.name = _clean(name) or project.name
        project.description = _clean(description) or project.description
        await self.db.commit()

        return await self.get_project(identity, project_id)

    async def delete_project(self, identity: CurrentIdentity, project_id: int) -> None:
        """Delete a project and all of its tasks."""
        project = await self.require_writable(identity, project_id, "delete it")

        await self.db.execute(delete(Task).where(Task.project_id == project_id))
        await self.db.delete(project)
        await self.db.commit()
        logger.info("projects.deleted", project_id=project_id)
