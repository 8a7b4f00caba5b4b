"""Task service — role-scoped task CRUD, status and assignment.

Scoping mirrors projects:
- ADMIN: every task
- MANAGER: tasks inside projects they manage
- USER: tasks assigned to them (and they may only change status)

Assignees must hold role USER. Status is a flat enum, any transition
between TODO / IN_PROGRESS / DONE is allowed.
"""

from typing import Optional

import structlog
from sqlalchemy import false, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from taskboard.auth.dependencies import CurrentIdentity
from taskboard.db.models import TASK_STATUS_VALUES, Project, Task, TaskStatus
from taskboard.services.errors import NotFoundError, ValidationError
from taskboard.services.project_service import ProjectService
from taskboard.services.user_service import UserService

logger = structlog.get_logger()


class TaskService:
    """Business logic for tasks, scoped by the caller's role."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.users = UserService(db)
        self.projects = ProjectService(db)

    # ─── Scoping ─────────────────────────────────────────

    def _filter(self, query, identity: CurrentIdentity):
        if identity.is_admin:
            return query
        if identity.user_id is None:
            return query.where(false())
        if identity.is_manager:
            return query.where(
                Task.project.has(Project.manager_id == identity.user_id)
            )
        return query.where(Task.assignee_id == identity.user_id)

    def _with_relations(self, query):
        return query.options(
            selectinload(Task.project).selectinload(Project.manager),
            selectinload(Task.assignee),
        ).execution_options(populate_existing=True)

    async def _find(self, identity: CurrentIdentity, task_id: int, action: str) -> Task:
        query = self._filter(select(Task).where(Task.id == task_id), identity)
        task = (await self.db.execute(query)).scalars().first()
        if not task:
            raise NotFoundError(
                f"Task not found or you do not have {action}",
                error="Task not found",
            )
        return task

    async def _reload(self, task_id: int) -> Task:
        result = await self.db.execute(
            self._with_relations(select(Task).where(Task.id == task_id))
        )
        return result.scalars().one()

    # ─── Read ────────────────────────────────────────────

    async def list_tasks(
        self,
        identity: CurrentIdentity,
        status: Optional[str] = None,
        project_id: Optional[int] = None,
    ) -> list[Task]:
        """List tasks visible to the caller, newest first.

        Filters are applied conditionally — only when the caller provides them.
        """
        if status and status not in TASK_STATUS_VALUES:
            raise ValidationError(
                f"Valid status ({', '.join(TASK_STATUS_VALUES)}) is required"
            )
        query = self._filter(select(Task), identity)
        if status:
            query = query.where(Task.status == status)
        if project_id is not None:
            query = query.where(Task.project_id == project_id)
        query = self._with_relations(query).order_by(
            Task.created_at.desc(), Task.id.desc()
        )
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def get_task(self, identity: CurrentIdentity, task_id: int) -> Task:
        query = self._with_relations(
            self._filter(select(Task).where(Task.id == task_id), identity)
        )
        task = (await self.db.execute(query)).scalars().first()
        if not task:
            raise NotFoundError(
                "Task not found or you do not have access to it",
                error="Task not found",
            )
        return task

    # ─── Create ──────────────────────────────────────────

    async def create_task(
        self,
        identity: CurrentIdentity,
        project_id: int,
        title: Optional[str],
        assignee_id: Optional[int] = None,
    ) -> Task:
        """Create a TODO task in a project the caller manages."""
        title = (title or "").strip()
        if not title:
            raise ValidationError("Task title is required")

        await self.projects.require_writable(identity, project_id, "add tasks to it")
        if assignee_id is not None:
            await self.users.require_assignable(assignee_id)

        task = Task(
            title=title,
            project_id=project_id,
            assignee_id=assignee_id,
            status=TaskStatus.TODO.value,
        )
        self.db.add(task)
        await self.db.commit()
        logger.info(
            "tasks.created", task_id=task.id, project_id=project_id, assignee_id=assignee_id
        )
        return await self._reload(task.id)

    # ─── Status ──────────────────────────────────────────

    async def change_status(
        self,
        identity: CurrentIdentity,
        task_id: int,
        new_status: Optional[str],
    ) -> Task:
        if not new_status or new_status not in TASK_STATUS_VALUES:
            raise ValidationError(
                f"Valid status ({', '.join(TASK_STATUS_VALUES)}) is required"
            )

        task = await self._find(identity, task_id, "permission to update it")
        old_status = task.status
        task.status = new_status
        await self.db.commit()

        logger.info("tasks.status_changed", task_id=task_id, old=old_status, new=new_status)
        return await self._reload(task_id)

    # ─── Assignment ──────────────────────────────────────

    async def assign_task(
        self,
        identity: CurrentIdentity,
        task_id: int,
        assignee_id: Optional[int],
    ) -> Task:
        """Re-assign (or unassign, with None) a task."""
        task = await self._find(identity, task_id, "permission to reassign it")
        if assignee_id is not None:
            await self.users.require_assignable(assignee_id)

        old_assignee = task.assignee_id
        task.assignee_id = assignee_id
        await self.db.commit()

        logger.info(
            "tasks.assigned", task_id=task_id, old=old_assignee, new=assignee_id
        )
        return await self._reload(task_id)

    # ─── Delete ──────────────────────────────────────────

    async def delete_task(self, identity: CurrentIdentity, task_id: int) -> None:
        task = await self._find(identity, task_id, "permission to delete it")
        await self.db.delete(task)
        await self.db.commit()
        logger.info("tasks.deleted", task_id=task_id)
