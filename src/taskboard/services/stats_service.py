"""Admin dashboard statistics.

Two flavours:
- local_stats: everything from our own tables (fast, may lag the IdP)
- dashboard_stats: user counts from the IdP's authoritative list,
  project/task counts from our tables
"""

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from taskboard.db.models import Project, Task, User
from taskboard.schemas.user import IdPUser


class StatsService:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def _count(self, column) -> int:
        return await self.db.scalar(select(func.count(column))) or 0

    async def _grouped(self, column) -> dict[str, int]:
        result = await self.db.execute(
            select(column, func.count()).group_by(column)
        )
        return {key: count for key, count in result.all()}

    async def _recent_tasks(self, limit: int = 10) -> list[Task]:
        result = await self.db.execute(
            select(Task)
            .options(
                selectinload(Task.project).selectinload(Project.manager),
                selectinload(Task.assignee),
            )
            .order_by(Task.updated_at.desc(), Task.id.desc())
            .limit(limit)
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    async def local_stats(self) -> dict:
        return {
            "overview": {
                "total_users": await self._count(User.id),
                "total_projects": await self._count(Project.id),
                "total_tasks": await self._count(Task.id),
            },
            "users_by_role": await self._grouped(User.role),
            "tasks_by_status": await self._grouped(Task.status),
            "recent_activity": await self._recent_tasks(),
        }

    async def dashboard_stats(self, idp_users: list[IdPUser]) -> dict:
        users_by_role: dict[str, int] = {}
        for user in idp_users:
            role = user.normalized_role
            users_by_role[role] = users_by_role.get(role, 0) + 1

        return {
            "overview": {
                "total_users": len(idp_users),
                "total_projects": await self._count(Project.id),
                "total_tasks": await self._count(Task.id),
            },
            "users_by_role": users_by_role,
            "tasks_by_status": await self._grouped(Task.status),
        }
