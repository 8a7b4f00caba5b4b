"""Pydantic schemas for users and the admin surface."""

from datetime import datetime
from typing import Optional

from pydantic import Field

from taskboard.auth.roles import to_simple_role
from taskboard.db.models import Role, User
from taskboard.schemas.common import CamelModel
from taskboard.schemas.task import TaskRead


# ─── Identity provider payloads ─────────────────────────

class IdPUser(CamelModel):
    """One entry of the IdP's GET /api/admin/users response."""
    id: int
    email: str
    role: Optional[str] = None
    email_verified: bool = False
    created_at: Optional[datetime] = None

    @property
    def normalized_role(self) -> str:
        return to_simple_role(self.role) or Role.USER.value


# ─── Listing ────────────────────────────────────────────

class UserCounts(CamelModel):
    projects_owned: int = 0
    tasks_assigned: int = 0


class UserListItem(CamelModel):
    id: int
    email: str
    role: str
    email_verified: bool
    created_at: datetime
    count: UserCounts = Field(default_factory=UserCounts, alias="_count")


class Pagination(CamelModel):
    page: int
    limit: int
    total: int
    pages: int


class UserPage(CamelModel):
    users: list[UserListItem]
    pagination: Pagination


# ─── Detail ─────────────────────────────────────────────

class TaskCount(CamelModel):
    tasks: int = 0


class OwnedProject(CamelModel):
    id: int
    name: str
    description: Optional[str]
    created_at: datetime
    count: TaskCount = Field(default_factory=TaskCount, alias="_count")


class ProjectRef(CamelModel):
    id: int
    name: str


class AssignedTask(CamelModel):
    id: int
    title: str
    status: str
    created_at: datetime
    project: ProjectRef


class UserDetail(CamelModel):
    id: int
    email: str
    role: str
    email_verified: bool
    linkedin_id: Optional[str]
    created_at: datetime
    projects_owned: list[OwnedProject]
    tasks_assigned: list[AssignedTask]

    @classmethod
    def from_user(cls, user: User) -> "UserDetail":
        """Build from a User with projects_owned.tasks and tasks_assigned.project loaded."""
        return cls(
            id=user.id,
            email=user.email,
            role=user.role,
            email_verified=user.email_verified,
            linkedin_id=user.linkedin_id,
            created_at=user.created_at,
            projects_owned=[
                OwnedProject(
                    id=p.id,
                    name=p.name,
                    description=p.description,
                    created_at=p.created_at,
                    count=TaskCount(tasks=len(p.tasks)),
                )
                for p in user.projects_owned
            ],
            tasks_assigned=[AssignedTask.model_validate(t) for t in user.tasks_assigned],
        )


# ─── Role changes ───────────────────────────────────────

class RoleChange(CamelModel):
    role: Optional[str] = None


class UserRead(CamelModel):
    id: int
    email: str
    role: str
    email_verified: bool
    created_at: datetime
    updated_at: datetime


# ─── Stats & sync ───────────────────────────────────────

class StatsOverview(CamelModel):
    total_users: int
    total_projects: int
    total_tasks: int


class AdminStats(CamelModel):
    overview: StatsOverview
    users_by_role: dict[str, int]
    tasks_by_status: dict[str, int]
    recent_activity: Optional[list[TaskRead]] = None


class SyncResult(CamelModel):
    created: int
    updated: int
    deleted: int
    skipped: int
    renamed: int = 0
