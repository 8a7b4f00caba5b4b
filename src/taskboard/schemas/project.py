"""Pydantic schemas for projects."""

from datetime import datetime
from typing import Optional

from taskboard.schemas.common import CamelModel, UserBrief, UserWithRole


class ProjectCreate(CamelModel):
    name: Optional[str] = None
    description: Optional[str] = None
    # Only honoured for ADMIN callers; managers always own what they create.
    manager_id: Optional[int] = None


class ProjectUpdate(CamelModel):
    """Partial update — blank or missing fields keep their current value."""
    name: Optional[str] = None
    description: Optional[str] = None


class ProjectTask(CamelModel):
    id: int
    title: str
    status: str
    project_id: int
    assignee_id: Optional[int]
    assignee: Optional[UserBrief]
    created_at: datetime
    updated_at: datetime


class ProjectRead(CamelModel):
    id: int
    name: str
    description: Optional[str]
    manager_id: int
    manager: UserWithRole
    tasks: list[ProjectTask]
    created_at: datetime
    updated_at: datetime
