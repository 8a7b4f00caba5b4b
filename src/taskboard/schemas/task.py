"""Pydantic schemas for tasks.

Separate schemas for create/update/read keeps the API clean.
Required fields are Optional here on purpose: a missing title and a
blank title get the same 400 from the service layer.
"""

from datetime import datetime
from typing import Optional

from taskboard.schemas.common import CamelModel, UserBrief


class TaskCreate(CamelModel):
    title: Optional[str] = None
    assignee_id: Optional[int] = None


class StatusChange(CamelModel):
    """Request to change task status: TODO, IN_PROGRESS or DONE."""
    status: Optional[str] = None


class TaskAssign(CamelModel):
    """Re-assign a task. null unassigns it."""
    assignee_id: Optional[int] = None


class TaskProject(CamelModel):
    id: int
    name: str
    manager: UserBrief


class TaskRead(CamelModel):
    id: int
    title: str
    status: str
    project_id: int
    assignee_id: Optional[int]
    project: TaskProject
    assignee: Optional[UserBrief]
    created_at: datetime
    updated_at: datetime
