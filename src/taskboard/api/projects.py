"""Project API routes — /api/projects.

Routes just translate HTTP to service calls and handle error responses.
Reads are open to every authenticated caller (the service scopes rows
by role); writes need MANAGER or ADMIN. Task creation lives here too,
since tasks are created inside a project.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from taskboard.api.errors import to_http
from taskboard.auth.dependencies import (
    CurrentIdentity,
    get_current_user,
    require_manager_or_admin,
)
from taskboard.db.engine import get_db
from taskboard.schemas.common import Envelope
from taskboard.schemas.project import ProjectCreate, ProjectRead, ProjectUpdate
from taskboard.schemas.task import TaskCreate, TaskRead
from taskboard.services.errors import ServiceError
from taskboard.services.project_service import ProjectService
from taskboard.services.task_service import TaskService

router = APIRouter(prefix="/projects")


def _project_svc(db: AsyncSession = Depends(get_db)) -> ProjectService:
    return ProjectService(db)


def _task_svc(db: AsyncSession = Depends(get_db)) -> TaskService:
    return TaskService(db)


@router.get("", response_model=Envelope[list[ProjectRead]])
async def list_projects(
    identity: CurrentIdentity = Depends(get_current_user),
    svc: ProjectService = Depends(_project_svc),
):
    """Projects visible to the caller, newest first."""
    return {"data": await svc.list_projects(identity)}


@router.get("/{project_id}", response_model=Envelope[ProjectRead])
async def get_project(
    project_id: int,
    identity: CurrentIdentity = Depends(get_current_user),
    svc: ProjectService = Depends(_project_svc),
):
    try:
        return {"data": await svc.get_project(identity, project_id)}
    except ServiceError as e:
        raise to_http(e)


@router.post("", response_model=Envelope[ProjectRead], status_code=201)
async def create_project(
    body: ProjectCreate,
    identity: CurrentIdentity = Depends(require_manager_or_admin),
    svc: ProjectService = Depends(_project_svc),
):
    """Create a project managed by the caller (or, for admins, by manager_id)."""
    try:
        project = await svc.create_project(
            identity,
            name=body.name,
            description=body.description,
            manager_id=body.manager_id,
        )
    except ServiceError as e:
        raise to_http(e)
    return {"data": project, "message": "Project created successfully"}


@router.put("/{project_id}", response_model=Envelope[ProjectRead])
async def update_project(
    project_id: int,
    body: ProjectUpdate,
    identity: CurrentIdentity = Depends(require_manager_or_admin),
    svc: ProjectService = Depends(_project_svc),
):
    try:
        project = await svc.update_project(
            identity, project_id, name=body.name, description=body.description
        )
    except ServiceError as e:
        raise to_http(e)
    return {"data": project, "message": "Project updated successfully"}


@router.delete("/{project_id}", response_model=Envelope[None])
async def delete_project(
    project_id: int,
    identity: CurrentIdentity = Depends(require_manager_or_admin),
    svc: ProjectService = Depends(_project_svc),
):
    """Delete a project together with its tasks."""
    try:
        await svc.delete_project(identity, project_id)
    except ServiceError as e:
        raise to_http(e)
    return {"message": "Project deleted successfully"}


@router.post("/{project_id}/tasks", response_model=Envelope[TaskRead], status_code=201)
async def create_task(
    project_id: int,
    body: TaskCreate,
    identity: CurrentIdentity = Depends(require_manager_or_admin),
    svc: TaskService = Depends(_task_svc),
):
    """Create a TODO task in the project, optionally assigned to a USER."""
    try:
        task = await svc.create_task(
            identity, project_id, title=body.title, assignee_id=body.assignee_id
        )
    except ServiceError as e:
        raise to_http(e)
    return {"data": task, "message": "Task created successfully"}
