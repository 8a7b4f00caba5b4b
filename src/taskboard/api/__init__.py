"""API route aggregation.

All routers registered here get mounted in main.py under /api.

Auth is applied at the include_router level using FastAPI's
dependencies parameter. Every router here requires a verified token;
the admin router additionally requires the ADMIN role. Health lives
outside /api and stays open.
"""

from fastapi import APIRouter, Depends

from taskboard.api.admin import router as admin_router
from taskboard.api.projects import router as projects_router
from taskboard.api.tasks import router as tasks_router
from taskboard.auth.dependencies import get_current_user, require_admin

# All protected routers require authentication
_auth = [Depends(get_current_user)]

api_router = APIRouter(prefix="/api")

api_router.include_router(projects_router, tags=["projects"], dependencies=_auth)
api_router.include_router(tasks_router, tags=["tasks"], dependencies=_auth)
api_router.include_router(admin_router, tags=["admin"], dependencies=[Depends(require_admin)])
