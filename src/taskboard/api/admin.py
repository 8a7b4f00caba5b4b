"""Admin API routes — /api/admin (ADMIN only).

- GET  /users                → paginated local users with workload counts
- GET  /users/{id}           → user with owned projects and assigned tasks
- PUT  /users/{id}/role      → change a role at the IdP, then locally
- GET  /stats                → counts from local tables
- GET  /sync-users           → reconcile local users with the IdP
- GET  /dashboard-stats      → stats with user counts from the IdP

The whole router is gated with require_admin at include time.
"""

import math
from typing import Optional

import structlog
from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from taskboard.api.errors import to_http
from taskboard.auth.dependencies import CurrentIdentity, require_admin
from taskboard.db.engine import get_db
from taskboard.schemas.common import Envelope
from taskboard.schemas.user import (
    AdminStats,
    Pagination,
    RoleChange,
    SyncResult,
    UserCounts,
    UserDetail,
    UserListItem,
    UserPage,
    UserRead,
)
from taskboard.services.errors import ServiceError
from taskboard.services.idp_client import IdPClient, get_idp_client
from taskboard.services.stats_service import StatsService
from taskboard.services.user_service import UserService

logger = structlog.get_logger()

router = APIRouter(prefix="/admin")


def _user_svc(db: AsyncSession = Depends(get_db)) -> UserService:
    return UserService(db)


def _stats_svc(db: AsyncSession = Depends(get_db)) -> StatsService:
    return StatsService(db)


def _forwarded_auth(request: Request) -> Optional[str]:
    """The caller's credentials, to act on their behalf at the IdP."""
    header = request.headers.get("Authorization")
    if header:
        return header
    token = request.query_params.get("token")
    return f"Bearer {token}" if token else None


# ─── Users ───────────────────────────────────────────────


@router.get("/users", response_model=Envelope[UserPage])
async def list_users(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    search: str = Query(""),
    role: str = Query(""),
    svc: UserService = Depends(_user_svc),
):
    """Page through users; role filter is ignored unless it names a real role."""
    rows, total = await svc.list_users(page=page, limit=limit, search=search, role=role)
    users = [
        UserListItem(
            id=row["user"].id,
            email=row["user"].email,
            role=row["user"].role,
            email_verified=row["user"].email_verified,
            created_at=row["user"].created_at,
            count=UserCounts(
                projects_owned=row["projects_owned"],
                tasks_assigned=row["tasks_assigned"],
            ),
        )
        for row in rows
    ]
    return {
        "data": UserPage(
            users=users,
            pagination=Pagination(
                page=page,
                limit=limit,
                total=total,
                pages=math.ceil(total / limit),
            ),
        )
    }


@router.get("/users/{user_id}", response_model=Envelope[UserDetail])
async def get_user(
    user_id: int,
    svc: UserService = Depends(_user_svc),
):
    try:
        user = await svc.get_user_detail(user_id)
    except ServiceError as e:
        raise to_http(e)
    return {"data": UserDetail.from_user(user)}


@router.put("/users/{user_id}/role", response_model=Envelope[UserRead])
async def update_user_role(
    user_id: int,
    body: RoleChange,
    request: Request,
    identity: CurrentIdentity = Depends(require_admin),
    svc: UserService = Depends(_user_svc),
    idp: IdPClient = Depends(get_idp_client),
):
    """Change a user's role.

    The IdP is updated first; the local row only changes once the IdP
    has accepted the new role, so the two never disagree for long.
    """
    try:
        user = await svc.check_role_change(identity.user_id, user_id, body.role)
        await idp.update_role(user_id, body.role, _forwarded_auth(request))
        user = await svc.set_role(user, body.role)
    except ServiceError as e:
        raise to_http(e)
    return {"data": user, "message": f"User role successfully updated to {body.role}"}


# ─── Stats & sync ────────────────────────────────────────


@router.get("/stats", response_model=Envelope[AdminStats])
async def get_stats(svc: StatsService = Depends(_stats_svc)):
    """Counts from the local tables plus the ten most recently touched tasks."""
    return {"data": await svc.local_stats()}


@router.get("/sync-users", response_model=Envelope[SyncResult])
async def sync_users(
    request: Request,
    svc: UserService = Depends(_user_svc),
    idp: IdPClient = Depends(get_idp_client),
):
    """Reconcile the local users table with the IdP's authoritative list."""
    try:
        idp_users = await idp.list_users(_forwarded_auth(request))
    except ServiceError as e:
        raise to_http(e)

    result = await svc.reconcile(idp_users)
    logger.info("admin.users_synced", **result)
    return {
        "data": result,
        "message": "User data synchronized successfully with IdP.",
    }


@router.get("/dashboard-stats", response_model=Envelope[AdminStats])
async def dashboard_stats(
    request: Request,
    svc: StatsService = Depends(_stats_svc),
    idp: IdPClient = Depends(get_idp_client),
):
    """Stats with user counts taken from the IdP instead of the local mirror."""
    try:
        idp_users = await idp.list_users(_forwarded_auth(request))
    except ServiceError as e:
        raise to_http(e)
    return {"data": await svc.dashboard_stats(idp_users)}
