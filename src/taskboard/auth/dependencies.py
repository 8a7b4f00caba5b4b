"""FastAPI auth dependencies.

These are used as Depends() in route handlers to extract and validate
the current identity from the request.

Pipeline: bearer token → JWKS verification → role normalization →
local user sync → route-level role gate.
"""

import asyncio
from typing import Optional

import structlog
from fastapi import Depends, HTTPException, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from taskboard.auth.jwks import TokenError, TokenVerifier, get_token_verifier
from taskboard.auth.roles import normalize_role
from taskboard.db.engine import get_db
from taskboard.db.models import Role
from taskboard.services.user_service import UserService

logger = structlog.get_logger()

_UNAUTHORIZED = {
    "error": "Invalid or expired token",
    "message": "Authentication required",
}
_NO_USER_INFO = {
    "error": "Authentication required",
    "message": "No user information found",
}


class CurrentIdentity:
    """The authenticated caller.

    user_id is the IdP's numeric user id (the `userId` claim), email
    comes from `sub`. role is already normalized to USER/MANAGER/ADMIN
    or None when the token carried nothing recognizable.
    """

    def __init__(
        self,
        user_id: Optional[int] = None,
        email: Optional[str] = None,
        role: Optional[str] = None,
        claims: Optional[dict] = None,
    ):
        self.user_id = user_id
        self.email = email
        self.role = role
        self.claims = claims or {}

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN.value

    @property
    def is_manager(self) -> bool:
        return self.role == Role.MANAGER.value

    def describe(self) -> str:
        """Short form used in request logs."""
        return f"user:{self.email} (role:{self.role})"


def _extract_token(authorization: Optional[str], query_token: Optional[str]) -> Optional[str]:
    if authorization:
        scheme, _, value = authorization.partition(" ")
        if scheme == "Bearer" and value:
            return value.strip()
    return query_token or None


def _coerce_user_id(claims: dict) -> Optional[int]:
    raw = claims.get("userId", claims.get("id"))
    try:
        return int(raw) if raw is not None else None
    except (TypeError, ValueError):
        return None


def identity_from_claims(claims: dict) -> CurrentIdentity:
    return CurrentIdentity(
        user_id=_coerce_user_id(claims),
        email=claims.get("sub"),
        role=normalize_role(claims),
        claims=claims,
    )


async def get_current_user_optional(
    request: Request,
    token: Optional[str] = Query(None, include_in_schema=False),
    verifier: TokenVerifier = Depends(get_token_verifier),
) -> Optional[CurrentIdentity]:
    """Extract current identity (optional — returns None if no token).

    The token comes from the Authorization header, or the `token` query
    parameter as a fallback for links that cannot set headers.
    """
    raw = _extract_token(request.headers.get("Authorization"), token)
    if not raw:
        return None

    try:
        # JWKS fetches are blocking HTTP calls on cache miss.
        claims = await asyncio.to_thread(verifier.verify, raw)
    except TokenError as e:
        logger.info("auth.token_rejected", reason=str(e))
        raise HTTPException(
            status_code=401,
            detail=_UNAUTHORIZED,
            headers={"WWW-Authenticate": "Bearer"},
        )
    return identity_from_claims(claims)


async def get_current_user(
    request: Request,
    identity: Optional[CurrentIdentity] = Depends(get_current_user_optional),
    db: AsyncSession = Depends(get_db),
) -> CurrentIdentity:
    """Extract current identity (required — 401 if no token).

    Also mirrors the caller into the local users table so that project
    and task foreign keys always have a row to point at.
    """
    if not identity:
        raise HTTPException(
            status_code=401,
            detail=_UNAUTHORIZED,
            headers={"WWW-Authenticate": "Bearer"},
        )
    # Scope filters key on the caller's id; without one nothing can be scoped.
    if identity.user_id is None:
        raise HTTPException(
            status_code=401,
            detail=_NO_USER_INFO,
            headers={"WWW-Authenticate": "Bearer"},
        )

    request.state.identity = identity
    structlog.contextvars.bind_contextvars(user_id=identity.user_id)

    if identity.email:
        await UserService(db).sync_from_identity(
            user_id=identity.user_id,
            email=identity.email,
            role=identity.role,
        )
    return identity


def require_role(*roles: Role):
    """Build a dependency that admits only the given roles.

    401 when the token carried no role at all, 403 when the role is
    known but not allowed.
    """
    allowed = [r.value for r in roles]

    async def _check(
        identity: CurrentIdentity = Depends(get_current_user),
    ) -> CurrentIdentity:
        if not identity.role:
            raise HTTPException(status_code=401, detail=_NO_USER_INFO)
        if identity.role not in allowed:
            raise HTTPException(
                status_code=403,
                detail={
                    "error": "Insufficient permissions",
                    "message": f"This action requires one of: {', '.join(allowed)}",
                },
            )
        return identity

    return _check


require_any_role = require_role(Role.USER, Role.MANAGER, Role.ADMIN)
require_manager_or_admin = require_role(Role.MANAGER, Role.ADMIN)
require_admin = require_role(Role.ADMIN)
