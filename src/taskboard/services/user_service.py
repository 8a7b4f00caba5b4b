"""User service — the local mirror of the identity provider's users.

The IdP is authoritative for who exists and which role they hold. We
keep a local copy so that projects and tasks can reference users by
foreign key, and so admins can browse workload per user. Rows arrive
two ways:
1. Per request, from the caller's own token claims (sync_from_identity)
2. In bulk, from the IdP admin API (reconcile)
"""

from typing import Optional

import structlog
from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from taskboard.db.models import (
    PROJECT_MANAGER_ROLES,
    ROLE_VALUES,
    Project,
    Role,
    Task,
    User,
)
from taskboard.schemas.user import IdPUser
from taskboard.services.errors import NotFoundError, ValidationError

logger = structlog.get_logger()


class UserService:
    """Business logic for the local user mirror."""

    def __init__(self, db: AsyncSession):
        self.db = db

    # ─── Token-driven sync ───────────────────────────────

    async def sync_from_identity(
        self,
        user_id: int,
        email: str,
        role: Optional[str],
    ) -> Optional[User]:
        """Upsert the caller from their token claims.

        Failures are logged and swallowed: a stale mirror row must not
        lock a user with a valid token out of the API.
        """
        try:
            user = await self.db.get(User, user_id)
            if user is None:
                user = User(
                    id=user_id,
                    email=email,
                    role=role or Role.USER.value,
                    email_verified=True,
                )
                self.db.add(user)
            else:
                user.email = email
                user.email_verified = True
                if role:
                    user.role = role
            await self.db.commit()
            return user
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.warning("users.sync_failed", user_id=user_id, error=str(e))
            return None

    # ─── Read ────────────────────────────────────────────

    async def get_user(self, user_id: int) -> Optional[User]:
        return await self.db.get(User, user_id)

    async def require_assignable(self, user_id: int) -> User:
        """Load a prospective task assignee. Only USERs can hold tasks."""
        user = await self.get_user(user_id)
        if not user:
            raise ValidationError("Assigned user not found")
        if user.role != Role.USER.value:
            raise ValidationError(
                f"Tasks can only be assigned to users with role USER "
                f"(user {user_id} is {user.role})"
            )
        return user

    async def require_project_manager(self, user_id: int) -> User:
        """Load a prospective project manager. Must be MANAGER or ADMIN."""
        user = await self.get_user(user_id)
        if not user:
            raise ValidationError("Manager user not found")
        if user.role not in PROJECT_MANAGER_ROLES:
            raise ValidationError(
                f"Projects can only be managed by MANAGER or ADMIN users "
                f"(user {user_id} is {user.role})"
            )
        return user

    async def list_users(
        self,
        page: int = 1,
        limit: int = 10,
        search: str = "",
        role: str = "",
    ) -> tuple[list[dict], int]:
        """Page through users, newest first, with ownership counts.

        Unknown role filters are ignored rather than rejected.
        """
        filters = []
        if search:
            filters.append(User.email.icontains(search, autoescape=True))
        if role and role.upper() in ROLE_VALUES:
            filters.append(User.role == role.upper())

        projects_count = (
            select(func.count(Project.id))
            .where(Project.manager_id == User.id)
            .correlate(User)
            .scalar_subquery()
        )
        tasks_count = (
            select(func.count(Task.id))
            .where(Task.assignee_id == User.id)
            .correlate(User)
            .scalar_subquery()
        )

        query = (
            select(User, projects_count, tasks_count)
            .where(*filters)
            .order_by(User.created_at.desc(), User.id.desc())
            .limit(limit)
            .offset((page - 1) * limit)
        )
        rows = (await self.db.execute(query)).all()

        total = await self.db.scalar(
            select(func.count(User.id)).where(*filters)
        )

        users = [
            {
                "user": user,
                "projects_owned": projects or 0,
                "tasks_assigned": tasks or 0,
            }
            for user, projects, tasks in rows
        ]
        return users, total or 0

    async def get_user_detail(self, user_id: int) -> User:
        """User with owned projects (and their tasks) and assigned tasks."""
        result = await self.db.execute(
            select(User)
            .where(User.id == user_id)
            .options(
                selectinload(User.projects_owned).selectinload(Project.tasks),
                selectinload(User.tasks_assigned).selectinload(Task.project),
            )
            .execution_options(populate_existing=True)
        )
        user = result.scalars().first()
        if not user:
            raise NotFoundError("User not found", error="User not found")
        return user

    # ─── Role changes ────────────────────────────────────

    async def check_role_change(
        self,
        actor_id: Optional[int],
        user_id: int,
        new_role: str,
    ) -> User:
        """Validate a role transition before anything is sent to the IdP.

        Rules:
        - the role must be one of USER / MANAGER / ADMIN
        - nobody changes their own role (an admin cannot demote itself)
        - a user who still manages projects cannot become USER
        - a USER who still holds tasks cannot leave USER
        """
        if new_role not in ROLE_VALUES:
            raise ValidationError("Valid role is required")
        if actor_id is not None and user_id == actor_id:
            raise ValidationError(
                "You cannot change your own role", error="Invalid operation"
            )

        user = await self.get_user(user_id)
        if not user:
            raise NotFoundError("User not found", error="User not found")

        if new_role == Role.USER.value and user.role in PROJECT_MANAGER_ROLES:
            owned = await self.db.scalar(
                select(func.count(Project.id)).where(Project.manager_id == user_id)
            )
            if owned:
                raise ValidationError(
                    f"User still manages {owned} project(s); "
                    "reassign or delete them before demoting to USER",
                    error="Invalid operation",
                )

        if user.role == Role.USER.value and new_role != Role.USER.value:
            assigned = await self.db.scalar(
                select(func.count(Task.id)).where(Task.assignee_id == user_id)
            )
            if assigned:
                raise ValidationError(
                    f"User still has {assigned} assigned task(s); "
                    "reassign them before changing the role",
                    error="Invalid operation",
                )

        return user

    async def set_role(self, user: User, new_role: str) -> User:
        old_role = user.role
        user.role = new_role
        await self.db.commit()
        logger.info(
            "users.role_changed", user_id=user.id, old_role=old_role, new_role=new_role
        )
        return user

    # ─── Bulk reconcile ──────────────────────────────────

    async def reconcile(self, idp_users: list[IdPUser]) -> dict:
        """Make the local table match the IdP's user list, in one transaction.

        Users missing from the IdP are deleted, except those who still
        manage projects: deleting them would orphan the projects, so they
        are kept and reported as skipped. Tasks assigned to deleted users
        become unassigned.

        An email the IdP now lists under a different id is released first:
        a kept stale row gets a `deleted+<id>` placeholder (counted as
        renamed) and a row that is about to receive its own new email gets
        a temporary one, so swaps never trip the unique constraint.
        """
        authoritative = {u.id: u for u in idp_users}

        try:
            local_ids = set((await self.db.execute(select(User.id))).scalars().all())
            stale = local_ids - authoritative.keys()

            skipped: set[int] = set()
            if stale:
                managing = await self.db.execute(
                    select(Project.manager_id)
                    .where(Project.manager_id.in_(stale))
                    .distinct()
                )
                skipped = set(managing.scalars().all())
                to_delete = stale - skipped

                if to_delete:
                    logger.info("users.reconcile_deleting", count=len(to_delete))
                    await self.db.execute(
                        update(Task)
                        .where(Task.assignee_id.in_(to_delete))
                        .values(assignee_id=None)
                    )
                    await self.db.execute(
                        delete(User).where(User.id.in_(to_delete))
                    )
                if skipped:
                    logger.warning(
                        "users.reconcile_kept_managers", user_ids=sorted(skipped)
                    )

            renamed = await self._release_claimed_emails(authoritative, skipped)

            created = updated = 0
            logger.info("users.reconcile_upserting", count=len(authoritative))
            for idp_user in authoritative.values():
                user = await self.db.get(User, idp_user.id)
                if user is None:
                    user = User(
                        id=idp_user.id,
                        email=idp_user.email,
                        role=idp_user.normalized_role,
                        email_verified=idp_user.email_verified,
                    )
                    if idp_user.created_at:
                        user.created_at = idp_user.created_at
                    self.db.add(user)
                    created += 1
                else:
                    user.email = idp_user.email
                    user.role = idp_user.normalized_role
                    user.email_verified = idp_user.email_verified
                    updated += 1
                # Flush per row so a duplicate email surfaces as the offending row.
                await self.db.flush()

            await self.db.commit()
        except SQLAlchemyError:
            await self.db.rollback()
            raise

        return {
            "created": created,
            "updated": updated,
            "deleted": len(stale) - len(skipped),
            "skipped": len(skipped),
            "renamed": renamed,
        }

    async def _release_claimed_emails(
        self, authoritative: dict[int, IdPUser], kept_stale: set[int]
    ) -> int:
        owner_of = {u.email: u.id for u in authoritative.values()}
        result = await self.db.execute(
            select(User).where(User.email.in_(list(owner_of)))
        )
        renamed = 0
        for user in result.scalars().all():
            if owner_of[user.email] == user.id:
                continue
            claimed_by = owner_of[user.email]
            domain = user.email.partition("@")[2]
            if user.id in kept_stale:
                user.email = f"deleted+{user.id}@{domain}"
                renamed += 1
                logger.warning(
                    "users.reconcile_email_released",
                    user_id=user.id,
                    claimed_by=claimed_by,
                )
            else:
                user.email = f"pending+{user.id}@{domain}"
        await self.db.flush()
        return renamed
