"""SQLAlchemy ORM models — single source of truth for the database schema.

Declarative ORM mapping with SQLAlchemy 2.0 style (Mapped[] + mapped_column).
Each class = one table. Alembic migrations are generated from these models.

Key points:
- User ids come from the identity provider, so they are not autoincrement.
- Roles and task statuses are plain strings; the allowed values live in
  Role / TaskStatus and are checked in the service layer.
- Timestamps are set client-side so they are readable right after flush.
"""

import enum
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import (
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class Base(DeclarativeBase):
    """Base class for all models."""
    pass


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Role(str, enum.Enum):
    USER = "USER"
    MANAGER = "MANAGER"
    ADMIN = "ADMIN"


class TaskStatus(str, enum.Enum):
    TODO = "TODO"
    IN_PROGRESS = "IN_PROGRESS"
    DONE = "DONE"


ROLE_VALUES = [r.value for r in Role]
TASK_STATUS_VALUES = [s.value for s in TaskStatus]
PROJECT_MANAGER_ROLES = {Role.MANAGER.value, Role.ADMIN.value}


class User(Base):
    """Local mirror of an identity-provider user.

    Rows are upserted from token claims on every authenticated request
    and reconciled in bulk by the admin sync endpoint.
    """

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=False)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    role: Mapped[str] = mapped_column(
        String(20), nullable=False, default=Role.USER.value
    )  # USER, MANAGER, ADMIN
    email_verified: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False
    )
    linkedin_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow
    )

    # Relationships
    projects_owned: Mapped[list["Project"]] = relationship(
        back_populates="manager",
        order_by=lambda: (Project.created_at.desc(), Project.id.desc()),
    )
    tasks_assigned: Mapped[list["Task"]] = relationship(
        back_populates="assignee",
        order_by=lambda: (Task.created_at.desc(), Task.id.desc()),
    )


class Project(Base):
    """A project owned by a MANAGER (or ADMIN)."""

    __tablename__ = "projects"
    __table_args__ = (
        Index("ix_projects_manager", "manager_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    manager_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id"), nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow
    )

    # Relationships
    manager: Mapped["User"] = relationship(back_populates="projects_owned")
    tasks: Mapped[list["Task"]] = relationship(
        back_populates="project",
        order_by=lambda: (Task.created_at.desc(), Task.id.desc()),
    )


class Task(Base):
    """A unit of work inside a project, optionally assigned to a USER."""

    __tablename__ = "tasks"
    __table_args__ = (
        Index("ix_tasks_project", "project_id"),
        Index("ix_tasks_assignee", "assignee_id"),
        Index("ix_tasks_status", "status"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=TaskStatus.TODO.value
    )  # TODO, IN_PROGRESS, DONE
    project_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("projects.id"), nullable=False
    )
    assignee_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow
    )

    # Relationships
    project: Mapped["Project"] = relationship(back_populates="tasks")
    assignee: Mapped[Optional["User"]] = relationship(back_populates="tasks_assigned")
