"""SQLAlchemy 2.0 declarative models mirroring the Supabase-managed schema.

The Supabase migrations are the source of truth for the schema; these
models provide ORM navigation and type-safe query building.

Uses dialect-agnostic types (Uuid, BigInteger, Text) so models work with
both PostgreSQL (production) and SQLite (tests).
"""

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import (
    BigInteger,
    Boolean,
    ForeignKey,
    Text,
    UniqueConstraint,
    Uuid,
    func,
    text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

# CodeBuild project lifecycle as recorded on projects.codebuild_status.
# Only CREATED bindings are eligible for push-triggered builds.
CODEBUILD_STATUS_CREATED = "CREATED"


class Base(DeclarativeBase):
    """Base class for all ORM models."""
    pass


class User(Base):
    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid, primary_key=True, default=uuid.uuid4
    )
    email: Mapped[str] = mapped_column(Text, unique=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        server_default=func.now(), nullable=False
    )


class GitHubInstallation(Base):
    __tablename__ = "github_installations"

    # Internal row id; projects reference this, not the GitHub-side id.
    id: Mapped[uuid.UUID] = mapped_column(
        Uuid, primary_key=True, default=uuid.uuid4
    )
    github_installation_id: Mapped[int] = mapped_column(
        BigInteger, unique=True, nullable=False
    )
    account_login: Mapped[str] = mapped_column(Text, nullable=False)
    account_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    account_type: Mapped[str] = mapped_column(
        Text, nullable=False, default="User", server_default=text("'User'")
    )
    is_active: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=True, server_default=text("true")
    )
    user_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        server_default=func.now(), onupdate=func.now(), nullable=False
    )

    projects: Mapped[list["Project"]] = relationship(back_populates="installation")


class Project(Base):
    """A user's project, optionally bound to a GitHub repository and branch.

    The binding fields (owner, repo name, installation, selected branch) plus
    the CodeBuild fields decide whether a push triggers a build.
    """

    __tablename__ = "projects"
    __table_args__ = (
        UniqueConstraint("user_id", "name", name="uq_projects_user_name"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid, primary_key=True, default=uuid.uuid4
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    name: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    github_owner: Mapped[Optional[str]] = mapped_column(Text)
    github_repo_id: Mapped[Optional[str]] = mapped_column(Text)
    github_repo_name: Mapped[Optional[str]] = mapped_column(Text)
    github_repo_url: Mapped[Optional[str]] = mapped_column(Text)
    selected_branch: Mapped[str] = mapped_column(
        Text, nullable=False, default="main", server_default=text("'main'")
    )
    is_private: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default=text("false")
    )
    is_active: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=True, server_default=text("true")
    )
    installation_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        ForeignKey("github_installations.id", ondelete="SET NULL"), nullable=True
    )
    codebuild_project_name: Mapped[Optional[str]] = mapped_column(Text)
    codebuild_status: Mapped[Optional[str]] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(
        server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        server_default=func.now(), onupdate=func.now(), nullable=False
    )

    installation: Mapped[Optional["GitHubInstallation"]] = relationship(
        back_populates="projects"
    )
    push_events: Mapped[list["PushEvent"]] = relationship(
        back_populates="project", cascade="all, delete-orphan"
    )


class PushEvent(Base):
    """One recorded push against a project (history only)."""

    __tablename__ = "push_events"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid, primary_key=True, default=uuid.uuid4
    )
    project_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("projects.id", ondelete="CASCADE"), nullable=False
    )
    branch_name: Mapped[str] = mapped_column(Text, nullable=False)
    commit_sha: Mapped[str] = mapped_column(Text, nullable=False, default="")
    commit_message: Mapped[str] = mapped_column(Text, nullable=False, default="")
    commit_author_name: Mapped[str] = mapped_column(Text, nullable=False, default="")
    pushed_at: Mapped[datetime] = mapped_column(nullable=False)

    project: Mapped["Project"] = relationship(back_populates="push_events")
