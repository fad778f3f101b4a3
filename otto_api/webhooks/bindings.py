"""Database collaborators of the push dispatcher.

Both classes open a fresh session per call from the session factory, so
the dispatcher can run them from concurrent per-project tasks without
sharing a session.
"""

import logging
import uuid
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from otto_api.db.models import (
    CODEBUILD_STATUS_CREATED,
    GitHubInstallation,
    Project,
    PushEvent as PushEventRow,
)
from otto_api.github.webhooks import PushEvent
from otto_api.webhooks.types import HistoryWriteResult, ProjectBuildBinding

logger = logging.getLogger(__name__)


class ProjectBindingStore:
    """Reads the project bindings a push can affect."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def find_provisioned(
        self,
        owner: str,
        repo_name: str,
        github_installation_id: int,
    ) -> list[ProjectBuildBinding]:
        """Bindings for owner/repo under the installation whose CodeBuild project exists."""
        stmt = (
            select(
                Project.id,
                Project.selected_branch,
                Project.codebuild_project_name,
                Project.codebuild_status,
            )
            .join(GitHubInstallation, Project.installation_id == GitHubInstallation.id)
            .where(
                Project.github_owner == owner,
                Project.github_repo_name == repo_name,
                GitHubInstallation.github_installation_id == github_installation_id,
                Project.codebuild_status == CODEBUILD_STATUS_CREATED,
            )
        )
        async with self._session_factory() as session:
            rows = (await session.execute(stmt)).all()

        return [
            ProjectBuildBinding(
                project_id=row.id,
                selected_branch=row.selected_branch,
                build_project_name=row.codebuild_project_name,
                build_status=row.codebuild_status,
            )
            for row in rows
        ]


class PushHistoryRecorder:
    """Appends push_events rows. Returns a result instead of raising."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def record(self, project_id: uuid.UUID, event: PushEvent) -> HistoryWriteResult:
        row = PushEventRow(
            project_id=project_id,
            branch_name=event.pushed_branch,
            commit_sha=event.commit_sha,
            commit_message=event.commit_message,
            commit_author_name=event.pusher_name,
            pushed_at=datetime.now(timezone.utc),
        )
        try:
            async with self._session_factory() as session:
                session.add(row)
                await session.commit()
        except SQLAlchemyError as exc:
            return HistoryWriteResult(project_id=project_id, ok=False, error=str(exc))

        return HistoryWriteResult(project_id=project_id, ok=True)
