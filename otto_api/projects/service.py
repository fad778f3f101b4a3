"""Project CRUD.

A project belongs to one user. Binding it to a repository requires one of
the user's GitHub installations; several projects may bind the same
repository (typically on different branches), and a push fans out to all
of them.
"""

import logging
import uuid

from httpx import HTTPError
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from otto_api.core.config import Settings
from otto_api.core.errors import (
    DuplicateProjectError,
    InstallationNotFoundError,
    ProjectNotFoundError,
)
from otto_api.db.models import GitHubInstallation, Project, PushEvent
from otto_api.github import client as github_client
from otto_api.github.auth import GitHubAppError
from otto_api.projects.schemas import (
    CreateProjectRequest,
    CreateProjectWithGithubRequest,
    RepositoryBinding,
    UpdateBuildRequest,
)

logger = logging.getLogger(__name__)


async def _load_project(
    db: AsyncSession, user_id: uuid.UUID, project_id: uuid.UUID
) -> Project:
    result = await db.execute(
        select(Project)
        .options(selectinload(Project.installation))
        .where(Project.id == project_id, Project.user_id == user_id)
        .execution_options(populate_existing=True)
    )
    project = result.scalar_one_or_none()
    if project is None:
        raise ProjectNotFoundError(project_id)
    return project


async def _user_installation(
    db: AsyncSession, user_id: uuid.UUID, installation_id: uuid.UUID
) -> GitHubInstallation:
    result = await db.execute(
        select(GitHubInstallation).where(
            GitHubInstallation.id == installation_id,
            GitHubInstallation.user_id == user_id,
        )
    )
    installation = result.scalar_one_or_none()
    if installation is None:
        raise InstallationNotFoundError(installation_id)
    return installation


async def _add_project(db: AsyncSession, project: Project) -> None:
    """Insert a project, enforcing one name per user.

    The pre-check gives the common case a clean error; the IntegrityError
    branch covers a concurrent insert of the same name.
    """
    existing = await db.execute(
        select(Project.id).where(
            Project.user_id == project.user_id, Project.name == project.name
        )
    )
    if existing.scalar_one_or_none() is not None:
        raise DuplicateProjectError("A project with the same name already exists")

    db.add(project)
    try:
        await db.flush()
    except IntegrityError as exc:
        raise DuplicateProjectError("A project with the same name already exists") from exc


def _apply_binding(project: Project, binding: RepositoryBinding) -> None:
    project.installation_id = binding.installation_id
    project.github_repo_id = binding.github_repo_id
    project.github_repo_url = binding.github_repo_url
    project.github_repo_name = binding.github_repo_name
    project.github_owner = binding.github_owner
    project.is_private = binding.is_private
    project.selected_branch = binding.selected_branch


async def create_project(
    db: AsyncSession, user_id: uuid.UUID, body: CreateProjectRequest
) -> Project:
    project = Project(user_id=user_id, name=body.name, description=body.description)
    await _add_project(db, project)
    logger.info("Created project %s for user %s", project.id, user_id)
    return await _load_project(db, user_id, project.id)


async def create_project_with_github(
    db: AsyncSession, user_id: uuid.UUID, body: CreateProjectWithGithubRequest
) -> Project:
    await _user_installation(db, user_id, body.installation_id)

    project = Project(user_id=user_id, name=body.name, description=body.description)
    _apply_binding(project, body)
    await _add_project(db, project)
    logger.info(
        "Created project %s bound to %s/%s@%s",
        project.id, body.github_owner, body.github_repo_name, body.selected_branch,
    )
    return await _load_project(db, user_id, project.id)


async def list_projects(db: AsyncSession, user_id: uuid.UUID) -> list[Project]:
    result = await db.execute(
        select(Project)
        .options(selectinload(Project.installation))
        .where(Project.user_id == user_id)
        .order_by(Project.created_at.desc())
    )
    return list(result.scalars().all())


async def get_project(
    db: AsyncSession, user_id: uuid.UUID, project_id: uuid.UUID
) -> Project:
    return await _load_project(db, user_id, project_id)


async def connect_repository(
    db: AsyncSession,
    user_id: uuid.UUID,
    project_id: uuid.UUID,
    body: RepositoryBinding,
) -> Project:
    project = await _load_project(db, user_id, project_id)
    await _user_installation(db, user_id, body.installation_id)

    _apply_binding(project, body)
    await db.flush()
    logger.info(
        "Project %s bound to %s/%s@%s",
        project_id, body.github_owner, body.github_repo_name, body.selected_branch,
    )
    return await _load_project(db, user_id, project_id)


async def list_project_branches(
    db: AsyncSession, settings: Settings, user_id: uuid.UUID, project_id: uuid.UUID
) -> list[dict]:
    """List branches of the project's repository.

    Raises ValueError when the project has no repository or installation.
    """
    project = await _load_project(db, user_id, project_id)
    if project.installation is None or not project.github_owner or not project.github_repo_name:
        raise ValueError("Project has no GitHub installation")

    token = await github_client.get_installation_token(
        settings, project.installation.github_installation_id
    )
    return await github_client.list_branches(
        token, project.github_owner, project.github_repo_name
    )


async def update_selected_branch(
    db: AsyncSession,
    settings: Settings,
    user_id: uuid.UUID,
    project_id: uuid.UUID,
    branch_name: str,
) -> Project:
    """Change the branch pushes must land on to trigger a build.

    The existence check against GitHub is advisory: when GitHub cannot be
    reached, or does not list the branch yet, the update still goes ahead.
    """
    project = await _load_project(db, user_id, project_id)

    if project.installation is not None and project.github_owner and project.github_repo_name:
        try:
            branches = await list_project_branches(db, settings, user_id, project_id)
        except (HTTPError, GitHubAppError) as exc:
            logger.warning("Could not verify branch %r for project %s: %s", branch_name, project_id, exc)
        else:
            if not any(b.get("name") == branch_name for b in branches):
                logger.warning(
                    "Branch %r not found on %s/%s; updating anyway",
                    branch_name, project.github_owner, project.github_repo_name,
                )

    project.selected_branch = branch_name
    await db.flush()
    logger.info("Project %s selected branch -> %s", project_id, branch_name)
    return await _load_project(db, user_id, project_id)


async def update_build_definition(
    db: AsyncSession,
    user_id: uuid.UUID,
    project_id: uuid.UUID,
    body: UpdateBuildRequest,
) -> Project:
    project = await _load_project(db, user_id, project_id)
    project.codebuild_project_name = body.build_project_name
    project.codebuild_status = body.build_status
    await db.flush()
    logger.info(
        "Project %s CodeBuild project -> %s (%s)",
        project_id, body.build_project_name, body.build_status,
    )
    return await _load_project(db, user_id, project_id)


async def list_push_events(
    db: AsyncSession, user_id: uuid.UUID, project_id: uuid.UUID, limit: int = 50
) -> list[PushEvent]:
    await _load_project(db, user_id, project_id)
    result = await db.execute(
        select(PushEvent)
        .where(PushEvent.project_id == project_id)
        .order_by(PushEvent.pushed_at.desc())
        .limit(limit)
    )
    return list(result.scalars().all())
