"""Project endpoints. All require authentication."""

import uuid

from fastapi import APIRouter, Depends, HTTPException, Query, status
from httpx import HTTPError
from sqlalchemy.ext.asyncio import AsyncSession

from otto_api.auth.dependencies import get_current_user
from otto_api.core.config import Settings, get_app_settings
from otto_api.core.errors import (
    DuplicateProjectError,
    InstallationNotFoundError,
    ProjectNotFoundError,
)
from otto_api.db.session import get_db
from otto_api.github.auth import GitHubAppError
from otto_api.github.schemas import BranchItem
from otto_api.projects import service
from otto_api.projects.schemas import (
    CreateProjectRequest,
    CreateProjectWithGithubRequest,
    ProjectResponse,
    PushEventResponse,
    RepositoryBinding,
    UpdateBranchRequest,
    UpdateBuildRequest,
)

router = APIRouter(prefix="/projects", tags=["projects"])


def _not_found() -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Project not found")


def _invalid_installation() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        detail="Invalid GitHub installation for this user",
    )


@router.post("", response_model=ProjectResponse, status_code=status.HTTP_201_CREATED)
async def create_project(
    body: CreateProjectRequest,
    db: AsyncSession = Depends(get_db),
    user_id: uuid.UUID = Depends(get_current_user),
) -> ProjectResponse:
    try:
        project = await service.create_project(db, user_id, body)
    except DuplicateProjectError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))
    return ProjectResponse.model_validate(project)


@router.post(
    "/with-github", response_model=ProjectResponse, status_code=status.HTTP_201_CREATED
)
async def create_project_with_github(
    body: CreateProjectWithGithubRequest,
    db: AsyncSession = Depends(get_db),
    user_id: uuid.UUID = Depends(get_current_user),
) -> ProjectResponse:
    try:
        project = await service.create_project_with_github(db, user_id, body)
    except InstallationNotFoundError:
        raise _invalid_installation()
    except DuplicateProjectError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))
    return ProjectResponse.model_validate(project)


@router.get("", response_model=list[ProjectResponse])
async def list_projects(
    db: AsyncSession = Depends(get_db),
    user_id: uuid.UUID = Depends(get_current_user),
) -> list[ProjectResponse]:
    projects = await service.list_projects(db, user_id)
    return [ProjectResponse.model_validate(p) for p in projects]


@router.get("/{project_id}", response_model=ProjectResponse)
async def get_project(
    project_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    user_id: uuid.UUID = Depends(get_current_user),
) -> ProjectResponse:
    try:
        project = await service.get_project(db, user_id, project_id)
    except ProjectNotFoundError:
        raise _not_found()
    return ProjectResponse.model_validate(project)


@router.post("/{project_id}/repositories", response_model=ProjectResponse)
async def connect_repository(
    project_id: uuid.UUID,
    body: RepositoryBinding,
    db: AsyncSession = Depends(get_db),
    user_id: uuid.UUID = Depends(get_current_user),
) -> ProjectResponse:
    try:
        project = await service.connect_repository(db, user_id, project_id, body)
    except ProjectNotFoundError:
        raise _not_found()
    except InstallationNotFoundError:
        raise _invalid_installation()
    return ProjectResponse.model_validate(project)


@router.get("/{project_id}/branches", response_model=list[BranchItem])
async def list_branches(
    project_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
    user_id: uuid.UUID = Depends(get_current_user),
) -> list[BranchItem]:
    try:
        branches = await service.list_project_branches(db, settings, user_id, project_id)
    except ProjectNotFoundError:
        raise _not_found()
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc))
    except (HTTPError, GitHubAppError):
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY, detail="GitHub API request failed"
        )
    return [BranchItem.model_validate(b) for b in branches]


@router.patch("/{project_id}/branch", response_model=ProjectResponse)
async def update_selected_branch(
    project_id: uuid.UUID,
    body: UpdateBranchRequest,
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
    user_id: uuid.UUID = Depends(get_current_user),
) -> ProjectResponse:
    try:
        project = await service.update_selected_branch(
            db, settings, user_id, project_id, body.branch_name
        )
    except ProjectNotFoundError:
        raise _not_found()
    return ProjectResponse.model_validate(project)


@router.patch("/{project_id}/build", response_model=ProjectResponse)
async def update_build_definition(
    project_id: uuid.UUID,
    body: UpdateBuildRequest,
    db: AsyncSession = Depends(get_db),
    user_id: uuid.UUID = Depends(get_current_user),
) -> ProjectResponse:
    try:
        project = await service.update_build_definition(db, user_id, project_id, body)
    except ProjectNotFoundError:
        raise _not_found()
    return ProjectResponse.model_validate(project)


@router.get("/{project_id}/push-events", response_model=list[PushEventResponse])
async def list_push_events(
    project_id: uuid.UUID,
    limit: int = Query(default=50, ge=1, le=200),
    db: AsyncSession = Depends(get_db),
    user_id: uuid.UUID = Depends(get_current_user),
) -> list[PushEventResponse]:
    try:
        events = await service.list_push_events(db, user_id, project_id, limit=limit)
    except ProjectNotFoundError:
        raise _not_found()
    return [PushEventResponse.model_validate(e) for e in events]
