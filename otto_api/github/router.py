"""GitHub installation endpoints.

Everything except the install callback requires a Supabase bearer token.
The callback is where GitHub sends the user's browser after installing the
App; it identifies the user through the `state` value minted by
`/projects/github/install-url` and always answers with a redirect to the
frontend.
"""

import logging
import uuid

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from fastapi.responses import RedirectResponse
from httpx import HTTPError
from sqlalchemy.ext.asyncio import AsyncSession

from otto_api.auth.dependencies import get_current_user
from otto_api.core.config import Settings, get_app_settings, get_settings
from otto_api.core.errors import InstallationNotFoundError
from otto_api.core.limiter import limiter
from otto_api.db.session import get_db
from otto_api.github import service
from otto_api.github.auth import GitHubAppError
from otto_api.github.schemas import (
    BranchItem,
    InstallationResponse,
    InstallationStatusResponse,
    InstallUrlResponse,
    RegisterInstallationRequest,
    RepositoryItem,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/projects", tags=["github"])

def _installation_rate_limit() -> str:
    # Evaluated per request by SlowAPI, not at import.
    return get_settings().installation_rate_limit


def _github_unavailable(exc: Exception) -> HTTPException:
    logger.error("GitHub API error: %s", exc)
    return HTTPException(
        status_code=status.HTTP_502_BAD_GATEWAY,
        detail="GitHub API request failed",
    )


@router.post("/github-installations", response_model=InstallationResponse)
@limiter.limit(_installation_rate_limit)
async def register_installation(
    request: Request,
    body: RegisterInstallationRequest,
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
    user_id: uuid.UUID = Depends(get_current_user),
) -> InstallationResponse:
    try:
        installation = await service.register_installation(
            db, settings, user_id, body.installation_id
        )
    except GitHubAppError as exc:
        logger.warning("Installation %d rejected: %s", body.installation_id, exc)
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="Invalid GitHub installation id",
        )
    return InstallationResponse.model_validate(installation)


@router.get("/github-installations", response_model=list[InstallationResponse])
async def list_installations(
    db: AsyncSession = Depends(get_db),
    user_id: uuid.UUID = Depends(get_current_user),
) -> list[InstallationResponse]:
    installations = await service.list_user_installations(db, user_id)
    return [InstallationResponse.model_validate(inst) for inst in installations]


@router.get(
    "/github-installations/{installation_id}/repositories",
    response_model=list[RepositoryItem],
)
async def list_repositories(
    installation_id: int,
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
    user_id: uuid.UUID = Depends(get_current_user),
) -> list[RepositoryItem]:
    await _require_installation(db, user_id, installation_id)
    try:
        repos = await service.list_accessible_repositories(settings, installation_id)
    except (HTTPError, GitHubAppError) as exc:
        raise _github_unavailable(exc)
    return [RepositoryItem.model_validate(r) for r in repos]


@router.get(
    "/github-installations/{installation_id}/repositories/{owner}/{repo}/branches",
    response_model=list[BranchItem],
)
async def list_branches(
    installation_id: int,
    owner: str,
    repo: str,
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
    user_id: uuid.UUID = Depends(get_current_user),
) -> list[BranchItem]:
    await _require_installation(db, user_id, installation_id)
    try:
        branches = await service.list_repository_branches(
            settings, installation_id, owner, repo
        )
    except (HTTPError, GitHubAppError) as exc:
        raise _github_unavailable(exc)
    return [BranchItem.model_validate(b) for b in branches]


@router.get("/github/install-url", response_model=InstallUrlResponse)
async def get_install_url(
    settings: Settings = Depends(get_app_settings),
    user_id: uuid.UUID = Depends(get_current_user),
) -> InstallUrlResponse:
    return InstallUrlResponse(**service.build_install_url(settings, user_id))


@router.get("/github/status", response_model=InstallationStatusResponse)
async def get_status(
    db: AsyncSession = Depends(get_db),
    user_id: uuid.UUID = Depends(get_current_user),
) -> InstallationStatusResponse:
    return InstallationStatusResponse(**await service.installation_status(db, user_id))


@router.get("/github/callback")
async def install_callback(
    installation_id: str = Query(default=""),
    setup_action: str = Query(default=""),
    state: str = Query(default=""),
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
) -> RedirectResponse:
    logger.info(
        "GitHub install callback: installation=%s setup_action=%s",
        installation_id or "<none>", setup_action or "<none>",
    )
    url = await service.handle_install_callback(db, settings, installation_id, state)
    return RedirectResponse(url, status_code=status.HTTP_302_FOUND)


async def _require_installation(
    db: AsyncSession, user_id: uuid.UUID, installation_id: int
) -> None:
    try:
        await service.get_user_installation(db, user_id, installation_id)
    except InstallationNotFoundError:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Installation not found",
        )
