"""Installation bookkeeping.

Links GitHub App installations to Otto users and answers the questions the
frontend asks about them (which installations, which repos and branches,
how many projects hang off each one).
"""

import base64
import binascii
import json
import logging
import time
import uuid
from typing import Optional
from urllib.parse import urlencode

from httpx import HTTPError
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from otto_api.core.config import Settings
from otto_api.core.errors import InstallationNotFoundError
from otto_api.db.models import GitHubInstallation, Project
from otto_api.github import client as github_client
from otto_api.github.auth import GitHubAppError

logger = logging.getLogger(__name__)

CALLBACK_PATH = "/integrations/github/callback"


async def register_installation(
    db: AsyncSession,
    settings: Settings,
    user_id: uuid.UUID,
    github_installation_id: int,
) -> GitHubInstallation:
    """Verify an installation with GitHub and upsert it for the user.

    Raises GitHubAppError when GitHub does not know the installation.
    """
    try:
        info = await github_client.get_installation(settings, github_installation_id)
    except HTTPError as exc:
        raise GitHubAppError(f"Invalid GitHub installation id: {exc}") from exc

    account = info.get("account") or {}

    result = await db.execute(
        select(GitHubInstallation).where(
            GitHubInstallation.github_installation_id == github_installation_id
        )
    )
    installation = result.scalar_one_or_none()
    if installation is None:
        installation = GitHubInstallation(github_installation_id=github_installation_id)
        db.add(installation)

    installation.user_id = user_id
    installation.account_login = account.get("login", "")
    installation.account_id = int(account.get("id") or 0)
    installation.account_type = account.get("type") or "User"
    installation.is_active = True

    await db.flush()
    await db.refresh(installation)
    logger.info(
        "Registered installation %d (%s) for user %s",
        github_installation_id, installation.account_login, user_id,
    )
    return installation


async def list_user_installations(
    db: AsyncSession, user_id: uuid.UUID
) -> list[GitHubInstallation]:
    result = await db.execute(
        select(GitHubInstallation)
        .where(GitHubInstallation.user_id == user_id)
        .order_by(GitHubInstallation.created_at.desc())
    )
    return list(result.scalars().all())


async def get_user_installation(
    db: AsyncSession, user_id: uuid.UUID, github_installation_id: int
) -> GitHubInstallation:
    """Return the user's installation or raise InstallationNotFoundError."""
    result = await db.execute(
        select(GitHubInstallation).where(
            GitHubInstallation.github_installation_id == github_installation_id,
            GitHubInstallation.user_id == user_id,
        )
    )
    installation = result.scalar_one_or_none()
    if installation is None:
        raise InstallationNotFoundError(github_installation_id)
    return installation


async def list_accessible_repositories(
    settings: Settings, github_installation_id: int
) -> list[dict]:
    token = await github_client.get_installation_token(settings, github_installation_id)
    return await github_client.list_installation_repos(token)


async def list_repository_branches(
    settings: Settings, github_installation_id: int, owner: str, repo: str
) -> list[dict]:
    token = await github_client.get_installation_token(settings, github_installation_id)
    return await github_client.list_branches(token, owner, repo)


async def installation_status(db: AsyncSession, user_id: uuid.UUID) -> dict:
    """Summarise the user's installations with connected-project counts."""
    installations = await list_user_installations(db, user_id)

    counts: dict[uuid.UUID, int] = {}
    if installations:
        result = await db.execute(
            select(Project.installation_id, func.count(Project.id))
            .where(Project.installation_id.in_([inst.id for inst in installations]))
            .group_by(Project.installation_id)
        )
        counts = {row[0]: row[1] for row in result.all()}

    items = [
        {
            "installation_id": inst.id,
            "github_installation_id": inst.github_installation_id,
            "account_login": inst.account_login,
            "account_id": inst.account_id,
            "account_type": inst.account_type,
            "connected_projects": counts.get(inst.id, 0),
            "installed_at": inst.created_at,
        }
        for inst in installations
    ]
    return {
        "has_installation": bool(items),
        "total_installations": len(items),
        "total_connected_projects": sum(i["connected_projects"] for i in items),
        "installations": items,
    }


def encode_install_state(user_id: uuid.UUID, timestamp_ms: Optional[int] = None) -> str:
    raw = json.dumps(
        {"userId": str(user_id), "timestamp": timestamp_ms or int(time.time() * 1000)}
    )
    return base64.urlsafe_b64encode(raw.encode("utf-8")).decode("ascii")


def decode_install_state(state: str) -> Optional[uuid.UUID]:
    """Return the user id carried in an install state, or None if unreadable."""
    try:
        padded = state + "=" * (-len(state) % 4)
        data = json.loads(base64.urlsafe_b64decode(padded.encode("ascii")))
        return uuid.UUID(str(data["userId"]))
    except (binascii.Error, UnicodeError, ValueError, KeyError, TypeError):
        return None


def build_install_url(settings: Settings, user_id: uuid.UUID) -> dict:
    state = encode_install_state(user_id)
    return {
        "user_id": user_id,
        "app_slug": settings.github_app_slug,
        "state": state,
        "install_url": (
            f"https://github.com/apps/{settings.github_app_slug}/installations/new?"
            + urlencode({"state": state})
        ),
    }


async def handle_install_callback(
    db: AsyncSession,
    settings: Settings,
    installation_id: str,
    state: str,
) -> str:
    """Link the installation GitHub redirected back with; return the frontend URL."""
    base = f"{settings.frontend_url}{CALLBACK_PATH}"

    def _error(reason: str) -> str:
        return f"{base}?" + urlencode({"status": "error", "reason": reason})

    if not state:
        return _error("missing_state")
    user_id = decode_install_state(state)
    if user_id is None:
        return _error("invalid_state")
    if not installation_id:
        return _error("missing_installation_id")

    try:
        github_installation_id = int(installation_id)
        installation = await register_installation(
            db, settings, user_id, github_installation_id
        )
    except (ValueError, GitHubAppError) as exc:
        logger.warning("Install callback rejected installation %s: %s", installation_id, exc)
        return _error("invalid_installation")
    except HTTPError as exc:
        logger.error("Install callback failed for installation %s: %s", installation_id, exc)
        return _error("installation_failed")

    return f"{base}?" + urlencode(
        {
            "status": "success",
            "installation_id": installation_id,
            "account_login": installation.account_login,
        }
    )
