"""GitHub REST client for App- and installation-scoped reads.

Uses httpx for async HTTP calls. `get_installation` authenticates as the
App itself; the repository and branch listings need an installation token
from `get_installation_token`.
"""

import httpx

from otto_api.core.config import Settings
from otto_api.github.auth import GitHubAppError, create_app_jwt

GITHUB_API_BASE = "https://api.github.com"


async def get_installation(settings: Settings, installation_id: int) -> dict:
    """GET /app/installations/{id}: confirms the installation exists for this App."""
    app_jwt = create_app_jwt(settings)

    async with httpx.AsyncClient(timeout=10.0) as client:
        response = await client.get(
            f"{GITHUB_API_BASE}/app/installations/{installation_id}",
            headers=_auth_headers(app_jwt),
        )
        if response.status_code == 404:
            raise GitHubAppError(f"Installation {installation_id} not found for this App")
        response.raise_for_status()
        return response.json()


async def get_installation_token(settings: Settings, installation_id: int) -> str:
    """Exchange the App JWT for an installation access token (valid for 1 hour)."""
    app_jwt = create_app_jwt(settings)

    async with httpx.AsyncClient(timeout=10.0) as client:
        response = await client.post(
            f"{GITHUB_API_BASE}/app/installations/{installation_id}/access_tokens",
            headers=_auth_headers(app_jwt),
        )
        response.raise_for_status()
        return response.json()["token"]


async def list_installation_repos(token: str) -> list[dict]:
    """List all repos accessible to an installation token."""
    async with httpx.AsyncClient(timeout=10.0) as client:
        response = await client.get(
            f"{GITHUB_API_BASE}/installation/repositories",
            headers=_auth_headers(token),
            params={"per_page": 100},
        )
        response.raise_for_status()
        return response.json().get("repositories", [])


async def list_branches(token: str, owner: str, repo: str) -> list[dict]:
    """List the branches of a repository."""
    async with httpx.AsyncClient(timeout=10.0) as client:
        response = await client.get(
            f"{GITHUB_API_BASE}/repos/{owner}/{repo}/branches",
            headers=_auth_headers(token),
            params={"per_page": 100},
        )
        response.raise_for_status()
        return response.json()


def _auth_headers(token: str) -> dict[str, str]:
    return {
        "Authorization": f"Bearer {token}",
        "Accept": "application/vnd.github+json",
        "X-GitHub-Api-Version": "2022-11-28",
    }
