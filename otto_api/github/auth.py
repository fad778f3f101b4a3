"""GitHub App authentication.

GitHub App auth flow:
1. Sign a short-lived JWT with the App's private key (RS256)
2. Exchange it for an installation access token
3. Use the installation token for calls scoped to that installation
"""

import time

import jwt

from otto_api.core.config import Settings


class GitHubAppError(Exception):
    """GitHub App credentials are missing or GitHub rejected an App call."""


def create_app_jwt(settings: Settings) -> str:
    """Create a JWT for authenticating as the GitHub App.

    JWTs are valid for at most 10 minutes; 9 minutes plus a 60s backdate
    keeps clear of clock skew on either side.
    """
    if not settings.github_app_id or not settings.github_private_key:
        raise GitHubAppError(
            "GitHub App credentials not configured. "
            "Set GITHUB_APP_ID and GITHUB_PRIVATE_KEY."
        )

    now = int(time.time())
    payload = {
        "iat": now - 60,
        "exp": now + (9 * 60),
        "iss": settings.github_app_id,
    }

    return jwt.encode(payload, settings.github_private_key, algorithm="RS256")
