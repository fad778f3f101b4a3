"""SlowAPI rate limiter singleton.

Keyed on the authenticated user ID so limits apply per-user rather than
per-IP. Used on endpoints that fan out to the GitHub API on the user's
behalf (installation registration).

The decorated handler must accept a `request: Request` parameter; SlowAPI
reads the key from it.
"""

from slowapi import Limiter


def _user_id_key(request) -> str:
    """Rate-limit per authenticated user ID, falling back to client IP."""
    user_id = getattr(request.state, "user_id", None)
    if user_id:
        return str(user_id)
    return request.client.host if request.client else "unknown"


limiter = Limiter(key_func=_user_id_key, default_limits=[])
