"""Authentication dependency for route guards.

Validates Supabase-issued access tokens from the Authorization header and
makes sure a matching `users` row exists so project and installation rows
never reference a missing user.

Token issuance is Supabase's job; this module only verifies. Legacy
projects sign with the shared HS256 secret, newer ones with an ES256 key
published at the project's JWKS endpoint. The JWKS document is cached on
``app.state`` and refetched once when verification fails (key rotation).
"""

import logging
import uuid

import httpx
from fastapi import Depends, Header, HTTPException, Request, status
from jose import JWTError, jwt
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from otto_api.core.config import Settings, get_app_settings
from otto_api.db.models import User
from otto_api.db.session import get_db

logger = logging.getLogger(__name__)

_AUDIENCE = "authenticated"


async def _load_jwks(request: Request, settings: Settings, refresh: bool = False) -> dict:
    cached = getattr(request.app.state, "jwks", None)
    if cached is not None and not refresh:
        return cached

    url = f"{settings.supabase_url}/auth/v1/.well-known/jwks.json"
    async with httpx.AsyncClient(timeout=10) as client:
        res = await client.get(url)
        res.raise_for_status()
        jwks = res.json()
    request.app.state.jwks = jwks
    logger.info("auth: loaded JWKS from %s (%d keys)", url, len(jwks.get("keys", [])))
    return jwks


async def verify_access_token(token: str, request: Request, settings: Settings) -> dict:
    """Return the verified claims of a Supabase access token.

    Raises JWTError for any token that cannot be verified.
    """
    try:
        alg = jwt.get_unverified_header(token).get("alg", "HS256")
    except JWTError as exc:
        raise JWTError(f"Malformed token header: {exc}") from exc

    if alg == "HS256":
        if not settings.supabase_jwt_secret:
            raise JWTError("SUPABASE_JWT_SECRET is not configured")
        return jwt.decode(
            token, settings.supabase_jwt_secret, algorithms=["HS256"], audience=_AUDIENCE
        )

    if alg == "ES256":
        jwks = await _load_jwks(request, settings)
        try:
            return jwt.decode(token, jwks, algorithms=["ES256"], audience=_AUDIENCE)
        except JWTError:
            jwks = await _load_jwks(request, settings, refresh=True)
            return jwt.decode(token, jwks, algorithms=["ES256"], audience=_AUDIENCE)

    raise JWTError(f"Unsupported algorithm: {alg}")


async def get_current_user(
    request: Request,
    authorization: str = Header(default=""),
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
) -> uuid.UUID:
    """Resolve the caller's user id from a bearer token.

    The id is also stored on ``request.state.user_id`` for the rate limiter.
    """
    token = authorization.removeprefix("Bearer ").strip() if authorization.startswith("Bearer ") else ""
    if not token:
        logger.warning("auth: missing or malformed Authorization header")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Login required",
        )

    try:
        claims = await verify_access_token(token, request, settings)
    except JWTError as exc:
        logger.warning("auth: token verification failed: %s", exc)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token",
        )

    try:
        user_id = uuid.UUID(claims.get("sub") or "")
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid sub claim",
        )

    existing = await db.execute(select(User.id).where(User.id == user_id))
    if existing.scalar_one_or_none() is None:
        db.add(User(id=user_id, email=claims.get("email") or f"{user_id}@supabase.auth"))
        await db.flush()

    request.state.user_id = user_id
    return user_id
