from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from otto_api.builds.client import CodeBuildTriggerClient
from otto_api.core.config import Settings, get_settings
from otto_api.core.errors import register_exception_handlers
from otto_api.core.limiter import limiter
from otto_api.core.middleware import RequestIdMiddleware, SecurityHeadersMiddleware
from otto_api.db.session import create_session_factory
from otto_api.github.router import router as github_router
from otto_api.projects.router import router as projects_router
from otto_api.webhooks.bindings import ProjectBindingStore, PushHistoryRecorder
from otto_api.webhooks.dispatcher import PushBuildDispatcher, WebhookEventDispatcher
from otto_api.webhooks.router import router as webhooks_router


def create_app(
    settings: Optional[Settings] = None,
    session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
    build_client=None,
) -> FastAPI:
    """Build the API.

    `settings`, `session_factory` and `build_client` default to the
    production wiring; tests pass substitutes.
    """
    settings = settings or get_settings()
    session_factory = session_factory or create_session_factory(settings)
    build_client = build_client or CodeBuildTriggerClient(settings)

    _app = FastAPI(
        title="Otto API",
        description="GitHub to AWS CodeBuild integration for Otto projects",
        version="0.1.0",
    )

    # ---------------------------------------------------------------------------
    # Shared collaborators, constructed once and read from app.state
    # ---------------------------------------------------------------------------
    _app.state.settings = settings
    _app.state.session_factory = session_factory
    _app.state.event_dispatcher = WebhookEventDispatcher(
        PushBuildDispatcher(
            bindings=ProjectBindingStore(session_factory),
            history=PushHistoryRecorder(session_factory),
            builds=build_client,
        )
    )

    _app.state.limiter = limiter
    _app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
    register_exception_handlers(_app)

    # ---------------------------------------------------------------------------
    # Middleware (registered outermost → innermost; executed innermost → outermost)
    # ---------------------------------------------------------------------------
    _app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    _app.add_middleware(SlowAPIMiddleware)
    _app.add_middleware(SecurityHeadersMiddleware)
    _app.add_middleware(RequestIdMiddleware)

    from otto_api.core.sentry import init_sentry

    init_sentry(
        dsn=settings.sentry_dsn,
        environment="development" if settings.debug else "production",
    )

    from otto_api.core.logging import configure_structlog

    configure_structlog(debug=settings.debug)

    # ---------------------------------------------------------------------------
    # Routes
    # ---------------------------------------------------------------------------

    @_app.get("/health")
    async def health_check() -> dict[str, str]:
        return {"status": "ok"}

    _app.include_router(webhooks_router)
    _app.include_router(github_router)
    _app.include_router(projects_router)

    return _app
