"""Webhook fixtures.

A push fans out to concurrent per-project tasks, each opening its own
session, so these tests use a file-backed SQLite database: every session
gets its own connection, as it would against Postgres.
"""

import uuid

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine

from otto_api.db.models import Base, Project
from tests.conftest import STUB_INSTALLATION_ROW_ID, STUB_USER_ID


@pytest.fixture
async def async_engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'otto.db'}", echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def add_project(seeded_db: AsyncSession):
    """Insert a project bound to acme/widgets under the stub installation."""

    async def _add(
        name: str,
        *,
        branch: str = "main",
        build_project: str | None = "proj-123",
        build_status: str | None = "CREATED",
        owner: str = "acme",
        repo: str = "widgets",
        installation_id: uuid.UUID | None = STUB_INSTALLATION_ROW_ID,
    ) -> Project:
        project = Project(
            user_id=STUB_USER_ID,
            name=name,
            github_owner=owner,
            github_repo_name=repo,
            github_repo_id="101",
            selected_branch=branch,
            installation_id=installation_id,
            codebuild_project_name=build_project,
            codebuild_status=build_status,
        )
        seeded_db.add(project)
        await seeded_db.commit()
        return project

    return _add
