"""Pydantic schemas for project endpoints.

Follows RORO pattern: receive a typed object, return a typed object.
"""

import uuid
from datetime import datetime
from typing import Optional

from pydantic import AliasChoices, Field, field_validator

from otto_api.github.schemas import CamelModel


class CreateProjectRequest(CamelModel):
    name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = None

    @field_validator("name")
    @classmethod
    def strip_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("name must not be blank")
        return v


class RepositoryBinding(CamelModel):
    """Repository fields shared by create-with-GitHub and connect-repository."""

    installation_id: uuid.UUID = Field(
        ..., description="Internal id of the user's github_installations row"
    )
    github_repo_id: str
    github_repo_url: Optional[str] = None
    github_repo_name: str = Field(..., min_length=1)
    github_owner: str = Field(..., min_length=1)
    is_private: bool = False
    selected_branch: str = Field(default="main", min_length=1)

    @field_validator("github_repo_id", mode="before")
    @classmethod
    def repo_id_as_text(cls, v):
        return str(v) if isinstance(v, int) else v


class CreateProjectWithGithubRequest(RepositoryBinding):
    name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = None

    @field_validator("name")
    @classmethod
    def strip_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("name must not be blank")
        return v


class UpdateBranchRequest(CamelModel):
    branch_name: str = Field(..., min_length=1)


class UpdateBuildRequest(CamelModel):
    """Records the CodeBuild project provisioned for a project."""

    build_project_name: str = Field(..., min_length=1)
    build_status: str = Field(default="CREATED", min_length=1)


class InstallationSummary(CamelModel):
    installation_id: uuid.UUID = Field(validation_alias=AliasChoices("id", "installationId"))
    github_installation_id: int
    account_login: str
    account_type: str


class ProjectResponse(CamelModel):
    project_id: uuid.UUID = Field(validation_alias=AliasChoices("id", "projectId"))
    user_id: uuid.UUID
    name: str
    description: Optional[str] = None
    github_owner: Optional[str] = None
    github_repo_id: Optional[str] = None
    github_repo_name: Optional[str] = None
    github_repo_url: Optional[str] = None
    selected_branch: str
    is_active: bool
    is_private: bool
    codebuild_project_name: Optional[str] = None
    codebuild_status: Optional[str] = None
    installation: Optional[InstallationSummary] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class PushEventResponse(CamelModel):
    id: uuid.UUID
    project_id: uuid.UUID
    branch_name: str
    commit_sha: str
    commit_message: str
    commit_author_name: str
    pushed_at: datetime
