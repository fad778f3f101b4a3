"""Pydantic schemas for GitHub installation endpoints.

The frontend speaks camelCase; models accept either spelling on input and
serialise with camelCase aliases.
"""

import uuid
from datetime import datetime
from typing import Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class RegisterInstallationRequest(CamelModel):
    installation_id: int = Field(..., gt=0, description="GitHub App installation id")


class InstallationResponse(CamelModel):
    installation_id: uuid.UUID = Field(validation_alias=AliasChoices("id", "installationId"))
    user_id: Optional[uuid.UUID]
    github_installation_id: int
    account_login: str
    account_id: int
    account_type: str
    is_active: bool
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class RepositoryItem(CamelModel):
    id: int
    name: str
    full_name: str
    private: bool = False
    html_url: Optional[str] = None
    clone_url: Optional[str] = None
    default_branch: str = "main"


class BranchCommit(CamelModel):
    sha: str
    url: Optional[str] = None


class BranchItem(CamelModel):
    name: str
    commit: BranchCommit
    protected: bool = False


class InstallUrlResponse(CamelModel):
    user_id: uuid.UUID
    app_slug: str
    state: str
    install_url: str


class InstallationStatusItem(CamelModel):
    installation_id: uuid.UUID
    github_installation_id: int
    account_login: str
    account_id: int
    account_type: str
    connected_projects: int
    installed_at: Optional[datetime] = None


class InstallationStatusResponse(CamelModel):
    has_installation: bool
    total_installations: int
    total_connected_projects: int
    installations: list[InstallationStatusItem]
