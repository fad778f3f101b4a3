"""AWS CodeBuild trigger client.

Starts a build of an already-provisioned CodeBuild project for a branch.
The branch is always sent as a full ref (``refs/heads/<branch>``) so that
CodeBuild resolves it as a branch, never as a tag or commit.

boto3 is synchronous; calls are pushed to a worker thread with
`asyncio.to_thread` so the event loop keeps serving other projects while
one StartBuild call is in flight. Retries are disabled: a rejected start
is reported to the caller, which decides what to do with it.
"""

import asyncio
import logging
import threading
from dataclasses import dataclass
from typing import Any, Optional

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from otto_api.core.config import Settings
from otto_api.github.webhooks import BRANCH_REF_PREFIX

logger = logging.getLogger(__name__)


class BuildStartError(Exception):
    """CodeBuild refused to start a build (bad project, outage, throttling)."""

    def __init__(
        self,
        project_name: str,
        message: str,
        status_code: Optional[int] = None,
        error_code: str = "",
    ) -> None:
        self.project_name = project_name
        self.message = message
        self.status_code = status_code
        self.error_code = error_code
        detail = " ".join(str(part) for part in (status_code, error_code) if part)
        suffix = f" ({detail})" if detail else ""
        super().__init__(f"CodeBuild start failed for {project_name}{suffix}: {message}")


@dataclass(frozen=True)
class BuildStartResponse:
    build_id: str
    project_name: str
    source_version: str


def create_codebuild_client(settings: Settings) -> Any:
    """Build a boto3 CodeBuild client from settings.

    Empty credential fields fall through to boto3's default chain
    (environment, shared config, instance role).
    """
    return boto3.client(
        "codebuild",
        region_name=settings.aws_region,
        aws_access_key_id=settings.aws_access_key_id or None,
        aws_secret_access_key=settings.aws_secret_access_key or None,
        config=Config(retries={"max_attempts": 1, "mode": "standard"}),
    )


class CodeBuildTriggerClient:
    """Starts CodeBuild builds for project/branch pairs."""

    def __init__(self, settings: Settings, codebuild: Any = None) -> None:
        self._settings = settings
        self._codebuild = codebuild
        self._lock = threading.Lock()

    def _client(self) -> Any:
        # Called from worker threads; boto3 client creation is not thread-safe.
        with self._lock:
            if self._codebuild is None:
                self._codebuild = create_codebuild_client(self._settings)
            return self._codebuild

    def _start_build_sync(self, build_project_name: str, source_version: str) -> dict:
        return self._client().start_build(
            projectName=build_project_name, sourceVersion=source_version
        )

    async def start_build(self, build_project_name: str, branch: str) -> BuildStartResponse:
        source_version = f"{BRANCH_REF_PREFIX}{branch}"
        try:
            result = await asyncio.to_thread(
                self._start_build_sync, build_project_name, source_version
            )
        except ClientError as exc:
            error = exc.response.get("Error", {})
            raise BuildStartError(
                build_project_name,
                error.get("Message") or str(exc),
                status_code=exc.response.get("ResponseMetadata", {}).get("HTTPStatusCode"),
                error_code=error.get("Code", ""),
            ) from exc
        except BotoCoreError as exc:
            raise BuildStartError(build_project_name, str(exc)) from exc

        build_id = (result.get("build") or {}).get("id", "")
        logger.info(
            "CodeBuild started: project=%s build_id=%s source_version=%s",
            build_project_name, build_id, source_version,
        )
        return BuildStartResponse(
            build_id=build_id,
            project_name=build_project_name,
            source_version=source_version,
        )
