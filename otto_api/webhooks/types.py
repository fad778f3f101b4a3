"""Value types passed between the webhook dispatcher and its collaborators.

All of these are plain frozen dataclasses: per-project tasks get their own
copy of a binding, and outcomes are returned as values so the dispatcher
decides explicitly which failures are swallowed.
"""

import uuid
from dataclasses import dataclass, field
from typing import Optional

SKIP_BRANCH_MISMATCH = "branch mismatch"
SKIP_NO_BUILD_PROJECT = "no build project"


@dataclass(frozen=True)
class ProjectBuildBinding:
    """A project's repository/branch/build-definition binding, as read for one push."""

    project_id: uuid.UUID
    selected_branch: str
    build_project_name: Optional[str]
    build_status: Optional[str]


@dataclass(frozen=True)
class HistoryWriteResult:
    project_id: uuid.UUID
    ok: bool
    error: Optional[str] = None


@dataclass(frozen=True)
class BuildTriggerResult:
    """Outcome of evaluating one binding against a push.

    ``success`` is True only when a build was started. A skip (branch
    mismatch, no build project) is not an error: ``skipped`` is set and
    ``reason`` says why.
    """

    project_id: uuid.UUID
    success: bool
    error: Optional[str] = None
    skipped: bool = False
    reason: Optional[str] = None
    build_id: Optional[str] = None


@dataclass(frozen=True)
class ProjectPushResult:
    binding: ProjectBuildBinding
    history: HistoryWriteResult
    build: BuildTriggerResult


@dataclass
class PushDispatchReport:
    """Everything that happened while handling one push delivery."""

    repository: Optional[str] = None
    branch: Optional[str] = None
    aborted_reason: Optional[str] = None
    results: list[ProjectPushResult] = field(default_factory=list)

    @property
    def builds_started(self) -> int:
        return sum(1 for r in self.results if r.build.success)

    @property
    def builds_failed(self) -> int:
        return sum(1 for r in self.results if not r.build.success and not r.build.skipped)


@dataclass(frozen=True)
class DispatchOutcome:
    event_type: str
    handled: bool
    action: str
    error: Optional[str] = None
    push: Optional[PushDispatchReport] = None
