"""Webhook event routing and push-triggered CodeBuild dispatch.

`WebhookEventDispatcher` routes a verified, parsed delivery by its
X-GitHub-Event type. Push events go to `PushBuildDispatcher`, which:

1. parses the push (repository, installation, branch, commit);
2. loads every project bound to that repository under that installation
   whose CodeBuild project has been created;
3. for each binding, concurrently, records the push in history and starts
   a build when the binding's selected branch is the pushed branch.

Per-project work is isolated: each task returns a `ProjectPushResult`, and
a failure in one project's history write or build start never stops the
others. The dispatcher returns only after every task has settled.
"""

import asyncio
import logging
from typing import Any, Protocol

from otto_api.builds.client import BuildStartError, BuildStartResponse
from otto_api.github.webhooks import PushEvent, parse_push_event
from otto_api.webhooks.types import (
    SKIP_BRANCH_MISMATCH,
    SKIP_NO_BUILD_PROJECT,
    BuildTriggerResult,
    DispatchOutcome,
    HistoryWriteResult,
    ProjectBuildBinding,
    ProjectPushResult,
    PushDispatchReport,
)

logger = logging.getLogger(__name__)


class BindingStore(Protocol):
    async def find_provisioned(
        self, owner: str, repo_name: str, github_installation_id: int
    ) -> list[ProjectBuildBinding]: ...


class HistoryRecorder(Protocol):
    async def record(self, project_id, event: PushEvent) -> HistoryWriteResult: ...


class BuildTrigger(Protocol):
    async def start_build(self, build_project_name: str, branch: str) -> BuildStartResponse: ...


class PushBuildDispatcher:
    def __init__(
        self,
        bindings: BindingStore,
        history: HistoryRecorder,
        builds: BuildTrigger,
    ) -> None:
        self._bindings = bindings
        self._history = history
        self._builds = builds

    async def handle_push(self, payload: dict[str, Any]) -> PushDispatchReport:
        event, reason = parse_push_event(payload)
        if event is None:
            logger.info("Ignoring push: %s", reason)
            return PushDispatchReport(aborted_reason=reason)

        report = PushDispatchReport(
            repository=event.repository_full_name,
            branch=event.pushed_branch,
        )
        logger.info(
            "Processing push: repo=%s branch=%s installation=%d sha=%s pusher=%s",
            event.repository_full_name, event.pushed_branch,
            event.installation_id, event.commit_sha[:7], event.pusher_name,
        )

        try:
            bindings = await self._bindings.find_provisioned(
                event.owner, event.repo_name, event.installation_id
            )
        except Exception:
            logger.exception(
                "Project lookup failed for push to %s", event.repository_full_name
            )
            report.aborted_reason = "project lookup failed"
            return report

        if not bindings:
            logger.info(
                "No provisioned projects for push: repo=%s branch=%s installation=%d",
                event.repository_full_name, event.pushed_branch, event.installation_id,
            )
            report.aborted_reason = "no matching projects"
            return report

        logger.info(
            "Found %d project(s) for push to %s",
            len(bindings), event.repository_full_name,
        )

        outcomes = await asyncio.gather(
            *(self._process_binding(binding, event) for binding in bindings),
            return_exceptions=True,
        )

        for binding, outcome in zip(bindings, outcomes):
            if isinstance(outcome, BaseException):
                # _process_binding converts expected failures into results;
                # anything reaching here is a bug, recorded against the project.
                logger.error(
                    "Unexpected error processing project %s: %r",
                    binding.project_id, outcome,
                )
                outcome = ProjectPushResult(
                    binding=binding,
                    history=HistoryWriteResult(binding.project_id, ok=False, error=repr(outcome)),
                    build=BuildTriggerResult(binding.project_id, success=False, error=repr(outcome)),
                )
            report.results.append(outcome)

        logger.info(
            "Push to %s@%s settled: %d started, %d failed, %d skipped",
            event.repository_full_name, event.pushed_branch,
            report.builds_started, report.builds_failed,
            len(report.results) - report.builds_started - report.builds_failed,
        )
        return report

    async def _process_binding(
        self, binding: ProjectBuildBinding, event: PushEvent
    ) -> ProjectPushResult:
        try:
            history = await self._history.record(binding.project_id, event)
        except Exception as exc:
            history = HistoryWriteResult(binding.project_id, ok=False, error=str(exc))
        if not history.ok:
            logger.warning(
                "Failed to record push for project %s: %s",
                binding.project_id, history.error,
            )

        build = await self._trigger_build(binding, event)
        return ProjectPushResult(binding=binding, history=history, build=build)

    async def _trigger_build(
        self, binding: ProjectBuildBinding, event: PushEvent
    ) -> BuildTriggerResult:
        if binding.selected_branch != event.pushed_branch or not binding.build_project_name:
            reason = (
                SKIP_BRANCH_MISMATCH
                if binding.selected_branch != event.pushed_branch
                else SKIP_NO_BUILD_PROJECT
            )
            logger.info(
                "Skipping CodeBuild trigger (%s): project=%s selected=%s pushed=%s",
                reason, binding.project_id, binding.selected_branch, event.pushed_branch,
            )
            return BuildTriggerResult(
                binding.project_id, success=False, skipped=True, reason=reason
            )

        try:
            started = await self._builds.start_build(
                binding.build_project_name, event.pushed_branch
            )
        except BuildStartError as exc:
            logger.error(
                "Failed to trigger CodeBuild: project=%s codebuild=%s branch=%s error=%s",
                binding.project_id, binding.build_project_name, event.pushed_branch, exc,
            )
            return BuildTriggerResult(binding.project_id, success=False, error=str(exc))
        except Exception as exc:
            logger.exception(
                "Unexpected error triggering CodeBuild: project=%s codebuild=%s branch=%s",
                binding.project_id, binding.build_project_name, event.pushed_branch,
            )
            return BuildTriggerResult(binding.project_id, success=False, error=str(exc))

        logger.info(
            "CodeBuild triggered: project=%s codebuild=%s branch=%s sha=%s",
            binding.project_id, binding.build_project_name,
            event.pushed_branch, event.commit_sha,
        )
        return BuildTriggerResult(
            binding.project_id, success=True, build_id=started.build_id
        )


class WebhookEventDispatcher:
    """Routes a delivery by event type. Never raises to the caller."""

    def __init__(self, push: PushBuildDispatcher) -> None:
        self._push = push

    async def dispatch(self, event_type: str, payload: dict[str, Any]) -> DispatchOutcome:
        try:
            if event_type == "push":
                report = await self._push.handle_push(payload)
                return DispatchOutcome(
                    event_type, handled=True, action="push_processed", push=report
                )

            if event_type == "installation":
                logger.info(
                    "Installation event: action=%s installation=%s",
                    payload.get("action"), (payload.get("installation") or {}).get("id"),
                )
                return DispatchOutcome(event_type, handled=True, action="acknowledged")

            if event_type == "pull_request":
                logger.info(
                    "Pull request event: action=%s number=%s",
                    payload.get("action"), (payload.get("pull_request") or {}).get("number"),
                )
                return DispatchOutcome(event_type, handled=True, action="acknowledged")

            logger.info("Unhandled event type: %s", event_type or "<none>")
            return DispatchOutcome(event_type, handled=False, action="unhandled")
        except Exception as exc:
            logger.exception("Error processing %s event", event_type)
            return DispatchOutcome(event_type, handled=False, action="failed", error=str(exc))
