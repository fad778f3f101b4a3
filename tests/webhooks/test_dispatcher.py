"""Unit tests for push dispatch and event routing, with in-memory fakes."""

import asyncio
import uuid
from unittest.mock import AsyncMock

import pytest

from otto_api.builds.client import BuildStartError, BuildStartResponse
from otto_api.webhooks.dispatcher import PushBuildDispatcher, WebhookEventDispatcher
from otto_api.webhooks.types import (
    SKIP_BRANCH_MISMATCH,
    SKIP_NO_BUILD_PROJECT,
    HistoryWriteResult,
    ProjectBuildBinding,
)


def _push(branch: str = "main", **overrides) -> dict:
    payload = {
        "ref": f"refs/heads/{branch}",
        "after": "c0ffee",
        "repository": {"full_name": "acme/widgets"},
        "installation": {"id": 12345},
        "head_commit": {"message": "msg"},
        "pusher": {"name": "octocat"},
    }
    payload.update(overrides)
    return payload


def _binding(branch: str = "main", build_project: str | None = "proj-123") -> ProjectBuildBinding:
    return ProjectBuildBinding(
        project_id=uuid.uuid4(),
        selected_branch=branch,
        build_project_name=build_project,
        build_status="CREATED",
    )


class FakeBindings:
    def __init__(self, bindings=None, error: Exception | None = None):
        self.bindings = bindings or []
        self.error = error
        self.calls = []

    async def find_provisioned(self, owner, repo_name, github_installation_id):
        self.calls.append((owner, repo_name, github_installation_id))
        if self.error:
            raise self.error
        return self.bindings


class FakeHistory:
    def __init__(self, failing: set | None = None):
        self.failing = failing or set()
        self.recorded = []

    async def record(self, project_id, event):
        self.recorded.append((project_id, event.pushed_branch))
        if project_id in self.failing:
            return HistoryWriteResult(project_id, ok=False, error="insert failed")
        return HistoryWriteResult(project_id, ok=True)


def _builds(*, fail_for: set | None = None) -> AsyncMock:
    fail_for = fail_for or set()
    builds = AsyncMock()

    async def _start(name, branch):
        if name in fail_for:
            raise BuildStartError(name, "Project cannot be found", 400, "ResourceNotFoundException")
        return BuildStartResponse(f"{name}:1", name, f"refs/heads/{branch}")

    builds.start_build.side_effect = _start
    return builds


def _dispatcher(bindings, history=None, builds=None) -> PushBuildDispatcher:
    return PushBuildDispatcher(bindings, history or FakeHistory(), builds or _builds())


class TestHandlePush:
    async def test_matching_branch_starts_one_build(self):
        binding = _binding("main")
        builds = _builds()
        history = FakeHistory()

        report = await _dispatcher(FakeBindings([binding]), history, builds).handle_push(_push("main"))

        builds.start_build.assert_awaited_once_with("proj-123", "main")
        assert history.recorded == [(binding.project_id, "main")]
        assert report.builds_started == 1
        assert report.results[0].build.build_id == "proj-123:1"
        assert report.repository == "acme/widgets"
        assert report.branch == "main"

    async def test_branch_mismatch_is_skipped_but_recorded(self):
        binding = _binding("main")
        builds = _builds()
        history = FakeHistory()

        report = await _dispatcher(FakeBindings([binding]), history, builds).handle_push(_push("develop"))

        builds.start_build.assert_not_called()
        assert history.recorded == [(binding.project_id, "develop")]
        result = report.results[0].build
        assert result.skipped is True
        assert result.success is False
        assert result.reason == SKIP_BRANCH_MISMATCH
        assert report.builds_failed == 0

    async def test_missing_build_project_is_skipped(self):
        builds = _builds()
        report = await _dispatcher(
            FakeBindings([_binding("main", build_project=None)]), builds=builds
        ).handle_push(_push("main"))

        builds.start_build.assert_not_called()
        assert report.results[0].build.reason == SKIP_NO_BUILD_PROJECT

    async def test_lookup_uses_owner_repo_and_installation(self):
        bindings = FakeBindings([])
        await _dispatcher(bindings).handle_push(_push())
        assert bindings.calls == [("acme", "widgets", 12345)]

    async def test_unparseable_push_does_no_work(self):
        bindings = FakeBindings([_binding()])
        builds = _builds()

        report = await _dispatcher(bindings, builds=builds).handle_push(
            _push(repository={"name": "widgets"})
        )

        assert report.aborted_reason == "missing repository.full_name"
        assert bindings.calls == []
        builds.start_build.assert_not_called()

    async def test_no_bindings(self):
        report = await _dispatcher(FakeBindings([])).handle_push(_push())
        assert report.aborted_reason == "no matching projects"
        assert report.results == []

    async def test_lookup_failure_is_reported_not_raised(self):
        report = await _dispatcher(FakeBindings(error=RuntimeError("db down"))).handle_push(_push())
        assert report.aborted_reason == "project lookup failed"

    async def test_one_failed_build_does_not_affect_others(self):
        ok = _binding("main", build_project="proj-ok")
        bad = _binding("main", build_project="proj-missing")
        history = FakeHistory()
        builds = _builds(fail_for={"proj-missing"})

        report = await _dispatcher(FakeBindings([ok, bad]), history, builds).handle_push(_push())

        assert builds.start_build.await_count == 2
        assert {pid for pid, _ in history.recorded} == {ok.project_id, bad.project_id}
        by_project = {r.binding.project_id: r.build for r in report.results}
        assert by_project[ok.project_id].success is True
        assert by_project[bad.project_id].success is False
        assert "ResourceNotFoundException" in by_project[bad.project_id].error
        assert report.builds_started == 1
        assert report.builds_failed == 1

    async def test_history_failure_does_not_block_build(self):
        binding = _binding("main")
        builds = _builds()
        history = FakeHistory(failing={binding.project_id})

        report = await _dispatcher(FakeBindings([binding]), history, builds).handle_push(_push())

        assert report.results[0].history.ok is False
        assert report.results[0].build.success is True

    async def test_history_exception_does_not_block_build(self):
        binding = _binding("main")
        history = AsyncMock()
        history.record.side_effect = RuntimeError("boom")

        report = await _dispatcher(FakeBindings([binding]), history).handle_push(_push())

        assert report.results[0].history.ok is False
        assert report.results[0].build.success is True

    async def test_unexpected_build_error_is_captured(self):
        builds = AsyncMock()
        builds.start_build.side_effect = RuntimeError("unexpected")

        report = await _dispatcher(FakeBindings([_binding()]), builds=builds).handle_push(_push())

        assert report.results[0].build.success is False
        assert report.results[0].build.error == "unexpected"

    async def test_builds_start_concurrently(self):
        started = asyncio.Event()
        waiting = 0

        async def _start(name, branch):
            nonlocal waiting
            waiting += 1
            if waiting == 2:
                started.set()
            await asyncio.wait_for(started.wait(), timeout=1)
            return BuildStartResponse(name, name, branch)

        builds = AsyncMock()
        builds.start_build.side_effect = _start

        report = await _dispatcher(
            FakeBindings([_binding(build_project="a"), _binding(build_project="b")]),
            builds=builds,
        ).handle_push(_push())

        assert report.builds_started == 2


class TestWebhookEventDispatcher:
    @pytest.fixture
    def push(self):
        return AsyncMock(spec=PushBuildDispatcher)

    async def test_push_is_routed(self, push):
        outcome = await WebhookEventDispatcher(push).dispatch("push", {"ref": "x"})
        push.handle_push.assert_awaited_once_with({"ref": "x"})
        assert outcome.handled is True
        assert outcome.action == "push_processed"

    @pytest.mark.parametrize("event_type", ["installation", "pull_request"])
    async def test_acknowledged_events(self, push, event_type):
        outcome = await WebhookEventDispatcher(push).dispatch(event_type, {"action": "created"})
        push.handle_push.assert_not_called()
        assert outcome.handled is True
        assert outcome.action == "acknowledged"

    @pytest.mark.parametrize("event_type", ["issues", ""])
    async def test_other_events_are_unhandled(self, push, event_type):
        outcome = await WebhookEventDispatcher(push).dispatch(event_type, {})
        assert outcome.handled is False
        assert outcome.action == "unhandled"

    async def test_handler_error_is_captured(self, push):
        push.handle_push.side_effect = RuntimeError("boom")
        outcome = await WebhookEventDispatcher(push).dispatch("push", {})
        assert outcome.handled is False
        assert outcome.action == "failed"
        assert outcome.error == "boom"
