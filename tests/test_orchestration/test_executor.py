"""
Tests for deployer.orchestration.executor - DeploymentExecutor
================================================================

Pipelines are assembled from small scripted processors so each rule of
the run loop can be checked in isolation:

    - ChangeSet threading (unchanged vs replaced, per-stage filters)
    - gating (should_execute False → no execution record)
    - non-fatal errors continue, fatal errors stop
    - cancellation at processor boundaries
    - dry runs
    - the marker only advances on SUCCESS
"""

import asyncio
from typing import Any, Optional

import pytest

from deployer.core.enums import DeploymentStatus, ProcessorExecutionStatus
from deployer.core.exceptions import ProcessorError, StateError
from deployer.core.models import ChangeSet, ChangeSetUpdate, Deployment, PathFilter
from deployer.infrastructure.marker_store import InMemoryProcessedCommitsStore
from deployer.orchestration.executor import DeploymentExecutor
from deployer.orchestration.pipeline import Pipeline, Target
from deployer.processors.base import Processor
from deployer.processors.file_output import FileOutputProcessor


# =============================================================================
# Helpers: scripted processors
# =============================================================================

class SyncStub(Processor):
    """Stands in for the sync stage: records a revision and emits a ChangeSet."""

    def __init__(self, change_set: ChangeSet, revision: str = "rev-b") -> None:
        super().__init__(name="git_pull")
        self._change_set = change_set
        self._revision = revision

    def fails_deployment_on_error(self) -> bool:
        return True

    async def execute(self, deployment, change_set, params):
        deployment.revision = self._revision
        return ChangeSetUpdate.replaced(self._change_set, details="synced")


class RecordingProcessor(Processor):
    """Records what it received and returns/raises what it was told to."""

    def __init__(
        self,
        name: str,
        update: Optional[Any] = None,
        error: Optional[Exception] = None,
        fatal: Optional[bool] = None,
        run: bool = True,
        path_filter: Optional[PathFilter] = None,
        on_execute=None,
    ) -> None:
        super().__init__(name=name, path_filter=path_filter, fails_deployment_on_error=fatal)
        self._update = update if update is not None else ChangeSetUpdate.unchanged(details=f"{name} ok")
        self._error = error
        self._run = run
        self._on_execute = on_execute
        self.received: list[ChangeSet] = []
        self.params: list[dict] = []

    def should_execute(self, deployment, change_set):
        return self._run and super().should_execute(deployment, change_set)

    async def execute(self, deployment, change_set, params):
        self.received.append(change_set)
        self.params.append(params)
        if self._on_execute is not None:
            self._on_execute()
        if self._error is not None:
            raise self._error
        return self._update


def _target(*processors: Processor) -> Target:
    return Target(target_id="site1", local_repo_path="/tmp/site1", pipeline=Pipeline(processors))


CHANGES = ChangeSet(
    created_files={"content/a.xml", "static/a.css"},
    updated_files={"content/b.xml"},
)


@pytest.fixture
def executor(marker_store) -> DeploymentExecutor:
    return DeploymentExecutor(marker_store)


# =============================================================================
# Test: Successful runs and ChangeSet threading
# =============================================================================
class TestExecutorSuccess:
    """Happy-path runs."""

    async def test_successful_run_advances_marker(self, executor, marker_store) -> None:
        stage = RecordingProcessor("search_index")

        deployment = await executor.run(_target(SyncStub(CHANGES), stage))

        assert deployment.status == DeploymentStatus.SUCCESS
        assert deployment.is_finished
        assert deployment.change_set == CHANGES
        assert stage.received == [CHANGES]
        assert [e.status for e in deployment.processor_executions] == [
            ProcessorExecutionStatus.SUCCESS,
            ProcessorExecutionStatus.SUCCESS,
        ]
        assert deployment.processor_executions[0].status_details == "synced"
        assert await marker_store.get("site1") == "rev-b"

    async def test_replaced_change_set_flows_to_next_stage(self, executor) -> None:
        narrowed = ChangeSet(created_files={"content/a.xml"})
        first = RecordingProcessor("narrow", update=ChangeSetUpdate.replaced(narrowed))
        second = RecordingProcessor("consume")

        deployment = await executor.run(_target(SyncStub(CHANGES), first, second))

        assert second.received == [narrowed]
        assert deployment.change_set == narrowed

    async def test_stage_sees_filtered_view_but_full_set_threads_on(self, executor) -> None:
        content_only = RecordingProcessor("content", path_filter=PathFilter(include=("content/*",)))
        everything = RecordingProcessor("everything")

        await executor.run(_target(SyncStub(CHANGES), content_only, everything))

        assert content_only.received[0].all_files == frozenset({"content/a.xml", "content/b.xml"})
        assert everything.received[0] == CHANGES

    async def test_params_reach_every_stage(self, executor) -> None:
        stage = RecordingProcessor("stage")
        deployment = await executor.run(
            _target(SyncStub(CHANGES), stage), params={"reprocess_all_files": True},
        )
        assert stage.params == [{"reprocess_all_files": True}]
        assert deployment.params == {"reprocess_all_files": True}

    async def test_skipped_stage_has_no_execution_record(self, executor) -> None:
        skipped = RecordingProcessor("skipped", run=False)

        deployment = await executor.run(_target(SyncStub(CHANGES), skipped))

        assert skipped.received == []
        assert [e.processor_name for e in deployment.processor_executions] == ["git_pull"]
        assert deployment.status == DeploymentStatus.SUCCESS

    async def test_unchanged_revision_does_not_rewrite_marker(self, marker_store) -> None:
        class CountingStore(InMemoryProcessedCommitsStore):
            puts = 0

            async def put(self, target_id, revision):
                CountingStore.puts += 1
                await super().put(target_id, revision)

        store = CountingStore()

        class UpToDateSync(SyncStub):
            async def execute(self, deployment, change_set, params):
                deployment.previous_revision = "rev-b"
                return await super().execute(deployment, change_set, params)

        deployment = await DeploymentExecutor(store).run(_target(UpToDateSync(ChangeSet.empty())))

        assert deployment.status == DeploymentStatus.SUCCESS
        assert CountingStore.puts == 0


# =============================================================================
# Test: Gating
# =============================================================================
class ExplodingGate(RecordingProcessor):
    def should_execute(self, deployment, change_set):
        raise RuntimeError("gate exploded")


class TestExecutorGating:
    """should_execute sees the filtered view and is guarded like execute."""

    async def test_gate_sees_filtered_view(self, executor, tmp_path) -> None:
        css_only = FileOutputProcessor(
            "site1", tmp_path / "out", path_filter=PathFilter(include=("*.css",)),
        )
        html_only = SyncStub(ChangeSet(created_files={"index.html"}))

        deployment = await executor.run(_target(html_only, css_only))

        assert deployment.status == DeploymentStatus.SUCCESS
        assert [e.processor_name for e in deployment.processor_executions] == ["git_pull"]
        assert not (tmp_path / "out").exists()

    async def test_raising_gate_is_recorded_as_failure(self, executor) -> None:
        gate = ExplodingGate("exploding")
        after = RecordingProcessor("after")

        deployment = await executor.run(_target(SyncStub(CHANGES), gate, after))

        assert deployment.status == DeploymentStatus.SUCCESS
        failed = deployment.failed_executions
        assert [e.processor_name for e in failed] == ["exploding"]
        assert failed[0].status_details == "gate exploded"
        assert gate.received == []
        assert after.received == [CHANGES]

    async def test_raising_fatal_gate_fails_deployment(self, executor, marker_store) -> None:
        gate = ExplodingGate("exploding", fatal=True)

        deployment = await executor.run(_target(SyncStub(CHANGES), gate))

        assert deployment.status == DeploymentStatus.FAILURE
        assert deployment.is_finished
        assert "gate exploded" in deployment.status_details
        assert await marker_store.get("site1") is None


# =============================================================================
# Test: Failures
# =============================================================================
class TestExecutorFailures:
    """Error handling rules."""

    async def test_non_fatal_error_continues(self, executor, marker_store) -> None:
        failing = RecordingProcessor("flaky", error=ProcessorError("index down", processor_name="flaky"))
        after = RecordingProcessor("after")

        deployment = await executor.run(_target(SyncStub(CHANGES), failing, after))

        assert deployment.status == DeploymentStatus.SUCCESS
        assert after.received == [CHANGES]
        failed = deployment.failed_executions
        assert [e.processor_name for e in failed] == ["flaky"]
        assert failed[0].status_details == "index down"
        assert failed[0].error["error_code"] == "PROCESSOR_ERROR"
        assert await marker_store.get("site1") == "rev-b"

    async def test_unexpected_exception_is_recorded(self, executor) -> None:
        failing = RecordingProcessor("buggy", error=KeyError("missing"))

        deployment = await executor.run(_target(SyncStub(CHANGES), failing))

        error = deployment.failed_executions[0].error
        assert error["error_type"] == "KeyError"
        assert error["error_code"] == "UNEXPECTED_ERROR"

    async def test_fatal_error_stops_pipeline(self, executor, marker_store) -> None:
        await marker_store.put("site1", "rev-a")
        failing = RecordingProcessor("critical", error=RuntimeError("boom"), fatal=True)
        after = RecordingProcessor("after")

        deployment = await executor.run(_target(SyncStub(CHANGES), failing, after))

        assert deployment.status == DeploymentStatus.FAILURE
        assert "critical" in deployment.status_details
        assert after.received == []
        assert [e.processor_name for e in deployment.processor_executions] == ["git_pull", "critical"]
        assert await marker_store.get("site1") == "rev-a"

    async def test_failing_sync_stage_is_fatal(self, executor, marker_store) -> None:
        class BrokenSync(SyncStub):
            async def execute(self, deployment, change_set, params):
                raise ProcessorError("clone failed", processor_name="git_pull")

        after = RecordingProcessor("after")
        deployment = await executor.run(_target(BrokenSync(CHANGES), after))

        assert deployment.status == DeploymentStatus.FAILURE
        assert after.received == []
        assert await marker_store.get("site1") is None

    async def test_non_update_return_value_is_a_failure(self, executor) -> None:
        bad = RecordingProcessor("legacy", update="not an update")
        after = RecordingProcessor("after")

        deployment = await executor.run(_target(SyncStub(CHANGES), bad, after))

        failed = deployment.failed_executions
        assert [e.processor_name for e in failed] == ["legacy"]
        assert failed[0].error["error_code"] == "INVALID_PROCESSOR_RESULT"
        assert after.received == [CHANGES]

    async def test_marker_write_failure_fails_deployment(self) -> None:
        class BrokenStore(InMemoryProcessedCommitsStore):
            async def put(self, target_id, revision):
                raise StateError("disk full", error_code="MARKER_WRITE_FAILED")

        deployment = await DeploymentExecutor(BrokenStore()).run(_target(SyncStub(CHANGES)))

        assert deployment.status == DeploymentStatus.FAILURE
        assert "disk full" in deployment.status_details


# =============================================================================
# Test: Cancellation and dry runs
# =============================================================================
class TestExecutorCancellationAndDryRun:
    """Boundary cancellation and dry runs."""

    async def test_cancelled_before_start(self, executor, marker_store) -> None:
        cancel = asyncio.Event()
        cancel.set()
        sync = SyncStub(CHANGES)

        deployment = await executor.run(_target(sync), cancel_event=cancel)

        assert deployment.status == DeploymentStatus.CANCELLED
        assert deployment.processor_executions == []
        assert await marker_store.get("site1") is None

    async def test_cancel_takes_effect_at_next_boundary(self, executor, marker_store) -> None:
        cancel = asyncio.Event()
        first = RecordingProcessor("first", on_execute=cancel.set)
        second = RecordingProcessor("second")

        deployment = await executor.run(_target(SyncStub(CHANGES), first, second), cancel_event=cancel)

        assert deployment.status == DeploymentStatus.CANCELLED
        assert first.received == [CHANGES]
        assert second.received == []
        assert "second" in deployment.status_details
        assert await marker_store.get("site1") is None

    async def test_dry_run_executes_nothing(self, executor, marker_store) -> None:
        stage = RecordingProcessor("stage")

        deployment = await executor.run(_target(SyncStub(CHANGES), stage), dry_run=True)

        assert deployment.status == DeploymentStatus.SUCCESS
        assert deployment.processor_executions == []
        assert deployment.change_set.is_empty
        assert await marker_store.get("site1") is None

    async def test_task_cancellation_marks_deployment_cancelled(self, executor) -> None:
        started = asyncio.Event()
        seen: list[Deployment] = []

        class Blocking(Processor):
            async def execute(self, deployment, change_set, params):
                seen.append(deployment)
                started.set()
                await asyncio.Event().wait()

        task = asyncio.create_task(executor.run(_target(Blocking(name="blocking"))))
        await started.wait()
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task
        assert seen[0].status == DeploymentStatus.CANCELLED
