"""
deployer.orchestration.executor - Deployment Executor
=======================================================

Runs a target's pipeline once and records the outcome as a Deployment.

Execution Flow:
    1. Create the Deployment (PENDING) and start it (RUNNING) unless dry run.
    2. For each processor, in order:
       a. cancellation requested?            → stop, deployment CANCELLED
       b. view = ChangeSet filtered by the processor's path filter
       c. should_execute(deployment, view)?  → False: skipped, no execution record
       d. execute(deployment, view, params)  → ChangeSetUpdate
             success → apply the update, execution SUCCESS
             error   → execution FAILURE (also when the gate in c. raises)
                         fatal stage     → stop, deployment FAILURE
                         non-fatal stage → continue, ChangeSet unchanged
    3. Finalize the deployment.
    4. SUCCESS (and not a dry run) with a revision → advance the marker.

    ┌───────────┐   ChangeSet   ┌───────────┐   ChangeSet'   ┌───────────┐
    │ git_pull  │ ────────────→ │ stage 2   │ ─────────────→ │ stage n   │
    └───────────┘               └───────────┘                └───────────┘
          │                                                        │
          └── deployment.revision                marker ← revision ┘
                                                 (only on SUCCESS)

The marker is the last thing written. If the process dies anywhere before
that, the next run re-delivers the same changes.

Cancellation is cooperative: a requested cancellation is honoured at the
next processor boundary, never in the middle of a stage.
"""

from __future__ import annotations

import asyncio
from typing import Any, Optional

import structlog
from structlog.contextvars import bound_contextvars

from deployer.core.enums import DeploymentStatus
from deployer.core.exceptions import DeployerError, ProcessorError, StateError
from deployer.core.models import ChangeSet, ChangeSetUpdate, Deployment, ProcessorExecution
from deployer.infrastructure.marker_store import ProcessedCommitsStore
from deployer.orchestration.pipeline import Target
from deployer.processors.base import Processor


logger = structlog.get_logger()


def _error_dict(error: BaseException) -> dict[str, Any]:
    if isinstance(error, DeployerError):
        return error.to_dict()
    return {
        "error_type": type(error).__name__,
        "message": str(error),
        "error_code": "UNEXPECTED_ERROR",
        "details": {},
    }


class DeploymentExecutor:
    """Executes target pipelines and persists processed-commit markers.

    The executor holds no per-run state; one instance serves every target.
    Callers are responsible for not running the same target twice at once
    (see TargetLockRegistry).

    Attributes:
        _marker_store: Where the revision of successful runs is recorded.
        _logger: Structured logger with executor context.

    Example:
        >>> executor = DeploymentExecutor(FileProcessedCommitsStore("/var/deployer/markers"))
        >>> deployment = await executor.run(target)
        >>> deployment.status
        <DeploymentStatus.SUCCESS: 'success'>
    """

    def __init__(self, marker_store: ProcessedCommitsStore) -> None:
        self._marker_store = marker_store
        self._logger = logger.bind(component="deployment_executor")

    # =========================================================================
    # Main Entry Point
    # =========================================================================

    async def run(
        self,
        target: Target,
        params: Optional[dict[str, Any]] = None,
        cancel_event: Optional[asyncio.Event] = None,
        dry_run: bool = False,
    ) -> Deployment:
        """Run ``target``'s pipeline once.

        Args:
            target: The target to deploy.
            params: Run parameters passed to every processor.
            cancel_event: Set it to stop the run at the next processor boundary.
            dry_run: Create and finalize the deployment without starting it.
                Processors with the default ``should_execute`` are skipped
                and the marker is never advanced.

        Returns:
            The finalized Deployment. Processor failures are recorded on it,
            not raised.
        """
        deployment = Deployment(target_id=target.target_id, params=dict(params or {}))

        with bound_contextvars(
            target_id=target.target_id,
            deployment_id=deployment.deployment_id,
        ):
            self._logger.info(
                "deployment_starting",
                processors=target.pipeline.processor_names,
                dry_run=dry_run,
                params=deployment.params,
            )

            if not dry_run:
                deployment.start()

            try:
                await self._execute_pipeline(target, deployment, cancel_event)
            except asyncio.CancelledError:
                deployment.end(DeploymentStatus.CANCELLED, "Deployment task was cancelled")
                self._logger.warning("deployment_task_cancelled")
                raise

            if deployment.status == DeploymentStatus.SUCCESS and not dry_run:
                await self._advance_marker(deployment)

            self._logger.info(
                "deployment_completed",
                status=deployment.status.value,
                status_details=deployment.status_details,
                revision=deployment.revision,
                duration_seconds=deployment.duration_seconds,
                failed_processors=[e.processor_name for e in deployment.failed_executions],
                **deployment.change_set.summary(),
            )

        return deployment

    # =========================================================================
    # Pipeline Loop
    # =========================================================================

    async def _execute_pipeline(
        self,
        target: Target,
        deployment: Deployment,
        cancel_event: Optional[asyncio.Event],
    ) -> None:
        change_set = ChangeSet.empty()

        for processor in target.pipeline:
            if cancel_event is not None and cancel_event.is_set():
                self._logger.warning("deployment_cancelled", next_processor=processor.name)
                deployment.end(
                    DeploymentStatus.CANCELLED,
                    f"Deployment cancelled before processor {processor.name}",
                )
                return

            change_set, fatal = await self._execute_processor(processor, deployment, change_set)
            if fatal:
                deployment.end(
                    DeploymentStatus.FAILURE,
                    f"Processor {processor.name} failed: "
                    f"{deployment.processor_executions[-1].status_details}",
                )
                return

        deployment.end(DeploymentStatus.SUCCESS)

    async def _execute_processor(
        self,
        processor: Processor,
        deployment: Deployment,
        change_set: ChangeSet,
    ) -> tuple[ChangeSet, bool]:
        """Gate, run and record one stage.

        The processor's filtered view of ``change_set`` is what both
        ``should_execute`` and ``execute`` see. A skipped stage leaves no
        execution record.

        Returns:
            The ChangeSet for the next stage and whether the error (if any)
            aborts the deployment.
        """
        try:
            view = change_set.filter(processor.path_filter)
            if not processor.should_execute(deployment, view):
                self._logger.debug("processor_skipped", processor=processor.name)
                return change_set, False
        except Exception as e:
            execution = deployment.start_processor_execution(processor.name)
            return change_set, self._record_failure(processor, execution, e)

        execution = deployment.start_processor_execution(processor.name)
        self._logger.info("processor_starting", processor=processor.name)

        try:
            update = await processor.execute(deployment, view, deployment.params)
            if not isinstance(update, ChangeSetUpdate):
                raise ProcessorError(
                    message=(
                        f"Processor {processor.name} returned {type(update).__name__} "
                        "instead of a ChangeSetUpdate"
                    ),
                    processor_name=processor.name,
                    error_code="INVALID_PROCESSOR_RESULT",
                )
        except Exception as e:
            return change_set, self._record_failure(processor, execution, e)

        change_set = update.apply(change_set)
        deployment.change_set = change_set
        execution.end_success(update.details)

        self._logger.info(
            "processor_completed",
            processor=processor.name,
            change_set_replaced=update.is_replaced,
            details=update.details,
            **change_set.summary(),
        )
        return change_set, False

    def _record_failure(
        self,
        processor: Processor,
        execution: ProcessorExecution,
        error: Exception,
    ) -> bool:
        """Close ``execution`` as failed. Returns whether the failure is fatal."""
        fatal = processor.fails_deployment_on_error()
        execution.end_failure(details=str(error), error=_error_dict(error))
        self._logger.error(
            "processor_failed",
            processor=processor.name,
            fatal=fatal,
            error=str(error),
            error_type=type(error).__name__,
            exc_info=not isinstance(error, DeployerError),
        )
        return fatal

    # =========================================================================
    # Marker
    # =========================================================================

    async def _advance_marker(self, deployment: Deployment) -> None:
        """Record the deployment's revision as fully processed.

        A failed write turns the deployment into a FAILURE: the next run
        re-delivers the same changes instead of losing them.
        """
        if deployment.revision is None:
            return
        if deployment.revision == deployment.previous_revision:
            self._logger.debug("marker_unchanged", revision=deployment.revision)
            return

        try:
            await self._marker_store.put(deployment.target_id, deployment.revision)
        except StateError as e:
            deployment.status = DeploymentStatus.FAILURE
            deployment.status_details = f"Failed to record processed revision: {e.message}"
            self._logger.error(
                "marker_write_failed",
                revision=deployment.revision,
                error=e.to_dict(),
            )
