"""
deployer.core.models - Core Data Models
=========================================

The Pydantic models that flow through every layer of the deployer:

    PathFilter          → Which paths a stage cares about (include/exclude globs)
    ChangeSet           → Which files were created/updated/deleted in this run
    ChangeSetUpdate     → What a processor did to the ChangeSet (unchanged/replaced)
    ProcessorExecution  → Record of one processor invocation
    Deployment          → One run of a target's pipeline

Data Flow Through a Run:
    ┌──────────────┐  Deployment + ChangeSet   ┌──────────────┐
    │  Deployment   │ ────────────────────────→ │  Processor    │
    │  Executor     │                           │  (stage)      │
    │              │ ←──────────────────────── │              │
    └──────────────┘     ChangeSetUpdate       └──────────────┘
           │
           │  ProcessorExecution appended per invocation
           ↓
    ┌──────────────┐
    │  Deployment   │  status, change_set, processor_executions, revision
    └──────────────┘

Design Principles:
    1. ChangeSet is immutable: narrowing always builds a new value.
    2. Processors never return None to mean "pass through"; they return an
       explicit ChangeSetUpdate.
    3. Deployment is the run's mutable record and is never reused.
"""

from __future__ import annotations

import fnmatch
from datetime import datetime, timezone
from typing import Any, Iterable, Literal, Optional
from uuid import uuid4

from pydantic import BaseModel, Field, model_validator

from deployer.core.enums import DeploymentStatus, ProcessorExecutionStatus


def _generate_deployment_id() -> str:
    """Generate a unique deployment identifier ("dep-<uuid4>")."""
    return f"dep-{uuid4()}"


def _now() -> datetime:
    """Current UTC timestamp. Every timestamp in the deployer is UTC."""
    return datetime.now(timezone.utc)


# =============================================================================
# Path Filter
# =============================================================================
# Include/exclude glob lists from configuration. Matching uses fnmatch, so
# "*" also matches across "/" ("static/*" matches "static/css/site.css").
#
#   include empty  → every path is included
#   exclude match  → path is dropped, even if it is also included
# =============================================================================
class PathFilter(BaseModel):
    """Include/exclude glob filter over repository-relative paths.

    Example:
        >>> f = PathFilter(include=["content/*"], exclude=["*.tmp"])
        >>> f.matches("content/index.xml")
        True
        >>> f.matches("content/draft.tmp")
        False
    """

    model_config = {"frozen": True}

    include: tuple[str, ...] = Field(
        default=(),
        description="Glob patterns a path must match (empty = match everything)",
    )
    exclude: tuple[str, ...] = Field(
        default=(),
        description="Glob patterns that drop a path even when it is included",
    )

    @property
    def is_noop(self) -> bool:
        """True when the filter lets every path through."""
        return not self.include and not self.exclude

    def matches(self, path: str) -> bool:
        """Check whether a repository-relative path passes the filter."""
        if self.include and not any(fnmatch.fnmatch(path, p) for p in self.include):
            return False
        return not any(fnmatch.fnmatch(path, p) for p in self.exclude)

    def apply(self, paths: Iterable[str]) -> frozenset[str]:
        """Return the subset of ``paths`` that pass the filter."""
        return frozenset(p for p in paths if self.matches(p))


# =============================================================================
# ChangeSet
# =============================================================================
class ChangeSet(BaseModel):
    """File-level differences processed during one deployment run.

    Three disjoint sets of repository-relative POSIX paths. A path appears
    in at most one of them; constructing a ChangeSet that violates this
    raises a validation error.

    Attributes:
        created_files: Paths added since the last processed revision.
        updated_files: Paths modified since the last processed revision.
        deleted_files: Paths removed since the last processed revision.

    Example:
        >>> cs = ChangeSet(created_files={"index.html"}, deleted_files={"old.html"})
        >>> cs.is_empty
        False
        >>> sorted(cs.all_files)
        ['index.html', 'old.html']
    """

    model_config = {"frozen": True}

    created_files: frozenset[str] = Field(
        default_factory=frozenset,
        description="Paths created since the last processed revision",
    )
    updated_files: frozenset[str] = Field(
        default_factory=frozenset,
        description="Paths updated since the last processed revision",
    )
    deleted_files: frozenset[str] = Field(
        default_factory=frozenset,
        description="Paths deleted since the last processed revision",
    )

    @model_validator(mode="after")
    def _check_disjoint(self) -> ChangeSet:
        overlap = (
            (self.created_files & self.updated_files)
            | (self.created_files & self.deleted_files)
            | (self.updated_files & self.deleted_files)
        )
        if overlap:
            raise ValueError(
                f"Paths must appear in only one of created/updated/deleted: {sorted(overlap)}"
            )
        return self

    @classmethod
    def empty(cls) -> ChangeSet:
        """A ChangeSet with no changes."""
        return cls()

    @property
    def is_empty(self) -> bool:
        """True when no file was created, updated or deleted."""
        return not (self.created_files or self.updated_files or self.deleted_files)

    @property
    def all_files(self) -> frozenset[str]:
        """Union of the three sets."""
        return self.created_files | self.updated_files | self.deleted_files

    def filter(self, path_filter: Optional[PathFilter]) -> ChangeSet:
        """Return a new ChangeSet keeping only the paths that pass ``path_filter``.

        Args:
            path_filter: Filter to apply. None (or a no-op filter) returns
                this ChangeSet unchanged.
        """
        if path_filter is None or path_filter.is_noop:
            return self
        return ChangeSet(
            created_files=path_filter.apply(self.created_files),
            updated_files=path_filter.apply(self.updated_files),
            deleted_files=path_filter.apply(self.deleted_files),
        )

    def summary(self) -> dict[str, int]:
        """Counts per set, for logging."""
        return {
            "created": len(self.created_files),
            "updated": len(self.updated_files),
            "deleted": len(self.deleted_files),
        }


# =============================================================================
# ChangeSetUpdate
# =============================================================================
# What a processor returns from execute(). Two variants:
#
#   unchanged → the next stage sees the same ChangeSet this stage received
#   replaced  → the next stage sees the new ChangeSet
#
# ``details`` becomes the status detail of the stage's ProcessorExecution.
# =============================================================================
class ChangeSetUpdate(BaseModel):
    """Explicit result of ``Processor.execute``.

    Example:
        >>> ChangeSetUpdate.unchanged(details="Nothing to index")
        >>> ChangeSetUpdate.replaced(narrowed, details="Indexed 12 files")
    """

    model_config = {"frozen": True}

    kind: Literal["unchanged", "replaced"] = Field(
        description="Whether the stage narrowed the ChangeSet",
    )
    change_set: Optional[ChangeSet] = Field(
        default=None,
        description="The replacement ChangeSet (only for kind='replaced')",
    )
    details: Optional[str] = Field(
        default=None,
        description="Human-readable status detail for the stage's execution record",
    )

    @model_validator(mode="after")
    def _check_variant(self) -> ChangeSetUpdate:
        if self.kind == "replaced" and self.change_set is None:
            raise ValueError("A replaced ChangeSetUpdate requires a change_set")
        if self.kind == "unchanged" and self.change_set is not None:
            raise ValueError("An unchanged ChangeSetUpdate cannot carry a change_set")
        return self

    @classmethod
    def unchanged(cls, details: Optional[str] = None) -> ChangeSetUpdate:
        """Pass the incoming ChangeSet through to the next stage."""
        return cls(kind="unchanged", details=details)

    @classmethod
    def replaced(cls, change_set: ChangeSet, details: Optional[str] = None) -> ChangeSetUpdate:
        """Hand ``change_set`` to the next stage instead of the incoming one."""
        return cls(kind="replaced", change_set=change_set, details=details)

    @property
    def is_replaced(self) -> bool:
        return self.kind == "replaced"

    def apply(self, current: ChangeSet) -> ChangeSet:
        """Return the ChangeSet the next stage should see."""
        if self.change_set is not None:
            return self.change_set
        return current


# =============================================================================
# Processor Execution
# =============================================================================
class ProcessorExecution(BaseModel):
    """Record of one processor invocation within a Deployment.

    Created (RUNNING) when the processor starts, closed (SUCCESS/FAILURE)
    when it returns or raises.

    Attributes:
        processor_name: Name of the processor that ran.
        status: RUNNING while executing, then SUCCESS or FAILURE.
        status_details: Human-readable outcome ("Local repo up to date", ...).
        error: Serialized exception for failed executions.
        started_at: When the processor started (UTC).
        ended_at: When the processor returned or raised (UTC).
    """

    processor_name: str = Field(
        description="Name of the processor that ran",
    )
    status: ProcessorExecutionStatus = Field(
        default=ProcessorExecutionStatus.RUNNING,
        description="Execution status",
    )
    status_details: Optional[str] = Field(
        default=None,
        description="Human-readable outcome of the execution",
    )
    error: Optional[dict[str, Any]] = Field(
        default=None,
        description="Serialized error for failed executions",
    )
    started_at: datetime = Field(
        default_factory=_now,
        description="When the processor started (UTC)",
    )
    ended_at: Optional[datetime] = Field(
        default=None,
        description="When the processor finished (UTC)",
    )

    @property
    def is_running(self) -> bool:
        return self.status == ProcessorExecutionStatus.RUNNING

    def end_success(self, details: Optional[str] = None) -> None:
        """Close the execution as successful."""
        self.status = ProcessorExecutionStatus.SUCCESS
        if details is not None:
            self.status_details = details
        self.ended_at = _now()

    def end_failure(self, details: str, error: Optional[dict[str, Any]] = None) -> None:
        """Close the execution as failed."""
        self.status = ProcessorExecutionStatus.FAILURE
        self.status_details = details
        self.error = error
        self.ended_at = _now()


# =============================================================================
# Deployment
# =============================================================================
class Deployment(BaseModel):
    """One execution of a target's pipeline.

    Lifecycle:
        1. Created by the DeploymentExecutor (PENDING)
        2. start() → RUNNING (skipped for dry runs)
        3. Processors append ProcessorExecutions and thread the ChangeSet
        4. end(status) → SUCCESS / FAILURE / CANCELLED

    Attributes:
        deployment_id: Unique identifier ("dep-<uuid4>").
        target_id: Target this run belongs to.
        status: Current lifecycle status.
        change_set: The current ChangeSet (updated after each stage).
        processor_executions: One record per processor invocation, in order.
        params: Run parameters (e.g. {"reprocess_all_files": True}).
        previous_revision: Marker revision the run started from, if any.
        revision: Revision the sync stage brought the mirror to. The
            executor records it as the target's marker on success.
        status_details: Run-level detail (why it failed or was cancelled).
        started_at / ended_at: Run timestamps (UTC).

    Example:
        >>> deployment = Deployment(target_id="site1")
        >>> deployment.start()
        >>> deployment.is_running
        True
    """

    deployment_id: str = Field(
        default_factory=_generate_deployment_id,
        description="Unique deployment identifier",
    )
    target_id: str = Field(
        description="Target this deployment belongs to",
    )
    status: DeploymentStatus = Field(
        default=DeploymentStatus.PENDING,
        description="Current lifecycle status",
    )
    change_set: ChangeSet = Field(
        default_factory=ChangeSet.empty,
        description="The current ChangeSet, as narrowed by the stages so far",
    )
    processor_executions: list[ProcessorExecution] = Field(
        default_factory=list,
        description="Processor execution records, in pipeline order",
    )
    params: dict[str, Any] = Field(
        default_factory=dict,
        description="Run parameters passed to every processor",
    )
    previous_revision: Optional[str] = Field(
        default=None,
        description="Last fully processed revision when the run started",
    )
    revision: Optional[str] = Field(
        default=None,
        description="Revision the mirror was synchronized to during this run",
    )
    status_details: Optional[str] = Field(
        default=None,
        description="Run-level status detail",
    )
    started_at: Optional[datetime] = Field(
        default=None,
        description="When the run started (UTC)",
    )
    ended_at: Optional[datetime] = Field(
        default=None,
        description="When the run was finalized (UTC)",
    )

    @property
    def is_running(self) -> bool:
        """True while the pipeline is executing on a started deployment."""
        return self.status == DeploymentStatus.RUNNING

    @property
    def is_finished(self) -> bool:
        return self.ended_at is not None

    @property
    def duration_seconds(self) -> Optional[float]:
        if self.started_at is None or self.ended_at is None:
            return None
        return (self.ended_at - self.started_at).total_seconds()

    @property
    def failed_executions(self) -> list[ProcessorExecution]:
        return [
            e for e in self.processor_executions
            if e.status == ProcessorExecutionStatus.FAILURE
        ]

    def start(self) -> None:
        """Mark the deployment as RUNNING."""
        self.status = DeploymentStatus.RUNNING
        self.started_at = _now()

    def end(self, status: DeploymentStatus, details: Optional[str] = None) -> None:
        """Finalize the deployment with its overall status."""
        if self.started_at is None:
            self.started_at = _now()
        self.status = status
        if details is not None:
            self.status_details = details
        self.ended_at = _now()

    def start_processor_execution(self, processor_name: str) -> ProcessorExecution:
        """Append and return a RUNNING execution record for ``processor_name``."""
        execution = ProcessorExecution(processor_name=processor_name)
        self.processor_executions.append(execution)
        return execution
