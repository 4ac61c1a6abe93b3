"""
deployer.core.enums - Type-Safe Enumerations
==============================================

All enumeration types used by the deployer. Like every other value that
crosses a module boundary, they inherit from both ``str`` and ``Enum`` so
they serialize cleanly (Pydantic, JSON logs, YAML) and compare against
plain strings.

    ┌─────────────────────────────────────────────────────────────────┐
    │  DEPLOYMENT RUN                                                 │
    │    DeploymentStatus: PENDING → RUNNING → SUCCESS/FAILURE/...    │
    │    ProcessorExecutionStatus: RUNNING → SUCCESS/FAILURE          │
    ├─────────────────────────────────────────────────────────────────┤
    │  SOURCE SYNCHRONIZATION                                         │
    │    MirrorState: NOT_PRESENT (clone) / PRESENT (pull)            │
    │    MergeOutcome: result of merging the fetched branch           │
    │    ChangeType: one entry of a tree-to-tree diff                 │
    └─────────────────────────────────────────────────────────────────┘
"""

from enum import Enum


# =============================================================================
# Deployment Status
# =============================================================================
# Lifecycle of one Deployment (one run of a target's pipeline):
#
#   PENDING ──start()──→ RUNNING ──→ SUCCESS
#      │                    ├──────→ FAILURE
#      │                    └──────→ CANCELLED
#      └── (dry run: never started, finalized directly)
# =============================================================================
class DeploymentStatus(str, Enum):
    """Lifecycle states for a Deployment.

    Only a RUNNING deployment performs source synchronization. A dry run
    stays PENDING until it is finalized, which lets processors be
    inspected without touching the mirror or the marker store.
    """

    PENDING = "pending"         # Created, not started (dry runs stay here)
    RUNNING = "running"         # Pipeline is executing
    SUCCESS = "success"         # Every fatal stage succeeded
    FAILURE = "failure"         # A fatal stage failed or the marker could not be saved
    CANCELLED = "cancelled"     # Stopped at a processor boundary on request


class ProcessorExecutionStatus(str, Enum):
    """Outcome of a single processor invocation within a Deployment."""

    RUNNING = "running"
    SUCCESS = "success"
    FAILURE = "failure"


# =============================================================================
# Mirror State
# =============================================================================
# The Source Synchronization Processor is a small state machine over the
# target's local mirror directory:
#
#   NOT_PRESENT (folder or .git missing) → CLONING
#   PRESENT                              → PULLING
# =============================================================================
class MirrorState(str, Enum):
    """State of a target's local git mirror before synchronization."""

    NOT_PRESENT = "not_present"
    PRESENT = "present"


class MergeOutcome(str, Enum):
    """Result of merging the fetched remote branch into the mirror.

    Only ALREADY_UP_TO_DATE, FAST_FORWARD and MERGED are supported. Every
    other outcome is reported as an unsupported merge and rolled back.
    """

    ALREADY_UP_TO_DATE = "already_up_to_date"
    FAST_FORWARD = "fast_forward"
    MERGED = "merged"
    CONFLICTING = "conflicting"
    FAILED = "failed"

    @property
    def is_supported(self) -> bool:
        """Whether the deployment may continue after this outcome."""
        return self in (
            MergeOutcome.ALREADY_UP_TO_DATE,
            MergeOutcome.FAST_FORWARD,
            MergeOutcome.MERGED,
        )


# =============================================================================
# Change Type
# =============================================================================
# Maps the status letters of ``git diff-tree --name-status``:
#   A → ADD, M → MODIFY, D → DELETE, R### → RENAME, C### → COPY, T → TYPE_CHANGE
# =============================================================================
class ChangeType(str, Enum):
    """Kind of a single tree-to-tree diff entry."""

    ADD = "add"
    MODIFY = "modify"
    DELETE = "delete"
    RENAME = "rename"
    COPY = "copy"
    TYPE_CHANGE = "type_change"
