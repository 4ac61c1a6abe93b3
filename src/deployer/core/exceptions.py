"""
deployer.core.exceptions - Custom Exception Hierarchy
=======================================================

Structured exceptions for the deployer. Components raise and catch specific
exception types that carry an error code and a ``details`` dict instead of
bare strings, so the executor can record them on a ProcessorExecution and
operators can tell failure kinds apart.

Exception Hierarchy:
    DeployerError (base)
        ├── ConfigurationError      - Missing/invalid settings (before any run)
        ├── SynchronizationError    - Clone/pull/fetch failures (fatal for a run)
        │     └── UnsupportedMergeError - Merge outcome other than
        │                                 up-to-date / fast-forward / merged
        ├── ProcessorError          - Typed failure raised by a pipeline stage
        ├── StateError              - Marker store read/write failures
        └── TargetBusyError         - A run is already in flight for a target

Error Handling Flow:
    Processor raises
        → DeploymentExecutor records a FAILURE ProcessorExecution
        → processor.fails_deployment_on_error()?
            yes → pipeline stops, Deployment FAILURE, marker untouched
            no  → pipeline continues with the ChangeSet unchanged

There is no retry inside the engine. A failed run is retried by the
scheduler invoking the next run.
"""

from __future__ import annotations

from typing import Any, Optional


# =============================================================================
# Base Exception
# =============================================================================
class DeployerError(Exception):
    """Base exception for all deployer errors.

    Attributes:
        message: Human-readable error description.
        error_code: Machine-readable code, UPPER_SNAKE_CASE
            (e.g., "CLONE_FAILED", "UNSUPPORTED_MERGE_RESULT").
        details: Additional debugging context (target id, paths, git stderr).

    Example:
        >>> try:
        ...     await executor.run(target)
        ... except DeployerError as e:
        ...     print(f"[{e.error_code}] {e.message}")
    """

    def __init__(
        self,
        message: str,
        error_code: str = "UNKNOWN_ERROR",
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)

        self.message = message
        self.error_code = error_code
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Serialize this exception to a dictionary.

        Used for structured logs and for the ``error`` field of a failed
        ProcessorExecution.

        Returns:
            Dictionary with error_type, message, error_code, and details.
        """
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "error_code": self.error_code,
            "details": self.details,
        }

    def __repr__(self) -> str:
        """Detailed string representation for debugging."""
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, "
            f"error_code={self.error_code!r}, "
            f"details={self.details!r})"
        )


# =============================================================================
# Configuration Error
# =============================================================================
# Raised while building targets and pipelines from configuration. This must
# happen before any deployment run starts: fail fast on bad config.
# =============================================================================
class ConfigurationError(DeployerError):
    """Raised when deployer configuration is invalid or incomplete.

    Common Causes:
        - Missing remote repository URL for the git_pull processor
        - Unknown processor name in a target pipeline
        - Pipeline that does not start with the synchronization processor
        - Deploy requested for a target id that is not configured

    Example:
        >>> raise ConfigurationError(
        ...     message="Missing required setting remote_repo.url",
        ...     error_code="MISSING_REQUIRED_SETTING",
        ...     details={"target_id": "site1", "processor": "git_pull"},
        ... )
    """

    def __init__(
        self,
        message: str,
        error_code: str = "CONFIG_ERROR",
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message=message, error_code=error_code, details=details)


# =============================================================================
# Synchronization Error
# =============================================================================
# Raised by the Source Synchronization Processor when the local mirror cannot
# be brought up to date with the remote. Always fatal for the run.
# =============================================================================
class SynchronizationError(DeployerError):
    """Raised when cloning or pulling the source repository fails.

    The mirror is left in its pre-failure state where possible (partial
    clone folders are removed) and the marker store is not touched.

    Attributes:
        target_id: The target whose mirror failed to synchronize.
    """

    def __init__(
        self,
        message: str,
        target_id: str,
        error_code: str = "SYNC_ERROR",
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        enriched_details = details or {}
        enriched_details["target_id"] = target_id

        super().__init__(message=message, error_code=error_code, details=enriched_details)

        self.target_id = target_id


class UnsupportedMergeError(SynchronizationError):
    """Raised when a pull produces a merge outcome the deployer cannot use.

    Kept distinct from transport failures so operators can tell "the
    branches diverged and could not be merged" apart from "the remote was
    unreachable". The partial merge is always rolled back before raising.

    Attributes:
        merge_outcome: The outcome reported by the merge (e.g. "conflicting").
    """

    def __init__(
        self,
        message: str,
        target_id: str,
        merge_outcome: str,
        error_code: str = "UNSUPPORTED_MERGE_RESULT",
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        enriched_details = details or {}
        enriched_details["merge_outcome"] = merge_outcome

        super().__init__(
            message=message,
            target_id=target_id,
            error_code=error_code,
            details=enriched_details,
        )

        self.merge_outcome = merge_outcome


# =============================================================================
# Processor Error
# =============================================================================
class ProcessorError(DeployerError):
    """Typed failure raised by a pipeline stage.

    Whether it aborts the deployment is decided by the raising processor's
    ``fails_deployment_on_error()``, not by the exception itself.

    Attributes:
        processor_name: Name of the processor that failed.
    """

    def __init__(
        self,
        message: str,
        processor_name: str,
        error_code: str = "PROCESSOR_ERROR",
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        enriched_details = details or {}
        enriched_details["processor_name"] = processor_name

        super().__init__(message=message, error_code=error_code, details=enriched_details)

        self.processor_name = processor_name


# =============================================================================
# State Error
# =============================================================================
class StateError(DeployerError):
    """Raised when the processed-commit marker store cannot be read or written.

    Common Causes:
        - Marker folder not writable
        - Disk full while writing the temporary marker file
        - Target id that would escape the marker folder
    """

    def __init__(
        self,
        message: str,
        error_code: str = "STATE_ERROR",
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message=message, error_code=error_code, details=details)


class TargetBusyError(DeployerError):
    """Raised when a run is requested for a target that already has one in flight."""

    def __init__(
        self,
        target_id: str,
        error_code: str = "TARGET_BUSY",
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        enriched_details = details or {}
        enriched_details["target_id"] = target_id

        super().__init__(
            message=f"A deployment is already running for target {target_id}",
            error_code=error_code,
            details=enriched_details,
        )

        self.target_id = target_id
