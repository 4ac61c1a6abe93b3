"""
deployer.core - Foundation Layer
==================================

The building blocks every other deployer module depends on:

    - config:      Configuration (DeployerConfig, TargetConfig, ProcessorConfig)
    - enums:       DeploymentStatus, ProcessorExecutionStatus, MergeOutcome, ...
    - models:      ChangeSet, ChangeSetUpdate, PathFilter, Deployment, ProcessorExecution
    - exceptions:  Structured exception hierarchy
    - logging:     structlog setup

Dependency Rule:
    core/ depends on NOTHING else in the deployer package.
"""

from deployer.core.config import (
    DeployerConfig,
    GitConfig,
    ProcessorConfig,
    RemoteRepoConfig,
    TargetConfig,
)
from deployer.core.enums import (
    ChangeType,
    DeploymentStatus,
    MergeOutcome,
    MirrorState,
    ProcessorExecutionStatus,
)
from deployer.core.exceptions import (
    ConfigurationError,
    DeployerError,
    ProcessorError,
    StateError,
    SynchronizationError,
    TargetBusyError,
    UnsupportedMergeError,
)
from deployer.core.models import (
    ChangeSet,
    ChangeSetUpdate,
    Deployment,
    PathFilter,
    ProcessorExecution,
)

__all__ = [
    # Config
    "DeployerConfig",
    "TargetConfig",
    "ProcessorConfig",
    "RemoteRepoConfig",
    "GitConfig",
    # Enums
    "ChangeType",
    "DeploymentStatus",
    "MergeOutcome",
    "MirrorState",
    "ProcessorExecutionStatus",
    # Models
    "ChangeSet",
    "ChangeSetUpdate",
    "Deployment",
    "PathFilter",
    "ProcessorExecution",
    # Exceptions
    "DeployerError",
    "ConfigurationError",
    "SynchronizationError",
    "UnsupportedMergeError",
    "ProcessorError",
    "StateError",
    "TargetBusyError",
]
