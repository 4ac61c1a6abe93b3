"""
deployer.orchestration - Orchestration Layer
==============================================

Runs target pipelines.

Components:
    - Pipeline / Target:   Ordered processors of a configured target
    - TargetLockRegistry:  One in-flight deployment per target
    - DeploymentExecutor:  Runs a pipeline once and records the Deployment
"""

from deployer.orchestration.executor import DeploymentExecutor
from deployer.orchestration.locks import TargetLockRegistry
from deployer.orchestration.pipeline import (
    Pipeline,
    Target,
    build_pipeline,
    build_target,
    validate_pipeline,
)

__all__ = [
    "DeploymentExecutor",
    "TargetLockRegistry",
    "Pipeline",
    "Target",
    "build_pipeline",
    "build_target",
    "validate_pipeline",
]
