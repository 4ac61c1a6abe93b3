"""
Deployer - Git-backed deployment pipelines
============================================

Keeps a local git mirror per target in sync with a remote branch, computes
which files changed since the last fully processed revision, and runs those
changes through an ordered pipeline of processors.

Quick Start:
    >>> from deployer import Deployer
    >>> from deployer.core.config import load_config
    >>>
    >>> async with Deployer(load_config()) as deployer:
    ...     deployment = await deployer.deploy("site1")

Package layout:
    deployer.core            Models, config, enums, exceptions, logging
    deployer.integrations    Git command client and diff computation
    deployer.infrastructure  Processed-commit marker stores
    deployer.processors      Processor contract and built-in processors
    deployer.orchestration   Pipelines, per-target locks, executor
    deployer.facade          Deployer entry point
"""

__version__ = "0.1.0"

from deployer.facade import Deployer

__all__ = ["Deployer", "__version__"]
