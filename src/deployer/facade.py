"""
deployer.facade - Deployer Top-Level Facade
=============================================

The single entry point a scheduler (cron job, webhook handler, CLI) talks to.
It builds every configured target once, then runs deployments on demand.

    ┌──────────────────────────────────────────────────┐
    │                 Deployer (Facade)                 │
    │                                                   │
    │  deploy("site1") ──→ TargetLockRegistry ──┐       │
    │                                           ▼       │
    │                  DeploymentExecutor.run(target)   │
    │                                           │       │
    │  ┌────────────────────────────────────────▼────┐ │
    │  │  Target "site1": git_pull → file_output → …  │ │
    │  └────────────────────────┬────────────────────┘ │
    │                           │                       │
    │  ┌────────────────────────▼────────────────────┐ │
    │  │  ProcessedCommitsStore   GitClient           │ │
    │  └─────────────────────────────────────────────┘ │
    └──────────────────────────────────────────────────┘

Usage:
    >>> from deployer import Deployer
    >>> from deployer.core.config import load_config
    >>>
    >>> async with Deployer(load_config("deployer.yaml")) as deployer:
    ...     deployment = await deployer.deploy("site1")
    ...     print(deployment.status, deployment.change_set.summary())

Concurrency:
    - one in-flight deployment per target (wait for it, or fail fast with
      ``wait=False``)
    - different targets deploy in parallel (``deploy_all``)
    - ``cancel(target_id)`` stops the in-flight run at the next processor
      boundary
"""

from __future__ import annotations

import asyncio
from typing import Any, Optional

import structlog

from deployer.core.config import DeployerConfig
from deployer.core.exceptions import ConfigurationError
from deployer.core.models import Deployment
from deployer.infrastructure.marker_store import (
    FileProcessedCommitsStore,
    InMemoryProcessedCommitsStore,
    ProcessedCommitsStore,
)
from deployer.integrations.git.client import GitClient
from deployer.orchestration.executor import DeploymentExecutor
from deployer.orchestration.locks import TargetLockRegistry
from deployer.orchestration.pipeline import Target, build_target


logger = structlog.get_logger()


def create_marker_store(config: DeployerConfig) -> ProcessedCommitsStore:
    """Build the marker store selected by ``config.marker_store_backend``."""
    if config.marker_store_backend == "memory":
        return InMemoryProcessedCommitsStore()
    return FileProcessedCommitsStore(config.processed_commits_folder)


class Deployer:
    """Top-level facade over targets, the executor and per-target locks.

    Lifecycle:
        1. ``Deployer(config)``       - wire components
        2. ``await initialize()``     - build and validate every target
        3. ``await deploy(target_id)`` - run deployments
        4. ``await shutdown()``       - forget targets

    Attributes:
        _config: Deployer configuration.
        _marker_store: Processed-commit markers shared by all targets.
        _git_client: Git client shared by all targets.
        _executor: Runs pipelines.
        _locks: One in-flight deployment per target.
        _targets: Built targets by id (filled by initialize()).
        _cancel_events: Cancellation flags of in-flight runs by target id.
    """

    def __init__(
        self,
        config: Optional[DeployerConfig] = None,
        *,
        marker_store: Optional[ProcessedCommitsStore] = None,
        git_client: Optional[GitClient] = None,
    ) -> None:
        self._config = config or DeployerConfig()
        self._marker_store = marker_store or create_marker_store(self._config)
        self._git_client = git_client or GitClient()
        self._executor = DeploymentExecutor(self._marker_store)
        self._locks = TargetLockRegistry()

        self._targets: dict[str, Target] = {}
        self._cancel_events: dict[str, asyncio.Event] = {}
        self._initialized = False
        self._logger = logger.bind(component="deployer")

    # =========================================================================
    # Properties
    # =========================================================================

    @property
    def config(self) -> DeployerConfig:
        return self._config

    @property
    def marker_store(self) -> ProcessedCommitsStore:
        return self._marker_store

    @property
    def targets(self) -> dict[str, Target]:
        return dict(self._targets)

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    # =========================================================================
    # Lifecycle Management
    # =========================================================================

    async def initialize(self) -> None:
        """Build every configured target.

        Idempotent. Configuration problems surface here, before any run.

        Raises:
            ConfigurationError: On an unknown processor, a missing required
                setting or an invalid pipeline.
        """
        if self._initialized:
            self._logger.debug("deployer_already_initialized")
            return

        self._logger.info("deployer_initializing", target_count=len(self._config.targets))

        targets: dict[str, Target] = {}
        for target_config in self._config.targets:
            target = build_target(target_config, self._marker_store, self._git_client)
            targets[target.target_id] = target
            self._logger.info(
                "target_built",
                target_id=target.target_id,
                processors=target.pipeline.processor_names,
            )

        self._targets = targets
        self._initialized = True
        self._logger.info("deployer_initialized")

    async def shutdown(self) -> None:
        """Cancel in-flight runs at their next boundary and forget targets."""
        if not self._initialized:
            self._logger.debug("deployer_not_initialized_skipping_shutdown")
            return

        self._logger.info("deployer_shutting_down", in_flight=sorted(self._cancel_events))
        for event in self._cancel_events.values():
            event.set()

        self._targets = {}
        self._initialized = False
        self._logger.info("deployer_shutdown_complete")

    async def __aenter__(self) -> Deployer:
        await self.initialize()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.shutdown()

    # =========================================================================
    # Deployments
    # =========================================================================

    def get_target(self, target_id: str) -> Target:
        """Return the built target ``target_id``.

        Raises:
            ConfigurationError: (UNKNOWN_TARGET) if it is not configured.
        """
        self._ensure_initialized()
        target = self._targets.get(target_id)
        if target is None:
            raise ConfigurationError(
                message=f"No target configured with id {target_id!r}",
                error_code="UNKNOWN_TARGET",
                details={"target_id": target_id, "targets": sorted(self._targets)},
            )
        return target

    async def deploy(
        self,
        target_id: str,
        params: Optional[dict[str, Any]] = None,
        wait: bool = True,
        dry_run: bool = False,
    ) -> Deployment:
        """Run one deployment of ``target_id``.

        Args:
            target_id: Target to deploy.
            params: Run parameters (e.g. {"reprocess_all_files": True}).
            wait: Wait for an in-flight deployment of the same target.
                When False a busy target raises TargetBusyError.
            dry_run: Record a deployment without running any processor.

        Returns:
            The finalized Deployment.

        Raises:
            ConfigurationError: If the target is not configured.
            TargetBusyError: If ``wait`` is False and the target is busy.
        """
        target = self.get_target(target_id)

        async with self._locks.acquire(target_id, wait=wait):
            cancel_event = asyncio.Event()
            self._cancel_events[target_id] = cancel_event
            try:
                return await self._executor.run(
                    target,
                    params=params,
                    cancel_event=cancel_event,
                    dry_run=dry_run,
                )
            finally:
                self._cancel_events.pop(target_id, None)

    async def deploy_all(
        self,
        params: Optional[dict[str, Any]] = None,
    ) -> dict[str, Deployment]:
        """Deploy every target in parallel. Runs of one target stay serialized."""
        self._ensure_initialized()
        target_ids = list(self._targets)
        deployments = await asyncio.gather(
            *(self.deploy(target_id, params=params) for target_id in target_ids)
        )
        return dict(zip(target_ids, deployments))

    def cancel(self, target_id: str) -> bool:
        """Request cancellation of the in-flight deployment of ``target_id``.

        Returns:
            True if a deployment was in flight, False otherwise.
        """
        event = self._cancel_events.get(target_id)
        if event is None:
            return False
        event.set()
        self._logger.info("deployment_cancel_requested", target_id=target_id)
        return True

    def is_deploying(self, target_id: str) -> bool:
        return self._locks.is_locked(target_id)

    # =========================================================================
    # Internal Helpers
    # =========================================================================

    def _ensure_initialized(self) -> None:
        if not self._initialized:
            raise RuntimeError(
                "Deployer has not been initialized. "
                "Call await deployer.initialize() or use 'async with Deployer(config) as deployer:'"
            )

    def __repr__(self) -> str:
        return f"Deployer(initialized={self._initialized}, targets={sorted(self._targets)})"
