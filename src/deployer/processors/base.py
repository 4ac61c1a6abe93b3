"""
deployer.processors.base - Processor Contract
===============================================

Every stage of a target's pipeline is a Processor. The contract is small on
purpose: three operations plus an identity.

    ┌────────────────────────────────────────────────────────────────┐
    │  DeploymentExecutor, for each processor in the pipeline:       │
    │                                                                │
    │  1. should_execute(deployment, change_set)?   ← override this  │
    │        no  → skipped, no execution record                      │
    │  2. execute(deployment, view, params)         ← implement this │
    │        → ChangeSetUpdate (unchanged / replaced)                │
    │  3. on error: fails_deployment_on_error()?    ← override this  │
    │        yes → stop the pipeline, deployment FAILURE             │
    │        no  → continue with the ChangeSet unchanged             │
    └────────────────────────────────────────────────────────────────┘

``view`` is the current ChangeSet narrowed by the processor's include/exclude
globs (``path_filter``). A processor that narrows further returns
``ChangeSetUpdate.replaced(...)``; one that only consumes the ChangeSet
returns ``ChangeSetUpdate.unchanged(...)`` and the unfiltered ChangeSet keeps
flowing to the next stage.

Usage:
    class SearchIndexProcessor(Processor):
        async def execute(self, deployment, change_set, params):
            await index(change_set.created_files | change_set.updated_files)
            return ChangeSetUpdate.unchanged(
                details=f"Indexed {len(change_set.all_files)} files",
            )
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Optional

import structlog

from deployer.core.models import ChangeSet, ChangeSetUpdate, Deployment, PathFilter


logger = structlog.get_logger()


class Processor(ABC):
    """Abstract base class for pipeline stages.

    Attributes:
        _name: Name recorded on every ProcessorExecution of this stage.
        _path_filter: Include/exclude globs narrowing the ChangeSet this
            stage receives. None means the stage sees every path.
        _fails_deployment_on_error: Per-stage override from configuration.
            None keeps the class default.
        _logger: Structured logger bound with the processor name.
    """

    def __init__(
        self,
        name: str,
        path_filter: Optional[PathFilter] = None,
        fails_deployment_on_error: Optional[bool] = None,
    ) -> None:
        self._name = name
        self._path_filter = path_filter
        self._fails_deployment_on_error = fails_deployment_on_error
        self._logger = logger.bind(processor=name)

    @property
    def name(self) -> str:
        return self._name

    @property
    def path_filter(self) -> Optional[PathFilter]:
        return self._path_filter

    def should_execute(self, deployment: Deployment, change_set: ChangeSet) -> bool:
        """Decide whether this stage runs for the current deployment.

        The default runs the stage only while the deployment is RUNNING, so
        a dry run (never started) executes nothing.
        """
        return deployment.is_running

    @abstractmethod
    async def execute(
        self,
        deployment: Deployment,
        change_set: ChangeSet,
        params: dict[str, Any],
    ) -> ChangeSetUpdate:
        """Run the stage.

        Args:
            deployment: The running deployment. Stages may record revisions
                on it but must not change its status.
            change_set: Current ChangeSet, narrowed by ``path_filter``.
            params: Run parameters (e.g. {"reprocess_all_files": True}).

        Returns:
            A ChangeSetUpdate telling the executor what the next stage sees.

        Raises:
            DeployerError: Any typed failure; the executor records it.
        """

    def fails_deployment_on_error(self) -> bool:
        """Whether an error in this stage aborts the whole deployment.

        Defaults to False. Configuration can flip it per stage.
        """
        if self._fails_deployment_on_error is not None:
            return self._fails_deployment_on_error
        return False

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(name={self._name!r})"
