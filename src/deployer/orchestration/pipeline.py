"""
deployer.orchestration.pipeline - Targets and Pipelines
=========================================================

A Target is one deployment destination: its id, its local git mirror and
the Pipeline of processors that run on every deployment.

    TargetConfig ──build_target()──→ Target
                                       ├── target_id      "site1"
                                       ├── local_repo_path /var/deployer/repos/site1
                                       └── Pipeline
                                             ├── [0] GitPullProcessor  (required, first)
                                             ├── [1] FileOutputProcessor
                                             └── [n] collaborator processors

Pipelines are validated when they are built, before any run starts:
    - the first processor is the source synchronization processor
    - there is exactly one source synchronization processor
"""

from __future__ import annotations

from pathlib import Path
from typing import Iterator, Sequence

from deployer.core.config import TargetConfig
from deployer.core.exceptions import ConfigurationError
from deployer.infrastructure.marker_store import ProcessedCommitsStore
from deployer.integrations.git.client import GitClient
from deployer.processors.base import Processor
from deployer.processors.git_pull import GitPullProcessor
from deployer.processors.registry import ProcessorContext, create_processor


class Pipeline:
    """Ordered, immutable sequence of processors."""

    def __init__(self, processors: Sequence[Processor]) -> None:
        self._processors = tuple(processors)

    @property
    def processors(self) -> tuple[Processor, ...]:
        return self._processors

    @property
    def processor_names(self) -> list[str]:
        return [p.name for p in self._processors]

    def __iter__(self) -> Iterator[Processor]:
        return iter(self._processors)

    def __len__(self) -> int:
        return len(self._processors)

    def __repr__(self) -> str:
        return f"Pipeline({self.processor_names!r})"


class Target:
    """A configured deployment target.

    Attributes:
        target_id: Unique target identifier.
        local_repo_path: Folder of the target's local git mirror.
        pipeline: Processors run on every deployment of this target.
    """

    def __init__(self, target_id: str, local_repo_path: Path, pipeline: Pipeline) -> None:
        self.target_id = target_id
        self.local_repo_path = Path(local_repo_path)
        self.pipeline = pipeline

    def __repr__(self) -> str:
        return f"Target(target_id={self.target_id!r}, pipeline={self.pipeline!r})"


def validate_pipeline(target_id: str, processors: Sequence[Processor]) -> None:
    """Check the pipeline layout.

    Raises:
        ConfigurationError: (INVALID_PIPELINE) if the pipeline is empty,
            does not start with the source synchronization processor, or
            contains more than one.
    """
    details = {
        "target_id": target_id,
        "processors": [p.name for p in processors],
    }
    if not processors or not isinstance(processors[0], GitPullProcessor):
        raise ConfigurationError(
            message=f"Pipeline of target {target_id} must start with the git_pull processor",
            error_code="INVALID_PIPELINE",
            details=details,
        )
    sync_count = sum(1 for p in processors if isinstance(p, GitPullProcessor))
    if sync_count > 1:
        raise ConfigurationError(
            message=f"Pipeline of target {target_id} has {sync_count} git_pull processors",
            error_code="INVALID_PIPELINE",
            details=details,
        )


def build_pipeline(config: TargetConfig, context: ProcessorContext) -> Pipeline:
    """Create and validate the processors listed in ``config.pipeline``.

    Raises:
        ConfigurationError: On an unknown processor, a missing setting or an
            invalid layout.
    """
    processors = [create_processor(pc, context) for pc in config.pipeline]
    validate_pipeline(config.target_id, processors)
    return Pipeline(processors)


def build_target(
    config: TargetConfig,
    marker_store: ProcessedCommitsStore,
    git_client: GitClient,
) -> Target:
    """Build a Target (and its Pipeline) from configuration."""
    context = ProcessorContext(
        target_id=config.target_id,
        local_repo_path=Path(config.local_repo_path),
        marker_store=marker_store,
        git_client=git_client,
    )
    return Target(
        target_id=config.target_id,
        local_repo_path=context.local_repo_path,
        pipeline=build_pipeline(config, context),
    )
