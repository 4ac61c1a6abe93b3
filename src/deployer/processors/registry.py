"""
deployer.processors.registry - Processor Factory
==================================================

Maps the ``processor_name`` of a pipeline entry to a factory that builds
the Processor:

    - "git_pull"    → GitPullProcessor (source synchronization)
    - "file_output" → FileOutputProcessor (per-target deployment summaries)

Collaborator processors (search indexing, cache invalidation, ...) plug in
with ``register_processor()``.

Usage:
    >>> from deployer.processors import register_processor
    >>>
    >>> def build_indexer(config, context):
    ...     return SearchIndexProcessor(name=config.processor_name)
    >>>
    >>> register_processor("search_index", build_indexer)
"""

from __future__ import annotations

from pathlib import Path
from typing import Callable

from pydantic import BaseModel

from deployer.core.config import ProcessorConfig
from deployer.core.exceptions import ConfigurationError
from deployer.core.models import PathFilter
from deployer.infrastructure.marker_store import ProcessedCommitsStore
from deployer.integrations.git.client import GitClient
from deployer.processors.base import Processor
from deployer.processors.file_output import FileOutputProcessor
from deployer.processors.git_pull import GitPullProcessor


class ProcessorContext(BaseModel):
    """Target-level collaborators handed to every processor factory."""

    model_config = {"frozen": True, "arbitrary_types_allowed": True}

    target_id: str
    local_repo_path: Path
    marker_store: ProcessedCommitsStore
    git_client: GitClient


ProcessorFactory = Callable[[ProcessorConfig, ProcessorContext], Processor]


def path_filter_from_config(config: ProcessorConfig) -> PathFilter:
    return PathFilter(
        include=tuple(config.include_files),
        exclude=tuple(config.exclude_files),
    )


# =============================================================================
# Built-in Factories
# =============================================================================

def _build_git_pull(config: ProcessorConfig, context: ProcessorContext) -> Processor:
    if config.remote_repo is None or not config.remote_repo.url:
        raise ConfigurationError(
            message="Missing required setting remote_repo.url",
            error_code="MISSING_REQUIRED_SETTING",
            details={"target_id": context.target_id, "processor": config.processor_name},
        )
    return GitPullProcessor(
        target_id=context.target_id,
        local_repo_folder=context.local_repo_path,
        marker_store=context.marker_store,
        remote_repo=config.remote_repo,
        git_client=context.git_client,
        git_config=config.git_config,
        path_filter=path_filter_from_config(config),
        name=config.processor_name,
    )


def _build_file_output(config: ProcessorConfig, context: ProcessorContext) -> Processor:
    output_folder = config.params.get("output_folder")
    if not output_folder:
        raise ConfigurationError(
            message="Missing required setting params.output_folder",
            error_code="MISSING_REQUIRED_SETTING",
            details={"target_id": context.target_id, "processor": config.processor_name},
        )
    return FileOutputProcessor(
        target_id=context.target_id,
        output_folder=output_folder,
        path_filter=path_filter_from_config(config),
        fails_deployment_on_error=config.fails_deployment_on_error,
        name=config.processor_name,
    )


_FACTORIES: dict[str, ProcessorFactory] = {
    "git_pull": _build_git_pull,
    "file_output": _build_file_output,
}


# =============================================================================
# Registry API
# =============================================================================

def register_processor(name: str, factory: ProcessorFactory, replace: bool = False) -> None:
    """Register a processor factory under ``name``.

    Raises:
        ValueError: If ``name`` is taken and ``replace`` is False.
    """
    if name in _FACTORIES and not replace:
        raise ValueError(f"Processor '{name}' is already registered")
    _FACTORIES[name] = factory


def unregister_processor(name: str) -> None:
    _FACTORIES.pop(name, None)


def available_processors() -> list[str]:
    return sorted(_FACTORIES)


def create_processor(config: ProcessorConfig, context: ProcessorContext) -> Processor:
    """Build the processor named by ``config.processor_name``.

    Raises:
        ConfigurationError: If the name is unknown or a required setting
            is missing.
    """
    factory = _FACTORIES.get(config.processor_name)
    if factory is None:
        raise ConfigurationError(
            message=(
                f"Unknown processor: '{config.processor_name}'. "
                f"Available processors: {', '.join(available_processors())}"
            ),
            error_code="UNKNOWN_PROCESSOR",
            details={"target_id": context.target_id, "processor": config.processor_name},
        )
    return factory(config, context)
