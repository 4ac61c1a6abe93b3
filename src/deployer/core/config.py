"""
deployer.core.config - Configuration Management
=================================================

Configuration for the deployer can be loaded from multiple sources with the
following priority (highest first):

    1. Explicit constructor arguments (load_config passes YAML values this way)
    2. Environment variables (prefixed with DEPLOYER_)
    3. Default values defined in the models below

Architecture Context:
    Configuration flows DOWN through the system. The top-level DeployerConfig
    is created once and handed to the Deployer facade, which builds one
    Target (mirror folder + Pipeline) per TargetConfig:

        DeployerConfig
            ├── processed_commits_folder → ProcessedCommitsStore
            └── targets: [TargetConfig]
                  └── pipeline: [ProcessorConfig]
                        ├── remote_repo  → GitPullProcessor
                        └── git_config   → GitPullProcessor

Validation here is structural only (types, ranges). Semantic checks that
need the processor registry (missing remote URL, unknown processor names,
pipeline ordering) happen when targets are built and raise
ConfigurationError before any deployment runs.

Example deployer.yaml:
    processed_commits_folder: /var/deployer/processed-commits
    targets:
      - target_id: site1
        local_repo_path: /var/deployer/repos/site1
        pipeline:
          - processor_name: git_pull
            remote_repo:
              url: https://example.org/site1.git
              branch: main
          - processor_name: file_output
            params:
              output_folder: /var/deployer/logs

Environment Variables:
    DEPLOYER_LOG_LEVEL=DEBUG
    DEPLOYER_LOG_FORMAT=json
    DEPLOYER_PROCESSED_COMMITS_FOLDER=/var/deployer/processed-commits
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Literal, Optional

import yaml
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings

from deployer.core.exceptions import ConfigurationError


# =============================================================================
# Remote Repository Configuration
# =============================================================================
class RemoteRepoConfig(BaseModel):
    """Where the git_pull processor clones and pulls from.

    Attributes:
        url: Remote repository URL (https://, ssh:// or a local path).
            Required; a git_pull processor without it is a configuration error.
        branch: Branch to clone and pull. None uses the remote's default branch.
        username: Username for https authentication.
        password: Password or token for https authentication.
    """

    url: Optional[str] = Field(
        default=None,
        description="Remote repository URL",
    )
    branch: Optional[str] = Field(
        default=None,
        description="Branch to deploy (None = remote default branch)",
    )
    username: Optional[str] = Field(
        default=None,
        description="Username for https authentication",
    )
    password: Optional[str] = Field(
        default=None,
        description="Password or token for https authentication",
    )


class GitConfig(BaseModel):
    """Git settings applied to the local mirror on clone."""

    big_file_threshold: Optional[str] = Field(
        default=None,
        description="core.bigFileThreshold for the mirror (e.g. '20m')",
    )
    compression: Optional[int] = Field(
        default=None,
        ge=-1,
        le=9,
        description="core.compression for the mirror (-1..9)",
    )


# =============================================================================
# Processor Configuration
# =============================================================================
class ProcessorConfig(BaseModel):
    """One stage of a target pipeline.

    Attributes:
        processor_name: Registry name of the processor ("git_pull", "file_output", ...).
        include_files: Globs of paths this stage cares about (empty = all).
        exclude_files: Globs of paths this stage ignores.
        fails_deployment_on_error: Override the processor's default failure
            policy. None keeps the processor default.
        remote_repo: Remote repository settings (git_pull only).
        git_config: Mirror git settings (git_pull only).
        params: Free-form processor-specific settings.
    """

    processor_name: str = Field(
        description="Registry name of the processor",
    )
    include_files: list[str] = Field(
        default_factory=list,
        description="Glob patterns of paths this stage processes",
    )
    exclude_files: list[str] = Field(
        default_factory=list,
        description="Glob patterns of paths this stage ignores",
    )
    fails_deployment_on_error: Optional[bool] = Field(
        default=None,
        description="Override whether an error in this stage fails the deployment",
    )
    remote_repo: Optional[RemoteRepoConfig] = Field(
        default=None,
        description="Remote repository settings (git_pull only)",
    )
    git_config: Optional[GitConfig] = Field(
        default=None,
        description="Git settings for the local mirror (git_pull only)",
    )
    params: dict[str, Any] = Field(
        default_factory=dict,
        description="Processor-specific settings",
    )


# =============================================================================
# Target Configuration
# =============================================================================
class TargetConfig(BaseModel):
    """A deployment destination and its pipeline.

    Attributes:
        target_id: Unique target identifier. Also names the marker file.
        env: Optional environment label (e.g. "preview", "prod").
        site_name: Optional site label.
        local_repo_path: Folder of the target's local git mirror.
        pipeline: Ordered processor configurations. The first one must be
            the git_pull synchronization processor.
    """

    target_id: str = Field(
        min_length=1,
        description="Unique target identifier",
    )
    env: Optional[str] = Field(
        default=None,
        description="Environment label",
    )
    site_name: Optional[str] = Field(
        default=None,
        description="Site label",
    )
    local_repo_path: str = Field(
        description="Folder of the target's local git mirror",
    )
    pipeline: list[ProcessorConfig] = Field(
        default_factory=list,
        description="Ordered processor configurations",
    )


# =============================================================================
# Main Configuration
# =============================================================================
class DeployerConfig(BaseSettings):
    """Top-level configuration for the deployer.

    Attributes:
        environment: Deployment environment of the deployer process itself.
        log_level: Logging level for stdlib logging and structlog.
        log_format: "console" for human-readable logs, "json" for log shipping.
        processed_commits_folder: Folder holding one marker file per target.
        marker_store_backend: "file" (durable) or "memory" (tests/dev).
        targets: Configured deployment targets.

    Example:
        >>> config = DeployerConfig(
        ...     marker_store_backend="memory",
        ...     targets=[TargetConfig(target_id="site1", local_repo_path="/tmp/site1")],
        ... )
    """

    environment: Literal["dev", "staging", "prod"] = Field(
        default="dev",
        description="Environment of the deployer process",
    )
    log_level: str = Field(
        default="INFO",
        description="Logging level: DEBUG, INFO, WARNING, ERROR, CRITICAL",
    )
    log_format: Literal["console", "json"] = Field(
        default="console",
        description="Log renderer",
    )
    processed_commits_folder: str = Field(
        default="processed-commits",
        description="Folder holding the processed-commit marker files",
    )
    marker_store_backend: Literal["file", "memory"] = Field(
        default="file",
        description="Marker store implementation",
    )
    targets: list[TargetConfig] = Field(
        default_factory=list,
        description="Configured deployment targets",
    )

    # env_nested_delimiter lets DEPLOYER_X__Y reach nested fields.
    model_config = {
        "env_prefix": "DEPLOYER_",
        "env_nested_delimiter": "__",
        "case_sensitive": False,
    }

    def get_target(self, target_id: str) -> TargetConfig:
        """Return the configuration of ``target_id``.

        Raises:
            ConfigurationError: If no target with that id is configured.
        """
        for target in self.targets:
            if target.target_id == target_id:
                return target
        raise ConfigurationError(
            message=f"No target configured with id {target_id!r}",
            error_code="UNKNOWN_TARGET",
            details={"target_id": target_id},
        )


# =============================================================================
# Configuration Loader
# =============================================================================
def load_config(path: Optional[str] = None) -> DeployerConfig:
    """Load deployer configuration from a YAML file and/or environment variables.

    Args:
        path: Path to a YAML configuration file. If None, looks for
            'deployer.yaml' in the current directory, falling back to pure
            defaults + environment variables.

    Returns:
        A validated DeployerConfig instance.

    Raises:
        FileNotFoundError: If an explicit path is provided but doesn't exist.
        ConfigurationError: If the YAML cannot be parsed or target ids repeat.
    """
    if path is None:
        default_path = Path("deployer.yaml")
        if default_path.exists():
            path = str(default_path)

    yaml_data: dict[str, Any] = {}
    if path is not None:
        config_path = Path(path)
        if not config_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {path}")

        with open(config_path) as f:
            try:
                raw_data = yaml.safe_load(f)
            except yaml.YAMLError as e:
                raise ConfigurationError(
                    message=f"Invalid YAML in configuration file {path}",
                    error_code="INVALID_CONFIG_FILE",
                    details={"path": path, "error": str(e)},
                ) from e
            if isinstance(raw_data, dict):
                yaml_data = raw_data

    config = DeployerConfig(**yaml_data)

    seen: set[str] = set()
    for target in config.targets:
        if target.target_id in seen:
            raise ConfigurationError(
                message=f"Duplicate target id {target.target_id!r}",
                error_code="DUPLICATE_TARGET",
                details={"target_id": target.target_id},
            )
        seen.add(target.target_id)

    return config
