"""
deployer.processors.git_pull - Source Synchronization Processor
=================================================================

First stage of every pipeline. Brings the target's local mirror up to date
with the remote branch and produces the ChangeSet the rest of the pipeline
works on.

State Machine:
    ┌─────────────┐  folder or .git missing   ┌─────────┐
    │ mirror state │ ────────────────────────→ │ CLONING │ → ChangeSet = everything
    │              │                           └─────────┘
    │              │  .git present             ┌─────────┐
    │              │ ────────────────────────→ │ PULLING │
    └─────────────┘                            └────┬────┘
                                                     │
            ALREADY_UP_TO_DATE  → ChangeSet = diff(marker, HEAD) (usually empty)
            FAST_FORWARD/MERGED → ChangeSet = diff(marker, new HEAD)
            anything else       → merge rolled back, UnsupportedMergeError

Baseline of the diff:
    The ChangeSet starts from the target's processed-commit marker, not from
    the HEAD before the pull. When the previous run failed after pulling, the
    mirror is already ahead of the marker and the changes it never finished
    processing are delivered again.

    - no marker, or ``reprocess_all_files`` param → everything
    - marker revision no longer in the mirror     → everything, with a warning

Errors are always fatal for the deployment: a stage after this one must
never see a ChangeSet that does not match the mirror.
"""

from __future__ import annotations

import shutil
from pathlib import Path
from typing import Any, Optional, Union

import structlog

from deployer.core.config import GitConfig, RemoteRepoConfig
from deployer.core.enums import MergeOutcome, MirrorState
from deployer.core.exceptions import (
    ConfigurationError,
    SynchronizationError,
    UnsupportedMergeError,
)
from deployer.core.models import ChangeSet, ChangeSetUpdate, Deployment, PathFilter
from deployer.infrastructure.marker_store import ProcessedCommitsStore
from deployer.integrations.git.client import GitClient, GitCommandError, redact_url
from deployer.integrations.git.diff import compute_change_set
from deployer.processors.base import Processor


logger = structlog.get_logger()


REPROCESS_ALL_FILES_PARAM = "reprocess_all_files"


class GitPullProcessor(Processor):
    """Clones or pulls the target's local mirror and computes the ChangeSet.

    Attributes:
        _target_id: Target whose marker drives the diff baseline.
        _local_repo_folder: The mirror folder.
        _marker_store: Processed-commit markers. The marker is deleted
            before a clone and only read otherwise.
        _remote_repo: Remote URL, branch and https credentials.
        _git_config: Settings written into a freshly cloned mirror.
        _git: Git client.

    Example:
        >>> processor = GitPullProcessor(
        ...     target_id="site1",
        ...     local_repo_folder="/var/deployer/repos/site1",
        ...     marker_store=store,
        ...     remote_repo=RemoteRepoConfig(url="https://example.org/site1.git", branch="main"),
        ... )
        >>> update = await processor.execute(deployment, ChangeSet.empty(), {})
    """

    def __init__(
        self,
        target_id: str,
        local_repo_folder: Union[str, Path],
        marker_store: ProcessedCommitsStore,
        remote_repo: RemoteRepoConfig,
        git_client: Optional[GitClient] = None,
        git_config: Optional[GitConfig] = None,
        path_filter: Optional[PathFilter] = None,
        name: str = "git_pull",
    ) -> None:
        if not remote_repo.url:
            raise ConfigurationError(
                message="Missing required setting remote_repo.url",
                error_code="MISSING_REQUIRED_SETTING",
                details={"target_id": target_id, "processor": name},
            )

        super().__init__(name=name, path_filter=path_filter)

        self._target_id = target_id
        self._local_repo_folder = Path(local_repo_folder)
        self._marker_store = marker_store
        self._remote_repo = remote_repo
        self._git_config = git_config or GitConfig()
        self._git = git_client or GitClient()
        self._logger = logger.bind(
            processor=name,
            target_id=target_id,
            local_repo_folder=str(self._local_repo_folder),
        )

    @property
    def local_repo_folder(self) -> Path:
        return self._local_repo_folder

    @property
    def remote_repo_url(self) -> str:
        """The remote URL, safe to log."""
        return redact_url(self._remote_repo.url or "")

    def mirror_state(self) -> MirrorState:
        if self._local_repo_folder.is_dir() and (self._local_repo_folder / ".git").exists():
            return MirrorState.PRESENT
        return MirrorState.NOT_PRESENT

    def fails_deployment_on_error(self) -> bool:
        return True

    async def execute(
        self,
        deployment: Deployment,
        change_set: ChangeSet,
        params: dict[str, Any],
    ) -> ChangeSetUpdate:
        if self.mirror_state() == MirrorState.PRESENT:
            return await self._pull(deployment, params)

        await self._marker_store.delete(self._target_id)
        return await self._clone(deployment)

    # =========================================================================
    # CLONING
    # =========================================================================

    async def _clone(self, deployment: Deployment) -> ChangeSetUpdate:
        folder = self._local_repo_folder
        self._logger.info(
            "git_clone_starting",
            remote_repo_url=self.remote_repo_url,
            branch=self._remote_repo.branch,
        )

        cloned = False
        try:
            self._prepare_clone_folder(folder)
            revision = await self._git.clone(
                url=self._remote_repo.url,
                dest=folder,
                branch=self._remote_repo.branch,
                username=self._remote_repo.username,
                password=self._remote_repo.password,
                config=self._clone_config(),
            )
            created = await compute_change_set(
                self._git, folder, None, revision, self._path_filter,
            )
            cloned = True
        except (GitCommandError, OSError) as e:
            error = e.to_dict() if isinstance(e, GitCommandError) else {"error": str(e)}
            raise SynchronizationError(
                message=(
                    f"Failed to clone Git remote repository {self.remote_repo_url} "
                    f"into {folder}"
                ),
                target_id=self._target_id,
                error_code="CLONE_FAILED",
                details={"git": error},
            ) from e
        finally:
            # Also on cancellation: the next run must see NOT_PRESENT again.
            if not cloned:
                self._remove_partial_clone(folder)

        deployment.previous_revision = None
        deployment.revision = revision

        details = f"Successfully cloned Git remote repository {self.remote_repo_url} into {folder}"
        self._logger.info("git_clone_completed", revision=revision, **created.summary())
        return ChangeSetUpdate.replaced(created, details=details)

    def _prepare_clone_folder(self, folder: Path) -> None:
        if folder.exists() or folder.is_symlink():
            self._logger.debug("deleting_folder_before_clone")
            shutil.rmtree(folder)
        folder.parent.mkdir(parents=True, exist_ok=True)

    def _remove_partial_clone(self, folder: Path) -> None:
        if not folder.is_dir() or folder.is_symlink():
            return
        try:
            shutil.rmtree(folder)
        except OSError as e:
            self._logger.error("partial_clone_cleanup_failed", error=str(e))

    def _clone_config(self) -> dict[str, Any]:
        config: dict[str, Any] = {}
        if self._git_config.big_file_threshold:
            config["core.bigFileThreshold"] = self._git_config.big_file_threshold
        if self._git_config.compression is not None:
            config["core.compression"] = self._git_config.compression
        return config

    # =========================================================================
    # PULLING
    # =========================================================================

    async def _pull(self, deployment: Deployment, params: dict[str, Any]) -> ChangeSetUpdate:
        folder = self._local_repo_folder
        self._logger.info("git_pull_starting", remote_repo_url=self.remote_repo_url)

        marker = await self._marker_store.get(self._target_id)
        deployment.previous_revision = marker

        try:
            result = await self._git.pull(
                folder,
                branch=self._remote_repo.branch,
                remote_url=self._remote_repo.url if self._remote_repo.username else None,
                username=self._remote_repo.username,
                password=self._remote_repo.password,
            )
        except GitCommandError as e:
            raise SynchronizationError(
                message=f"Git pull for repository {folder} failed",
                target_id=self._target_id,
                error_code="PULL_FAILED",
                details={"git": e.to_dict()},
            ) from e

        if not result.outcome.is_supported:
            raise UnsupportedMergeError(
                message=(
                    "Received unsupported merge result after executing pull: "
                    f"{result.outcome.value}"
                ),
                target_id=self._target_id,
                merge_outcome=result.outcome.value,
                details={
                    "local_repo_folder": str(folder),
                    "fetched_revision": result.fetched_revision,
                    "git_output": result.message,
                },
            )

        deployment.revision = result.new_revision

        try:
            base = await self._diff_base(marker, params)
            change_set = await compute_change_set(
                self._git, folder, base, result.new_revision, self._path_filter,
            )
        except GitCommandError as e:
            raise SynchronizationError(
                message=f"Failed to compute changes for repository {folder}",
                target_id=self._target_id,
                error_code="PULL_FAILED",
                details={"git": e.to_dict()},
            ) from e

        details = self._pull_details(result.outcome)
        self._logger.info(
            "git_pull_completed",
            merge_outcome=result.outcome.value,
            old_revision=result.old_revision,
            revision=result.new_revision,
            **change_set.summary(),
        )
        return ChangeSetUpdate.replaced(change_set, details=details)

    async def _diff_base(self, marker: Optional[str], params: dict[str, Any]) -> Optional[str]:
        """Revision the ChangeSet is computed from. None means everything."""
        if params.get(REPROCESS_ALL_FILES_PARAM):
            self._logger.info("reprocessing_all_files")
            return None
        if marker is None:
            return None
        if not await self._git.has_commit(self._local_repo_folder, marker):
            self._logger.warning("marker_revision_not_in_mirror", marker=marker)
            return None
        return marker

    def _pull_details(self, outcome: MergeOutcome) -> str:
        url = self.remote_repo_url
        folder = self._local_repo_folder
        if outcome == MergeOutcome.ALREADY_UP_TO_DATE:
            return f"Local repository {folder} up to date (no changes pulled from remote repo {url})"
        if outcome == MergeOutcome.MERGED:
            return f"Changes from remote repo {url} merged into local repo {folder}"
        return f"Changes successfully pulled from remote repo {url} into local repo {folder}"
