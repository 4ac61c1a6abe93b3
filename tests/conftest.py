"""
Shared Test Fixtures for the Deployer
=======================================

Fixtures are organized by layer:

    1. Configuration fixtures
    2. Infrastructure fixtures (marker stores)
    3. Git fixtures
         - FakeGitClient: scripted git client for the processor state machine
         - GitRemote:     real local repositories (skipped without a git binary)
    4. Model fixtures (deployments)
"""

from __future__ import annotations

import shutil
import subprocess
from pathlib import Path
from typing import Any, Optional

import pytest

from deployer.core.config import DeployerConfig
from deployer.core.enums import MergeOutcome
from deployer.core.models import Deployment
from deployer.infrastructure.marker_store import (
    FileProcessedCommitsStore,
    InMemoryProcessedCommitsStore,
)
from deployer.integrations.git.client import GitClient, GitCommandError, PullResult


# =============================================================================
# Configuration
# =============================================================================

@pytest.fixture
def config():
    """Deployer configuration with in-memory markers and no targets."""
    return DeployerConfig(marker_store_backend="memory")


# =============================================================================
# Infrastructure
# =============================================================================

@pytest.fixture
def marker_store():
    """Fresh InMemoryProcessedCommitsStore."""
    return InMemoryProcessedCommitsStore()


@pytest.fixture
def file_marker_store(tmp_path: Path):
    """FileProcessedCommitsStore in a temporary folder."""
    return FileProcessedCommitsStore(tmp_path / "processed-commits")


# =============================================================================
# Fake Git Client
# =============================================================================
# Scripted stand-in for GitClient. Tests describe the repository as data:
#
#   fake.trees["rev-a"] = ["index.html", "about.html"]    (ls-tree)
#   fake.diffs[("rev-a", "rev-b")] = "M\0index.html\0"    (diff-tree -z)
#   fake.queue_pull(MergeOutcome.FAST_FORWARD, "rev-a", "rev-b")
#
# Clones create "<dest>/.git" so the next run sees a PRESENT mirror.
# =============================================================================
class FakeGitClient(GitClient):
    """GitClient whose results are scripted by the test."""

    def __init__(self) -> None:
        super().__init__(git_executable="git-fake")
        self.trees: dict[str, list[str]] = {}
        self.diffs: dict[tuple[str, str], str] = {}
        self.clone_revision: Optional[str] = None
        self.clone_error: Optional[GitCommandError] = None
        self.pull_error: Optional[GitCommandError] = None
        self.pull_results: list[PullResult] = []
        self.calls: list[tuple[str, dict[str, Any]]] = []

    def queue_pull(
        self,
        outcome: MergeOutcome,
        old_revision: str,
        new_revision: Optional[str] = None,
        message: str = "",
    ) -> None:
        new_revision = new_revision or old_revision
        self.pull_results.append(PullResult(
            outcome=outcome,
            old_revision=old_revision,
            new_revision=new_revision,
            fetched_revision=new_revision,
            message=message,
        ))

    def call_names(self) -> list[str]:
        return [name for name, _ in self.calls]

    async def clone(self, url, dest, branch=None, username=None, password=None, config=None):
        self.calls.append(("clone", {
            "url": url, "dest": dest, "branch": branch,
            "username": username, "password": password, "config": config,
        }))
        if self.clone_error is not None:
            (Path(dest) / "partial").mkdir(parents=True)
            raise self.clone_error
        (Path(dest) / ".git").mkdir(parents=True)
        return self.clone_revision

    async def pull(self, repo, branch=None, remote_url=None, username=None, password=None):
        self.calls.append(("pull", {
            "repo": repo, "branch": branch, "remote_url": remote_url,
            "username": username, "password": password,
        }))
        if self.pull_error is not None:
            raise self.pull_error
        return self.pull_results.pop(0)

    async def has_commit(self, repo, rev):
        return rev in self.trees

    async def list_files(self, repo, rev):
        self.calls.append(("list_files", {"rev": rev}))
        return sorted(self.trees[rev])

    async def diff_name_status(self, repo, old_rev, new_rev):
        self.calls.append(("diff_name_status", {"old_rev": old_rev, "new_rev": new_rev}))
        return self.diffs[(old_rev, new_rev)]


@pytest.fixture
def fake_git():
    """Fresh FakeGitClient."""
    return FakeGitClient()


# =============================================================================
# Real Git Repositories
# =============================================================================
# A bare "remote" plus a working clone used to author commits. The bare
# repository stands in for https://example.org/site1.git in tests.
# =============================================================================
def _git(*args: str, cwd: Optional[Path] = None) -> str:
    result = subprocess.run(
        ["git", *args],
        cwd=cwd,
        check=True,
        capture_output=True,
        text=True,
    )
    return result.stdout.strip()


class GitRemote:
    """A bare repository on branch ``main`` and a working copy that pushes to it."""

    def __init__(self, root: Path) -> None:
        self.bare = root / "remote" / "site1.git"
        self.work = root / "author"
        self.bare.mkdir(parents=True)

        _git("init", "-q", "--bare", str(self.bare))
        _git("symbolic-ref", "HEAD", "refs/heads/main", cwd=self.bare)
        _git("init", "-q", str(self.work))
        _git("symbolic-ref", "HEAD", "refs/heads/main", cwd=self.work)
        _git("remote", "add", "origin", str(self.bare), cwd=self.work)

    @property
    def url(self) -> str:
        return str(self.bare)

    def commit(self, files: dict[str, Optional[str]], message: str = "update") -> str:
        """Write (or delete, for None) files, commit, push. Returns the new revision."""
        for path, content in files.items():
            full = self.work / path
            if content is None:
                full.unlink()
            else:
                full.parent.mkdir(parents=True, exist_ok=True)
                full.write_text(content)
        return self._commit_and_push(message)

    def rename(self, old: str, new: str, message: str = "rename") -> str:
        (self.work / new).parent.mkdir(parents=True, exist_ok=True)
        _git("mv", old, new, cwd=self.work)
        return self._commit_and_push(message)

    def head(self) -> str:
        return _git("rev-parse", "HEAD", cwd=self.work)

    def _commit_and_push(self, message: str) -> str:
        _git("add", "-A", cwd=self.work)
        _git(
            "-c", "user.name=Test Author",
            "-c", "user.email=author@example.org",
            "-c", "commit.gpgsign=false",
            "commit", "-q", "-m", message,
            cwd=self.work,
        )
        _git("push", "-q", "origin", "main", cwd=self.work)
        return self.head()


@pytest.fixture
def git_remote(tmp_path: Path):
    """Fresh GitRemote. Skips the test when no git binary is installed."""
    if shutil.which("git") is None:
        pytest.skip("git binary not available")
    return GitRemote(tmp_path)


# =============================================================================
# Models
# =============================================================================

@pytest.fixture
def running_deployment():
    """A started deployment of target site1."""
    deployment = Deployment(target_id="site1")
    deployment.start()
    return deployment
