"""
deployer.integrations.git - Git Integration
=============================================

    - GitClient:          async wrapper over the git command line
    - compute_change_set: revision pair → ChangeSet
"""

from deployer.integrations.git.client import (
    GitClient,
    GitCommandError,
    GitCommandResult,
    PullResult,
    build_remote_url,
    redact_url,
)
from deployer.integrations.git.diff import (
    DiffEntry,
    change_set_from_entries,
    compute_change_set,
    parse_name_status,
)

__all__ = [
    "GitClient",
    "GitCommandError",
    "GitCommandResult",
    "PullResult",
    "build_remote_url",
    "redact_url",
    "DiffEntry",
    "change_set_from_entries",
    "compute_change_set",
    "parse_name_status",
]
