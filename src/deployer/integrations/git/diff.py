"""
deployer.integrations.git.diff - ChangeSet Computation
========================================================

Turns two revisions of a mirror into a ChangeSet.

    old revision absent   → every file of the new tree is "created"
    old revision present  → tree-to-tree diff, classified as:

        ADD          → created
        MODIFY       → updated
        TYPE_CHANGE  → updated
        DELETE       → deleted
        RENAME a→b   → deleted(a) + created(b)
        COPY   a→b   → created(b)

The configured include/exclude globs are applied last, so an excluded path
never appears in any of the three sets. The result depends only on the two
revisions and the filter.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import structlog
from pydantic import BaseModel

from deployer.core.enums import ChangeType
from deployer.core.models import ChangeSet, PathFilter
from deployer.integrations.git.client import GitClient


logger = structlog.get_logger()


_STATUS_CHANGE_TYPES: dict[str, ChangeType] = {
    "A": ChangeType.ADD,
    "M": ChangeType.MODIFY,
    "D": ChangeType.DELETE,
    "R": ChangeType.RENAME,
    "C": ChangeType.COPY,
    "T": ChangeType.TYPE_CHANGE,
}


class DiffEntry(BaseModel):
    """One entry of a tree-to-tree diff.

    ``old_path`` is set for DELETE/MODIFY/TYPE_CHANGE and for the source of
    RENAME/COPY; ``new_path`` for ADD/MODIFY/TYPE_CHANGE and the destination
    of RENAME/COPY.
    """

    model_config = {"frozen": True}

    change_type: ChangeType
    old_path: Optional[str] = None
    new_path: Optional[str] = None


def parse_name_status(raw: str) -> list[DiffEntry]:
    """Parse ``git diff-tree -z --name-status`` output.

    The -z format is a flat NUL-separated stream: a status token followed
    by one path, or by two paths for renames and copies (``R100``, ``C075``).

    Raises:
        ValueError: On an unknown status letter or a truncated stream.
    """
    tokens = raw.split("\0")
    if tokens and tokens[-1] == "":
        tokens.pop()

    entries: list[DiffEntry] = []
    i = 0
    while i < len(tokens):
        status = tokens[i]
        change_type = _STATUS_CHANGE_TYPES.get(status[:1])
        if change_type is None:
            raise ValueError(f"Unknown diff status {status!r}")

        if change_type in (ChangeType.RENAME, ChangeType.COPY):
            if i + 2 >= len(tokens):
                raise ValueError(f"Truncated diff output after status {status!r}")
            entries.append(DiffEntry(
                change_type=change_type,
                old_path=tokens[i + 1],
                new_path=tokens[i + 2],
            ))
            i += 3
            continue

        if i + 1 >= len(tokens):
            raise ValueError(f"Truncated diff output after status {status!r}")
        path = tokens[i + 1]
        if change_type == ChangeType.ADD:
            entries.append(DiffEntry(change_type=change_type, new_path=path))
        elif change_type == ChangeType.DELETE:
            entries.append(DiffEntry(change_type=change_type, old_path=path))
        else:
            entries.append(DiffEntry(change_type=change_type, old_path=path, new_path=path))
        i += 2

    return entries


def change_set_from_entries(
    entries: list[DiffEntry],
    path_filter: Optional[PathFilter] = None,
) -> ChangeSet:
    """Classify diff entries into a ChangeSet and apply ``path_filter``.

    A path that ends up both deleted and created (a rename onto a path that
    was removed in the same diff) is reported as updated.
    """
    created: set[str] = set()
    updated: set[str] = set()
    deleted: set[str] = set()

    for entry in entries:
        if entry.change_type == ChangeType.ADD:
            created.add(entry.new_path)
        elif entry.change_type in (ChangeType.MODIFY, ChangeType.TYPE_CHANGE):
            updated.add(entry.new_path)
        elif entry.change_type == ChangeType.DELETE:
            deleted.add(entry.old_path)
        elif entry.change_type == ChangeType.RENAME:
            deleted.add(entry.old_path)
            created.add(entry.new_path)
        elif entry.change_type == ChangeType.COPY:
            created.add(entry.new_path)

    both = created & deleted
    updated |= both
    created -= both | updated
    deleted -= both | updated

    change_set = ChangeSet(
        created_files=frozenset(created),
        updated_files=frozenset(updated),
        deleted_files=frozenset(deleted),
    )
    return change_set.filter(path_filter)


async def compute_change_set(
    client: GitClient,
    repo: Path,
    old_revision: Optional[str],
    new_revision: str,
    path_filter: Optional[PathFilter] = None,
) -> ChangeSet:
    """Compute the ChangeSet between two revisions of a mirror.

    Args:
        client: Git client used to list/diff trees.
        repo: Mirror folder.
        old_revision: Last processed revision, or None for a first sync.
        new_revision: Revision the mirror was synchronized to.
        path_filter: Include/exclude globs applied to the result.

    Returns:
        The filtered ChangeSet. Empty when both revisions are equal.
    """
    if old_revision is None:
        files = await client.list_files(repo, new_revision)
        change_set = ChangeSet(created_files=frozenset(files)).filter(path_filter)
    elif old_revision == new_revision:
        change_set = ChangeSet.empty()
    else:
        raw = await client.diff_name_status(repo, old_revision, new_revision)
        change_set = change_set_from_entries(parse_name_status(raw), path_filter)

    logger.debug(
        "change_set_computed",
        repo=str(repo),
        old_revision=old_revision,
        new_revision=new_revision,
        **change_set.summary(),
    )
    return change_set
