"""
Tests for deployer.integrations.git.diff
==========================================

These tests verify ChangeSet computation:
    - parse_name_status:        NUL-separated diff-tree output → DiffEntry
    - change_set_from_entries:  entry classification and filtering
    - compute_change_set:       first sync (everything), equal revisions,
                                incremental diff (with the FakeGitClient)
"""

from pathlib import Path

import pytest

from deployer.core.enums import ChangeType
from deployer.core.models import ChangeSet, PathFilter
from deployer.integrations.git.diff import (
    DiffEntry,
    change_set_from_entries,
    compute_change_set,
    parse_name_status,
)


# =============================================================================
# Test: parse_name_status
# =============================================================================
class TestParseNameStatus:
    """Tests for parsing `git diff-tree -z --name-status` output."""

    def test_empty_output(self) -> None:
        assert parse_name_status("") == []

    def test_simple_statuses(self) -> None:
        raw = "A\0new.html\0M\0index.html\0D\0old.html\0T\0link\0"
        assert parse_name_status(raw) == [
            DiffEntry(change_type=ChangeType.ADD, new_path="new.html"),
            DiffEntry(change_type=ChangeType.MODIFY, old_path="index.html", new_path="index.html"),
            DiffEntry(change_type=ChangeType.DELETE, old_path="old.html"),
            DiffEntry(change_type=ChangeType.TYPE_CHANGE, old_path="link", new_path="link"),
        ]

    def test_rename_and_copy_carry_two_paths(self) -> None:
        raw = "R100\0a.html\0b.html\0C075\0base.css\0theme.css\0"
        assert parse_name_status(raw) == [
            DiffEntry(change_type=ChangeType.RENAME, old_path="a.html", new_path="b.html"),
            DiffEntry(change_type=ChangeType.COPY, old_path="base.css", new_path="theme.css"),
        ]

    def test_paths_with_spaces_and_newlines(self) -> None:
        """-z output does not quote paths."""
        raw = "A\0my page.html\0A\0odd\nname.txt\0"
        paths = [e.new_path for e in parse_name_status(raw)]
        assert paths == ["my page.html", "odd\nname.txt"]

    def test_unknown_status_raises(self) -> None:
        with pytest.raises(ValueError, match="Unknown diff status"):
            parse_name_status("X\0file\0")

    def test_truncated_rename_raises(self) -> None:
        with pytest.raises(ValueError, match="Truncated"):
            parse_name_status("R100\0a.html\0")


# =============================================================================
# Test: change_set_from_entries
# =============================================================================
class TestChangeSetFromEntries:
    """Tests for classifying diff entries."""

    def test_classification(self) -> None:
        entries = parse_name_status(
            "A\0added\0M\0modified\0D\0deleted\0T\0retyped\0"
            "R100\0renamed-from\0renamed-to\0C100\0copied-from\0copied-to\0"
        )
        cs = change_set_from_entries(entries)

        assert cs.created_files == frozenset({"added", "renamed-to", "copied-to"})
        assert cs.updated_files == frozenset({"modified", "retyped"})
        assert cs.deleted_files == frozenset({"deleted", "renamed-from"})

    def test_path_both_created_and_deleted_becomes_updated(self) -> None:
        """Renaming b onto a path a that was removed in the same diff."""
        entries = parse_name_status("D\0a.html\0R100\0b.html\0a.html\0")
        cs = change_set_from_entries(entries)

        assert cs.updated_files == frozenset({"a.html"})
        assert cs.created_files == frozenset()
        assert cs.deleted_files == frozenset({"b.html"})

    def test_filter_applied_to_every_set(self) -> None:
        entries = parse_name_status("A\0a.tmp\0M\0b.tmp\0D\0c.tmp\0A\0keep.html\0")
        cs = change_set_from_entries(entries, PathFilter(exclude=("*.tmp",)))
        assert cs == ChangeSet(created_files={"keep.html"})


# =============================================================================
# Test: compute_change_set
# =============================================================================
class TestComputeChangeSet:
    """Tests for compute_change_set with a scripted git client."""

    async def test_first_sync_reports_everything_created(self, fake_git) -> None:
        fake_git.trees["rev-a"] = ["index.html", "css/site.css"]

        cs = await compute_change_set(fake_git, Path("/repo"), None, "rev-a")

        assert cs == ChangeSet(created_files={"index.html", "css/site.css"})

    async def test_first_sync_is_filtered(self, fake_git) -> None:
        fake_git.trees["rev-a"] = ["index.html", "css/site.css"]

        cs = await compute_change_set(
            fake_git, Path("/repo"), None, "rev-a", PathFilter(include=("css/*",)),
        )

        assert cs.created_files == frozenset({"css/site.css"})

    async def test_equal_revisions_are_empty(self, fake_git) -> None:
        cs = await compute_change_set(fake_git, Path("/repo"), "rev-a", "rev-a")
        assert cs.is_empty
        assert fake_git.calls == []

    async def test_incremental_diff(self, fake_git) -> None:
        fake_git.diffs[("rev-a", "rev-b")] = "M\0index.html\0A\0about.html\0"

        cs = await compute_change_set(fake_git, Path("/repo"), "rev-a", "rev-b")

        assert cs == ChangeSet(created_files={"about.html"}, updated_files={"index.html"})

    async def test_is_deterministic(self, fake_git) -> None:
        fake_git.diffs[("rev-a", "rev-b")] = "D\0x\0A\0y\0R090\0p\0q\0"

        first = await compute_change_set(fake_git, Path("/repo"), "rev-a", "rev-b")
        second = await compute_change_set(fake_git, Path("/repo"), "rev-a", "rev-b")

        assert first == second
