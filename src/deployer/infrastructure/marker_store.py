"""
deployer.infrastructure.marker_store - Processed Commit Markers
=================================================================

Durable mapping from target id to the last revision that was fully
processed by every processor of the target's pipeline.

    ┌──────────────────┐   get(target_id)      ┌─────────────────────────┐
    │ GitPullProcessor  │ ───────────────────→ │                         │
    │                   │   delete(target_id)   │  ProcessedCommitsStore  │
    │                   │ ───────────────────→ │                         │
    └──────────────────┘   (before re-clone)   │  site1 → 3f2a9c...      │
    ┌──────────────────┐   put(target_id, rev) │  site2 → 81bd04...      │
    │ DeploymentExecutor│ ───────────────────→ │                         │
    └──────────────────┘   (successful runs)   └─────────────────────────┘

Invariant:
    The stored revision always corresponds to a run that completed. Only
    the executor writes markers, and only after the whole pipeline
    succeeded; a crash can never leave a half-written marker behind.

Implementations:
    - ProcessedCommitsStore (ABC):     Abstract interface
    - InMemoryProcessedCommitsStore:   Dict-based for dev/testing
    - FileProcessedCommitsStore:       One "<target_id>.commit" file per target

Deleting a marker (or its file) is always safe: the next sync of that target
is treated as the first one and reports every file as created.
"""

from __future__ import annotations

import os
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional, Union

import structlog

from deployer.core.exceptions import StateError


logger = structlog.get_logger()


PROCESSED_COMMIT_FILE_EXTENSION = "commit"


# =============================================================================
# Abstract Base Class: ProcessedCommitsStore
# =============================================================================
class ProcessedCommitsStore(ABC):
    """Abstract interface for processed-commit marker persistence.

    Components should type-hint against this ABC.

    Example:
        >>> async def advance(store: ProcessedCommitsStore, revision: str):
        ...     await store.put("site1", revision)
        ...     assert await store.get("site1") == revision
    """

    @abstractmethod
    async def get(self, target_id: str) -> Optional[str]:
        """Return the last fully processed revision of a target.

        Args:
            target_id: The target identifier.

        Returns:
            The revision id, or None if the target has no marker.

        Raises:
            StateError: If the marker cannot be read.
        """

    @abstractmethod
    async def put(self, target_id: str, revision: str) -> None:
        """Record ``revision`` as the last fully processed revision.

        Must be atomic: after a crash either the old or the new revision
        is stored, never a partial value.

        Raises:
            StateError: If the marker cannot be written.
        """

    @abstractmethod
    async def delete(self, target_id: str) -> bool:
        """Remove a target's marker.

        Used when the mirror is re-created so the next sync is classified
        as the first one.

        Returns:
            True if a marker was removed, False if none existed.

        Raises:
            StateError: If the marker exists but cannot be removed.
        """


# =============================================================================
# InMemoryProcessedCommitsStore
# =============================================================================
class InMemoryProcessedCommitsStore(ProcessedCommitsStore):
    """In-memory marker store for development and testing.

    Markers are lost when the process ends.
    """

    def __init__(self) -> None:
        self._markers: dict[str, str] = {}
        self._logger = logger.bind(component="in_memory_processed_commits_store")

    async def get(self, target_id: str) -> Optional[str]:
        return self._markers.get(target_id)

    async def put(self, target_id: str, revision: str) -> None:
        self._markers[target_id] = revision
        self._logger.debug("marker_saved", target_id=target_id, revision=revision)

    async def delete(self, target_id: str) -> bool:
        if target_id in self._markers:
            del self._markers[target_id]
            self._logger.debug("marker_deleted", target_id=target_id)
            return True
        return False


# =============================================================================
# FileProcessedCommitsStore
# =============================================================================
# Layout:
#   <folder>/site1.commit   → "3f2a9c0d...\n"
#   <folder>/site2.commit   → "81bd04e1...\n"
#
# Writes go to "<target_id>.commit.part", are fsynced, and then replace the
# marker with os.replace(). Readers therefore only ever see a complete old
# value or a complete new value.
# =============================================================================
class FileProcessedCommitsStore(ProcessedCommitsStore):
    """File-backed marker store surviving process restarts.

    Attributes:
        _folder: Folder holding one marker file per target. Created lazily
            on the first write.

    Example:
        >>> store = FileProcessedCommitsStore("/var/deployer/processed-commits")
        >>> await store.put("site1", "3f2a9c0d")
        >>> await store.get("site1")
        '3f2a9c0d'
    """

    def __init__(self, folder: Union[str, Path]) -> None:
        self._folder = Path(folder)
        self._logger = logger.bind(
            component="file_processed_commits_store",
            folder=str(self._folder),
        )

    @property
    def folder(self) -> Path:
        return self._folder

    def marker_path(self, target_id: str) -> Path:
        """Path of the marker file of ``target_id``.

        Raises:
            StateError: If the target id would escape the marker folder.
        """
        if (
            not target_id
            or target_id in (".", "..")
            or "/" in target_id
            or "\\" in target_id
            or "\0" in target_id
        ):
            raise StateError(
                message=f"Invalid target id for marker file: {target_id!r}",
                error_code="INVALID_TARGET_ID",
                details={"target_id": target_id},
            )
        return self._folder / f"{target_id}.{PROCESSED_COMMIT_FILE_EXTENSION}"

    async def get(self, target_id: str) -> Optional[str]:
        path = self.marker_path(target_id)
        try:
            revision = path.read_text(encoding="utf-8").strip()
        except FileNotFoundError:
            return None
        except OSError as e:
            raise StateError(
                message=f"Failed to read processed commit marker {path}",
                error_code="MARKER_READ_FAILED",
                details={"target_id": target_id, "path": str(path), "error": str(e)},
            ) from e

        if not revision:
            self._logger.warning("marker_empty", target_id=target_id, path=str(path))
            return None
        return revision

    async def put(self, target_id: str, revision: str) -> None:
        path = self.marker_path(target_id)
        tmp_path = path.with_name(path.name + ".part")
        try:
            self._folder.mkdir(parents=True, exist_ok=True)
            with open(tmp_path, "w", encoding="utf-8") as f:
                f.write(revision + "\n")
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, path)
            self._fsync_folder()
        except OSError as e:
            if tmp_path.exists():
                tmp_path.unlink()
            raise StateError(
                message=f"Failed to write processed commit marker {path}",
                error_code="MARKER_WRITE_FAILED",
                details={"target_id": target_id, "path": str(path), "error": str(e)},
            ) from e

        self._logger.info("marker_saved", target_id=target_id, revision=revision)

    def _fsync_folder(self) -> None:
        """Persist the rename itself: the folder entry must reach the disk too."""
        fd = os.open(self._folder, os.O_RDONLY)
        try:
            os.fsync(fd)
        finally:
            os.close(fd)

    async def delete(self, target_id: str) -> bool:
        path = self.marker_path(target_id)
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        except OSError as e:
            raise StateError(
                message=f"Failed to delete processed commit marker {path}",
                error_code="MARKER_DELETE_FAILED",
                details={"target_id": target_id, "path": str(path), "error": str(e)},
            ) from e

        self._logger.info("marker_deleted", target_id=target_id)
        return True
