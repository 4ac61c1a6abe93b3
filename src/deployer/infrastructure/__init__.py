"""
deployer.infrastructure - Persistence Layer
=============================================

    ProcessedCommitsStore (ABC)
        ├── InMemoryProcessedCommitsStore   (dev/testing)
        └── FileProcessedCommitsStore       (durable, one file per target)

Usage:
    from deployer.infrastructure import FileProcessedCommitsStore
"""

from deployer.infrastructure.marker_store import (
    FileProcessedCommitsStore,
    InMemoryProcessedCommitsStore,
    ProcessedCommitsStore,
)

__all__ = [
    "ProcessedCommitsStore",
    "InMemoryProcessedCommitsStore",
    "FileProcessedCommitsStore",
]
