"""
deployer.orchestration.locks - Per-Target Locks
=================================================

Two deployments of the same target must never overlap: both would operate
on the same mirror and the same marker. Different targets run in parallel.

    TargetLockRegistry
        site1 → asyncio.Lock   (held by the running deployment)
        site2 → asyncio.Lock

Usage:
    >>> locks = TargetLockRegistry()
    >>> async with locks.acquire("site1"):
    ...     await executor.run(target)
    >>>
    >>> async with locks.acquire("site1", wait=False):   # TargetBusyError if held
    ...     ...
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator

import structlog

from deployer.core.exceptions import TargetBusyError


logger = structlog.get_logger()


class TargetLockRegistry:
    """Keyed asyncio locks, one per target id, created on first use."""

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}
        self._logger = logger.bind(component="target_lock_registry")

    def _lock_for(self, target_id: str) -> asyncio.Lock:
        lock = self._locks.get(target_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[target_id] = lock
        return lock

    def is_locked(self, target_id: str) -> bool:
        lock = self._locks.get(target_id)
        return lock is not None and lock.locked()

    @asynccontextmanager
    async def acquire(self, target_id: str, wait: bool = True) -> AsyncIterator[None]:
        """Hold the lock of ``target_id`` for the duration of the block.

        Args:
            target_id: Target to lock.
            wait: Wait for a running deployment to finish. When False a
                busy target raises immediately.

        Raises:
            TargetBusyError: If ``wait`` is False and the target is locked.
        """
        lock = self._lock_for(target_id)
        if not wait and lock.locked():
            self._logger.warning("target_busy", target_id=target_id)
            raise TargetBusyError(target_id)

        async with lock:
            self._logger.debug("target_lock_acquired", target_id=target_id)
            yield
        self._logger.debug("target_lock_released", target_id=target_id)
