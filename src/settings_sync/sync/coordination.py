"""Instance arbitration.

Only one runner per machine should drive the timer-based sync loop.

- ``InstanceRegistry`` -- in-process FIFO of registrants; the first one runs,
  and when the runner unregisters the next queued registrant is promoted.
- ``ProcessLeaderLock`` -- exclusive ``fcntl`` lock on a file in the state
  directory, electing one runner among several processes.  The kernel drops
  the lock when its holder exits, so a waiting process takes over.
"""

from __future__ import annotations

import asyncio
import fcntl
import logging
import os
from collections import deque
from pathlib import Path
from typing import Any, Callable, TextIO

logger = logging.getLogger(__name__)

LEADER_LOCK_FILE = "leader.lock"


class InstanceRegistry:
    """FIFO promotion of registered instances."""

    def __init__(self) -> None:
        self._waiting: deque[tuple[str, Callable[[], Any]]] = deque()
        self._runner: str | None = None

    @property
    def runner(self) -> str | None:
        """Id of the instance currently running, if any."""
        return self._runner

    @property
    def waiting(self) -> list[str]:
        return [instance_id for instance_id, _ in self._waiting]

    def register(self, instance_id: str, on_promoted: Callable[[], Any]) -> None:
        """Queue *instance_id*; *on_promoted* is called when it becomes the runner.

        Raises:
            ValueError: If the id is already registered.
        """
        if instance_id == self._runner or instance_id in self.waiting:
            raise ValueError(f"Instance {instance_id!r} already registered")
        self._waiting.append((instance_id, on_promoted))
        if self._runner is None:
            self._promote_next()

    def unregister(self, instance_id: str) -> None:
        """Remove *instance_id*; promotes the next registrant if it was running.

        Unknown ids are ignored.
        """
        if instance_id == self._runner:
            logger.debug("Runner %s unregistered", instance_id)
            self._runner = None
            self._promote_next()
            return
        self._waiting = deque(
            entry for entry in self._waiting if entry[0] != instance_id
        )

    def _promote_next(self) -> None:
        if not self._waiting:
            return
        instance_id, on_promoted = self._waiting.popleft()
        self._runner = instance_id
        logger.info("Instance %s promoted to sync runner", instance_id)
        on_promoted()


class ProcessLeaderLock:
    """Cross-process leader election through an exclusive file lock.

    Args:
        path: Lock file; its parent directory is created on demand.
    """

    def __init__(self, path: Path) -> None:
        self.path = path
        self._handle: TextIO | None = None

    @property
    def held(self) -> bool:
        return self._handle is not None

    def try_acquire(self) -> bool:
        """Take the lock without blocking.  Returns ``False`` if another
        process holds it."""
        if self._handle is not None:
            return True

        self.path.parent.mkdir(parents=True, exist_ok=True)
        handle = open(self.path, "a+", encoding="utf-8")
        try:
            fcntl.flock(handle.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
        except BlockingIOError:
            handle.close()
            return False
        except BaseException:
            handle.close()
            raise

        handle.seek(0)
        handle.truncate()
        handle.write(f"{os.getpid()}\n")
        handle.flush()
        self._handle = handle
        logger.debug("Acquired leader lock %s", self.path)
        return True

    def release(self) -> None:
        """Give the lock up.  No-op if it is not held."""
        if self._handle is None:
            return
        try:
            fcntl.flock(self._handle.fileno(), fcntl.LOCK_UN)
        finally:
            self._handle.close()
            self._handle = None
        logger.debug("Released leader lock %s", self.path)

    async def wait_for_leadership(self, poll_interval: float = 5.0) -> None:
        """Poll until this process holds the lock."""
        while not self.try_acquire():
            await asyncio.sleep(poll_interval)
