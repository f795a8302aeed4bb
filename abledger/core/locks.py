"""
Per-environment writer locks.

Each environment has exactly one writer at a time. Locks are re-entrant so a
replay driver can hold its environment across several store calls while the
calls themselves still lock. Several locks are always taken in ascending
environment id order.
"""

import threading
import logging
from contextlib import contextmanager
from typing import Iterator

logger = logging.getLogger(__name__)


class EnvironmentLocks:
    """Registry of one re-entrant lock per environment id"""

    def __init__(self):
        self.lock = threading.Lock()
        self._locks: dict[int, threading.RLock] = {}

    def get(self, environment_id: int) -> threading.RLock:
        with self.lock:
            env_lock = self._locks.get(environment_id)
            if env_lock is None:
                env_lock = threading.RLock()
                self._locks[environment_id] = env_lock
            return env_lock

    @contextmanager
    def hold(self, *environment_ids: int) -> Iterator[None]:
        """Acquire the writer locks of all given environments."""
        ordered = sorted(set(environment_ids))
        acquired = []
        try:
            for environment_id in ordered:
                env_lock = self.get(environment_id)
                env_lock.acquire()
                acquired.append(env_lock)
            yield
        finally:
            for env_lock in reversed(acquired):
                env_lock.release()

    def discard(self, environment_id: int) -> None:
        """Forget the lock of a dropped environment."""
        with self.lock:
            self._locks.pop(environment_id, None)
        logger.debug(f"Released writer lock slot for environment {environment_id}")
