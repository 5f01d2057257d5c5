"""Per-account serialization of balance mutations within one process"""

import threading
from contextlib import contextmanager
from typing import Dict, Iterator


class AccountLockRegistry:
    """
    One lock per float account id. Different accounts proceed in parallel;
    two mutations of the same account never interleave. Across processes the
    row lock taken by the repository (SELECT ... FOR UPDATE) does the same job.
    """

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: Dict[str, threading.RLock] = {}

    def lock_for(self, account_id: str) -> threading.RLock:
        with self._guard:
            lock = self._locks.get(account_id)
            if lock is None:
                lock = self._locks[account_id] = threading.RLock()
            return lock

    @contextmanager
    def hold(self, account_id: str) -> Iterator[None]:
        lock = self.lock_for(account_id)
        with lock:
            yield


# Shared by every LedgerService in the process, including per-request instances
account_locks = AccountLockRegistry()
