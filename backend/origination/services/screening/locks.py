"""
Per-client locks.

Held from cycle validation through ledger append so two concurrent
cycle-start requests for the same client cannot both pass the live-cycle
check. In-process only: run a single worker or move to a row lock
(SELECT ... FOR UPDATE on the history row) when scaling out.
"""
import threading
from contextlib import contextmanager
from typing import Dict


class ClientLockRegistry:
    """
    One lock per client with at least one holder or waiter. The entry is
    dropped when the last of them leaves.
    """

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: Dict[str, threading.Lock] = {}
        self._holders: Dict[str, int] = {}

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)

    @contextmanager
    def hold(self, client_id: str):
        with self._guard:
            lock = self._locks.setdefault(client_id, threading.Lock())
            self._holders[client_id] = self._holders.get(client_id, 0) + 1
        try:
            with lock:
                yield
        finally:
            with self._guard:
                self._holders[client_id] -= 1
                if not self._holders[client_id]:
                    del self._holders[client_id]
                    del self._locks[client_id]


client_locks = ClientLockRegistry()
