"""Keyed in-process locks.

One lock per key (a product id, an order id, an idempotency key), created on
first use and discarded once no thread holds or waits on it.

These locks serialize threads of a single process only. A deployment that
runs several worker processes against one database needs the database's own
conditional update behind the same call sites.
"""

import threading
from contextlib import contextmanager


class KeyedLocks:
    """A registry of mutexes addressed by key."""

    def __init__(self, namespace: str):
        self.namespace = namespace
        self._guard = threading.Lock()
        self._entries: dict[str, list] = {}  # key -> [lock, holders]

    @contextmanager
    def hold(self, key):
        """Hold the lock for ``key`` for the duration of the block."""
        key = str(key)
        with self._guard:
            entry = self._entries.setdefault(key, [threading.Lock(), 0])
            entry[1] += 1

        try:
            with entry[0]:
                yield
        finally:
            with self._guard:
                entry[1] -= 1
                if entry[1] == 0:
                    del self._entries[key]

    def __len__(self):
        with self._guard:
            return len(self._entries)


product_locks = KeyedLocks("product")
order_locks = KeyedLocks("order")
checkout_locks = KeyedLocks("checkout")
