# backend/dedup.py
"""
In-process guards against concurrent duplicates.

DedupIndex holds reservations on registration keys (account hash, address)
while a registration is in flight and after it committed. A reservation
whose transaction timed out stays held with its tx hash attached until the
coordinator reconciles it against the chain. KeyedLocks serializes work per voter address so two
votes from one address never reach the ledger together.
"""

import threading
from contextlib import contextmanager

from backend.errors import AlreadyRegistered

KEY_MESSAGES = {
    "account": "Account number hash is already registered",
    "address": "Address is already registered",
}


def _collision_message(key):
    kind = key[0] if isinstance(key, tuple) else None
    return KEY_MESSAGES.get(kind, "Voter is already registered")


class Reservation:
    def __init__(self, index, keys):
        self._index = index
        self.keys = keys
        self.released = False
        self.tx_hash = None
        self.record = None

    @property
    def pending(self):
        return self.tx_hash is not None and not self.released

    def hold_pending(self, tx_hash, record=None):
        """Keep the keys reserved for a transaction whose outcome is unknown."""
        self.tx_hash = tx_hash
        self.record = record

    def commit(self):
        """The transaction confirmed; keep the keys as a plain registered guard."""
        self.tx_hash = None
        self.record = None

    def release(self):
        if not self.released:
            self._index._release(self)
            self.released = True


class DedupIndex:
    def __init__(self):
        self._lock = threading.Lock()
        self._held = {}

    def reserve(self, *keys):
        """Reserve every key or none of them."""
        keys = tuple(keys)
        with self._lock:
            for key in keys:
                if key in self._held:
                    raise AlreadyRegistered(_collision_message(key))
            reservation = Reservation(self, keys)
            for key in keys:
                self._held[key] = reservation
        return reservation

    def pending(self, *keys):
        """The pending reservation holding any of `keys`, or None."""
        with self._lock:
            for key in keys:
                reservation = self._held.get(key)
                if reservation is not None and reservation.pending:
                    return reservation
        return None

    def is_reserved(self, key):
        with self._lock:
            return key in self._held

    def _release(self, reservation):
        with self._lock:
            for key in reservation.keys:
                if self._held.get(key) is reservation:
                    del self._held[key]

    def __len__(self):
        with self._lock:
            return len(self._held)


class KeyedLocks:
    """One lock per key; entries are dropped once nobody holds or waits."""

    def __init__(self):
        self._guard = threading.Lock()
        self._locks = {}

    @contextmanager
    def hold(self, key):
        with self._guard:
            lock, users = self._locks.get(key, (None, 0))
            if lock is None:
                lock = threading.Lock()
            self._locks[key] = (lock, users + 1)
        try:
            with lock:
                yield
        finally:
            with self._guard:
                lock, users = self._locks[key]
                if users == 1:
                    del self._locks[key]
                else:
                    self._locks[key] = (lock, users - 1)

    def __len__(self):
        with self._guard:
            return len(self._locks)
