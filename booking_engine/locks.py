from __future__ import annotations

import threading
import weakref
from contextlib import ExitStack, contextmanager
from typing import Hashable, Iterator


class KeyedLockRegistry:
    """One lock per key, created on first use.

    Entries are weak: a key's lock is dropped once no caller holds or waits on
    it. ``hold`` acquires several keys in sorted order so two callers locking
    the same pair can never deadlock.
    """

    def __init__(self) -> None:
        self._locks: weakref.WeakValueDictionary[Hashable, threading.Lock] = weakref.WeakValueDictionary()
        self._guard = threading.Lock()

    def __len__(self) -> int:
        return len(self._locks)

    def lock_for(self, key: Hashable) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.Lock()
                self._locks[key] = lock
            return lock

    @contextmanager
    def hold(self, *keys: Hashable) -> Iterator[None]:
        ordered = sorted(set(keys), key=repr)
        with ExitStack() as stack:
            for key in ordered:
                stack.enter_context(self.lock_for(key))
            yield
