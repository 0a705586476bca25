"""Concurrency-safe caches for module- and session-scoped fixture values.

A `ScopedStore` lives exactly as long as one module run or one session. The
only way to add a value is `get_or_create`, which guarantees that a factory
runs at most once per key even when many tests ask for the key at the same
time. Each key has its own lock, so a slow factory blocks only the callers
waiting on that key.
"""

import logging
import threading
from types import MappingProxyType
from typing import Any, Callable, Hashable, Mapping

from fixtureset.errors import StoreClosed

__all__ = ["ScopedStore"]

logger = logging.getLogger(__name__)

Factory = Callable[[Mapping[Hashable, Any]], Any]


class ScopedStore:
    """Get-or-create cache shared by every test running in one scope instance.

    Factories that raise are not cached: the exception propagates to the caller
    and the next caller for the same key runs its own factory from scratch.

    Example:
        >>> store = ScopedStore("session")
        >>> store.get_or_create("db", lambda values: object()) is store.get_or_create(
        ...     "db", lambda values: object()
        ... )
        True
    """

    def __init__(self, name: str):
        self.name = name
        self._values: dict[Hashable, Any] = {}
        self._closed = False
        self._lock = threading.Lock()
        self._key_locks: dict[Hashable, threading.Lock] = {}

    def get_or_create(self, key: Hashable, factory: Factory) -> Any:
        """Return the value stored under `key`, creating it if necessary.

        Args:
            key: Cache key, normally a fixture's qualified name.
            factory: Called with a read-only snapshot of the values stored so
                far when `key` is missing. Its result is stored and returned.

        Returns:
            The stored value.

        Raises:
            StoreClosed: If the store's scope has already ended, including when
                it ends while `factory` is running. The value built by that
                factory is then dropped without being stored, so nothing tears
                it down; teardowns the factory registered still run with the
                rest of its scope.
        """
        with self._lock:
            self._check_open()
            if key in self._values:
                logger.debug("Store %s: hit for %s", self.name, key)
                return self._values[key]
            key_lock = self._key_locks.setdefault(key, threading.Lock())

        with key_lock:
            with self._lock:
                self._check_open()
                # Another caller may have finished the factory while we waited.
                if key in self._values:
                    logger.debug("Store %s: hit for %s after waiting", self.name, key)
                    return self._values[key]
                snapshot = MappingProxyType(dict(self._values))

            logger.debug("Store %s: creating %s", self.name, key)
            value = factory(snapshot)

            with self._lock:
                # A value built after close() is dropped, never stored.
                self._check_open()
                self._values[key] = value
            return value

    def snapshot(self) -> Mapping[Hashable, Any]:
        """Return a read-only copy of the stored values."""
        with self._lock:
            return MappingProxyType(dict(self._values))

    def close(self):
        """Discard all stored values. Any further use raises `StoreClosed`."""
        with self._lock:
            self._closed = True
            self._values.clear()
            self._key_locks.clear()
        logger.debug("Store %s: closed", self.name)

    @property
    def closed(self) -> bool:
        return self._closed

    def __contains__(self, key: Hashable) -> bool:
        with self._lock:
            return key in self._values

    def __len__(self) -> int:
        with self._lock:
            return len(self._values)

    def __repr__(self) -> str:
        return f"ScopedStore({self.name!r}, {len(self)} values)"

    def _check_open(self):
        if self._closed:
            raise StoreClosed(self.name)
