"""
Key/value store port and the in-memory implementation.

Why: The portal persists every record (accounts, one-time codes, sessions,
certificate requests) as a serialized JSON value under a flat key such as
`user:<email>` or `request:<id>`. Services depend on this narrow port only,
so workflow logic stays storage-agnostic and tests run without a database.

Concurrency:
- `set_if_absent`, `compare_and_set` and `delete_if` are atomic per key. Services
  use them for uniqueness (signup, request ids), for state transitions
  (approve/reject) and to remove only the exact value they read (one-time codes).
- The in-memory store uses striped locks: keys hash onto a fixed set of locks,
  so operations on different keys do not serialize behind one global lock.
"""
from __future__ import annotations

from typing import Dict, List, Optional, Protocol, Tuple
import threading


class KeyValueStore(Protocol):
    """Minimal storage interface used by the identity and workflow services."""

    def get(self, key: str) -> Optional[str]: ...

    def set(self, key: str, value: str) -> None: ...

    def set_if_absent(self, key: str, value: str) -> bool: ...

    def compare_and_set(self, key: str, expected: str, value: str) -> bool: ...

    def delete(self, key: str) -> None: ...

    def delete_if(self, key: str, expected: str) -> bool: ...

    def scan_prefix(self, prefix: str) -> List[Tuple[str, str]]: ...


class InMemoryKeyValueStore:
    """Process-local store for development and tests.

    Values are kept as the exact strings written, so `compare_and_set` compares
    serialized snapshots byte for byte.
    """

    def __init__(self, stripes: int = 64) -> None:
        self._data: Dict[str, str] = {}
        self._locks = [threading.Lock() for _ in range(max(1, stripes))]

    def _lock_for(self, key: str) -> threading.Lock:
        return self._locks[hash(key) % len(self._locks)]

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        with self._lock_for(key):
            self._data[key] = value

    def set_if_absent(self, key: str, value: str) -> bool:
        with self._lock_for(key):
            if key in self._data:
                return False
            self._data[key] = value
            return True

    def compare_and_set(self, key: str, expected: str, value: str) -> bool:
        with self._lock_for(key):
            if self._data.get(key) != expected:
                return False
            self._data[key] = value
            return True

    def delete(self, key: str) -> None:
        with self._lock_for(key):
            self._data.pop(key, None)

    def delete_if(self, key: str, expected: str) -> bool:
        with self._lock_for(key):
            if self._data.get(key) != expected:
                return False
            del self._data[key]
            return True

    def scan_prefix(self, prefix: str) -> List[Tuple[str, str]]:
        # Snapshot first; concurrent writers may add keys while we iterate.
        items = list(self._data.items())
        return [(k, v) for k, v in items if k.startswith(prefix)]


__all__ = ["KeyValueStore", "InMemoryKeyValueStore"]
