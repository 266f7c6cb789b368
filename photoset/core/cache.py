"""
Memo for brand resource analyses, keyed by resource URL.

Passed into the pipeline explicitly so tests and workers control its
lifetime. No process-wide cache is created implicitly.
"""

import threading
from typing import Any, Optional, Protocol


class ResourceCache(Protocol):
    def get(self, key: str) -> Optional[Any]:
        ...

    def set(self, key: str, value: Any) -> None:
        ...


class InMemoryResourceCache:
    """Thread-safe dict cache. Entries live as long as the instance."""

    def __init__(self):
        self._entries: dict[str, Any] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[Any]:
        with self._lock:
            return self._entries.get(key)

    def set(self, key: str, value: Any) -> None:
        with self._lock:
            self._entries[key] = value

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


class NullResourceCache:
    """Never stores anything."""

    def get(self, key: str) -> Optional[Any]:
        return None

    def set(self, key: str, value: Any) -> None:
        return None
