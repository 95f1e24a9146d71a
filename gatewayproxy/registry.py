"""Thread-safe registers of named values, optionally grouped by namespace."""

from __future__ import annotations

import threading
from typing import Any, Optional


class Untyped:
    """A thread-safe mapping of names to arbitrary values."""

    def __init__(self) -> None:
        self._data: dict[str, Any] = {}
        self._lock = threading.Lock()

    def register(self, name: str, value: Any) -> None:
        """Store ``value`` under ``name``, replacing any previous value."""
        with self._lock:
            self._data[name] = value

    def get(self, name: str) -> Any:
        """Return the value stored under ``name``, or None if there is none."""
        with self._lock:
            return self._data.get(name)

    def clone(self) -> dict[str, Any]:
        """Return a shallow copy of the stored entries."""
        with self._lock:
            return dict(self._data)

    def __contains__(self, name: object) -> bool:
        with self._lock:
            return name in self._data

    def __len__(self) -> int:
        with self._lock:
            return len(self._data)


class Namespaced:
    """A register of :class:`Untyped` registers keyed by namespace."""

    def __init__(self) -> None:
        self._data = Untyped()

    def get(self, namespace: str) -> Optional[Untyped]:
        """Return the register for ``namespace``, or None if there is none."""
        value = self._data.get(namespace)
        return value if isinstance(value, Untyped) else None

    def register(self, namespace: str, name: str, value: Any) -> None:
        """Store ``value`` under ``name`` in ``namespace``, creating it if needed."""
        existing = self.get(namespace)
        if existing is not None:
            existing.register(name, value)
            return
        created = Untyped()
        created.register(name, value)
        self._data.register(namespace, created)

    def add_namespace(self, namespace: str) -> None:
        """Create an empty register for ``namespace`` unless one exists."""
        if self.get(namespace) is not None:
            return
        self._data.register(namespace, Untyped())