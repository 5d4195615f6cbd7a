"""Dedup caches and the single-batch execution guard."""

from __future__ import annotations

import hashlib
import json
from collections import OrderedDict
from typing import Any


def payload_key(payload: Any) -> str:
    """
    Hash a payload's JSON serialization.

    Field order is preserved, so reordered but otherwise identical payloads
    hash differently; only exact redeliveries are recognised.
    """
    try:
        serialized = json.dumps(payload, ensure_ascii=False, default=str)
    except (TypeError, ValueError):
        serialized = repr(payload)
    return hashlib.sha256(serialized.encode("utf-8")).hexdigest()


class BoundedKeySet:
    """Insertion-ordered set that evicts its oldest keys beyond capacity."""

    def __init__(self, capacity: int = 100):
        self.capacity = max(1, int(capacity))
        self._keys: OrderedDict[str, None] = OrderedDict()

    def add(self, key: str) -> bool:
        """Record key; return False when it was already present."""
        if key in self._keys:
            return False
        self._keys[key] = None
        while len(self._keys) > self.capacity:
            self._keys.popitem(last=False)
        return True

    def discard(self, key: str) -> None:
        self._keys.pop(key, None)

    def clear(self) -> None:
        self._keys.clear()

    def __contains__(self, key: object) -> bool:
        return key in self._keys

    def __len__(self) -> int:
        return len(self._keys)


class ExecutionGuard:
    """At most one command batch in flight; a busy guard drops new batches."""

    def __init__(self) -> None:
        self._busy = False

    @property
    def busy(self) -> bool:
        return self._busy

    def try_acquire(self) -> bool:
        if self._busy:
            return False
        self._busy = True
        return True

    def release(self) -> None:
        self._busy = False
