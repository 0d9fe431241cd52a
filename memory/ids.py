"""Process-wide monotonic id allocation.

Store variables and actors both need identifiers that are never reused for
the lifetime of the process, no matter how many stores or chats exist.
"""

from __future__ import annotations

import threading


class IdAllocator:
    """Thread-safe monotonic counter. The first id handed out is ``start``."""

    def __init__(self, start: int = 1) -> None:
        self._next = start
        self._lock = threading.Lock()

    def allocate(self) -> int:
        with self._lock:
            value = self._next
            self._next += 1
        return value


# Shared by every Store: a Var may be used with several stores, so its id
# (and therefore its type) must be unique globally.
var_ids = IdAllocator()

# Actor id 0 is reserved for static steps.
actor_ids = IdAllocator()
