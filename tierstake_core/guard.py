"""
Ledger-wide reentrancy guard.

One guard protects every mutating entry point of a ledger.  A nested
entry from the thread that already holds it raises ``ReentrantCall``;
entries from other threads block until the holder is done, so each
operation runs as a single uninterrupted critical section.
"""

from __future__ import annotations

import threading

from tierstake_core.errors import ReentrantCall


class ReentrancyGuard:

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._owner: int | None = None
        self.operation: str | None = None

    @property
    def entered(self) -> bool:
        return self._owner is not None

    def enter(self, operation: str = "") -> None:
        me = threading.get_ident()
        if self._owner == me:
            raise ReentrantCall(
                f"Cannot call {operation or 'a mutating operation'} "
                f"while {self.operation} is in progress"
            )
        self._lock.acquire()
        self._owner = me
        self.operation = operation

    def exit(self) -> None:
        self._owner = None
        self.operation = None
        self._lock.release()

    def __call__(self, operation: str) -> "_Scope":
        return _Scope(self, operation)


class _Scope:
    __slots__ = ("_guard", "_operation")

    def __init__(self, guard: ReentrancyGuard, operation: str) -> None:
        self._guard = guard
        self._operation = operation

    def __enter__(self) -> None:
        self._guard.enter(self._operation)

    def __exit__(self, *exc) -> None:
        self._guard.exit()
