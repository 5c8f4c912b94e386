"""
Host execution lock and the blocking-call gate.

Every boundary entry point runs while holding one process-wide lock,
`HOST_LOCK`, so host-visible state (wrapper caches, custodian edges,
exported views) is only ever touched by one thread at a time. The four
long-running engine calls (network forward, network backward, solver step,
solver solve) drop the lock for the duration of the engine work and take it
back before returning, which lets unrelated host threads run meanwhile.

Ordering
--------
The gate does not serialize calls on the same `Net` or `Solver`. Two
threads that drive one object concurrently race inside the engine; callers
serialize per-object access themselves. A released lock cannot be used to
interrupt an in-flight engine call.

Usage
-----
    @host_call
    def forward(self, start, end):
        ...                         # host-side checks, lock held
        with allow_threads():
            loss = engine.forward() # lock released
        ...                         # lock held again
"""

from __future__ import annotations

import threading
from contextlib import contextmanager
from functools import wraps
from typing import Callable, Iterator

from typing_extensions import ParamSpec, TypeVar

P = ParamSpec("P")
R = TypeVar("R")


class HostLock:
    """
    Re-entrant lock that remembers how deeply the owning thread holds it.

    The depth is what lets `allow_threads()` release the lock completely from
    inside nested boundary calls and restore the same depth afterwards.
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._local = threading.local()

    @property
    def depth(self) -> int:
        """Number of times the current thread holds the lock."""
        return getattr(self._local, "depth", 0)

    def held(self) -> bool:
        return self.depth > 0

    def acquire(self) -> None:
        self._lock.acquire()
        self._local.depth = self.depth + 1

    def release(self) -> None:
        if self.depth <= 0:
            raise RuntimeError("HostLock released by a thread that does not hold it")
        self._local.depth = self.depth - 1
        self._lock.release()

    def release_all(self) -> int:
        """Release every level held by this thread and return the depth."""
        depth = self.depth
        for _ in range(depth):
            self.release()
        return depth

    def restore(self, depth: int) -> None:
        """Re-acquire the lock `depth` times."""
        for _ in range(depth):
            self.acquire()

    def __enter__(self) -> "HostLock":
        self.acquire()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.release()


HOST_LOCK = HostLock()


def host_call(func: Callable[P, R]) -> Callable[P, R]:
    """Run `func` holding `HOST_LOCK`."""

    @wraps(func)
    def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
        with HOST_LOCK:
            return func(*args, **kwargs)

    return wrapper


@contextmanager
def allow_threads() -> Iterator[None]:
    """
    Release `HOST_LOCK` completely for the body of the `with` block.

    The lock is re-acquired to its previous depth on exit, including when
    the body raises. Outside any boundary call this is a no-op.
    """
    depth = HOST_LOCK.release_all()
    try:
        yield
    finally:
        HOST_LOCK.restore(depth)
