"""Single-slot store for the most recent lane result.

One ``LaneContextStore`` is built at startup and handed to both the pipeline
(the only writer) and any consumer that needs the lane context, e.g. a prompt
builder or the HTTP API.  There is no history: every update replaces the
previous pair.
"""

from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Iterator, NamedTuple, Optional


class LaneSnapshot(NamedTuple):
    ego: int
    total: int


class ReadWriteLock:
    """Many concurrent readers or one exclusive writer.

    Waiting writers block new readers, so a steady stream of reads cannot
    starve the writer.
    """

    def __init__(self) -> None:
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writing = False
        self._writers_waiting = 0

    @contextmanager
    def read(self) -> Iterator[None]:
        with self._cond:
            while self._writing or self._writers_waiting:
                self._cond.wait()
            self._readers += 1
        try:
            yield
        finally:
            with self._cond:
                self._readers -= 1
                if self._readers == 0:
                    self._cond.notify_all()

    @contextmanager
    def write(self) -> Iterator[None]:
        with self._cond:
            self._writers_waiting += 1
            try:
                while self._writing or self._readers:
                    self._cond.wait()
            finally:
                self._writers_waiting -= 1
            self._writing = True
        try:
            yield
        finally:
            with self._cond:
                self._writing = False
                self._cond.notify_all()


class LaneContextStore:
    """Thread-safe holder of the latest (ego lane, total lanes) pair."""

    def __init__(self) -> None:
        self._lock = ReadWriteLock()
        self._snapshot: Optional[LaneSnapshot] = None

    def update(self, ego: int, total: int) -> LaneSnapshot:
        """Store a new pair, clamping ego to >= 1 and total to >= 0."""
        snap = LaneSnapshot(ego=max(1, int(ego)), total=max(0, int(total)))
        with self._lock.write():
            self._snapshot = snap
        return snap

    def snapshot(self) -> Optional[LaneSnapshot]:
        """Return the current pair, or None if nothing was published yet."""
        with self._lock.read():
            return self._snapshot

    def clear(self) -> None:
        with self._lock.write():
            self._snapshot = None

    def context_line(self) -> Optional[str]:
        """Pre-built context sentence for prompts, or None if unset."""
        snap = self.snapshot()
        if snap is None:
            return None
        return (
            f"Context: User is currently in lane {snap.ego} out of {snap.total}. "
            "The user should be in the far left lane, N=1"
        )

    def prompt_line(self) -> str:
        snap = self.snapshot()
        if snap is None:
            return "Lane context: unavailable"
        return f"Lane context: E={snap.ego}, N={snap.total} (1 = far-left)"
