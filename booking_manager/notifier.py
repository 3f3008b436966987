"""
Latest-value snapshot channel shared by all timeslot backends.

A backend publishes the full, sorted timeslot list after every change.
Each subscriber only ever sees the newest list: snapshots published while
a reader was busy are coalesced, and publishing never waits on readers.
"""

from __future__ import annotations

import asyncio
import threading
from typing import List, Optional, Sequence

from .schemas import Timeslot


class SnapshotChannel:
    def __init__(self, initial: Sequence[Timeslot] = ()) -> None:
        self._condition = threading.Condition()
        self._value: List[Timeslot] = list(initial)
        self._version = 0

    def publish(self, snapshot: Sequence[Timeslot]) -> None:
        snapshot = list(snapshot)
        with self._condition:
            if snapshot == self._value:
                return
            self._value = snapshot
            self._version += 1
            self._condition.notify_all()

    def subscribe(self) -> "Subscription":
        return Subscription(self)

    def _wait_newer(self, seen: int, timeout: Optional[float]) -> Optional[tuple[int, List[Timeslot]]]:
        with self._condition:
            if not self._condition.wait_for(lambda: self._version != seen, timeout=timeout):
                return None
            return self._version, list(self._value)


class Subscription:
    """Reader bound to a :class:`SnapshotChannel`.

    The first read returns the channel's current value right away. Every
    later read blocks until something newer was published.
    """

    def __init__(self, channel: SnapshotChannel) -> None:
        self._channel = channel
        self._seen = -1

    def get(self, timeout: Optional[float] = None) -> Optional[List[Timeslot]]:
        result = self._channel._wait_newer(self._seen, timeout)
        if result is None:
            return None
        self._seen, snapshot = result
        return snapshot

    async def next(self, timeout: Optional[float] = None) -> Optional[List[Timeslot]]:
        # Blocks in a worker thread, not on the event loop.
        return await asyncio.to_thread(self.get, timeout)
