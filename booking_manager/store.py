from __future__ import annotations

import logging
import threading
import uuid
from datetime import datetime, timedelta, timezone
from typing import Dict, List

from .errors import TimeslotAlreadyBooked, TimeslotExpired, TimeslotNotFound
from .notifier import SnapshotChannel, Subscription
from .schemas import Timeslot

logger = logging.getLogger(__name__)

DEFAULT_RETENTION = timedelta(days=1)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class InMemoryTimeslotStore:
    """Timeslots kept in a dict guarded by a single lock.

    Nothing survives a restart. Expired slots are dropped lazily whenever the
    store is read, never by a background timer.
    """

    def __init__(self, retention: timedelta = DEFAULT_RETENTION) -> None:
        self.retention = retention
        self._lock = threading.Lock()
        self._timeslots: Dict[uuid.UUID, Timeslot] = {}
        self._channel = SnapshotChannel()
        # Snapshots are taken and published in one step so subscribers never
        # see an older snapshot after a newer one.
        self._publish_lock = threading.Lock()

    def _evict_expired(self) -> int:
        cutoff = _utcnow() - self.retention
        expired = [
            timeslot_id
            for timeslot_id, timeslot in self._timeslots.items()
            if timeslot.datetime < cutoff
        ]
        for timeslot_id in expired:
            del self._timeslots[timeslot_id]
        return len(expired)

    def _snapshot(self) -> tuple[List[Timeslot], int]:
        with self._lock:
            evicted = self._evict_expired()
            timeslots = sorted(self._timeslots.values(), key=lambda slot: slot.datetime)
        return timeslots, evicted

    def _publish(self) -> None:
        with self._publish_lock:
            timeslots, _ = self._snapshot()
            self._channel.publish(timeslots)

    def list(self) -> List[Timeslot]:
        timeslots, evicted = self._snapshot()
        if evicted:
            logger.debug("Evicted %d outdated timeslots", evicted)
            self._publish()
        return timeslots

    def add(self, datetime: datetime, notes: str) -> Timeslot:
        timeslot = Timeslot(id=uuid.uuid4(), datetime=datetime, notes=notes)
        with self._lock:
            self._timeslots[timeslot.id] = timeslot
        logger.info("Added timeslot %s at %s", timeslot.id, timeslot.datetime.isoformat())
        self._publish()
        return timeslot

    def book(self, timeslot_id: uuid.UUID, booker_name: str) -> None:
        if not booker_name:
            raise ValueError("booker_name must not be empty")
        with self._lock:
            timeslot = self._timeslots.get(timeslot_id)
            if timeslot is None:
                error = TimeslotNotFound(timeslot_id)
            elif not timeslot.available:
                error = TimeslotAlreadyBooked(timeslot_id)
            elif timeslot.datetime < _utcnow():
                error = TimeslotExpired(timeslot_id)
            else:
                error = None
                self._timeslots[timeslot_id] = timeslot.model_copy(
                    update={"available": False, "booker_name": booker_name}
                )
        if error is not None:
            logger.warning("Booking rejected: %s", error)
            raise error
        logger.info("Booked timeslot %s", timeslot_id)
        self._publish()

    def remove(self, timeslot_id: uuid.UUID) -> None:
        with self._lock:
            removed = self._timeslots.pop(timeslot_id, None)
        if removed is None:
            error = TimeslotNotFound(timeslot_id)
            logger.warning("Removal rejected: %s", error)
            raise error
        logger.info("Removed timeslot %s", timeslot_id)
        self._publish()

    def remove_all(self) -> None:
        with self._lock:
            self._timeslots.clear()
        logger.info("Removed all timeslots")
        self._publish()

    def subscribe(self) -> Subscription:
        subscription = self._channel.subscribe()
        self._publish()
        return subscription
