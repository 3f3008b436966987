from __future__ import annotations

import logging
import threading
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, List, Optional, Protocol

from ..errors import StorageError, TimeslotAlreadyBooked, TimeslotExpired, TimeslotNotFound
from ..notifier import SnapshotChannel, Subscription
from ..schemas import Timeslot
from ..store import DEFAULT_RETENTION, InMemoryTimeslotStore

logger = logging.getLogger(__name__)

TABLE = "timeslots"
# PostgREST refuses unfiltered deletes; no row ever carries the nil UUID.
_NIL_UUID = str(uuid.UUID(int=0))


class TimeslotBackend(Protocol):
    def list(self) -> List[Timeslot]:
        ...

    def add(self, datetime: datetime, notes: str) -> Timeslot:
        ...

    def book(self, timeslot_id: uuid.UUID, booker_name: str) -> None:
        ...

    def remove(self, timeslot_id: uuid.UUID) -> None:
        ...

    def remove_all(self) -> None:
        ...

    def subscribe(self) -> Subscription:
        ...


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _execute(query, action: str) -> Any:
    try:
        return query.execute()
    except Exception as exc:
        raise StorageError(f"Failed to {action}: {exc}") from exc


class SupabaseTimeslotStore:
    """Timeslots persisted in the ``timeslots`` table of a Supabase project.

    The client is shared by every caller, so each statement runs under one
    lock. Write failures surface as :class:`StorageError` without retries.
    """

    def __init__(self, client, retention: timedelta = DEFAULT_RETENTION) -> None:
        self.client = client
        self.retention = retention
        self._lock = threading.Lock()
        self._publish_lock = threading.Lock()
        self._channel = SnapshotChannel()
        # Set when a change could not be published because the re-read failed.
        self._publish_pending = False

    @classmethod
    def connect(
        cls,
        supabase_url: str,
        supabase_key: str,
        retention: timedelta = DEFAULT_RETENTION,
    ) -> "SupabaseTimeslotStore":
        from supabase import create_client

        try:
            client = create_client(supabase_url, supabase_key)
        except Exception as exc:
            raise StorageError(f"Failed to create Supabase client: {exc}") from exc
        store = cls(client, retention=retention)
        _execute(store._table().select("id").limit(1), "reach the timeslots table")
        return store

    def _table(self):
        return self.client.table(TABLE)

    def _read(self) -> tuple[Optional[List[Timeslot]], int]:
        """Return the current rows, or None for the rows when the read failed."""
        cutoff = _utcnow() - self.retention
        with self._lock:
            try:
                response = _execute(
                    self._table().delete().lt("datetime", cutoff.isoformat()),
                    "clean up outdated timeslots",
                )
                evicted = len(response.data or [])
            except StorageError as exc:
                logger.error("%s", exc)
                evicted = 0
            try:
                response = _execute(
                    self._table().select("*").order("datetime"),
                    "read timeslots",
                )
            except StorageError as exc:
                logger.error("%s", exc)
                return None, evicted
        timeslots = [Timeslot.model_validate(row) for row in response.data or []]
        return timeslots, evicted

    def _publish(self) -> None:
        with self._publish_lock:
            timeslots, _ = self._read()
            if timeslots is None:
                logger.warning("Skipped publishing, timeslots could not be read")
                self._publish_pending = True
                return
            self._publish_pending = False
            self._channel.publish(timeslots)

    def list(self) -> List[Timeslot]:
        timeslots, evicted = self._read()
        if timeslots is None:
            return []
        if evicted:
            logger.debug("Deleted %d outdated timeslots", evicted)
        if evicted or self._publish_pending:
            self._publish()
        return timeslots

    def add(self, datetime: datetime, notes: str) -> Timeslot:
        timeslot = Timeslot(id=uuid.uuid4(), datetime=datetime, notes=notes)
        with self._lock:
            _execute(
                self._table().insert(timeslot.model_dump(mode="json")),
                "add timeslot",
            )
        logger.info("Added timeslot %s at %s", timeslot.id, timeslot.datetime.isoformat())
        self._publish()
        return timeslot

    def book(self, timeslot_id: uuid.UUID, booker_name: str) -> None:
        if not booker_name:
            raise ValueError("booker_name must not be empty")
        with self._lock:
            response = _execute(
                self._table().select("*").eq("id", str(timeslot_id)),
                "load timeslot",
            )
            rows = response.data or []
            if not rows:
                error = TimeslotNotFound(timeslot_id)
            else:
                timeslot = Timeslot.model_validate(rows[0])
                if not timeslot.available:
                    error = TimeslotAlreadyBooked(timeslot_id)
                elif timeslot.datetime < _utcnow():
                    error = TimeslotExpired(timeslot_id)
                else:
                    response = _execute(
                        self._table()
                        .update({"available": False, "booker_name": booker_name})
                        .eq("id", str(timeslot_id))
                        .eq("available", True),
                        "book timeslot",
                    )
                    # Another process sharing the table got there first.
                    error = None if response.data else TimeslotAlreadyBooked(timeslot_id)
        if error is not None:
            logger.warning("Booking rejected: %s", error)
            raise error
        logger.info("Booked timeslot %s", timeslot_id)
        self._publish()

    def remove(self, timeslot_id: uuid.UUID) -> None:
        with self._lock:
            response = _execute(
                self._table().delete().eq("id", str(timeslot_id)),
                "remove timeslot",
            )
        if not response.data:
            error = TimeslotNotFound(timeslot_id)
            logger.warning("Removal rejected: %s", error)
            raise error
        logger.info("Removed timeslot %s", timeslot_id)
        self._publish()

    def remove_all(self) -> None:
        with self._lock:
            _execute(self._table().delete().neq("id", _NIL_UUID), "remove all timeslots")
        logger.info("Removed all timeslots")
        self._publish()

    def subscribe(self) -> Subscription:
        subscription = self._channel.subscribe()
        self._publish()
        return subscription


def build_backend(
    supabase_url: str | None,
    supabase_key: str | None,
    retention: timedelta = DEFAULT_RETENTION,
) -> TimeslotBackend:
    if not supabase_url and not supabase_key:
        logger.info("No database configured, timeslots are not stored persistently")
        return InMemoryTimeslotStore(retention=retention)
    if not supabase_url or not supabase_key:
        raise ValueError("Missing Supabase configuration (SUPABASE_URL/SUPABASE_KEY).")
    return SupabaseTimeslotStore.connect(supabase_url, supabase_key, retention=retention)
