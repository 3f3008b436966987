from __future__ import annotations

from uuid import UUID


class TimeslotError(Exception):
    """Base class for every error raised by a timeslot backend."""


class TimeslotNotFound(TimeslotError):
    def __init__(self, timeslot_id: UUID) -> None:
        super().__init__(f"Timeslot {timeslot_id} does not exist")
        self.timeslot_id = timeslot_id


class TimeslotAlreadyBooked(TimeslotError):
    def __init__(self, timeslot_id: UUID) -> None:
        super().__init__(f"Timeslot {timeslot_id} was already booked")
        self.timeslot_id = timeslot_id


class TimeslotExpired(TimeslotError):
    def __init__(self, timeslot_id: UUID) -> None:
        super().__init__(f"Timeslot {timeslot_id} already passed")
        self.timeslot_id = timeslot_id


class StorageError(TimeslotError):
    """The storage medium is unavailable or a query against it failed."""
