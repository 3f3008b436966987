from __future__ import annotations

import logging
import time
from datetime import datetime, timedelta, timezone
from typing import AsyncIterator, Callable, Optional

from fastapi import Depends, FastAPI, Header, HTTPException, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import TypeAdapter

from .config import Settings
from .db.repository import TimeslotBackend, build_backend
from .errors import (
    StorageError,
    TimeslotAlreadyBooked,
    TimeslotError,
    TimeslotExpired,
    TimeslotNotFound,
)
from .notifier import Subscription
from .schemas import (
    AddTimeslotRequest,
    BookingRequest,
    DeleteTimeslotRequest,
    MessageResponse,
    Timeslot,
)

logger = logging.getLogger(__name__)

ADMIN_HEADER = "x-admin-password"
EXAMPLE_TIMESLOTS = 5
SSE_POLL_SECONDS = 1.0

ERROR_STATUS = {
    TimeslotNotFound: 404,
    TimeslotAlreadyBooked: 409,
    TimeslotExpired: 410,
    StorageError: 503,
}

_snapshot_adapter = TypeAdapter(list[Timeslot])


def connect_backend(
    settings: Settings,
    sleep: Callable[[float], None] = time.sleep,
) -> TimeslotBackend:
    """Build the configured backend, retrying until the database is reachable."""
    while True:
        try:
            backend = build_backend(
                settings.supabase_url,
                settings.supabase_key,
                retention=settings.retention,
            )
        except StorageError as exc:
            logger.error(
                "Failed to establish database connection: %s. Retry in %.0f sec. "
                "You may want to restart without a database (timeslots are then not persistent).",
                exc,
                settings.connect_retry_seconds,
            )
            sleep(settings.connect_retry_seconds)
            continue
        if settings.database_configured:
            logger.info("Successfully connected to database")
        return backend


def seed_example_timeslots(backend: TimeslotBackend, count: int = EXAMPLE_TIMESLOTS) -> None:
    now = datetime.now(timezone.utc)
    for day in range(1, count + 1):
        backend.add(now + timedelta(days=day), "Example Slot")


async def timeslot_events(
    request: Request,
    subscription: Subscription,
    poll_seconds: float = SSE_POLL_SECONDS,
) -> AsyncIterator[str]:
    while not await request.is_disconnected():
        snapshot = await subscription.next(timeout=poll_seconds)
        if snapshot is None:
            continue
        yield f"data: {_snapshot_adapter.dump_json(snapshot).decode()}\n\n"


def create_app(backend: TimeslotBackend, settings: Settings) -> FastAPI:
    app = FastAPI(title="Booking Manager API")

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    def require_admin(
        x_admin_password: Optional[str] = Header(default=None, alias=ADMIN_HEADER),
    ) -> None:
        if x_admin_password is None:
            logger.error("Authorization failed: Missing credentials")
            raise HTTPException(status_code=401, detail="Missing credentials")
        if not settings.http_password or x_admin_password != settings.http_password:
            logger.error("Authorization failed")
            raise HTTPException(status_code=401, detail="Unauthorized")

    @app.exception_handler(TimeslotError)
    async def timeslot_error_handler(request: Request, exc: TimeslotError) -> JSONResponse:
        status_code = ERROR_STATUS.get(type(exc), 500)
        return JSONResponse(status_code=status_code, content={"error": str(exc)})

    @app.get("/health")
    async def health() -> dict:
        return {"status": "ok"}

    @app.get("/timeslots")
    async def get_timeslots(request: Request) -> StreamingResponse:
        logger.debug("Starting SSE timeslot stream")
        subscription = await run_in_threadpool(backend.subscribe)
        return StreamingResponse(
            timeslot_events(request, subscription),
            media_type="text/event-stream",
            headers={"Cache-Control": "no-cache"},
        )

    @app.post("/book", response_model=MessageResponse)
    async def book_timeslot(booking: BookingRequest) -> MessageResponse:
        await run_in_threadpool(backend.book, booking.id, booking.client_name)
        return MessageResponse(message="Timeslot booked successfully")

    @app.get("/admin_page", dependencies=[Depends(require_admin)])
    async def admin_page() -> dict:
        return {"status": "ok"}

    @app.post("/add", response_model=MessageResponse, dependencies=[Depends(require_admin)])
    async def add_timeslot(timeslot: AddTimeslotRequest) -> MessageResponse:
        await run_in_threadpool(backend.add, timeslot.datetime, timeslot.notes)
        return MessageResponse(message="Timeslot added successfully")

    @app.delete("/remove", response_model=MessageResponse, dependencies=[Depends(require_admin)])
    async def remove_timeslot(timeslot: DeleteTimeslotRequest) -> MessageResponse:
        await run_in_threadpool(backend.remove, timeslot.id)
        return MessageResponse(message="Timeslot removed successfully")

    @app.post("/remove_all", response_model=MessageResponse, dependencies=[Depends(require_admin)])
    async def remove_all_timeslots() -> MessageResponse:
        await run_in_threadpool(backend.remove_all)
        return MessageResponse(message="All timeslots removed successfully")

    return app
