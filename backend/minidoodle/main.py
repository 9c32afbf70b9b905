"""FastAPI application entrypoint and HTTP controllers.

This module defines the HTTP endpoints of the Mini Doodle scheduling
backend. Controllers are intentionally thin: they accept requests,
delegate to services, and return JSON responses.

Endpoints implemented:
- /api/v1/users          user CRUD, lookup by email, user calendar
- /api/v1/timeslots      slot CRUD, status changes, listing, availability
- /api/v1/meetings       booking, cancelling, participant management
- /actuator/health, /actuator/info, /actuator/prometheus
"""

from datetime import datetime
from typing import List
import json
import logging
import time
import uuid

from fastapi import FastAPI, Depends, Query, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, RedirectResponse, Response
from sqlmodel import Session
from starlette.exceptions import HTTPException as StarletteHTTPException

from . import metrics, services
from .config import settings
from .database import create_db_and_tables, get_session, ping
from .exceptions import (
    MiniDoodleError,
    ResourceNotFoundError,
    http_exception_handler,
    minidoodle_exception_handler,
    unhandled_exception_handler,
    validation_exception_handler,
)
from .models import SlotStatus
from .schemas import (
    AvailabilityResponse,
    CalendarOut,
    CreateMeetingRequest,
    CreateTimeSlotRequest,
    ErrorResponse,
    MeetingOut,
    TimeSlotOut,
    UpdateMeetingRequest,
    UserIn,
    UserOut,
    to_utc,
)

logger = logging.getLogger("minidoodle.api")
if not logger.handlers:
    logging.basicConfig(level=settings.LOG_LEVEL)

openapi_tags = [
    {"name": "User Management", "description": "APIs for managing users"},
    {"name": "Time Slot Management", "description": "APIs for managing time slots"},
    {"name": "Meeting Management", "description": "APIs for managing meetings"},
    {"name": "Actuator", "description": "Health, info and metrics endpoints"},
]

app = FastAPI(
    title="Mini Doodle API",
    description="A high-performance meeting scheduling platform REST API",
    version=settings.APP_VERSION,
    contact={"name": "Mini Doodle Team", "email": "support@minidoodle.com"},
    license_info={"name": "Apache 2.0", "url": "https://www.apache.org/licenses/LICENSE-2.0.html"},
    openapi_tags=openapi_tags,
)
app.add_exception_handler(MiniDoodleError, minidoodle_exception_handler)
app.add_exception_handler(StarletteHTTPException, http_exception_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(Exception, unhandled_exception_handler)

if settings.ALLOW_DEV_CORS:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

create_db_and_tables()

ERROR_RESPONSES = {
    400: {"model": ErrorResponse},
    404: {"model": ErrorResponse},
}


@app.middleware("http")
async def request_context_middleware(request: Request, call_next):
    req_id = request.headers.get("X-Request-ID", uuid.uuid4().hex)
    request.state.request_id = req_id
    started = time.perf_counter()
    response: Response
    event = "request_done"
    try:
        response = await call_next(request)
    except Exception as exc:
        # the 500 carries the request id and is counted like any other response
        event = "request_failed"
        response = await unhandled_exception_handler(request, exc)
    response.headers["X-Request-ID"] = req_id
    elapsed = time.perf_counter() - started
    route = request.scope.get("route")
    template = getattr(route, "path", None) or "unmatched"
    if settings.METRICS_ENABLED:
        metrics.observe_request(request.method, template, response.status_code, elapsed)
    if request.url.path.startswith("/api"):
        logger.log(
            logging.ERROR if event == "request_failed" else logging.INFO,
            "%s %s",
            event,
            json.dumps(
                {
                    "request_id": req_id,
                    "path": request.url.path,
                    "method": request.method,
                    "status_code": response.status_code,
                    "duration_ms": round(elapsed * 1000.0, 2),
                    "client": request.client.host if request.client else "unknown",
                },
                ensure_ascii=True,
            ),
        )
    return response


def _range(start_time: datetime, end_time: datetime):
    return to_utc(start_time), to_utc(end_time)


# ---------------------------------------------------------------- users

@app.post('/api/v1/users', response_model=UserOut, status_code=status.HTTP_201_CREATED,
          tags=["User Management"], responses=ERROR_RESPONSES)
def create_user(payload: UserIn, db: Session = Depends(get_session)):
    """Create a new user; a calendar in the default timezone comes with it."""
    return services.UserService(db).create_user(payload)


@app.get('/api/v1/users', response_model=List[UserOut], tags=["User Management"])
def list_users(db: Session = Depends(get_session)):
    """Get all users."""
    return services.UserService(db).list_users()


@app.get('/api/v1/users/email/{email}', response_model=UserOut, tags=["User Management"], responses=ERROR_RESPONSES)
def get_user_by_email(email: str, db: Session = Depends(get_session)):
    """Get user by email."""
    return services.UserService(db).get_user_by_email(email)


@app.get('/api/v1/users/{user_id}', response_model=UserOut, tags=["User Management"], responses=ERROR_RESPONSES)
def get_user(user_id: int, db: Session = Depends(get_session)):
    """Get user by ID."""
    return services.UserService(db).get_user(user_id)


@app.put('/api/v1/users/{user_id}', response_model=UserOut, tags=["User Management"], responses=ERROR_RESPONSES)
def update_user(user_id: int, payload: UserIn, db: Session = Depends(get_session)):
    """Update a user's name and email."""
    return services.UserService(db).update_user(user_id, payload)


@app.delete('/api/v1/users/{user_id}', status_code=status.HTTP_204_NO_CONTENT,
            tags=["User Management"], responses=ERROR_RESPONSES)
def delete_user(user_id: int, db: Session = Depends(get_session)):
    """Delete a user together with their calendar, slots and booked meetings."""
    services.UserService(db).delete_user(user_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@app.get('/api/v1/users/{user_id}/calendar', response_model=CalendarOut,
         tags=["User Management"], responses=ERROR_RESPONSES)
def get_user_calendar(user_id: int, db: Session = Depends(get_session)):
    """Get the calendar owned by a user."""
    return services.UserService(db).get_calendar(user_id)


# ---------------------------------------------------------------- time slots

@app.post('/api/v1/timeslots/users/{user_id}', response_model=TimeSlotOut, status_code=status.HTTP_201_CREATED,
          tags=["Time Slot Management"], responses={**ERROR_RESPONSES, 409: {"model": ErrorResponse}})
def create_time_slot(user_id: int, payload: CreateTimeSlotRequest, db: Session = Depends(get_session)):
    """Create a new FREE time slot on the user's calendar.

    Send either `end_time` or `duration_minutes`. Slots must start in the
    future, last between the configured minimum and maximum and must not
    overlap another slot of the same calendar (409).
    """
    return services.TimeSlotService(db).create_time_slot(user_id, payload)


@app.get('/api/v1/timeslots/{slot_id}', response_model=TimeSlotOut,
         tags=["Time Slot Management"], responses=ERROR_RESPONSES)
def get_time_slot(slot_id: int, db: Session = Depends(get_session)):
    """Get time slot by ID."""
    return services.TimeSlotService(db).get_time_slot(slot_id)


@app.put('/api/v1/timeslots/{slot_id}', response_model=TimeSlotOut,
         tags=["Time Slot Management"], responses={**ERROR_RESPONSES, 409: {"model": ErrorResponse}})
def update_time_slot(slot_id: int, payload: CreateTimeSlotRequest, db: Session = Depends(get_session)):
    """Move or resize a time slot; booked slots cannot be changed."""
    return services.TimeSlotService(db).update_time_slot(slot_id, payload)


@app.delete('/api/v1/timeslots/{slot_id}', status_code=status.HTTP_204_NO_CONTENT,
            tags=["Time Slot Management"], responses=ERROR_RESPONSES)
def delete_time_slot(slot_id: int, db: Session = Depends(get_session)):
    """Delete a time slot; cancel its meeting first if it is booked."""
    services.TimeSlotService(db).delete_time_slot(slot_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@app.patch('/api/v1/timeslots/{slot_id}/status', response_model=TimeSlotOut,
           tags=["Time Slot Management"], responses=ERROR_RESPONSES)
def update_time_slot_status(slot_id: int, status: SlotStatus, db: Session = Depends(get_session)):
    """Set a slot to FREE or BUSY."""
    return services.TimeSlotService(db).update_slot_status(slot_id, status)


@app.patch('/api/v1/timeslots/{slot_id}/mark-busy', response_model=TimeSlotOut,
           tags=["Time Slot Management"], responses=ERROR_RESPONSES)
def mark_time_slot_busy(slot_id: int, db: Session = Depends(get_session)):
    """Mark time slot as busy."""
    return services.TimeSlotService(db).mark_slot_busy(slot_id)


@app.patch('/api/v1/timeslots/{slot_id}/mark-free', response_model=TimeSlotOut,
           tags=["Time Slot Management"], responses=ERROR_RESPONSES)
def mark_time_slot_free(slot_id: int, db: Session = Depends(get_session)):
    """Mark time slot as free."""
    return services.TimeSlotService(db).mark_slot_free(slot_id)


@app.get('/api/v1/timeslots/users/{user_id}', response_model=List[TimeSlotOut],
         tags=["Time Slot Management"], responses=ERROR_RESPONSES)
def list_time_slots(
    user_id: int,
    start_time: datetime = Query(..., description="ISO-8601 range start"),
    end_time: datetime = Query(..., description="ISO-8601 range end"),
    db: Session = Depends(get_session),
):
    """Get all time slots for a user within a time range."""
    start, end = _range(start_time, end_time)
    return services.TimeSlotService(db).list_slots(user_id, start, end)


@app.get('/api/v1/timeslots/users/{user_id}/availability', response_model=AvailabilityResponse,
         tags=["Time Slot Management"], responses=ERROR_RESPONSES)
def get_availability(
    user_id: int,
    start_time: datetime = Query(..., description="ISO-8601 range start"),
    end_time: datetime = Query(..., description="ISO-8601 range end"),
    db: Session = Depends(get_session),
):
    """Get user availability (free and busy slots) within a time range."""
    start, end = _range(start_time, end_time)
    return services.TimeSlotService(db).get_availability(user_id, start, end)


# ---------------------------------------------------------------- meetings

@app.post('/api/v1/meetings', response_model=MeetingOut, status_code=status.HTTP_201_CREATED,
          tags=["Meeting Management"], responses=ERROR_RESPONSES)
def create_meeting(payload: CreateMeetingRequest, db: Session = Depends(get_session)):
    """Create a new meeting from a FREE time slot; the slot becomes BOOKED."""
    return services.MeetingService(db).create_meeting(payload)


@app.get('/api/v1/meetings/{meeting_id}', response_model=MeetingOut,
         tags=["Meeting Management"], responses=ERROR_RESPONSES)
def get_meeting(meeting_id: int, db: Session = Depends(get_session)):
    """Get meeting by ID."""
    return services.MeetingService(db).get_meeting(meeting_id)


@app.put('/api/v1/meetings/{meeting_id}', response_model=MeetingOut,
         tags=["Meeting Management"], responses=ERROR_RESPONSES)
def update_meeting(meeting_id: int, payload: UpdateMeetingRequest, db: Session = Depends(get_session)):
    """Update meeting title, description and (optionally) participants."""
    return services.MeetingService(db).update_meeting(meeting_id, payload)


@app.delete('/api/v1/meetings/{meeting_id}', status_code=status.HTTP_204_NO_CONTENT,
            tags=["Meeting Management"], responses=ERROR_RESPONSES)
def cancel_meeting(meeting_id: int, db: Session = Depends(get_session)):
    """Cancel meeting and free its time slot."""
    services.MeetingService(db).cancel_meeting(meeting_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@app.get('/api/v1/meetings/users/{user_id}', response_model=List[MeetingOut],
         tags=["Meeting Management"], responses=ERROR_RESPONSES)
def list_meetings_for_participant(
    user_id: int,
    start_time: datetime = Query(..., description="ISO-8601 range start"),
    end_time: datetime = Query(..., description="ISO-8601 range end"),
    db: Session = Depends(get_session),
):
    """Get all meetings a user takes part in within a time range."""
    start, end = _range(start_time, end_time)
    return services.MeetingService(db).list_meetings_for_participant(user_id, start, end)


@app.get('/api/v1/meetings/users/{user_id}/owned', response_model=List[MeetingOut],
         tags=["Meeting Management"], responses=ERROR_RESPONSES)
def list_meetings_for_owner(
    user_id: int,
    start_time: datetime = Query(..., description="ISO-8601 range start"),
    end_time: datetime = Query(..., description="ISO-8601 range end"),
    db: Session = Depends(get_session),
):
    """Get all meetings booked on a user's calendar within a time range."""
    start, end = _range(start_time, end_time)
    return services.MeetingService(db).list_meetings_for_owner(user_id, start, end)


@app.post('/api/v1/meetings/{meeting_id}/participants/{user_id}', response_model=MeetingOut,
          tags=["Meeting Management"], responses=ERROR_RESPONSES)
def add_meeting_participant(meeting_id: int, user_id: int, db: Session = Depends(get_session)):
    """Add participant to meeting."""
    return services.MeetingService(db).add_participant(meeting_id, user_id)


@app.delete('/api/v1/meetings/{meeting_id}/participants/{user_id}', response_model=MeetingOut,
            tags=["Meeting Management"], responses=ERROR_RESPONSES)
def remove_meeting_participant(meeting_id: int, user_id: int, db: Session = Depends(get_session)):
    """Remove participant from meeting."""
    return services.MeetingService(db).remove_participant(meeting_id, user_id)


# ---------------------------------------------------------------- actuator

@app.get("/", include_in_schema=False)
def home():
    return RedirectResponse(url="/docs")


@app.get("/actuator/health", tags=["Actuator"])
def health(db: Session = Depends(get_session)):
    """Liveness plus a database round trip; 503 when the database is down."""
    try:
        ping(db)
    except Exception as exc:
        logger.warning("health check failed: %s", exc)
        return JSONResponse(
            status_code=503,
            content={"status": "DOWN", "components": {"db": {"status": "DOWN", "error": type(exc).__name__}}},
        )
    return {"status": "UP", "components": {"db": {"status": "UP", "database": db.get_bind().dialect.name}}}


@app.get("/actuator/info", tags=["Actuator"])
def info():
    """Static build and runtime information."""
    return {"app": {"name": "minidoodle", "version": settings.APP_VERSION, "environment": settings.ENV}}


@app.get("/actuator/prometheus", tags=["Actuator"])
def prometheus():
    """Metrics in the Prometheus text exposition format."""
    if not settings.METRICS_ENABLED:
        raise ResourceNotFoundError("Metrics are disabled")
    payload, content_type = metrics.render()
    return Response(content=payload, media_type=content_type)
