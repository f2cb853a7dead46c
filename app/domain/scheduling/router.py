"""Session router - FastAPI endpoints for scheduling operations"""

import logging
from datetime import datetime
from typing import Optional, Union

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.orm import Session

from ...auth import get_current_user
from ...database import get_db
from ...models import Professional, SessionStatus
from ...rate_limiter import delete_rate_limiter
from .schemas import (
    ConflictCheckRequest,
    ConflictCheckResponse,
    DeleteResponse,
    RecurrenceDeleteRequest,
    RecurrenceGroupResponse,
    RecurrencePreviewRequest,
    RecurrencePreviewResponse,
    RecurringCreateResponse,
    SessionCreate,
    SessionResponse,
    SessionStatusUpdate,
    SessionUpdate,
)
from .service import SessionBatch, SessionService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/sessions", tags=["Sessions"])


def get_session_service(request: Request, db: Session = Depends(get_db)) -> SessionService:
    """Dependency injection for SessionService"""
    return SessionService(db, request)


# ============================================================================
# PREVIEWS
# ============================================================================


@router.post("/check-conflicts", response_model=ConflictCheckResponse)
async def check_conflicts(
    data: ConflictCheckRequest,
    current_user: Professional = Depends(get_current_user),
    service: SessionService = Depends(get_session_service),
):
    """Report which of the given start times collide with existing sessions"""
    return service.check_conflicts(current_user.id, data.dates, data.duration)


@router.post("/recurrence-preview", response_model=RecurrencePreviewResponse)
async def preview_recurrence(
    data: RecurrencePreviewRequest,
    current_user: Professional = Depends(get_current_user),
    service: SessionService = Depends(get_session_service),
):
    """Dates a recurring booking would create, without saving anything"""
    return service.preview_recurrence(current_user.id, data)


# ============================================================================
# RECURRENCE GROUPS
# ============================================================================


@router.get("/recurring/{group_id}", response_model=RecurrenceGroupResponse)
async def get_recurrence_group(
    group_id: str,
    current_user: Professional = Depends(get_current_user),
    service: SessionService = Depends(get_session_service),
):
    """Get every session of a recurring series with status counters"""
    return service.get_recurrence_group(current_user.id, group_id)


@router.delete("/recurring/{group_id}", response_model=DeleteResponse)
async def delete_recurrence_group(
    group_id: str,
    data: RecurrenceDeleteRequest = Depends(),
    current_user: Professional = Depends(get_current_user),
    service: SessionService = Depends(get_session_service),
    _: None = Depends(delete_rate_limiter),
):
    """Delete one session, this and following sessions, or the whole series"""
    deleted_count = service.delete_recurrence_group(
        current_user.id, group_id, data.deleteType, data.sessionId
    )
    return DeleteResponse(
        deletedCount=deleted_count,
        message=f"{deleted_count} session(s) deleted",
    )


# ============================================================================
# CORE CRUD OPERATIONS
# ============================================================================


@router.post(
    "",
    response_model=Union[RecurringCreateResponse, SessionResponse],
    status_code=status.HTTP_201_CREATED,
)
async def create_session(
    data: SessionCreate,
    current_user: Professional = Depends(get_current_user),
    service: SessionService = Depends(get_session_service),
):
    """Book a session; recurring bookings create the whole series at once"""
    result = service.create_session(current_user.id, data)

    if isinstance(result, SessionBatch):
        return RecurringCreateResponse(
            recurrenceGroupId=result.group_id,
            sessionsCreated=len(result.sessions),
            firstSession=SessionResponse.model_validate(result.sessions[0]),
            description=result.description,
            isPaid=result.is_paid,
        )
    return SessionResponse.model_validate(result)


@router.get("", response_model=list[SessionResponse])
async def list_sessions(
    patient_id: Optional[int] = Query(None, alias="patientId"),
    session_status: Optional[SessionStatus] = Query(None, alias="status"),
    start_date: Optional[datetime] = Query(None, alias="startDate"),
    end_date: Optional[datetime] = Query(None, alias="endDate"),
    current_user: Professional = Depends(get_current_user),
    service: SessionService = Depends(get_session_service),
):
    """List sessions for the current professional"""
    return service.list_sessions(current_user.id, patient_id, session_status, start_date, end_date)


@router.get("/{session_id}", response_model=SessionResponse)
async def get_session(
    session_id: int,
    current_user: Professional = Depends(get_current_user),
    service: SessionService = Depends(get_session_service),
):
    """Get a specific session with its payment"""
    return service.get_session(current_user.id, session_id)


@router.put("/{session_id}", response_model=SessionResponse)
async def update_session(
    session_id: int,
    data: SessionUpdate,
    current_user: Professional = Depends(get_current_user),
    service: SessionService = Depends(get_session_service),
):
    """Edit a session: reschedule, reassign, change status or notes"""
    return service.update_session(current_user.id, session_id, data)


@router.patch("/{session_id}/status", response_model=SessionResponse)
async def change_session_status(
    session_id: int,
    data: SessionStatusUpdate,
    current_user: Professional = Depends(get_current_user),
    service: SessionService = Depends(get_session_service),
):
    """Move a session through its lifecycle"""
    return service.change_session_status(current_user.id, session_id, data.status)


@router.delete("/{session_id}")
async def delete_session(
    session_id: int,
    current_user: Professional = Depends(get_current_user),
    service: SessionService = Depends(get_session_service),
    _: None = Depends(delete_rate_limiter),
):
    """Delete a session and its payment"""
    return service.delete_session(current_user.id, session_id)


__all__ = [
    "router",
    "check_conflicts",
    "preview_recurrence",
    "get_recurrence_group",
    "delete_recurrence_group",
    "create_session",
    "list_sessions",
    "get_session",
    "update_session",
    "change_session_status",
    "delete_session",
]
